"""Tests for Monte Carlo loss simulation."""

import random

import pytest

from controlrisk.core.beta_bernoulli import Prior, get_industry_prior
from controlrisk.core.fair import bayesian_fair
from controlrisk.simulation.monte_carlo import (
    DEFAULT_ITERATIONS,
    HISTOGRAM_BINS,
    REPORTED_PERCENTILES,
    run_loss_simulation,
    simulate_posterior_ale,
)
from controlrisk.utils.error_handling import DataValidationError


class TestRunLossSimulation:
    """Test cases for the volatility-based loss simulator."""

    def test_distribution_centered_on_base(self, rng):
        """Test the simulated mean and median track the base loss."""
        result = run_loss_simulation(1_000_000, volatility=0.3, iterations=5000, rng=rng)

        assert result.iterations == 5000
        assert result.mean == pytest.approx(1_000_000, rel=0.03)
        assert result.percentiles[50] == pytest.approx(1_000_000, rel=0.03)
        assert result.std_dev == pytest.approx(300_000, rel=0.1)

    def test_percentiles_ordered(self, rng):
        """Test reported percentiles are non-decreasing."""
        result = run_loss_simulation(50_000, iterations=2000, rng=rng)
        values = [result.percentiles[p] for p in REPORTED_PERCENTILES]

        assert list(result.percentiles) == list(REPORTED_PERCENTILES)
        assert values == sorted(values)
        assert result.interval_90 == (values[0], values[-1])
        assert result.interquartile_range == values[3] - values[1]

    def test_histogram_covers_all_draws(self, rng):
        """Test histogram bins account for every draw including the maximum."""
        result = run_loss_simulation(10_000, iterations=1000, rng=rng)

        assert len(result.histogram) == HISTOGRAM_BINS
        assert sum(b.count for b in result.histogram) == 1000
        for left, right in zip(result.histogram, result.histogram[1:]):
            assert left.end == pytest.approx(right.start)

    def test_losses_never_negative(self, rng):
        """Test high volatility draws are floored at zero."""
        result = run_loss_simulation(1_000, volatility=2.0, iterations=2000, rng=rng)

        assert result.percentiles[5] == 0.0
        assert result.histogram[0].start == 0.0

    def test_zero_volatility(self, rng):
        """Test no volatility reproduces the base loss."""
        result = run_loss_simulation(2_500, volatility=0.0, iterations=100, rng=rng)

        assert result.mean == pytest.approx(2_500)
        assert result.std_dev == pytest.approx(0.0)
        assert all(value == 2_500 for value in result.percentiles.values())

    def test_seeded_runs_are_reproducible(self):
        """Test identical seeds give identical summaries."""
        first = run_loss_simulation(1_000, iterations=300, rng=random.Random(99))
        second = run_loss_simulation(1_000, iterations=300, rng=random.Random(99))

        assert first.to_dict() == second.to_dict()

    def test_invalid_arguments(self, rng):
        """Test iteration and volatility validation."""
        with pytest.raises(DataValidationError):
            run_loss_simulation(1_000, iterations=0, rng=rng)
        with pytest.raises(DataValidationError):
            run_loss_simulation(1_000, volatility=-0.1, rng=rng)

    def test_to_dict(self, rng):
        """Test serialized percentile keys."""
        data = run_loss_simulation(1_000, iterations=50, rng=rng).to_dict()

        assert set(data["percentiles"]) == {"p5", "p25", "p50", "p75", "p95"}
        assert len(data["histogram"]) == HISTOGRAM_BINS


class TestSimulatePosteriorALE:
    """Test cases for posterior ALE simulation."""

    def test_mean_matches_closed_form_ale(self, rng):
        """Test the sampled mean agrees with the FAIR point estimate."""
        prior = Prior(1, 1)
        closed_form = bayesian_fair(prior, 3, 1, 5, 100_000)
        simulated = simulate_posterior_ale(prior, 3, 1, 5, 100_000, iterations=4000, rng=rng)

        assert simulated.mean == pytest.approx(closed_form.annual_loss_exposure, rel=0.05)
        assert simulated.percentiles[5] < simulated.mean < simulated.percentiles[95]

    def test_ale_bounded_by_exposure_factor(self, rng):
        """Test draws lie in [0, TEF x LM]."""
        result = simulate_posterior_ale(Prior(1, 1), 2, 2, 2, 1_000, iterations=500, rng=rng)

        assert result.histogram[0].start >= 0.0
        assert result.histogram[-1].end <= 2_000

    def test_industry_prior_with_realistic_evidence(self, rng):
        """Test a benchmark prior and a 94/6 test history at the default draw count."""
        prior = get_industry_prior("financial_services")
        closed_form = bayesian_fair(prior, 94, 6, 4, 250_000)
        simulated = simulate_posterior_ale(prior, 94, 6, 4, 250_000, rng=rng)

        assert simulated.iterations == DEFAULT_ITERATIONS
        assert simulated.mean == pytest.approx(closed_form.annual_loss_exposure, rel=0.02)
        assert 0.0 <= simulated.percentiles[5] < simulated.percentiles[95] <= 1_000_000

    def test_negative_inputs_rejected(self, rng):
        """Test negative frequency is rejected."""
        with pytest.raises(DataValidationError):
            simulate_posterior_ale(Prior(3, 47), 10, 1, -1, 1_000, rng=rng)
