"""Monte Carlo loss simulation.

Two simulators:

- ``run_loss_simulation`` perturbs a base annual loss with normally
  distributed volatility, ``max(0, base * (1 + volatility * z))``, to show
  the spread around a point estimate.
- ``simulate_posterior_ale`` samples breach probabilities from the Beta
  posterior and scales them by threat frequency and loss magnitude. It is the
  sampled counterpart of ``controlrisk.core.fair.bayesian_fair``, whose
  interval is a linear approximation.

Both take an injectable random source; pass a seeded one for repeatable runs.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from controlrisk.core.beta_bernoulli import (
    DEFAULT_MAX_REJECTION_ATTEMPTS,
    Prior,
    calculate_posterior,
    sample_beta_distribution,
)
from controlrisk.core.random_source import RandomSource, resolve_rng, standard_normal
from controlrisk.utils.error_handling import DataValidationError
from controlrisk.utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_ITERATIONS = 10000
DEFAULT_VOLATILITY = 0.3
HISTOGRAM_BINS = 30
REPORTED_PERCENTILES = (5, 25, 50, 75, 95)


@dataclass(frozen=True)
class HistogramBin:
    start: float
    end: float
    count: int

    @property
    def midpoint(self) -> float:
        return (self.start + self.end) / 2

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start,
            "end": self.end,
            "count": self.count,
            "midpoint": self.midpoint,
        }


@dataclass
class SimulationResult:
    """Summary of a simulated loss distribution.

    Attributes:
        iterations: Number of draws
        mean: Mean simulated loss
        std_dev: Sample standard deviation of the draws
        percentiles: Loss at the 5th, 25th, 50th, 75th and 95th percentiles
        histogram: Equal-width bins spanning the simulated range

    """

    iterations: int
    mean: float
    std_dev: float
    percentiles: dict[int, float] = field(default_factory=dict)
    histogram: list[HistogramBin] = field(default_factory=list)

    @property
    def interval_90(self) -> tuple[float, float]:
        """5th to 95th percentile range."""
        return (self.percentiles[5], self.percentiles[95])

    @property
    def interquartile_range(self) -> float:
        return self.percentiles[75] - self.percentiles[25]

    def to_dict(self) -> dict[str, Any]:
        return {
            "iterations": self.iterations,
            "mean": self.mean,
            "std_dev": self.std_dev,
            "percentiles": {f"p{p}": value for p, value in self.percentiles.items()},
            "interval_90": list(self.interval_90),
            "interquartile_range": self.interquartile_range,
            "histogram": [b.to_dict() for b in self.histogram],
        }


def _percentile(sorted_values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile at index floor(n * p / 100)."""
    idx = min(int(math.floor(len(sorted_values) * p / 100)), len(sorted_values) - 1)
    return sorted_values[idx]


def _summarize(draws: list[float], bins: int = HISTOGRAM_BINS) -> SimulationResult:
    draws.sort()
    counts, edges = np.histogram(draws, bins=bins)
    histogram = [
        HistogramBin(start=float(edges[i]), end=float(edges[i + 1]), count=int(counts[i]))
        for i in range(len(counts))
    ]

    values = np.asarray(draws)
    return SimulationResult(
        iterations=len(draws),
        mean=float(values.mean()),
        std_dev=float(values.std(ddof=1)) if len(draws) > 1 else 0.0,
        percentiles={p: _percentile(draws, p) for p in REPORTED_PERCENTILES},
        histogram=histogram,
    )


def _check_iterations(iterations: int) -> None:
    if iterations < 1:
        raise DataValidationError(f"Simulation iterations must be >= 1, got {iterations}")


def run_loss_simulation(
    base_risk: float,
    volatility: float = DEFAULT_VOLATILITY,
    iterations: int = DEFAULT_ITERATIONS,
    rng: RandomSource | None = None,
) -> SimulationResult:
    """Simulate annual loss around a base estimate.

    Args:
        base_risk: Point estimate of annual loss (e.g. an ALE)
        volatility: Relative standard deviation of the perturbation
        iterations: Number of draws
        rng: Random source for the Box-Muller draws

    Returns:
        SimulationResult over non-negative simulated losses

    """
    _check_iterations(iterations)
    if volatility < 0:
        raise DataValidationError(f"Volatility must be non-negative, got {volatility}")

    rng = resolve_rng(rng)
    draws = [
        max(0.0, base_risk * (1.0 + volatility * standard_normal(rng)))
        for _ in range(iterations)
    ]

    result = _summarize(draws)
    logger.debug(
        f"Loss simulation: base={base_risk}, volatility={volatility}, "
        f"iterations={iterations}, p50={result.percentiles[50]:.2f}"
    )
    return result


def simulate_posterior_ale(
    prior: Prior,
    passes: int,
    failures: int,
    threat_event_frequency: float,
    loss_magnitude: float,
    iterations: int = DEFAULT_ITERATIONS,
    rng: RandomSource | None = None,
    max_attempts: int = DEFAULT_MAX_REJECTION_ATTEMPTS,
) -> SimulationResult:
    """Sample the annualized loss exposure distribution from the posterior.

    Each draw is P(breach) ~ Beta(alpha', beta') scaled by
    ``threat_event_frequency * loss_magnitude``.
    """
    _check_iterations(iterations)
    if threat_event_frequency < 0 or loss_magnitude < 0:
        raise DataValidationError(
            "Threat event frequency and loss magnitude must be non-negative"
        )

    posterior = calculate_posterior(prior, passes, failures)
    breach_probabilities = sample_beta_distribution(
        posterior.alpha,
        posterior.beta,
        n=iterations,
        rng=rng,
        max_attempts=max_attempts,
    )
    exposure_factor = threat_event_frequency * loss_magnitude
    result = _summarize([p * exposure_factor for p in breach_probabilities])

    logger.debug(
        f"Posterior ALE simulation: Beta({posterior.alpha:g}, {posterior.beta:g}), "
        f"mean ALE={result.mean:.2f}"
    )
    return result
