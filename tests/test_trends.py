"""Tests for risk velocity and compliance entropy."""

import math
import unittest
from datetime import datetime, timedelta

import pytest

from controlrisk.analysis.trends import (
    ControlState,
    EntropyTrend,
    EntropyZone,
    RiskSnapshot,
    RiskTrend,
    calculate_compliance_entropy,
    calculate_conditional_entropy,
    calculate_entropy_velocity,
    calculate_risk_derivatives,
    calculate_risk_momentum,
    classify_risk_trend,
    snapshots_from_posterior_series,
)
from controlrisk.core.beta_bernoulli import Prior, generate_posterior_time_series
from controlrisk.core.evidence import EvidencePoint
from controlrisk.utils.error_handling import DataValidationError, DimensionMismatch

START = datetime(2024, 1, 1)


def snapshot(day, risk):
    return RiskSnapshot(timestamp=START + timedelta(days=day), risk_exposure=risk)


class TestRiskDerivatives(unittest.TestCase):
    """Test cases for velocity and acceleration."""

    def test_linear_growth_has_constant_velocity(self):
        """Test +100 per day gives velocity 100 and zero acceleration."""
        points = calculate_risk_derivatives([snapshot(d, 1000 + 100 * d) for d in range(4)])

        self.assertEqual([p.velocity for p in points], [0.0, 100.0, 100.0, 100.0])
        self.assertEqual([p.acceleration for p in points], [0.0, 0.0, 0.0, 0.0])

    def test_uneven_spacing_and_acceleration(self):
        """Test derivatives use elapsed days and the mean step for acceleration."""
        points = calculate_risk_derivatives(
            [snapshot(0, 0), snapshot(2, 100), snapshot(3, 250)]
        )

        self.assertAlmostEqual(points[1].velocity, 50.0)
        self.assertAlmostEqual(points[2].velocity, 150.0)
        # (150 - 50) / ((1 + 2) / 2)
        self.assertAlmostEqual(points[2].acceleration, 100.0 / 1.5)

    def test_unsorted_input_is_ordered(self):
        """Test snapshots are processed chronologically."""
        points = calculate_risk_derivatives([snapshot(1, 20), snapshot(0, 10)])

        self.assertEqual([p.risk_exposure for p in points], [10.0, 20.0])
        self.assertAlmostEqual(points[1].velocity, 10.0)

    def test_duplicate_timestamps_have_zero_velocity(self):
        """Test a zero time step does not divide by zero."""
        points = calculate_risk_derivatives([snapshot(0, 10), snapshot(0, 30)])
        self.assertEqual(points[1].velocity, 0.0)

    def test_empty_and_single(self):
        """Test degenerate series."""
        self.assertEqual(calculate_risk_derivatives([]), [])
        (only,) = calculate_risk_derivatives([snapshot(0, 5)])
        self.assertEqual((only.velocity, only.acceleration), (0.0, 0.0))


class TestRiskMomentum:
    """Test cases for momentum and projections."""

    def test_worsening_series(self):
        """Test steadily rising exposure is classified as worsening fast."""
        result = calculate_risk_momentum([snapshot(d, 1000 + 100 * d) for d in range(5)])

        # weighted velocity 100 * (2 + 3 + 4 + 5) / 15, / 1400 * 30 clamps to 1
        assert result.momentum_score == 1.0
        assert result.trend == RiskTrend.WORSENING_FAST
        assert result.trend_label == "Rapidly Worsening"
        assert result.projected_risk_30_days == pytest.approx(1400 + 100 * 30)
        assert result.projected_risk_90_days == pytest.approx(1400 + 100 * 90)

    def test_improving_projection_floored_at_zero(self):
        """Test falling exposure improves and never projects below zero."""
        result = calculate_risk_momentum([snapshot(d, 1000 - 200 * d) for d in range(4)])

        assert result.trend == RiskTrend.IMPROVING_FAST
        assert result.current_velocity == pytest.approx(-200)
        assert result.projected_risk_30_days == 0.0

    def test_flat_series_is_stable(self):
        """Test constant exposure is stable."""
        result = calculate_risk_momentum([snapshot(d, 500) for d in range(3)])
        assert result.momentum_score == 0.0
        assert result.trend == RiskTrend.STABLE

    def test_window_limits_history_used(self):
        """Test only the last window_size velocities drive momentum."""
        series = [snapshot(0, 1000), snapshot(1, 0)] + [snapshot(d, 0) for d in range(2, 6)]
        result = calculate_risk_momentum(series, window_size=2)

        assert result.momentum_score == 0.0
        assert len(result.velocity_history) == 6

    def test_no_data(self):
        """Test an empty series gives a stable no-data result."""
        result = calculate_risk_momentum([])

        assert result.trend == RiskTrend.STABLE
        assert result.trend_label == "No Data"
        assert result.to_dict()["velocity_history"] == []

    def test_invalid_window(self):
        """Test a window below 1 is rejected."""
        with pytest.raises(DataValidationError):
            calculate_risk_momentum([snapshot(0, 1)], window_size=0)

    @pytest.mark.parametrize(
        "score,trend",
        [
            (-0.5, RiskTrend.IMPROVING_FAST),
            (-0.1, RiskTrend.IMPROVING),
            (0.05, RiskTrend.STABLE),
            (0.3, RiskTrend.WORSENING),
            (0.31, RiskTrend.WORSENING_FAST),
        ],
    )
    def test_trend_buckets(self, score, trend):
        """Test momentum bucket boundaries."""
        assert classify_risk_trend(score) == trend

    def test_momentum_from_posterior_series(self):
        """Test failing evidence over time shows rising ALE."""
        evidence = [
            EvidencePoint(timestamp=START + timedelta(days=7 * week), passes=2, failures=8)
            for week in range(4)
        ]
        series = generate_posterior_time_series(Prior(3, 47), evidence)
        snapshots = snapshots_from_posterior_series(series, exposure_factor=1_000_000)

        assert snapshots[0].risk_exposure == pytest.approx(series[0].mean * 1_000_000)
        result = calculate_risk_momentum(snapshots)
        assert result.current_velocity > 0
        assert result.trend in (RiskTrend.WORSENING, RiskTrend.WORSENING_FAST)

    def test_negative_exposure_factor_rejected(self):
        """Test the exposure factor must be non-negative."""
        with pytest.raises(DataValidationError):
            snapshots_from_posterior_series([], exposure_factor=-1)


class TestComplianceEntropy(unittest.TestCase):
    """Test cases for the Compliance Entropy Index."""

    def test_single_state_is_ordered(self):
        """Test all controls passing gives zero entropy."""
        result = calculate_compliance_entropy(["pass"] * 10)

        self.assertEqual(result.cei, 0.0)
        self.assertEqual(result.zone, EntropyZone.ORDERED)
        self.assertEqual(result.dominant_state, ControlState.PASS)
        # distance from uniform is sqrt(0.75) out of a possible 1.5
        self.assertAlmostEqual(result.uniformity_score, 1 - math.sqrt(0.75) / 1.5)

    def test_uniform_states_are_chaotic(self):
        """Test an even spread over four states gives CEI == 1."""
        result = calculate_compliance_entropy(["pass", "fail", "warning", "not_tested"] * 3)

        self.assertAlmostEqual(result.cei, 1.0)
        self.assertAlmostEqual(result.raw_entropy, 2.0)
        self.assertEqual(result.zone, EntropyZone.CHAOTIC)
        self.assertAlmostEqual(result.uniformity_score, 1.0)

    def test_two_states(self):
        """Test an even pass/fail split is transitional with the first state dominant."""
        result = calculate_compliance_entropy([ControlState.FAIL, ControlState.PASS])

        self.assertAlmostEqual(result.cei, 0.5)
        self.assertEqual(result.zone, EntropyZone.TRANSITIONAL)
        self.assertEqual(result.dominant_state, ControlState.PASS)
        self.assertEqual(result.state_distribution[ControlState.FAIL], 0.5)
        self.assertEqual(result.to_dict()["state_distribution"]["warning"], 0.0)

    def test_empty(self):
        """Test no controls gives an ordered no-data result."""
        result = calculate_compliance_entropy([])

        self.assertEqual(result.cei, 0.0)
        self.assertEqual(result.zone_label, "No Data")
        self.assertEqual(result.dominant_state, ControlState.NOT_TESTED)

    def test_unknown_state_rejected(self):
        """Test states outside the four known values raise ValueError."""
        with self.assertRaises(ValueError):
            calculate_compliance_entropy(["pass", "skipped"])

    def test_conditional_entropy_by_group(self):
        """Test entropy is computed separately for each group."""
        results = calculate_conditional_entropy(
            ["pass", "pass", "pass", "fail"],
            ["SOC2", "SOC2", "ISO", "ISO"],
        )

        self.assertEqual(set(results), {"SOC2", "ISO"})
        self.assertEqual(results["SOC2"].cei, 0.0)
        self.assertAlmostEqual(results["ISO"].cei, 0.5)

    def test_conditional_entropy_length_mismatch(self):
        """Test labels must pair with states."""
        with self.assertRaises(DimensionMismatch):
            calculate_conditional_entropy(["pass"], ["SOC2", "ISO"])


class TestEntropyVelocity(unittest.TestCase):
    """Test cases for change in entropy over time."""

    def test_destabilizing(self):
        """Test rising entropy with acceleration."""
        result = calculate_entropy_velocity([0.1, 0.2, 0.5])

        self.assertAlmostEqual(result.velocity, 0.3)
        self.assertAlmostEqual(result.acceleration, 0.2)
        self.assertEqual(result.trend, EntropyTrend.DESTABILIZING)

    def test_stabilizing_and_stable(self):
        """Test falling and near-flat histories."""
        self.assertEqual(
            calculate_entropy_velocity([0.6, 0.4]).trend, EntropyTrend.STABILIZING
        )
        self.assertEqual(
            calculate_entropy_velocity([0.4, 0.41]).trend, EntropyTrend.STABLE
        )

    def test_short_history(self):
        """Test fewer than two values gives zero velocity."""
        result = calculate_entropy_velocity([0.7])

        self.assertEqual(result.current_cei, 0.7)
        self.assertEqual(result.velocity, 0.0)
        self.assertEqual(calculate_entropy_velocity([]).current_cei, 0.0)
        self.assertTrue(math.isfinite(result.acceleration))
