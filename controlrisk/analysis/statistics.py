"""Statistical toolkit for validating control-risk hypotheses.

Correlation with significance testing, linear and logistic regression,
bootstrap confidence intervals and Kaplan-Meier survival estimates, used to
check relationships in collected evidence (e.g. control maturity against
observed breach rate).

"Insufficient data" and "no variance" are reported through flagged results
instead of exceptions so reports can render "not enough data yet". Paired
inputs of unequal length are a caller bug and raise ``DimensionMismatch``.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np

from controlrisk.core.random_source import RandomSource, resolve_rng
from controlrisk.core.special_functions import student_t_cdf
from controlrisk.utils.error_handling import DataValidationError, DimensionMismatch
from controlrisk.utils.logging_config import get_logger

logger = get_logger(__name__)

FISHER_Z_CRITICAL = 1.96
GREENWOOD_Z_CRITICAL = 1.96
SIGMOID_CLIP = 500.0

# =============================================================================
# DESCRIPTIVE STATISTICS
# =============================================================================


def mean(data: Sequence[float]) -> float:
    """Arithmetic mean; 0 for an empty sample."""
    if len(data) == 0:
        return 0.0
    return sum(data) / len(data)


def standard_deviation(data: Sequence[float]) -> float:
    """Sample standard deviation (n - 1 denominator); 0 when n < 2."""
    if len(data) < 2:
        return 0.0
    avg = mean(data)
    squared_diffs = sum((value - avg) ** 2 for value in data)
    return math.sqrt(squared_diffs / (len(data) - 1))


def variance(data: Sequence[float]) -> float:
    """Sample variance (n - 1 denominator); 0 when n < 2."""
    return standard_deviation(data) ** 2


def _check_paired(x: Sequence[Any], y: Sequence[Any], what: str = "arrays") -> None:
    if len(x) != len(y):
        raise DimensionMismatch(len(x), len(y), what=what)


def covariance(x: Sequence[float], y: Sequence[float]) -> float:
    """Sample covariance; 0 when n < 2.

    Raises:
        DimensionMismatch: If ``x`` and ``y`` differ in length

    """
    _check_paired(x, y)
    if len(x) < 2:
        return 0.0
    x_mean = mean(x)
    y_mean = mean(y)
    total = sum((xi - x_mean) * (yi - y_mean) for xi, yi in zip(x, y))
    return total / (len(x) - 1)


# =============================================================================
# CORRELATION
# =============================================================================


class AnalysisStatus(str, Enum):
    """Whether a correlation or regression could be computed from the data."""

    OK = "ok"
    INSUFFICIENT_DATA = "insufficient_data"
    NO_VARIANCE = "no_variance"


@dataclass(frozen=True)
class CorrelationResult:
    """Pearson correlation with significance and a Fisher-z interval."""

    pearson_r: float
    p_value: float
    sample_size: int
    confidence_interval: tuple[float, float]
    interpretation: str
    t_statistic: float | None = 0.0
    status: AnalysisStatus = AnalysisStatus.OK

    @property
    def is_available(self) -> bool:
        return self.status == AnalysisStatus.OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "pearson_r": self.pearson_r,
            "p_value": self.p_value,
            "sample_size": self.sample_size,
            "confidence_interval": list(self.confidence_interval),
            "interpretation": self.interpretation,
            "t_statistic": self.t_statistic,
            "status": self.status.value,
        }


def interpret_correlation(r: float) -> str:
    """Label the strength of a correlation coefficient."""
    abs_r = abs(r)
    if abs_r >= 0.8:
        label = "Very strong correlation"
    elif abs_r >= 0.6:
        label = "Strong correlation"
    elif abs_r >= 0.4:
        label = "Moderate correlation"
    elif abs_r >= 0.2:
        label = "Weak correlation"
    else:
        label = "Negligible correlation"

    if r < 0:
        return "Negative " + label.lower()
    return label


def _fisher_interval(r: float, n: int) -> tuple[float, float]:
    if abs(r) >= 1.0:
        return (r, r)
    if n <= 3:
        # Standard error 1/sqrt(n - 3) is undefined
        return (-1.0, 1.0)

    z = 0.5 * math.log((1.0 + r) / (1.0 - r))
    se = 1.0 / math.sqrt(n - 3)
    return (
        math.tanh(z - FISHER_Z_CRITICAL * se),
        math.tanh(z + FISHER_Z_CRITICAL * se),
    )


def calculate_correlation(x: Sequence[float], y: Sequence[float]) -> CorrelationResult:
    """Pearson correlation with a two-sided t-test and 95% Fisher-z interval.

    Fewer than three observations give an ``insufficient_data`` result and a
    constant series gives a ``no_variance`` result, both with r = 0, p = 1.

    Raises:
        DimensionMismatch: If ``x`` and ``y`` differ in length

    """
    _check_paired(x, y)
    n = len(x)

    if n < 3:
        return CorrelationResult(
            pearson_r=0.0,
            p_value=1.0,
            sample_size=n,
            confidence_interval=(0.0, 0.0),
            interpretation="Insufficient data",
            status=AnalysisStatus.INSUFFICIENT_DATA,
        )

    std_x = standard_deviation(x)
    std_y = standard_deviation(y)
    if std_x == 0 or std_y == 0:
        return CorrelationResult(
            pearson_r=0.0,
            p_value=1.0,
            sample_size=n,
            confidence_interval=(0.0, 0.0),
            interpretation="No variance in data",
            status=AnalysisStatus.NO_VARIANCE,
        )

    r = covariance(x, y) / (std_x * std_y)
    if abs(r) > 1.0:
        logger.warning(f"Pearson r {r!r} outside [-1, 1] from rounding, clamping")
        r = max(-1.0, min(1.0, r))

    df = n - 2
    if abs(r) == 1.0:
        # t = r * sqrt(df / (1 - r^2)) diverges; p is exactly 0
        t_statistic = None
        p_value = 0.0
    else:
        t_statistic = r * math.sqrt(df / (1.0 - r * r))
        p_value = 2.0 * (1.0 - student_t_cdf(abs(t_statistic), df))
        p_value = max(0.0, min(1.0, p_value))

    result = CorrelationResult(
        pearson_r=r,
        p_value=p_value,
        sample_size=n,
        confidence_interval=_fisher_interval(r, n),
        interpretation=interpret_correlation(r),
        t_statistic=t_statistic,
    )
    logger.debug(f"Correlation n={n}: r={r:.4f}, p={p_value:.4g}")
    return result


# =============================================================================
# REGRESSION
# =============================================================================


@dataclass(frozen=True)
class DataPoint:
    x: float
    y: float


@dataclass
class RegressionResult:
    """Ordinary least squares fit of y on x."""

    slope: float = 0.0
    intercept: float = 0.0
    r_squared: float = 0.0
    standard_error: float = 0.0
    predictions: list[float] = field(default_factory=list)
    status: AnalysisStatus = AnalysisStatus.OK

    @property
    def is_available(self) -> bool:
        return self.status == AnalysisStatus.OK

    def predict(self, x: float) -> float:
        return self.slope * x + self.intercept

    def to_dict(self) -> dict[str, Any]:
        return {
            "slope": self.slope,
            "intercept": self.intercept,
            "r_squared": self.r_squared,
            "standard_error": self.standard_error,
            "predictions": list(self.predictions),
            "status": self.status.value,
        }


def linear_regression(
    points: Iterable[DataPoint | tuple[float, float]],
) -> RegressionResult:
    """Closed-form OLS regression.

    Args:
        points: Observations as ``DataPoint`` or ``(x, y)`` pairs

    Returns:
        RegressionResult. Fewer than two points give an all-zero
        ``insufficient_data`` result. A constant x gives a flat line through
        the mean of y flagged ``no_variance``. The standard error is
        sqrt(SSres / (n - 2)), reported as 0 for n <= 2.

    """
    pairs = [(p.x, p.y) if isinstance(p, DataPoint) else (p[0], p[1]) for p in points]
    n = len(pairs)
    if n < 2:
        return RegressionResult(status=AnalysisStatus.INSUFFICIENT_DATA)

    xs = [p[0] for p in pairs]
    ys = [p[1] for p in pairs]
    x_mean = mean(xs)
    y_mean = mean(ys)

    numerator = sum((xi - x_mean) * (yi - y_mean) for xi, yi in pairs)
    denominator = sum((xi - x_mean) ** 2 for xi in xs)

    constant_x = min(xs) == max(xs)
    slope = 0.0 if constant_x or denominator == 0 else numerator / denominator
    intercept = y_mean - slope * x_mean

    predictions = [slope * xi + intercept for xi in xs]
    ss_res = sum((yi - pred) ** 2 for yi, pred in zip(ys, predictions))
    ss_tot = sum((yi - y_mean) ** 2 for yi in ys)

    r_squared = 1.0 - ss_res / ss_tot if ss_tot != 0 else 0.0
    standard_error = math.sqrt(ss_res / (n - 2)) if n > 2 else 0.0

    return RegressionResult(
        slope=slope,
        intercept=intercept,
        r_squared=r_squared,
        standard_error=standard_error,
        predictions=predictions,
        status=AnalysisStatus.NO_VARIANCE if constant_x else AnalysisStatus.OK,
    )


@dataclass
class LogisticRegressionResult:
    """Logistic model fitted by batch gradient descent."""

    coefficients: list[float] = field(default_factory=list)
    intercept: float = 0.0
    predictions: list[float] = field(default_factory=list)
    accuracy: float = 0.0
    auc: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "coefficients": list(self.coefficients),
            "intercept": self.intercept,
            "predictions": list(self.predictions),
            "accuracy": self.accuracy,
            "auc": self.auc,
        }


def _sigmoid(z: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-np.clip(z, -SIGMOID_CLIP, SIGMOID_CLIP)))


def area_under_curve(scores: Sequence[float], labels: Sequence[int | bool]) -> float:
    """ROC AUC as the Mann-Whitney statistic.

    The probability that a random positive outranks a random negative, with
    ties counting one half. 0.5 when only one class is present.
    """
    scores_arr = np.asarray(scores, dtype=float)
    labels_arr = np.asarray(labels, dtype=bool)

    positives = scores_arr[labels_arr]
    negatives = scores_arr[~labels_arr]
    if positives.size == 0 or negatives.size == 0:
        return 0.5

    greater = (positives[:, None] > negatives[None, :]).sum()
    ties = (positives[:, None] == negatives[None, :]).sum()
    return float((greater + 0.5 * ties) / (positives.size * negatives.size))


def logistic_regression(
    features: Sequence[Sequence[float]],
    outcomes: Sequence[bool],
    learning_rate: float = 0.1,
    iterations: int = 1000,
) -> LogisticRegressionResult:
    """Fit a logistic model with batch gradient descent on the log-loss.

    Args:
        features: One row of feature values per observation
        outcomes: Observed binary outcome per row
        learning_rate: Gradient descent step size
        iterations: Number of full-batch gradient steps

    Returns:
        LogisticRegressionResult with accuracy at a 0.5 threshold and AUC;
        all zeros for empty input

    Raises:
        DimensionMismatch: If features and outcomes differ in length
        DataValidationError: If feature rows have different widths

    """
    _check_paired(features, outcomes, what="features and outcomes")
    if len(features) == 0:
        return LogisticRegressionResult()

    width = len(features[0])
    if any(len(row) != width for row in features):
        raise DataValidationError("All feature rows must have the same number of values")

    X = np.asarray(features, dtype=float).reshape(len(features), width)
    y = np.asarray(outcomes, dtype=float)
    n = X.shape[0]

    coefficients = np.zeros(width)
    intercept = 0.0
    step = learning_rate / n

    for _ in range(iterations):
        error = _sigmoid(intercept + X @ coefficients) - y
        intercept -= step * error.sum()
        coefficients -= step * (X.T @ error)

    predictions = _sigmoid(intercept + X @ coefficients)
    accuracy = float(np.mean((predictions >= 0.5) == y.astype(bool)))
    auc = area_under_curve(predictions, y.astype(bool))

    logger.debug(
        f"Logistic regression on {n} rows x {width} features: "
        f"accuracy={accuracy:.3f}, auc={auc:.3f}"
    )

    return LogisticRegressionResult(
        coefficients=coefficients.tolist(),
        intercept=float(intercept),
        predictions=predictions.tolist(),
        accuracy=accuracy,
        auc=auc,
    )


# =============================================================================
# BOOTSTRAP
# =============================================================================


@dataclass
class BootstrapResult:
    estimate: float = 0.0
    standard_error: float = 0.0
    confidence_interval: tuple[float, float] = (0.0, 0.0)
    iterations: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "estimate": self.estimate,
            "standard_error": self.standard_error,
            "confidence_interval": list(self.confidence_interval),
            "iterations": self.iterations,
        }


def bootstrap_ci(
    data: Sequence[float],
    statistic: Callable[[list[float]], float],
    iterations: int = 1000,
    confidence_level: float = 0.95,
    rng: RandomSource | None = None,
) -> BootstrapResult:
    """Percentile bootstrap confidence interval for an arbitrary statistic.

    Args:
        data: Observed sample
        statistic: Function reducing a sample to a single value (e.g. ``mean``)
        iterations: Number of resamples
        confidence_level: Interval coverage, e.g. 0.95
        rng: Random source for resampling; seed it for reproducible intervals

    Returns:
        BootstrapResult whose estimate is ``statistic(data)``; all zeros for
        an empty sample

    """
    if iterations < 1:
        raise DataValidationError(f"Bootstrap iterations must be >= 1, got {iterations}")
    if not 0.0 < confidence_level < 1.0:
        raise DataValidationError(
            f"Confidence level must be within (0, 1), got {confidence_level}"
        )

    n = len(data)
    if n == 0:
        return BootstrapResult(iterations=iterations)

    rng = resolve_rng(rng)
    sample = list(data)
    estimates: list[float] = []
    for _ in range(iterations):
        resample = [sample[min(int(rng.random() * n), n - 1)] for _ in range(n)]
        estimates.append(statistic(resample))
    estimates.sort()

    alpha = 1.0 - confidence_level
    lower_idx = min(max(int(math.floor(alpha / 2 * iterations)), 0), iterations - 1)
    upper_idx = min(max(int(math.floor((1 - alpha / 2) * iterations)), 0), iterations - 1)

    return BootstrapResult(
        estimate=statistic(sample),
        standard_error=standard_deviation(estimates),
        confidence_interval=(estimates[lower_idx], estimates[upper_idx]),
        iterations=iterations,
    )


# =============================================================================
# SURVIVAL ANALYSIS
# =============================================================================


@dataclass
class SurvivalResult:
    """Kaplan-Meier product-limit estimate.

    All per-time lists are aligned with ``times`` (unique observed times,
    ascending). ``at_risk`` is the population entering each time.
    """

    times: list[float] = field(default_factory=list)
    survival_probabilities: list[float] = field(default_factory=list)
    median_survival: float | None = None
    confidence_intervals: list[tuple[float, float]] = field(default_factory=list)
    at_risk: list[int] = field(default_factory=list)
    events: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "times": list(self.times),
            "survival_probabilities": list(self.survival_probabilities),
            "median_survival": self.median_survival,
            "confidence_intervals": [list(ci) for ci in self.confidence_intervals],
            "at_risk": list(self.at_risk),
            "events": list(self.events),
        }


def kaplan_meier(
    time_to_event: Sequence[float],
    event_occurred: Sequence[bool],
) -> SurvivalResult:
    """Kaplan-Meier survival curve with a Greenwood confidence band.

    Args:
        time_to_event: Time until the event or censoring, per subject
        event_occurred: True when the event was observed, False when censored

    Returns:
        SurvivalResult; empty when there are no subjects

    Raises:
        DimensionMismatch: If the two inputs differ in length

    """
    _check_paired(time_to_event, event_occurred, what="times and event flags")
    if len(time_to_event) == 0:
        return SurvivalResult()

    times = np.asarray(time_to_event, dtype=float)
    observed = np.asarray(event_occurred, dtype=bool)
    unique_times = np.unique(times)

    result = SurvivalResult()
    at_risk = len(times)
    survival = 1.0
    greenwood_sum = 0.0

    for t in unique_times:
        at_time = times == t
        events = int(np.count_nonzero(at_time & observed))
        censored = int(np.count_nonzero(at_time & ~observed))

        if at_risk > 0 and events > 0:
            survival *= (at_risk - events) / at_risk
            if at_risk > events:
                greenwood_sum += events / (at_risk * (at_risk - events))

        se = survival * math.sqrt(greenwood_sum)
        result.times.append(float(t))
        result.survival_probabilities.append(survival)
        result.confidence_intervals.append(
            (
                max(0.0, survival - GREENWOOD_Z_CRITICAL * se),
                min(1.0, survival + GREENWOOD_Z_CRITICAL * se),
            )
        )
        result.at_risk.append(at_risk)
        result.events.append(events)

        at_risk -= events + censored

    for t, survival_probability in zip(result.times, result.survival_probabilities):
        if survival_probability <= 0.5:
            result.median_survival = t
            break

    return result


# =============================================================================
# HYPOTHESIS TEST REPORTING
# =============================================================================


@dataclass(frozen=True)
class HypothesisTestResult:
    test_name: str
    test_statistic: float
    p_value: float
    confidence_interval: tuple[float, float]
    effect_size: float
    sample_size: int
    is_significant: bool
    interpretation: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "test_name": self.test_name,
            "test_statistic": self.test_statistic,
            "p_value": self.p_value,
            "confidence_interval": list(self.confidence_interval),
            "effect_size": self.effect_size,
            "sample_size": self.sample_size,
            "is_significant": self.is_significant,
            "interpretation": self.interpretation,
        }


def format_hypothesis_test(
    test_name: str,
    correlation: CorrelationResult,
    significance_level: float = 0.05,
) -> HypothesisTestResult:
    """Summarize a correlation as a report-ready hypothesis test.

    The effect size is Pearson r itself.
    """
    is_significant = correlation.is_available and correlation.p_value < significance_level
    if is_significant:
        interpretation = (
            f"Statistically significant {correlation.interpretation.lower()} "
            f"(p < {significance_level})"
        )
    else:
        interpretation = f"Not statistically significant at alpha = {significance_level}"

    return HypothesisTestResult(
        test_name=test_name,
        test_statistic=correlation.pearson_r,
        p_value=correlation.p_value,
        confidence_interval=correlation.confidence_interval,
        effect_size=correlation.pearson_r,
        sample_size=correlation.sample_size,
        is_significant=is_significant,
        interpretation=interpretation,
    )
