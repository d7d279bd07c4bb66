"""Risk Trend Analysis Module.

Two views on how a control environment changes over time:

Risk velocity, for a series of risk exposure snapshots sorted by time:
    velocity(i)     = (R(i) - R(i-1)) / dt          ($/day)
    acceleration(i) = (v(i) - v(i-1)) / mean(dt)    ($/day^2)
    momentum        = recency-weighted mean velocity / max(R) * 30, in [-1, 1]

The snapshots typically come from ``generate_posterior_time_series`` scaled
by a FAIR exposure factor (``snapshots_from_posterior_series``).

Compliance Entropy Index (CEI), the normalized Shannon entropy of control
states:
    CEI = -SUM(p_i * log2(p_i)) / log2(N),   N = 4 states

CEI = 0 means every control is in the same state; CEI = 1 means the controls
are spread evenly over pass, fail, warning and not tested.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from controlrisk.core.beta_bernoulli import PosteriorTimeSeriesPoint
from controlrisk.utils.error_handling import DataValidationError, DimensionMismatch
from controlrisk.utils.logging_config import get_logger

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400.0
DEFAULT_MOMENTUM_WINDOW = 7
DEFAULT_ENTROPY_WINDOW = 3
MOMENTUM_HORIZON_DAYS = 30
ENTROPY_STABLE_VELOCITY = 0.02

# =============================================================================
# RISK VELOCITY
# =============================================================================


class RiskSnapshot(BaseModel):
    """Risk exposure observed at a point in time."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    risk_exposure: float = Field(ge=0.0)


class RiskTrend(str, Enum):
    """Direction of risk momentum."""

    IMPROVING_FAST = "improving_fast"
    IMPROVING = "improving"
    STABLE = "stable"
    WORSENING = "worsening"
    WORSENING_FAST = "worsening_fast"


TREND_LABELS = {
    RiskTrend.IMPROVING_FAST: "Rapidly Improving",
    RiskTrend.IMPROVING: "Improving",
    RiskTrend.STABLE: "Stable",
    RiskTrend.WORSENING: "Worsening",
    RiskTrend.WORSENING_FAST: "Rapidly Worsening",
}


@dataclass(frozen=True)
class VelocityPoint:
    timestamp: datetime
    risk_exposure: float
    velocity: float
    acceleration: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "risk_exposure": self.risk_exposure,
            "velocity": self.velocity,
            "acceleration": self.acceleration,
        }


@dataclass
class MomentumResult:
    """Current risk velocity, momentum and short-range projection.

    Attributes:
        current_velocity: Latest dR/dt in exposure units per day
        current_acceleration: Latest d2R/dt2
        momentum_score: Recency-weighted velocity normalized to [-1, 1]
        trend: Five-bucket classification of ``momentum_score``
        velocity_history: Derivatives for every snapshot
        projected_risk_30_days: R + v*t + a*t^2/2 at t = 30, floored at 0
        projected_risk_90_days: Same at t = 90

    """

    current_velocity: float = 0.0
    current_acceleration: float = 0.0
    momentum_score: float = 0.0
    trend: RiskTrend = RiskTrend.STABLE
    velocity_history: list[VelocityPoint] = field(default_factory=list)
    projected_risk_30_days: float = 0.0
    projected_risk_90_days: float = 0.0

    @property
    def trend_label(self) -> str:
        if not self.velocity_history:
            return "No Data"
        return TREND_LABELS[self.trend]

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_velocity": self.current_velocity,
            "current_acceleration": self.current_acceleration,
            "momentum_score": self.momentum_score,
            "trend": self.trend.value,
            "trend_label": self.trend_label,
            "velocity_history": [p.to_dict() for p in self.velocity_history],
            "projected_risk_30_days": self.projected_risk_30_days,
            "projected_risk_90_days": self.projected_risk_90_days,
        }


def snapshots_from_posterior_series(
    series: Sequence[PosteriorTimeSeriesPoint],
    exposure_factor: float = 1.0,
) -> list[RiskSnapshot]:
    """Turn posterior means into risk exposure snapshots.

    Args:
        series: Output of ``generate_posterior_time_series``
        exposure_factor: Threat event frequency x loss magnitude; 1 keeps
            the breach probability itself

    """
    if exposure_factor < 0:
        raise DataValidationError(f"Exposure factor must be non-negative, got {exposure_factor}")
    return [
        RiskSnapshot(timestamp=point.timestamp, risk_exposure=point.mean * exposure_factor)
        for point in series
    ]


def calculate_risk_derivatives(snapshots: Sequence[RiskSnapshot]) -> list[VelocityPoint]:
    """First and second time derivatives of risk exposure.

    Snapshots are sorted by timestamp (stable for ties). Velocity is 0 for
    the first point and wherever two snapshots share a timestamp;
    acceleration is 0 for the first two points.
    """
    if not snapshots:
        return []

    df = pd.DataFrame(
        {
            "timestamp": [s.timestamp for s in snapshots],
            "risk": [s.risk_exposure for s in snapshots],
        }
    ).sort_values("timestamp", kind="stable", ignore_index=True)

    dt = df["timestamp"].diff().dt.total_seconds() / SECONDS_PER_DAY
    velocity = (df["risk"].diff() / dt).where(dt > 0, 0.0).fillna(0.0)

    avg_dt = (dt + dt.shift(1)) / 2
    acceleration = ((velocity - velocity.shift(1)) / avg_dt).where(avg_dt > 0, 0.0)
    acceleration = acceleration.fillna(0.0)

    return [
        VelocityPoint(
            timestamp=df["timestamp"].iloc[i].to_pydatetime(),
            risk_exposure=float(df["risk"].iloc[i]),
            velocity=float(velocity.iloc[i]),
            acceleration=float(acceleration.iloc[i]),
        )
        for i in range(len(df))
    ]


def classify_risk_trend(momentum_score: float) -> RiskTrend:
    """Bucket momentum: < -0.3, < -0.05, <= 0.05, <= 0.3, above."""
    if momentum_score < -0.3:
        return RiskTrend.IMPROVING_FAST
    if momentum_score < -0.05:
        return RiskTrend.IMPROVING
    if momentum_score <= 0.05:
        return RiskTrend.STABLE
    if momentum_score <= 0.3:
        return RiskTrend.WORSENING
    return RiskTrend.WORSENING_FAST


def _project(risk: float, velocity: float, acceleration: float, days: int) -> float:
    return max(0.0, risk + velocity * days + 0.5 * acceleration * days * days)


def calculate_risk_momentum(
    snapshots: Sequence[RiskSnapshot],
    window_size: int = DEFAULT_MOMENTUM_WINDOW,
) -> MomentumResult:
    """Risk momentum over the most recent ``window_size`` snapshots.

    Velocities in the window are weighted 1..k from oldest to newest. The
    weighted velocity is divided by the largest exposure seen (at least 1)
    and scaled to a month, then clamped to [-1, 1].
    """
    if window_size < 1:
        raise DataValidationError(f"Momentum window must be at least 1, got {window_size}")

    derivatives = calculate_risk_derivatives(snapshots)
    if not derivatives:
        return MomentumResult()

    recent = derivatives[-window_size:]
    current = recent[-1]

    weights = range(1, len(recent) + 1)
    weighted_velocity = sum(w * p.velocity for w, p in zip(weights, recent)) / sum(weights)

    max_risk = max([s.risk_exposure for s in snapshots] + [1.0])
    momentum_score = max(-1.0, min(1.0, weighted_velocity / max_risk * MOMENTUM_HORIZON_DAYS))
    trend = classify_risk_trend(momentum_score)

    logger.debug(
        f"Risk momentum over {len(recent)} snapshots: score={momentum_score:.3f}, "
        f"trend={trend.value}"
    )

    return MomentumResult(
        current_velocity=current.velocity,
        current_acceleration=current.acceleration,
        momentum_score=momentum_score,
        trend=trend,
        velocity_history=derivatives,
        projected_risk_30_days=_project(
            current.risk_exposure, current.velocity, current.acceleration, 30
        ),
        projected_risk_90_days=_project(
            current.risk_exposure, current.velocity, current.acceleration, 90
        ),
    )


# =============================================================================
# COMPLIANCE ENTROPY
# =============================================================================


class ControlState(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    WARNING = "warning"
    NOT_TESTED = "not_tested"


CONTROL_STATES = list(ControlState)
MAX_ENTROPY = math.log2(len(CONTROL_STATES))


class EntropyZone(str, Enum):
    ORDERED = "ordered"
    TRANSITIONAL = "transitional"
    CHAOTIC = "chaotic"


ZONE_LABELS = {
    EntropyZone.ORDERED: "Highly Ordered",
    EntropyZone.TRANSITIONAL: "Transitional",
    EntropyZone.CHAOTIC: "High Disorder",
}


@dataclass
class EntropyResult:
    """Compliance Entropy Index for a set of control states.

    Attributes:
        cei: Normalized entropy in [0, 1]
        raw_entropy: Shannon entropy in bits
        state_distribution: Share of controls in each state
        zone: ordered (< 0.3), transitional (< 0.7) or chaotic
        dominant_state: Most common state; earlier states win ties
        uniformity_score: 1 minus the normalized distance from a uniform spread
        total_controls: Number of controls assessed

    """

    cei: float = 0.0
    raw_entropy: float = 0.0
    state_distribution: dict[ControlState, float] = field(
        default_factory=lambda: {state: 0.0 for state in CONTROL_STATES}
    )
    zone: EntropyZone = EntropyZone.ORDERED
    dominant_state: ControlState = ControlState.NOT_TESTED
    uniformity_score: float = 0.0
    total_controls: int = 0

    @property
    def zone_label(self) -> str:
        if self.total_controls == 0:
            return "No Data"
        return ZONE_LABELS[self.zone]

    def to_dict(self) -> dict[str, Any]:
        return {
            "cei": self.cei,
            "raw_entropy": self.raw_entropy,
            "state_distribution": {
                state.value: share for state, share in self.state_distribution.items()
            },
            "zone": self.zone.value,
            "zone_label": self.zone_label,
            "dominant_state": self.dominant_state.value,
            "uniformity_score": self.uniformity_score,
            "total_controls": self.total_controls,
        }


def _classify_zone(cei: float) -> EntropyZone:
    if cei < 0.3:
        return EntropyZone.ORDERED
    if cei < 0.7:
        return EntropyZone.TRANSITIONAL
    return EntropyZone.CHAOTIC


def calculate_compliance_entropy(
    states: Iterable[ControlState | str],
) -> EntropyResult:
    """Compliance Entropy Index of the given control states.

    Raises:
        ValueError: If a state is not one of pass, fail, warning, not_tested

    """
    parsed = [ControlState(state) for state in states]
    if not parsed:
        return EntropyResult()

    counts = pd.Series(parsed, dtype="object").value_counts()
    total = len(parsed)
    proportions = {state: int(counts.get(state, 0)) / total for state in CONTROL_STATES}

    raw_entropy = sum(-p * math.log2(p) for p in proportions.values() if p > 0)
    cei = raw_entropy / MAX_ENTROPY

    uniform = 1.0 / len(CONTROL_STATES)
    max_deviation = math.sqrt(len(CONTROL_STATES) * (1.0 - uniform) ** 2)
    deviation = math.sqrt(sum((p - uniform) ** 2 for p in proportions.values()))

    # max() keeps the first state on ties
    dominant = max(CONTROL_STATES, key=lambda state: proportions[state])

    return EntropyResult(
        cei=cei,
        raw_entropy=raw_entropy,
        state_distribution=proportions,
        zone=_classify_zone(cei),
        dominant_state=dominant,
        uniformity_score=1.0 - deviation / max_deviation,
        total_controls=total,
    )


def calculate_conditional_entropy(
    states: Sequence[ControlState | str],
    group_labels: Sequence[str],
) -> dict[str, EntropyResult]:
    """Compliance Entropy Index per group (framework, category, owner).

    Raises:
        DimensionMismatch: If ``states`` and ``group_labels`` differ in length

    """
    if len(states) != len(group_labels):
        raise DimensionMismatch(len(states), len(group_labels), what="states and labels")

    groups: dict[str, list[ControlState | str]] = {}
    for state, label in zip(states, group_labels):
        groups.setdefault(label or "unknown", []).append(state)

    return {label: calculate_compliance_entropy(members) for label, members in groups.items()}


class EntropyTrend(str, Enum):
    STABILIZING = "stabilizing"
    DESTABILIZING = "destabilizing"
    STABLE = "stable"


@dataclass(frozen=True)
class EntropyVelocity:
    current_cei: float
    previous_cei: float
    velocity: float
    acceleration: float
    trend: EntropyTrend

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_cei": self.current_cei,
            "previous_cei": self.previous_cei,
            "velocity": self.velocity,
            "acceleration": self.acceleration,
            "trend": self.trend.value,
        }


def calculate_entropy_velocity(
    history: Sequence[float],
    window_size: int = DEFAULT_ENTROPY_WINDOW,
) -> EntropyVelocity:
    """Per-step change in CEI over an ordered history of index values.

    Changes smaller than 0.02 per step count as stable.
    """
    if len(history) < 2:
        current = history[0] if history else 0.0
        return EntropyVelocity(current, 0.0, 0.0, 0.0, EntropyTrend.STABLE)

    recent = list(history[-max(window_size, 2):])
    velocity = recent[-1] - recent[-2]
    acceleration = 0.0
    if len(recent) >= 3:
        acceleration = velocity - (recent[-2] - recent[-3])

    if abs(velocity) < ENTROPY_STABLE_VELOCITY:
        trend = EntropyTrend.STABLE
    elif velocity > 0:
        trend = EntropyTrend.DESTABILIZING
    else:
        trend = EntropyTrend.STABILIZING

    return EntropyVelocity(recent[-1], recent[-2], velocity, acceleration, trend)
