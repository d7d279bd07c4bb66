"""Typed control-test evidence.

Evidence collectors (AWS, Okta, Azure, manual attestations) report pass/fail
counts per control. These models give that payload a fixed shape so the
engines never handle free-form dictionaries.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from controlrisk.utils.error_handling import DataValidationError
from controlrisk.utils.logging_config import get_logger

logger = get_logger(__name__)


class EvidenceSource(str, Enum):
    """Origin of a batch of control-test outcomes."""

    AWS = "aws"
    OKTA = "okta"
    AZURE = "azure"
    MANUAL = "manual"


class EvidencePassFail(BaseModel):
    """Pass/fail counts for one control from one evidence source."""

    model_config = ConfigDict(frozen=True)

    control_id: str
    source: EvidenceSource = EvidenceSource.MANUAL
    passes: int = Field(default=0, ge=0)
    failures: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.passes + self.failures

    @property
    def pass_rate(self) -> float:
        """Pass rate as a percentage (0-100); 100 when nothing was tested."""
        if self.total == 0:
            return 100.0
        return 100.0 * self.passes / self.total


class EvidencePoint(BaseModel):
    """A batch of test outcomes observed at a point in time."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    passes: int = Field(default=0, ge=0)
    failures: int = Field(default=0, ge=0)


@dataclass
class ControlEvidenceSummary:
    """Evidence for one control summed across all sources."""

    control_id: str
    passes: int = 0
    failures: int = 0
    sources: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.passes + self.failures

    @property
    def pass_rate(self) -> float:
        if self.total == 0:
            return 100.0
        return 100.0 * self.passes / self.total


def aggregate_evidence(
    items: Iterable[EvidencePassFail],
) -> dict[str, ControlEvidenceSummary]:
    """Sum pass/fail counts per control across evidence sources.

    Args:
        items: Evidence batches, in any order

    Returns:
        Mapping of control id to its combined evidence, in first-seen order

    """
    summaries: dict[str, ControlEvidenceSummary] = {}
    for item in items:
        summary = summaries.setdefault(
            item.control_id, ControlEvidenceSummary(control_id=item.control_id)
        )
        summary.passes += item.passes
        summary.failures += item.failures
        if item.source.value not in summary.sources:
            summary.sources.append(item.source.value)

    logger.debug(f"Aggregated evidence for {len(summaries)} controls")
    return summaries


def failure_probability_from_pass_rate(pass_rate: float) -> float:
    """Convert a 0-100 pass rate into a failure probability in [0, 1]."""
    if not 0.0 <= pass_rate <= 100.0:
        raise DataValidationError(f"Pass rate must be within [0, 100], got {pass_rate}")
    return 1.0 - pass_rate / 100.0
