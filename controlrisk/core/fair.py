"""Bayesian FAIR Combination.

Combines the Beta-Bernoulli breach posterior with FAIR threat and loss
inputs into an Annualized Loss Exposure (ALE):

    ALE = E[P(breach)] x threat event frequency x loss magnitude

The ALE interval scales the posterior credible interval by the same
frequency x magnitude factor. This is a linear approximation: it carries
the uncertainty of the breach probability only, and does NOT propagate
uncertainty in the threat event frequency or the loss magnitude, which are
treated as known point values. Use ``controlrisk.simulation.monte_carlo``
for a sampled distribution.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from controlrisk.core.beta_bernoulli import (
    EvidenceStrength,
    Posterior,
    Prior,
    calculate_posterior,
    classify_evidence_strength,
)
from controlrisk.utils.error_handling import DataValidationError
from controlrisk.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class BayesianFAIRResult:
    """Annualized loss exposure estimate backed by a Bayesian posterior.

    Attributes:
        posterior_breach_probability: Posterior mean P(breach)
        annual_loss_exposure: ALE point estimate (currency units per year)
        confidence_interval: ALE interval from the scaled credible interval
        evidence_strength: Classification of evidence volume
        prior_influence: Fraction of the posterior still attributable to the prior
        posterior: Full posterior the estimate was derived from

    """

    posterior_breach_probability: float
    annual_loss_exposure: float
    confidence_interval: tuple[float, float]
    evidence_strength: EvidenceStrength
    prior_influence: float
    posterior: Posterior

    def to_dict(self) -> dict[str, Any]:
        return {
            "posterior_breach_probability": self.posterior_breach_probability,
            "annual_loss_exposure": self.annual_loss_exposure,
            "confidence_interval": list(self.confidence_interval),
            "evidence_strength": self.evidence_strength.value,
            "prior_influence": self.prior_influence,
            "posterior": self.posterior.to_dict(),
        }


def bayesian_fair(
    prior: Prior,
    passes: int,
    failures: int,
    threat_event_frequency: float,
    loss_magnitude: float,
) -> BayesianFAIRResult:
    """Estimate annualized loss exposure from control evidence.

    Args:
        prior: Prior breach belief (e.g. an industry benchmark)
        passes: Cumulative passed control tests
        failures: Cumulative failed control tests
        threat_event_frequency: Expected threat events per year
        loss_magnitude: Loss per breach, in currency units

    Returns:
        BayesianFAIRResult with ALE, interval and evidence diagnostics

    """
    if threat_event_frequency < 0:
        raise DataValidationError(
            f"Threat event frequency must be non-negative, got {threat_event_frequency}"
        )
    if loss_magnitude < 0:
        raise DataValidationError(
            f"Loss magnitude must be non-negative, got {loss_magnitude}"
        )

    posterior = calculate_posterior(prior, passes, failures)
    exposure_factor = threat_event_frequency * loss_magnitude

    annual_loss_exposure = posterior.mean * exposure_factor
    ale_lower = posterior.credible_interval[0] * exposure_factor
    ale_upper = posterior.credible_interval[1] * exposure_factor

    prior_influence = prior.weight / (prior.weight + posterior.total_evidence)

    logger.debug(
        f"FAIR: P(breach)={posterior.mean:.4f}, TEF={threat_event_frequency}, "
        f"LM={loss_magnitude}, ALE={annual_loss_exposure:.2f}"
    )

    return BayesianFAIRResult(
        posterior_breach_probability=posterior.mean,
        annual_loss_exposure=annual_loss_exposure,
        confidence_interval=(ale_lower, ale_upper),
        evidence_strength=classify_evidence_strength(posterior.total_evidence),
        prior_influence=prior_influence,
        posterior=posterior,
    )
