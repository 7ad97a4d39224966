"""Recovery decision for a failed attempt."""

from enum import Enum

from shipyard.models.errors import (
    DeploymentErrorType,
    ErrorAnalysis,
    FixConfidence,
    FixType,
)

# Error types that may be retried without any file edits
TRANSIENT_ERRORS = frozenset(
    {
        DeploymentErrorType.NETWORK_ERROR,
        DeploymentErrorType.TIMEOUT,
        DeploymentErrorType.IMAGE_PULL_FAILED,
    }
)


class RecoveryAction(str, Enum):
    """What to do after an attempt failed."""

    APPLY_FIX = "apply_fix"
    DELEGATE = "delegate"
    GIVE_UP = "give_up"


def plan_recovery(
    analysis: ErrorAnalysis,
    attempt_number: int,
    max_attempts: int,
    threshold: FixConfidence = FixConfidence.HIGH,
) -> RecoveryAction:
    """Decide how to recover from a failed attempt.

    Gives up once the attempt budget is spent. Otherwise the top suggestion
    is applied directly when it is actionable (anything but a manual step)
    and at least as confident as ``threshold``; every other failure is
    delegated to the recovery agent with the full analysis.
    """
    if attempt_number >= max_attempts:
        return RecoveryAction.GIVE_UP

    top = analysis.top_suggestion
    if top is not None and top.type != FixType.MANUAL and top.confidence.rank >= threshold.rank:
        return RecoveryAction.APPLY_FIX

    return RecoveryAction.DELEGATE


def is_transient(analysis: ErrorAnalysis) -> bool:
    return analysis.error.type in TRANSIENT_ERRORS
