"""Tests for the recovery planner."""

from uuid import uuid4

import pytest

from shipyard.core.retry import RecoveryAction, is_transient, plan_recovery
from shipyard.core.suggestions import analysis_for
from shipyard.models.errors import (
    DeploymentError,
    DeploymentErrorType,
    ErrorAnalysis,
    ErrorStage,
    FixConfidence,
    FixSuggestion,
    FixType,
)


def make_analysis(error_type: DeploymentErrorType) -> ErrorAnalysis:
    error = DeploymentError(
        deployment_id=uuid4(),
        type=error_type,
        stage=ErrorStage.BUILD,
        message="failed",
    )
    return analysis_for(error)


class TestPlanRecovery:
    def test_gives_up_when_budget_spent(self):
        analysis = make_analysis(DeploymentErrorType.PORT_CONFLICT)

        assert plan_recovery(analysis, 3, 3) == RecoveryAction.GIVE_UP
        assert plan_recovery(analysis, 4, 3) == RecoveryAction.GIVE_UP

    def test_single_attempt_budget_never_retries(self):
        analysis = make_analysis(DeploymentErrorType.NETWORK_ERROR)

        assert plan_recovery(analysis, 1, 1) == RecoveryAction.GIVE_UP

    @pytest.mark.parametrize(
        "error_type",
        [
            DeploymentErrorType.PORT_CONFLICT,
            DeploymentErrorType.DOCKERFILE_INVALID,
            DeploymentErrorType.COMPOSE_INVALID,
            DeploymentErrorType.MEMORY_EXCEEDED,
            DeploymentErrorType.ENV_VAR_MISSING,
        ],
    )
    def test_applies_confident_fixes(self, error_type):
        assert plan_recovery(make_analysis(error_type), 1, 3) == RecoveryAction.APPLY_FIX

    @pytest.mark.parametrize(
        "error_type",
        [
            DeploymentErrorType.UNKNOWN,
            DeploymentErrorType.DEPENDENCY_MISSING,
            DeploymentErrorType.BUILD_FAILED,
            DeploymentErrorType.DISK_FULL,
        ],
    )
    def test_delegates_everything_else(self, error_type):
        assert plan_recovery(make_analysis(error_type), 1, 3) == RecoveryAction.DELEGATE

    def test_lower_threshold_applies_medium_fixes(self):
        analysis = make_analysis(DeploymentErrorType.BUILD_FAILED)

        action = plan_recovery(analysis, 1, 3, threshold=FixConfidence.MEDIUM)

        assert action == RecoveryAction.APPLY_FIX

    def test_manual_fixes_are_never_applied(self):
        analysis = make_analysis(DeploymentErrorType.UNKNOWN)
        analysis.suggested_fixes = [
            FixSuggestion(description="Call someone", confidence=FixConfidence.HIGH, type=FixType.MANUAL)
        ]

        assert plan_recovery(analysis, 1, 3) == RecoveryAction.DELEGATE

    def test_no_suggestions_delegates(self):
        analysis = make_analysis(DeploymentErrorType.UNKNOWN)
        analysis.suggested_fixes = []

        assert plan_recovery(analysis, 1, 3) == RecoveryAction.DELEGATE


class TestTransient:
    @pytest.mark.parametrize(
        "error_type,expected",
        [
            (DeploymentErrorType.NETWORK_ERROR, True),
            (DeploymentErrorType.TIMEOUT, True),
            (DeploymentErrorType.IMAGE_PULL_FAILED, True),
            (DeploymentErrorType.BUILD_FAILED, False),
            (DeploymentErrorType.UNKNOWN, False),
        ],
    )
    def test_is_transient(self, error_type, expected):
        assert is_transient(make_analysis(error_type)) is expected
