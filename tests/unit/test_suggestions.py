"""Tests for deterministic fix suggestions."""

from uuid import uuid4

import pytest

from shipyard.core.suggestions import (
    AI_DELEGATION_DESCRIPTION,
    DEFAULT_CAUSES,
    analysis_for,
    analyze,
    possible_causes,
    suggest,
)
from shipyard.models.errors import (
    DeploymentError,
    DeploymentErrorType,
    ErrorLocation,
    ErrorStage,
    FixConfidence,
    FixType,
)


def make_error(error_type: DeploymentErrorType, message: str = "boom", **kwargs) -> DeploymentError:
    return DeploymentError(
        deployment_id=uuid4(),
        type=error_type,
        stage=ErrorStage.BUILD,
        message=message,
        **kwargs,
    )


class TestSuggest:
    @pytest.mark.parametrize("error_type", list(DeploymentErrorType))
    def test_never_empty(self, error_type):
        assert suggest(make_error(error_type))

    def test_unknown_delegates_to_ai(self):
        fixes = suggest(make_error(DeploymentErrorType.UNKNOWN))

        assert len(fixes) == 1
        assert fixes[0].description == AI_DELEGATION_DESCRIPTION
        assert fixes[0].confidence == FixConfidence.MEDIUM
        assert fixes[0].type == FixType.MANUAL

    def test_port_conflict(self):
        fix = suggest(make_error(DeploymentErrorType.PORT_CONFLICT))[0]

        assert fix.confidence == FixConfidence.HIGH
        assert fix.type == FixType.CONFIG_CHANGE
        assert fix.details.file == "docker-compose.yml"
        assert fix.details.config_key == "ports"

    def test_dockerfile_line_in_instructions(self):
        error = make_error(
            DeploymentErrorType.DOCKERFILE_INVALID,
            location=ErrorLocation(file="Dockerfile", line=3),
        )
        fix = suggest(error)[0]

        assert fix.type == FixType.FILE_EDIT
        assert "line 3" in fix.details.instructions

    def test_env_var_name_from_message(self):
        error = make_error(
            DeploymentErrorType.ENV_VAR_MISSING,
            message="Missing environment variable: DATABASE_URL",
        )
        fix = suggest(error)[0]

        assert fix.type == FixType.ENV_VAR
        assert fix.details.env_var == "DATABASE_URL"

    def test_dependency_conflict_has_fallback(self):
        fixes = suggest(make_error(DeploymentErrorType.DEPENDENCY_CONFLICT))

        assert [f.confidence for f in fixes] == [FixConfidence.MEDIUM, FixConfidence.LOW]


class TestPossibleCauses:
    @pytest.mark.parametrize("error_type", list(DeploymentErrorType))
    def test_every_type_has_causes(self, error_type):
        assert possible_causes(make_error(error_type))

    def test_causes_are_copies(self):
        causes = possible_causes(make_error(DeploymentErrorType.DISK_FULL))
        causes.clear()

        assert possible_causes(make_error(DeploymentErrorType.DISK_FULL))

    def test_default_causes(self):
        assert DEFAULT_CAUSES == ["Unknown cause - AI analysis recommended"]


class TestAnalysis:
    def test_analysis_for(self):
        error = make_error(DeploymentErrorType.MEMORY_EXCEEDED)
        analysis = analysis_for(error, ai_available=True)

        assert analysis.error is error
        assert analysis.ai_analysis_available is True
        assert analysis.top_suggestion.confidence == FixConfidence.HIGH

    def test_analyze_classifies_first(self):
        deployment_id = uuid4()
        analysis = analyze("bind: address already in use", ErrorStage.DEPLOY, deployment_id)

        assert analysis.error.type == DeploymentErrorType.PORT_CONFLICT
        assert analysis.error.deployment_id == deployment_id
        assert analysis.ai_analysis_available is False
        assert analysis.suggested_fixes[0].type == FixType.CONFIG_CHANGE

    def test_top_suggestion_prefers_confidence(self):
        analysis = analysis_for(make_error(DeploymentErrorType.IMAGE_PULL_FAILED))

        assert analysis.top_suggestion.description == "Retry pulling the image"
