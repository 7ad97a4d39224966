"""Structured deployment error models.

These describe failures parsed from container tool OUTPUT (build engine,
compose, registries, package managers), never from the deployed project's
sources.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class DeploymentErrorType(str, Enum):
    """Closed taxonomy of recognized deployment failures."""

    DOCKERFILE_INVALID = "dockerfile_invalid"
    BUILD_FAILED = "build_failed"
    DEPENDENCY_MISSING = "dependency_missing"
    DEPENDENCY_CONFLICT = "dependency_conflict"
    COMPOSE_INVALID = "compose_invalid"
    IMAGE_NOT_FOUND = "image_not_found"
    IMAGE_PULL_FAILED = "image_pull_failed"
    PORT_CONFLICT = "port_conflict"
    MEMORY_EXCEEDED = "memory_exceeded"
    DISK_FULL = "disk_full"
    PERMISSION_DENIED = "permission_denied"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    ENV_VAR_MISSING = "env_var_missing"
    HEALTHCHECK_FAILED = "healthcheck_failed"
    STARTUP_FAILED = "startup_failed"
    UNKNOWN = "unknown"


class ErrorStage(str, Enum):
    """Stage of an attempt where the error occurred."""

    PRE_FLIGHT = "pre_flight"
    BUILD = "build"
    DEPLOY = "deploy"
    RUNTIME = "runtime"


class FixConfidence(str, Enum):
    """Confidence level of a suggested fix."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]


_CONFIDENCE_RANK = {
    FixConfidence.LOW: 0,
    FixConfidence.MEDIUM: 1,
    FixConfidence.HIGH: 2,
}


class FixType(str, Enum):
    """Kind of remediation a suggestion describes."""

    FILE_EDIT = "file_edit"
    MANUAL = "manual"
    CONFIG_CHANGE = "config_change"
    ENV_VAR = "env_var"


class ErrorLocation(BaseModel):
    """Location in a configuration file where an error occurred."""

    file: str
    line: int | None = None
    column: int | None = None


class DeploymentError(BaseModel):
    """A classified deployment failure."""

    id: UUID = Field(default_factory=uuid4)
    deployment_id: UUID
    type: DeploymentErrorType = DeploymentErrorType.UNKNOWN
    stage: ErrorStage
    message: str
    location: ErrorLocation | None = None
    context: list[str] = Field(default_factory=list)
    raw_output: str = ""
    exit_code: int | None = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class FixDetails(BaseModel):
    """Structured details of a fix suggestion."""

    file: str | None = None
    instructions: str | None = None
    env_var: str | None = None
    config_key: str | None = None
    documentation_url: str | None = None


class FixSuggestion(BaseModel):
    """A deterministic remediation tied to a classified error."""

    id: UUID = Field(default_factory=uuid4)
    description: str
    confidence: FixConfidence
    type: FixType
    details: FixDetails = Field(default_factory=FixDetails)


class ErrorAnalysis(BaseModel):
    """A classified error together with its causes and suggested fixes."""

    error: DeploymentError
    possible_causes: list[str] = Field(default_factory=list)
    suggested_fixes: list[FixSuggestion] = Field(default_factory=list)
    ai_analysis_available: bool = False

    @property
    def top_suggestion(self) -> FixSuggestion | None:
        """The most confident suggestion (first one wins on ties)."""
        if not self.suggested_fixes:
            return None
        return max(self.suggested_fixes, key=lambda s: s.confidence.rank)
