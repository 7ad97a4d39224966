"""Data models for Shipyard."""

from shipyard.models.activity import (
    ActivityType,
    SessionActivity,
    StreamEvent,
)
from shipyard.models.deployment import (
    Deployment,
    DeploymentCreate,
    DeploymentResponse,
    DeploymentStatus,
    PortMapping,
    ServiceUrl,
)
from shipyard.models.errors import (
    DeploymentError,
    DeploymentErrorType,
    ErrorAnalysis,
    ErrorLocation,
    ErrorStage,
    FixConfidence,
    FixDetails,
    FixSuggestion,
    FixType,
)
from shipyard.models.session import (
    AgentPayload,
    DeploymentSession,
    FileChange,
    SessionResponse,
    SessionStatus,
    StartAttemptRequest,
)

__all__ = [
    # Deployment models
    "Deployment",
    "DeploymentCreate",
    "DeploymentResponse",
    "DeploymentStatus",
    "PortMapping",
    "ServiceUrl",
    # Session models
    "AgentPayload",
    "DeploymentSession",
    "FileChange",
    "SessionResponse",
    "SessionStatus",
    "StartAttemptRequest",
    # Activity models
    "ActivityType",
    "SessionActivity",
    "StreamEvent",
    # Error models
    "DeploymentError",
    "DeploymentErrorType",
    "ErrorAnalysis",
    "ErrorLocation",
    "ErrorStage",
    "FixConfidence",
    "FixDetails",
    "FixSuggestion",
    "FixType",
]
