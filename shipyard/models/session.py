"""Deployment session (attempt) models."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from shipyard.models.errors import ErrorAnalysis, ErrorStage


class SessionStatus(str, Enum):
    """Status of a single deployment attempt."""

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self != SessionStatus.ACTIVE


class AgentPayload(BaseModel):
    """Opaque conversational state owned by the recovery agent.

    The orchestrator persists and forwards this payload between attempts
    without reading its fields. Only the agent implementation interprets
    ``state``, ``context`` and ``messages``; ``version`` lets it migrate
    payloads written by older agents.
    """

    version: int = 1
    state: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    messages: list[dict[str, Any]] = Field(default_factory=list)


class FileChange(BaseModel):
    """A file modification applied during a session."""

    file: str
    before: str | None = None
    after: str
    reason: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class DeploymentSession(BaseModel):
    """One bounded attempt at bringing a deployment to a running state."""

    id: UUID = Field(default_factory=uuid4)
    deployment_id: UUID
    status: SessionStatus = SessionStatus.ACTIVE

    attempt_number: int = Field(default=1, ge=1)
    max_attempts: int = Field(default=3, ge=1)
    custom_instructions: str | None = None

    agent: AgentPayload = Field(default_factory=AgentPayload)
    file_changes: list[FileChange] = Field(default_factory=list)

    stage: ErrorStage | None = None
    summary: str | None = None
    error_message: str | None = None
    error_analysis: ErrorAnalysis | None = None

    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def attempts_remaining(self) -> int:
        return self.max_attempts - self.attempt_number


class StartAttemptRequest(BaseModel):
    """Request to start a deployment attempt."""

    max_attempts: int | None = Field(default=None, ge=1, le=10)
    custom_instructions: str | None = Field(default=None, max_length=4000)


class SessionResponse(BaseModel):
    """API response model for a session."""

    session_id: UUID
    deployment_id: UUID
    status: SessionStatus
    attempt_number: int
    max_attempts: int
    stage: ErrorStage | None = None
    custom_instructions: str | None = None
    file_changes: list[FileChange] = Field(default_factory=list)
    summary: str | None = None
    error_message: str | None = None
    error_analysis: ErrorAnalysis | None = None
    started_at: datetime
    completed_at: datetime | None = None

    @classmethod
    def from_session(cls, session: DeploymentSession) -> "SessionResponse":
        """Create response from session model."""
        return cls(
            session_id=session.id,
            deployment_id=session.deployment_id,
            status=session.status,
            attempt_number=session.attempt_number,
            max_attempts=session.max_attempts,
            stage=session.stage,
            custom_instructions=session.custom_instructions,
            file_changes=session.file_changes,
            summary=session.summary,
            error_message=session.error_message,
            error_analysis=session.error_analysis,
            started_at=session.started_at,
            completed_at=session.completed_at,
        )
