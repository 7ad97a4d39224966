"""Session activity models."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class ActivityType(str, Enum):
    """Kind of recorded activity."""

    TOOL_CALL = "tool_call"
    AI_RESPONSE = "ai_response"
    USER_ACTION = "user_action"
    ERROR = "error"


class SessionActivity(BaseModel):
    """An append-only activity record of a session."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    session_id: UUID
    offset: int = Field(ge=0)
    type: ActivityType
    action: str
    input: Any = None
    output: Any = None
    duration_ms: int | None = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class StreamEvent(BaseModel):
    """An event delivered to activity stream subscribers.

    ``event`` is ``"activity"`` for recorded activity, or the session
    outcome (``completed``, ``failed``, ``cancelled``) for the terminal
    sentinel that ends the stream.
    """

    event: str
    offset: int | None = None
    activity: SessionActivity | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def terminal(self) -> bool:
        return self.activity is None

    def to_sse(self) -> dict[str, Any]:
        """Convert to an sse-starlette event dict."""
        if self.activity is not None:
            return {
                "id": str(self.offset),
                "event": self.event,
                "data": self.activity.model_dump_json(),
            }
        return {"event": self.event, "data": self.model_dump_json(include={"data"})}
