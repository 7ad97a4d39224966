"""Deployment session endpoints."""

from typing import Annotated

from fastapi import APIRouter, Header, Query
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from shipyard.api.deps import ActivityDep, DeploymentSessionDep, OrchestratorDep
from shipyard.config import settings
from shipyard.models.activity import SessionActivity
from shipyard.models.session import SessionResponse

router = APIRouter()


class ActivityListResponse(BaseModel):
    """Recorded activity of a session from an offset."""

    activities: list[SessionActivity]
    offset: int
    next_offset: int
    outcome: str | None = None


@router.get(
    "/{session_id}",
    response_model=SessionResponse,
    summary="Get session details",
)
async def get_session(session: DeploymentSessionDep) -> SessionResponse:
    """Get a deployment attempt."""
    return SessionResponse.from_session(session)


@router.get(
    "/{session_id}/activity",
    response_model=ActivityListResponse,
    summary="Get session activity",
)
async def get_session_activity(
    session: DeploymentSessionDep,
    activity: ActivityDep,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> ActivityListResponse:
    """Recorded activity of a session, without following live events."""
    activities = activity.history(session.id, offset)
    return ActivityListResponse(
        activities=activities,
        offset=offset,
        next_offset=offset + len(activities),
        outcome=activity.outcome(session.id),
    )


@router.post(
    "/{session_id}/cancel",
    response_model=SessionResponse,
    summary="Cancel an active session",
)
async def cancel_session(
    session: DeploymentSessionDep,
    orchestrator: OrchestratorDep,
) -> SessionResponse:
    """Cancel the attempt; the in-flight engine command is killed."""
    cancelled = await orchestrator.cancel_session(session.id)
    return SessionResponse.from_session(cancelled)


@router.get(
    "/{session_id}/stream",
    summary="Stream session activity (SSE)",
)
async def stream_session_activity(
    session: DeploymentSessionDep,
    activity: ActivityDep,
    offset: Annotated[int | None, Query(ge=0)] = None,
    last_event_id: Annotated[str | None, Header()] = None,
) -> EventSourceResponse:
    """Replay and follow a session's activity using Server-Sent Events.

    Each activity event carries its offset as the event id. Reconnecting
    clients resume after the ``Last-Event-ID`` they received, or from an
    explicit ``offset``. The stream ends with an event named after the
    session outcome.
    """
    start = offset
    if start is None:
        start = int(last_event_id) + 1 if last_event_id and last_event_id.isdigit() else 0

    async def event_generator():
        async for event in activity.subscribe(session.id, start):
            yield event.to_sse()

    return EventSourceResponse(event_generator(), ping=settings.sse_ping_seconds)
