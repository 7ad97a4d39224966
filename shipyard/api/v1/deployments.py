"""Deployment endpoints."""

from enum import Enum
from typing import Annotated

from fastapi import APIRouter, Query, status
from pydantic import BaseModel

from shipyard.api.deps import DeploymentDep, OrchestratorDep, StoreDep
from shipyard.models.deployment import (
    DeploymentCreate,
    DeploymentResponse,
    DeploymentStatus,
)
from shipyard.models.errors import ErrorAnalysis
from shipyard.models.session import SessionResponse, StartAttemptRequest

router = APIRouter()


class DeploymentAction(str, Enum):
    """User actions on a deployment."""

    STOP = "stop"
    START = "start"
    RESTART = "restart"


class DeploymentListResponse(BaseModel):
    """Response for listing deployments."""

    deployments: list[DeploymentResponse]
    total: int
    limit: int
    offset: int


class DeploymentStatusResponse(BaseModel):
    """A deployment with its latest session and surfaced analysis."""

    deployment: DeploymentResponse
    latest_session: SessionResponse | None = None
    analysis: ErrorAnalysis | None = None


class SessionListResponse(BaseModel):
    """Sessions of a deployment ordered by attempt."""

    sessions: list[SessionResponse]
    total: int


@router.post(
    "",
    response_model=DeploymentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a deployment",
)
async def create_deployment(
    data: DeploymentCreate,
    orchestrator: OrchestratorDep,
) -> DeploymentResponse:
    """Register a generated configuration for deployment."""
    deployment = await orchestrator.create_deployment(data)
    return DeploymentResponse.from_deployment(deployment)


@router.get(
    "",
    response_model=DeploymentListResponse,
    summary="List deployments",
)
async def list_deployments(
    store: StoreDep,
    status_filter: Annotated[DeploymentStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> DeploymentListResponse:
    """List deployments with optional filtering."""
    deployments, total = await store.list_deployments(
        status=status_filter,
        limit=limit,
        offset=offset,
    )

    return DeploymentListResponse(
        deployments=[DeploymentResponse.from_deployment(d) for d in deployments],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{deployment_id}",
    response_model=DeploymentStatusResponse,
    summary="Get deployment status",
)
async def get_deployment(
    deployment: DeploymentDep,
    orchestrator: OrchestratorDep,
) -> DeploymentStatusResponse:
    """Current status, latest session and the last surfaced error analysis."""
    deployment, latest = await orchestrator.get_status(deployment.id)
    return DeploymentStatusResponse(
        deployment=DeploymentResponse.from_deployment(deployment),
        latest_session=SessionResponse.from_session(latest) if latest else None,
        analysis=deployment.last_analysis,
    )


@router.post(
    "/{deployment_id}/attempts",
    response_model=SessionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a deployment attempt",
)
async def start_attempt(
    deployment: DeploymentDep,
    orchestrator: OrchestratorDep,
    data: StartAttemptRequest | None = None,
) -> SessionResponse:
    """Start deploying in the background; follow progress on the session stream."""
    data = data or StartAttemptRequest()
    session = await orchestrator.start_attempt(
        deployment.id,
        max_attempts=data.max_attempts,
        custom_instructions=data.custom_instructions,
    )
    return SessionResponse.from_session(session)


@router.post(
    "/{deployment_id}/{action}",
    response_model=DeploymentResponse,
    summary="Stop, start or restart a deployment",
)
async def deployment_action(
    deployment: DeploymentDep,
    action: DeploymentAction,
    orchestrator: OrchestratorDep,
) -> DeploymentResponse:
    """Apply a user action to a deployment."""
    handlers = {
        DeploymentAction.STOP: orchestrator.stop,
        DeploymentAction.START: orchestrator.start,
        DeploymentAction.RESTART: orchestrator.restart,
    }
    updated = await handlers[action](deployment.id)
    return DeploymentResponse.from_deployment(updated)


@router.delete(
    "/{deployment_id}",
    response_model=DeploymentResponse,
    summary="Terminate a deployment",
)
async def terminate_deployment(
    deployment: DeploymentDep,
    orchestrator: OrchestratorDep,
) -> DeploymentResponse:
    """Tear down the containers; the deployment record is kept as terminated."""
    updated = await orchestrator.terminate(deployment.id)
    return DeploymentResponse.from_deployment(updated)


@router.get(
    "/{deployment_id}/sessions",
    response_model=SessionListResponse,
    summary="List deployment sessions",
)
async def list_sessions(
    deployment: DeploymentDep,
    orchestrator: OrchestratorDep,
) -> SessionListResponse:
    """All attempts of a deployment ordered by attempt number."""
    sessions = await orchestrator.list_sessions(deployment.id)
    return SessionListResponse(
        sessions=[SessionResponse.from_session(s) for s in sessions],
        total=len(sessions),
    )
