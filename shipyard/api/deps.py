"""Dependency injection for API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends

from shipyard.core.activity import ActivityLog, get_activity_log
from shipyard.core.orchestrator import DeploymentOrchestrator, get_orchestrator
from shipyard.core.store import DeploymentStore, get_deployment_store
from shipyard.models.deployment import Deployment
from shipyard.models.session import DeploymentSession


async def get_store() -> DeploymentStore:
    """Get the deployment store."""
    return get_deployment_store()


async def get_activity() -> ActivityLog:
    """Get the activity log."""
    return get_activity_log()


async def get_deployment_orchestrator() -> DeploymentOrchestrator:
    """Get the orchestrator."""
    return get_orchestrator()


async def get_deployment_by_id(
    deployment_id: UUID,
    store: Annotated[DeploymentStore, Depends(get_store)],
) -> Deployment:
    """Get a deployment by ID; unknown IDs render as 404."""
    return await store.get_deployment(deployment_id)


async def get_session_by_id(
    session_id: UUID,
    store: Annotated[DeploymentStore, Depends(get_store)],
) -> DeploymentSession:
    """Get a session by ID; unknown IDs render as 404."""
    return await store.get_session(session_id)


# Type aliases for cleaner signatures
StoreDep = Annotated[DeploymentStore, Depends(get_store)]
ActivityDep = Annotated[ActivityLog, Depends(get_activity)]
OrchestratorDep = Annotated[DeploymentOrchestrator, Depends(get_deployment_orchestrator)]
DeploymentDep = Annotated[Deployment, Depends(get_deployment_by_id)]
DeploymentSessionDep = Annotated[DeploymentSession, Depends(get_session_by_id)]
