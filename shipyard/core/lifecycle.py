"""Deployment lifecycle state machine."""

from datetime import datetime
from uuid import UUID

from shipyard.core.activity import ActivityLog
from shipyard.core.exceptions import InvalidTransitionError
from shipyard.core.store import DeploymentStore
from shipyard.models.activity import ActivityType
from shipyard.models.deployment import Deployment, DeploymentStatus
from shipyard.utils.logging import get_logger

logger = get_logger(__name__)

S = DeploymentStatus

TRANSITIONS: dict[DeploymentStatus, frozenset[DeploymentStatus]] = {
    S.PENDING: frozenset({S.PRE_FLIGHT}),
    S.PRE_FLIGHT: frozenset({S.BUILDING, S.PRE_FLIGHT, S.FAILED, S.STOPPED}),
    S.BUILDING: frozenset({S.DEPLOYING, S.PRE_FLIGHT, S.FAILED, S.STOPPED}),
    S.DEPLOYING: frozenset({S.RUNNING, S.PRE_FLIGHT, S.FAILED, S.STOPPED}),
    S.RUNNING: frozenset({S.STOPPED, S.TERMINATED}),
    S.STOPPED: frozenset({S.RUNNING, S.TERMINATED}),
    S.FAILED: frozenset({S.PRE_FLIGHT, S.TERMINATED}),
    S.TERMINATED: frozenset(),
}


def can_transition(current: DeploymentStatus, target: DeploymentStatus) -> bool:
    return target in TRANSITIONS[current]


class DeploymentLifecycle:
    """Applies status transitions and records them as session activity."""

    def __init__(self, store: DeploymentStore, activity: ActivityLog):
        self.store = store
        self.activity = activity

    async def transition(
        self,
        deployment: Deployment,
        target: DeploymentStatus,
        session_id: UUID | None = None,
        kind: ActivityType = ActivityType.TOOL_CALL,
        reason: str | None = None,
    ) -> Deployment:
        """Move a deployment to ``target``.

        Raises:
            InvalidTransitionError: if the transition table forbids it
        """
        current = deployment.status
        if not can_transition(current, target):
            raise InvalidTransitionError(deployment.id, current.value, target.value)

        now = datetime.utcnow()
        deployment.status = target
        if target == S.PRE_FLIGHT and current != S.PRE_FLIGHT:
            deployment.started_at = now
            deployment.completed_at = None
        elif target == S.RUNNING:
            deployment.completed_at = deployment.completed_at or now
            deployment.stopped_at = None
        elif target in (S.STOPPED, S.TERMINATED):
            deployment.stopped_at = now
        elif target == S.FAILED:
            deployment.completed_at = now

        await self.store.update_deployment(deployment)

        if target == S.FAILED and kind == ActivityType.TOOL_CALL:
            kind = ActivityType.ERROR

        if session_id is not None:
            await self.activity.append(
                session_id,
                kind,
                "deployment.status_changed",
                input={"from": current.value, "to": target.value},
                output={"reason": reason} if reason else None,
            )

        logger.info(
            "deployment.status_changed",
            deployment_id=str(deployment.id),
            from_status=current.value,
            to_status=target.value,
            reason=reason,
        )
        return deployment
