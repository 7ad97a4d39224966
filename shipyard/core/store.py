"""In-memory store for deployments and their sessions."""

import asyncio
from datetime import datetime
from uuid import UUID

from shipyard.core.exceptions import (
    AttemptsExhaustedError,
    DeploymentNotFoundError,
    SessionConflictError,
    SessionNotFoundError,
)
from shipyard.models.deployment import Deployment, DeploymentCreate, DeploymentStatus
from shipyard.models.session import AgentPayload, DeploymentSession, SessionStatus


class DeploymentStore:
    """Keeps deployments and sessions in memory.

    Session creation is serialized so that a deployment never has two
    active sessions and attempt numbers only grow.

    Note: For production, this should be backed by a database.
    """

    def __init__(self):
        self._deployments: dict[UUID, Deployment] = {}
        self._sessions: dict[UUID, DeploymentSession] = {}
        self._by_deployment: dict[UUID, list[UUID]] = {}
        self._lock = asyncio.Lock()

    # Deployments

    async def create_deployment(self, data: DeploymentCreate) -> Deployment:
        """Create a new deployment."""
        deployment = Deployment(
            name=data.name,
            project_id=data.project_id,
            config_id=data.config_id,
            workdir=data.workdir,
            platform=data.platform,
            environment=data.environment,
            env_vars=dict(data.env_vars),
        )
        self._deployments[deployment.id] = deployment
        self._by_deployment[deployment.id] = []
        return deployment

    async def get_deployment(self, deployment_id: UUID) -> Deployment:
        """Get a deployment by ID."""
        deployment = self._deployments.get(deployment_id)
        if deployment is None:
            raise DeploymentNotFoundError(deployment_id)
        return deployment

    async def update_deployment(self, deployment: Deployment) -> Deployment:
        """Update a deployment."""
        if deployment.id not in self._deployments:
            raise DeploymentNotFoundError(deployment.id)
        deployment.updated_at = datetime.utcnow()
        self._deployments[deployment.id] = deployment
        return deployment

    async def list_deployments(
        self,
        status: DeploymentStatus | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[Deployment], int]:
        """List deployments with optional filtering."""
        deployments = list(self._deployments.values())

        if status:
            deployments = [d for d in deployments if d.status == status]

        deployments.sort(key=lambda d: d.created_at, reverse=True)

        total = len(deployments)
        return deployments[offset : offset + limit], total

    # Sessions

    async def create_session(
        self,
        deployment_id: UUID,
        max_attempts: int,
        custom_instructions: str | None = None,
        agent: AgentPayload | None = None,
    ) -> DeploymentSession:
        """Start the next attempt of a deployment.

        Raises:
            SessionConflictError: if the deployment has an active session
            AttemptsExhaustedError: if the next attempt exceeds ``max_attempts``
        """
        async with self._lock:
            await self.get_deployment(deployment_id)

            active = self._active(deployment_id)
            if active is not None:
                raise SessionConflictError(deployment_id, active.id)

            latest = self._latest(deployment_id)
            attempt_number = latest.attempt_number + 1 if latest else 1
            if attempt_number > max_attempts:
                raise AttemptsExhaustedError(deployment_id, attempt_number, max_attempts)

            session = DeploymentSession(
                deployment_id=deployment_id,
                attempt_number=attempt_number,
                max_attempts=max_attempts,
                custom_instructions=custom_instructions,
                agent=agent or AgentPayload(),
            )
            self._sessions[session.id] = session
            self._by_deployment[deployment_id].append(session.id)
            return session

    async def get_session(self, session_id: UUID) -> DeploymentSession:
        """Get a session by ID."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def update_session(self, session: DeploymentSession) -> DeploymentSession:
        """Update a session."""
        if session.id not in self._sessions:
            raise SessionNotFoundError(session.id)
        session.updated_at = datetime.utcnow()
        if session.status.terminal and session.completed_at is None:
            session.completed_at = session.updated_at
        self._sessions[session.id] = session
        return session

    async def list_sessions(self, deployment_id: UUID) -> list[DeploymentSession]:
        """Sessions of a deployment ordered by attempt number."""
        await self.get_deployment(deployment_id)
        return [self._sessions[sid] for sid in self._by_deployment.get(deployment_id, [])]

    async def active_session(self, deployment_id: UUID) -> DeploymentSession | None:
        return self._active(deployment_id)

    async def latest_session(self, deployment_id: UUID) -> DeploymentSession | None:
        return self._latest(deployment_id)

    def _active(self, deployment_id: UUID) -> DeploymentSession | None:
        for sid in self._by_deployment.get(deployment_id, []):
            session = self._sessions[sid]
            if session.status == SessionStatus.ACTIVE:
                return session
        return None

    def _latest(self, deployment_id: UUID) -> DeploymentSession | None:
        ids = self._by_deployment.get(deployment_id, [])
        return self._sessions[ids[-1]] if ids else None


# Singleton instance
_store: DeploymentStore | None = None


def get_deployment_store() -> DeploymentStore:
    """Get the deployment store singleton."""
    global _store
    if _store is None:
        _store = DeploymentStore()
    return _store
