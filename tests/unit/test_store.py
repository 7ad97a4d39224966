"""Tests for the deployment store."""

import asyncio
from uuid import uuid4

import pytest

from shipyard.core.exceptions import (
    AttemptsExhaustedError,
    DeploymentNotFoundError,
    SessionConflictError,
    SessionNotFoundError,
)
from shipyard.core.store import DeploymentStore
from shipyard.models.deployment import DeploymentCreate, DeploymentStatus
from shipyard.models.session import AgentPayload, SessionStatus


class TestDeploymentStore:
    """Tests for DeploymentStore class."""

    @pytest.mark.asyncio
    async def test_create_deployment(self, store: DeploymentStore, deployment_data: DeploymentCreate):
        deployment = await store.create_deployment(deployment_data)

        assert deployment.id is not None
        assert deployment.status == DeploymentStatus.PENDING
        assert deployment.env_vars == {"NODE_ENV": "production"}
        assert deployment.compose_project.startswith("shipyard-")

    @pytest.mark.asyncio
    async def test_get_deployment_not_found(self, store: DeploymentStore):
        with pytest.raises(DeploymentNotFoundError):
            await store.get_deployment(uuid4())

    @pytest.mark.asyncio
    async def test_list_deployments(self, store: DeploymentStore, deployment_data: DeploymentCreate):
        first = await store.create_deployment(deployment_data)
        await store.create_deployment(deployment_data)
        first.status = DeploymentStatus.FAILED
        await store.update_deployment(first)

        deployments, total = await store.list_deployments()
        failed, failed_total = await store.list_deployments(status=DeploymentStatus.FAILED)

        assert total == 2
        assert len(deployments) == 2
        assert failed_total == 1
        assert failed[0].id == first.id

    @pytest.mark.asyncio
    async def test_list_deployments_pagination(
        self, store: DeploymentStore, deployment_data: DeploymentCreate
    ):
        for _ in range(5):
            await store.create_deployment(deployment_data)

        page, total = await store.list_deployments(limit=2, offset=4)

        assert total == 5
        assert len(page) == 1


class TestSessions:
    @pytest.mark.asyncio
    async def test_attempt_numbers_increase(
        self, store: DeploymentStore, deployment_data: DeploymentCreate
    ):
        deployment = await store.create_deployment(deployment_data)

        first = await store.create_session(deployment.id, max_attempts=3)
        first.status = SessionStatus.FAILED
        await store.update_session(first)
        second = await store.create_session(deployment.id, max_attempts=3)

        assert first.attempt_number == 1
        assert second.attempt_number == 2
        assert first.completed_at is not None
        assert [s.id for s in await store.list_sessions(deployment.id)] == [first.id, second.id]
        assert (await store.latest_session(deployment.id)).id == second.id

    @pytest.mark.asyncio
    async def test_single_active_session(
        self, store: DeploymentStore, deployment_data: DeploymentCreate
    ):
        deployment = await store.create_deployment(deployment_data)
        active = await store.create_session(deployment.id, max_attempts=3)

        with pytest.raises(SessionConflictError) as exc_info:
            await store.create_session(deployment.id, max_attempts=3)

        assert exc_info.value.status_code == 409
        assert exc_info.value.details["active_session_id"] == str(active.id)

    @pytest.mark.asyncio
    async def test_concurrent_creation_yields_one_session(
        self, store: DeploymentStore, deployment_data: DeploymentCreate
    ):
        deployment = await store.create_deployment(deployment_data)

        results = await asyncio.gather(
            *(store.create_session(deployment.id, max_attempts=3) for _ in range(5)),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 4
        assert all(isinstance(e, SessionConflictError) for e in errors)

    @pytest.mark.asyncio
    async def test_attempts_exhausted(self, store: DeploymentStore, deployment_data: DeploymentCreate):
        deployment = await store.create_deployment(deployment_data)
        session = await store.create_session(deployment.id, max_attempts=1)
        session.status = SessionStatus.FAILED
        await store.update_session(session)

        with pytest.raises(AttemptsExhaustedError):
            await store.create_session(deployment.id, max_attempts=1)

    @pytest.mark.asyncio
    async def test_agent_payload_is_kept(
        self, store: DeploymentStore, deployment_data: DeploymentCreate
    ):
        deployment = await store.create_deployment(deployment_data)
        payload = AgentPayload(state="proposed", context={"claude_session_id": "abc"})

        session = await store.create_session(deployment.id, max_attempts=2, agent=payload)

        assert session.agent.context == {"claude_session_id": "abc"}

    @pytest.mark.asyncio
    async def test_session_for_unknown_deployment(self, store: DeploymentStore):
        with pytest.raises(DeploymentNotFoundError):
            await store.create_session(uuid4(), max_attempts=3)

    @pytest.mark.asyncio
    async def test_get_session_not_found(self, store: DeploymentStore):
        with pytest.raises(SessionNotFoundError):
            await store.get_session(uuid4())
