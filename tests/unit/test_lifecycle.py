"""Tests for the deployment lifecycle state machine."""

from uuid import uuid4

import pytest

from shipyard.core.activity import ActivityLog
from shipyard.core.exceptions import InvalidTransitionError
from shipyard.core.lifecycle import TRANSITIONS, DeploymentLifecycle, can_transition
from shipyard.core.store import DeploymentStore
from shipyard.models.activity import ActivityType
from shipyard.models.deployment import DeploymentCreate, DeploymentStatus

S = DeploymentStatus


@pytest.fixture
def lifecycle(store: DeploymentStore, activity: ActivityLog) -> DeploymentLifecycle:
    return DeploymentLifecycle(store, activity)


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current,target",
        [
            (S.PENDING, S.PRE_FLIGHT),
            (S.PRE_FLIGHT, S.BUILDING),
            (S.BUILDING, S.DEPLOYING),
            (S.DEPLOYING, S.RUNNING),
            (S.BUILDING, S.PRE_FLIGHT),
            (S.DEPLOYING, S.FAILED),
            (S.RUNNING, S.STOPPED),
            (S.STOPPED, S.RUNNING),
            (S.FAILED, S.PRE_FLIGHT),
            (S.FAILED, S.TERMINATED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (S.PENDING, S.RUNNING),
            (S.PENDING, S.BUILDING),
            (S.RUNNING, S.BUILDING),
            (S.RUNNING, S.FAILED),
            (S.STOPPED, S.PRE_FLIGHT),
            (S.TERMINATED, S.PRE_FLIGHT),
            (S.TERMINATED, S.RUNNING),
        ],
    )
    def test_denied(self, current, target):
        assert not can_transition(current, target)

    def test_terminated_is_final(self):
        assert TRANSITIONS[S.TERMINATED] == frozenset()

    def test_every_status_has_an_entry(self):
        assert set(TRANSITIONS) == set(DeploymentStatus)


class TestDeploymentLifecycle:
    @pytest.mark.asyncio
    async def test_transition_records_activity(
        self,
        lifecycle: DeploymentLifecycle,
        store: DeploymentStore,
        activity: ActivityLog,
        deployment_data: DeploymentCreate,
    ):
        deployment = await store.create_deployment(deployment_data)
        session_id = uuid4()

        await lifecycle.transition(deployment, S.PRE_FLIGHT, session_id, reason="attempt_requested")

        entries = activity.history(session_id)
        assert deployment.status == S.PRE_FLIGHT
        assert deployment.started_at is not None
        assert len(entries) == 1
        assert entries[0].action == "deployment.status_changed"
        assert entries[0].input == {"from": "pending", "to": "pre_flight"}
        assert entries[0].output == {"reason": "attempt_requested"}

    @pytest.mark.asyncio
    async def test_invalid_transition_leaves_state(
        self,
        lifecycle: DeploymentLifecycle,
        store: DeploymentStore,
        activity: ActivityLog,
        deployment_data: DeploymentCreate,
    ):
        deployment = await store.create_deployment(deployment_data)
        session_id = uuid4()

        with pytest.raises(InvalidTransitionError) as exc_info:
            await lifecycle.transition(deployment, S.RUNNING, session_id)

        assert exc_info.value.current == "pending"
        assert exc_info.value.target == "running"
        assert deployment.status == S.PENDING
        assert activity.history(session_id) == []

    @pytest.mark.asyncio
    async def test_failure_is_recorded_as_error(
        self,
        lifecycle: DeploymentLifecycle,
        store: DeploymentStore,
        activity: ActivityLog,
        deployment_data: DeploymentCreate,
    ):
        deployment = await store.create_deployment(deployment_data)
        session_id = uuid4()
        await lifecycle.transition(deployment, S.PRE_FLIGHT, session_id)

        await lifecycle.transition(deployment, S.FAILED, session_id)

        assert activity.history(session_id)[-1].type == ActivityType.ERROR
        assert deployment.completed_at is not None

    @pytest.mark.asyncio
    async def test_user_cancellation_keeps_kind(
        self,
        lifecycle: DeploymentLifecycle,
        store: DeploymentStore,
        activity: ActivityLog,
        deployment_data: DeploymentCreate,
    ):
        deployment = await store.create_deployment(deployment_data)
        session_id = uuid4()
        await lifecycle.transition(deployment, S.PRE_FLIGHT, session_id)

        await lifecycle.transition(deployment, S.FAILED, session_id, kind=ActivityType.USER_ACTION)

        assert activity.history(session_id)[-1].type == ActivityType.USER_ACTION

    @pytest.mark.asyncio
    async def test_stop_and_start_timestamps(
        self,
        lifecycle: DeploymentLifecycle,
        store: DeploymentStore,
        deployment_data: DeploymentCreate,
    ):
        deployment = await store.create_deployment(deployment_data)
        for target in (S.PRE_FLIGHT, S.BUILDING, S.DEPLOYING, S.RUNNING):
            await lifecycle.transition(deployment, target)

        await lifecycle.transition(deployment, S.STOPPED)
        assert deployment.stopped_at is not None

        await lifecycle.transition(deployment, S.RUNNING)
        assert deployment.stopped_at is None
        assert (await store.get_deployment(deployment.id)).status == S.RUNNING
