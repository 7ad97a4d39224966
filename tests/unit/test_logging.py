"""Unit tests for logging helpers."""

import asyncio
from uuid import uuid4

import pytest
import structlog

from shipyard.utils.logging import bind_attempt


class TestBindAttempt:
    @pytest.mark.asyncio
    async def test_ids_stay_inside_the_attempt_task(self):
        structlog.contextvars.clear_contextvars()
        deployment_id, session_id = uuid4(), uuid4()

        async def attempt() -> dict:
            bind_attempt(deployment_id, session_id)
            return structlog.contextvars.get_contextvars()

        bound = await asyncio.create_task(attempt())

        assert bound == {
            "deployment_id": str(deployment_id),
            "session_id": str(session_id),
        }
        assert "deployment_id" not in structlog.contextvars.get_contextvars()

    @pytest.mark.asyncio
    async def test_rebinding_replaces_session(self):
        deployment_id = uuid4()
        second = uuid4()

        async def attempts() -> dict:
            bind_attempt(deployment_id, uuid4())
            bind_attempt(deployment_id, second)
            return structlog.contextvars.get_contextvars()

        bound = await asyncio.create_task(attempts())

        assert bound["session_id"] == str(second)
