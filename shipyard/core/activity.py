"""Per-session activity log with offset-based replay.

Every session owns an append-only stream of ``SessionActivity`` records.
Subscribers replay the stream from any offset, then follow live appends
until the session is closed, at which point they receive a terminal event
named after the session outcome.
"""

import asyncio
from datetime import datetime
from typing import Any, AsyncIterator
from uuid import UUID

from shipyard.models.activity import ActivityType, SessionActivity, StreamEvent
from shipyard.utils.logging import get_logger

logger = get_logger(__name__)


class _SessionStream:
    """Backing state of one session's stream."""

    def __init__(self) -> None:
        self.entries: list[SessionActivity] = []
        self.outcome: str | None = None
        self.data: dict[str, Any] = {}
        self.changed = asyncio.Condition()


class ActivityLog:
    """Append-only activity streams keyed by session id."""

    def __init__(self) -> None:
        self._streams: dict[UUID, _SessionStream] = {}

    def _stream(self, session_id: UUID) -> _SessionStream:
        if session_id not in self._streams:
            self._streams[session_id] = _SessionStream()
        return self._streams[session_id]

    async def append(
        self,
        session_id: UUID,
        type: ActivityType,
        action: str,
        input: Any = None,
        output: Any = None,
        duration_ms: int | None = None,
    ) -> SessionActivity:
        """Append an activity to a session stream and wake subscribers."""
        stream = self._stream(session_id)
        if stream.outcome is not None:
            logger.debug(
                "activity.append_after_close",
                session_id=str(session_id),
                action=action,
            )

        timestamp = datetime.utcnow()
        if stream.entries and timestamp < stream.entries[-1].timestamp:
            timestamp = stream.entries[-1].timestamp

        entry = SessionActivity(
            session_id=session_id,
            offset=len(stream.entries),
            type=type,
            action=action,
            input=input,
            output=output,
            duration_ms=duration_ms,
            timestamp=timestamp,
        )

        async with stream.changed:
            stream.entries.append(entry)
            stream.changed.notify_all()

        return entry

    async def close(self, session_id: UUID, outcome: str, **data: Any) -> None:
        """Mark a session stream finished with its outcome."""
        stream = self._stream(session_id)
        async with stream.changed:
            if stream.outcome is None:
                stream.outcome = outcome
                stream.data = {k: v for k, v in data.items() if v is not None}
            stream.changed.notify_all()

        logger.debug("activity.closed", session_id=str(session_id), outcome=outcome)

    def history(self, session_id: UUID, offset: int = 0) -> list[SessionActivity]:
        """Recorded activity from ``offset`` on."""
        stream = self._streams.get(session_id)
        if stream is None:
            return []
        return list(stream.entries[max(offset, 0):])

    def outcome(self, session_id: UUID) -> str | None:
        stream = self._streams.get(session_id)
        return stream.outcome if stream else None

    async def subscribe(self, session_id: UUID, offset: int = 0) -> AsyncIterator[StreamEvent]:
        """Replay from ``offset``, follow live events, end with the outcome.

        A reconnecting subscriber passes the last offset it received plus
        one and sees exactly the events it missed.
        """
        stream = self._stream(session_id)
        position = max(offset, 0)

        while True:
            async with stream.changed:
                await stream.changed.wait_for(
                    lambda: position < len(stream.entries) or stream.outcome is not None
                )
                pending = stream.entries[position:]
                outcome = stream.outcome
                data = dict(stream.data)

            for entry in pending:
                yield StreamEvent(event="activity", offset=entry.offset, activity=entry)
            position += len(pending)

            if outcome is not None and position >= len(stream.entries):
                yield StreamEvent(event=outcome, data=data)
                return


# Singleton instance
_activity_log: ActivityLog | None = None


def get_activity_log() -> ActivityLog:
    """Get the activity log singleton."""
    global _activity_log
    if _activity_log is None:
        _activity_log = ActivityLog()
    return _activity_log
