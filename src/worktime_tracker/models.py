"""Data model for work-session tracking.

- WorkSession: a contiguous span of tracked time, open until closed once
- ActiveSessionRecord: the persisted "tracking in progress" marker
- Task: the host's task descriptor (id and optional estimate)

Persisted records are JSON with snake_case keys. Anything that does not
parse into a valid record raises RecordError, which callers treat as
"no record".
"""

import json
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from .utils import ms_to_datetime


class WorktimeError(Exception):
    """Base class for worktime-tracker errors."""

    pass


class RecordError(WorktimeError):
    """Raised when persisted data cannot be parsed into a valid record."""

    pass


@dataclass(frozen=True)
class WorkSession:
    """A contiguous span of tracked time for one task.

    Timestamps are epoch milliseconds. ``end_time`` is None while the
    session is active. Closing a session returns a new instance; a closed
    session is never changed again.
    """

    id: str
    start_time: int
    end_time: int | None = None

    def __post_init__(self) -> None:
        if self.end_time is not None and self.end_time < self.start_time:
            raise ValueError(
                f"Session {self.id} ends ({self.end_time}) before it starts ({self.start_time})"
            )

    @property
    def is_active(self) -> bool:
        return self.end_time is None

    @property
    def duration_ms(self) -> int | None:
        """Length of a closed session, or None while it is still open."""
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    @property
    def start(self) -> datetime:
        return ms_to_datetime(self.start_time)

    @property
    def end(self) -> datetime | None:
        if self.end_time is None:
            return None
        return ms_to_datetime(self.end_time)

    def closed(self, at: int) -> "WorkSession":
        """Return a copy of this session ending at ``at``.

        Raises:
            ValueError: If the session is already closed, or ``at`` is
                before the start time
        """
        if self.end_time is not None:
            raise ValueError(f"Session {self.id} is already closed")
        return replace(self, end_time=at)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "start_time": self.start_time, "end_time": self.end_time}

    @classmethod
    def from_dict(cls, data: Any) -> "WorkSession":
        """Build a session from its JSON form.

        Raises:
            RecordError: If fields are missing, mistyped, or inconsistent
        """
        if not isinstance(data, dict):
            raise RecordError(f"Session must be an object, got {type(data).__name__}")

        session_id = data.get("id")
        start_time = data.get("start_time")
        end_time = data.get("end_time")

        if not isinstance(session_id, str) or not session_id:
            raise RecordError("Session is missing a string 'id'")
        # bool is an int subclass, but never a timestamp
        if not isinstance(start_time, int) or isinstance(start_time, bool):
            raise RecordError(f"Session {session_id} has invalid 'start_time': {start_time!r}")
        if end_time is not None and (not isinstance(end_time, int) or isinstance(end_time, bool)):
            raise RecordError(f"Session {session_id} has invalid 'end_time': {end_time!r}")

        try:
            return cls(id=session_id, start_time=start_time, end_time=end_time)
        except ValueError as e:
            raise RecordError(str(e)) from e


@dataclass(frozen=True)
class ActiveSessionRecord:
    """The persisted marker saying which task was being tracked, and since when."""

    task_id: str
    session: WorkSession

    def to_json(self) -> str:
        return json.dumps({"task_id": self.task_id, "session": self.session.to_dict()})

    @classmethod
    def from_json(cls, raw: str) -> "ActiveSessionRecord":
        """Parse a stored active record.

        Raises:
            RecordError: If the text is not a valid record for an open session
        """
        data = _loads(raw)
        if not isinstance(data, dict):
            raise RecordError("Active session record must be an object")

        task_id = data.get("task_id")
        if not isinstance(task_id, str) or not task_id:
            raise RecordError("Active session record is missing a string 'task_id'")

        session = WorkSession.from_dict(data.get("session"))
        if not session.is_active:
            raise RecordError(f"Active session record for {task_id} holds a closed session")

        return cls(task_id=task_id, session=session)


@dataclass(frozen=True)
class Task:
    """Read-only view of a host task, as far as time tracking cares."""

    id: str
    estimate_minutes: int | None = None

    @property
    def is_trackable(self) -> bool:
        """A task is trackable when it has a positive work estimate."""
        return self.estimate_minutes is not None and self.estimate_minutes > 0


def sessions_to_json(sessions: list[WorkSession]) -> str:
    return json.dumps([s.to_dict() for s in sessions])


def sessions_from_json(raw: str) -> list[WorkSession]:
    """Parse a stored list of closed sessions.

    Raises:
        RecordError: If the text is not a list of valid closed sessions
    """
    data = _loads(raw)
    if not isinstance(data, list):
        raise RecordError("Session list must be a JSON array")

    sessions = [WorkSession.from_dict(item) for item in data]
    for session in sessions:
        if session.is_active:
            raise RecordError(f"Session list contains open session {session.id}")
    return sessions


def _loads(raw: str) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise RecordError(f"Unparsable record: {e}") from e
