"""In-memory state of a tracking context.

This module holds the mutable side of a tracker, kept apart from the
persistence and delivery logic in engine.py:

- TrackerState enum for the idle/active state machine
- CloseReason enum naming the paths through which a session closes
- TrackingState dataclass holding the live session and tick bookkeeping
"""

from dataclasses import dataclass
from enum import Enum

from .models import WorkSession


class TrackerState(Enum):
    """Enumeration for tracker states."""

    IDLE = "idle"  # No session open
    ACTIVE = "active"  # A session is open and accumulating time


class CloseReason(Enum):
    """Why a session was closed.

    The minimum duration filter policy is expressed in terms of these.
    """

    STOP = "stop"  # Explicit stop, or the task stopped being trackable
    HANDOFF = "handoff"  # Focus moved to another task
    GAP = "gap"  # Tick loop stalled past the sleep threshold
    TEARDOWN = "teardown"  # The tracking context is going away
    ORPHANED = "orphaned"  # Found a persisted session for another task on startup


@dataclass
class TrackingState:
    """Live state of one tracking context.

    Invariants, checked when validation is enabled:
    - ACTIVE iff task_id and session are set
    - the live session is open
    - last_tick is never before the session start
    """

    state: TrackerState = TrackerState.IDLE
    task_id: str | None = None
    session: WorkSession | None = None
    elapsed_ms: int = 0
    last_tick: int | None = None

    enable_validation: bool = True

    @property
    def is_active(self) -> bool:
        return self.state == TrackerState.ACTIVE

    def begin(self, task_id: str, session: WorkSession, now: int) -> None:
        """Enter ACTIVE with ``session`` as the live session.

        Works for both fresh and recovered sessions: elapsed time is
        measured from the session start, ticks from ``now``.
        """
        self.state = TrackerState.ACTIVE
        self.task_id = task_id
        self.session = session
        self.elapsed_ms = max(now - session.start_time, 0)
        self.last_tick = max(now, session.start_time)
        if self.enable_validation:
            self._validate()

    def advance(self, now: int) -> None:
        """Record a regular tick."""
        self.elapsed_ms = max(now - self.session.start_time, 0)
        self.last_tick = max(now, self.session.start_time)
        if self.enable_validation:
            self._validate()

    def reset(self) -> None:
        """Return to IDLE, forgetting the live session."""
        self.state = TrackerState.IDLE
        self.task_id = None
        self.session = None
        self.elapsed_ms = 0
        self.last_tick = None

    def _validate(self) -> None:
        """Validate the ACTIVE invariants.

        Raises:
            ValueError: If an invariant is violated
        """
        if self.task_id is None or self.session is None:
            raise ValueError("Active tracking state needs both a task and a session")
        if not self.session.is_active:
            raise ValueError(f"Live session {self.session.id} is already closed")
        if self.last_tick is not None and self.last_tick < self.session.start_time:
            raise ValueError(
                f"Invalid tick: last_tick ({self.last_tick}) is before "
                f"session start ({self.session.start_time})"
            )

    def get_state_summary(self) -> dict:
        """Get a summary of current state for debugging."""
        return {
            "state": self.state.value,
            "task_id": self.task_id,
            "session_id": self.session.id if self.session else None,
            "start": self.session.start.isoformat() if self.session else None,
            "elapsed_ms": self.elapsed_ms,
            "last_tick": self.last_tick,
        }
