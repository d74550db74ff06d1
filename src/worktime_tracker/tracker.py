"""Single-task work-session tracker.

Tracks time against one task for the lifetime of its activation: recovers
a session left open by a crash, splits sessions across system sleep, and
hands every closed session to the host through the engine.
"""

import logging
import threading

from .engine import ACTIVE_SESSION_KEY, SessionEngine
from .models import ActiveSessionRecord, WorkSession
from .state import CloseReason, TrackingState
from .ticker import Ticker

logger = logging.getLogger(__name__)


class SingleTaskTracker:
    """State machine tracking time against one task at a time.

    All public methods are serialized on an internal lock, so a threaded
    ticker cannot run ``tick`` in the middle of a transition.
    """

    def __init__(
        self,
        engine: SessionEngine,
        ticker: Ticker | None = None,
        enable_validation: bool = True,
    ) -> None:
        """Initialize the tracker in the idle state.

        Args:
            engine: Persistence and delivery primitives
            ticker: Periodic timer driving ``tick``; without one the host
                calls ``tick`` itself
            enable_validation: Check state invariants on every transition
        """
        self.engine = engine
        self.ticker = ticker
        self._state = TrackingState(enable_validation=enable_validation)
        self._lock = threading.RLock()

    @property
    def state(self) -> TrackingState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state.is_active

    @property
    def elapsed_ms(self) -> int:
        return self._state.elapsed_ms

    @property
    def task_id(self) -> str | None:
        return self._state.task_id

    @property
    def session(self) -> WorkSession | None:
        return self._state.session

    def activate(self, task_id: str, is_trackable: bool = True) -> None:
        """Point the tracker at a task.

        A non-trackable task leaves the tracker idle, stopping any running
        session. A trackable task ends up with exactly one live session:
        recovered if one was persisted for it, fresh otherwise. Activating
        the task already being tracked changes nothing.
        """
        with self._lock:
            if not is_trackable:
                if self._state.is_active:
                    self._close_current(CloseReason.STOP)
                return

            if self._state.is_active:
                if self._state.task_id == task_id:
                    return
                self._close_current(CloseReason.HANDOFF)

            self._cancel_ticker()
            session = self.engine.claim(task_id)
            self._state.begin(task_id, session, self.engine.now())
            self._arm_ticker()

    def tick(self, now: int | None = None) -> bool:
        """Re-evaluate elapsed time, splitting the session after a sleep gap.

        Returns:
            True if a session is active after the tick
        """
        with self._lock:
            if not self._state.is_active:
                return False

            if now is None:
                now = self.engine.now()
            gap = now - self._state.last_tick
            policy = self.engine.policy

            if policy.gap_detection and gap > policy.sleep_threshold_ms:
                self._split_at_gap(now, gap)
            else:
                self._state.advance(now)
            return True

    def end_current_session(self) -> None:
        """Stop tracking on the host's request (e.g. a pause button)."""
        with self._lock:
            if self._state.is_active:
                self._close_current(CloseReason.STOP)

    def deactivate(self) -> None:
        """Tear the tracking context down, delivering the live session."""
        with self._lock:
            if self._state.is_active:
                self._close_current(CloseReason.TEARDOWN)

    def persist_on_shutdown(self) -> bool:
        """Save the live session, still open, for recovery on next start.

        Meant for signal and exit hooks: it never waits for the lock, never
        closes the session and never raises.

        Returns:
            True if an open session was written
        """
        acquired = self._lock.acquire(blocking=False)
        try:
            task_id, session = self._state.task_id, self._state.session
            if task_id is None or session is None:
                return False
            record = ActiveSessionRecord(task_id=task_id, session=session)
            try:
                self.engine.store.set(ACTIVE_SESSION_KEY, record.to_json())
            except Exception as e:
                logger.debug(f"Could not save active session on shutdown: {e}")
                return False
            return True
        finally:
            if acquired:
                self._lock.release()

    def _split_at_gap(self, now: int, gap: int) -> None:
        """Close the live session at the last tick and start a new one at ``now``.

        The new session is persisted before the closed one is delivered, so
        a crash in between never recovers the stalled interval.
        """
        task_id = self._state.task_id
        closed = self.engine.close(self._state.session, self._state.last_tick)
        logger.warning(
            "Tick gap exceeded sleep threshold, splitting session",
            extra={"task_id": task_id, "session_id": self._state.session.id, "gap": gap},
        )

        # in-memory state must lead the store: shutdown hooks persist from it
        fresh = self.engine.new_session(now)
        self._state.begin(task_id, fresh, now)
        self.engine.write_active_record(task_id, fresh)

        if closed is not None:
            self.engine.complete(task_id, closed, CloseReason.GAP)

    def _close_current(self, reason: CloseReason) -> None:
        self._cancel_ticker()
        task_id, session = self._state.task_id, self._state.session
        closed = self.engine.close(session, self.engine.now())
        self._state.reset()
        self.engine.clear_active_record()
        if closed is not None:
            self.engine.complete(task_id, closed, reason)

    def _arm_ticker(self) -> None:
        if self.ticker is not None:
            self.ticker.arm(self.tick, self.engine.policy.tick_interval)

    def _cancel_ticker(self) -> None:
        if self.ticker is not None:
            self.ticker.cancel()
