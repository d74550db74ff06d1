"""Shared persistence, filtering and delivery for the session trackers.

The trackers in tracker.py and multi_task.py own the state machine and the
tick loop. Everything that touches the store or the host callback goes
through the SessionEngine defined here:

- reading, writing and clearing the persisted active session record
- the initialization algorithm (drain pending, recover, reconcile, start)
- the minimum duration filter and its policy
- delivering closed sessions, falling back to the pending queue

Store failures on these paths never abort a transition. They are logged,
kept on ``last_error`` and handed to ``on_store_error`` if the host gave
one; tracking carries on in memory.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .config import get_tuning_param
from .ids import IdGenerator, TimestampIdGenerator
from .models import ActiveSessionRecord, RecordError, WorkSession
from .pending import PendingQueue
from .state import CloseReason
from .store import SessionStore, StoreError
from .utils import now_ms

logger = logging.getLogger(__name__)

ACTIVE_SESSION_KEY = "worktime-active-session"

SessionCallback = Callable[[str, WorkSession], None]


class FilterPolicy(Enum):
    """Which closes the minimum duration filter applies to."""

    ALWAYS = "always"
    GAP_ONLY = "gap-only"


@dataclass
class TrackerPolicy:
    """Tunable behaviour of the tracking engine.

    Attributes:
        tick_interval: Seconds between ticks while a session is active
        sleep_threshold: A tick gap longer than this (seconds) is treated as
            system sleep and splits the session
        min_session_duration: Closed sessions shorter than this (seconds)
            are discarded as noise
        gap_detection: Enable sleep gap splitting
        filter_policy: Which closes the minimum duration filter applies to
    """

    tick_interval: float = 1.0
    sleep_threshold: float = 120.0
    min_session_duration: float = 60.0
    gap_detection: bool = True
    filter_policy: FilterPolicy = FilterPolicy.ALWAYS

    @property
    def sleep_threshold_ms(self) -> int:
        return int(self.sleep_threshold * 1000)

    @property
    def min_session_duration_ms(self) -> int:
        return int(self.min_session_duration * 1000)

    @classmethod
    def from_config(cls, config: dict) -> "TrackerPolicy":
        """Create a policy from the application config dict."""
        return cls(
            tick_interval=get_tuning_param(
                config, "tick_interval", "WORKTIME_TICK_INTERVAL", 1.0
            ),
            sleep_threshold=get_tuning_param(
                config, "sleep_threshold", "WORKTIME_SLEEP_THRESHOLD", 120.0
            ),
            min_session_duration=get_tuning_param(
                config, "min_session_duration", "WORKTIME_MIN_SESSION_DURATION", 60.0
            ),
            gap_detection=config.get("gap_detection", True),
            filter_policy=FilterPolicy(config.get("filter_policy", FilterPolicy.ALWAYS.value)),
        )


class SessionEngine:
    """Persistence and delivery primitives shared by the trackers."""

    def __init__(
        self,
        store: SessionStore,
        on_session_complete: SessionCallback,
        policy: TrackerPolicy | None = None,
        clock: Callable[[], int] = now_ms,
        id_generator: IdGenerator | None = None,
        on_store_error: Callable[[StoreError], None] | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Durable key-value store for the active record and queues
            on_session_complete: Called with (task_id, session) for every
                delivered closed session, including drained pending ones
            policy: Tuning and filter policy (defaults to TrackerPolicy())
            clock: Returns the current time as epoch milliseconds
            id_generator: Source of session ids
            on_store_error: Optional host hook for non-fatal store failures
        """
        self.store = store
        self.on_session_complete = on_session_complete
        self.policy = policy or TrackerPolicy()
        self.clock = clock
        self.id_generator = id_generator or TimestampIdGenerator(clock)
        self.on_store_error = on_store_error
        self.pending = PendingQueue(store)
        self.last_error: StoreError | None = None

    def now(self) -> int:
        return self.clock()

    def new_session(self, start_time: int | None = None) -> WorkSession:
        """Create an open session starting now (or at ``start_time``)."""
        if start_time is None:
            start_time = self.now()
        return WorkSession(id=self.id_generator.next(), start_time=start_time)

    # Active session record

    def read_active_record(self) -> ActiveSessionRecord | None:
        """Read the persisted active record.

        Unreadable stores and corrupt records both read as "no record";
        a corrupt record is removed so it cannot block later starts.
        """
        try:
            raw = self.store.get(ACTIVE_SESSION_KEY)
        except StoreError as e:
            self._store_failed(e)
            return None

        if raw is None:
            return None

        try:
            return ActiveSessionRecord.from_json(raw)
        except RecordError as e:
            logger.warning(f"Ignoring corrupt active session record: {e}")
            self.clear_active_record()
            return None

    def write_active_record(self, task_id: str, session: WorkSession) -> bool:
        """Persist ``session`` as the active session of ``task_id``."""
        record = ActiveSessionRecord(task_id=task_id, session=session)
        try:
            self.store.set(ACTIVE_SESSION_KEY, record.to_json())
        except StoreError as e:
            self._store_failed(e)
            return False
        return True

    def clear_active_record(self) -> bool:
        try:
            self.store.remove(ACTIVE_SESSION_KEY)
        except StoreError as e:
            self._store_failed(e)
            return False
        return True

    # Initialization

    def claim(self, task_id: str) -> WorkSession:
        """Run the initialization algorithm for a task's tracking context.

        1. Deliver the task's pending sessions.
        2. Recover the persisted session if it belongs to this task.
        3. Otherwise close a persisted session of another task into that
           task's pending queue.
        4. Start and persist a fresh session.

        Returns:
            The live session, recovered or fresh
        """
        self.drain_pending(task_id)

        record = self.read_active_record()
        if record is not None and record.task_id == task_id:
            logger.info(
                "Recovered active session",
                extra={"task_id": task_id, "session_id": record.session.id},
            )
            return record.session

        if record is not None:
            self.reconcile_orphan(record)

        session = self.new_session()
        self.write_active_record(task_id, session)
        logger.info("Started session", extra={"task_id": task_id, "session_id": session.id})
        return session

    def drain_pending(self, task_id: str) -> int:
        """Deliver the pending sessions of a task. Failures leave them queued."""
        try:
            return self.pending.drain(task_id, lambda s: self.on_session_complete(task_id, s))
        except StoreError as e:
            self._store_failed(e)
        except Exception as e:
            # the undelivered tail is still queued, see PendingQueue.drain
            logger.error(f"Pending delivery interrupted: {e}", extra={"task_id": task_id})
        return 0

    def reconcile_orphan(self, record: ActiveSessionRecord) -> None:
        """Close a persisted session of another task into that task's queue."""
        closed = self.close(record.session, self.now())
        logger.info(
            "Closing orphaned session of another task",
            extra={"task_id": record.task_id, "session_id": record.session.id},
        )
        if closed is not None and self.passes_filter(closed, CloseReason.ORPHANED):
            try:
                self.pending.enqueue(record.task_id, closed)
            except StoreError as e:
                self._store_failed(e)
        self.clear_active_record()

    # Closing and delivery

    def close(self, session: WorkSession, at: int) -> WorkSession | None:
        """Close a session at ``at``.

        Returns None, discarding the session, when ``at`` is before the
        session start (the wall clock moved backwards).
        """
        if at < session.start_time:
            logger.warning(
                f"Discarding session: end {at} is before start {session.start_time}",
                extra={"session_id": session.id},
            )
            return None
        return session.closed(at)

    def passes_filter(self, session: WorkSession, reason: CloseReason) -> bool:
        """Apply the minimum duration filter to a closed session."""
        duration = session.duration_ms
        if duration is None or duration < 0:
            return False
        if self.policy.filter_policy == FilterPolicy.GAP_ONLY and reason != CloseReason.GAP:
            return True
        return duration >= self.policy.min_session_duration_ms

    def complete(self, task_id: str, session: WorkSession, reason: CloseReason) -> bool:
        """Filter and deliver a closed session.

        If the host callback raises, the session is queued as pending for
        its task instead and will be delivered when that task's context
        next initializes.

        Returns:
            True if the host received the session
        """
        extra = {"task_id": task_id, "session_id": session.id, "elapsed": session.duration_ms}
        if not self.passes_filter(session, reason):
            logger.info(f"Discarding short session ({reason.value})", extra=extra)
            return False

        try:
            self.on_session_complete(task_id, session)
        except Exception as e:
            logger.error(f"Session delivery failed, queueing it: {e}", extra=extra)
            try:
                self.pending.enqueue(task_id, session)
            except StoreError as store_error:
                self._store_failed(store_error)
            return False

        logger.info(f"Session complete ({reason.value})", extra=extra)
        return True

    def _store_failed(self, error: StoreError) -> None:
        self.last_error = error
        logger.error(f"Session store failure: {error}")
        if self.on_store_error is not None:
            self.on_store_error(error)
