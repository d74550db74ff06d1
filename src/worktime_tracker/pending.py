"""Per-task queue of closed sessions awaiting delivery.

A session lands here when it closes while its task's tracking context is
not around to receive it: an orphaned active record found at startup, or a
completion callback that failed. The queue is drained, in insertion order,
the next time that task's context initializes.
"""

import logging
from collections.abc import Callable

from .models import RecordError, WorkSession, sessions_from_json, sessions_to_json
from .store import SessionStore

logger = logging.getLogger(__name__)

PENDING_KEY_PREFIX = "worktime-pending-"


class PendingQueue:
    """Pending sessions, one persisted list per task."""

    def __init__(self, store: SessionStore) -> None:
        self.store = store

    @staticmethod
    def key(task_id: str) -> str:
        return PENDING_KEY_PREFIX + task_id

    def peek(self, task_id: str) -> list[WorkSession]:
        """Return the pending sessions for a task without removing them.

        A corrupt list is logged, removed and reported as empty.
        """
        raw = self.store.get(self.key(task_id))
        if raw is None:
            return []
        try:
            return sessions_from_json(raw)
        except RecordError as e:
            logger.warning(
                f"Discarding corrupt pending queue: {e}", extra={"task_id": task_id}
            )
            self.store.remove(self.key(task_id))
            return []

    def enqueue(self, task_id: str, session: WorkSession) -> None:
        """Append a closed session to a task's queue."""
        if session.is_active:
            raise ValueError(f"Cannot queue open session {session.id}")
        pending = self.peek(task_id)
        pending.append(session)
        self.store.set(self.key(task_id), sessions_to_json(pending))
        logger.info(
            f"Queued session for later delivery ({len(pending)} pending)",
            extra={"task_id": task_id, "session_id": session.id},
        )

    def drain(self, task_id: str, deliver: Callable[[WorkSession], None]) -> int:
        """Deliver and remove all pending sessions for a task.

        Sessions are delivered in insertion order. If ``deliver`` raises,
        the failing session and everything after it stay queued and the
        exception propagates; sessions already delivered are not kept.

        Returns:
            Number of sessions delivered
        """
        pending = self.peek(task_id)
        if not pending:
            return 0

        for index, session in enumerate(pending):
            try:
                deliver(session)
            except Exception:
                remaining = pending[index:]
                self.store.set(self.key(task_id), sessions_to_json(remaining))
                logger.error(
                    f"Delivery of pending session failed, {len(remaining)} left queued",
                    extra={"task_id": task_id, "session_id": session.id},
                )
                raise

        self.store.remove(self.key(task_id))
        logger.info(
            f"Delivered {len(pending)} pending session(s)", extra={"task_id": task_id}
        )
        return len(pending)

    def task_ids(self) -> list[str]:
        """Tasks that currently have a pending queue."""
        return [k[len(PENDING_KEY_PREFIX) :] for k in self.store.keys(PENDING_KEY_PREFIX)]
