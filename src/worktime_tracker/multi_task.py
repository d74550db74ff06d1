"""Work-session tracking that follows the host's focused task.

Views that show several tasks at once report which task has focus; time is
tracked against it as long as it is trackable, and handed off when focus
moves to another task.
"""

import logging
from collections.abc import Iterable

from .engine import SessionEngine
from .models import Task
from .ticker import Ticker
from .tracker import SingleTaskTracker

logger = logging.getLogger(__name__)


class MultiTaskTracker:
    """Retargets a single-task tracker as the focused task changes."""

    def __init__(
        self,
        engine: SessionEngine,
        ticker: Ticker | None = None,
        enable_validation: bool = True,
    ) -> None:
        self._tracker = SingleTaskTracker(engine, ticker, enable_validation)
        # task the user paused; not restarted until focus moves away
        self._paused_task_id: str | None = None

    @property
    def tracker(self) -> SingleTaskTracker:
        return self._tracker

    @property
    def tracking_task_id(self) -> str | None:
        return self._tracker.task_id

    @property
    def elapsed_ms(self) -> int:
        return self._tracker.elapsed_ms

    @property
    def is_tracking(self) -> bool:
        return self._tracker.is_active

    def update(self, focused_task_id: str | None, tasks: Iterable[Task]) -> None:
        """Report the focused task (or None) for this cycle.

        Args:
            focused_task_id: Task that currently has the user's attention
            tasks: Tasks known to the host, used to check trackability
        """
        task = None
        if focused_task_id is not None:
            task = next((t for t in tasks if t.id == focused_task_id), None)
        trackable = task is not None and task.is_trackable

        if focused_task_id != self._paused_task_id:
            self._paused_task_id = None

        if trackable and self._paused_task_id is None:
            if focused_task_id != self._tracker.task_id:
                previous = self._tracker.task_id
                self._tracker.activate(focused_task_id)
                logger.debug(
                    f"Focus handoff from {previous}", extra={"task_id": focused_task_id}
                )
        elif self._tracker.is_active and not trackable:
            self._tracker.end_current_session()

    def end_current_session(self) -> None:
        """Pause tracking of the current task until focus moves elsewhere."""
        self._paused_task_id = self._tracker.task_id
        self._tracker.end_current_session()

    def close(self) -> None:
        """Tear the tracking context down, delivering the live session."""
        self._paused_task_id = None
        self._tracker.deactivate()

    def tick(self, now: int | None = None) -> bool:
        return self._tracker.tick(now)

    def persist_on_shutdown(self) -> bool:
        return self._tracker.persist_on_shutdown()
