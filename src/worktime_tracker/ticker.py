"""Periodic tick sources for the trackers.

The trackers cancel their ticker before every state transition and re-arm
it once the new session is in place, so a tick never interleaves with a
handoff or a stop.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable

logger = logging.getLogger(__name__)


class Ticker(ABC):
    """Abstract base class for periodic timers."""

    @abstractmethod
    def arm(self, callback: Callable[[], object], interval: float) -> None:
        """Start calling ``callback`` every ``interval`` seconds.

        Arming an armed ticker replaces the previous schedule.
        """
        pass

    @abstractmethod
    def cancel(self) -> None:
        """Stop calling the callback. Safe to call when not armed."""
        pass

    @property
    @abstractmethod
    def armed(self) -> bool:
        pass


class ThreadedTicker(Ticker):
    """Ticker running the callback on a daemon thread.

    ``cancel`` never waits for the thread, so it is safe to call from inside
    the callback or while holding a lock the callback needs.
    """

    def __init__(self, name: str = "worktime-ticker") -> None:
        self.name = name
        self._stop: threading.Event | None = None
        self._thread: threading.Thread | None = None

    def arm(self, callback: Callable[[], object], interval: float) -> None:
        self.cancel()
        stop = threading.Event()
        thread = threading.Thread(
            target=self._run, args=(stop, callback, interval), name=self.name, daemon=True
        )
        self._stop = stop
        self._thread = thread
        thread.start()

    def cancel(self) -> None:
        if self._stop is not None:
            self._stop.set()
        self._stop = None
        self._thread = None

    @property
    def armed(self) -> bool:
        return self._stop is not None

    @staticmethod
    def _run(stop: threading.Event, callback: Callable[[], object], interval: float) -> None:
        while not stop.wait(interval):
            try:
                callback()
            except Exception:
                logger.exception("Tick callback failed")
