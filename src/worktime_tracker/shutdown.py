"""Save the live session when the process is told to terminate.

On SIGTERM/SIGHUP the open session is written to the store as-is and the
signal is re-raised with its default action, so the process dies right
away without running cleanup code that would close the session. The next
start recovers it. An ``atexit`` hook covers interpreter exits that skip
the host's normal stop.
"""

import atexit
import logging
import os
import signal
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)


class ShutdownPersistable(Protocol):
    def persist_on_shutdown(self) -> bool: ...


def _default_signals() -> list[int]:
    signals = [signal.SIGTERM]
    # not available on Windows
    if hasattr(signal, "SIGHUP"):
        signals.append(signal.SIGHUP)
    return signals


def install_shutdown_hooks(
    tracker: ShutdownPersistable,
    signals: list[int] | None = None,
) -> Callable[[], None]:
    """Install signal and exit hooks that persist the tracker's live session.

    Args:
        tracker: SingleTaskTracker or MultiTaskTracker
        signals: Signals to handle (default SIGTERM and SIGHUP)

    Returns:
        A function that removes the hooks again
    """
    if signals is None:
        signals = _default_signals()

    def _persist() -> None:
        tracker.persist_on_shutdown()

    def _handle_signal(signum, _frame) -> None:
        logger.info(f"Signal {signum} received, saving active session")
        tracker.persist_on_shutdown()
        signal.signal(signum, signal.SIG_DFL)
        os.kill(os.getpid(), signum)

    atexit.register(_persist)

    previous = {}
    for signum in signals:
        try:
            previous[signum] = signal.signal(signum, _handle_signal)
        except (OSError, ValueError):
            # Not in the main thread, or signal not supported here
            logger.debug(f"Cannot install handler for signal {signum}")

    def uninstall() -> None:
        atexit.unregister(_persist)
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    return uninstall
