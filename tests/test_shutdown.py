"""Tests for the shutdown hooks and the threaded ticker."""

import atexit
import signal
import threading

import pytest

from worktime_tracker import shutdown
from worktime_tracker.shutdown import install_shutdown_hooks
from worktime_tracker.ticker import ThreadedTicker, Ticker


class PersistCounter:
    def __init__(self) -> None:
        self.calls = 0

    def persist_on_shutdown(self) -> bool:
        self.calls += 1
        return True


@pytest.fixture
def atexit_calls(monkeypatch) -> list:
    registered = []
    monkeypatch.setattr(atexit, "register", registered.append)
    monkeypatch.setattr(atexit, "unregister", registered.remove)
    return registered


@pytest.mark.skipif(not hasattr(signal, "SIGUSR1"), reason="needs POSIX signals")
class TestShutdownHooks:
    def test_signal_handler_persists_and_redelivers(self, monkeypatch, atexit_calls) -> None:
        tracker = PersistCounter()
        killed = []
        monkeypatch.setattr(shutdown.os, "kill", lambda pid, signum: killed.append(signum))
        previous = signal.getsignal(signal.SIGUSR1)

        uninstall = install_shutdown_hooks(tracker, signals=[signal.SIGUSR1])
        try:
            handler = signal.getsignal(signal.SIGUSR1)
            assert callable(handler)

            handler(signal.SIGUSR1, None)

            assert tracker.calls == 1
            assert killed == [signal.SIGUSR1]
            # the default action is restored so the re-raised signal terminates
            assert signal.getsignal(signal.SIGUSR1) == signal.SIG_DFL
        finally:
            uninstall()

        assert signal.getsignal(signal.SIGUSR1) == previous

    def test_atexit_hook(self, atexit_calls) -> None:
        tracker = PersistCounter()

        uninstall = install_shutdown_hooks(tracker, signals=[])
        assert len(atexit_calls) == 1
        atexit_calls[0]()
        assert tracker.calls == 1

        uninstall()
        assert atexit_calls == []

    def test_handler_outside_main_thread_is_skipped(self, atexit_calls) -> None:
        tracker = PersistCounter()
        previous = signal.getsignal(signal.SIGUSR1)
        result = {}

        def install():
            result["uninstall"] = install_shutdown_hooks(tracker, signals=[signal.SIGUSR1])

        thread = threading.Thread(target=install)
        thread.start()
        thread.join()

        assert signal.getsignal(signal.SIGUSR1) == previous
        result["uninstall"]()


class TestThreadedTicker:
    def test_is_a_ticker(self) -> None:
        assert isinstance(ThreadedTicker(), Ticker)

    def test_fires_until_cancelled(self) -> None:
        ticker = ThreadedTicker()
        fired = threading.Event()

        ticker.arm(fired.set, 0.01)
        assert ticker.armed
        assert fired.wait(5)

        ticker.cancel()
        assert not ticker.armed

    def test_callback_errors_do_not_stop_ticking(self) -> None:
        ticker = ThreadedTicker()
        calls = []
        done = threading.Event()

        def callback():
            calls.append(1)
            if len(calls) >= 3:
                done.set()
            raise RuntimeError("tick failed")

        ticker.arm(callback, 0.01)
        try:
            assert done.wait(5)
        finally:
            ticker.cancel()

    def test_cancel_when_not_armed(self) -> None:
        ThreadedTicker().cancel()
