"""
Fakes for driving the trackers deterministically in tests.

- FakeClock: a settable epoch-millisecond clock
- ManualTicker: a ticker that only fires when the test says so
- SessionRecorder: a completion callback that records what it receives
- FailingStore: a MemoryStore whose reads and/or writes can be made to fail
"""

from collections.abc import Callable

from worktime_tracker.models import WorkSession
from worktime_tracker.store import MemoryStore, StoreError
from worktime_tracker.ticker import Ticker

# 2023-11-14T22:13:20Z
T0 = 1_700_000_000_000


class FakeClock:
    """Callable clock returning ``now`` (epoch ms)."""

    def __init__(self, start: int = T0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float = 0, ms: int = 0) -> int:
        self.now += int(seconds * 1000) + ms
        return self.now


class ManualTicker(Ticker):
    """Ticker that records arm/cancel calls and fires on demand."""

    def __init__(self) -> None:
        self.callback: Callable[[], object] | None = None
        self.interval: float | None = None
        self.arm_count = 0
        self.cancel_count = 0

    def arm(self, callback: Callable[[], object], interval: float) -> None:
        self.callback = callback
        self.interval = interval
        self.arm_count += 1

    def cancel(self) -> None:
        self.callback = None
        self.cancel_count += 1

    @property
    def armed(self) -> bool:
        return self.callback is not None

    def fire(self) -> None:
        assert self.callback is not None, "ticker fired while not armed"
        self.callback()


class SessionRecorder:
    """Completion callback collecting ``(task_id, session)`` pairs.

    Set ``fail`` to make the next deliveries raise RuntimeError.
    """

    def __init__(self) -> None:
        self.delivered: list[tuple[str, WorkSession]] = []
        self.fail = False
        self.attempts = 0

    def __call__(self, task_id: str, session: WorkSession) -> None:
        self.attempts += 1
        if self.fail:
            raise RuntimeError("host persistence unavailable")
        self.delivered.append((task_id, session))

    def sessions_for(self, task_id: str) -> list[WorkSession]:
        return [s for t, s in self.delivered if t == task_id]

    @property
    def session_ids(self) -> list[str]:
        return [s.id for _, s in self.delivered]


class FailingStore(MemoryStore):
    """MemoryStore that raises StoreError while the fail flags are set."""

    def __init__(self, data: dict[str, str] | None = None) -> None:
        super().__init__(data)
        self.fail_reads = False
        self.fail_writes = False

    def get(self, key: str) -> str | None:
        if self.fail_reads:
            raise StoreError(f"read of {key} failed")
        return super().get(key)

    def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise StoreError(f"write of {key} failed")
        super().set(key, value)

    def remove(self, key: str) -> None:
        if self.fail_writes:
            raise StoreError(f"remove of {key} failed")
        super().remove(key)
