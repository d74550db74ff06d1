"""Session id generators.

The engine takes an IdGenerator so that tests can supply deterministic ids.
"""

import secrets
import string
from abc import ABC, abstractmethod
from collections.abc import Callable

from .utils import now_ms

_BASE36 = string.digits + string.ascii_lowercase


def to_base36(value: int) -> str:
    """Render a non-negative integer in base 36 (0-9a-z)."""
    if value < 0:
        raise ValueError(f"Cannot encode negative value {value} in base 36")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


class IdGenerator(ABC):
    """Source of unique session identifiers."""

    @abstractmethod
    def next(self) -> str:
        """Return a new identifier, never returned before by this generator."""
        pass


class TimestampIdGenerator(IdGenerator):
    """Ids of the form ``ts-<base36 ms>-<6 random chars>``.

    Unique across process restarts without keeping any state.
    """

    def __init__(self, clock: Callable[[], int] = now_ms) -> None:
        self.clock = clock

    def next(self) -> str:
        suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
        return f"ts-{to_base36(self.clock())}-{suffix}"


class SequentialIdGenerator(IdGenerator):
    """Ids of the form ``<prefix>-<n>`` with n counting up from ``start``."""

    def __init__(self, prefix: str = "session", start: int = 1) -> None:
        self.prefix = prefix
        self.counter = start

    def next(self) -> str:
        value = f"{self.prefix}-{self.counter}"
        self.counter += 1
        return value
