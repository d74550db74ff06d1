"""Time aggregation and formatting for work sessions.

All durations are milliseconds, estimates are minutes.
"""

import math
import re
from collections.abc import Iterable

from .models import WorkSession

MS_PER_MINUTE = 60_000

_TIME_INPUT_RE = re.compile(r"^(?:(\d+)h)?\s*(?:(\d+)m?)?$")


def total_completed_time(sessions: Iterable[WorkSession]) -> int:
    """Sum the durations of closed sessions.

    Open sessions are skipped: the live one is accounted for separately
    through its elapsed time.
    """
    return sum(s.end_time - s.start_time for s in sessions if s.end_time is not None)


def total_with_active(sessions: Iterable[WorkSession], active_elapsed: int) -> int:
    """Closed session time plus the elapsed time of the live session."""
    return total_completed_time(sessions) + active_elapsed


def percent_of_estimate(total_ms: int, estimate_minutes: int | None) -> int | None:
    """Tracked time as a whole percentage of the estimate.

    Rounds half up. Returns None when there is no usable estimate.
    """
    if not estimate_minutes or estimate_minutes <= 0:
        return None
    return math.floor(total_ms / (estimate_minutes * MS_PER_MINUTE) * 100 + 0.5)


def is_over_estimate(total_ms: int, estimate_minutes: int | None) -> bool:
    if not estimate_minutes or estimate_minutes <= 0:
        return False
    return total_ms > estimate_minutes * MS_PER_MINUTE


def format_minutes(minutes: int) -> str:
    """Format minutes as "45m", "2h" or "1h 30m"."""
    hours, mins = divmod(minutes, 60)
    if hours == 0:
        return f"{mins}m"
    return f"{hours}h {mins}m" if mins > 0 else f"{hours}h"


def format_duration(ms: int) -> str:
    """Format a duration, truncated to whole minutes."""
    return format_minutes(max(ms, 0) // MS_PER_MINUTE)


def format_time_display(total_ms: int, estimate_minutes: int | None) -> str:
    """Render tracked time against the estimate, e.g. "30m / 1h (50%)"."""
    text = f"{format_duration(total_ms)} / {format_minutes(estimate_minutes or 0)}"
    percent = percent_of_estimate(total_ms, estimate_minutes)
    if percent is not None:
        text += f" ({percent}%)"
    return text


def parse_time_input(text: str) -> int | None:
    """Parse a JIRA style time estimate into minutes.

    Accepts "30" and "30m" (minutes), "2h", "2h 30m" and "2h30m".
    Returns None for anything else, and for zero.
    """
    trimmed = text.strip().lower()
    if not trimmed:
        return None

    match = _TIME_INPUT_RE.match(trimmed)
    if not match:
        return None

    hours = int(match.group(1)) if match.group(1) else 0
    mins = int(match.group(2)) if match.group(2) else 0
    total = hours * 60 + mins
    return total if total > 0 else None
