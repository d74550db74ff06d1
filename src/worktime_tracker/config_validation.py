"""Sanity checks for the worktime-tracker configuration.

Problems that would make the tracker misbehave (a sleep threshold below the
tick interval, an estimate that cannot be parsed) are errors; things that
are merely suspicious, like a misspelt key, are warnings.
"""

import logging
from typing import Any

from .aggregation import parse_time_input
from .models import WorktimeError

logger = logging.getLogger(__name__)


class ConfigValidationError(WorktimeError):
    """The configuration has errors and the tracker refuses to start."""

    pass


def parse_estimate(value: Any) -> int | None:
    """Read a task estimate from config: integer minutes or "1h 30m" style."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str):
        return parse_time_input(value)
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConfigValidator:
    """Collects errors and warnings for one configuration dict."""

    SECTIONS = {"gap_detection", "filter_policy", "data_dir", "tuning", "tasks"}
    FILTER_POLICIES = ("always", "gap-only")

    # tuning parameter -> smallest accepted value (seconds)
    TUNING_MINIMUMS = {
        "tick_interval": 0.01,
        "sleep_threshold": 0,
        "min_session_duration": 0,
        "status_interval": 0,
    }

    TASK_FIELDS = {"estimate"}

    def __init__(self):
        self.errors: list[str] = []
        self.warnings: list[str] = []

    def validate(self, config: dict[str, Any]) -> tuple[list[str], list[str]]:
        """Check ``config`` and return (errors, warnings)."""
        self.errors = []
        self.warnings = []

        for key in config:
            if key not in self.SECTIONS:
                self.warnings.append(f"Unknown top-level config key: '{key}'")

        self._check_options(config)
        self._check_tuning(config.get("tuning", {}))
        self._check_tasks(config.get("tasks", {}))

        return self.errors, self.warnings

    def _check_options(self, config: dict) -> None:
        if not isinstance(config.get("gap_detection", True), bool):
            self.errors.append("'gap_detection' must be a boolean")

        policy = config.get("filter_policy", "always")
        if policy not in self.FILTER_POLICIES:
            self.errors.append(
                f"'filter_policy' must be one of: {', '.join(self.FILTER_POLICIES)}, got {policy!r}"
            )

        if not isinstance(config.get("data_dir", ""), str):
            self.errors.append("'data_dir' must be a string")

    def _check_tuning(self, tuning: Any) -> None:
        if not isinstance(tuning, dict):
            self.errors.append("'tuning' must be a table")
            return

        for name, value in tuning.items():
            if name not in self.TUNING_MINIMUMS:
                self.warnings.append(f"Unknown tuning parameter: 'tuning.{name}'")
            elif not _is_number(value):
                self.errors.append(
                    f"'tuning.{name}' must be a number, got {type(value).__name__}"
                )
            elif value < self.TUNING_MINIMUMS[name]:
                self.errors.append(
                    f"'tuning.{name}' must be >= {self.TUNING_MINIMUMS[name]}, got {value}"
                )

        tick = tuning.get("tick_interval")
        threshold = tuning.get("sleep_threshold")
        if _is_number(tick) and _is_number(threshold) and threshold <= tick:
            self.errors.append(
                "'tuning.sleep_threshold' must be larger than 'tuning.tick_interval', "
                "otherwise every tick looks like a sleep gap"
            )

    def _check_tasks(self, tasks: Any) -> None:
        if not isinstance(tasks, dict):
            self.errors.append("'tasks' must be a table")
            return

        for task_id, task in tasks.items():
            where = f"tasks.{task_id}"
            if not isinstance(task, dict):
                self.errors.append(f"{where} must be a table")
                continue

            for field in set(task) - self.TASK_FIELDS:
                self.warnings.append(f"{where} has unknown field '{field}'")

            if "estimate" not in task:
                self.warnings.append(f"{where} has no estimate - it will not be tracked")
            elif parse_estimate(task["estimate"]) is None:
                self.errors.append(
                    f"{where}.estimate must be positive minutes or a duration like '1h 30m', "
                    f"got {task['estimate']!r}"
                )


def validate_config(config: dict[str, Any]) -> tuple[list[str], list[str]]:
    """Return (errors, warnings) for a configuration dict."""
    return ConfigValidator().validate(config)


def validate_and_warn(config: dict[str, Any]) -> bool:
    """Log the validation results; True when there are no errors."""
    errors, warnings = validate_config(config)
    for warning in warnings:
        logger.warning(f"Config warning: {warning}")
    for error in errors:
        logger.error(f"Config error: {error}")
    return not errors
