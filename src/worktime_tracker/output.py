"""Logging and user-facing output for worktime-tracker.

Log records carry tracker context through ``extra=``: the task and session
they concern, and for timing messages the elapsed time or sleep gap in
milliseconds. The log file gets one JSON object per line; the console gets
a short coloured line.
"""

import json
import logging
import sys
from datetime import UTC, datetime

from termcolor import cprint

# Extra fields the trackers attach to log records
CONTEXT_FIELDS = ("task_id", "session_id", "elapsed", "gap")
# Fields holding milliseconds, rendered as seconds
MS_FIELDS = {"elapsed", "gap"}

# (color, attrs) per minimum level, most severe first
LEVEL_STYLES = [
    (logging.CRITICAL, "red", ["bold", "blink"]),
    (logging.ERROR, "red", ["bold"]),
    (logging.WARNING, None, ["bold"]),
    (logging.INFO, "yellow", []),
]


def _context(record: logging.LogRecord) -> dict[str, str]:
    context = {}
    for key in CONTEXT_FIELDS:
        value = getattr(record, key, None)
        if value is None:
            continue
        if key in MS_FIELDS and isinstance(value, int):
            context[key] = f"{value / 1000:.1f}s"
        else:
            context[key] = str(value)
    return context


class SessionLogFormatter(logging.Formatter):
    """Formats records as JSON lines, or as ``HH:MM:SS: message (context)``."""

    def __init__(self, use_json: bool = False, run_mode: dict = None) -> None:
        super().__init__()
        self.use_json = use_json
        self.run_mode = run_mode or {}

    def format(self, record: logging.LogRecord) -> str:
        context = _context(record)
        message = record.getMessage()
        exception = self.formatException(record.exc_info) if record.exc_info else None

        if self.use_json:
            entry = {
                "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "message": message,
                "location": f"{record.module}.{record.funcName}:{record.lineno}",
                **context,
            }
            if self.run_mode:
                entry["run_mode"] = self.run_mode
            if exception:
                entry["exception"] = exception
            return json.dumps(entry)

        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{stamp}: {message}"
        if context:
            line += " (" + ", ".join(f"{k}={v}" for k, v in context.items()) + ")"
        if exception:
            line += "\n" + exception
        return line


class LevelColorHandler(logging.StreamHandler):
    """Stream handler colouring each line by its level (see LEVEL_STYLES)."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
            color, attrs = None, []
            for level, level_color, level_attrs in LEVEL_STYLES:
                if record.levelno >= level:
                    color, attrs = level_color, level_attrs
                    break
            if color or attrs:
                cprint(line, color=color, attrs=attrs, file=self.stream)
            else:
                self.stream.write(line + self.terminator)
            self.flush()
        except Exception:
            self.handleError(record)


def setup_logging(
    json_format: bool = False,
    log_level: int = logging.DEBUG,
    console_log_level: int = logging.ERROR,
    log_file: str = None,
    run_mode: dict = None,
) -> None:
    """
    Replace the root logger's handlers with a log file and a console handler.

    Args:
        json_format: Write the log file as JSON lines
        log_level: Root logging level; 0 disables the log file
        console_log_level: Console threshold; 0 disables console logging
        log_file: Path of the log file, if any
        run_mode: Subcommand and task, recorded in every JSON log entry
    """
    handlers: list[logging.Handler] = []

    if log_file and log_level:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(SessionLogFormatter(use_json=json_format, run_mode=run_mode))
        handlers.append(file_handler)

    if console_log_level:
        console = LevelColorHandler(sys.stderr)
        console.setLevel(console_log_level)
        console.setFormatter(SessionLogFormatter(run_mode=run_mode))
        handlers.append(console)

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers[:] = handlers


def user_output(msg: str, color: str = None, attrs: list = None) -> None:
    """Print program output (status lines, reports) to stdout, optionally coloured."""
    if color or attrs:
        cprint(msg, color=color, attrs=attrs)
    else:
        print(msg)
