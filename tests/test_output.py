"""Tests for log formatting and the logging setup."""

import json
import logging
import sys

import pytest

from worktime_tracker.output import (
    LevelColorHandler,
    SessionLogFormatter,
    setup_logging,
    user_output,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(msg: str = "Session complete", level: int = logging.INFO, **extra):
    record = logging.LogRecord("worktime_tracker.engine", level, __file__, 42, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestSessionLogFormatter:
    def test_json_output(self) -> None:
        formatter = SessionLogFormatter(use_json=True, run_mode={"subcommand": "track"})
        record = make_record(task_id="T1", session_id="s-1", elapsed=90_000)

        data = json.loads(formatter.format(record))

        assert data["message"] == "Session complete"
        assert data["level"] == "INFO"
        assert data["task_id"] == "T1"
        assert data["session_id"] == "s-1"
        assert data["elapsed"] == "90.0s"
        assert data["run_mode"] == {"subcommand": "track"}

    def test_missing_context_is_omitted(self) -> None:
        data = json.loads(SessionLogFormatter(use_json=True).format(make_record()))

        assert "task_id" not in data
        assert "run_mode" not in data

    def test_human_output(self) -> None:
        formatter = SessionLogFormatter()
        line = formatter.format(make_record("Splitting session", gap=600_000, task_id="T1"))

        assert line.endswith("Splitting session (task_id=T1, gap=600.0s)")

    def test_exception_included(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record(level=logging.ERROR)
            record.exc_info = sys.exc_info()

        assert "RuntimeError: boom" in SessionLogFormatter().format(record)


class TestSetupLogging:
    def test_console_and_file_handlers(self, tmp_path, restore_root_logger) -> None:
        log_file = tmp_path / "worktime.json.log"

        setup_logging(
            json_format=True,
            log_level=logging.DEBUG,
            console_log_level=logging.ERROR,
            log_file=log_file,
        )

        handlers = restore_root_logger.handlers
        assert len(handlers) == 2
        assert any(isinstance(h, LevelColorHandler) for h in handlers)

        logging.getLogger("worktime_tracker.test").info("hello", extra={"task_id": "T1"})
        for handler in handlers:
            handler.flush()
        entry = json.loads(log_file.read_text().splitlines()[-1])
        assert entry["message"] == "hello"
        assert entry["task_id"] == "T1"

    def test_console_only(self, restore_root_logger) -> None:
        setup_logging(console_log_level=logging.WARNING)
        assert [type(h) for h in restore_root_logger.handlers] == [LevelColorHandler]

    def test_colored_console_output(self, capsys, restore_root_logger) -> None:
        setup_logging(console_log_level=logging.WARNING)

        logging.getLogger("worktime_tracker.test").warning("careful")
        logging.getLogger("worktime_tracker.test").info("hidden")

        err = capsys.readouterr().err
        assert "careful" in err
        assert "hidden" not in err


def test_user_output(capsys) -> None:
    user_output("plain")
    user_output("coloured", color="green", attrs=["bold"])

    out = capsys.readouterr().out
    assert "plain\n" in out
    assert "coloured" in out
