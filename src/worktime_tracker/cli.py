#!/usr/bin/env python3
"""
Command-line interface for worktime-tracker with subcommand structure.

Provides subcommands for tracking and inspecting work sessions:
track, follow, status, report, validate.
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from time import sleep
from typing import Optional, TextIO

from .aggregation import (
    format_duration,
    format_time_display,
    is_over_estimate,
    parse_time_input,
    total_completed_time,
    total_with_active,
)
from .config_validation import ConfigValidationError, parse_estimate, validate_and_warn, validate_config
from .engine import SessionEngine, TrackerPolicy
from .journal import SessionJournal
from .models import Task, WorkSession
from .multi_task import MultiTaskTracker
from .output import setup_logging, user_output
from .shutdown import install_shutdown_hooks
from .store import JsonFileStore
from .ticker import ThreadedTicker
from .tracker import SingleTaskTracker
from .utils import datetime_to_ms, ms_to_datetime, now_ms, parse_datetime, ts2strtime

logger = logging.getLogger(__name__)


def parse_task_option(value: str) -> Task:
    """Parse a ``--task ID=ESTIMATE`` option."""
    task_id, sep, estimate = value.partition("=")
    if not sep or not task_id:
        raise argparse.ArgumentTypeError(f"Expected ID=ESTIMATE, got {value!r}")
    minutes = parse_time_input(estimate)
    if minutes is None:
        raise argparse.ArgumentTypeError(f"Invalid estimate for {task_id}: {estimate!r}")
    return Task(id=task_id, estimate_minutes=minutes)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        description='Track time spent working on tasks',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Subcommands:
  track     Track time against one task until interrupted
  follow    Track whichever task has focus, read from stdin
  status    Show the active session and pending queues (default)
  report    Show tracked time per task
  validate  Validate configuration file

Examples:
  # Track a task with a 90 minute estimate
  %(prog)s track writing --estimate 1h30m

  # Follow focus changes from another program
  focus-watcher | %(prog)s follow --task writing=2h --task review=30m

  # Time tracked since yesterday
  %(prog)s report --from yesterday
        """
    )

    # Global options (available for all subcommands)
    parser.add_argument(
        '--config',
        metavar='FILE',
        type=Path,
        help='Path to configuration file (default: uses standard config locations)'
    )
    parser.add_argument(
        '--data-dir',
        metavar='DIR',
        type=Path,
        help='Directory for tracker state and the session journal (overrides config)'
    )
    parser.add_argument(
        '--log-level',
        choices=['NONE', 'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default='DEBUG',
        help='Set logging level (default: DEBUG)'
    )
    parser.add_argument(
        '--console-log-level',
        choices=['NONE', 'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default='ERROR',
        help='Set console logging level (default: ERROR)'
    )
    parser.add_argument(
        '--log-file',
        metavar='FILE',
        type=Path,
        help='Log file path (default: <data dir>/worktime.json.log)'
    )
    parser.add_argument(
        '--no-log-json',
        action='store_true',
        help='Do not output logs in JSON format'
    )

    subparsers = parser.add_subparsers(dest='subcommand', help='Subcommand to run')

    # ===== TRACK subcommand =====
    track_parser = subparsers.add_parser(
        'track',
        help='Track time against one task until interrupted',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Ctrl+C stops tracking and records the session. SIGTERM saves the open
session instead, and the next run against the same task picks it up.

Examples:
  %(prog)s writing --estimate 45m
  %(prog)s writing            # estimate from [tasks.writing] in the config
        """
    )
    track_parser.add_argument('task', metavar='TASK', help='Task identifier')
    track_parser.add_argument(
        '--estimate',
        metavar='DURATION',
        help='Work estimate, e.g. 30, 45m, 1h30m (default: from config)'
    )
    track_parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )
    track_parser.add_argument(
        '--quiet', '-q',
        action='store_true',
        help='Suppress status lines and console logging'
    )

    # ===== FOLLOW subcommand =====
    follow_parser = subparsers.add_parser(
        'follow',
        help='Track whichever task has focus, read from stdin',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Each input line names the focused task; an empty line means no task has
focus. Tracking stops at end of input.

Examples:
  printf 'writing\\nreview\\n' | %(prog)s --task writing=2h --task review=30m
        """
    )
    follow_parser.add_argument(
        '--task',
        dest='tasks',
        metavar='ID=ESTIMATE',
        action='append',
        type=parse_task_option,
        default=[],
        help='Define a trackable task (repeatable, adds to tasks from config)'
    )
    follow_parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )
    follow_parser.add_argument(
        '--quiet', '-q',
        action='store_true',
        help='Suppress status lines and console logging'
    )

    # ===== STATUS subcommand =====
    subparsers.add_parser(
        'status',
        help='Show the active session and pending queues',
    )

    # ===== REPORT subcommand =====
    report_parser = subparsers.add_parser(
        'report',
        help='Show tracked time per task',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s
  %(prog)s writing --from "2025-12-08 09:00" --to "2025-12-08 17:00"
        """
    )
    report_parser.add_argument('task', metavar='TASK', nargs='?', help='Only report this task')

    report_start_group = report_parser.add_mutually_exclusive_group()
    report_start_group.add_argument(
        '--from', '--since', '--begin', '--start',
        dest='start',
        metavar='DATETIME',
        help='Only count sessions starting at or after this time'
    )

    report_end_group = report_parser.add_mutually_exclusive_group()
    report_end_group.add_argument(
        '--to', '--until', '--end',
        dest='end',
        metavar='DATETIME',
        help='Only count sessions starting before this time'
    )

    # ===== VALIDATE subcommand =====
    subparsers.add_parser(
        'validate',
        help='Validate configuration file',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Validate default config
  %(prog)s

  # Validate custom config
  %(prog)s --config my_config.toml
        """
    )

    return parser


def load_config(config_path: Optional[Path]) -> dict:
    from . import config as config_module

    if config_path:
        return config_module.load_custom_config(config_path)
    return config_module.config


def resolve_data_dir(args: argparse.Namespace, config: dict) -> Path:
    from .config import get_data_dir

    if args.data_dir:
        return args.data_dir
    return get_data_dir(config)


def get_default_log_file(json: bool, data_dir: Path) -> Path:
    """
    Get the default log file path.

    Returns:
        Path to the default log file in the tracker's data directory
    """
    data_dir.mkdir(parents=True, exist_ok=True)
    json_postfix = '.json' if json else ''
    return data_dir / f'worktime{json_postfix}.log'


def configure_logging(args: argparse.Namespace, subcommand: str, data_dir: Path) -> None:
    """
    Configure logging based on command-line arguments.

    Args:
        args: Parsed command-line arguments
        subcommand: The subcommand being executed
        data_dir: Tracker data directory (holds the default log file)
    """
    log_level = getattr(logging, args.log_level, 0)
    console_log_level = getattr(logging, args.console_log_level, 0)

    if getattr(args, 'verbose', False):
        console_log_level = logging.DEBUG

    if getattr(args, 'quiet', False):
        console_log_level = logging.CRITICAL + 1  # Above all levels

    log_file = None
    if args.log_file and log_level > 0:
        log_file = args.log_file
    elif log_level > 0:
        log_file = get_default_log_file(not args.no_log_json, data_dir)

    run_mode = {
        'subcommand': subcommand,
        'task': getattr(args, 'task', None),
    }

    setup_logging(
        json_format=not args.no_log_json,
        log_level=log_level,
        console_log_level=console_log_level,
        log_file=log_file,
        run_mode=run_mode
    )


def tasks_from_config(config: dict) -> dict[str, Task]:
    """Tasks defined under [tasks] in the config, keyed by id."""
    tasks = {}
    for task_id, task in config.get('tasks', {}).items():
        estimate = parse_estimate(task.get('estimate')) if isinstance(task, dict) else None
        tasks[task_id] = Task(id=task_id, estimate_minutes=estimate)
    return tasks


def build_engine(data_dir: Path, journal: SessionJournal, policy: TrackerPolicy = None) -> SessionEngine:
    """Wire the engine to the on-disk store, delivering into the journal.

    Only the tracking subcommands pass a policy; status and report never close
    sessions, so they run on the defaults.
    """

    def on_session_complete(task_id: str, session: WorkSession) -> None:
        if journal.append(task_id, session):
            user_output(
                f"Recorded {format_duration(session.duration_ms)} for {task_id}",
                color='green'
            )

    def on_store_error(error: Exception) -> None:
        user_output(f"Warning: could not save tracker state: {error}", color='red')

    return SessionEngine(
        store=JsonFileStore(data_dir / 'store'),
        on_session_complete=on_session_complete,
        policy=policy,
        clock=now_ms,
        on_store_error=on_store_error,
    )


def open_journal(data_dir: Path) -> SessionJournal:
    return SessionJournal(data_dir / 'journal.json')


def estimate_color(total_ms: int, estimate_minutes: Optional[int]) -> Optional[str]:
    return 'red' if is_over_estimate(total_ms, estimate_minutes) else None


def show_status(task: Task, journal: SessionJournal, elapsed_ms: int) -> None:
    total = total_with_active(journal.sessions_for(task.id), elapsed_ms)
    user_output(
        f"{task.id}: {format_time_display(total, task.estimate_minutes)}",
        color=estimate_color(total, task.estimate_minutes)
    )


def status_interval(config: dict) -> float:
    from .config import get_tuning_param

    return get_tuning_param(config, 'status_interval', 'WORKTIME_STATUS_INTERVAL', 60.0)


def ensure_valid_config(config: dict) -> None:
    if not validate_and_warn(config):
        raise ConfigValidationError("Configuration has errors, run 'validate' for details")


def run_track(args: argparse.Namespace, config: dict, data_dir: Path) -> int:
    """Execute the track subcommand."""
    ensure_valid_config(config)

    known = tasks_from_config(config)
    if args.estimate:
        estimate = parse_time_input(args.estimate)
        if estimate is None:
            print(f"Error: Invalid estimate: {args.estimate}", file=sys.stderr)
            return 1
        task = Task(id=args.task, estimate_minutes=estimate)
    else:
        task = known.get(args.task, Task(id=args.task))

    if not task.is_trackable:
        print(
            f"Error: Task {task.id} has no estimate; pass --estimate or add it to the config",
            file=sys.stderr
        )
        return 1

    journal = open_journal(data_dir)
    engine = build_engine(data_dir, journal, TrackerPolicy.from_config(config))
    tracker = SingleTaskTracker(engine, ThreadedTicker())
    uninstall_hooks = install_shutdown_hooks(tracker)

    try:
        tracker.activate(task.id, task.is_trackable)
        if not args.quiet:
            user_output(
                f"Tracking {task.id} since {ts2strtime(tracker.session.start)} (Ctrl+C to stop)",
                attrs=['bold']
            )
        interval = status_interval(config)
        while tracker.is_active:
            sleep(interval)
            if not args.quiet:
                show_status(task, journal, tracker.elapsed_ms)
    finally:
        tracker.deactivate()
        uninstall_hooks()

    return 0


def run_follow(args: argparse.Namespace, config: dict, data_dir: Path, stream: TextIO = None) -> int:
    """Execute the follow subcommand."""
    ensure_valid_config(config)
    stream = stream or sys.stdin

    tasks = tasks_from_config(config)
    for task in args.tasks:
        tasks[task.id] = task

    journal = open_journal(data_dir)
    engine = build_engine(data_dir, journal, TrackerPolicy.from_config(config))
    tracker = MultiTaskTracker(engine, ThreadedTicker())
    uninstall_hooks = install_shutdown_hooks(tracker)

    try:
        for line in stream:
            focused = line.strip() or None
            tracker.update(focused, tasks.values())
            if args.quiet:
                continue
            if tracker.is_tracking:
                task = tasks[tracker.tracking_task_id]
                show_status(task, journal, tracker.elapsed_ms)
            elif focused is not None and focused not in tasks:
                user_output(f"{focused}: unknown task, not tracking")
            elif focused is not None:
                user_output(f"{focused}: no estimate, not tracking")
    finally:
        tracker.close()
        uninstall_hooks()

    return 0


def run_status(args: argparse.Namespace, config: dict, data_dir: Path) -> int:
    """Execute the status subcommand."""
    journal = open_journal(data_dir)
    engine = build_engine(data_dir, journal)

    record = engine.read_active_record()
    if record is None:
        user_output("No active session")
    else:
        elapsed = max(engine.now() - record.session.start_time, 0)
        user_output(
            f"Active: {record.task_id} since {ts2strtime(record.session.start)} "
            f"({format_duration(elapsed)})",
            color='yellow'
        )

    for task_id in engine.pending.task_ids():
        pending = engine.pending.peek(task_id)
        if pending:
            user_output(
                f"Pending for {task_id}: {len(pending)} session(s), "
                f"{format_duration(total_completed_time(pending))}"
            )

    return 0


def run_report(args: argparse.Namespace, config: dict, data_dir: Path) -> int:
    """Execute the report subcommand."""
    start_ms = datetime_to_ms(parse_datetime(args.start)) if args.start else None
    end_ms = datetime_to_ms(parse_datetime(args.end)) if args.end else None

    def in_range(start_time: int) -> bool:
        return (start_ms is None or start_time >= start_ms) and (end_ms is None or start_time < end_ms)

    journal = open_journal(data_dir)
    engine = build_engine(data_dir, journal)
    known = tasks_from_config(config)

    record = engine.read_active_record()
    task_ids = [args.task] if args.task else sorted(set(journal.task_ids()) | set(known))
    if record is not None and not args.task and record.task_id not in task_ids:
        task_ids.append(record.task_id)

    if start_ms is not None or end_ms is not None:
        print(
            f"Sessions starting {ts2strtime(ms_to_datetime(start_ms)) if start_ms else '...'}"
            f" to {ts2strtime(ms_to_datetime(end_ms)) if end_ms else 'now'}"
        )

    for task_id in task_ids:
        sessions = [s for s in journal.sessions_for(task_id) if in_range(s.start_time)]
        # the live session counts only where a closed session with its start would
        active = (
            record is not None and record.task_id == task_id
            and in_range(record.session.start_time)
        )
        active_elapsed = max(engine.now() - record.session.start_time, 0) if active else 0

        total = total_with_active(sessions, active_elapsed)
        estimate = known[task_id].estimate_minutes if task_id in known else None
        if estimate:
            summary = format_time_display(total, estimate)
        else:
            summary = format_duration(total)
        suffix = ' (tracking)' if active else ''
        user_output(
            f"{task_id}: {summary}, {len(sessions)} session(s){suffix}",
            color=estimate_color(total, estimate)
        )

    return 0


def run_validate(args: argparse.Namespace, config: dict, data_dir: Path) -> int:
    """Execute the validate subcommand."""
    errors, warnings = validate_config(config)
    for warning in warnings:
        print(f"Warning: {warning}")
    if errors:
        print("Configuration errors found:")
        for error in errors:
            print(f"  - {error}")
        return 1
    print("Configuration is valid")
    return 0


SUBCOMMANDS = {
    'track': run_track,
    'follow': run_follow,
    'status': run_status,
    'report': run_report,
    'validate': run_validate,
}


def main(argv=None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    # Default to 'status' if no subcommand specified
    subcommand = args.subcommand or 'status'

    if args.config and not args.config.exists():
        print(f"Error: Config file not found: {args.config}", file=sys.stderr)
        return 1

    try:
        config = load_config(args.config)
        data_dir = resolve_data_dir(args, config)
        configure_logging(args, subcommand, data_dir)
        return SUBCOMMANDS[subcommand](args, config, data_dir)

    except KeyboardInterrupt:
        print("\nExiting...")
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if getattr(args, 'verbose', False) or os.environ.get('WORKTIME_TRACEBACK'):
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
