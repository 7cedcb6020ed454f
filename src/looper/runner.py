#!/usr/bin/env python3
"""Provide the CLI entrypoint and subcommands for looper.

Runs the coding agent in a loop, one backlog task per iteration, and offers
read-only `ls` and `tail` commands for inspecting the backlog and the logs.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from rich.console import Console
from rich.table import Table

from .config import LooperSettings, load_looper_config, resolve_settings
from .constants import DEFAULT_TODO_FILE, EXIT_INTERRUPTED
from .errors import LooperError
from .orchestrator import run_loop
from .store import read_tasks
from .tail import TailReader
from .tasks import tasks_by_status


def _configure_logging(level: str = "INFO") -> None:
    """Configure loguru logger with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "{message}"
        ),
    )


# Initialize with default level; will be reconfigured in main() based on CLI args
_configure_logging()


def _add_log_level(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )


def _build_run_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="looper",
        description="looper - run a coding agent over a JSON task backlog, one task per iteration",
        epilog="Subcommands: `looper ls STATUS [TODO_FILE]`, `looper tail [--follow]`.",
    )
    parser.add_argument(
        "todo_file",
        nargs="?",
        type=Path,
        default=Path(DEFAULT_TODO_FILE),
        help=f"Task backlog file (default: {DEFAULT_TODO_FILE})",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Maximum iterations (default: 50, env MAX_ITERATIONS)",
    )
    parser.add_argument("--agent-bin", type=str, default=None, help="Agent CLI command (default: codex, env CODEX_BIN)")
    parser.add_argument("--model", type=str, default=None, help="Agent model (env CODEX_MODEL)")
    parser.add_argument(
        "--reasoning-effort",
        type=str,
        default=None,
        help="Model reasoning effort (env CODEX_REASONING_EFFORT)",
    )
    parser.add_argument("--profile", type=str, default=None, help="Agent --profile value (env CODEX_PROFILE)")
    parser.add_argument(
        "--yolo",
        default=None,
        action=argparse.BooleanOptionalAction,
        help="Run the agent with --yolo (default: on, env CODEX_YOLO)",
    )
    parser.add_argument(
        "--full-auto",
        default=None,
        action=argparse.BooleanOptionalAction,
        help="Run the agent with --full-auto when not using --yolo (env CODEX_FULL_AUTO)",
    )
    parser.add_argument(
        "--json-log",
        default=None,
        action=argparse.BooleanOptionalAction,
        help="Record the agent's JSONL events (default: on, env CODEX_JSON_LOG)",
    )
    parser.add_argument(
        "--progress",
        default=None,
        action=argparse.BooleanOptionalAction,
        help="Print compact live progress (default: on, env CODEX_PROGRESS)",
    )
    parser.add_argument(
        "--enforce-output-schema",
        default=None,
        action=argparse.BooleanOptionalAction,
        help="Pass the summary JSON Schema to the agent (default: off, env CODEX_ENFORCE_OUTPUT_SCHEMA)",
    )
    parser.add_argument(
        "--log-root",
        type=Path,
        default=None,
        help="Base log directory (default: ~/.looper, env LOOPER_BASE_DIR)",
    )
    parser.add_argument(
        "--apply-summary",
        default=None,
        action=argparse.BooleanOptionalAction,
        help="Apply each iteration summary to the backlog (default: on, env LOOPER_APPLY_SUMMARY)",
    )
    parser.add_argument(
        "--git-init",
        default=None,
        action=argparse.BooleanOptionalAction,
        help="Run git init when the project is not a repository (default: on, env LOOPER_GIT_INIT)",
    )
    parser.add_argument(
        "--hook",
        type=str,
        default=None,
        help="Command run after each iteration: <hook> <task_id> <status> <last_message_json> <label>",
    )
    parser.add_argument(
        "--delay-seconds",
        type=float,
        default=None,
        help="Sleep between iterations (default: 0, env LOOP_DELAY_SECONDS)",
    )
    parser.add_argument(
        "--project-dir",
        type=Path,
        default=Path("."),
        help="Project directory (default: current directory)",
    )
    _add_log_level(parser)
    return parser


def _build_ls_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="looper ls",
        description="looper - list backlog tasks with a given status",
    )
    parser.add_argument("status", type=str, help="Task status (todo|doing|blocked|done)")
    parser.add_argument(
        "todo_file",
        nargs="?",
        type=Path,
        default=Path(DEFAULT_TODO_FILE),
        help=f"Task backlog file (default: {DEFAULT_TODO_FILE})",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the matching task objects as JSON",
    )
    parser.add_argument(
        "--project-dir",
        type=Path,
        default=Path("."),
        help="Project directory (default: current directory)",
    )
    return parser


def _build_tail_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="looper tail",
        description="looper - print the latest agent activity from the newest log",
    )
    parser.add_argument(
        "--follow",
        "-f",
        action="store_true",
        help="Keep printing new activity until interrupted",
    )
    parser.add_argument(
        "--log-root",
        type=Path,
        default=None,
        help="Base log directory (default: ~/.looper, env LOOPER_BASE_DIR)",
    )
    parser.add_argument(
        "--project-dir",
        type=Path,
        default=Path("."),
        help="Project directory (default: current directory)",
    )
    return parser


def _load_settings(project_dir: Path, overrides: Optional[dict[str, Any]] = None) -> LooperSettings:
    file_config, err = load_looper_config(project_dir)
    if err:
        logger.warning("Ignoring unreadable config file: {}", err)
    return resolve_settings(file_config=file_config, overrides=overrides)


def _ls_command(project_dir: Path, status: str, todo_file: Path, *, as_json: bool = False) -> int:
    project_dir = project_dir.resolve()
    settings = _load_settings(project_dir)
    if status not in settings.statuses:
        allowed = "|".join(settings.statuses)
        sys.stderr.write(f"Error: invalid status '{status}' ({allowed}).\n")
        return 1

    todo_path = todo_file if todo_file.is_absolute() else project_dir / todo_file
    if not todo_path.exists():
        sys.stderr.write(f"Error: {todo_file} not found.\n")
        return 1

    tasks = tasks_by_status(read_tasks(todo_path), status)
    if as_json:
        for task in tasks:
            sys.stdout.write(json.dumps(task, indent=2) + "\n")
        return 0

    table = Table(title=f"{status} tasks ({len(tasks)})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("P", justify="right")
    table.add_column("Title")
    table.add_column("Updated", style="dim")
    for task in tasks:
        table.add_row(
            str(task.get("id", "")),
            str(task.get("priority", "")),
            str(task.get("title", "")),
            str(task.get("updated_at", "") or ""),
        )
    Console(file=sys.stdout).print(table)
    return 0


def _tail_command(project_dir: Path, *, follow: bool, log_root: Optional[Path] = None) -> int:
    project_dir = project_dir.resolve()
    settings = _load_settings(project_dir, {"log_root": log_root})
    reader = TailReader(settings.log_root, project_dir)

    if follow:
        try:
            reader.follow(sys.stdout)
        except KeyboardInterrupt:
            pass
        return 0

    log_file = reader.latest_log()
    if log_file is None or not log_file.is_file():
        sys.stderr.write("No log file found.\n")
        return 1
    line = reader.render(log_file)
    if line is None:
        sys.stderr.write(f"No agent activity found in {log_file}.\n")
        return 1
    sys.stdout.write(line + "\n")
    return 0


def _run_command(args: argparse.Namespace) -> int:
    project_dir = args.project_dir.resolve()
    overrides = {
        "max_iterations": args.max_iterations,
        "agent_bin": args.agent_bin,
        "model": args.model,
        "reasoning_effort": args.reasoning_effort,
        "profile": args.profile,
        "yolo": args.yolo,
        "full_auto": args.full_auto,
        "json_log": args.json_log,
        "progress": args.progress,
        "enforce_output_schema": args.enforce_output_schema,
        "log_root": args.log_root,
        "apply_summary": args.apply_summary,
        "git_init": args.git_init,
        "hook": args.hook,
        "delay_seconds": args.delay_seconds,
    }
    settings = _load_settings(project_dir, overrides)
    try:
        outcome = run_loop(args.todo_file, settings, workdir=project_dir)
    except LooperError as exc:
        logger.error("{}", exc)
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted. Exiting.")
        return EXIT_INTERRUPTED
    return EXIT_INTERRUPTED if outcome.interrupted else 0


def main(argv: list[str] | None = None) -> None:
    """Run the `looper` CLI.

    Args:
        argv: Optional argument list (excluding the executable name). When omitted,
            uses `sys.argv[1:]`.

    Raises:
        SystemExit: Raised to return a process exit code.
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    if argv:
        if argv[0] in {"ls", "--ls"}:
            args = _build_ls_parser().parse_args(argv[1:])
            raise SystemExit(
                _ls_command(args.project_dir, args.status, args.todo_file, as_json=bool(args.json))
            )
        if argv[0] in {"tail", "--tail"}:
            args = _build_tail_parser().parse_args(argv[1:])
            raise SystemExit(_tail_command(args.project_dir, follow=bool(args.follow), log_root=args.log_root))
        if argv[0] == "run":
            argv = argv[1:]

    args = _build_run_parser().parse_args(argv)
    _configure_logging(args.log_level)
    raise SystemExit(_run_command(args))


if __name__ == "__main__":
    main()
