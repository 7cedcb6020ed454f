"""Drive the select -> run -> log -> reduce loop over the task store."""

from __future__ import annotations

import json
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from loguru import logger

from .config import LooperSettings
from .constants import STOP_POLL_SECONDS
from .errors import BootstrapError, StoreInvalidError
from .events import EventLog
from .git_utils import ensure_git_repo
from .paths import RunPaths, allocate_run_paths, log_dir_for_root, project_root
from .prompts import build_bootstrap_prompt, build_iteration_prompt, build_repair_prompt
from .schema import schema_path_for, write_schema_if_missing, write_summary_schema_if_missing
from .store import load_store, normalize_tasks, save_store, validate_store_file
from .summary import apply_summary, describe_summary, read_summary, run_hook
from .tasks import has_open_tasks, select_next_task, task_summary
from .utils import _new_run_id
from .worker import AgentRunner, AgentRunResult, check_agent_available

REASON_COMPLETED = "completed"
REASON_MAX_ITERATIONS = "max_iterations"
REASON_INTERRUPTED = "interrupted"


@dataclass
class LoopOutcome:
    reason: str
    iterations: int
    run_id: Optional[str] = None
    log_file: Optional[Path] = None

    @property
    def interrupted(self) -> bool:
        return self.reason == REASON_INTERRUPTED


class StopFlag:
    """Cooperative cancellation shared by signal handlers and the loop."""

    def __init__(self) -> None:
        self.requested = False
        self._on_stop: list[Callable[[], None]] = []

    def on_stop(self, callback: Callable[[], None]) -> None:
        self._on_stop.append(callback)

    def request(self) -> None:
        self.requested = True
        for callback in self._on_stop:
            callback()

    def _handle_signal(self, signum: int, frame: Any) -> None:
        if self.requested:
            # Second signal: give up on a graceful stop.
            raise KeyboardInterrupt
        logger.warning("Interrupted. Finishing the current step before exiting.")
        self.request()

    def install(self) -> dict[int, Any]:
        """Route SIGINT/SIGTERM to this flag; returns the previous handlers."""
        previous: dict[int, Any] = {}
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                previous[signum] = signal.signal(signum, self._handle_signal)
            except ValueError:
                # Not in the main thread; rely on request() being called directly.
                continue
        return previous

    @staticmethod
    def restore(previous: dict[int, Any]) -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def _display_path(path: Path, workdir: Path) -> str:
    try:
        return str(path.relative_to(workdir))
    except ValueError:
        return str(path)


class TaskLoop:
    """One run of the loop against a single task store."""

    def __init__(
        self,
        todo_path: Path,
        settings: LooperSettings,
        *,
        workdir: Optional[Path] = None,
        stop: Optional[StopFlag] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.workdir = (workdir or Path.cwd()).resolve()
        self.todo_path = todo_path if todo_path.is_absolute() else self.workdir / todo_path
        self.schema_path = schema_path_for(self.todo_path)
        self.settings = settings
        self.stop = stop or StopFlag()
        self.sleep = sleep

        self.run_paths: Optional[RunPaths] = None
        self.event_log: Optional[EventLog] = None
        self.runner: Optional[AgentRunner] = None

    # -- setup ---------------------------------------------------------------

    def _init_run(self) -> None:
        has_repo = ensure_git_repo(self.workdir, init=self.settings.git_init)
        if self.settings.json_log:
            log_dir = log_dir_for_root(self.settings.log_root, project_root(self.workdir))
            log_dir.mkdir(parents=True, exist_ok=True)
            self.run_paths = allocate_run_paths(log_dir, _new_run_id())
            self.event_log = EventLog(self.run_paths.log_file, self.run_paths.run_id)
            self.event_log.create()
            write_summary_schema_if_missing(self.run_paths.summary_schema)
        self.runner = AgentRunner(
            self.settings,
            self.workdir,
            self.run_paths,
            self.event_log,
            skip_git_repo_check=not has_repo,
        )
        self.stop.on_stop(self.runner.terminate)

    def _log_run_info(self) -> None:
        s = self.settings
        logger.info("Agent model: {} (reasoning: {})", s.model, s.reasoning_effort)
        if s.profile:
            logger.info("Agent mode: {} | profile: {}", s.mode, s.profile)
        else:
            logger.info("Agent mode: {}", s.mode)
        logger.info("Agent command: {} {} -", s.agent_bin, " ".join(self.runner.base_flags()))
        logger.info("Schema file: {}", self.schema_path)
        if self.run_paths is not None:
            logger.info("Log dir: {}", self.run_paths.log_dir)
            logger.info("Log file: {}", self.run_paths.log_file)
        else:
            logger.info("Log dir: disabled")
        logger.info("Summary apply: {}", "on" if s.apply_summary else "off")
        logger.info("Git init: {}", "on" if s.git_init else "off")
        logger.info("Output schema: {}", "on" if s.enforce_output_schema else "off")
        logger.info("Project: {}", self.workdir)
        logger.info("Task file: {}", self.todo_path)
        logger.info("Max iterations: {}", s.max_iterations)

    def _refs(self) -> tuple[str, str]:
        return _display_path(self.todo_path, self.workdir), _display_path(self.schema_path, self.workdir)

    # -- store bootstrap / validation ----------------------------------------

    def bootstrap(self) -> None:
        """Ask the agent to create the task store when it does not exist yet."""
        if self.todo_path.exists():
            return
        write_schema_if_missing(self.schema_path)
        logger.info("Bootstrapping {} with {}...", self.todo_path, self.settings.agent_bin)
        todo_ref, schema_ref = self._refs()
        self._run_agent(build_bootstrap_prompt(todo_ref, schema_ref), "bootstrap", 0)

        if not self.todo_path.exists():
            raise BootstrapError(f"{self.todo_path} was not created.")
        try:
            json.loads(self.todo_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise BootstrapError(f"{self.todo_path} is not valid JSON.") from exc

    def ensure_valid(self) -> None:
        """Validate the store, delegating one repair attempt to the agent.

        Raises:
            StoreInvalidError: If the store is still invalid after the repair.
        """
        write_schema_if_missing(self.schema_path)
        errors = validate_store_file(self.todo_path)
        if not errors:
            return

        logger.warning(
            "{} does not match the expected schema structure ({}). Attempting repair...",
            self.todo_path,
            "; ".join(errors[:3]),
        )
        todo_ref, schema_ref = self._refs()
        logger.info("Repairing {} with {}...", self.todo_path, self.settings.agent_bin)
        self._run_agent(build_repair_prompt(todo_ref, schema_ref, errors), "repair", 0)

        errors = validate_store_file(self.todo_path)
        if errors:
            raise StoreInvalidError(self.todo_path, errors)

    # -- iteration -----------------------------------------------------------

    def _run_agent(self, prompt: str, label: str, iteration: int, *, expect_summary: bool = False) -> AgentRunResult:
        result = self.runner.run(prompt, label, iteration, expect_summary=expect_summary)
        if not result.ok:
            logger.warning("Agent run {} failed with exit code {}.", label, result.exit_code)
        return result

    def _log_current_task(self, tasks: list[dict[str, Any]]) -> None:
        task = select_next_task(tasks)
        if task is None:
            logger.info("Task: none")
            return
        logger.info("Task: {} ({}) - {}", task.get("id"), task.get("status"), task.get("title"))

    def reduce(self, result: AgentRunResult) -> bool:
        """Apply the iteration's final message to the store.

        Returns:
            True when the store was rewritten.
        """
        summary = read_summary(result.last_message_path)
        described = describe_summary(summary)
        if described:
            logger.info("Summary: {}", described)

        if self.settings.hook:
            run_hook(self.settings.hook, summary, result.last_message_path, result.label, self.workdir)

        if not self.settings.apply_summary or summary is None:
            return False

        data, errors = load_store(self.todo_path)
        if errors:
            # Leave a store the agent broke for ensure_valid() to repair.
            logger.warning("Not applying summary; {} is invalid: {}", self.todo_path, "; ".join(errors[:3]))
            return False
        updated, changed = apply_summary(data, summary)
        if changed:
            save_store(self.todo_path, updated)
        return changed

    def pause(self, seconds: float) -> None:
        """Sleep between iterations in short slices so a stop request ends the wait."""
        remaining = seconds
        while remaining > 0 and not self.stop.requested:
            step = min(remaining, STOP_POLL_SECONDS)
            self.sleep(step)
            remaining -= step

    def run(self) -> LoopOutcome:
        """Run until no open tasks remain, the cap is reached, or a stop is requested."""
        check_agent_available(self.settings.agent_bin)
        self._init_run()
        self.bootstrap()
        self.ensure_valid()

        logger.info("Starting task loop")
        self._log_run_info()

        run_id = self.run_paths.run_id if self.run_paths else None
        log_file = self.run_paths.log_file if self.run_paths else None
        max_iterations = self.settings.max_iterations
        completed = 0
        iteration = 0

        while True:
            if self.stop.requested:
                logger.info("Interrupted. Exiting.")
                return LoopOutcome(REASON_INTERRUPTED, completed, run_id, log_file)

            iteration += 1
            if iteration > max_iterations:
                logger.info("Reached max iterations ({}). Exiting.", max_iterations)
                return LoopOutcome(REASON_MAX_ITERATIONS, completed, run_id, log_file)

            self.ensure_valid()
            data, _ = load_store(self.todo_path)
            tasks = normalize_tasks(data)
            if not has_open_tasks(tasks):
                logger.info("No open tasks remain. Exiting.")
                return LoopOutcome(REASON_COMPLETED, completed, run_id, log_file)

            logger.info("Iteration {}/{}", iteration, max_iterations)
            logger.debug("Tasks: {}", task_summary(tasks))
            self._log_current_task(tasks)

            todo_ref, schema_ref = self._refs()
            result = self._run_agent(
                build_iteration_prompt(todo_ref, schema_ref),
                f"iter-{iteration}",
                iteration,
                expect_summary=True,
            )
            self.reduce(result)
            self.ensure_valid()
            completed += 1

            self.pause(self.settings.delay_seconds)


def run_loop(
    todo_path: Path,
    settings: LooperSettings,
    *,
    workdir: Optional[Path] = None,
    install_signal_handlers: bool = True,
) -> LoopOutcome:
    """Run the task loop.

    This is the core entrypoint used by the CLI. It:
    - Bootstraps the task store through the agent when it is missing
    - Validates the store, with one agent-driven repair
    - Runs the agent once per iteration and logs its JSONL events
    - Applies each iteration's summary to the store

    Args:
        todo_path: Task store path, relative to `workdir` unless absolute.
        settings: Resolved loop settings.
        workdir: Directory the agent works in (default: current directory).
        install_signal_handlers: Whether SIGINT/SIGTERM request a graceful stop.

    Returns:
        Why and after how many iterations the loop ended.
    """
    stop = StopFlag()
    previous = stop.install() if install_signal_handlers else {}
    try:
        loop = TaskLoop(todo_path, settings, workdir=workdir, stop=stop)
        return loop.run()
    finally:
        StopFlag.restore(previous)
