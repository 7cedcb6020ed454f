"""Run the coding agent once and stream its JSON events into the run log."""

from __future__ import annotations

import shlex
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from .config import LooperSettings
from .errors import AgentNotFoundError
from .events import EventLog, render_progress
from .paths import RunPaths


@dataclass
class AgentRunResult:
    label: str
    iteration: int
    exit_code: int
    command: list[str]
    last_message_path: Optional[Path] = None
    events_logged: int = 0
    runtime_seconds: float = 0.0
    progress: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def _agent_argv(agent_bin: str) -> list[str]:
    parts = shlex.split(agent_bin)
    if not parts:
        raise AgentNotFoundError(agent_bin)
    return parts


def check_agent_available(agent_bin: str) -> None:
    """Raise AgentNotFoundError unless the agent executable can be found."""
    executable = _agent_argv(agent_bin)[0]
    if shutil.which(executable) is None:
        raise AgentNotFoundError(executable)


class AgentRunner:
    """Build and run agent commands for one loop run.

    Only one agent process is alive at a time; `terminate()` stops it when
    the loop is asked to shut down.
    """

    def __init__(
        self,
        settings: LooperSettings,
        workdir: Path,
        run_paths: Optional[RunPaths],
        event_log: Optional[EventLog],
        *,
        skip_git_repo_check: bool = False,
        progress_sink: Optional[Callable[[str], None]] = None,
    ):
        self.settings = settings
        self.workdir = workdir
        self.run_paths = run_paths
        self.event_log = event_log
        self.skip_git_repo_check = skip_git_repo_check
        self.progress_sink = progress_sink or (lambda line: logger.info(line))
        self._process: Optional[subprocess.Popen] = None

    @property
    def json_log(self) -> bool:
        return self.settings.json_log and self.run_paths is not None and self.event_log is not None

    def base_flags(self) -> list[str]:
        s = self.settings
        flags = [
            "exec",
            "-m",
            s.model,
            "-c",
            f"model_reasoning_effort={s.reasoning_effort}",
            "--cd",
            str(self.workdir),
        ]
        if s.yolo:
            flags.append("--yolo")
        elif s.full_auto:
            flags.append("--full-auto")
        if s.profile:
            flags.extend(["--profile", s.profile])
        if self.skip_git_repo_check:
            flags.append("--skip-git-repo-check")
        return flags

    def build_command(self, last_message_path: Optional[Path], *, expect_summary: bool = False) -> list[str]:
        command = _agent_argv(self.settings.agent_bin) + self.base_flags()
        if self.json_log and last_message_path is not None:
            command.extend(["--json", "--output-last-message", str(last_message_path)])
            if expect_summary and self.settings.enforce_output_schema:
                command.extend(["--output-schema", str(self.run_paths.summary_schema)])
        command.append("-")
        return command

    def _spawn(self, command: list[str], *, capture: bool) -> subprocess.Popen:
        try:
            return subprocess.Popen(
                command,
                cwd=self.workdir,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE if capture else None,
                stderr=subprocess.STDOUT if capture else None,
                text=True,
                encoding="utf-8",
                errors="surrogateescape",
                bufsize=1,
            )
        except FileNotFoundError as exc:
            raise AgentNotFoundError(command[0]) from exc

    @staticmethod
    def _send_prompt(process: subprocess.Popen, prompt: str) -> None:
        if not process.stdin:
            return
        try:
            process.stdin.write(prompt)
            process.stdin.flush()
        except BrokenPipeError:
            pass
        finally:
            try:
                process.stdin.close()
            except BrokenPipeError:
                pass

    def run(self, prompt: str, label: str, iteration: int, *, expect_summary: bool = False) -> AgentRunResult:
        """Run the agent once.

        Args:
            prompt: Instructions written to the agent's stdin.
            label: Run label (`iter-3`, `bootstrap`, `repair`).
            iteration: Iteration number recorded on every event (0 outside the loop).
            expect_summary: Whether the agent should return an iteration summary.

        Returns:
            The exit code and artifacts of the run. A non-zero exit is reported,
            not raised.
        """
        last_message_path = self.run_paths.last_message_file(label) if self.json_log else None
        if last_message_path is not None and last_message_path.exists():
            last_message_path.unlink()

        command = self.build_command(last_message_path, expect_summary=expect_summary)
        logger.debug("Agent command: {}", shlex.join(command))
        start = time.monotonic()
        result = AgentRunResult(
            label=label,
            iteration=iteration,
            exit_code=-1,
            command=command,
            last_message_path=last_message_path,
        )

        process = self._spawn(command, capture=self.json_log)
        self._process = process
        try:
            self._send_prompt(process, prompt)
            if self.json_log and process.stdout is not None:
                for raw_line in process.stdout:
                    line = raw_line.rstrip("\n")
                    if not line:
                        continue
                    event = self.event_log.record(line, label, iteration)
                    result.events_logged += 1
                    if self.settings.progress:
                        rendered = render_progress(event)
                        if rendered:
                            result.progress.append(rendered)
                            self.progress_sink(rendered)
            result.exit_code = process.wait()
        finally:
            if process.stdout is not None:
                process.stdout.close()
            self._process = None

        result.runtime_seconds = time.monotonic() - start
        return result

    def terminate(self) -> None:
        process = self._process
        if process is None or process.poll() is not None:
            return
        logger.info("Stopping agent (pid {})", process.pid)
        process.terminate()
