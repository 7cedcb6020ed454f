"""Provide small git helpers used by the loop."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Optional

from loguru import logger


def _git_available() -> bool:
    return shutil.which("git") is not None


def _git_toplevel(path: Path) -> Optional[Path]:
    if not _git_available():
        return None
    result = subprocess.run(
        ["git", "-C", str(path), "rev-parse", "--show-toplevel"],
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        return None
    root = result.stdout.strip()
    return Path(root) if root else None


def _git_is_repo(path: Path) -> bool:
    if not _git_available():
        return False
    result = subprocess.run(
        ["git", "-C", str(path), "rev-parse", "--is-inside-work-tree"],
        capture_output=True,
        text=True,
        check=False,
    )
    return result.returncode == 0


def ensure_git_repo(workdir: Path, *, init: bool) -> bool:
    """Make sure `workdir` is inside a git work tree.

    Args:
        workdir: Directory the agent runs in.
        init: Whether to run `git init` when no repository exists.

    Returns:
        True when a repository is available afterwards.
    """
    if not _git_available():
        logger.warning("git is not available. Commits may fail.")
        return False
    if _git_is_repo(workdir):
        return True
    if not init:
        logger.warning("Not inside a git repository. Commits may fail.")
        return False
    result = subprocess.run(
        ["git", "-C", str(workdir), "init"],
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode == 0:
        logger.info("Initialized git repository in {}", workdir)
        return True
    logger.warning("Failed to initialize git repository in {}", workdir)
    return False
