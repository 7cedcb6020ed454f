"""Test the git repository checks run before the loop starts."""

from __future__ import annotations

import shutil
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from looper import git_utils
from looper.paths import project_root


def test_without_git_nothing_is_initialized(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(git_utils, "_git_available", lambda: False)

    assert git_utils.ensure_git_repo(tmp_path, init=True) is False
    assert git_utils._git_toplevel(tmp_path) is None
    assert not (tmp_path / ".git").exists()


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_init_creates_repository(tmp_path: Path) -> None:
    project = tmp_path / "project"
    project.mkdir()
    if git_utils._git_is_repo(project):
        pytest.skip("temporary directory is inside a git work tree")

    assert git_utils.ensure_git_repo(project, init=True) is True
    assert (project / ".git").exists()
    assert project_root(project).resolve() == project.resolve()


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_no_init_leaves_directory_alone(tmp_path: Path) -> None:
    project = tmp_path / "project"
    project.mkdir()
    if git_utils._git_is_repo(project):
        pytest.skip("temporary directory is inside a git work tree")

    assert git_utils.ensure_git_repo(project, init=False) is False
    assert not (project / ".git").exists()
