"""Test packaging metadata and installation extras."""

from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import Any

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))


def _load_pyproject() -> dict[str, Any]:
    pyproject_path = PROJECT_ROOT / "pyproject.toml"
    raw = pyproject_path.read_text(encoding="utf-8")
    if sys.version_info >= (3, 11):
        import tomllib

        return tomllib.loads(raw)

    import tomli

    return tomli.loads(raw)


def test_pyproject_declares_test_extras() -> None:
    """Ensure `pyproject.toml` declares pytest under `[project.optional-dependencies].test`."""
    data = _load_pyproject()
    test_deps = data.get("project", {}).get("optional-dependencies", {}).get("test", [])
    normalized = {str(item).strip().lower() for item in test_deps}
    assert any(item.startswith("pytest") for item in normalized)


def test_console_script_points_at_cli() -> None:
    """Ensure the `looper` command resolves to the CLI entrypoint."""
    data = _load_pyproject()
    scripts = data.get("project", {}).get("scripts", {})
    assert scripts.get("looper") == "looper.runner:main"

    from looper import runner

    assert callable(runner.main)


def test_pyproject_declares_runtime_dependencies() -> None:
    """Ensure the libraries imported by `looper` are installed with it."""
    data = _load_pyproject()
    deps = data.get("project", {}).get("dependencies", [])
    names = {re.split(r"[<>=!~;\[ ]", str(item).strip(), maxsplit=1)[0].lower() for item in deps}
    assert {"loguru", "pydantic", "pyyaml", "rich"} <= names
