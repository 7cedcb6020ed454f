"""Exceptions raised by the loop when it cannot continue."""

from __future__ import annotations

from pathlib import Path


class LooperError(Exception):
    """Base class for fatal loop errors."""


class AgentNotFoundError(LooperError):
    def __init__(self, command: str):
        super().__init__(f"required command not found: {command}")
        self.command = command


class StoreMissingError(LooperError):
    def __init__(self, path: Path):
        super().__init__(f"{path} not found")
        self.path = path


class StoreInvalidError(LooperError):
    """The task store does not match its schema, even after repair."""

    def __init__(self, path: Path, errors: list[str]):
        detail = "; ".join(errors[:5]) if errors else "unknown error"
        super().__init__(f"{path} does not match the expected schema: {detail}")
        self.path = path
        self.errors = list(errors)


class BootstrapError(LooperError):
    pass
