"""Provide the public `looper` package exports."""

from __future__ import annotations

from .orchestrator import LoopOutcome, run_loop

__all__ = ["LoopOutcome", "run_loop"]
