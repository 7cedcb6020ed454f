"""Provide small helpers for timestamps, text and path naming."""

from __future__ import annotations

import hashlib
import os
import re
from datetime import datetime, timezone
from typing import Any, Optional

from .constants import TRUNCATION_MARKER

_SLUG_RE = re.compile(r"[^A-Za-z0-9._-]+")
_LABEL_RE = re.compile(r"[^a-zA-Z0-9_-]")
_WHITESPACE_RE = re.compile(r"[\r\n\t]+")


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _new_run_id(now: Optional[datetime] = None, pid: Optional[int] = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    return f"{stamp}-{os.getpid() if pid is None else pid}"


def shorten(text: str, max_chars: int = 120) -> str:
    """Cap `text` at `max_chars` characters, marking the cut with an ellipsis."""
    if len(text) > max_chars:
        return text[:max_chars] + TRUNCATION_MARKER
    return text


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    text = value if isinstance(value, str) else str(value)
    return _WHITESPACE_RE.sub(" ", text).strip(" ")


def _slugify(name: str) -> str:
    slug = _SLUG_RE.sub("_", name or "").strip("_")
    return slug or "project"


def _safe_label(label: str) -> str:
    return _LABEL_RE.sub("_", label)


def _hash_path(path: str) -> str:
    return hashlib.sha1(path.encode("utf-8")).hexdigest()[:8]


def _coerce_string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, list):
        return []
    items: list[str] = []
    for item in value:
        if item is None:
            continue
        text = str(item).strip()
        if text:
            items.append(text)
    return items
