"""On-disk last-known-good copies of the remote rule sources."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

__all__ = [
    "RuleCacheEntry",
    "atomic_write_text",
    "load_rule_cache",
    "persist_rule_cache",
    "rule_cache_path",
]

_RULE_CACHE_SCHEMA_VERSION = 1
_RULE_CACHE_SUBDIR = "rules"


@dataclass(frozen=True)
class RuleCacheEntry:
    """Raw text of one rule source as last fetched successfully."""

    name: str
    text: str
    fetched_at: float
    source_url: str = ""


def rule_cache_path(cache_root: Path, name: str) -> Path:
    safe = "".join(char if char.isalnum() or char in "-_" else "_" for char in name) or "rules"
    return Path(cache_root) / _RULE_CACHE_SUBDIR / f"{safe}.json"


def load_rule_cache(cache_root: Path, name: str) -> Optional[RuleCacheEntry]:
    """Return the cached entry for ``name``, or ``None`` when missing or unreadable."""

    cache_path = rule_cache_path(cache_root, name)
    try:
        raw = cache_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict) or data.get("schema_version") != _RULE_CACHE_SCHEMA_VERSION:
        return None
    try:
        return RuleCacheEntry(
            name=str(data["name"]),
            text=str(data["text"]),
            fetched_at=float(data["fetched_at"]),
            source_url=str(data.get("source_url") or ""),
        )
    except (ValueError, TypeError, KeyError):
        return None


def persist_rule_cache(cache_root: Path, entry: RuleCacheEntry) -> tuple[Path, bool]:
    """
    Persist ``entry`` to ``cache_root/rules/<name>.json``.

    Returns ``(path, True)`` when a write occurred or ``(path, False)`` when the on-disk payload
    already matched.
    """

    cache_path = rule_cache_path(cache_root, entry.name)
    payload: dict[str, Any] = {
        "schema_version": _RULE_CACHE_SCHEMA_VERSION,
        "name": entry.name,
        "text": entry.text,
        "fetched_at": entry.fetched_at,
        "source_url": entry.source_url,
    }
    serialized = json.dumps(payload, sort_keys=True, ensure_ascii=False)
    cache_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        existing = cache_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        existing = None
    except OSError:
        existing = None
    if existing == serialized:
        return cache_path, False
    atomic_write_text(cache_path, serialized)
    return cache_path, True


def atomic_write_text(path: Path, text: str) -> None:
    """Write ``text`` next to ``path`` and move it into place in one rename."""

    handle, temp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(handle, "w", encoding="utf-8") as stream:
            stream.write(text)
        os.replace(temp_name, path)
    except BaseException:
        try:
            os.unlink(temp_name)
        except OSError:
            pass
        raise
