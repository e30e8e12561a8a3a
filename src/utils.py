"""General-purpose string helpers shared by the parser, matcher and store."""

from __future__ import annotations

import re
from typing import Any, Iterable, List, Optional

_NON_WORD_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_variation(title: str) -> str:
    """
    Return the dedup key for a title variation.

    Lowercases, drops punctuation and collapses whitespace so that
    ``"Show: Title"`` and ``"show title"`` share one key.
    """

    text = (title or "").lower()
    text = _NON_WORD_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text)
    return text.strip()


def split_keywords(value: Optional[str]) -> List[str]:
    """Split a comma-separated keyword string into lowercase, non-empty terms."""

    if not value:
        return []
    return [part.strip().lower() for part in value.split(",") if part.strip()]


def first_sequence_value(val: Any) -> Any:
    """
    Return the first element from ``val`` if it is a sequence.

    Parameters:
        val (Any): Potential sequence value.

    Returns:
        Any: First element for sequence inputs; otherwise the original value.
    """
    if isinstance(val, (list, tuple)):
        return val[0] if val else None
    return val


def coerce_episode_number(val: Any) -> Optional[int]:
    """Convert a parsed episode value (string, int or list) into an int when possible."""

    value = first_sequence_value(val)
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def format_display_title(
    title: str,
    episode: int,
    episode_title: str = "",
    *,
    padding: int = 2,
) -> str:
    """Compose ``"<title> - Episode 05[ - <episode title>]"`` for a download."""

    label = f"{title} - Episode {episode:0{padding}d}"
    if episode_title:
        label = f"{label} - {episode_title}"
    return label


def unique_preserving_order(values: Iterable[str]) -> List[str]:
    """Drop empty and duplicate strings while keeping the first occurrence order."""

    seen: set[str] = set()
    result: List[str] = []
    for value in values:
        if not value or value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result
