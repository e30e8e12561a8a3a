"""Title-override and episode-mapping rule sets.

Two documents feed the resolver: a global one fetched from a shared
repository and a user-local one restricted to ``exact_match`` and
``episode_mappings``. Both are JSON with ``//`` and ``/* */`` comments and
trailing commas tolerated::

    {
      "overrides": {
        "exact_match": {"Oshi no Ko": "[Oshi no Ko]"},
        "pattern_match": [{"pattern": "^Foo$", "replacement": "Bar"}],
        "anilist_specific": {"21": {"override_title": "One Piece"}},
        "group_specific": {"SubsPlease": {"Title": "Canonical Title"}},
        "episode_mappings": [...],
        "fallback_patterns": [{"pattern": "\\s+S\\d+$", "replacement": "", "priority": 10}],
      }
    }
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

__all__ = [
    "DEFAULT_PRIORITY",
    "USER_SECTIONS",
    "EpisodeMappingRule",
    "OverrideRuleSet",
    "OverrideValidationError",
    "PatternRule",
    "build_rule_set",
    "parse_jsonc",
    "parse_overrides",
    "strip_jsonc",
]

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 999
USER_SECTIONS = frozenset({"exact_match", "episode_mappings"})
GLOBAL_SECTIONS = frozenset(
    {"exact_match", "pattern_match", "anilist_specific", "group_specific", "episode_mappings", "fallback_patterns"}
)

_COMMENT_RE = re.compile(r'("(?:[^"\\]|\\.)*")|//[^\n]*|/\*.*?\*/', re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r'("(?:[^"\\]|\\.)*")|,(\s*[}\]])')
_JS_GROUP_REF_RE = re.compile(r"\$(\$|&|\d{1,2})")


class OverrideValidationError(ValueError):
    """Raised when an override document cannot be used; the whole document is rejected."""


def strip_jsonc(text: str) -> str:
    """Remove comments and trailing commas while leaving string literals untouched."""

    without_comments = _COMMENT_RE.sub(lambda match: match.group(1) or "", text)
    return _TRAILING_COMMA_RE.sub(
        lambda match: match.group(1) if match.group(1) is not None else match.group(2),
        without_comments,
    )


def parse_jsonc(text: str) -> Any:
    try:
        return json.loads(strip_jsonc(text))
    except json.JSONDecodeError as exc:
        raise OverrideValidationError(f"JSONC parsing failed: {exc}") from exc


def _python_replacement(replacement: str, group_count: int) -> str:
    """
    Translate ``$1``/``$&``/``$$`` replacement syntax into :mod:`re` syntax.

    A ``$n`` naming a group the pattern does not have stays literal text; for
    two digits, ``$12`` falls back to group 1 followed by ``2`` when there are
    fewer than twelve groups.
    """

    escaped = replacement.replace("\\", "\\\\")

    def _convert(match: re.Match[str]) -> str:
        token = match.group(1)
        if token == "$":
            return "$"
        if token == "&":
            return r"\g<0>"
        if 0 < int(token) <= group_count:
            return rf"\g<{int(token)}>"
        if len(token) == 2 and 0 < int(token[0]) <= group_count:
            return rf"\g<{int(token[0])}>{token[1]}"
        return match.group(0)

    return _JS_GROUP_REF_RE.sub(_convert, escaped)


@dataclass(frozen=True)
class PatternRule:
    """Case-insensitive regex substitution."""

    pattern: re.Pattern[str]
    replacement: str
    priority: int = DEFAULT_PRIORITY
    description: str = ""

    def apply(self, title: str, *, count: int = 0) -> str:
        """Substitute ``count`` occurrences (0 means all) and return the new title."""

        return self.pattern.sub(self.replacement, title, count=count)


@dataclass(frozen=True)
class EpisodeMappingRule:
    """Maps episodes ``[source_start, source_end]`` of one title onto another."""

    source_title: str
    source_start: int
    source_end: int
    dest_title: str
    dest_start: int
    dest_end: Optional[int] = None

    def covers(self, title: str, episode: int) -> bool:
        return self.source_title == title and self.source_start <= episode <= self.source_end

    def map_episode(self, episode: int) -> int:
        return self.dest_start + (episode - self.source_start)


@dataclass(frozen=True)
class OverrideRuleSet:
    """One immutable override document."""

    exact_match: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    pattern_match: Tuple[PatternRule, ...] = ()
    anilist_specific: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    group_specific: Mapping[str, Mapping[str, str]] = field(default_factory=lambda: MappingProxyType({}))
    episode_mappings: Tuple[EpisodeMappingRule, ...] = ()
    fallback_patterns: Tuple[PatternRule, ...] = ()

    @classmethod
    def empty(cls) -> "OverrideRuleSet":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not any(self.stats().values())

    def exact(self, title: str) -> Optional[str]:
        return self.exact_match.get(title) or None

    def for_external_id(self, external_id: Optional[int]) -> Optional[str]:
        if external_id is None:
            return None
        return self.anilist_specific.get(str(external_id)) or None

    def for_group(self, group: str, title: str) -> Optional[str]:
        if not group:
            return None
        return self.group_specific.get(group, {}).get(title) or None

    def substitute_pattern(self, title: str) -> Optional[str]:
        """First ``pattern_match`` rule that changes ``title`` (single substitution)."""

        for rule in self.pattern_match:
            if not rule.pattern.search(title):
                continue
            changed = rule.apply(title, count=1)
            if changed != title:
                return changed
        return None

    def substitute_fallback(self, title: str) -> Optional[str]:
        """First fallback rule, by ascending priority, that changes ``title``."""

        for rule in self.fallback_patterns:
            if not rule.pattern.search(title):
                continue
            changed = rule.apply(title)
            if changed != title:
                return changed
        return None

    def episode_mapping(self, title: str, episode: int) -> Optional[EpisodeMappingRule]:
        for rule in self.episode_mappings:
            if rule.covers(title, episode):
                return rule
        return None

    def stats(self) -> Dict[str, int]:
        return {
            "exact_match": len(self.exact_match),
            "pattern_match": len(self.pattern_match),
            "anilist_specific": len(self.anilist_specific),
            "group_specific": sum(len(titles) for titles in self.group_specific.values()),
            "episode_mappings": len(self.episode_mappings),
            "fallback_patterns": len(self.fallback_patterns),
        }


def _string_map(value: Any, label: str) -> Mapping[str, str]:
    if not isinstance(value, dict):
        raise OverrideValidationError(f"{label} must be an object")
    for key, target in value.items():
        if not isinstance(target, str):
            raise OverrideValidationError(f"{label}[{key!r}] must be a string")
    return MappingProxyType(dict(value))


def _compile_patterns(value: Any, label: str, *, with_priority: bool) -> Tuple[PatternRule, ...]:
    if not isinstance(value, list):
        raise OverrideValidationError(f"{label} must be an array")
    rules: List[PatternRule] = []
    for index, item in enumerate(value):
        if not isinstance(item, dict):
            raise OverrideValidationError(f"{label}[{index}] must be an object")
        pattern = item.get("pattern")
        replacement = item.get("replacement", "")
        if not isinstance(pattern, str) or not isinstance(replacement, str):
            raise OverrideValidationError(f"{label}[{index}] needs string pattern and replacement")
        try:
            compiled = re.compile(pattern, re.IGNORECASE)
        except re.error as exc:
            raise OverrideValidationError(f"{label}[{index}] has an invalid pattern: {exc}") from exc
        translated = _python_replacement(replacement, compiled.groups)
        try:
            compiled.sub(translated, "")
        except (re.error, IndexError) as exc:
            raise OverrideValidationError(f"{label}[{index}] has an invalid replacement: {exc}") from exc
        priority = item.get("priority", DEFAULT_PRIORITY) if with_priority else DEFAULT_PRIORITY
        if isinstance(priority, bool) or not isinstance(priority, (int, float)):
            raise OverrideValidationError(f"{label}[{index}].priority must be a number")
        rules.append(
            PatternRule(
                pattern=compiled,
                replacement=translated,
                priority=int(priority) or DEFAULT_PRIORITY,
                description=str(item.get("description", "")),
            )
        )
    if with_priority:
        rules.sort(key=lambda rule: rule.priority)
    return tuple(rules)


def _required_int(item: Mapping[str, Any], key: str, prefix: str) -> int:
    raw = item.get(key)
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise OverrideValidationError(f"{prefix}.{key} must be an integer")
    return raw


def _episode_mappings(value: Any, label: str) -> Tuple[EpisodeMappingRule, ...]:
    if not isinstance(value, list):
        raise OverrideValidationError(f"{label} must be an array")
    mappings: List[EpisodeMappingRule] = []
    for index, item in enumerate(value):
        if not isinstance(item, dict):
            raise OverrideValidationError(f"{label}[{index}] must be an object")
        source_title = item.get("source_title")
        dest_title = item.get("dest_title")
        if not isinstance(source_title, str) or not isinstance(dest_title, str):
            raise OverrideValidationError(f"{label}[{index}] needs source_title and dest_title strings")
        prefix = f"{label}[{index}]"
        source_start = _required_int(item, "source_episode_start", prefix)
        source_end = _required_int(item, "source_episode_end", prefix)
        dest_start = _required_int(item, "dest_episode_start", prefix)
        dest_end = _required_int(item, "dest_episode_end", prefix) if item.get("dest_episode_end") is not None else None
        if source_end < source_start:
            raise OverrideValidationError(f"{label}[{index}] source range ends before it starts")
        mappings.append(
            EpisodeMappingRule(
                source_title=source_title,
                source_start=source_start,
                source_end=source_end,
                dest_title=dest_title,
                dest_start=dest_start,
                dest_end=dest_end,
            )
        )
    return tuple(mappings)


def _anilist_titles(value: Any, label: str) -> Mapping[str, str]:
    if not isinstance(value, dict):
        raise OverrideValidationError(f"{label} must be an object")
    titles: Dict[str, str] = {}
    for key, entry in value.items():
        if isinstance(entry, str):
            titles[str(key)] = entry
        elif isinstance(entry, dict):
            override = entry.get("override_title")
            if override is not None and not isinstance(override, str):
                raise OverrideValidationError(f"{label}[{key!r}].override_title must be a string")
            if override:
                titles[str(key)] = override
        else:
            raise OverrideValidationError(f"{label}[{key!r}] must be an object")
    return MappingProxyType(titles)


def build_rule_set(document: Any, *, user: bool = False) -> OverrideRuleSet:
    """
    Validate a decoded override document and build its rule set.

    Raises:
        OverrideValidationError: If any section is malformed.
    """
    if not isinstance(document, dict):
        raise OverrideValidationError("override document must be an object")
    overrides = document.get("overrides")
    if not isinstance(overrides, dict):
        raise OverrideValidationError("override document needs an 'overrides' object")
    allowed = USER_SECTIONS if user else GLOBAL_SECTIONS
    unexpected = set(overrides) - allowed
    if unexpected:
        scope = "user" if user else "global"
        raise OverrideValidationError(
            f"unsupported {scope} override sections: {', '.join(sorted(unexpected))}"
        )

    group_specific: Dict[str, Mapping[str, str]] = {}
    raw_groups = overrides.get("group_specific", {})
    if not isinstance(raw_groups, dict):
        raise OverrideValidationError("group_specific must be an object")
    for group, titles in raw_groups.items():
        group_specific[group] = _string_map(titles, f"group_specific[{group!r}]")

    return OverrideRuleSet(
        exact_match=_string_map(overrides.get("exact_match", {}), "exact_match"),
        pattern_match=_compile_patterns(overrides.get("pattern_match", []), "pattern_match", with_priority=False),
        anilist_specific=_anilist_titles(overrides.get("anilist_specific", {}), "anilist_specific"),
        group_specific=MappingProxyType(group_specific),
        episode_mappings=_episode_mappings(overrides.get("episode_mappings", []), "episode_mappings"),
        fallback_patterns=_compile_patterns(
            overrides.get("fallback_patterns", []), "fallback_patterns", with_priority=True
        ),
    )


def parse_overrides(text: str, *, user: bool = False) -> OverrideRuleSet:
    """Parse and validate override JSONC text."""

    rule_set = build_rule_set(parse_jsonc(text), user=user)
    logger.debug("Loaded %s overrides: %s", "user" if user else "global", rule_set.stats())
    return rule_set
