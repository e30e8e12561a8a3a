"""Anime-relations database: episode redirects between related entries.

The source format is line oriented::

    ::meta
    - version: 1.3.0
    ::rules
    # Kanojo, Okarishimasu -> ~ 2nd Season
    - 40839|42963|113813:13-24 -> 40839|?|124410:1-12

Comment lines of the form ``Source -> ~ Suffix[, Suffix...]`` or
``Source -> Dest[, Dest...]`` supply display titles for the rules that follow.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

__all__ = [
    "OPEN_END",
    "EpisodeMapping",
    "EpisodeRange",
    "ExternalIds",
    "RelationRule",
    "RelationsDatabase",
    "RelationsParseError",
    "TitleComment",
    "parse_relations",
]

logger = logging.getLogger(__name__)

OPEN_END = 9999
"""Sentinel end used for open ranges such as ``13-?``."""

_RULE_RE = re.compile(
    r"^-\s*(?P<src_ids>[^:\s]+):(?P<src_range>[^\s]+)\s*->\s*"
    r"(?P<dst_ids>[^:\s]+):(?P<dst_range>[^\s!]+)(?P<bang>!)?$"
)
_RANGE_RE = re.compile(r"^(\d+)(?:-(\d+|\?))?$")
_META_RE = re.compile(r"^-\s*([^:]+):\s*(.+)$")
_TILDE_COMMENT_RE = re.compile(r"^(.+?)\s*->\s*~\s*(.+)$")
_DIRECT_COMMENT_RE = re.compile(r"^(.+?)\s*->\s*([^~].*)$")
_TRAILING_NUMBER_RE = re.compile(r"\s+\d+$")
_SEASON_SUFFIX_RES = (
    re.compile(r"\s+S\d+$", re.IGNORECASE),
    re.compile(r"\s+Season\s+\d+$", re.IGNORECASE),
)


class RelationsParseError(ValueError):
    """Raised for a single malformed rule line."""


@dataclass(frozen=True)
class EpisodeRange:
    start: int
    end: int

    @property
    def is_open(self) -> bool:
        return self.end == OPEN_END

    def __contains__(self, episode: object) -> bool:
        return isinstance(episode, int) and self.start <= episode <= self.end

    @classmethod
    def parse(cls, text: str) -> "EpisodeRange":
        match = _RANGE_RE.match(text)
        if match is None:
            raise RelationsParseError(f"invalid episode range {text!r}")
        start = int(match.group(1))
        upper = match.group(2)
        if upper is None:
            end = start
        elif upper == "?":
            end = OPEN_END
        else:
            end = int(upper)
        if end < start:
            raise RelationsParseError(f"episode range {text!r} ends before it starts")
        return cls(start, end)

    def __str__(self) -> str:
        if self.start == self.end:
            return str(self.start)
        return f"{self.start}-{'?' if self.is_open else self.end}"


@dataclass(frozen=True)
class ExternalIds:
    """Catalogue identifiers for one entry; ``None`` means unknown."""

    mal: Optional[int] = None
    kitsu: Optional[int] = None
    anilist: Optional[int] = None

    @classmethod
    def parse(cls, text: str, *, inherit: Optional["ExternalIds"] = None) -> "ExternalIds":
        parts = text.split("|")
        if len(parts) != 3:
            raise RelationsParseError(f"expected mal|kitsu|anilist ids, got {text!r}")
        values: List[Optional[int]] = []
        for position, part in enumerate(parts):
            if part == "?":
                values.append(None)
            elif part == "~":
                if inherit is None:
                    raise RelationsParseError("'~' is only valid in the destination ids")
                values.append((inherit.mal, inherit.kitsu, inherit.anilist)[position])
            elif part.isdigit():
                values.append(int(part))
            else:
                raise RelationsParseError(f"invalid id {part!r}")
        return cls(*values)


@dataclass(frozen=True)
class TitleComment:
    """Display-title hint parsed from a ``#`` comment line."""

    source_title: str
    destinations: Tuple[str, ...]
    has_tilde: bool
    suffix: str

    def destination_title(self, rule_index: int) -> str:
        if len(self.destinations) <= 1:
            if not self.has_tilde:
                return self.suffix
            if self.suffix.startswith(":"):
                return f"{self.source_title}{self.suffix}"
            return f"{self.source_title} {self.suffix}"
        if rule_index >= len(self.destinations):
            return f"{self.source_title} Season {rule_index + 1}"
        destination = self.destinations[rule_index]
        if not self.has_tilde:
            return destination
        if _TRAILING_NUMBER_RE.search(self.source_title):
            return _TRAILING_NUMBER_RE.sub(f" {destination}", self.source_title)
        for pattern in _SEASON_SUFFIX_RES:
            if pattern.search(self.source_title):
                return pattern.sub(f" {destination}", self.source_title)
        return f"{self.source_title} {destination}"


@dataclass(frozen=True)
class RelationRule:
    source_ids: ExternalIds
    source_range: EpisodeRange
    dest_ids: ExternalIds
    dest_range: EpisodeRange
    applies_to_destination: bool = False
    source_title: Optional[str] = None
    dest_title: Optional[str] = None
    line_number: int = 0

    @property
    def source_id(self) -> Optional[int]:
        return self.source_ids.anilist

    @property
    def dest_id(self) -> Optional[int]:
        return self.dest_ids.anilist

    def map_episode(self, episode: int) -> int:
        """Linear offset from the source range into the destination range."""

        return self.dest_range.start + (episode - self.source_range.start)

    def unmap_episode(self, episode: int) -> int:
        return self.source_range.start + (episode - self.dest_range.start)


@dataclass(frozen=True)
class EpisodeMapping:
    source_id: int
    source_episode: int
    dest_id: Optional[int]
    dest_episode: int
    source_title: Optional[str] = None
    dest_title: Optional[str] = None


def _parse_rule(line: str, line_number: int) -> RelationRule:
    match = _RULE_RE.match(line)
    if match is None:
        raise RelationsParseError(f"unrecognised rule syntax {line!r}")
    source_ids = ExternalIds.parse(match.group("src_ids"))
    dest_ids = ExternalIds.parse(match.group("dst_ids"), inherit=source_ids)
    return RelationRule(
        source_ids=source_ids,
        source_range=EpisodeRange.parse(match.group("src_range")),
        dest_ids=dest_ids,
        dest_range=EpisodeRange.parse(match.group("dst_range")),
        applies_to_destination=bool(match.group("bang")),
        line_number=line_number,
    )


def _parse_comment(line: str) -> Optional[TitleComment]:
    content = line[1:].strip()
    match = _TILDE_COMMENT_RE.match(content)
    has_tilde = match is not None
    if match is None:
        match = _DIRECT_COMMENT_RE.match(content)
    if match is None:
        return None
    suffix = match.group(2).strip()
    destinations = tuple(part.strip() for part in suffix.split(","))
    return TitleComment(
        source_title=match.group(1).strip(),
        destinations=destinations,
        has_tilde=has_tilde,
        suffix=suffix,
    )


@dataclass(frozen=True)
class RelationsDatabase:
    """Immutable rule index keyed by source AniList id."""

    rules: Mapping[int, Tuple[RelationRule, ...]] = field(default_factory=lambda: MappingProxyType({}))
    meta: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    titles: Mapping[int, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def empty(cls) -> "RelationsDatabase":
        return cls()

    def __len__(self) -> int:
        return sum(len(group) for group in self.rules.values())

    def rules_for(self, source_id: int) -> Tuple[RelationRule, ...]:
        return self.rules.get(source_id, ())

    def episode_mapping(self, source_id: int, episode: int) -> Optional[EpisodeMapping]:
        """Return the redirect for ``episode`` of ``source_id``, if any rule covers it."""

        for rule in self.rules_for(source_id):
            if episode in rule.source_range:
                return EpisodeMapping(
                    source_id=source_id,
                    source_episode=episode,
                    dest_id=rule.dest_id,
                    dest_episode=rule.map_episode(episode),
                    source_title=rule.source_title,
                    dest_title=rule.dest_title,
                )
        return None

    def reverse_mapping(self, dest_id: int, episode: int) -> Optional[EpisodeMapping]:
        """Find which source episode redirects to ``episode`` of ``dest_id``."""

        for source_id, group in self.rules.items():
            for rule in group:
                if rule.dest_id != dest_id or episode not in rule.dest_range:
                    continue
                source_episode = rule.unmap_episode(episode)
                if source_episode not in rule.source_range:
                    continue
                return EpisodeMapping(
                    source_id=source_id,
                    source_episode=source_episode,
                    dest_id=dest_id,
                    dest_episode=episode,
                    source_title=rule.source_title,
                    dest_title=rule.dest_title,
                )
        return None

    def find_by_title(self, title: str, episode: int) -> Optional[EpisodeMapping]:
        """
        Search every rule group for a rule whose source title equals ``title``
        (case-insensitively) and whose source range holds ``episode``.
        """
        wanted = title.strip().casefold()
        if not wanted:
            return None
        for source_id, group in self.rules.items():
            for rule in group:
                if not rule.source_title or not rule.dest_title:
                    continue
                if rule.source_title.casefold() != wanted or episode not in rule.source_range:
                    continue
                return EpisodeMapping(
                    source_id=source_id,
                    source_episode=episode,
                    dest_id=rule.dest_id,
                    dest_episode=rule.map_episode(episode),
                    source_title=rule.source_title,
                    dest_title=rule.dest_title,
                )
        return None

    def has_relation(self, external_id: int, episode: Optional[int] = None) -> bool:
        group = self.rules_for(external_id)
        if episode is None:
            return bool(group)
        return any(episode in rule.source_range for rule in group)

    def stats(self) -> Dict[str, object]:
        return {
            "anime": len(self.rules),
            "rules": len(self),
            "titles": len(self.titles),
            "version": self.meta.get("version"),
            "last_modified": self.meta.get("last_modified"),
        }


def parse_relations(text: str) -> RelationsDatabase:
    """
    Parse relations text into a :class:`RelationsDatabase`.

    Malformed rule lines are skipped individually with a warning. Rules whose
    source has no AniList id are ignored since the database is keyed by it.
    """

    groups: Dict[int, List[RelationRule]] = {}
    mirrored: Dict[int, List[RelationRule]] = {}
    meta: Dict[str, str] = {}
    titles: Dict[int, str] = {}
    section: Optional[str] = None
    comment: Optional[TitleComment] = None
    skipped = 0

    for line_number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith("#"):
            parsed_comment = _parse_comment(line)
            if parsed_comment is not None:
                comment = parsed_comment
            continue
        if line.startswith("::"):
            section = line[2:].strip()
            continue
        if not line.startswith("-"):
            continue
        if section == "meta":
            meta_match = _META_RE.match(line)
            if meta_match:
                meta[meta_match.group(1).strip()] = meta_match.group(2).strip()
            continue
        if section != "rules":
            continue
        try:
            rule = _parse_rule(line, line_number)
        except RelationsParseError as exc:
            skipped += 1
            logger.warning("Skipping relations line %d: %s", line_number, exc)
            continue
        source_id = rule.source_id
        if source_id is None:
            continue
        group = groups.setdefault(source_id, [])
        if comment is not None:
            dest_title = comment.destination_title(len(group))
            rule = replace(rule, source_title=comment.source_title, dest_title=dest_title)
            titles[source_id] = comment.source_title
            if rule.dest_id is not None:
                titles[rule.dest_id] = dest_title
        group.append(rule)
        if rule.applies_to_destination and rule.dest_id is not None and rule.dest_id != source_id:
            mirror = RelationRule(
                source_ids=rule.dest_ids,
                source_range=rule.source_range,
                dest_ids=rule.dest_ids,
                dest_range=rule.dest_range,
                source_title=rule.dest_title,
                dest_title=rule.dest_title,
                line_number=line_number,
            )
            mirrored.setdefault(rule.dest_id, []).append(mirror)

    for dest_id, extra in mirrored.items():
        groups.setdefault(dest_id, []).extend(extra)

    if skipped:
        logger.warning("Skipped %d malformed relations line%s", skipped, "" if skipped == 1 else "s")
    return RelationsDatabase(
        rules=MappingProxyType({key: tuple(value) for key, value in groups.items()}),
        meta=MappingProxyType(meta),
        titles=MappingProxyType(titles),
    )

