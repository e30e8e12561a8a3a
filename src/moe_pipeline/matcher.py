"""Whitelist matching: tiered title comparison followed by per-entry filters."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final, Iterable, Optional, Sequence

from src.datatypes import PipelineConfig, WhitelistEntry
from src.moe_pipeline.resolver import CanonicalIdentity
from src.moe_pipeline.rules.relations import RelationsDatabase
from src.utils import split_keywords

logger = logging.getLogger(__name__)

__all__: Final = [
    "MatchResult",
    "MatchTier",
    "filter_rejection",
    "find_match",
    "group_allowed",
    "match_entry",
    "passes_filter",
]

ANY: Final = "any"


class MatchTier:
    RAW_TITLE = 1
    CANONICAL_TITLE = 2
    TITLE_VARIANT = 3
    EXTERNAL_ID = 4


@dataclass(frozen=True)
class MatchResult:
    entry: WhitelistEntry
    tier: int


def group_allowed(group: str, pipeline_cfg: PipelineConfig, overrides: Iterable[str] = ()) -> bool:
    """
    Return ``True`` when ``group`` is on the allow-list and not blocked.

    ``overrides`` lists groups a single entry opted into; they bypass the
    block-list but not the allow-list.
    """

    if not group or group not in pipeline_cfg.allowed_groups:
        return False
    if group in pipeline_cfg.blocked_groups and group not in overrides:
        return False
    return True


def filter_rejection(
    entry: WhitelistEntry,
    raw_title: str,
    release_group: str,
    pipeline_cfg: PipelineConfig,
) -> Optional[str]:
    """Return why ``entry``'s filters reject the item, or ``None`` when it passes."""

    title_lower = raw_title.lower()
    for keyword in split_keywords(entry.keywords):
        if keyword not in title_lower:
            return f"missing keyword {keyword!r}"
    for keyword in split_keywords(entry.exclude_keywords):
        if keyword in title_lower:
            return f"excluded keyword {keyword!r}"
    quality = (entry.quality or ANY).strip()
    if quality.lower() != ANY and quality.lower() not in title_lower:
        return f"quality {quality!r} not in title"
    preferred = (entry.preferred_group or ANY).strip()
    if preferred.lower() != ANY:
        if release_group != preferred:
            return f"group {release_group!r} is not {preferred!r}"
    elif not group_allowed(release_group, pipeline_cfg, entry.allowed_group_overrides):
        return f"group {release_group!r} not allowed"
    return None


def passes_filter(
    entry: WhitelistEntry,
    raw_title: str,
    release_group: str,
    pipeline_cfg: PipelineConfig,
) -> bool:
    return filter_rejection(entry, raw_title, release_group, pipeline_cfg) is None


def _variant_match(entry: WhitelistEntry, canonical_lower: str) -> bool:
    return any(variant.lower() == canonical_lower for variant in entry.title_variants if variant)


def _external_match(
    entry: WhitelistEntry,
    canonical_lower: str,
    episodes: Sequence[int],
    relations: RelationsDatabase,
) -> bool:
    if entry.external_id is None or not canonical_lower:
        return False
    alternates = [variant.lower() for variant in entry.title_variants if variant]
    if not any(alt in canonical_lower or canonical_lower in alt for alt in alternates):
        return False
    return any(relations.has_relation(entry.external_id, episode) for episode in episodes)


def match_entry(
    entry: WhitelistEntry,
    raw_title: str,
    release_group: str,
    identity: CanonicalIdentity,
    relations: RelationsDatabase,
    pipeline_cfg: PipelineConfig,
    *,
    parsed_episode: Optional[int] = None,
) -> Optional[MatchResult]:
    """
    Try the match tiers for one entry in order.

    A tier only counts when the entry's filters also pass; since the filters
    do not depend on the tier, the first title hit decides the outcome.
    """

    entry_title = entry.title.lower()
    canonical_lower = identity.title.lower()
    tier: Optional[int] = None
    if entry_title and entry_title in raw_title.lower():
        tier = MatchTier.RAW_TITLE
    elif entry_title and entry_title in canonical_lower:
        tier = MatchTier.CANONICAL_TITLE
    elif _variant_match(entry, canonical_lower):
        tier = MatchTier.TITLE_VARIANT
    else:
        episodes = [identity.episode]
        if parsed_episode is not None and parsed_episode != identity.episode:
            episodes.append(parsed_episode)
        if _external_match(entry, canonical_lower, episodes, relations):
            tier = MatchTier.EXTERNAL_ID
    if tier is None:
        return None

    rejection = filter_rejection(entry, raw_title, release_group, pipeline_cfg)
    if rejection is not None:
        logger.debug("Entry %r matched %r at tier %d but %s", entry.title, raw_title, tier, rejection)
        return None
    return MatchResult(entry=entry, tier=tier)


def find_match(
    entries: Iterable[WhitelistEntry],
    raw_title: str,
    release_group: str,
    identity: CanonicalIdentity,
    relations: RelationsDatabase,
    pipeline_cfg: PipelineConfig,
    *,
    parsed_episode: Optional[int] = None,
) -> Optional[MatchResult]:
    """Return the first enabled entry that matches; a failing entry is logged and skipped."""

    for entry in entries:
        if not entry.enabled:
            continue
        try:
            result = match_entry(
                entry,
                raw_title,
                release_group,
                identity,
                relations,
                pipeline_cfg,
                parsed_episode=parsed_episode,
            )
        except Exception as exc:
            logger.warning("Whitelist entry %r failed to match %r: %s", getattr(entry, "title", entry), raw_title, exc)
            continue
        if result is not None:
            return result
    return None
