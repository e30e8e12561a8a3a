"""Canonical (title, episode) resolution over an immutable rule snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final, Optional, Tuple

from src.moe_pipeline.rules.overrides import OverrideRuleSet
from src.moe_pipeline.rules.snapshot import RulesSnapshot

logger = logging.getLogger(__name__)

__all__: Final = [
    "CanonicalIdentity",
    "resolve_episode",
    "resolve_identity",
    "resolve_title",
]


@dataclass(frozen=True)
class CanonicalIdentity:
    """Result of :func:`resolve_identity`; ``stages`` names every rule that fired, in order."""

    title: str
    episode: int
    override_applied: bool = False
    stages: Tuple[str, ...] = ()


def resolve_title(
    title: str,
    group: str,
    external_id: Optional[int],
    global_rules: OverrideRuleSet,
    user_rules: OverrideRuleSet,
) -> Tuple[str, Tuple[str, ...]]:
    """
    Apply the title-override stages.

    A user exact match wins outright. Otherwise the global stages run in a
    fixed order (id-specific, group-specific, exact, pattern, fallback) and
    each one sees the output of the one before it; within a stage the first
    applicable rule wins. The stages do not stop at the first one that fires,
    so a global exact match can still be rewritten by a later pattern.
    """

    user_title = user_rules.exact(title)
    if user_title is not None:
        return user_title, ("user_exact",)

    stages: list[str] = []
    current = title

    by_id = global_rules.for_external_id(external_id)
    if by_id is not None:
        current = by_id
        stages.append("anilist_specific")

    by_group = global_rules.for_group(group, current)
    if by_group is not None:
        current = by_group
        stages.append("group_specific")

    exact = global_rules.exact(current)
    if exact is not None:
        current = exact
        stages.append("exact_match")

    substituted = global_rules.substitute_pattern(current)
    if substituted is not None:
        current = substituted.strip()
        stages.append("pattern_match")

    fallback = global_rules.substitute_fallback(current)
    if fallback is not None:
        current = fallback.strip()
        stages.append("fallback_patterns")

    return current, tuple(stages)


def resolve_episode(title: str, episode: int, snapshot: RulesSnapshot) -> Tuple[str, int, Tuple[str, ...]]:
    """Apply episode mappings (user, then global) and then the relations database."""

    stages: list[str] = []
    mapping = snapshot.user_overrides.episode_mapping(title, episode)
    label = "user_episode_mapping"
    if mapping is None:
        mapping = snapshot.global_overrides.episode_mapping(title, episode)
        label = "episode_mapping"
    if mapping is not None:
        episode = mapping.map_episode(episode)
        title = mapping.dest_title
        stages.append(label)

    relation = snapshot.relations.find_by_title(title, episode)
    if relation is not None:
        logger.debug(
            "Relations redirect %s #%d -> %s #%d",
            title,
            episode,
            relation.dest_title,
            relation.dest_episode,
        )
        title = relation.dest_title or title
        episode = relation.dest_episode
        stages.append("relations")

    return title, episode, tuple(stages)


def resolve_identity(
    title: str,
    episode: int,
    group: str,
    external_id: Optional[int],
    snapshot: RulesSnapshot,
) -> CanonicalIdentity:
    """
    Resolve a parsed (title, episode) pair to its canonical identity.

    Pure with respect to ``snapshot``: no I/O and no shared state, so the same
    inputs always produce the same identity.
    """

    canonical_title, title_stages = resolve_title(
        title,
        group,
        external_id,
        snapshot.global_overrides,
        snapshot.user_overrides,
    )
    canonical_title, canonical_episode, episode_stages = resolve_episode(canonical_title, episode, snapshot)
    stages = title_stages + episode_stages
    return CanonicalIdentity(
        title=canonical_title,
        episode=canonical_episode,
        override_applied=bool(stages),
        stages=stages,
    )
