"""Ordered, independently testable episode-number rules.

Each rule inspects the candidate tokens (unknown tokens containing a digit)
and returns an :class:`EpisodeMatch` for the first token it accepts. The
parser tries :data:`EPISODE_RULES` in order and stops at the first rule that
produces a match.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

from .tokens import TokenFlag, Tokens, find_previous_token, is_dash, is_isolated, is_numeric

__all__ = [
    "EPISODE_RULES",
    "EpisodeMatch",
    "EpisodeRule",
    "candidate_indexes",
]

EPISODE_MIN = 1
EPISODE_MAX = 9999

_SEASON_EPISODE_RE = re.compile(
    r"^S?(\d{1,2})(?:-S?(\d{1,2}))?(?:x|[ ._x-]?E)(\d{1,4})(?:-E?(\d{1,4}))?(?:v(\d))?$",
    re.IGNORECASE,
)
_NUMBER_SIGN_RE = re.compile(r"^#(\d{1,4})(?:[-~&+](\d{1,4}))?(?:[vV](\d))?$")
_SINGLE_VERSION_RE = re.compile(r"^(\d{1,4})[vV](\d)$")
_MULTI_EPISODE_RE = re.compile(r"^(\d{1,4})(?:[vV](\d))?[-~&+](\d{1,4})(?:[vV](\d))?$")


@dataclass(frozen=True)
class EpisodeMatch:
    """Values extracted from the token at ``index``."""

    index: int
    episodes: Tuple[str, ...]
    seasons: Tuple[str, ...] = ()
    versions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class EpisodeRule:
    name: str
    search: Callable[[Tokens, Sequence[int]], Optional[EpisodeMatch]]


def _present(*values: Optional[str]) -> Tuple[str, ...]:
    return tuple(value for value in values if value)


def candidate_indexes(tokens: Tokens) -> Tuple[int, ...]:
    """Positions of unknown tokens that contain at least one digit."""

    return tuple(
        index
        for index, token in enumerate(tokens)
        if token.matches(TokenFlag.UNKNOWN) and any(char.isdigit() for char in token.content)
    )


def _pattern_rule(
    pattern: re.Pattern[str],
    build: Callable[[re.Match[str], int], Optional[EpisodeMatch]],
) -> Callable[[Tokens, Sequence[int]], Optional[EpisodeMatch]]:
    def search(tokens: Tokens, candidates: Sequence[int]) -> Optional[EpisodeMatch]:
        for index in candidates:
            word = tokens[index].content.strip()
            if is_numeric(word):
                continue
            match = pattern.match(word)
            if match is None:
                continue
            result = build(match, index)
            if result is not None:
                return result
        return None

    return search


def _build_season_episode(match: re.Match[str], index: int) -> Optional[EpisodeMatch]:
    season, season_end, episode, episode_end, version = match.groups()
    if int(season) == 0:
        return None
    return EpisodeMatch(
        index=index,
        episodes=_present(episode, episode_end),
        seasons=_present(season, season_end),
        versions=_present(version),
    )


def _build_number_sign(match: re.Match[str], index: int) -> Optional[EpisodeMatch]:
    episode, episode_end, version = match.groups()
    return EpisodeMatch(index=index, episodes=_present(episode, episode_end), versions=_present(version))


def _build_single_version(match: re.Match[str], index: int) -> Optional[EpisodeMatch]:
    episode, version = match.groups()
    return EpisodeMatch(index=index, episodes=(episode,), versions=(version,))


def _build_multi_episode(match: re.Match[str], index: int) -> Optional[EpisodeMatch]:
    lower, lower_version, upper, upper_version = match.groups()
    # "009-1" and "5-2" are not ranges.
    if int(lower) >= int(upper):
        return None
    return EpisodeMatch(
        index=index,
        episodes=(lower, upper),
        versions=_present(lower_version, upper_version),
    )


def _in_episode_range(word: str) -> bool:
    return EPISODE_MIN <= int(word) <= EPISODE_MAX


def _search_after_dash(tokens: Tokens, candidates: Sequence[int]) -> Optional[EpisodeMatch]:
    for index in candidates:
        word = tokens[index].content
        if not is_numeric(word):
            continue
        previous = find_previous_token(tokens, index, TokenFlag.NOT_DELIMITER)
        if previous is None or not is_dash(tokens[previous].content):
            continue
        if _in_episode_range(word):
            return EpisodeMatch(index=index, episodes=(word,))
    return None


def _search_isolated(tokens: Tokens, candidates: Sequence[int]) -> Optional[EpisodeMatch]:
    for index in candidates:
        word = tokens[index].content
        if not is_numeric(word) or not is_isolated(tokens, index):
            continue
        if _in_episode_range(word):
            return EpisodeMatch(index=index, episodes=(word,))
    return None


EPISODE_RULES: Tuple[EpisodeRule, ...] = (
    EpisodeRule("season_episode", _pattern_rule(_SEASON_EPISODE_RE, _build_season_episode)),
    EpisodeRule("number_sign", _pattern_rule(_NUMBER_SIGN_RE, _build_number_sign)),
    EpisodeRule("single_with_version", _pattern_rule(_SINGLE_VERSION_RE, _build_single_version)),
    EpisodeRule("episode_range", _pattern_rule(_MULTI_EPISODE_RE, _build_multi_episode)),
    EpisodeRule("after_dash", _search_after_dash),
    EpisodeRule("isolated_number", _search_isolated),
)
"""Episode rules in evaluation order; the first rule with a match wins."""
