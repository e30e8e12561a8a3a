from __future__ import annotations

from typing import Optional

import pytest

from src.moe_pipeline.parsing import EPISODE_RULES, EpisodeMatch, tokenize
from src.moe_pipeline.parsing.episode_rules import candidate_indexes


def _run_rule(name: str, text: str) -> Optional[EpisodeMatch]:
    rule = next(rule for rule in EPISODE_RULES if rule.name == name)
    tokens = tokenize(text)
    return rule.search(tokens, candidate_indexes(tokens))


def test_rules_are_ordered() -> None:
    assert [rule.name for rule in EPISODE_RULES] == [
        "season_episode",
        "number_sign",
        "single_with_version",
        "episode_range",
        "after_dash",
        "isolated_number",
    ]


@pytest.mark.parametrize(
    ("text", "episodes", "seasons", "versions"),
    [
        ("Show S01E17", ("17",), ("01",), ()),
        ("Show 2x01", ("01",), ("2",), ()),
        ("Show S02E03v2", ("03",), ("02",), ("2",)),
        ("Show S01E01-E03", ("01", "03"), ("01",), ()),
    ],
)
def test_season_episode(
    text: str,
    episodes: tuple[str, ...],
    seasons: tuple[str, ...],
    versions: tuple[str, ...],
) -> None:
    match = _run_rule("season_episode", text)

    assert match is not None
    assert match.episodes == episodes
    assert match.seasons == seasons
    assert match.versions == versions


def test_season_zero_is_not_an_episode() -> None:
    assert _run_rule("season_episode", "Show S00E01") is None


def test_number_sign() -> None:
    match = _run_rule("number_sign", "Show #07v2")

    assert match is not None
    assert match.episodes == ("07",)
    assert match.versions == ("2",)


def test_single_with_version() -> None:
    match = _run_rule("single_with_version", "Show 12v3")

    assert match is not None
    assert match.episodes == ("12",)
    assert match.versions == ("3",)


@pytest.mark.parametrize(("text", "expected"), [("Show 01-02", ("01", "02")), ("Show 1&2", ("1", "2"))])
def test_episode_range(text: str, expected: tuple[str, ...]) -> None:
    match = _run_rule("episode_range", text)

    assert match is not None
    assert match.episodes == expected


@pytest.mark.parametrize("text", ["Show 5-2", "Show 009-1", "Show 3-3"])
def test_episode_range_requires_ascending_bounds(text: str) -> None:
    assert _run_rule("episode_range", text) is None


def test_after_dash() -> None:
    match = _run_rule("after_dash", "Show - 05 extra 99")

    assert match is not None
    assert match.episodes == ("05",)


def test_after_dash_accepts_unicode_dash() -> None:
    match = _run_rule("after_dash", "Show – 11")

    assert match is not None
    assert match.episodes == ("11",)


def test_isolated_number_in_brackets() -> None:
    match = _run_rule("isolated_number", "Show [08]")

    assert match is not None
    assert match.episodes == ("08",)


def test_isolated_number_rejects_out_of_range() -> None:
    assert _run_rule("isolated_number", "Show [0]") is None
