from __future__ import annotations

import logging

import pytest

from src.datatypes import PipelineConfig
from src.moe_pipeline.matcher import (
    MatchTier,
    filter_rejection,
    find_match,
    group_allowed,
    match_entry,
)
from src.moe_pipeline.resolver import CanonicalIdentity
from src.moe_pipeline.rules.relations import RelationsDatabase, parse_relations
from tests.helpers.doubles import RELATIONS_SAMPLE, make_entry

RAW = "[SubsPlease] Some Show - 05 (1080p) [ABCD1234].mkv"


def _identity(title: str, episode: int = 5) -> CanonicalIdentity:
    return CanonicalIdentity(title=title, episode=episode)


@pytest.mark.parametrize(
    ("entry_title", "variants", "raw", "canonical", "tier"),
    [
        ("Some Show", [], RAW, "Some Show", MatchTier.RAW_TITLE),
        ("Some Show", [], "[SubsPlease] Renamed - 05 (1080p).mkv", "Some Show Extended", MatchTier.CANONICAL_TITLE),
        ("Unrelated", ["Renamed Show"], "[SubsPlease] RS - 05 (1080p).mkv", "renamed show", MatchTier.TITLE_VARIANT),
    ],
)
def test_title_tiers(
    entry_title: str,
    variants: list[str],
    raw: str,
    canonical: str,
    tier: int,
    pipeline_config: PipelineConfig,
) -> None:
    entry = make_entry(entry_title, title_variants=variants)

    result = match_entry(entry, raw, "SubsPlease", _identity(canonical), RelationsDatabase.empty(), pipeline_config)

    assert result is not None
    assert result.tier == tier


def test_external_id_tier_needs_relation(pipeline_config: PipelineConfig) -> None:
    relations = parse_relations(RELATIONS_SAMPLE)
    entry = make_entry("Kanojo", external_id=113813, title_variants=["Rent-a-Girlfriend Season 2"])
    identity = _identity("Rent-a-Girlfriend", episode=14)
    raw = "[SubsPlease] Rent-a-Girlfriend - 14 (1080p).mkv"

    result = match_entry(entry, raw, "SubsPlease", identity, relations, pipeline_config)

    assert result is not None
    assert result.tier == MatchTier.EXTERNAL_ID
    assert match_entry(entry, raw, "SubsPlease", _identity("Rent-a-Girlfriend", 40), relations, pipeline_config) is None


def test_external_id_tier_accepts_parsed_episode(pipeline_config: PipelineConfig) -> None:
    relations = parse_relations(RELATIONS_SAMPLE)
    entry = make_entry("Kanojo", external_id=113813, title_variants=["Rent-a-Girlfriend"])
    identity = _identity("Rent-a-Girlfriend Season 2", episode=2)

    result = match_entry(entry, "raw", "SubsPlease", identity, relations, pipeline_config, parsed_episode=14)

    assert result is not None
    assert result.tier == MatchTier.EXTERNAL_ID


@pytest.mark.parametrize(
    ("entry_kwargs", "group", "reason"),
    [
        ({"keywords": "1080p, hevc"}, "SubsPlease", "missing keyword 'hevc'"),
        ({"exclude_keywords": "abcd1234"}, "SubsPlease", "excluded keyword 'abcd1234'"),
        ({"quality": "720p"}, "SubsPlease", "quality '720p' not in title"),
        ({"preferred_group": "Erai-raws"}, "SubsPlease", "group 'SubsPlease' is not 'Erai-raws'"),
        ({}, "Unknown", "group 'Unknown' not allowed"),
    ],
)
def test_filter_rejections(entry_kwargs: dict, group: str, reason: str, pipeline_config: PipelineConfig) -> None:
    entry = make_entry("Some Show", **entry_kwargs)

    assert filter_rejection(entry, RAW, group, pipeline_config) == reason


def test_filters_pass_case_insensitively(pipeline_config: PipelineConfig) -> None:
    entry = make_entry("Some Show", keywords="1080P", quality="1080p", preferred_group="SubsPlease")

    assert filter_rejection(entry, RAW, "SubsPlease", pipeline_config) is None


def test_blocked_group_needs_entry_override() -> None:
    cfg = PipelineConfig(allowed_groups=["SubsPlease", "ASW"], blocked_groups=["ASW"])

    assert not group_allowed("ASW", cfg)
    assert group_allowed("ASW", cfg, overrides=["ASW"])
    assert not group_allowed("Other", cfg, overrides=["Other"])
    assert not group_allowed("", cfg)


def test_filter_failure_prevents_match(pipeline_config: PipelineConfig, caplog: pytest.LogCaptureFixture) -> None:
    entry = make_entry("Some Show", quality="720p")

    with caplog.at_level(logging.DEBUG, logger="src.moe_pipeline.matcher"):
        result = match_entry(entry, RAW, "SubsPlease", _identity("Some Show"), RelationsDatabase.empty(), pipeline_config)

    assert result is None
    assert "matched" in caplog.text and "720p" in caplog.text


def test_find_match_skips_disabled_and_returns_first(pipeline_config: PipelineConfig) -> None:
    disabled = make_entry("Some Show", id=1, enabled=False)
    first = make_entry("Some Show", id=2)
    second = make_entry("Some", id=3)

    result = find_match(
        [disabled, first, second], RAW, "SubsPlease", _identity("Some Show"), RelationsDatabase.empty(), pipeline_config
    )

    assert result is not None
    assert result.entry.id == 2


def test_find_match_skips_entry_that_raises(pipeline_config: PipelineConfig, caplog: pytest.LogCaptureFixture) -> None:
    broken = make_entry(None, id=1)  # type: ignore[arg-type]
    valid = make_entry("Some Show", id=2)

    with caplog.at_level(logging.WARNING, logger="src.moe_pipeline.matcher"):
        result = find_match(
            [broken, valid], RAW, "SubsPlease", _identity("Some Show"), RelationsDatabase.empty(), pipeline_config
        )

    assert result is not None
    assert result.entry.id == 2
    assert "failed to match" in caplog.text
    assert "None" in caplog.text


def test_find_match_returns_none_without_hit(pipeline_config: PipelineConfig) -> None:
    entries = [make_entry("Another Show")]

    assert find_match(entries, RAW, "SubsPlease", _identity("Some Show"), RelationsDatabase.empty(), pipeline_config) is None
