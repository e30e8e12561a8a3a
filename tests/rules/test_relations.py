from __future__ import annotations

import logging

import pytest

from src.moe_pipeline.rules.relations import (
    OPEN_END,
    EpisodeRange,
    ExternalIds,
    RelationsParseError,
    parse_relations,
)
from tests.helpers.doubles import RELATIONS_SAMPLE


def test_meta_section_is_recorded() -> None:
    database = parse_relations(RELATIONS_SAMPLE)

    assert database.meta["version"] == "1.3.0"
    assert database.stats()["last_modified"] == "2024-01-01"


def test_sequential_rules_pick_the_covering_range() -> None:
    database = parse_relations(RELATIONS_SAMPLE)

    mapping = database.episode_mapping(1000, 14)

    assert mapping is not None
    assert mapping.dest_id == 3000
    assert mapping.dest_episode == 2
    assert mapping.dest_title == "Dest B"


def test_mapping_is_linear_across_the_range() -> None:
    database = parse_relations("::rules\n- 1|1|10:5-9 -> 2|2|20:101-105\n")

    for offset in range(5):
        mapping = database.episode_mapping(10, 5 + offset)
        assert mapping is not None
        assert mapping.dest_episode == 101 + offset
    assert database.episode_mapping(10, 10) is None


def test_tilde_comment_appends_suffix() -> None:
    database = parse_relations(RELATIONS_SAMPLE)

    mapping = database.episode_mapping(113813, 13)

    assert mapping is not None
    assert mapping.dest_episode == 1
    assert mapping.source_title == "Kanojo, Okarishimasu"
    assert mapping.dest_title == "Kanojo, Okarishimasu 2nd Season"


def test_tilde_comment_with_several_suffixes_replaces_trailing_number() -> None:
    text = "::rules\n# Show 2 -> ~ 3, 4\n- ?|?|1:13-24 -> ?|?|2:1-12\n- ?|?|1:25-36 -> ?|?|3:1-12\n- ?|?|1:37-48 -> ?|?|4:1-12\n"

    database = parse_relations(text)
    titles = [rule.dest_title for rule in database.rules_for(1)]

    assert titles == ["Show 3", "Show 4", "Show 2 Season 3"]


def test_colon_suffix_joins_without_space() -> None:
    database = parse_relations("::rules\n# Show -> ~ : Part 2\n- ?|?|1:13-24 -> ?|?|2:1-12\n")

    assert database.rules_for(1)[0].dest_title == "Show: Part 2"


def test_open_ended_range() -> None:
    database = parse_relations("::rules\n- ?|?|7:13-? -> ?|?|8:1-?\n")

    rule = database.rules_for(7)[0]
    assert rule.source_range.end == OPEN_END
    assert str(rule.source_range) == "13-?"
    mapping = database.episode_mapping(7, 500)
    assert mapping is not None
    assert mapping.dest_episode == 488


def test_tilde_destination_ids_inherit_source() -> None:
    database = parse_relations("::rules\n- 11|22|33:13-24 -> ~|~|~:1-12\n")

    rule = database.rules_for(33)[0]
    assert rule.dest_ids == ExternalIds(11, 22, 33)


def test_bang_rule_also_applies_to_destination() -> None:
    database = parse_relations("::rules\n# A -> B\n- ?|?|1:13-24 -> ?|?|2:1-12!\n")

    mapping = database.episode_mapping(2, 14)

    assert mapping is not None
    assert mapping.dest_id == 2
    assert mapping.dest_episode == 2
    assert database.rules_for(1)[0].applies_to_destination


def test_malformed_lines_are_skipped_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    text = "::rules\n- garbage line\n- ?|?|1:5-2 -> ?|?|2:1-1\n- ?|?|3:1-12 -> ?|?|4:1-12\n"

    with caplog.at_level(logging.WARNING, logger="src.moe_pipeline.rules.relations"):
        database = parse_relations(text)

    assert len(database) == 1
    assert database.has_relation(3)
    assert "Skipping relations line 2" in caplog.text
    assert "Skipped 2 malformed relations lines" in caplog.text


def test_reverse_mapping() -> None:
    database = parse_relations(RELATIONS_SAMPLE)

    mapping = database.reverse_mapping(3000, 2)

    assert mapping is not None
    assert mapping.source_id == 1000
    assert mapping.source_episode == 14


def test_find_by_title_is_case_insensitive() -> None:
    database = parse_relations(RELATIONS_SAMPLE)

    mapping = database.find_by_title("source show", 20)

    assert mapping is not None
    assert (mapping.dest_title, mapping.dest_episode) == ("Dest B", 8)
    assert database.find_by_title("unknown", 20) is None


def test_has_relation_checks_episode_range() -> None:
    database = parse_relations(RELATIONS_SAMPLE)

    assert database.has_relation(1000)
    assert database.has_relation(1000, 24)
    assert not database.has_relation(1000, 25)
    assert not database.has_relation(999)


@pytest.mark.parametrize("text", ["", "a-b", "5-2", "1-x"])
def test_invalid_episode_ranges(text: str) -> None:
    with pytest.raises(RelationsParseError):
        EpisodeRange.parse(text)


def test_empty_text_yields_empty_database() -> None:
    database = parse_relations("")

    assert len(database) == 0
    assert database.stats()["anime"] == 0
