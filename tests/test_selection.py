from __future__ import annotations

import logging

import pytest

from src.datatypes import PipelineConfig
from src.moe_pipeline.resolver import CanonicalIdentity
from src.moe_pipeline import selection
from src.moe_pipeline.selection import (
    build_download_request,
    collect_candidates,
    emit_selections,
    select_latest,
    title_variations,
)
from src.moe_pipeline.store import InMemoryProcessedStore
from tests.helpers.doubles import RecordingDownloader, make_entry, make_feed, make_snapshot


def test_title_variations_deduplicated_in_order() -> None:
    entry = make_entry("Some Show", title_variants=["Some Show", "SS"])

    assert title_variations(CanonicalIdentity("Canonical", 1), entry) == ("Canonical", "Some Show", "SS")


def test_emit_records_every_variation(
    pipeline_config: PipelineConfig,
    memory_store: InMemoryProcessedStore,
    downloader: RecordingDownloader,
) -> None:
    entry = make_entry("Some Show", title_variants=["Sōme Shō"])
    candidates, _ = collect_candidates(
        make_feed("[SubsPlease] Some Show - 03 (1080p) [ABCD1234].mkv"),
        [entry],
        make_snapshot(),
        memory_store,
        pipeline_config,
    )

    outcome = emit_selections(select_latest(candidates, memory_store).selected, downloader, memory_store, pipeline_config)

    assert [record.canonical_title_variation for record in outcome.records] == ["Some Show", "Sōme Shō"]
    assert {record.checksum for record in outcome.records} == {"ABCD1234"}
    assert memory_store.is_processed(3, ["sōme shō"])


def test_selected_keep_feed_order(pipeline_config: PipelineConfig, memory_store: InMemoryProcessedStore) -> None:
    feed = make_feed(
        "[SubsPlease] Beta - 02 (1080p) [ABCD1234].mkv",
        "[SubsPlease] Alpha - 09 (1080p) [ABCD1235].mkv",
        "[SubsPlease] Beta - 03 (1080p) [ABCD1236].mkv",
    )
    entries = [make_entry("Alpha", id=1), make_entry("Beta", id=2)]
    candidates, rejections = collect_candidates(feed, entries, make_snapshot(), memory_store, pipeline_config)

    selection = select_latest(candidates, memory_store)

    assert rejections == []
    assert [candidate.raw_title for candidate in selection.selected] == [feed[1].title, feed[2].title]
    assert [candidate.raw_title for candidate in selection.superseded] == [feed[0].title]


def test_display_title_uses_padding_and_episode_title(memory_store: InMemoryProcessedStore) -> None:
    cfg = PipelineConfig(episode_padding=3)
    candidates, _ = collect_candidates(
        make_feed("[SubsPlease] Show Title - 03 - The Return [1080p].mkv"),
        [make_entry("Show Title")],
        make_snapshot(),
        memory_store,
        cfg,
    )

    request = build_download_request(candidates[0], cfg)

    assert request.final_display_title == "Show Title - Episode 003 - The Return"
    assert request.torrent_link == "magnet:?xt=guid-0"


def test_item_that_raises_is_rejected_alone(
    pipeline_config: PipelineConfig,
    memory_store: InMemoryProcessedStore,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    broken = "[SubsPlease] Broken Show - 01 (1080p) [ABCD1234].mkv"
    fine = "[SubsPlease] Other Show - 03 (1080p) [ABCD1235].mkv"
    real_parse = selection.parse_title

    def parse_or_fail(title: str):
        if title == broken:
            raise ValueError("bad replacement")
        return real_parse(title)

    monkeypatch.setattr(selection, "parse_title", parse_or_fail)

    with caplog.at_level(logging.WARNING, logger="src.moe_pipeline.selection"):
        candidates, rejections = collect_candidates(
            make_feed(broken, fine),
            [make_entry("Broken Show", id=1), make_entry("Other Show", id=2)],
            make_snapshot(),
            memory_store,
            pipeline_config,
        )

    assert [candidate.raw_title for candidate in candidates] == [fine]
    assert [(rejection.title, rejection.reason) for rejection in rejections] == [
        (broken, "evaluation failed: bad replacement")
    ]
    assert "Failed to evaluate" in caplog.text
