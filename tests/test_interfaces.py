from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from src.moe_pipeline.interfaces import DownloadRequest, FeedItem, JsonlQueueDownloader, feed_items_from_json


def test_feed_items_from_json(caplog: pytest.LogCaptureFixture) -> None:
    data = [
        {"guid": "g1", "title": "[SubsPlease] Show - 01 (1080p).mkv", "link": "magnet:1", "pubDate": "Mon"},
        {"title": "[SubsPlease] Show - 02 (1080p).mkv", "link": "magnet:2", "pub_date": "Tue"},
        {"title": "", "link": "magnet:3"},
    ]

    with caplog.at_level(logging.WARNING):
        items = feed_items_from_json(data)

    assert items == [
        FeedItem(guid="g1", title="[SubsPlease] Show - 01 (1080p).mkv", link="magnet:1", pub_date="Mon"),
        FeedItem(guid="magnet:2", title="[SubsPlease] Show - 02 (1080p).mkv", link="magnet:2", pub_date="Tue"),
    ]
    assert "Skipping feed item 2" in caplog.text


@pytest.mark.parametrize("data", [{"items": []}, "text", [1]])
def test_feed_items_reject_bad_shapes(data: object) -> None:
    with pytest.raises(ValueError):
        feed_items_from_json(data)


def test_jsonl_downloader_appends(tmp_path: Path) -> None:
    path = tmp_path / "queue" / "downloads.jsonl"
    downloader = JsonlQueueDownloader(path)

    downloader.submit(DownloadRequest("magnet:1", "raw one", "Show - Episode 01", "g1"))
    downloader.submit(DownloadRequest("magnet:2", "raw two", "Show - Episode 02", "g2"))

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line["final_display_title"] for line in lines] == ["Show - Episode 01", "Show - Episode 02"]
    assert lines[0]["torrent_link"] == "magnet:1"
