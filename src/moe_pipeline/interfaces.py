"""Shapes exchanged with the feed and download collaborators."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Final, List, Mapping, Protocol, Sequence

logger = logging.getLogger(__name__)

__all__: Final = [
    "DownloadCollaborator",
    "DownloadRequest",
    "FeedItem",
    "JsonlQueueDownloader",
    "feed_items_from_json",
]


@dataclass(frozen=True)
class FeedItem:
    guid: str
    title: str
    link: str
    pub_date: str = ""


@dataclass(frozen=True)
class DownloadRequest:
    """What the download collaborator receives for one selected release."""

    torrent_link: str
    raw_title: str
    final_display_title: str
    source_item_ref: str


class DownloadCollaborator(Protocol):
    def submit(self, request: DownloadRequest) -> None: ...


class JsonlQueueDownloader:
    """Append each request as one JSON line; an external worker drains the file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def submit(self, request: DownloadRequest) -> None:
        line = json.dumps(asdict(request), ensure_ascii=False)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as stream:
                stream.write(line + "\n")
        logger.debug("Queued %s", request.final_display_title)


def feed_items_from_json(data: Any) -> List[FeedItem]:
    """
    Convert decoded JSON into :class:`FeedItem` objects.

    Accepts a list of objects with ``guid``/``title``/``link``/``pubDate``
    (``pub_date`` also works). Items missing a title or link are dropped; a
    missing guid falls back to the link.
    """

    if not isinstance(data, Sequence) or isinstance(data, (str, bytes)):
        raise ValueError("feed items must be a JSON array")
    items: List[FeedItem] = []
    for index, raw in enumerate(data):
        if not isinstance(raw, Mapping):
            raise ValueError(f"feed item {index} must be an object")
        title = str(raw.get("title") or "").strip()
        link = str(raw.get("link") or "").strip()
        if not title or not link:
            logger.warning("Skipping feed item %d with missing title or link", index)
            continue
        guid = str(raw.get("guid") or link)
        pub_date = str(raw.get("pubDate") or raw.get("pub_date") or "")
        items.append(FeedItem(guid=guid, title=title, link=link, pub_date=pub_date))
    return items
