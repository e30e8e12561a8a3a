"""Processed-record stores backing duplicate detection and the per-anime floor."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Final, Iterable, List, Optional, Protocol, Set, Tuple

from src.datatypes import ProcessedStatus
from src.moe_pipeline.cache import atomic_write_text
from src.utils import normalize_variation

logger = logging.getLogger(__name__)

__all__: Final = [
    "ACTIVE_STATUSES",
    "DEFAULT_MAX_GUIDS",
    "InMemoryProcessedStore",
    "JsonProcessedStore",
    "ProcessedRecord",
    "ProcessedStore",
    "StoreError",
]

_STORE_SCHEMA_VERSION = 1

DEFAULT_MAX_GUIDS: Final = 5000
"""Seen GUIDs kept before the oldest are forgotten; well above any feed window."""

ACTIVE_STATUSES: Final = frozenset(
    {ProcessedStatus.QUEUED, ProcessedStatus.DOWNLOADING, ProcessedStatus.COMPLETED}
)
"""Statuses that count toward duplicate detection and the floor."""


class StoreError(RuntimeError):
    """Raised when a persisted store cannot be read back."""


@dataclass(frozen=True)
class ProcessedRecord:
    """One (title variation, canonical episode) pair handed to the downloader."""

    whitelist_entry_id: int
    original_filename: str
    final_title: str
    canonical_episode: int
    canonical_title_variation: str
    release_group: str = ""
    resolution: str = ""
    checksum: str = ""
    link: str = ""
    status: ProcessedStatus = ProcessedStatus.QUEUED

    @property
    def key(self) -> Tuple[str, int]:
        return normalize_variation(self.canonical_title_variation), self.canonical_episode

    def to_json(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["status"] = self.status.value
        return payload

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ProcessedRecord":
        return cls(
            whitelist_entry_id=int(data.get("whitelist_entry_id", 0)),
            original_filename=str(data.get("original_filename", "")),
            final_title=str(data.get("final_title", "")),
            canonical_episode=int(data["canonical_episode"]),
            canonical_title_variation=str(data["canonical_title_variation"]),
            release_group=str(data.get("release_group", "")),
            resolution=str(data.get("resolution", "")),
            checksum=str(data.get("checksum", "")),
            link=str(data.get("link", "")),
            status=ProcessedStatus(data.get("status", ProcessedStatus.QUEUED.value)),
        )


class ProcessedStore(Protocol):
    def is_processed(self, episode: int, variations: Iterable[str]) -> bool: ...

    def floor(self, variations: Iterable[str]) -> Optional[int]: ...

    def record(self, record: ProcessedRecord) -> bool: ...

    def has_seen_guid(self, guid: str) -> bool: ...

    def mark_guid(self, guid: str) -> None: ...

    def mark_guids(self, guids: Iterable[str]) -> None: ...


def _normalized_keys(variations: Iterable[str]) -> Set[str]:
    return {key for key in (normalize_variation(value) for value in variations) if key}


class InMemoryProcessedStore:
    """
    Dictionary-backed store.

    Records are unique on ``(normalized variation, canonical episode)``; a
    second record for the same key is ignored and :meth:`record` returns
    ``False``. Seen GUIDs are kept in arrival order and capped at
    ``max_guids``; the oldest are dropped first.
    """

    def __init__(
        self,
        records: Iterable[ProcessedRecord] = (),
        guids: Iterable[str] = (),
        *,
        max_guids: int = DEFAULT_MAX_GUIDS,
    ) -> None:
        self._lock = threading.Lock()
        self._records: Dict[Tuple[str, int], ProcessedRecord] = {}
        self._max_guids = max(1, max_guids)
        self._guids: Dict[str, None] = {}
        self._add_guids(guids)
        for item in records:
            self._records.setdefault(item.key, item)

    def records(self) -> List[ProcessedRecord]:
        with self._lock:
            return list(self._records.values())

    def is_processed(self, episode: int, variations: Iterable[str]) -> bool:
        keys = _normalized_keys(variations)
        with self._lock:
            for key in keys:
                existing = self._records.get((key, episode))
                if existing is not None and existing.status in ACTIVE_STATUSES:
                    return True
        return False

    def floor(self, variations: Iterable[str]) -> Optional[int]:
        keys = _normalized_keys(variations)
        highest: Optional[int] = None
        with self._lock:
            for (variation, episode), existing in self._records.items():
                if variation not in keys or existing.status not in ACTIVE_STATUSES:
                    continue
                if highest is None or episode > highest:
                    highest = episode
        return highest

    def record(self, record: ProcessedRecord) -> bool:
        with self._lock:
            if record.key in self._records:
                logger.debug("Ignoring duplicate processed record %s", record.key)
                return False
            self._records[record.key] = record
        self._after_change()
        return True

    def has_seen_guid(self, guid: str) -> bool:
        with self._lock:
            return guid in self._guids

    def mark_guid(self, guid: str) -> None:
        self.mark_guids([guid])

    def mark_guids(self, guids: Iterable[str]) -> None:
        """Mark every GUID in ``guids`` as seen, persisting at most once."""

        with self._lock:
            changed = self._add_guids(guids)
        if changed:
            self._after_change()

    def _add_guids(self, guids: Iterable[str]) -> bool:
        changed = False
        for guid in guids:
            if guid in self._guids:
                continue
            self._guids[guid] = None
            changed = True
        while len(self._guids) > self._max_guids:
            del self._guids[next(iter(self._guids))]
        return changed

    def _after_change(self) -> None:
        """Hook for persistent subclasses."""

    def _snapshot(self) -> Tuple[List[ProcessedRecord], List[str]]:
        with self._lock:
            return list(self._records.values()), list(self._guids)


class JsonProcessedStore(InMemoryProcessedStore):
    """Store persisted to a schema-versioned JSON file after every change."""

    def __init__(self, path: Path, *, max_guids: int = DEFAULT_MAX_GUIDS) -> None:
        self.path = Path(path)
        records, guids = self._load(self.path)
        super().__init__(records, guids, max_guids=max_guids)

    @staticmethod
    def _load(path: Path) -> Tuple[List[ProcessedRecord], List[str]]:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return [], []
        except OSError as exc:
            raise StoreError(f"Could not read processed store {path}: {exc}") from exc
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreError(f"Processed store {path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict) or data.get("schema_version") != _STORE_SCHEMA_VERSION:
            raise StoreError(f"Processed store {path} has an unsupported schema")
        try:
            records = [ProcessedRecord.from_json(item) for item in data.get("records", [])]
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreError(f"Processed store {path} holds a malformed record: {exc}") from exc
        guids = [str(guid) for guid in data.get("guids", [])]
        return records, guids

    def _after_change(self) -> None:
        records, guids = self._snapshot()
        payload = {
            "schema_version": _STORE_SCHEMA_VERSION,
            "records": [item.to_json() for item in records],
            "guids": guids,
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write_text(self.path, json.dumps(payload, indent=2, ensure_ascii=False))
