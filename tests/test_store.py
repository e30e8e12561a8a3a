from __future__ import annotations

import json
from pathlib import Path

import pytest

from src.datatypes import ProcessedStatus
from src.moe_pipeline import store as store_module
from src.moe_pipeline.store import InMemoryProcessedStore, JsonProcessedStore, ProcessedRecord, StoreError


def _record(variation: str, episode: int, status: ProcessedStatus = ProcessedStatus.QUEUED) -> ProcessedRecord:
    return ProcessedRecord(
        whitelist_entry_id=1,
        original_filename=f"[SubsPlease] {variation} - {episode:02d} (1080p).mkv",
        final_title=f"{variation} - Episode {episode:02d}",
        canonical_episode=episode,
        canonical_title_variation=variation,
        status=status,
    )


def test_duplicate_key_is_ignored(memory_store: InMemoryProcessedStore) -> None:
    assert memory_store.record(_record("Show: Title", 5))
    assert not memory_store.record(_record("show title", 5))

    assert len(memory_store.records()) == 1
    assert memory_store.is_processed(5, ["SHOW TITLE"])
    assert not memory_store.is_processed(6, ["Show: Title"])


def test_floor_covers_all_variations(memory_store: InMemoryProcessedStore) -> None:
    memory_store.record(_record("Show", 3))
    memory_store.record(_record("Show Alt", 7))
    memory_store.record(_record("Other", 12))

    assert memory_store.floor(["Show", "Show Alt"]) == 7
    assert memory_store.floor(["Show"]) == 3
    assert memory_store.floor(["Missing"]) is None


def test_failed_records_do_not_count() -> None:
    store = InMemoryProcessedStore([_record("Show", 9, ProcessedStatus.FAILED), _record("Show", 4)])

    assert store.floor(["Show"]) == 4
    assert not store.is_processed(9, ["Show"])


def test_guid_tracking(memory_store: InMemoryProcessedStore) -> None:
    assert not memory_store.has_seen_guid("a")

    memory_store.mark_guid("a")

    assert memory_store.has_seen_guid("a")


def test_json_store_round_trips_to_disk(tmp_path: Path) -> None:
    path = tmp_path / "state" / "processed.json"
    store = JsonProcessedStore(path)
    store.record(_record("Show", 5))
    store.mark_guid("guid-1")

    reloaded = JsonProcessedStore(path)

    assert reloaded.is_processed(5, ["Show"])
    assert reloaded.has_seen_guid("guid-1")
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["schema_version"] == 1
    assert data["records"][0]["status"] == "queued"


def test_missing_json_store_starts_empty(tmp_path: Path) -> None:
    store = JsonProcessedStore(tmp_path / "processed.json")

    assert store.records() == []
    assert not (tmp_path / "processed.json").exists()


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ("{not json", "not valid JSON"),
        ('{"schema_version": 99}', "unsupported schema"),
        ('{"schema_version": 1, "records": [{"canonical_episode": 1}]}', "malformed record"),
    ],
)
def test_corrupt_json_store_raises(tmp_path: Path, payload: str, message: str) -> None:
    path = tmp_path / "processed.json"
    path.write_text(payload, encoding="utf-8")

    with pytest.raises(StoreError, match=message):
        JsonProcessedStore(path)


def test_guid_batch_persists_once(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    writes: list[Path] = []
    real_write = store_module.atomic_write_text

    def counting_write(path: Path, text: str) -> None:
        writes.append(path)
        real_write(path, text)

    monkeypatch.setattr(store_module, "atomic_write_text", counting_write)
    store = JsonProcessedStore(tmp_path / "processed.json")

    store.mark_guids(f"guid-{index}" for index in range(50))
    store.mark_guids(["guid-0", "guid-49"])

    assert len(writes) == 1
    assert store.has_seen_guid("guid-49")


def test_oldest_guids_are_forgotten_past_the_cap(tmp_path: Path) -> None:
    path = tmp_path / "processed.json"
    store = JsonProcessedStore(path, max_guids=3)

    store.mark_guids(["a", "b", "c"])
    store.mark_guid("d")

    assert not store.has_seen_guid("a")
    assert json.loads(path.read_text(encoding="utf-8"))["guids"] == ["b", "c", "d"]
    assert not JsonProcessedStore(path, max_guids=2).has_seen_guid("b")
