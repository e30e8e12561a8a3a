from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from src.moe_pipeline import cli_entry
from tests.helpers.doubles import RELATIONS_SAMPLE

EP5 = "[SubsPlease] Some Show - 05 (1080p) [AAAA1111].mkv"
EP6 = "[SubsPlease] Some Show - 06 (1080p) [BBBB2222].mkv"


def _write_config(tmp_path: Path, extra: str = "") -> Path:
    user_overrides = tmp_path / "user-overrides.jsonc"
    user_overrides.write_text('{"overrides": {"exact_match": {"Foo": "Bar"}}}', encoding="utf-8")
    config = tmp_path / "config.toml"
    config.write_text(
        f"""
[rules]
cache_dir = "{(tmp_path / 'cache').as_posix()}"
user_overrides_path = "{user_overrides.as_posix()}"

[store]
path = "{(tmp_path / 'processed.json').as_posix()}"

[[whitelist]]
title = "Some Show"
quality = "1080p"
{extra}
""",
        encoding="utf-8",
    )
    return config


def test_parse_json_output(runner: CliRunner) -> None:
    result = runner.invoke(cli_entry.main, ["parse", "--json", "[Erai-raws] Kimetsu no Yaiba - 05 [1080p].mkv"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["success"] is True
    assert payload["elements"]["anime_title"] == ["Kimetsu no Yaiba"]
    assert payload["elements"]["release_group"] == ["Erai-raws"]


def test_parse_table_output(runner: CliRunner) -> None:
    result = runner.invoke(cli_entry.main, ["parse", "[SubsPlease] Foo - 01 (1080p) [ABCD1234].mkv"])

    assert result.exit_code == 0, result.output
    assert "ABCD1234" in result.output


def test_resolve_applies_user_override(runner: CliRunner, tmp_path: Path) -> None:
    config = _write_config(tmp_path)

    result = runner.invoke(
        cli_entry.main,
        ["--config", str(config), "resolve", "[SubsPlease] Foo - 01 (1080p) [ABCD1234].mkv"],
    )

    assert result.exit_code == 0, result.output
    assert "Bar episode 1" in result.output
    assert "user_exact" in result.output


def test_resolve_requires_episode_for_bare_title(runner: CliRunner) -> None:
    result = runner.invoke(cli_entry.main, ["resolve", "Just A Title"])

    assert result.exit_code != 0


def test_missing_config_is_reported(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(cli_entry.main, ["--config", str(tmp_path / "missing.toml"), "resolve", "X", "--episode", "1"])

    assert result.exit_code != 0
    assert "Config file not found" in result.output


def test_run_queues_newest_episode(runner: CliRunner, tmp_path: Path) -> None:
    config = _write_config(tmp_path)
    items = tmp_path / "items.json"
    items.write_text(
        json.dumps(
            [
                {"guid": "g5", "title": EP5, "link": "magnet:?xt=5"},
                {"guid": "g6", "title": EP6, "link": "magnet:?xt=6"},
            ]
        ),
        encoding="utf-8",
    )
    queue = tmp_path / "downloads.jsonl"

    result = runner.invoke(
        cli_entry.main,
        ["--config", str(config), "run", "--items", str(items), "--queue", str(queue)],
    )

    assert result.exit_code == 0, result.output
    lines = [json.loads(line) for line in queue.read_text(encoding="utf-8").splitlines()]
    assert [line["final_display_title"] for line in lines] == ["Some Show - Episode 06"]
    assert lines[0]["source_item_ref"] == "g6"
    stored = json.loads((tmp_path / "processed.json").read_text(encoding="utf-8"))
    assert sorted(stored["guids"]) == ["g5", "g6"]

    again = runner.invoke(
        cli_entry.main,
        ["--config", str(config), "run", "--items", str(items), "--queue", str(queue)],
    )
    assert again.exit_code == 0, again.output
    assert len(queue.read_text(encoding="utf-8").splitlines()) == 1


def test_run_rejects_malformed_items(runner: CliRunner, tmp_path: Path) -> None:
    config = _write_config(tmp_path)
    items = tmp_path / "items.json"
    items.write_text('{"not": "a list"}', encoding="utf-8")

    result = runner.invoke(cli_entry.main, ["--config", str(config), "run", "--items", str(items)])

    assert result.exit_code != 0
    assert "Could not read feed items" in result.output


def test_refresh_reports_each_source(
    runner: CliRunner,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    config = _write_config(tmp_path)

    def _fake_fetcher_factory(feed_cfg: object):
        async def fetch(url: str) -> str:
            if url.endswith(".txt"):
                return RELATIONS_SAMPLE
            return '{"overrides": {"exact_match": {"A": "B"}}}'

        return fetch

    monkeypatch.setattr(cli_entry, "build_http_fetcher", _fake_fetcher_factory)

    result = runner.invoke(cli_entry.main, ["--config", str(config), "refresh", "--force"])

    assert result.exit_code == 0, result.output
    assert "updated" in result.output
    assert "3 relation rules" in result.output
    assert (tmp_path / "cache" / "rules" / "relations.json").exists()
