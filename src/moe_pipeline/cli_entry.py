"""Click CLI wiring and entry points for moe_pipeline."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, cast

import click
from rich import print
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from src.config_loader import ConfigError, load_config
from src.datatypes import AppConfig
from src.moe_pipeline.interfaces import JsonlQueueDownloader, feed_items_from_json
from src.moe_pipeline.parsing import parse_title
from src.moe_pipeline.resolver import resolve_identity
from src.moe_pipeline.rules.refresh import RuleRefresher, build_http_fetcher
from src.moe_pipeline.rules.snapshot import RulesSnapshot, SnapshotStore
from src.moe_pipeline.runner import CycleDependencies, CycleRequest, CycleResult, run_cycle
from src.moe_pipeline.store import JsonProcessedStore, StoreError
from src.utils import coerce_episode_number

DEFAULT_QUEUE_PATH = "downloads.jsonl"


def configure_logging(*, verbose: bool, quiet: bool) -> None:
    """Route log records through rich; ``--verbose`` wins over ``--quiet``."""

    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load_app_config(config_path: Optional[str]) -> AppConfig:
    try:
        return load_config(config_path)
    except FileNotFoundError as exc:
        raise click.ClickException(f"Config file not found: {config_path}") from exc
    except ConfigError as exc:
        raise click.ClickException(f"Config parsing failed: {exc}") from exc


def _build_refresher(cfg: AppConfig) -> RuleRefresher:
    return RuleRefresher(
        SnapshotStore(),
        cfg.rules,
        fetcher=build_http_fetcher(cfg.feed),
    )


def _cached_snapshot(cfg: AppConfig) -> RulesSnapshot:
    return _build_refresher(cfg).load_cached()


def _summarise_cycle(result: CycleResult) -> None:
    if result.skipped:
        print("[yellow]Cycle skipped: another cycle is still running.[/]")
        return
    table = Table(title="Cycle summary", show_header=False)
    table.add_row("Candidates", str(result.candidates))
    table.add_row("Emitted", str(len(result.emitted)))
    table.add_row("Superseded", str(len(result.superseded)))
    table.add_row("Below floor", str(len(result.below_floor)))
    table.add_row("Rejected", str(len(result.rejections)))
    Console().print(table)
    for request in result.emitted:
        print(f"[green]queued[/] {escape(request.final_display_title)}")
    for error in result.errors:
        print(f"[red]error[/] {escape(error)}")


@click.group()
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Path to config.toml (defaults apply when omitted).",
)
@click.option("--verbose", is_flag=True, help="Show debug output, including every rejection reason.")
@click.option("--quiet", is_flag=True, help="Only show warnings and errors.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool, quiet: bool) -> None:
    """Resolve release titles to canonical episodes and queue the newest ones."""

    configure_logging(verbose=verbose, quiet=quiet)
    params_map = cast(Dict[str, Any], ctx.ensure_object(dict))
    params_map.update({"config_path": config_path, "verbose": verbose, "quiet": quiet})
    ctx.obj = params_map


@main.command("parse")
@click.argument("title")
@click.option("--json", "json_mode", is_flag=True, help="Emit the element map as JSON.")
def parse_command(title: str, json_mode: bool) -> None:
    """Print the metadata parsed from TITLE."""

    result = parse_title(title)
    if json_mode:
        click.echo(json.dumps({"success": result.success, "elements": result.elements.as_dict()}, indent=2))
        return
    if not result.success:
        print(f"[red]Could not find an anime title in[/] {escape(title)}")
    table = Table(title="Parsed elements")
    table.add_column("Element")
    table.add_column("Values")
    for category, values in result.elements.items():
        table.add_row(category.value, escape(", ".join(values)))
    Console().print(table)


@main.command("resolve")
@click.argument("title")
@click.option("--episode", type=int, default=None, help="Episode number when TITLE is a bare anime title.")
@click.option("--group", "group", default=None, help="Release group used by group-specific overrides.")
@click.option("--external-id", "external_id", type=int, default=None, help="AniList id for id-specific overrides.")
@click.pass_context
def resolve_command(
    ctx: click.Context,
    title: str,
    episode: int | None,
    group: str | None,
    external_id: int | None,
) -> None:
    """Resolve TITLE to its canonical (title, episode) using cached rules."""

    params = cast(Dict[str, Any], ctx.ensure_object(dict))
    cfg = _load_app_config(params.get("config_path"))

    anime_title = title
    if episode is None:
        parsed = parse_title(title)
        if not parsed.success:
            raise click.ClickException(f"Could not parse {title!r}")
        anime_title = parsed.anime_title
        episode = coerce_episode_number(parsed.episode_number)
        group = group if group is not None else parsed.release_group
    if episode is None:
        raise click.ClickException("No episode number found; pass --episode")

    try:
        snapshot = _cached_snapshot(cfg)
        identity = resolve_identity(anime_title, episode, group or "", external_id, snapshot)
    except SystemExit:
        raise
    except Exception:  # noqa: BLE001
        Console().print_exception()
        sys.exit(1)

    print(f"[bold]{escape(identity.title)}[/] episode [bold]{identity.episode}[/]")
    if identity.stages:
        print(f"[dim]rules applied: {', '.join(identity.stages)}[/]")


@main.command("refresh")
@click.option("--force", is_flag=True, help="Fetch every source even if the cache is still fresh.")
@click.pass_context
def refresh_command(ctx: click.Context, force: bool) -> None:
    """Fetch the remote rule sources and update the local cache."""

    params = cast(Dict[str, Any], ctx.ensure_object(dict))
    cfg = _load_app_config(params.get("config_path"))
    refresher = _build_refresher(cfg)
    try:
        refresher.load_cached()
        outcomes = asyncio.run(refresher.refresh(force=force))
    except SystemExit:
        raise
    except Exception:  # noqa: BLE001
        Console().print_exception()
        sys.exit(1)

    table = Table(title="Rule sources")
    table.add_column("Source")
    table.add_column("Status")
    table.add_column("Detail")
    for outcome in outcomes:
        colour = {"updated": "green", "fresh": "cyan"}.get(outcome.status, "red")
        table.add_row(outcome.source, f"[{colour}]{outcome.status}[/]", escape(outcome.detail))
    Console().print(table)
    snapshot = refresher.store.current()
    print(
        f"{len(snapshot.relations)} relation rules, "
        f"{sum(snapshot.global_overrides.stats().values())} global override rules"
    )


@main.command("run")
@click.option(
    "--items",
    "items_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="JSON array of feed items (guid, title, link, pubDate).",
)
@click.option(
    "--queue",
    "queue_path",
    default=DEFAULT_QUEUE_PATH,
    show_default=True,
    type=click.Path(dir_okay=False),
    help="JSONL file that receives download requests.",
)
@click.option("--refresh/--no-refresh", "refresh_rules", default=False, help="Refresh stale rule sources first.")
@click.pass_context
def run_command(ctx: click.Context, items_path: str, queue_path: str, refresh_rules: bool) -> None:
    """Run one polling cycle over the feed items in --items."""

    params = cast(Dict[str, Any], ctx.ensure_object(dict))
    cfg = _load_app_config(params.get("config_path"))

    try:
        raw_items = json.loads(Path(items_path).read_text(encoding="utf-8"))
        items = feed_items_from_json(raw_items)
    except (OSError, ValueError) as exc:
        raise click.ClickException(f"Could not read feed items: {exc}") from exc

    try:
        store = JsonProcessedStore(Path(cfg.store.path))
    except StoreError as exc:
        raise click.ClickException(str(exc)) from exc

    try:
        refresher = _build_refresher(cfg)
        snapshot = refresher.load_cached()
        if refresh_rules:
            asyncio.run(refresher.refresh())
            snapshot = refresher.store.current()
        result = run_cycle(
            CycleRequest(items=items, config=cfg, snapshot=snapshot),
            dependencies=CycleDependencies(store=store, downloader=JsonlQueueDownloader(Path(queue_path))),
        )
    except SystemExit:
        raise
    except Exception:  # noqa: BLE001
        Console().print_exception()
        sys.exit(1)

    _summarise_cycle(result)
    if result.errors:
        sys.exit(1)


cli = main


if __name__ == "__main__":
    main()
