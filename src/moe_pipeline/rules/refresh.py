"""Periodic refresh of the remote rule sources with last-known-good fallback."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

import httpx

from src.datatypes import FeedConfig, RulesConfig
from src.moe_pipeline.cache import RuleCacheEntry, load_rule_cache, persist_rule_cache
from src.moe_pipeline.net import build_timeout, httpx_get_text_with_backoff

from .overrides import OverrideRuleSet, OverrideValidationError, parse_overrides
from .relations import RelationsDatabase, parse_relations
from .snapshot import RulesSnapshot, SnapshotStore

__all__ = [
    "OVERRIDES_SOURCE",
    "RELATIONS_SOURCE",
    "Fetcher",
    "RefreshOutcome",
    "RuleRefreshError",
    "RuleRefresher",
    "build_http_fetcher",
]

logger = logging.getLogger(__name__)

RELATIONS_SOURCE = "relations"
OVERRIDES_SOURCE = "overrides"

Fetcher = Callable[[str], Awaitable[str]]


class RuleRefreshError(RuntimeError):
    """Raised when fetched rule text cannot be turned into a usable rule set."""


@dataclass(frozen=True)
class RefreshOutcome:
    source: str
    status: str
    detail: str = ""


def build_http_fetcher(feed_cfg: FeedConfig) -> Fetcher:
    """Return an async fetcher that applies the configured retry policy."""

    async def fetch(url: str) -> str:
        timeout = build_timeout(read=feed_cfg.timeout_seconds)
        async with httpx.AsyncClient(follow_redirects=True, headers={"Cache-Control": "no-cache"}) as client:
            return await httpx_get_text_with_backoff(
                client,
                url,
                retries=feed_cfg.retries,
                initial_backoff=feed_cfg.backoff_seconds,
                max_backoff=max(feed_cfg.backoff_seconds, 30.0),
                timeout=timeout,
            )

    return fetch


def _parse_relations_text(text: str) -> RelationsDatabase:
    database = parse_relations(text)
    if text.strip() and not len(database):
        raise RuleRefreshError("relations source contained no usable rules")
    return database


class RuleRefresher:
    """
    Keeps the :class:`SnapshotStore` populated from remote and local rule sources.

    Remote text that parses and validates is written to the on-disk cache and then
    swapped into the store; anything else leaves the current snapshot in place.
    """

    def __init__(
        self,
        store: SnapshotStore,
        rules_cfg: RulesConfig,
        *,
        fetcher: Fetcher,
        clock: Callable[[], float] = time.time,
        cache_root: Optional[Path] = None,
    ) -> None:
        self.store = store
        self.rules_cfg = rules_cfg
        self.fetcher = fetcher
        self.clock = clock
        self.cache_root = Path(cache_root if cache_root is not None else rules_cfg.cache_dir)

    def load_cached(self) -> RulesSnapshot:
        """Seed the store from the disk cache and the user override file."""

        changes: dict[str, object] = {}
        relations_entry = load_rule_cache(self.cache_root, RELATIONS_SOURCE)
        if relations_entry is not None:
            try:
                changes["relations"] = _parse_relations_text(relations_entry.text)
                changes["relations_loaded_at"] = relations_entry.fetched_at
            except RuleRefreshError as exc:
                logger.warning("Ignoring cached relations: %s", exc)
        overrides_entry = load_rule_cache(self.cache_root, OVERRIDES_SOURCE)
        if overrides_entry is not None:
            try:
                changes["global_overrides"] = parse_overrides(overrides_entry.text)
                changes["overrides_loaded_at"] = overrides_entry.fetched_at
            except OverrideValidationError as exc:
                logger.warning("Ignoring cached overrides: %s", exc)
        user_overrides = self.load_user_overrides()
        if user_overrides is not None:
            changes["user_overrides"] = user_overrides
        if not changes:
            logger.info("No cached rule data found; starting with empty rule sets")
            return self.store.current()
        return self.store.update(**changes)

    def load_user_overrides(self) -> Optional[OverrideRuleSet]:
        """Read the user override file; ``None`` keeps whatever is loaded."""

        path_value = self.rules_cfg.user_overrides_path
        if not path_value:
            return None
        path = Path(path_value)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return OverrideRuleSet.empty()
        except OSError as exc:
            logger.warning("Could not read user overrides %s: %s", path, exc)
            return None
        try:
            return parse_overrides(text, user=True)
        except OverrideValidationError as exc:
            logger.warning("Rejected user overrides %s: %s", path, exc)
            return None

    def is_stale(self, loaded_at: Optional[float], interval_hours: float) -> bool:
        if loaded_at is None:
            return True
        return self.clock() - loaded_at >= interval_hours * 3600.0

    async def refresh(self, *, force: bool = False) -> List[RefreshOutcome]:
        """Refresh each stale source; failures are logged and reported, never raised."""

        snapshot = self.store.current()
        outcomes: List[RefreshOutcome] = []

        if force or self.is_stale(snapshot.relations_loaded_at, self.rules_cfg.relations_refresh_hours):
            outcomes.append(
                await self._refresh_source(
                    RELATIONS_SOURCE,
                    self.rules_cfg.relations_url,
                    lambda text: {"relations": _parse_relations_text(text)},
                    "relations_loaded_at",
                )
            )
        else:
            outcomes.append(RefreshOutcome(RELATIONS_SOURCE, "fresh"))

        if force or self.is_stale(snapshot.overrides_loaded_at, self.rules_cfg.overrides_refresh_hours):
            outcomes.append(
                await self._refresh_source(
                    OVERRIDES_SOURCE,
                    self.rules_cfg.overrides_url,
                    lambda text: {"global_overrides": parse_overrides(text)},
                    "overrides_loaded_at",
                )
            )
        else:
            outcomes.append(RefreshOutcome(OVERRIDES_SOURCE, "fresh"))

        user_overrides = self.load_user_overrides()
        if user_overrides is not None:
            self.store.update(user_overrides=user_overrides)
        return outcomes

    async def _refresh_source(
        self,
        name: str,
        url: str,
        build: Callable[[str], dict[str, object]],
        stamp_field: str,
    ) -> RefreshOutcome:
        try:
            text = await self.fetcher(url)
        except (httpx.HTTPError, RuntimeError, OSError) as exc:
            logger.warning("Refreshing %s failed, keeping last-known-good data: %s", name, exc)
            return RefreshOutcome(name, "failed", str(exc))
        try:
            changes = build(text)
        except (OverrideValidationError, RuleRefreshError) as exc:
            logger.warning("Rejected %s update, keeping last-known-good data: %s", name, exc)
            return RefreshOutcome(name, "failed", str(exc))

        fetched_at = self.clock()
        try:
            persist_rule_cache(self.cache_root, RuleCacheEntry(name=name, text=text, fetched_at=fetched_at, source_url=url))
        except OSError as exc:
            logger.warning("Could not cache %s rules: %s", name, exc)
        changes[stamp_field] = fetched_at
        self.store.update(**changes)
        return RefreshOutcome(name, "updated")
