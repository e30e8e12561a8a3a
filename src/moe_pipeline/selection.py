"""Collect, select and emit download candidates for one polling batch.

Selection is deferred until the whole batch has been collected so that
several releases of one episode, or a stale pre-mapping episode next to a
renumbered one, never turn into more than one download per anime.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Final, List, Optional, Sequence, Tuple

from src.datatypes import PipelineConfig, ProcessedStatus, WhitelistEntry
from src.moe_pipeline.interfaces import DownloadCollaborator, DownloadRequest, FeedItem
from src.moe_pipeline.matcher import find_match
from src.moe_pipeline.parsing import ParseResult, parse_title
from src.moe_pipeline.resolver import CanonicalIdentity, resolve_identity
from src.moe_pipeline.rules.snapshot import RulesSnapshot
from src.moe_pipeline.store import ProcessedRecord, ProcessedStore
from src.utils import coerce_episode_number, format_display_title, normalize_variation, unique_preserving_order

logger = logging.getLogger(__name__)

__all__: Final = [
    "Candidate",
    "EmitOutcome",
    "Rejection",
    "SelectionOutcome",
    "build_download_request",
    "collect_candidates",
    "emit_selections",
    "evaluate_item",
    "select_latest",
    "title_variations",
]


@dataclass(frozen=True)
class Rejection:
    guid: str
    title: str
    reason: str


@dataclass(frozen=True)
class Candidate:
    """A whitelisted feed item tagged with its canonical identity."""

    item: FeedItem
    entry: WhitelistEntry
    parsed: ParseResult
    identity: CanonicalIdentity
    title_variations: Tuple[str, ...]
    feed_index: int

    @property
    def raw_title(self) -> str:
        return self.item.title

    @property
    def link(self) -> str:
        return self.item.link

    @property
    def canonical_title(self) -> str:
        return self.identity.title

    @property
    def canonical_episode(self) -> int:
        return self.identity.episode

    @property
    def release_group(self) -> str:
        return self.parsed.release_group

    @property
    def override_applied(self) -> bool:
        return self.identity.override_applied

    @property
    def group_key(self) -> str:
        return normalize_variation(self.identity.title)


@dataclass
class SelectionOutcome:
    selected: List[Candidate] = field(default_factory=list)
    superseded: List[Candidate] = field(default_factory=list)
    below_floor: List[Candidate] = field(default_factory=list)


@dataclass
class EmitOutcome:
    requests: List[DownloadRequest] = field(default_factory=list)
    records: List[ProcessedRecord] = field(default_factory=list)
    failures: List[Tuple[Candidate, str]] = field(default_factory=list)


def title_variations(identity: CanonicalIdentity, entry: WhitelistEntry) -> Tuple[str, ...]:
    """Canonical title, whitelist title and the entry's cached alternates, de-duplicated."""

    return tuple(unique_preserving_order([identity.title, entry.title, *entry.title_variants]))


def evaluate_item(
    item: FeedItem,
    feed_index: int,
    entries: Sequence[WhitelistEntry],
    snapshot: RulesSnapshot,
    store: ProcessedStore,
    pipeline_cfg: PipelineConfig,
) -> Candidate | Rejection:
    """Run one item through parse, group gate, resolve, match and dedup."""

    parsed = parse_title(item.title)
    if not parsed.success:
        return Rejection(item.guid, item.title, "parse failure")

    group = parsed.release_group
    if not group or group not in pipeline_cfg.allowed_groups:
        return Rejection(item.guid, item.title, f"group {group or '<none>'!r} not allowed")

    episode = coerce_episode_number(parsed.episode_number)
    if episode is None:
        return Rejection(item.guid, item.title, "no episode number")

    identity = resolve_identity(parsed.anime_title, episode, group, None, snapshot)
    match = find_match(
        entries,
        item.title,
        group,
        identity,
        snapshot.relations,
        pipeline_cfg,
        parsed_episode=episode,
    )
    if match is None:
        return Rejection(item.guid, item.title, "no whitelist match")
    if match.entry.external_id is not None and snapshot.global_overrides.for_external_id(match.entry.external_id):
        identity = resolve_identity(parsed.anime_title, episode, group, match.entry.external_id, snapshot)

    variations = title_variations(identity, match.entry)
    if store.is_processed(identity.episode, variations):
        return Rejection(
            item.guid,
            item.title,
            f"episode {identity.episode} of {identity.title!r} already processed",
        )
    return Candidate(
        item=item,
        entry=match.entry,
        parsed=parsed,
        identity=identity,
        title_variations=variations,
        feed_index=feed_index,
    )


def collect_candidates(
    items: Sequence[FeedItem],
    entries: Sequence[WhitelistEntry],
    snapshot: RulesSnapshot,
    store: ProcessedStore,
    pipeline_cfg: PipelineConfig,
) -> Tuple[List[Candidate], List[Rejection]]:
    """
    Phase 1: turn feed items into candidates.

    Items already seen in an earlier cycle are skipped before parsing. Every
    rejection is logged at DEBUG and returned so callers can report it; an
    item that raises is logged at WARNING and rejected on its own.
    """

    candidates: List[Candidate] = []
    rejections: List[Rejection] = []
    for index, item in enumerate(items):
        if store.has_seen_guid(item.guid):
            rejections.append(Rejection(item.guid, item.title, "already seen"))
            continue
        try:
            outcome = evaluate_item(item, index, entries, snapshot, store, pipeline_cfg)
        except Exception as exc:
            logger.warning("Failed to evaluate %r: %s", item.title, exc)
            rejections.append(Rejection(item.guid, item.title, f"evaluation failed: {exc}"))
            continue
        if isinstance(outcome, Rejection):
            logger.debug("Rejected %r: %s", outcome.title, outcome.reason)
            rejections.append(outcome)
            continue
        candidates.append(outcome)
    return candidates, rejections


def select_latest(candidates: Sequence[Candidate], store: ProcessedStore) -> SelectionOutcome:
    """
    Phase 2: keep one candidate per canonical title.

    Candidates at or below the floor (highest episode already processed or
    queued under the group's canonical title) are dropped. Of the rest the
    highest episode wins; on a tie the item that came first in the feed wins.
    """

    outcome = SelectionOutcome()
    groups: Dict[str, List[Candidate]] = {}
    for candidate in candidates:
        groups.setdefault(candidate.group_key, []).append(candidate)

    for members in groups.values():
        floor = store.floor(unique_preserving_order(member.canonical_title for member in members))
        eligible: List[Candidate] = []
        for member in members:
            if floor is not None and member.canonical_episode <= floor:
                logger.info(
                    "Skipping %r: episode %d is not above floor %d",
                    member.raw_title,
                    member.canonical_episode,
                    floor,
                )
                outcome.below_floor.append(member)
            else:
                eligible.append(member)
        if not eligible:
            continue

        winner = eligible[0]
        for member in eligible[1:]:
            if member.canonical_episode > winner.canonical_episode:
                winner = member
        outcome.selected.append(winner)
        for member in eligible:
            if member is winner:
                continue
            logger.info("%r superseded by episode %d", member.raw_title, winner.canonical_episode)
            outcome.superseded.append(member)

    outcome.selected.sort(key=lambda candidate: candidate.feed_index)
    return outcome


def build_download_request(candidate: Candidate, pipeline_cfg: PipelineConfig) -> DownloadRequest:
    display = format_display_title(
        candidate.entry.title,
        candidate.canonical_episode,
        candidate.parsed.episode_title,
        padding=pipeline_cfg.episode_padding,
    )
    return DownloadRequest(
        torrent_link=candidate.link,
        raw_title=candidate.raw_title,
        final_display_title=display,
        source_item_ref=candidate.item.guid,
    )


def emit_selections(
    selections: Sequence[Candidate],
    downloader: DownloadCollaborator,
    store: ProcessedStore,
    pipeline_cfg: PipelineConfig,
    *,
    on_emit: Optional[Callable[[DownloadRequest], None]] = None,
) -> EmitOutcome:
    """
    Phase 3: hand each selection to the downloader and record it as queued.

    A downloader failure is logged and the selection is not recorded, so the
    same release can be picked up by a later cycle.
    """

    outcome = EmitOutcome()
    for candidate in selections:
        request = build_download_request(candidate, pipeline_cfg)
        try:
            downloader.submit(request)
        except Exception as exc:
            logger.error("Download hand-off failed for %r: %s", candidate.raw_title, exc)
            outcome.failures.append((candidate, str(exc)))
            continue
        logger.info("Queued %s", request.final_display_title)
        outcome.requests.append(request)
        if on_emit is not None:
            on_emit(request)
        for variation in candidate.title_variations:
            record = ProcessedRecord(
                whitelist_entry_id=candidate.entry.id,
                original_filename=candidate.raw_title,
                final_title=request.final_display_title,
                canonical_episode=candidate.canonical_episode,
                canonical_title_variation=variation,
                release_group=candidate.release_group,
                resolution=candidate.parsed.video_resolution,
                checksum=candidate.parsed.file_checksum,
                link=candidate.link,
                status=ProcessedStatus.QUEUED,
            )
            if store.record(record):
                outcome.records.append(record)
    return outcome
