from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, List, Sequence

from src.datatypes import AppConfig, WhitelistEntry
from src.moe_pipeline.interfaces import DownloadCollaborator, DownloadRequest, FeedItem
from src.moe_pipeline.rules.snapshot import RulesSnapshot
from src.moe_pipeline.selection import Candidate, Rejection, SelectionOutcome
from src.moe_pipeline.store import ProcessedStore


@dataclass
class CycleRequest:
    """Inputs for one polling cycle; ``snapshot`` is read once and kept for the whole cycle."""

    items: Sequence[FeedItem]
    config: AppConfig
    snapshot: RulesSnapshot
    whitelist: Sequence[WhitelistEntry] | None = None

    @property
    def entries(self) -> Sequence[WhitelistEntry]:
        return self.whitelist if self.whitelist is not None else self.config.whitelist


@dataclass(slots=True)
class CycleDependencies:
    """Collaborators a cycle writes to."""

    store: ProcessedStore
    downloader: DownloadCollaborator
    clock: Callable[[], float] = time.time


@dataclass
class CycleResult:
    started_at: float
    finished_at: float | None = None
    skipped: bool = False
    candidates: int = 0
    emitted: List[DownloadRequest] = field(default_factory=list)
    superseded: List[str] = field(default_factory=list)
    below_floor: List[str] = field(default_factory=list)
    rejections: List[Rejection] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class CycleContext:
    """
    State passed between the cycle phases.

    Collect fills ``candidates``, Select fills ``selection`` and Emit writes
    the download requests into ``result``.
    """

    request: CycleRequest
    dependencies: CycleDependencies
    result: CycleResult
    candidates: List[Candidate] = field(default_factory=list)
    selection: SelectionOutcome = field(default_factory=SelectionOutcome)
