"""Immutable rule snapshots and the store that swaps them atomically."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Optional

from .overrides import OverrideRuleSet
from .relations import RelationsDatabase

__all__ = ["RulesSnapshot", "SnapshotStore"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RulesSnapshot:
    """Everything the resolver reads during one cycle."""

    relations: RelationsDatabase
    global_overrides: OverrideRuleSet
    user_overrides: OverrideRuleSet
    relations_loaded_at: Optional[float] = None
    overrides_loaded_at: Optional[float] = None

    @classmethod
    def empty(cls) -> "RulesSnapshot":
        return cls(
            relations=RelationsDatabase.empty(),
            global_overrides=OverrideRuleSet.empty(),
            user_overrides=OverrideRuleSet.empty(),
        )


class SnapshotStore:
    """
    Holder for the current :class:`RulesSnapshot`.

    Readers call :meth:`current` once per cycle and keep the returned object;
    writers build a complete replacement and hand it to :meth:`replace`, so a
    cycle never sees a half-updated rule set.
    """

    def __init__(self, initial: RulesSnapshot | None = None) -> None:
        self._lock = threading.Lock()
        self._snapshot = initial or RulesSnapshot.empty()

    def current(self) -> RulesSnapshot:
        with self._lock:
            return self._snapshot

    def replace(self, snapshot: RulesSnapshot) -> RulesSnapshot:
        """Swap in ``snapshot`` and return the one it replaced."""

        with self._lock:
            previous = self._snapshot
            self._snapshot = snapshot
        logger.info(
            "Rule snapshot replaced (%d relation rules, %d global override rules)",
            len(snapshot.relations),
            sum(snapshot.global_overrides.stats().values()),
        )
        return previous

    def update(self, **changes: object) -> RulesSnapshot:
        """Replace selected fields of the current snapshot in one atomic step."""

        with self._lock:
            updated = replace(self._snapshot, **changes)  # type: ignore[arg-type]
            self._snapshot = updated
        return updated
