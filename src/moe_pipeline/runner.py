from __future__ import annotations

import logging
import threading
from typing import Optional

from src.moe_pipeline.orchestration.coordinator import WorkflowCoordinator
from src.moe_pipeline.orchestration.state import (
    CycleContext,
    CycleDependencies,
    CycleRequest,
    CycleResult,
)

__all__ = [
    "CycleContext",
    "CycleDependencies",
    "CycleGuard",
    "CycleRequest",
    "CycleResult",
    "run_cycle",
]

logger = logging.getLogger('moe_pipeline')


class CycleGuard:
    """
    Non-blocking mutual exclusion for polling cycles.

    A trigger that arrives while a cycle is running does not wait for it; the
    caller is told to skip and the next scheduled cycle picks up the work.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @property
    def busy(self) -> bool:
        return self._lock.locked()


_DEFAULT_GUARD = CycleGuard()


def run_cycle(
    request: CycleRequest,
    *,
    dependencies: CycleDependencies,
    guard: Optional[CycleGuard] = None,
) -> CycleResult:
    """
    Run one polling cycle.

    Never raises: any failure inside the cycle is logged with its traceback
    and reported through :attr:`CycleResult.errors`.
    """
    active_guard = guard or _DEFAULT_GUARD
    if not active_guard.try_acquire():
        logger.info("Cycle already running; coalescing this trigger")
        return CycleResult(started_at=dependencies.clock(), finished_at=dependencies.clock(), skipped=True)

    try:
        logger.info("Cycle started with %d feed items", len(request.items))
        coordinator = WorkflowCoordinator(dependencies)
        return coordinator.execute(request)
    except Exception as exc:
        logger.exception("Cycle failed: %s", exc)
        return CycleResult(
            started_at=dependencies.clock(),
            finished_at=dependencies.clock(),
            errors=[f"{type(exc).__name__}: {exc}"],
        )
    finally:
        active_guard.release()
