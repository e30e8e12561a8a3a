from __future__ import annotations

import logging

from src.moe_pipeline.orchestration.phases.base import Phase
from src.moe_pipeline.orchestration.state import CycleContext
from src.moe_pipeline.selection import collect_candidates

logger = logging.getLogger('moe_pipeline')


class CollectPhase(Phase):
    def execute(self, context: CycleContext) -> None:
        request = context.request
        candidates, rejections = collect_candidates(
            request.items,
            request.entries,
            request.snapshot,
            context.dependencies.store,
            request.config.pipeline,
        )
        context.candidates = candidates
        context.result.candidates = len(candidates)
        context.result.rejections.extend(rejections)
        logger.debug("Collected %d candidates from %d items", len(candidates), len(request.items))
