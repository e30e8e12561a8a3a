from __future__ import annotations

import logging

from src.moe_pipeline.orchestration.phases.base import Phase
from src.moe_pipeline.orchestration.state import CycleContext
from src.moe_pipeline.selection import emit_selections

logger = logging.getLogger('moe_pipeline')


class EmitPhase(Phase):
    def execute(self, context: CycleContext) -> None:
        dependencies = context.dependencies
        outcome = emit_selections(
            context.selection.selected,
            dependencies.downloader,
            dependencies.store,
            context.request.config.pipeline,
        )
        context.result.emitted.extend(outcome.requests)
        for candidate, message in outcome.failures:
            context.result.errors.append(f"download hand-off failed for {candidate.raw_title!r}: {message}")

        # Failed hand-offs stay unseen so the next cycle offers them again.
        retry = {candidate.item.guid for candidate, _ in outcome.failures}
        dependencies.store.mark_guids(item.guid for item in context.request.items if item.guid not in retry)
        if retry:
            logger.info("Leaving %d failed release(s) unseen for the next cycle", len(retry))
