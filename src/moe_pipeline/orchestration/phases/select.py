from __future__ import annotations

from src.moe_pipeline.orchestration.phases.base import Phase
from src.moe_pipeline.orchestration.state import CycleContext
from src.moe_pipeline.selection import select_latest


class SelectPhase(Phase):
    def execute(self, context: CycleContext) -> None:
        selection = select_latest(context.candidates, context.dependencies.store)
        context.selection = selection
        context.result.superseded.extend(candidate.raw_title for candidate in selection.superseded)
        context.result.below_floor.extend(candidate.raw_title for candidate in selection.below_floor)
