from __future__ import annotations

import logging

from src.moe_pipeline.orchestration.phases.base import Phase
from src.moe_pipeline.orchestration.phases.collect import CollectPhase
from src.moe_pipeline.orchestration.phases.emit import EmitPhase
from src.moe_pipeline.orchestration.phases.select import SelectPhase
from src.moe_pipeline.orchestration.state import (
    CycleContext,
    CycleDependencies,
    CycleRequest,
    CycleResult,
)

logger = logging.getLogger('moe_pipeline')


class WorkflowCoordinator:
    def __init__(self, dependencies: CycleDependencies):
        self.dependencies = dependencies

    def execute(self, request: CycleRequest) -> CycleResult:
        """Run Collect, Select and Emit over one batch of feed items."""
        result = CycleResult(started_at=self.dependencies.clock())
        context = CycleContext(request=request, dependencies=self.dependencies, result=result)

        pipeline: list[Phase] = [
            CollectPhase(),
            SelectPhase(),
            EmitPhase(),
        ]

        for phase in pipeline:
            phase.execute(context)

        result.finished_at = self.dependencies.clock()
        logger.info(
            "Cycle finished: %d items, %d candidates, %d emitted, %d superseded",
            len(request.items),
            result.candidates,
            len(result.emitted),
            len(result.superseded),
        )
        return result
