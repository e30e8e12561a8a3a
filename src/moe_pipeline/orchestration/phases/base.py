from typing import Protocol

from src.moe_pipeline.orchestration.state import CycleContext


class Phase(Protocol):
    def execute(self, context: CycleContext) -> None:
        """Execute this phase, mutating the context."""
        ...
