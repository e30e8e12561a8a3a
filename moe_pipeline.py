"""Public shim exposing the moe_pipeline CLI and library surface."""

from __future__ import annotations

import src.moe_pipeline.cli_entry as _cli_entry
from src.moe_pipeline import runner
from src.moe_pipeline.parsing import ParseResult, parse_title
from src.moe_pipeline.resolver import CanonicalIdentity, resolve_identity

CycleRequest = runner.CycleRequest
CycleResult = runner.CycleResult
CycleDependencies = runner.CycleDependencies
run_cycle = runner.run_cycle

main = _cli_entry.main

__all__ = (
    "main",
    "run_cycle",
    "CycleRequest",
    "CycleResult",
    "CycleDependencies",
    "parse_title",
    "ParseResult",
    "resolve_identity",
    "CanonicalIdentity",
)


if __name__ == "__main__":
    main()
