"""Remote rule sources: anime relations, title overrides and their snapshots."""

from .overrides import (
    EpisodeMappingRule,
    OverrideRuleSet,
    OverrideValidationError,
    PatternRule,
    parse_overrides,
)
from .refresh import RefreshOutcome, RuleRefresher, RuleRefreshError, build_http_fetcher
from .relations import (
    OPEN_END,
    EpisodeMapping,
    EpisodeRange,
    RelationRule,
    RelationsDatabase,
    RelationsParseError,
    parse_relations,
)
from .snapshot import RulesSnapshot, SnapshotStore

__all__ = [
    "OPEN_END",
    "EpisodeMapping",
    "EpisodeMappingRule",
    "EpisodeRange",
    "OverrideRuleSet",
    "OverrideValidationError",
    "PatternRule",
    "RefreshOutcome",
    "RelationRule",
    "RelationsDatabase",
    "RelationsParseError",
    "RuleRefreshError",
    "RuleRefresher",
    "RulesSnapshot",
    "SnapshotStore",
    "build_http_fetcher",
    "parse_overrides",
    "parse_relations",
]
