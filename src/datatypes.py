"""Configuration dataclasses for the episode identity pipeline."""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

DEFAULT_ALLOWED_GROUPS = ["Erai-raws", "SubsPlease", "New-raws", "ASW"]
"""Release groups accepted when a whitelist entry does not name one."""

DEFAULT_RELATIONS_URL = (
    "https://raw.githubusercontent.com/erengy/anime-relations/refs/heads/master/anime-relations.txt"
)
DEFAULT_OVERRIDES_URL = (
    "https://raw.githubusercontent.com/4Lajf/MoeDownloader-assets/refs/heads/main/title-overrides.jsonc"
)


class ProcessedStatus(str, Enum):
    """Lifecycle states for a processed download record."""

    QUEUED = "queued"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class PipelineConfig:
    """Group gating and display options applied to every cycle."""

    allowed_groups: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_GROUPS))
    blocked_groups: List[str] = field(default_factory=list)
    episode_padding: int = 2


@dataclass
class RulesConfig:
    """Remote rule sources, their refresh cadence and the local cache."""

    relations_url: str = DEFAULT_RELATIONS_URL
    overrides_url: str = DEFAULT_OVERRIDES_URL
    user_overrides_path: Optional[str] = None
    cache_dir: str = ".moe_cache"
    relations_refresh_hours: float = 12.0
    overrides_refresh_hours: float = 6.0


@dataclass
class FeedConfig:
    """Retry policy for outbound fetches."""

    retries: int = 3
    backoff_seconds: float = 2.0
    timeout_seconds: float = 30.0


@dataclass
class StoreConfig:
    path: str = "processed.json"


@dataclass
class WhitelistEntry:
    """A user-tracked anime and the filters its releases must pass."""

    title: str
    id: int = 0
    keywords: str = ""
    exclude_keywords: str = ""
    quality: str = "1080p"
    preferred_group: str = "any"
    allowed_group_overrides: List[str] = field(default_factory=list)
    enabled: bool = True
    external_id: Optional[int] = None
    title_variants: List[str] = field(default_factory=list)


@dataclass
class AppConfig:
    """Aggregated configuration loaded from the user-provided TOML file."""

    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    rules: RulesConfig = field(default_factory=RulesConfig)
    feed: FeedConfig = field(default_factory=FeedConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    whitelist: List[WhitelistEntry] = field(default_factory=list)
