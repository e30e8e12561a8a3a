"""Multi-valued element map populated by the parser passes."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Iterator, List, Tuple


class ElementCategory(str, Enum):
    """Metadata categories a release title can yield."""

    ANIME_SEASON = "anime_season"
    ANIME_TITLE = "anime_title"
    ANIME_YEAR = "anime_year"
    AUDIO_TERM = "audio_term"
    EPISODE_NUMBER = "episode_number"
    EPISODE_NUMBER_ALT = "episode_number_alt"
    EPISODE_TITLE = "episode_title"
    FILE_CHECKSUM = "file_checksum"
    FILE_EXTENSION = "file_extension"
    FILE_NAME = "file_name"
    RELEASE_GROUP = "release_group"
    RELEASE_VERSION = "release_version"
    VIDEO_RESOLUTION = "video_resolution"
    VIDEO_TERM = "video_term"


class ElementMap:
    """Category to ordered list of values; insertion order is preserved."""

    def __init__(self) -> None:
        self._values: Dict[ElementCategory, List[str]] = {}

    def insert(self, category: ElementCategory, value: str) -> None:
        self._values.setdefault(category, []).append(value)

    def get(self, category: ElementCategory) -> str:
        values = self._values.get(category)
        return values[0] if values else ""

    def get_all(self, category: ElementCategory) -> List[str]:
        return list(self._values.get(category, ()))

    def empty(self, category: ElementCategory) -> bool:
        return not self._values.get(category)

    def items(self) -> Iterator[Tuple[ElementCategory, List[str]]]:
        for category, values in self._values.items():
            yield category, list(values)

    def as_dict(self) -> Dict[str, List[str]]:
        """Return a JSON-friendly copy keyed by category value."""

        return {category.value: list(values) for category, values in self._values.items()}

    def __contains__(self, category: object) -> bool:
        return isinstance(category, ElementCategory) and not self.empty(category)

    def __repr__(self) -> str:
        return f"ElementMap({self.as_dict()!r})"
