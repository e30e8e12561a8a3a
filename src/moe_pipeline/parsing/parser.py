"""Multi-pass release-title parser.

Every pass takes the current immutable token tuple plus the element map being
accumulated and returns a new token tuple in which the tokens it consumed are
reclassified as identifiers. Later passes only look at unknown tokens, so a
token is claimed by at most one pass.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Tuple

from .elements import ElementCategory, ElementMap
from .episode_rules import EPISODE_RULES, EpisodeMatch, EpisodeRule, candidate_indexes
from .tokenizer import DEFAULT_DELIMITERS, tokenize
from .tokens import (
    TokenCategory,
    TokenFlag,
    Tokens,
    find_first_of,
    find_token,
    is_dash,
    is_isolated,
    is_numeric,
    reclassify,
)

__all__ = [
    "ParseResult",
    "build_element",
    "parse_title",
    "search_anime_title",
    "search_episode_number",
    "search_episode_title",
    "search_isolated_numbers",
    "search_keywords",
    "search_release_group",
    "split_extension",
]

logger = logging.getLogger(__name__)

ANIME_YEAR_MIN = 1900
ANIME_YEAR_MAX = 2050
ALT_EPISODE_MAX = 1899
BARE_RESOLUTIONS = frozenset({480, 720, 1080})
KNOWN_EXTENSIONS = frozenset({"mkv", "mp4", "avi", "mov", "wmv", "flv", "webm", "m4v"})

VIDEO_TERMS = frozenset(
    {
        "h264", "h.264", "x264", "x.264",
        "h265", "h.265", "x265", "x.265", "hevc",
        "xvid", "divx", "wmv", "mpeg", "mp4",
        "mkv", "avi", "mov", "flv", "webm",
        "bd", "bluray", "blu-ray", "dvd", "hdtv",
        "webrip", "web-rip", "bdrip", "bd-rip",
        "dvdrip", "dvd-rip", "hdcam", "cam",
    }
)
AUDIO_TERMS = frozenset(
    {"aac", "ac3", "dts", "flac", "mp3", "ogg", "vorbis", "opus", "pcm", "2.0", "2.1", "5.1", "7.1"}
)

_RESOLUTION_RE = re.compile(r"^\d{3,4}(?:p|x\d{3,4})$", re.IGNORECASE)
_CHECKSUM_RE = re.compile(r"^[0-9A-Fa-f]{8}$")
_EDGE_TRIM_RE = re.compile(r"^[\s\-]+|[\s\-]+$")
_OPENING_BRACKETS = "([{"

Pass = Callable[[Tokens, ElementMap], Tokens]


@dataclass(frozen=True)
class ParseResult:
    """Outcome of :func:`parse_title`; ``success`` mirrors a non-empty anime title."""

    raw_title: str
    elements: ElementMap
    tokens: Tokens = field(default=(), repr=False)

    @property
    def success(self) -> bool:
        return not self.elements.empty(ElementCategory.ANIME_TITLE)

    @property
    def anime_title(self) -> str:
        return self.elements.get(ElementCategory.ANIME_TITLE)

    @property
    def episode_number(self) -> str:
        return self.elements.get(ElementCategory.EPISODE_NUMBER)

    @property
    def release_group(self) -> str:
        return self.elements.get(ElementCategory.RELEASE_GROUP)

    @property
    def video_resolution(self) -> str:
        return self.elements.get(ElementCategory.VIDEO_RESOLUTION)

    @property
    def file_checksum(self) -> str:
        return self.elements.get(ElementCategory.FILE_CHECKSUM)

    @property
    def episode_title(self) -> str:
        return self.elements.get(ElementCategory.EPISODE_TITLE)


def split_extension(name: str) -> Tuple[str, Optional[str]]:
    """Return ``(stem, extension)`` when ``name`` ends with a known video extension."""

    position = name.rfind(".")
    if position == -1:
        return name, None
    extension = name[position + 1 :]
    if not extension or len(extension) > 4 or not (extension.isascii() and extension.isalnum()):
        return name, None
    if extension.lower() not in KNOWN_EXTENSIONS:
        return name, None
    return name[:position], extension


def build_element(
    tokens: Tokens,
    begin: int,
    end: int,
    *,
    keep_delimiters: bool = False,
) -> Tuple[Tokens, str]:
    """
    Join tokens ``[begin, end)`` into one element value.

    Unknown tokens are consumed (reclassified as identifiers). Delimiters at either
    end of the range are dropped; inner ones become a single space except ``,`` and
    ``&`` which are kept literally. Leading and trailing dashes and spaces are trimmed.

    Returns:
        Tuple[Tokens, str]: The updated tokens and the built value (possibly empty).
    """
    parts: list[str] = []
    consumed: list[int] = []
    end = min(end, len(tokens))
    for index in range(begin, end):
        token = tokens[index]
        if token.category is TokenCategory.UNKNOWN:
            parts.append(token.content)
            consumed.append(index)
        elif token.category is TokenCategory.BRACKET:
            parts.append(token.content)
        elif token.category is TokenCategory.DELIMITER:
            if keep_delimiters:
                parts.append(token.content)
            elif index not in (begin, end - 1):
                parts.append(token.content if token.content in ",&" else " ")
    value = "".join(parts)
    if not keep_delimiters:
        value = _EDGE_TRIM_RE.sub("", value)
    return reclassify(tokens, consumed, TokenCategory.IDENTIFIER), value


def search_keywords(tokens: Tokens, elements: ElementMap) -> Tokens:
    """Claim single-token resolution, checksum, video and audio keywords."""

    consumed: list[int] = []
    for index, token in enumerate(tokens):
        if token.category is not TokenCategory.UNKNOWN:
            continue
        word = token.content.strip()
        if not word:
            continue
        lowered = word.lower()
        if elements.empty(ElementCategory.VIDEO_RESOLUTION) and _RESOLUTION_RE.match(word):
            elements.insert(ElementCategory.VIDEO_RESOLUTION, word)
        elif elements.empty(ElementCategory.FILE_CHECKSUM) and _CHECKSUM_RE.match(word):
            elements.insert(ElementCategory.FILE_CHECKSUM, word)
        elif lowered in VIDEO_TERMS:
            elements.insert(ElementCategory.VIDEO_TERM, word)
        elif lowered in AUDIO_TERMS:
            elements.insert(ElementCategory.AUDIO_TERM, word)
        else:
            continue
        consumed.append(index)
    return reclassify(tokens, consumed, TokenCategory.IDENTIFIER)


def search_isolated_numbers(tokens: Tokens, elements: ElementMap) -> Tokens:
    """Claim bracket-isolated numbers as the year or a bare resolution."""

    consumed: list[int] = []
    for index, token in enumerate(tokens):
        if token.category is not TokenCategory.UNKNOWN or not is_numeric(token.content):
            continue
        if not is_isolated(tokens, index):
            continue
        number = int(token.content)
        if ANIME_YEAR_MIN <= number <= ANIME_YEAR_MAX and elements.empty(ElementCategory.ANIME_YEAR):
            elements.insert(ElementCategory.ANIME_YEAR, token.content)
            consumed.append(index)
        elif number in BARE_RESOLUTIONS and elements.empty(ElementCategory.VIDEO_RESOLUTION):
            elements.insert(ElementCategory.VIDEO_RESOLUTION, token.content)
            consumed.append(index)
    return reclassify(tokens, consumed, TokenCategory.IDENTIFIER)


def _alternate_number_index(tokens: Tokens, episode_index: int) -> Optional[int]:
    """Locate ``(13)`` right after the episode token in titles like ``01 (13)``."""

    opener = find_token(tokens, episode_index + 1, TokenFlag.NOT_DELIMITER)
    if opener is None or tokens[opener].category is not TokenCategory.BRACKET:
        return None
    if tokens[opener].content not in _OPENING_BRACKETS:
        return None
    number_index = opener + 1
    closer = number_index + 1
    if closer >= len(tokens):
        return None
    number = tokens[number_index]
    if not (number.matches(TokenFlag.UNKNOWN | TokenFlag.ENCLOSED) and is_numeric(number.content)):
        return None
    if tokens[closer].category is not TokenCategory.BRACKET:
        return None
    if not 1 <= int(number.content) <= ALT_EPISODE_MAX:
        return None
    return number_index


def search_episode_number(
    tokens: Tokens,
    elements: ElementMap,
    rules: Sequence[EpisodeRule] = EPISODE_RULES,
) -> Tokens:
    """Apply ``rules`` in order and record the first match."""

    candidates = candidate_indexes(tokens)
    if not candidates:
        return tokens
    match: Optional[EpisodeMatch] = None
    for rule in rules:
        match = rule.search(tokens, candidates)
        if match is not None:
            logger.debug("Episode rule %s matched token %r", rule.name, tokens[match.index].content)
            break
    if match is None:
        return tokens

    for season in match.seasons:
        elements.insert(ElementCategory.ANIME_SEASON, season)
    for episode in match.episodes:
        elements.insert(ElementCategory.EPISODE_NUMBER, episode)
    for version in match.versions:
        elements.insert(ElementCategory.RELEASE_VERSION, version)
    consumed = [match.index]

    alternate = _alternate_number_index(tokens, match.index)
    if alternate is not None:
        elements.insert(ElementCategory.EPISODE_NUMBER_ALT, tokens[alternate].content)
        consumed.append(alternate)
    return reclassify(tokens, consumed, TokenCategory.IDENTIFIER)


def _drop_unclosed_bracket(tokens: Tokens, begin: int, end: int) -> int:
    """Pull ``end`` back to a bracket opened inside the run but not closed there."""

    last_bracket = end
    bracket_open = False
    for index in range(begin, end):
        if tokens[index].category is TokenCategory.BRACKET:
            last_bracket = index
            bracket_open = not bracket_open
    return last_bracket if bracket_open else end


def search_anime_title(tokens: Tokens, elements: ElementMap) -> Tokens:
    """
    Build the title from the first run of non-enclosed unknown tokens.

    When every unknown token is enclosed, the first bracket group is assumed to be
    the release group and the title is taken from the next group instead.
    """
    begin = find_token(tokens, 0, TokenFlag.NOT_ENCLOSED | TokenFlag.UNKNOWN)
    enclosed_title = False
    if begin is None:
        enclosed_title = True
        begin = find_token(tokens, 0, TokenFlag.UNKNOWN)
        if begin is not None:
            next_bracket = find_token(tokens, begin, TokenFlag.BRACKET)
            if next_bracket is not None:
                begin = find_token(tokens, next_bracket + 1, TokenFlag.UNKNOWN)
    if begin is None:
        return tokens

    if enclosed_title:
        end = find_first_of(tokens, begin + 1, TokenFlag.IDENTIFIER, TokenFlag.BRACKET)
    else:
        end = find_token(tokens, begin + 1, TokenFlag.IDENTIFIER)
    if end is None:
        end = len(tokens)
    if not enclosed_title:
        end = _drop_unclosed_bracket(tokens, begin, end)

    tokens, value = build_element(tokens, begin, end)
    if value:
        elements.insert(ElementCategory.ANIME_TITLE, value)
    return tokens


def search_release_group(tokens: Tokens, elements: ElementMap) -> Tokens:
    """Take the first enclosed unknown run longer than one character as the group."""

    if not elements.empty(ElementCategory.RELEASE_GROUP):
        return tokens
    begin: Optional[int] = 0
    while begin is not None and begin < len(tokens):
        begin = find_token(tokens, begin, TokenFlag.ENCLOSED | TokenFlag.UNKNOWN)
        if begin is None:
            return tokens
        end = find_token(tokens, begin + 1, TokenFlag.BRACKET)
        if end is not None and len(tokens[begin].content) > 1:
            tokens, value = build_element(tokens, begin, end, keep_delimiters=True)
            value = value.strip()
            if value:
                elements.insert(ElementCategory.RELEASE_GROUP, value)
            return tokens
        begin += 1
    return tokens


def search_episode_title(tokens: Tokens, elements: ElementMap) -> Tokens:
    """Use the first remaining non-enclosed unknown run, skipping lone dashes."""

    if elements.empty(ElementCategory.EPISODE_NUMBER):
        return tokens
    begin: Optional[int] = 0
    while begin is not None and begin < len(tokens):
        begin = find_token(tokens, begin, TokenFlag.NOT_ENCLOSED | TokenFlag.UNKNOWN)
        if begin is None:
            return tokens
        end = find_first_of(tokens, begin + 1, TokenFlag.BRACKET, TokenFlag.IDENTIFIER)
        if end is None:
            end = len(tokens)
        if end - begin <= 2 and is_dash(tokens[begin].content):
            begin += 1
            continue
        tokens, value = build_element(tokens, begin, end)
        if value:
            elements.insert(ElementCategory.EPISODE_TITLE, value)
        return tokens
    return tokens


PARSER_PASSES: Tuple[Tuple[str, Pass], ...] = (
    ("keywords", search_keywords),
    ("isolated_numbers", search_isolated_numbers),
    ("episode_number", search_episode_number),
    ("anime_title", search_anime_title),
    ("release_group", search_release_group),
    ("episode_title", search_episode_title),
)


def parse_title(raw_title: str, *, delimiters: str = DEFAULT_DELIMITERS) -> ParseResult:
    """
    Parse a release title into an :class:`ElementMap`.

    The file extension (if any) is removed first, then the remaining name is
    tokenized and run through :data:`PARSER_PASSES` in order.
    """

    elements = ElementMap()
    if not isinstance(raw_title, str) or not raw_title.strip():
        return ParseResult(raw_title=raw_title or "", elements=elements)

    name, extension = split_extension(raw_title)
    if extension:
        elements.insert(ElementCategory.FILE_EXTENSION, extension)
    if not name.strip():
        return ParseResult(raw_title=raw_title, elements=elements)
    elements.insert(ElementCategory.FILE_NAME, name)

    tokens = tokenize(name, delimiters)
    for _label, step in PARSER_PASSES:
        tokens = step(tokens, elements)

    result = ParseResult(raw_title=raw_title, elements=elements, tokens=tokens)
    if not result.success:
        logger.debug("No anime title found in %r", raw_title)
    return result
