"""Token model and lookup helpers shared by the tokenizer and parser passes."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum, IntFlag
from typing import Iterable, Optional, Tuple

__all__ = [
    "DASHES",
    "Token",
    "TokenCategory",
    "TokenFlag",
    "Tokens",
    "find_first_of",
    "find_previous_token",
    "find_token",
    "is_dash",
    "is_isolated",
    "is_numeric",
    "reclassify",
]

DASHES = "-\u2010\u2011\u2012\u2013\u2014\u2015"
"""Characters treated as a dash when looking for ``Title - 05`` separators."""


class TokenCategory(str, Enum):
    BRACKET = "bracket"
    DELIMITER = "delimiter"
    UNKNOWN = "unknown"
    IDENTIFIER = "identifier"
    INVALID = "invalid"


class TokenFlag(IntFlag):
    """Predicates combined with ``|`` when searching a token sequence."""

    NONE = 0
    BRACKET = 1 << 0
    NOT_BRACKET = 1 << 1
    DELIMITER = 1 << 2
    NOT_DELIMITER = 1 << 3
    IDENTIFIER = 1 << 4
    NOT_IDENTIFIER = 1 << 5
    UNKNOWN = 1 << 6
    NOT_UNKNOWN = 1 << 7
    VALID = 1 << 8
    NOT_VALID = 1 << 9
    ENCLOSED = 1 << 10
    NOT_ENCLOSED = 1 << 11


@dataclass(frozen=True, slots=True)
class Token:
    """One slice of the source title; concatenating every ``content`` restores it."""

    category: TokenCategory
    content: str
    enclosed: bool = False

    def matches(self, flags: TokenFlag) -> bool:
        category = self.category
        checks = (
            (TokenFlag.BRACKET, category is TokenCategory.BRACKET),
            (TokenFlag.NOT_BRACKET, category is not TokenCategory.BRACKET),
            (TokenFlag.DELIMITER, category is TokenCategory.DELIMITER),
            (TokenFlag.NOT_DELIMITER, category is not TokenCategory.DELIMITER),
            (TokenFlag.IDENTIFIER, category is TokenCategory.IDENTIFIER),
            (TokenFlag.NOT_IDENTIFIER, category is not TokenCategory.IDENTIFIER),
            (TokenFlag.UNKNOWN, category is TokenCategory.UNKNOWN),
            (TokenFlag.NOT_UNKNOWN, category is not TokenCategory.UNKNOWN),
            (TokenFlag.VALID, category is not TokenCategory.INVALID),
            (TokenFlag.NOT_VALID, category is TokenCategory.INVALID),
            (TokenFlag.ENCLOSED, self.enclosed),
            (TokenFlag.NOT_ENCLOSED, not self.enclosed),
        )
        return all(ok for flag, ok in checks if flags & flag)


Tokens = Tuple[Token, ...]


def find_token(tokens: Tokens, start: int, flags: TokenFlag) -> Optional[int]:
    """Return the index of the first token at or after ``start`` matching ``flags``."""

    for index in range(max(0, start), len(tokens)):
        if tokens[index].matches(flags):
            return index
    return None


def find_previous_token(tokens: Tokens, start: int, flags: TokenFlag) -> Optional[int]:
    """Return the index of the closest token before ``start`` matching ``flags``."""

    for index in range(min(start, len(tokens)) - 1, -1, -1):
        if tokens[index].matches(flags):
            return index
    return None


def reclassify(tokens: Tokens, indexes: Iterable[int], category: TokenCategory) -> Tokens:
    """Return a copy of ``tokens`` with the given positions moved to ``category``."""

    targets = set(indexes)
    if not targets:
        return tokens
    return tuple(
        replace(token, category=category) if index in targets else token
        for index, token in enumerate(tokens)
    )


def is_numeric(text: str) -> bool:
    return bool(text) and text.isascii() and text.isdigit()


def is_dash(text: str) -> bool:
    return len(text) == 1 and text in DASHES


def is_isolated(tokens: Tokens, index: int) -> bool:
    """True when the nearest valid neighbours on both sides are brackets or the string edges."""

    previous = find_previous_token(tokens, index, TokenFlag.VALID)
    following = find_token(tokens, index + 1, TokenFlag.VALID)
    return (previous is None or tokens[previous].category is TokenCategory.BRACKET) and (
        following is None or tokens[following].category is TokenCategory.BRACKET
    )


def find_first_of(tokens: Tokens, start: int, *alternatives: TokenFlag) -> Optional[int]:
    """Return the earliest index matching any one of ``alternatives``."""

    found = [find_token(tokens, start, flags) for flags in alternatives]
    hits = [index for index in found if index is not None]
    return min(hits) if hits else None
