"""Release-title tokenizer and metadata parser."""

from .elements import ElementCategory, ElementMap
from .episode_rules import EPISODE_RULES, EpisodeMatch, EpisodeRule
from .parser import ParseResult, parse_title, split_extension
from .tokenizer import tokenize
from .tokens import Token, TokenCategory, TokenFlag, Tokens

__all__ = [
    "EPISODE_RULES",
    "ElementCategory",
    "ElementMap",
    "EpisodeMatch",
    "EpisodeRule",
    "ParseResult",
    "Token",
    "TokenCategory",
    "TokenFlag",
    "Tokens",
    "parse_title",
    "split_extension",
    "tokenize",
]
