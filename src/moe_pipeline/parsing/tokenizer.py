"""Bracket-aware tokenizer for release titles."""

from __future__ import annotations

from typing import List

from .tokens import Token, TokenCategory, Tokens, is_numeric

__all__ = ["BRACKET_PAIRS", "DEFAULT_DELIMITERS", "tokenize"]

BRACKET_PAIRS = {"(": ")", "[": "]", "{": "}"}
DEFAULT_DELIMITERS = " _.&+,|"
_NUMBER_JOINERS = "&+"


def tokenize(text: str, delimiters: str = DEFAULT_DELIMITERS) -> Tokens:
    """
    Split ``text`` into bracket, delimiter and unknown tokens.

    Only one bracket group is open at a time; an opener of another kind inside
    a group is ordinary content. An unmatched opener encloses the rest of the
    string. Whitespace-only runs that are not delimiters are kept as invalid
    tokens so the contents always concatenate back to ``text``.

    Returns an empty tuple only for empty or whitespace-only input.
    """

    if not text or not text.strip():
        return ()

    tokens: List[Token] = []
    closing: str | None = None
    begin = 0
    for index, char in enumerate(text):
        if closing is None and char in BRACKET_PAIRS:
            next_closing: str | None = BRACKET_PAIRS[char]
        elif closing is not None and char == closing:
            next_closing = None
        else:
            continue
        if index > begin:
            tokens.extend(_split_by_delimiters(text[begin:index], closing is not None, delimiters))
        tokens.append(Token(TokenCategory.BRACKET, char, True))
        closing = next_closing
        begin = index + 1
    if begin < len(text):
        tokens.extend(_split_by_delimiters(text[begin:], closing is not None, delimiters))
    return _merge_number_groups(tokens)


def _split_by_delimiters(segment: str, enclosed: bool, delimiters: str) -> List[Token]:
    tokens: List[Token] = []
    run_start = 0
    for index, char in enumerate(segment):
        if char.isalnum() or char not in delimiters:
            continue
        if index > run_start:
            tokens.append(_word_token(segment[run_start:index], enclosed))
        tokens.append(Token(TokenCategory.DELIMITER, char, enclosed))
        run_start = index + 1
    if run_start < len(segment):
        tokens.append(_word_token(segment[run_start:], enclosed))
    return tokens


def _word_token(content: str, enclosed: bool) -> Token:
    if content.strip():
        return Token(TokenCategory.UNKNOWN, content, enclosed)
    return Token(TokenCategory.INVALID, content, enclosed)


def _is_numeric_unknown(token: Token) -> bool:
    return token.category is TokenCategory.UNKNOWN and is_numeric(token.content)


def _merge_number_groups(tokens: List[Token]) -> Tokens:
    """Fold ``1&2`` / ``1+2`` back into a single unknown token."""

    merged: List[Token] = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if (
            token.category is TokenCategory.DELIMITER
            and token.content in _NUMBER_JOINERS
            and merged
            and index + 1 < len(tokens)
            and _is_numeric_unknown(merged[-1])
            and _is_numeric_unknown(tokens[index + 1])
        ):
            left = merged.pop()
            right = tokens[index + 1]
            merged.append(
                Token(TokenCategory.UNKNOWN, left.content + token.content + right.content, left.enclosed)
            )
            index += 2
            continue
        merged.append(token)
        index += 1
    return tuple(merged)
