"""Token model and parsy-based lexer for query language expressions."""

from __future__ import annotations

import re
from collections.abc import Generator, Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import cast

from parsy import Parser, alt, any_char, eof, generate, index, regex, seq, string

from notedql.query_language.errors import QueryLexError


class TokenKind(StrEnum):
    """Lexical token categories."""

    IDENTIFIER = "identifier"
    NUMBER = "number"
    STRING = "string"
    OPERATOR = "operator"
    PUNCTUATION = "punctuation"
    KEYWORD = "keyword"


@dataclass(frozen=True, slots=True)
class Token:
    """One lexical unit with its source offset."""

    kind: TokenKind
    text: str
    offset: int

    def describe(self) -> str:
        """Return user-facing token description for error messages."""
        return f"{self.kind} '{self.text}'"


TWO_CHAR_OPERATORS = ("==", "!=", "<=", ">=", "&&", "||", "=>")
ONE_CHAR_OPERATORS = frozenset("<>=!+-*/%")
PUNCTUATION = frozenset("()[].,")

_UPPER_KEYWORDS = frozenset({"AND", "OR", "NOT"})
_LOWER_KEYWORDS = frozenset({"true", "false", "null"})

_ESCAPE_PATTERN = re.compile(r"\\(.)", re.DOTALL)


def _keyword_text(word: str) -> str | None:
    """Return canonical keyword spelling, or None for plain identifiers."""
    upper = word.upper()
    if upper in _UPPER_KEYWORDS:
        return upper
    lower = word.lower()
    if lower in _LOWER_KEYWORDS:
        return lower
    return None


def _is_literal_position(previous: Token | None) -> bool:
    """Return whether a '-' at this point may start a numeric literal."""
    if previous is None:
        return True
    if previous.kind == TokenKind.OPERATOR:
        return True
    if previous.kind == TokenKind.PUNCTUATION:
        return previous.text in {"(", "[", ","}
    if previous.kind == TokenKind.KEYWORD:
        return previous.text in _UPPER_KEYWORDS
    return False


def _decode_string(token_value: str) -> str:
    """Strip the quotes of a string literal token and resolve backslash escapes."""
    return _ESCAPE_PATTERN.sub(r"\1", token_value[1:-1])


def _word_token(offset: int, word: str) -> Token:
    keyword = _keyword_text(word)
    if keyword is None:
        return Token(TokenKind.IDENTIFIER, word, offset)
    return Token(TokenKind.KEYWORD, keyword, offset)


def _unterminated_string(offset: int, quote: str) -> Token:
    raise QueryLexError(
        f"Unterminated string literal at offset {offset}",
        expected=f"closing {quote}",
    )


def _token(kind: TokenKind, parser: Parser) -> Parser:
    """Wrap a lexeme parser so it yields a Token at its start offset."""
    return seq(index, parser).combine(lambda offset, text: Token(kind, text, offset))


def _alternatives(texts: Iterable[str]) -> Parser:
    """Match any of the given literal texts, longest first."""
    return alt(*(string(text) for text in sorted(texts, key=len, reverse=True)))


_WHITESPACE = regex(r"\s*")

_STRING = seq(
    index,
    regex(r"\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*'", flags=re.DOTALL).map(_decode_string),
).combine(lambda offset, text: Token(TokenKind.STRING, text, offset))
_UNTERMINATED_STRING = seq(index, regex(r"[\"']")).combine(_unterminated_string)
_NUMBER = _token(TokenKind.NUMBER, regex(r"\d+(?:\.\d+)?"))
_SIGNED_NUMBER = _token(TokenKind.NUMBER, regex(r"-\d+(?:\.\d+)?"))
_OPERATOR = _token(
    TokenKind.OPERATOR,
    _alternatives(TWO_CHAR_OPERATORS) | _alternatives(ONE_CHAR_OPERATORS),
)
_PUNCTUATION = _token(TokenKind.PUNCTUATION, _alternatives(PUNCTUATION))
_WORD = seq(index, regex(r"[A-Za-z_][A-Za-z0-9_]*")).combine(_word_token)
_UNKNOWN = any_char.result(None)

_OPERAND_TOKEN = _NUMBER | _OPERATOR | _PUNCTUATION | _WORD | _UNKNOWN
_TOKEN = _STRING | _UNTERMINATED_STRING | _OPERAND_TOKEN
_LITERAL_POSITION_TOKEN = _STRING | _UNTERMINATED_STRING | _SIGNED_NUMBER | _OPERAND_TOKEN


@generate
def _tokens() -> Generator[Parser, object, list[Token]]:
    """Read tokens until end of input, tracking the previous token for signed numbers."""
    tokens: list[Token] = []
    while True:
        yield _WHITESPACE
        if (yield eof.result(True).optional()):
            return tokens
        previous = tokens[-1] if tokens else None
        parser = _LITERAL_POSITION_TOKEN if _is_literal_position(previous) else _TOKEN
        token = cast(Token | None, (yield parser))
        if token is not None:
            tokens.append(token)


def tokenize(text: str) -> list[Token]:
    """Split expression text into tokens.

    Unknown characters are skipped rather than reported.

    Raises:
        QueryLexError: If a string literal is not closed
    """
    return cast(list[Token], _tokens.parse(text))
