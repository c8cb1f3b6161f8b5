"""Recursive-descent parser for query language expressions.

The grammar, from lowest to highest precedence::

    or          := and (("OR" | "||") and)*
    and         := comparison (("AND" | "&&") comparison)*
    comparison  := additive (("=" | "==" | "!=" | "<" | ">" | "<=" | ">=") additive)?
    additive    := multiplicative (("+" | "-") multiplicative)*
    multiplicative := unary (("*" | "/" | "%") unary)*
    unary       := ("NOT" | "!" | "-" | "+") unary | postfix
    postfix     := primary ("." identifier | "[" or "]")*
    primary     := lambda | "(" or ")" | literal | call | identifier

Parsers operate on the token list produced by the lexer rather than on raw text.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from typing import cast

from parsy import ParseError, Parser, eof, forward_declaration, generate, seq, test_item

from notedql.query_language.ast import (
    BinaryOp,
    DynamicIndex,
    Expr,
    FunctionCall,
    Identifier,
    Lambda,
    Literal,
    Logical,
    Property,
    Unary,
)
from notedql.query_language.errors import QueryParseError
from notedql.query_language.tokens import Token, TokenKind, tokenize


COMPARISON_OPERATORS = ("=", "==", "!=", "<", ">", "<=", ">=")


def _token(kind: TokenKind, *texts: str) -> Parser:
    """Build a parser consuming one token of kind, optionally restricted to texts."""
    if texts:
        description = " or ".join(f"'{text}'" for text in texts)
        return test_item(
            lambda token: token.kind == kind and token.text in texts,
            description,
        )
    return test_item(lambda token: token.kind == kind, str(kind))


def _operator(*texts: str) -> Parser:
    return _token(TokenKind.OPERATOR, *texts)


def _punctuation(text: str) -> Parser:
    return _token(TokenKind.PUNCTUATION, text)


def _keyword(*texts: str) -> Parser:
    return _token(TokenKind.KEYWORD, *texts)


def _number_value(text: str) -> int | float:
    """Convert a number token into int or float."""
    if "." in text:
        return float(text)
    return int(text)


def _build_literal_parser() -> Parser:
    """Build parser for string, number, boolean and null literals."""
    string_literal = _token(TokenKind.STRING).map(lambda token: Literal(token.text))
    number_literal = _token(TokenKind.NUMBER).map(
        lambda token: Literal(_number_value(token.text))
    )
    true_literal = _keyword("true").result(Literal(True))
    false_literal = _keyword("false").result(Literal(False))
    null_literal = _keyword("null").result(Literal(None))
    return string_literal | number_literal | true_literal | false_literal | null_literal


def _build_lambda_parser(identifier: Parser, expr: Parser) -> Parser:
    """Build parser for `(x) => body` and `x => body` lambda literals."""
    parenthesized_parameter = _punctuation("(") >> identifier << _punctuation(")")
    parameter = parenthesized_parameter | identifier

    @generate
    def lambda_literal() -> Generator[Parser, object, Lambda]:
        name_token = cast(Token, (yield parameter))
        yield _operator("=>")
        body = cast(Expr, (yield expr))
        return Lambda(name_token.text, body)

    return lambda_literal


def _build_function_call_parser(identifier: Parser, expr: Parser) -> Parser:
    """Build parser for `name(arg, ...)` calls."""

    @generate
    def function_call() -> Generator[Parser, object, FunctionCall]:
        name_token = cast(Token, (yield identifier))
        yield _punctuation("(")
        arguments = cast(list[Expr], (yield expr.sep_by(_punctuation(","))))
        yield _punctuation(")")
        return FunctionCall(name_token.text, tuple(arguments))

    return function_call


def _build_postfix_parser(primary: Parser, identifier: Parser, expr: Parser) -> Parser:
    """Build parser applying `.name` and `[index]` postfix operators."""
    dot_postfix = (_punctuation(".") >> identifier).map(lambda token: ("field", token.text))
    bracket_postfix = (_punctuation("[") >> expr << _punctuation("]")).map(
        lambda index: ("index", index)
    )
    postfix = dot_postfix | bracket_postfix

    @generate
    def with_postfix() -> Generator[Parser, object, Expr]:
        current = cast(Expr, (yield primary))
        operations = cast(list[tuple[str, object]], (yield postfix.many()))
        for kind, payload in operations:
            current = _apply_postfix(current, kind, payload)
        return current

    return with_postfix


def _apply_postfix(base: Expr, kind: str, payload: object) -> Expr:
    """Apply one postfix operation, folding literal indices into static properties."""
    if kind == "field":
        return Property(base, cast(str, payload))
    index = cast(Expr, payload)
    if isinstance(index, Literal):
        return Property(base, index.value)
    return DynamicIndex(base, index)


def _build_unary_parser(postfix: Parser) -> Parser:
    """Build parser for prefix NOT, minus and plus."""
    unary = forward_declaration()
    negation = (_keyword("NOT") | _operator("!")) >> unary.map(lambda operand: Unary("NOT", operand))
    minus = _operator("-") >> unary.map(lambda operand: Unary("-", operand))
    plus = _operator("+") >> unary
    unary.become(negation | minus | plus | postfix)
    return unary


def _chain_left(
    term: Parser,
    op: Parser,
    builder: Callable[[str, Expr, Expr], Expr],
) -> Parser:
    """Build a left-associative parser from term and operator parsers."""

    @generate
    def parser() -> Generator[Parser, object, Expr]:
        current = cast(Expr, (yield term))
        rest = cast(list[tuple[Token, Expr]], (yield seq(op, term).many()))
        for operator, right in rest:
            current = builder(operator.text, current, right)
        return current

    return parser


def _build_comparison_parser(additive: Parser) -> Parser:
    """Build parser for a single, non-chaining comparison."""

    @generate
    def comparison() -> Generator[Parser, object, Expr]:
        left = cast(Expr, (yield additive))
        tail = cast(
            tuple[Token, Expr] | None,
            (yield seq(_operator(*COMPARISON_OPERATORS), additive).optional()),
        )
        if tail is None:
            return left
        operator, right = tail
        normalized = "=" if operator.text == "==" else operator.text
        return BinaryOp(normalized, left, right)

    return comparison


def _binary_builder(operator: str, left: Expr, right: Expr) -> Expr:
    return BinaryOp(operator, left, right)


def _logical_builder(operator: str, left: Expr, right: Expr) -> Expr:
    normalized = {"&&": "AND", "||": "OR"}.get(operator, operator)
    return Logical(normalized, left, right)


def _make_parser() -> Parser:
    """Create the full expression parser."""
    expr = forward_declaration()
    identifier = _token(TokenKind.IDENTIFIER)

    literal = _build_literal_parser()
    lambda_literal = _build_lambda_parser(identifier, expr)
    function_call = _build_function_call_parser(identifier, expr)
    grouped = _punctuation("(") >> expr << _punctuation(")")
    variable = identifier.map(lambda token: Identifier(token.text))

    primary = lambda_literal | grouped | literal | function_call | variable
    postfix = _build_postfix_parser(primary, identifier, expr)
    unary = _build_unary_parser(postfix)

    multiplicative = _chain_left(unary, _operator("*", "/", "%"), _binary_builder)
    additive = _chain_left(multiplicative, _operator("+", "-"), _binary_builder)
    comparison = _build_comparison_parser(additive)
    conjunction = _chain_left(comparison, _keyword("AND") | _operator("&&"), _logical_builder)
    disjunction = _chain_left(conjunction, _keyword("OR") | _operator("||"), _logical_builder)

    expr.become(disjunction)
    return expr << eof.desc("end of expression")


EXPRESSION_PARSER = _make_parser()


def _format_parse_error(text: str, tokens: list[Token], exc: ParseError) -> QueryParseError:
    """Build parse error with offending token, expectation and a source pointer."""
    expected = ", ".join(sorted(exc.expected))
    token = tokens[exc.index] if exc.index < len(tokens) else None
    if token is None:
        message = f"Unexpected end of input, expected {expected}"
        column = len(text)
    else:
        message = f"Unexpected token {token.describe()}, expected {expected}"
        column = token.offset
    pointer = " " * column + "^"
    return QueryParseError(
        f"Invalid expression syntax: {message}\n\n{text}\n{pointer}",
        token=token,
        expected=expected,
    )


def parse_tokens(tokens: list[Token], text: str = "") -> Expr:
    """Parse a token list into an AST expression."""
    try:
        result = EXPRESSION_PARSER.parse(tokens)
    except ParseError as exc:
        raise _format_parse_error(text, tokens, exc) from exc
    if isinstance(result, Expr):
        return result
    raise QueryParseError("Parser did not produce an expression")


def parse_expression(text: str) -> Expr:
    """Tokenize and parse expression text into an AST."""
    return parse_tokens(tokenize(text), text)
