"""Boolean expression language for validation and formatting rules.

Grammar (lowest to highest precedence)::

    expr       := or
    or         := and (("||" | "OR") and)*
    and        := equality (("&&" | "AND") equality)*
    equality   := relational (("==" | "!=") relational)*
    relational := unary ((">" | "<" | ">=" | "<=" | "IN" | "INCLUDES"
                          | "CONTAINS" | "STARTS_WITH") unary)*
    unary      := ("!" | "NOT") unary | primary
    primary    := NUMBER | STRING | "true" | "false" | "null"
                | "[" [expr ("," expr)*] "]" | "(" expr ")"
                | FUNCTION "(" [expr ("," expr)*] ")" | IDENTIFIER

Identifiers are field API names resolved against the record. Comparison
operators share their semantics with the visibility evaluator.

Example:
    >>> evaluate_expression("Stage == 'Closed Won' && ISBLANK(CloseDate)", record)
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Union

from orgschema.core.types import ConditionOperator
from orgschema.exceptions import ExpressionSyntaxError, UnknownFunctionError
from orgschema.rules.visibility import MISSING, compare

# ###############
# Tokens
# ###############

_TOKEN_SPEC = [
    ("WS", r"\s+"),
    ("NUMBER", r"-?\d+(?:\.\d+)?"),
    ("STRING", r"\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*'"),
    ("OP", r"==|!=|>=|<=|&&|\|\||[<>!]"),
    ("PUNCT", r"[()\[\],]"),
    ("IDENT", r"[A-Za-z_][A-Za-z0-9_]*"),
]
_TOKEN_RE = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in _TOKEN_SPEC))

_KEYWORD_OPERATORS = {"IN", "INCLUDES", "CONTAINS", "STARTS_WITH"}
_LOGICAL_WORDS = {"AND": "&&", "OR": "||", "NOT": "!"}
_RELATIONAL = {">", "<", ">=", "<="} | _KEYWORD_OPERATORS


@dataclass(frozen=True)
class Token:
    """A lexical token and its 0-based offset in the source."""

    kind: str
    value: str
    position: int


def tokenize(source: str) -> list[Token]:
    """Split an expression into tokens.

    Raises:
        ExpressionSyntaxError: On characters that start no token
    """
    tokens: list[Token] = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_RE.match(source, pos)
        if match is None:
            raise ExpressionSyntaxError(source, f"unexpected character {source[pos]!r}", pos)
        kind = match.lastgroup or ""
        text = match.group()
        if kind == "IDENT" and text in _LOGICAL_WORDS:
            tokens.append(Token("OP", _LOGICAL_WORDS[text], pos))
        elif kind == "IDENT" and text in _KEYWORD_OPERATORS:
            tokens.append(Token("OP", text, pos))
        elif kind != "WS":
            tokens.append(Token(kind, text, pos))
        pos = match.end()
    tokens.append(Token("EOF", "", len(source)))
    return tokens


# ###############
# Syntax tree
# ###############


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class FieldRef:
    name: str


@dataclass(frozen=True)
class ArrayExpr:
    items: tuple[Node, ...]


@dataclass(frozen=True)
class Unary:
    op: str
    operand: Node


@dataclass(frozen=True)
class Binary:
    op: str
    left: Node
    right: Node


@dataclass(frozen=True)
class Call:
    name: str
    args: tuple[Node, ...]


Node = Union[Literal, FieldRef, ArrayExpr, Unary, Binary, Call]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, list):
        return not value
    return False


def _length(value: Any) -> int:
    return len(value) if isinstance(value, (str, list)) else 0


FUNCTIONS: dict[str, Callable[..., Any]] = {
    "ISBLANK": _is_blank,
    "ISNULL": lambda value: value is None,
    "LEN": _length,
}

# Every function takes exactly this many arguments
FUNCTION_ARITY: dict[str, int] = {"ISBLANK": 1, "ISNULL": 1, "LEN": 1}


def _unescape(raw: str) -> str:
    body = raw[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


# ###############
# Parser
# ###############


class _Parser:
    """Recursive-descent parser over the token list."""

    def __init__(self, source: str, tokens: list[Token]) -> None:
        self._source = source
        self._tokens = tokens
        self._pos = 0

    def parse(self) -> Node:
        node = self._parse_or()
        if self._current().kind != "EOF":
            self._error(f"unexpected {self._current().value!r}")
        return node

    def _current(self) -> Token:
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        if token.kind != "EOF":
            self._pos += 1
        return token

    def _check_op(self, *ops: str) -> bool:
        token = self._current()
        return token.kind == "OP" and token.value in ops

    def _expect_punct(self, value: str) -> Token:
        token = self._current()
        if token.kind != "PUNCT" or token.value != value:
            found = token.value or "end of expression"
            self._error(f"expected '{value}', found {found!r}")
        return self._advance()

    def _error(self, reason: str) -> None:
        raise ExpressionSyntaxError(self._source, reason, self._current().position)

    def _parse_or(self) -> Node:
        left = self._parse_and()
        while self._check_op("||"):
            self._advance()
            left = Binary("||", left, self._parse_and())
        return left

    def _parse_and(self) -> Node:
        left = self._parse_equality()
        while self._check_op("&&"):
            self._advance()
            left = Binary("&&", left, self._parse_equality())
        return left

    def _parse_equality(self) -> Node:
        left = self._parse_relational()
        while self._check_op("==", "!="):
            op = self._advance().value
            left = Binary(op, left, self._parse_relational())
        return left

    def _parse_relational(self) -> Node:
        left = self._parse_unary()
        while self._check_op(*_RELATIONAL):
            op = self._advance().value
            left = Binary(op, left, self._parse_unary())
        return left

    def _parse_unary(self) -> Node:
        if self._check_op("!"):
            self._advance()
            return Unary("!", self._parse_unary())
        return self._parse_primary()

    def _parse_primary(self) -> Node:
        token = self._current()
        if token.kind == "NUMBER":
            self._advance()
            return Literal(float(token.value) if "." in token.value else int(token.value))
        if token.kind == "STRING":
            self._advance()
            return Literal(_unescape(token.value))
        if token.kind == "PUNCT" and token.value == "(":
            self._advance()
            node = self._parse_or()
            self._expect_punct(")")
            return node
        if token.kind == "PUNCT" and token.value == "[":
            self._advance()
            return ArrayExpr(self._parse_list("]"))
        if token.kind == "IDENT":
            self._advance()
            if token.value == "true":
                return Literal(True)
            if token.value == "false":
                return Literal(False)
            if token.value == "null":
                return Literal(None)
            nxt = self._current()
            if nxt.kind == "PUNCT" and nxt.value == "(":
                if token.value not in FUNCTIONS:
                    raise UnknownFunctionError(token.value, sorted(FUNCTIONS))
                self._advance()
                args = self._parse_list(")")
                expected = FUNCTION_ARITY[token.value]
                if len(args) != expected:
                    raise ExpressionSyntaxError(
                        self._source,
                        f"{token.value} takes {expected} argument(s), got {len(args)}",
                        token.position,
                    )
                return Call(token.value, args)
            return FieldRef(token.value)
        found = token.value or "end of expression"
        self._error(f"unexpected {found!r}")
        raise AssertionError("unreachable")  # pragma: no cover

    def _parse_list(self, closing: str) -> tuple[Node, ...]:
        items: list[Node] = []
        if self._current().kind == "PUNCT" and self._current().value == closing:
            self._advance()
            return ()
        while True:
            items.append(self._parse_or())
            if self._current().kind == "PUNCT" and self._current().value == ",":
                self._advance()
                continue
            self._expect_punct(closing)
            return tuple(items)


@lru_cache(maxsize=512)
def parse_expression(source: str) -> Node:
    """Parse an expression into an immutable syntax tree (cached).

    Raises:
        ExpressionSyntaxError: On malformed input
        UnknownFunctionError: On calls to unsupported functions
    """
    if not source or not source.strip():
        raise ExpressionSyntaxError(source or "", "expression is empty", 0)
    return _Parser(source, tokenize(source)).parse()


# ###############
# Evaluation
# ###############


_ORDERING = {ConditionOperator.GT, ConditionOperator.LT, ConditionOperator.GTE, ConditionOperator.LTE}


def _operand(node: Node, record: Mapping[str, Any]) -> Any:
    # Absent fields stay NaN in ordering comparisons; None coerces to 0
    if isinstance(node, FieldRef):
        return record.get(node.name, MISSING)
    return _evaluate(node, record)


def _evaluate(node: Node, record: Mapping[str, Any]) -> Any:
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, FieldRef):
        return record.get(node.name)
    if isinstance(node, ArrayExpr):
        return [_evaluate(item, record) for item in node.items]
    if isinstance(node, Unary):
        return not bool(_evaluate(node.operand, record))
    if isinstance(node, Call):
        return FUNCTIONS[node.name](*(_evaluate(arg, record) for arg in node.args))
    if node.op == "&&":
        return bool(_evaluate(node.left, record)) and bool(_evaluate(node.right, record))
    if node.op == "||":
        return bool(_evaluate(node.left, record)) or bool(_evaluate(node.right, record))
    op = ConditionOperator(node.op)
    if op in _ORDERING:
        return compare(_operand(node.left, record), op, _operand(node.right, record))
    return compare(_evaluate(node.left, record), op, _evaluate(node.right, record))


def evaluate_expression(source: str, record: Mapping[str, Any]) -> Any:
    """Parse (cached) and evaluate an expression against a record."""
    return _evaluate(parse_expression(source), record)


def check_expression(source: str) -> str | None:
    """Return None when the expression parses, otherwise the error message."""
    try:
        parse_expression(source)
    except (ExpressionSyntaxError, UnknownFunctionError) as e:
        return e.message
    return None


def field_references(source: str) -> list[str]:
    """Field API names referenced by an expression, in first-use order.

    Unparseable expressions reference nothing.
    """
    try:
        root = parse_expression(source)
    except (ExpressionSyntaxError, UnknownFunctionError):
        return []
    names: list[str] = []

    def collect(node: Node) -> None:
        if isinstance(node, FieldRef):
            if node.name not in names:
                names.append(node.name)
        elif isinstance(node, ArrayExpr):
            for item in node.items:
                collect(item)
        elif isinstance(node, Unary):
            collect(node.operand)
        elif isinstance(node, Binary):
            collect(node.left)
            collect(node.right)
        elif isinstance(node, Call):
            for arg in node.args:
                collect(arg)

    collect(root)
    return names
