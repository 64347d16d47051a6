"""Boolean condition language for cross-field validation rules.

Grammar, lowest precedence first::

    expr       := and_expr ("||" and_expr)*
    and_expr   := primary ("&&" primary)*
    primary    := "(" expr ")" | comparison
    comparison := FIELD OP operand
    OP         := "===" | "!==" | ">=" | "<=" | ">" | "<"
    operand    := STRING | NUMBER | FIELD

Left operands are always field names looked up in the state. A bare right
operand is a number when it parses as one and a field name otherwise.

A comparison whose field operand is missing (absent, ``None``, blank or an
empty selection) evaluates to True, so a rule never fires before the
fields it reads have been filled in.
"""

from __future__ import annotations

import functools
import math
import operator
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, NamedTuple, Union

from stepform.forms.validators import is_absent


class ConditionSyntaxError(ValueError):
    """Raised when a condition string cannot be parsed."""


_TOKEN_RE = re.compile(
    r"""
    (?P<op>===|!==|>=|<=|>|<)
    | (?P<logic>&&|\|\|)
    | (?P<paren>[()])
    | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
    | (?P<word>[^\s()'"<>=!&|]+)
    """,
    re.VERBOSE,
)

_WHITESPACE_RE = re.compile(r"\s+")


class Token(NamedTuple):
    kind: str
    text: str
    pos: int


def tokenize(expression: str) -> list[Token]:
    """Split an expression into tokens, longest operator first."""
    tokens: list[Token] = []
    pos = 0
    length = len(expression)
    while pos < length:
        ws = _WHITESPACE_RE.match(expression, pos)
        if ws:
            pos = ws.end()
            continue
        match = _TOKEN_RE.match(expression, pos)
        if match is None:
            raise ConditionSyntaxError(
                f"Unexpected character {expression[pos]!r} at position {pos} in {expression!r}"
            )
        kind = match.lastgroup or ""
        tokens.append(Token(kind, match.group(kind), pos))
        pos = match.end()
    return tokens


# --- AST ---


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


@dataclass(frozen=True)
class Literal:
    value: Any

    def resolve(self, state: Mapping[str, Any]) -> Any:
        return self.value


@dataclass(frozen=True)
class FieldRef:
    name: str

    def resolve(self, state: Mapping[str, Any]) -> Any:
        value = state.get(self.name)
        if is_absent(value):
            return MISSING
        return value


@dataclass(frozen=True)
class Comparison:
    left: FieldRef
    op: str
    right: Literal | FieldRef

    def evaluate(self, state: Mapping[str, Any]) -> bool:
        left = self.left.resolve(state)
        right = self.right.resolve(state)
        if left is MISSING or right is MISSING:
            return True
        if self.op == "===":
            return strict_equal(left, right)
        if self.op == "!==":
            return not strict_equal(left, right)
        a = to_number(left)
        b = to_number(right)
        if a is None or b is None:
            return False
        return _ORDERING[self.op](a, b)


@dataclass(frozen=True)
class And:
    parts: tuple[Node, ...]

    def evaluate(self, state: Mapping[str, Any]) -> bool:
        return all(part.evaluate(state) for part in self.parts)


@dataclass(frozen=True)
class Or:
    parts: tuple[Node, ...]

    def evaluate(self, state: Mapping[str, Any]) -> bool:
        return any(part.evaluate(state) for part in self.parts)


Node = Union[Comparison, And, Or]

_ORDERING = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}


def strict_equal(a: Any, b: Any) -> bool:
    """Equality without coercion: ``1`` never equals ``"1"`` or ``True``."""
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    return type(a) is type(b) and a == b


def to_number(value: Any) -> float | None:
    """Numeric coercion for ordering comparisons. None stands for NaN."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    if isinstance(value, str):
        return parse_number(value.strip())
    return None


def parse_number(text: str) -> int | float | None:
    """Parse a numeric literal; words such as ``nan`` or ``inf`` are not numbers."""
    if not text or "_" in text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    if re.fullmatch(r"[+-]?\d+", text):
        return int(text)
    return number


# --- Parser ---


class _Parser:
    def __init__(self, expression: str) -> None:
        self._expression = expression
        self._tokens = tokenize(expression)
        self._index = 0

    def parse(self) -> Node:
        if not self._tokens:
            raise ConditionSyntaxError("Empty condition")
        node = self._or()
        token = self._peek()
        if token is not None:
            raise self._error(f"Unexpected {token.text!r}", token)
        return node

    def _peek(self) -> Token | None:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _next(self) -> Token:
        token = self._peek()
        if token is None:
            raise ConditionSyntaxError(f"Unexpected end of condition {self._expression!r}")
        self._index += 1
        return token

    def _accept(self, kind: str, text: str) -> bool:
        token = self._peek()
        if token is not None and token.kind == kind and token.text == text:
            self._index += 1
            return True
        return False

    def _error(self, message: str, token: Token) -> ConditionSyntaxError:
        return ConditionSyntaxError(
            f"{message} at position {token.pos} in {self._expression!r}"
        )

    def _or(self) -> Node:
        parts = [self._and()]
        while self._accept("logic", "||"):
            parts.append(self._and())
        return parts[0] if len(parts) == 1 else Or(tuple(parts))

    def _and(self) -> Node:
        parts = [self._primary()]
        while self._accept("logic", "&&"):
            parts.append(self._primary())
        return parts[0] if len(parts) == 1 else And(tuple(parts))

    def _primary(self) -> Node:
        if self._accept("paren", "("):
            node = self._or()
            if not self._accept("paren", ")"):
                token = self._peek()
                if token is None:
                    raise ConditionSyntaxError(
                        f"Unclosed parenthesis in {self._expression!r}"
                    )
                raise self._error("Expected ')'", token)
            return node
        return self._comparison()

    def _comparison(self) -> Comparison:
        left = self._next()
        if left.kind != "word":
            raise self._error(f"Expected a field name, got {left.text!r}", left)
        op = self._next()
        if op.kind != "op":
            raise self._error(f"Expected a comparison operator, got {op.text!r}", op)
        right = self._next()
        if right.kind == "string":
            operand: Literal | FieldRef = Literal(_unquote(right.text))
        elif right.kind == "word":
            number = parse_number(right.text)
            operand = FieldRef(right.text) if number is None else Literal(number)
        else:
            raise self._error(f"Expected a value, got {right.text!r}", right)
        return Comparison(FieldRef(left.text), op.text, operand)


def _unquote(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text[1:-1])


@functools.lru_cache(maxsize=512)
def parse(expression: str) -> Node:
    """Parse an expression into an AST. Results are cached per expression string."""
    return _Parser(expression).parse()


def evaluate(expression: str, state: Mapping[str, Any]) -> bool:
    """Evaluate ``expression`` against a flat field-name to value mapping.

    Raises:
        ConditionSyntaxError: If the expression is malformed.
    """
    return parse(expression).evaluate(state)


def referenced_fields(expression: str) -> set[str]:
    """Return the field names an expression reads. Malformed expressions read nothing."""
    try:
        root = parse(expression)
    except ConditionSyntaxError:
        return set()

    names: set[str] = set()
    pending: list[Node] = [root]
    while pending:
        node = pending.pop()
        if isinstance(node, Comparison):
            names.add(node.left.name)
            if isinstance(node.right, FieldRef):
                names.add(node.right.name)
        else:
            pending.extend(node.parts)
    return names
