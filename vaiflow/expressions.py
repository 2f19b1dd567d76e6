"""Restricted expression language for templates and step conditions.

Expressions are tokenized and parsed into a small node tree which is then
evaluated against a scope mapping. There is no ``eval``: only paths,
literals, comparisons, ``!``/``&&``/``||`` and ``+`` are understood.

Grammar::

    expr    := or
    or      := and ('||' and)*
    and     := not ('&&' not)*
    not     := '!' not | compare
    compare := sum (('==='|'!=='|'=='|'!='|'>='|'<='|'>'|'<') sum)?
    sum     := primary ('+' primary)*
    primary := '(' expr ')' | string | number | keyword | path
    path    := ident ('[' int ']')? ('.' ident ('[' int ']')?)*
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Iterator, List, Mapping, Optional, Sequence, Tuple


class _Missing:
    """Sentinel for a value that could not be resolved."""

    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


class ExpressionError(ValueError):
    """Raised for malformed expressions."""


_TOKEN_RE = re.compile(
    r"""
    (?P<number>-?\d+(?:\.\d+)?)
    | (?P<string>'[^']*'|"[^"]*")
    | (?P<op>===|!==|==|!=|>=|<=|&&|\|\||[><!()+])
    | (?P<path>[A-Za-z_][A-Za-z0-9_]*(?:\[\d+\])?(?:\.[A-Za-z_][A-Za-z0-9_]*(?:\[\d+\])?)*)
    """,
    re.VERBOSE,
)
_SEGMENT_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)(?:\[(\d+)\])?$")
_KEYWORDS = {"true": True, "false": False, "null": None, "undefined": MISSING}
_COMPARISONS = ("===", "!==", "==", "!=", ">=", "<=", ">", "<")


# ----------------------------------------------------------------------
# Nodes


@dataclass(frozen=True)
class Segment:
    key: str
    index: Optional[int] = None

    def __str__(self) -> str:
        return self.key if self.index is None else f"{self.key}[{self.index}]"


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Path:
    segments: Tuple[Segment, ...]

    @property
    def root(self) -> str:
        return self.segments[0].key

    def __str__(self) -> str:
        return ".".join(str(s) for s in self.segments)


@dataclass(frozen=True)
class Not:
    operand: Any


@dataclass(frozen=True)
class Compare:
    op: str
    left: Any
    right: Any


@dataclass(frozen=True)
class Logical:
    op: str
    operands: Tuple[Any, ...]


@dataclass(frozen=True)
class Concat:
    operands: Tuple[Any, ...]


Node = Any


# ----------------------------------------------------------------------
# Parsing


def _tokenize(text: str) -> List[Tuple[str, str]]:
    tokens: List[Tuple[str, str]] = []
    pos = 0
    while pos < len(text):
        if text[pos].isspace():
            pos += 1
            continue
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise ExpressionError(f'Unexpected character {text[pos]!r} in "{text}"')
        kind = match.lastgroup or ""
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


def parse_path(text: str) -> Path:
    """Parse ``a.b[0].c`` into a :class:`Path`."""
    segments = []
    for part in text.strip().split("."):
        match = _SEGMENT_RE.match(part)
        if match is None:
            raise ExpressionError(f'Invalid expression segment: "{part}" in "{text}"')
        index = int(match.group(2)) if match.group(2) is not None else None
        segments.append(Segment(match.group(1), index))
    return Path(tuple(segments))


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0

    def _peek(self) -> Optional[Tuple[str, str]]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _accept(self, *ops: str) -> Optional[str]:
        token = self._peek()
        if token is not None and token[0] == "op" and token[1] in ops:
            self.pos += 1
            return token[1]
        return None

    def parse(self) -> Node:
        if not self.tokens:
            raise ExpressionError("Empty expression")
        node = self._or()
        if self._peek() is not None:
            raise ExpressionError(
                f'Unexpected token "{self._peek()[1]}" in "{self.text}"'
            )
        return node

    def _or(self) -> Node:
        operands = [self._and()]
        while self._accept("||"):
            operands.append(self._and())
        return operands[0] if len(operands) == 1 else Logical("||", tuple(operands))

    def _and(self) -> Node:
        operands = [self._not()]
        while self._accept("&&"):
            operands.append(self._not())
        return operands[0] if len(operands) == 1 else Logical("&&", tuple(operands))

    def _not(self) -> Node:
        if self._accept("!"):
            return Not(self._not())
        return self._compare()

    def _compare(self) -> Node:
        left = self._sum()
        op = self._accept(*_COMPARISONS)
        if op is None:
            return left
        return Compare(op, left, self._sum())

    def _sum(self) -> Node:
        operands = [self._primary()]
        while self._accept("+"):
            operands.append(self._primary())
        return operands[0] if len(operands) == 1 else Concat(tuple(operands))

    def _primary(self) -> Node:
        token = self._peek()
        if token is None:
            raise ExpressionError(f'Unexpected end of expression "{self.text}"')
        kind, value = token
        if kind == "op" and value == "(":
            self.pos += 1
            node = self._or()
            if not self._accept(")"):
                raise ExpressionError(f'Missing ")" in "{self.text}"')
            return node
        self.pos += 1
        if kind == "number":
            return Literal(float(value) if "." in value else int(value))
        if kind == "string":
            return Literal(value[1:-1])
        if kind == "path":
            if value in _KEYWORDS:
                return Literal(_KEYWORDS[value])
            return parse_path(value)
        raise ExpressionError(f'Unexpected token "{value}" in "{self.text}"')


@lru_cache(maxsize=1024)
def parse_expression(text: str) -> Node:
    """Parse ``text`` into an expression tree (cached)."""
    return _Parser(text).parse()


def iter_paths(node: Node) -> Iterator[Path]:
    """Yield every :class:`Path` referenced by ``node``."""
    if isinstance(node, Path):
        yield node
    elif isinstance(node, Not):
        yield from iter_paths(node.operand)
    elif isinstance(node, Compare):
        yield from iter_paths(node.left)
        yield from iter_paths(node.right)
    elif isinstance(node, (Logical, Concat)):
        for operand in node.operands:
            yield from iter_paths(operand)


# ----------------------------------------------------------------------
# Evaluation


def is_truthy(value: Any) -> bool:
    """Condition truthiness: empty lists and objects count as true, NaN as false."""
    if value is MISSING or value is None:
        return False
    if isinstance(value, (list, tuple, dict)):
        return True
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def to_text(value: Any) -> str:
    """Render ``value`` for string interpolation."""
    if value is MISSING:
        return ""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def _lookup(container: Any, key: str) -> Any:
    if isinstance(container, Mapping):
        return container.get(key, MISSING)
    if key == "length" and isinstance(container, (list, tuple, str)):
        return len(container)
    return MISSING


def resolve_path(segments: Sequence[Segment], scope: Mapping[str, Any]) -> Any:
    """Walk ``segments`` through ``scope``; ``MISSING`` when any hop is absent."""
    current: Any = scope
    for segment in segments:
        current = _lookup(current, segment.key)
        if current is MISSING or current is None:
            return current
        if segment.index is not None:
            if not isinstance(current, (list, tuple)) or segment.index >= len(current):
                return MISSING
            current = current[segment.index]
    return current


def _equal(left: Any, right: Any, strict: bool) -> bool:
    if not strict:
        left = None if left is MISSING else left
        right = None if right is MISSING else right
        return left == right
    if _is_number(left) and _is_number(right):
        return left == right
    return type(left) is type(right) and left == right


def _compare(op: str, left: Any, right: Any) -> bool:
    if op in ("===", "=="):
        return _equal(left, right, strict=op == "===")
    if op in ("!==", "!="):
        return not _equal(left, right, strict=op == "!==")
    if left is MISSING or right is MISSING or left is None or right is None:
        return False
    try:
        if op == ">":
            return left > right
        if op == "<":
            return left < right
        if op == ">=":
            return left >= right
        return left <= right
    except TypeError:
        return False


def evaluate(node: Node, scope: Mapping[str, Any]) -> Any:
    """Evaluate a parsed expression against ``scope``."""
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, Path):
        return resolve_path(node.segments, scope)
    if isinstance(node, Not):
        return not is_truthy(evaluate(node.operand, scope))
    if isinstance(node, Compare):
        return _compare(node.op, evaluate(node.left, scope), evaluate(node.right, scope))
    if isinstance(node, Logical):
        value: Any = MISSING
        for operand in node.operands:
            value = evaluate(operand, scope)
            if is_truthy(value) == (node.op == "||"):
                return value
        return value
    if isinstance(node, Concat):
        values = [evaluate(operand, scope) for operand in node.operands]
        if all(_is_number(v) for v in values):
            return sum(values)
        return "".join("" if v is None else to_text(v) for v in values)
    raise ExpressionError(f"Unknown expression node: {node!r}")


def evaluate_expression(text: str, scope: Mapping[str, Any]) -> Any:
    """Parse and evaluate ``text``; malformed expressions resolve to ``MISSING``."""
    try:
        node = parse_expression(text.strip())
    except ExpressionError:
        return MISSING
    return evaluate(node, scope)
