"""Template resolution for ``{{ expression }}`` strings.

A template string is parsed once into a tuple of segments: plain text and
references. A string made of exactly one reference resolves to the native
value it points at; anything else is string interpolation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, List, Mapping, Optional, Set, Tuple, Union

from .constants import ITERATION_SCOPE_ROOTS, RESERVED_SCOPE_ROOTS
from .expressions import (
    MISSING,
    ExpressionError,
    Node,
    Path,
    evaluate,
    evaluate_expression,
    is_truthy,
    iter_paths,
    parse_expression,
    to_text,
)

TEMPLATE_RE = re.compile(r"\{\{\s*(.+?)\s*\}\}")


@dataclass(frozen=True)
class TextSegment:
    text: str


@dataclass(frozen=True)
class ReferenceSegment:
    source: str
    node: Optional[Node] = None
    error: Optional[str] = None


Segment = Union[TextSegment, ReferenceSegment]


@lru_cache(maxsize=2048)
def parse_template(text: str) -> Tuple[Segment, ...]:
    """Split ``text`` into literal and reference segments."""
    segments: List[Segment] = []
    pos = 0
    for match in TEMPLATE_RE.finditer(text):
        if match.start() > pos:
            segments.append(TextSegment(text[pos : match.start()]))
        source = match.group(1)
        try:
            segments.append(ReferenceSegment(source, node=parse_expression(source)))
        except ExpressionError as exc:
            segments.append(ReferenceSegment(source, error=str(exc)))
        pos = match.end()
    if pos < len(text):
        segments.append(TextSegment(text[pos:]))
    return tuple(segments)


def is_template(value: Any) -> bool:
    return isinstance(value, str) and TEMPLATE_RE.search(value) is not None


def _evaluate_reference(segment: ReferenceSegment, scope: Mapping[str, Any]) -> Any:
    if segment.node is None:
        return MISSING
    return evaluate(segment.node, scope)


def resolve(expression: str, scope: Mapping[str, Any]) -> Any:
    """Resolve a single string against ``scope``.

    Returns the literal unchanged when it has no marker, the native value
    when the whole string is one marker, and an interpolated string
    otherwise. Unknown paths resolve to ``MISSING``.
    """
    if "{{" not in expression:
        return expression
    segments = parse_template(expression)
    if len(segments) == 1 and isinstance(segments[0], ReferenceSegment):
        return _evaluate_reference(segments[0], scope)
    parts = []
    for segment in segments:
        if isinstance(segment, TextSegment):
            parts.append(segment.text)
        else:
            parts.append(to_text(_evaluate_reference(segment, scope)))
    return "".join(parts)


def unresolved_references(text: str, scope: Mapping[str, Any]) -> List[str]:
    """Sources of the references in ``text`` that ``scope`` cannot answer."""
    if "{{" not in text:
        return []
    return [
        segment.source
        for segment in parse_template(text)
        if isinstance(segment, ReferenceSegment)
        and _evaluate_reference(segment, scope) is MISSING
    ]


def resolve_template(value: Any, scope: Mapping[str, Any]) -> Any:
    """Recursively resolve every template in ``value``.

    Mapping entries that resolve to ``MISSING`` are dropped; list items
    become ``None``.
    """
    if isinstance(value, str):
        return resolve(value, scope)
    if isinstance(value, (list, tuple)):
        items = (resolve_template(item, scope) for item in value)
        return [None if item is MISSING else item for item in items]
    if isinstance(value, Mapping):
        resolved = {}
        for key, item in value.items():
            item = resolve_template(item, scope)
            if item is not MISSING:
                resolved[key] = item
        return resolved
    return value


def _walk_strings(value: Any):
    if isinstance(value, str):
        yield value
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _walk_strings(item)
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from _walk_strings(item)


def extract_references(value: Any) -> List[Path]:
    """Every path referenced from templates inside ``value``, in order."""
    paths: List[Path] = []
    for text in _walk_strings(value):
        if "{{" not in text:
            continue
        for segment in parse_template(text):
            if isinstance(segment, ReferenceSegment) and segment.node is not None:
                paths.extend(iter_paths(segment.node))
    return paths


def template_errors(value: Any) -> List[str]:
    """Syntax errors of all templates inside ``value``."""
    errors = []
    for text in _walk_strings(value):
        if "{{" not in text:
            continue
        for segment in parse_template(text):
            if isinstance(segment, ReferenceSegment) and segment.error:
                errors.append(segment.error)
    return errors


def condition_references(condition: Optional[str]) -> List[Path]:
    """Paths used by a step condition, with or without ``{{ }}`` markers."""
    if not condition:
        return []
    if is_template(condition):
        return extract_references(condition)
    try:
        return list(iter_paths(parse_expression(condition.strip())))
    except ExpressionError:
        return []


def condition_errors(condition: Optional[str]) -> List[str]:
    if not condition:
        return []
    if is_template(condition):
        return template_errors(condition)
    try:
        parse_expression(condition.strip())
    except ExpressionError as exc:
        return [str(exc)]
    return []


def dependency_roots(paths: List[Path]) -> Set[str]:
    """Root identifiers that name steps (workflow-level roots excluded)."""
    excluded = RESERVED_SCOPE_ROOTS | ITERATION_SCOPE_ROOTS
    return {path.root for path in paths if path.root not in excluded}


def extract_dependencies(value: Any) -> Set[str]:
    """Step ids referenced from templates inside ``value``."""
    return dependency_roots(extract_references(value))


def evaluate_condition(condition: str, scope: Mapping[str, Any]) -> bool:
    """Evaluate a skip condition; anything malformed counts as false."""
    text = condition.strip()
    if not is_template(text):
        return is_truthy(evaluate_expression(text, scope))
    segments = parse_template(text)
    if len(segments) == 1 and isinstance(segments[0], ReferenceSegment):
        return is_truthy(_evaluate_reference(segments[0], scope))
    return is_truthy(evaluate_expression(resolve(text, scope), scope))
