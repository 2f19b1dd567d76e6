"""Execution planning: layered topological ordering of workflow steps."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Sequence, Set

from .contracts import ExecutionPlan, Step, StepPreview, WorkflowDefinition
from .templates import is_template, resolve_template, unresolved_references
from .validation import step_references

logger = logging.getLogger(__name__)

_SECRET_MARKERS = ("key", "token", "secret", "password", "credential")
_PREVIEW_MAX_CHARS = 120
_PREVIEW_MAX_ITEMS = 10


def build_dependency_graph(steps: Sequence[Step]) -> Dict[str, Set[str]]:
    """Map each step id to the ids of the steps it reads from."""
    ids = {step.id for step in steps}
    return {
        step.id: {path.root for path in step_references(step) if path.root in ids}
        for step in steps
    }


def build_execution_plan(steps: Sequence[Step]) -> ExecutionPlan:
    """Group steps into layers by distance from the dependency roots.

    Each pass collects every unplaced step whose dependencies were all placed
    in earlier layers. Steps in one layer never depend on each other and keep
    their definition order.
    """
    graph = build_dependency_graph(steps)
    placed: Set[str] = set()
    remaining = [step.id for step in steps]
    layers: List[List[str]] = []

    while remaining:
        ready = [step_id for step_id in remaining if graph[step_id] <= placed]
        if not ready:
            raise ValueError(
                f"Cannot plan steps with unresolved dependencies: {', '.join(remaining)}"
            )
        layers.append(ready)
        placed.update(ready)
        remaining = [step_id for step_id in remaining if step_id not in placed]

    logger.debug(f"Planned {len(steps)} steps into {len(layers)} layers")
    return ExecutionPlan(layers=layers)


def _redact(key: str, value: Any) -> Any:
    if any(marker in key.lower() for marker in _SECRET_MARKERS) and isinstance(value, str):
        return "***"
    if isinstance(value, str) and len(value) > _PREVIEW_MAX_CHARS:
        return value[:_PREVIEW_MAX_CHARS] + "..."
    if isinstance(value, list):
        if len(value) > _PREVIEW_MAX_ITEMS:
            return f"[{len(value)} items]"
        return [_redact(key, item) for item in value]
    if isinstance(value, dict):
        return {k: _redact(k, v) for k, v in value.items()}
    return value


def _preview_value(value: Any, scope: Mapping[str, Any]) -> Any:
    """Resolve what the seeded scope can answer; keep the template otherwise."""
    if isinstance(value, str):
        if not is_template(value) or unresolved_references(value, scope):
            return value
        return resolve_template(value, scope)
    if isinstance(value, list):
        return [_preview_value(item, scope) for item in value]
    if isinstance(value, dict):
        return {k: _preview_value(v, scope) for k, v in value.items()}
    return value


def preview_plan(
    definition: WorkflowDefinition, plan: ExecutionPlan, scope: Mapping[str, Any]
) -> List[StepPreview]:
    """Side-effect free description of every step, in plan order."""
    previews = []
    for index, layer in enumerate(plan.layers):
        for step_id in layer:
            step = definition.step(step_id)
            inputs = _preview_value(dict(step.inputs), scope)
            previews.append(
                StepPreview(
                    id=step.id,
                    tool=step.tool,
                    name=step.name,
                    layer=index,
                    inputs={k: _redact(k, v) for k, v in inputs.items()},
                    condition=step.condition,
                )
            )
    return previews
