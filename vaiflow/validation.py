"""Structural validation of workflow definitions.

``validate_workflow`` never executes tools and never mutates the
definition; it returns every problem it can find so that users can fix a
workflow in one pass.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Set

from .constants import INPUT_TYPES, ITERATION_SCOPE_ROOTS, RESERVED_SCOPE_ROOTS
from .contracts import Step, WorkflowDefinition
from .expressions import Path
from .registry import ToolRegistry
from .templates import condition_errors, condition_references, extract_references, template_errors

logger = logging.getLogger(__name__)


def step_references(step: Step) -> List[Path]:
    """All paths a step reads from: inputs, condition and ``forEach``."""
    paths = extract_references(step.inputs)
    paths.extend(condition_references(step.condition))
    if step.for_each:
        paths.extend(extract_references(step.for_each))
    return paths


def _check_references(
    step: Step,
    position: int,
    definition: WorkflowDefinition,
    first_position: Dict[str, int],
) -> List[str]:
    errors: List[str] = []
    prefix = f'Step "{step.id}"'
    reported: Set[str] = set()

    for message in template_errors(step.inputs) + condition_errors(step.condition):
        errors.append(f"{prefix}: invalid template expression: {message}")
    if step.for_each:
        for message in template_errors(step.for_each):
            errors.append(f"{prefix}: invalid forEach expression: {message}")

    for path in step_references(step):
        root = path.root
        if root == "inputs":
            if len(path.segments) > 1:
                name = path.segments[1].key
                if name not in definition.inputs and f"inputs.{name}" not in reported:
                    reported.add(f"inputs.{name}")
                    errors.append(f'{prefix}: references undeclared input "{name}"')
            continue
        if root == "defaults":
            continue
        if root in ITERATION_SCOPE_ROOTS:
            if not step.for_each and root not in reported:
                reported.add(root)
                errors.append(f'{prefix}: "{root}" is only available in forEach steps')
            continue
        if root in reported:
            continue
        reported.add(root)
        if root == step.id:
            errors.append(f"{prefix}: references itself")
        elif root not in first_position:
            errors.append(f'{prefix}: references unknown step "{root}"')
        elif first_position[root] > position:
            errors.append(f'{prefix}: references step "{root}" before it is defined')
    return errors


def detect_cycles(steps: List[Step]) -> List[str]:
    """Depth-first cycle search over step references.

    A step reached again while still marked as visiting closes a cycle.
    """
    ids = {step.id for step in steps}
    graph: Dict[str, List[str]] = {}
    for step in steps:
        deps: List[str] = []
        for path in step_references(step):
            if path.root in ids and path.root not in deps:
                deps.append(path.root)
        graph.setdefault(step.id, deps)

    errors: List[str] = []
    visiting, done = set(), set()

    def visit(node: str, trail: List[str]) -> None:
        visiting.add(node)
        trail.append(node)
        for dep in graph.get(node, []):
            if dep in visiting:
                cycle = trail[trail.index(dep) :] + [dep]
                errors.append(f"Circular dependency: {' -> '.join(cycle)}")
            elif dep not in done:
                visit(dep, trail)
        trail.pop()
        visiting.discard(node)
        done.add(node)

    for step_id in graph:
        if step_id not in done:
            visit(step_id, [])
    return errors


def validate_workflow(definition: WorkflowDefinition, registry: ToolRegistry) -> List[str]:
    """Return human-readable errors for ``definition`` (empty when valid)."""
    errors: List[str] = []

    if not definition.name or not definition.name.strip():
        errors.append('Workflow must have a "name" string')
    if not definition.steps:
        errors.append('Workflow must have a non-empty "steps" array')
    if errors:
        return errors

    for key, schema in definition.inputs.items():
        if schema.type is not None and schema.type not in INPUT_TYPES:
            errors.append(
                f'Input "{key}" has invalid type "{schema.type}" '
                f"(must be {', '.join(INPUT_TYPES)})"
            )

    first_position: Dict[str, int] = {}
    duplicates: List[str] = []
    for position, step in enumerate(definition.steps):
        if not step.id:
            errors.append(f'Step {position}: must have a non-empty "id"')
            continue
        if step.id in RESERVED_SCOPE_ROOTS | ITERATION_SCOPE_ROOTS:
            errors.append(f'Step "{step.id}": id is reserved')
        if step.id in first_position:
            if step.id not in duplicates:
                duplicates.append(step.id)
        else:
            first_position[step.id] = position
    for step_id in duplicates:
        errors.append(f'Duplicate step id: "{step_id}"')

    for step in definition.steps:
        if step.tool not in registry:
            errors.append(
                f'Step "{step.id}": unknown tool "{step.tool}" '
                f"(available: {', '.join(registry.names())})"
            )
            continue
        default_keys = registry.get(step.tool).default_keys
        injectable = {k for k in default_keys if definition.defaults.get(k) is not None}
        for argument in registry.required_arguments(step.tool):
            if argument not in step.inputs and argument not in injectable:
                errors.append(f'Step "{step.id}": missing required input "{argument}"')

    for position, step in enumerate(definition.steps):
        if step.id:
            errors.extend(_check_references(step, position, definition, first_position))

    errors.extend(detect_cycles([s for s in definition.steps if s.id]))

    if errors:
        logger.debug(f"Workflow {definition.name} failed validation with {len(errors)} errors")
    return errors
