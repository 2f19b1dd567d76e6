"""Workflow engine: validation, planning and layer-by-layer execution."""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Dict, Mapping, Optional, Union

from .contracts import WorkflowDefinition, WorkflowInput, WorkflowResult
from .exceptions import MissingInputError, WorkflowValidationError
from .execute import StepCallbacks, StepExecutor
from .planner import build_execution_plan, preview_plan
from .registry import ToolRegistry
from .templates import resolve_template
from .validation import validate_workflow

logger = logging.getLogger(__name__)

DefinitionLike = Union[WorkflowDefinition, Mapping[str, Any]]


def coerce_input(value: Any, type_name: Optional[str]) -> Any:
    """Convert a string supplied on the command line to the declared type."""
    if not isinstance(value, str):
        return value
    if type_name == "number":
        text = value.strip()
        try:
            number = float(text)
        except ValueError:
            return value
        if not math.isfinite(number):
            return value
        if number.is_integer() and "." not in text and "e" not in text.lower():
            return int(number)
        return number
    if type_name == "boolean":
        return value in ("true", "1")
    return value


def seed_inputs(
    declared: Mapping[str, WorkflowInput], supplied: Optional[Mapping[str, Any]]
) -> Dict[str, Any]:
    """Merge caller values over declared defaults.

    Undeclared caller values are passed through untouched.
    """
    supplied = dict(supplied or {})
    missing = [
        key
        for key, schema in declared.items()
        if schema.required and key not in supplied and not schema.has_default
    ]
    if missing:
        raise MissingInputError(missing)

    effective: Dict[str, Any] = {}
    for key, schema in declared.items():
        if key in supplied:
            effective[key] = coerce_input(supplied[key], schema.type)
        elif schema.has_default:
            effective[key] = schema.default
    for key, value in supplied.items():
        effective.setdefault(key, value)
    return effective


class WorkflowEngine:
    """Runs workflow definitions against a tool registry."""

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    def validate(self, definition: DefinitionLike) -> WorkflowDefinition:
        """Return the parsed definition or raise with every problem found."""
        if not isinstance(definition, WorkflowDefinition):
            definition = WorkflowDefinition.model_validate(definition)
        errors = validate_workflow(definition, self.registry)
        if errors:
            raise WorkflowValidationError(errors)
        return definition

    async def execute_workflow(
        self,
        definition: DefinitionLike,
        inputs: Optional[Mapping[str, Any]] = None,
        *,
        db: Optional[str] = None,
        collection: Optional[str] = None,
        dry_run: bool = False,
        callbacks: Optional[StepCallbacks] = None,
    ) -> WorkflowResult:
        started = time.perf_counter()
        definition = self.validate(definition)
        effective_inputs = seed_inputs(definition.inputs, inputs)

        defaults = dict(definition.defaults)
        if db:
            defaults["db"] = db
        if collection:
            defaults["collection"] = collection

        plan = build_execution_plan(definition.steps)
        scope: Dict[str, Any] = {"inputs": effective_inputs, "defaults": defaults}

        if dry_run:
            logger.info(f"Dry run of workflow {definition.name}: {len(plan.layers)} layers")
            return WorkflowResult(
                plan=plan,
                inputs=effective_inputs,
                defaults=defaults,
                dry_run=True,
                preview=preview_plan(definition, plan, scope),
            )

        logger.info(
            f"Starting workflow {definition.name} "
            f"({len(definition.steps)} steps, {len(plan.layers)} layers)"
        )
        steps = {step.id: step for step in definition.steps}
        executor = StepExecutor(self.registry, callbacks, defaults)
        for index, layer in enumerate(plan.layers):
            logger.debug(f"Layer {index}: {', '.join(layer)}")
            await executor.execute_layer(layer, steps, scope)

        if definition.output is not None:
            output = resolve_template(definition.output, scope)
        else:
            output = {step_id: scope[step_id] for step_id in plan.step_ids if step_id in scope}

        total = round((time.perf_counter() - started) * 1000, 3)
        logger.info(f"Workflow {definition.name} finished in {total}ms")
        return WorkflowResult(
            output=output,
            steps=executor.records,
            tool_calls=executor.tool_calls,
            plan=plan,
            total_time_ms=total,
            inputs=effective_inputs,
            defaults=defaults,
        )


async def execute_workflow(
    definition: DefinitionLike,
    registry: ToolRegistry,
    inputs: Optional[Mapping[str, Any]] = None,
    **options: Any,
) -> WorkflowResult:
    """Convenience wrapper around :meth:`WorkflowEngine.execute_workflow`."""
    return await WorkflowEngine(registry).execute_workflow(definition, inputs, **options)
