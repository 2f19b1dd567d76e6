"""Step execution for vaiflow workflows."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, MutableMapping, Optional, Sequence

from .constants import WORKFLOW_INJECTABLE_DEFAULTS
from .contracts import Step, StepRecord, ToolCall
from .exceptions import StepExecutionError
from .expressions import MISSING
from .registry import ToolRegistry
from .templates import evaluate_condition, resolve_template

logger = logging.getLogger(__name__)

SKIP_CONDITION_NOT_MET = "condition not met"


@dataclass
class StepCallbacks:
    """Progress hooks; each may be a plain function or a coroutine function."""

    on_step_start: Optional[Callable[[str, Step], Any]] = None
    on_step_complete: Optional[Callable[[str, Any, float], Any]] = None
    on_step_skip: Optional[Callable[[str, str], Any]] = None
    on_step_error: Optional[Callable[[str, BaseException], Any]] = None


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


class StepExecutor:
    """Runs the steps of one plan layer concurrently against a shared scope.

    Each step writes only ``scope[step_id]``, so steps of the same layer never
    observe each other. Tool calls are logged in the order they were issued.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        callbacks: Optional[StepCallbacks] = None,
        defaults: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._registry = registry
        self._callbacks = callbacks or StepCallbacks()
        self._defaults = dict(defaults or {})
        self._calls: List[Optional[ToolCall]] = []
        self.records: List[StepRecord] = []

    @property
    def tool_calls(self) -> List[ToolCall]:
        return [call for call in self._calls if call is not None]

    async def _notify(self, name: str, *args: Any) -> None:
        callback = getattr(self._callbacks, name)
        if callback is None:
            return
        result = callback(*args)
        if inspect.isawaitable(result):
            await result

    async def _invoke(self, step: Step, arguments: Dict[str, Any]) -> Any:
        arguments = self._registry.inject_defaults(
            step.tool, arguments, self._defaults, WORKFLOW_INJECTABLE_DEFAULTS
        )
        slot = len(self._calls)
        self._calls.append(None)
        started = time.perf_counter()
        try:
            result = await self._registry.invoke(step.tool, arguments)
        except Exception as exc:
            self._calls[slot] = ToolCall(
                name=step.tool,
                arguments=arguments,
                error=str(exc),
                elapsed_ms=_elapsed_ms(started),
                step_id=step.id,
            )
            raise
        self._calls[slot] = ToolCall(
            name=step.tool,
            arguments=arguments,
            result=result.structured,
            text=result.text,
            elapsed_ms=_elapsed_ms(started),
            step_id=step.id,
        )
        return result.structured

    async def _run(self, step: Step, scope: Mapping[str, Any]) -> Any:
        if not step.for_each:
            return await self._invoke(step, resolve_template(step.inputs, scope))

        items = resolve_template(step.for_each, scope)
        if items is MISSING or not isinstance(items, list):
            raise ValueError(f'forEach in step "{step.id}" did not resolve to an array')
        results = []
        for index, item in enumerate(items):
            item_scope = {**scope, "item": item, "index": index}
            results.append(await self._invoke(step, resolve_template(step.inputs, item_scope)))
        return {"results": results, "count": len(results)}

    async def execute_step(self, step: Step, scope: MutableMapping[str, Any]) -> StepRecord:
        started = time.perf_counter()

        if step.condition and not evaluate_condition(step.condition, scope):
            logger.debug(f"Skipping step {step.id}: {SKIP_CONDITION_NOT_MET}")
            scope[step.id] = {"skipped": True}
            await self._notify("on_step_skip", step.id, SKIP_CONDITION_NOT_MET)
            return StepRecord(
                id=step.id,
                tool=step.tool,
                status="skipped",
                skip_reason=SKIP_CONDITION_NOT_MET,
                duration_ms=_elapsed_ms(started),
            )

        await self._notify("on_step_start", step.id, step)
        try:
            output = await self._run(step, scope)
        except Exception as exc:
            duration = _elapsed_ms(started)
            await self._notify("on_step_error", step.id, exc)
            if not step.continue_on_error:
                raise StepExecutionError(step.id, str(exc)) from exc
            logger.debug(f"Step {step.id} failed, continuing: {exc}")
            scope[step.id] = {"output": None, "error": str(exc)}
            return StepRecord(
                id=step.id, tool=step.tool, status="failed", error=str(exc), duration_ms=duration
            )

        duration = _elapsed_ms(started)
        scope[step.id] = {"output": output}
        await self._notify("on_step_complete", step.id, output, duration)
        logger.debug(f"Step {step.id} completed in {duration}ms")
        return StepRecord(
            id=step.id, tool=step.tool, status="completed", output=output, duration_ms=duration
        )

    async def execute_layer(
        self, layer: Sequence[str], steps: Mapping[str, Step], scope: MutableMapping[str, Any]
    ) -> List[StepRecord]:
        """Run every step of ``layer`` and wait until all of them settled.

        The first failure in layer order is raised only after the whole
        layer finished.
        """
        outcomes = await asyncio.gather(
            *(self.execute_step(steps[step_id], scope) for step_id in layer),
            return_exceptions=True,
        )
        failure: Optional[BaseException] = None
        records = []
        for step_id, outcome in zip(layer, outcomes):
            if isinstance(outcome, BaseException):
                failure = failure or outcome
                records.append(
                    StepRecord(
                        id=step_id,
                        tool=steps[step_id].tool,
                        status="failed",
                        error=getattr(outcome, "reason", str(outcome)),
                    )
                )
            else:
                records.append(outcome)
        self.records.extend(records)
        if failure is not None:
            logger.error(f"Layer {list(layer)} aborted: {failure}")
            raise failure
        return records
