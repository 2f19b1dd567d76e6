"""Tool registry: the single map from tool name to executable operation.

Workflows and the agent loop both go through :class:`ToolRegistry`. The
registry is populated once and only read afterwards, so concurrent steps of
a layer may invoke tools in parallel.
"""

from __future__ import annotations

import json
import logging
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Literal,
    Mapping,
    Optional,
    Sequence,
    Type,
)

from pydantic import BaseModel, ValidationError

from ..constants import INJECTABLE_DEFAULTS, WORKFLOW_INJECTABLE_DEFAULTS
from ..contracts import ToolResult
from ..exceptions import ToolArgumentError, UnknownToolError
from .models import ParamDescriptor, ToolHandler, ToolSpec

logger = logging.getLogger(__name__)

ToolFormat = Literal["anthropic", "openai"]


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ())) or "arguments"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


class ToolRegistry:
    """Closed mapping of tool names to :class:`ToolSpec` entries."""

    def __init__(self, tools: Iterable[ToolSpec] = ()) -> None:
        self._tools: Dict[str, ToolSpec] = {}
        for spec in tools:
            self.register(spec)

    def register(self, spec: ToolSpec) -> ToolSpec:
        """Add ``spec``; tool names must be unique."""
        if spec.name in self._tools:
            raise ValueError(f'Tool "{spec.name}" is already registered')
        self._tools[spec.name] = spec
        logger.debug(f"Registered tool {spec.name} ({spec.category})")
        return spec

    def tool(
        self,
        name: str,
        description: str,
        args_model: Type[BaseModel],
        *,
        category: str = "vai",
        agent_visible: bool = True,
        default_keys: Sequence[str] = WORKFLOW_INJECTABLE_DEFAULTS,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator registering an async handler under ``name``."""

        def decorator(handler: ToolHandler) -> ToolHandler:
            self.register(
                ToolSpec(
                    name=name,
                    description=description,
                    args_model=args_model,
                    handler=handler,
                    category=category,
                    agent_visible=agent_visible,
                    default_keys=tuple(default_keys),
                )
            )
            return handler

        return decorator

    # ------------------------------------------------------------------
    # Lookup
    def get(self, name: str) -> ToolSpec:
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name, self._tools) from None

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolSpec]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> List[str]:
        return list(self._tools)

    def input_schema(self, name: str) -> Dict[str, Any]:
        return self.get(name).input_schema()

    def required_arguments(self, name: str) -> List[str]:
        return self.get(name).required_arguments()

    def accepts(self, name: str, argument: str) -> bool:
        spec = self.get(name)
        return argument in spec.argument_names() or argument in spec.args_model.model_fields

    def parameters(self, name: str) -> List[ParamDescriptor]:
        return self.get(name).parameters()

    # ------------------------------------------------------------------
    # Provider schemas
    def definitions(
        self, format: ToolFormat = "openai", include_hidden: bool = False
    ) -> List[Dict[str, Any]]:
        """Tool definitions in the shape a provider expects.

        ``anthropic`` yields ``{name, description, input_schema}``;
        ``openai`` yields ``{type: "function", function: {...}}``.
        """
        definitions = []
        for spec in self._tools.values():
            if not spec.agent_visible and not include_hidden:
                continue
            schema = spec.input_schema()
            if format == "anthropic":
                definitions.append(
                    {"name": spec.name, "description": spec.description, "input_schema": schema}
                )
            else:
                definitions.append(
                    {
                        "type": "function",
                        "function": {
                            "name": spec.name,
                            "description": spec.description,
                            "parameters": schema,
                        },
                    }
                )
        return definitions

    # ------------------------------------------------------------------
    # Invocation
    def inject_defaults(
        self,
        name: str,
        arguments: Mapping[str, Any],
        defaults: Mapping[str, Any],
        keys: Sequence[str] = INJECTABLE_DEFAULTS,
    ) -> Dict[str, Any]:
        """Fill ``keys`` from ``defaults`` where the caller omitted them.

        Only a key that is absent counts as omitted: an explicit empty string
        or ``None`` supplied by the caller is kept. Keys outside the tool's
        ``default_keys`` are never filled.
        """
        merged = dict(arguments)
        spec = self._tools.get(name)
        if spec is None:
            return merged
        for key in keys:
            if key in merged or defaults.get(key) is None:
                continue
            if key in spec.default_keys and self.accepts(name, key):
                merged[key] = defaults[key]
        return merged

    async def invoke(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> ToolResult:
        """Validate ``arguments`` against the tool's model and run it."""
        spec = self.get(name)
        try:
            args = spec.args_model.model_validate(dict(arguments or {}))
        except ValidationError as exc:
            raise ToolArgumentError(name, _format_validation_error(exc)) from exc
        result = await spec.handler(args)
        if isinstance(result, ToolResult):
            return result
        return ToolResult(structured=result, text=json.dumps(result, default=str))


__all__ = [
    "ParamDescriptor",
    "ToolFormat",
    "ToolHandler",
    "ToolRegistry",
    "ToolSpec",
]
