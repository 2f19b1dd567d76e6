"""Pydantic models describing registered tools."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..constants import WORKFLOW_INJECTABLE_DEFAULTS
from ..contracts import ToolResult

ToolHandler = Callable[[Any], Awaitable[ToolResult]]


class ParamDescriptor(BaseModel):
    """Describes a single argument accepted by a tool."""

    name: str
    type_ref: str = Field(..., description="JSON schema type or reference")
    required: bool = True
    description: Optional[str] = None
    default_json: Optional[Any] = None


class ToolSpec(BaseModel):
    """A named operation with a declared argument model."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str
    description: str
    args_model: Type[BaseModel]
    handler: ToolHandler
    category: str = "vai"
    agent_visible: bool = True
    default_keys: Tuple[str, ...] = WORKFLOW_INJECTABLE_DEFAULTS

    @field_validator("name")
    @classmethod
    def _ensure_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("tool name must be a non-empty string")
        return v

    def input_schema(self) -> Dict[str, Any]:
        """JSON schema for the arguments, trimmed for LLM tool definitions.

        Fields that carry a default are never listed as required.
        """
        schema = self.args_model.model_json_schema()
        schema.pop("$schema", None)
        schema.pop("title", None)
        properties = schema.get("properties", {})
        for prop in properties.values():
            prop.pop("title", None)
        required = [
            key for key in schema.get("required", []) if "default" not in properties.get(key, {})
        ]
        if required:
            schema["required"] = required
        else:
            schema.pop("required", None)
        return schema

    def argument_names(self) -> List[str]:
        """Public (alias-aware) names of every argument."""
        return [
            field.alias or name for name, field in self.args_model.model_fields.items()
        ]

    def required_arguments(self) -> List[str]:
        return [
            field.alias or name
            for name, field in self.args_model.model_fields.items()
            if field.is_required()
        ]

    def parameters(self) -> List[ParamDescriptor]:
        schema = self.input_schema()
        required = set(schema.get("required", []))
        params = []
        for name, prop in schema.get("properties", {}).items():
            params.append(
                ParamDescriptor(
                    name=name,
                    type_ref=str(prop.get("type") or prop.get("$ref") or "any"),
                    required=name in required,
                    description=prop.get("description"),
                    default_json=prop.get("default"),
                )
            )
        return params
