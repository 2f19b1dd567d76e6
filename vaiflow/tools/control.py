"""Control-flow tools that reshape data between workflow steps."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..contracts import ToolResult
from ..registry import ToolRegistry
from ..templates import evaluate_condition


class MergeArgs(BaseModel):
    arrays: List[Any] = Field(..., description="Arrays to concatenate")
    dedup: bool = Field(False, description="Drop items whose dedup field was already seen")
    dedup_field: Optional[str] = Field(None, description="Field used to detect duplicates")


class FilterArgs(BaseModel):
    array: List[Any] = Field(..., description="Items to filter")
    condition: str = Field(..., min_length=1, description="Expression without braces evaluated per item, e.g. item.score > 0.5")


class TransformArgs(BaseModel):
    array: List[Any] = Field(..., description="Items to reshape")
    fields: Optional[List[str]] = Field(None, description="Fields to keep")
    mapping: Optional[Dict[str, Any]] = Field(None, description="New field name to source field name")


def _summary(results: List[Any]) -> ToolResult:
    return ToolResult(
        structured={"results": results, "result_count": len(results)},
        text=f"{len(results)} items",
    )


def register_control_tools(registry: ToolRegistry) -> None:
    """Register merge, filter and transform; hidden from the agent loop."""

    @registry.tool(
        "merge",
        "Concatenate arrays, optionally removing duplicates by a field.",
        MergeArgs,
        category="control",
        agent_visible=False,
        default_keys=(),
    )
    async def merge(args: MergeArgs) -> ToolResult:
        merged: List[Any] = []
        for array in args.arrays:
            if isinstance(array, list):
                merged.extend(array)
        if args.dedup and args.dedup_field:
            seen = set()
            unique = []
            for item in merged:
                key = item.get(args.dedup_field) if isinstance(item, dict) else item
                marker = repr(key)
                if marker in seen:
                    continue
                seen.add(marker)
                unique.append(item)
            merged = unique
        return _summary(merged)

    @registry.tool(
        "filter",
        "Keep the items for which a condition holds.",
        FilterArgs,
        category="control",
        agent_visible=False,
        default_keys=(),
    )
    async def filter_items(args: FilterArgs) -> ToolResult:
        kept = [
            item
            for index, item in enumerate(args.array)
            if evaluate_condition(args.condition, {"item": item, "index": index})
        ]
        return _summary(kept)

    @registry.tool(
        "transform",
        "Pick or rename fields of every item.",
        TransformArgs,
        category="control",
        agent_visible=False,
        default_keys=(),
    )
    async def transform(args: TransformArgs) -> ToolResult:
        if args.fields:
            results = [
                {f: item[f] for f in args.fields if f in item} if isinstance(item, dict) else item
                for item in args.array
            ]
        elif args.mapping:
            results = [
                {
                    new: item[old] if isinstance(old, str) and old in item else old
                    for new, old in args.mapping.items()
                }
                if isinstance(item, dict)
                else item
                for item in args.array
            ]
        else:
            results = list(args.array)
        return _summary(results)
