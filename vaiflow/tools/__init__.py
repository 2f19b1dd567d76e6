"""Built-in tools shared by workflows and agent chat."""

from __future__ import annotations

from typing import Optional

from ..registry import ToolRegistry
from .chunking import STRATEGIES, chunk_text
from .control import register_control_tools
from .reference import register_reference_tools
from .services import ToolServices
from .vai import register_vai_tools


def build_default_registry(services: Optional[ToolServices] = None) -> ToolRegistry:
    """Registry with every built-in tool bound to ``services``."""
    registry = ToolRegistry()
    register_vai_tools(registry, services or ToolServices())
    register_reference_tools(registry)
    register_control_tools(registry)
    return registry


__all__ = [
    "STRATEGIES",
    "ToolServices",
    "build_default_registry",
    "chunk_text",
]
