"""Language model providers."""

from __future__ import annotations

from typing import Optional

from ..config import LLMConfig
from .base import (
    BaseLLMProvider,
    LLMProvider,
    LLMResponse,
    LLMToolCall,
    Message,
    StreamItem,
    TokenUsage,
    ToolFormat,
    collect_text,
)


def create_llm_provider(config: Optional[LLMConfig]) -> Optional[LLMProvider]:
    """Return a provider for ``config`` or ``None`` when none is configured.

    The pydantic-ai adapter is imported only on this branch.
    """
    if config is None or not config.provider:
        return None
    from .pydantic_ai_provider import build_provider

    return build_provider(config.provider, config.model)


__all__ = [
    "BaseLLMProvider",
    "LLMProvider",
    "LLMResponse",
    "LLMToolCall",
    "Message",
    "StreamItem",
    "TokenUsage",
    "ToolFormat",
    "collect_text",
    "create_llm_provider",
]
