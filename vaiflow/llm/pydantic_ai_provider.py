"""LLM provider backed by pydantic-ai's direct model request API."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from pydantic_ai.direct import model_request, model_request_stream
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    PartDeltaEvent,
    PartStartEvent,
    SystemPromptPart,
    TextPart,
    TextPartDelta,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models import ModelRequestParameters
from pydantic_ai.tools import ToolDefinition

from .base import BaseLLMProvider, LLMResponse, LLMToolCall, Message, StreamItem, TokenUsage

logger = logging.getLogger(__name__)


def _usage(usage: Any) -> TokenUsage:
    if usage is None:
        return TokenUsage()
    input_tokens = getattr(usage, "input_tokens", None) or getattr(usage, "request_tokens", 0)
    output_tokens = getattr(usage, "output_tokens", None) or getattr(usage, "response_tokens", 0)
    return TokenUsage(input_tokens=input_tokens or 0, output_tokens=output_tokens or 0)


def to_model_messages(messages: Sequence[Message]) -> List[ModelMessage]:
    """Convert neutral role/content dicts into pydantic-ai messages.

    Consecutive system, user and tool messages share one ``ModelRequest``.
    """
    history: List[ModelMessage] = []
    pending: List[Any] = []

    def flush() -> None:
        if pending:
            history.append(ModelRequest(parts=list(pending)))
            pending.clear()

    for message in messages:
        role = message.get("role")
        if role == "system":
            pending.append(SystemPromptPart(content=message.get("content", "")))
        elif role == "user":
            pending.append(UserPromptPart(content=message.get("content", "")))
        elif role == "tool":
            extra = {"tool_call_id": message["tool_call_id"]} if message.get("tool_call_id") else {}
            pending.append(
                ToolReturnPart(
                    tool_name=message.get("name", ""),
                    content=message.get("content", ""),
                    **extra,
                )
            )
        elif role == "assistant":
            flush()
            parts: List[Any] = []
            if message.get("content"):
                parts.append(TextPart(content=message["content"]))
            for call in message.get("tool_calls") or []:
                parts.append(
                    ToolCallPart(
                        tool_name=call["name"],
                        args=call.get("arguments") or {},
                        tool_call_id=call["id"],
                    )
                )
            history.append(ModelResponse(parts=parts))
        else:
            raise ValueError(f"Unsupported message role: {role!r}")
    flush()
    return history


def to_tool_definitions(tools: Sequence[Dict[str, Any]]) -> List[ToolDefinition]:
    """Accept both provider schema shapes produced by the tool registry."""
    definitions = []
    for tool in tools:
        if tool.get("type") == "function":
            fn = tool["function"]
            name, description, schema = fn["name"], fn.get("description"), fn.get("parameters")
        else:
            name, description, schema = tool["name"], tool.get("description"), tool.get("input_schema")
        definitions.append(
            ToolDefinition(
                name=name,
                description=description,
                parameters_json_schema=schema or {"type": "object", "properties": {}},
            )
        )
    return definitions


class PydanticAIProvider(BaseLLMProvider):
    """Talks to any model pydantic-ai knows as ``"<provider>:<model>"``."""

    def __init__(self, provider: str, model: str) -> None:
        super().__init__(model)
        self.name = provider

    @property
    def model_id(self) -> str:
        return f"{self.name}:{self.model}"

    async def stream_chat(self, messages: Sequence[Message]) -> AsyncIterator[StreamItem]:
        async with model_request_stream(self.model_id, to_model_messages(messages)) as stream:
            async for event in stream:
                if isinstance(event, PartStartEvent) and isinstance(event.part, TextPart):
                    if event.part.content:
                        yield event.part.content
                elif isinstance(event, PartDeltaEvent) and isinstance(event.delta, TextPartDelta):
                    if event.delta.content_delta:
                        yield event.delta.content_delta
            yield _usage(stream.usage())

    async def chat_with_tools(
        self, messages: Sequence[Message], tools: Sequence[Dict[str, Any]]
    ) -> LLMResponse:
        response = await model_request(
            self.model_id,
            to_model_messages(messages),
            model_request_parameters=ModelRequestParameters(
                function_tools=to_tool_definitions(tools), allow_text_output=True
            ),
        )
        usage = _usage(response.usage)
        text = "".join(part.content for part in response.parts if isinstance(part, TextPart))
        calls = [
            LLMToolCall(id=part.tool_call_id, name=part.tool_name, arguments=part.args_as_dict())
            for part in response.parts
            if isinstance(part, ToolCallPart)
        ]
        logger.debug(f"{self.model_id} answered with {len(calls)} tool calls")
        if calls:
            return LLMResponse(type="tool_calls", content=text, calls=calls, usage=usage)
        return LLMResponse(type="text", content=text, usage=usage)


def build_provider(provider: str, model: Optional[str]) -> PydanticAIProvider:
    if not model:
        raise ValueError(f"No model configured for LLM provider {provider!r}")
    return PydanticAIProvider(provider, model)
