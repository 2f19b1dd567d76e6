"""Provider-neutral language model interface.

Messages are plain dicts with a ``role`` key. Besides ``system``, ``user``
and ``assistant`` text messages, the agent loop appends assistant tool-call
messages and ``tool`` result messages built by the provider itself.
"""

from __future__ import annotations

from typing import (
    Any,
    AsyncIterator,
    Dict,
    List,
    Literal,
    Optional,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
)

from pydantic import BaseModel, Field

Message = Dict[str, Any]
ToolFormat = Literal["anthropic", "openai"]


class TokenUsage(BaseModel):
    """Token counts reported by a model call."""

    input_tokens: int = 0
    output_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


class LLMToolCall(BaseModel):
    id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class LLMResponse(BaseModel):
    """Either a final text answer or a list of requested tool calls."""

    type: Literal["text", "tool_calls"]
    content: str = ""
    calls: List[LLMToolCall] = Field(default_factory=list)
    usage: Optional[TokenUsage] = None


StreamItem = Union[str, TokenUsage]


@runtime_checkable
class LLMProvider(Protocol):
    name: str
    model: Optional[str]

    @property
    def tool_format(self) -> ToolFormat: ...

    def stream_chat(self, messages: Sequence[Message]) -> AsyncIterator[StreamItem]:
        """Yield text fragments, optionally followed by one ``TokenUsage``."""

    async def chat_with_tools(
        self, messages: Sequence[Message], tools: Sequence[Dict[str, Any]]
    ) -> LLMResponse: ...

    def format_assistant_tool_call(self, response: LLMResponse) -> Message: ...

    def format_tool_result(
        self, call_id: str, name: str, text: str, is_error: bool = False
    ) -> Message: ...


class BaseLLMProvider:
    """Shared message formatting for providers."""

    name: str = "base"

    def __init__(self, model: Optional[str] = None) -> None:
        self.model = model

    @property
    def tool_format(self) -> ToolFormat:
        return "anthropic" if self.name == "anthropic" else "openai"

    def format_assistant_tool_call(self, response: LLMResponse) -> Message:
        return {
            "role": "assistant",
            "content": response.content,
            "tool_calls": [call.model_dump() for call in response.calls],
        }

    def format_tool_result(
        self, call_id: str, name: str, text: str, is_error: bool = False
    ) -> Message:
        return {
            "role": "tool",
            "tool_call_id": call_id,
            "name": name,
            "content": text,
            "is_error": is_error,
        }

    def stream_chat(self, messages: Sequence[Message]) -> AsyncIterator[StreamItem]:
        raise NotImplementedError

    async def chat_with_tools(
        self, messages: Sequence[Message], tools: Sequence[Dict[str, Any]]
    ) -> LLMResponse:
        raise NotImplementedError


async def collect_text(llm: LLMProvider, messages: Sequence[Message]) -> str:
    """Drain ``llm.stream_chat`` into one string."""
    parts = []
    async for item in llm.stream_chat(messages):
        if isinstance(item, str):
            parts.append(item)
    return "".join(parts)
