"""Events streamed from a chat turn to its caller.

A turn yields zero or more ``chunk`` events and ends with exactly one
``done`` event.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from ..contracts import RetrievalTokens, RetrievedDocument, ToolCall


class RetrievalEvent(BaseModel):
    type: Literal["retrieval"] = "retrieval"
    documents: List[RetrievedDocument] = Field(default_factory=list)
    time_ms: float = 0.0
    tokens: RetrievalTokens = Field(default_factory=RetrievalTokens)


class HistoryEvent(BaseModel):
    type: Literal["history"] = "history"
    turn_count: int = 0
    message_count: int = 0


class ChunkEvent(BaseModel):
    type: Literal["chunk"] = "chunk"
    text: str


class ToolCallEvent(BaseModel):
    type: Literal["tool_call"] = "tool_call"
    call: ToolCall


class DoneEvent(BaseModel):
    """Final answer with sources (pipeline) or the tool-call log (agent)."""

    type: Literal["done"] = "done"
    full_response: str
    sources: Optional[List[Dict[str, Any]]] = None
    tool_calls: Optional[List[ToolCall]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


TurnEvent = Union[RetrievalEvent, HistoryEvent, ChunkEvent, ToolCallEvent, DoneEvent]
