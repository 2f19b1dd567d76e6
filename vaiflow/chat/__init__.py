"""Chat sessions: history, prompts and turn drivers."""

from .events import ChunkEvent, DoneEvent, HistoryEvent, RetrievalEvent, ToolCallEvent, TurnEvent
from .history import ChatHistory, generate_session_id
from .orchestrator import ChatSession, agent_chat_turn, chat_turn
from .prompt import (
    AGENT_SYSTEM_PROMPT,
    DEFAULT_SYSTEM_PROMPT,
    build_agent_messages,
    build_messages,
    build_system_prompt,
    format_context_block,
    format_history_recap,
)

__all__ = [
    "AGENT_SYSTEM_PROMPT",
    "DEFAULT_SYSTEM_PROMPT",
    "ChatHistory",
    "ChatSession",
    "ChunkEvent",
    "DoneEvent",
    "HistoryEvent",
    "RetrievalEvent",
    "ToolCallEvent",
    "TurnEvent",
    "agent_chat_turn",
    "build_agent_messages",
    "build_messages",
    "build_system_prompt",
    "chat_turn",
    "format_context_block",
    "format_history_recap",
    "generate_session_id",
]
