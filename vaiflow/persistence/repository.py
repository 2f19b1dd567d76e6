"""Store abstraction for chat history persistence."""

from __future__ import annotations

from typing import Protocol

from ..contracts import ChatTurn, SessionSummary


class HistoryStore(Protocol):
    """Protocol for chat history persistence backends."""

    async def load_turns(self, session_id: str, limit: int | None = None) -> list[ChatTurn]:
        """Return the most recent ``limit`` turns of a session, oldest first."""

    async def append_turn(self, session_id: str, turn: ChatTurn) -> None:
        """Persist one turn."""

    async def list_sessions(self, limit: int = 10) -> list[SessionSummary]:
        """Return sessions ordered by last activity, newest first."""

    async def delete_session(self, session_id: str) -> None:
        """Remove every turn of a session."""
