"""In-memory implementation of the history store."""

from __future__ import annotations

from typing import Dict, List

from ..contracts import ChatTurn, SessionSummary
from .repository import HistoryStore


def summarize(session_id: str, turns: List[ChatTurn]) -> SessionSummary:
    first = turns[0]
    return SessionSummary(
        session_id=session_id,
        first_message=first.content if first.role == "user" else "(continued)",
        last_activity=max(turn.timestamp for turn in turns),
        turn_count=len(turns),
    )


class InMemoryHistoryStore(HistoryStore):
    """Keep chat turns in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, List[ChatTurn]] = {}

    async def load_turns(self, session_id: str, limit: int | None = None) -> list[ChatTurn]:
        turns = self._sessions.get(session_id, [])
        if limit is not None:
            turns = turns[-limit:] if limit > 0 else []
        return list(turns)

    async def append_turn(self, session_id: str, turn: ChatTurn) -> None:
        self._sessions.setdefault(session_id, []).append(turn)

    async def list_sessions(self, limit: int = 10) -> list[SessionSummary]:
        summaries = [
            summarize(session_id, turns) for session_id, turns in self._sessions.items() if turns
        ]
        summaries.sort(key=lambda s: s.last_activity, reverse=True)
        return summaries[:limit]

    async def delete_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
