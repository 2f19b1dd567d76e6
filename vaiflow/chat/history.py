"""Conversation state for one chat session."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from ..constants import CHARS_PER_TOKEN, DEFAULT_MAX_TURNS
from ..contracts import ChatTurn, RetrievedDocument
from ..persistence import HistoryStore

logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    return str(uuid.uuid4())


class ChatHistory:
    """Append-only turn log with a retention cap and optional persistence.

    ``max_turns`` counts exchanges, so up to ``max_turns * 2`` messages are
    kept in memory. Store failures never interrupt the conversation.
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        max_turns: int = DEFAULT_MAX_TURNS,
        store: Optional[HistoryStore] = None,
    ) -> None:
        self.session_id = session_id or generate_session_id()
        self.max_turns = max_turns
        self.turns: List[ChatTurn] = []
        self._store = store

    @property
    def max_entries(self) -> int:
        return self.max_turns * 2

    async def load(self) -> bool:
        """Replace the in-memory turns with the stored session.

        Returns ``True`` when stored turns were found.
        """
        if self._store is None:
            return False
        try:
            turns = await self._store.load_turns(self.session_id, limit=self.max_entries)
        except Exception as exc:
            logger.warning(f"Could not load chat session {self.session_id}: {exc}")
            return False
        if not turns:
            return False
        self.turns = list(turns)
        logger.info(f"Resumed chat session {self.session_id} with {len(turns)} turns")
        return True

    async def add_turn(
        self,
        role: str,
        content: str,
        context: Optional[List[RetrievedDocument]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ChatTurn:
        turn = ChatTurn(role=role, content=content, context=context, metadata=metadata)
        self.turns.append(turn)
        if len(self.turns) > self.max_entries:
            self.turns = self.turns[-self.max_entries :]

        if self._store is not None:
            try:
                await self._store.append_turn(self.session_id, turn)
            except Exception as exc:
                logger.warning(f"Could not persist chat turn for {self.session_id}: {exc}")
        return turn

    def messages(self) -> List[Dict[str, str]]:
        return [turn.as_message() for turn in self.turns]

    def messages_with_budget(self, max_tokens: int) -> List[Dict[str, str]]:
        """Most recent messages whose combined size fits ``max_tokens``.

        Walks back from the newest message and stops at the first one that
        would exceed the budget, so older messages are always dropped first.
        """
        max_chars = max_tokens * CHARS_PER_TOKEN
        total = 0
        selected: List[Dict[str, str]] = []
        for message in reversed(self.messages()):
            size = len(message["content"])
            if total + size > max_chars:
                break
            selected.append(message)
            total += size
        selected.reverse()
        return selected

    def last_context(self) -> Optional[List[RetrievedDocument]]:
        for turn in reversed(self.turns):
            if turn.role == "assistant" and turn.context:
                return turn.context
        return None

    def last_sources(self) -> Optional[List[Dict[str, Any]]]:
        context = self.last_context()
        if context is None:
            return None
        return [
            {"source": doc.source or doc.metadata.get("source") or "unknown", "score": doc.score}
            for doc in context
        ]

    def clear(self) -> None:
        """Forget the in-memory turns; the session id is kept."""
        self.turns = []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "turns": [turn.model_dump(mode="json") for turn in self.turns],
        }

    def __len__(self) -> int:
        return len(self.turns)
