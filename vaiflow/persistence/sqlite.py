"""SQLite implementation of the history store."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from ..contracts import ChatTurn, SessionSummary
from .repository import HistoryStore


class SQLiteHistoryStore(HistoryStore):
    """Persist chat turns using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS chat_turns (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL,
                role TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                turn TEXT NOT NULL
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_chat_turns_session ON chat_turns (session_id, id)"
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Store API
    async def load_turns(self, session_id: str, limit: int | None = None) -> list[ChatTurn]:
        if limit is None:
            rows = await asyncio.to_thread(
                self._fetchall,
                "SELECT turn FROM chat_turns WHERE session_id = ? ORDER BY id",
                session_id,
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                """
                SELECT turn FROM (
                    SELECT id, turn FROM chat_turns WHERE session_id = ?
                    ORDER BY id DESC LIMIT ?
                ) ORDER BY id
                """,
                session_id,
                limit,
            )
        return [ChatTurn.model_validate_json(row["turn"]) for row in rows]

    async def append_turn(self, session_id: str, turn: ChatTurn) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO chat_turns (session_id, role, timestamp, turn) VALUES (?, ?, ?, ?)",
            session_id,
            turn.role,
            turn.timestamp.isoformat(),
            turn.model_dump_json(),
        )

    async def list_sessions(self, limit: int = 10) -> list[SessionSummary]:
        rows = await asyncio.to_thread(
            self._fetchall,
            """
            SELECT t.session_id, COUNT(*) AS turn_count, MAX(t.timestamp) AS last_activity,
                   (SELECT f.role || char(0) || json_extract(f.turn, '$.content')
                    FROM chat_turns f WHERE f.session_id = t.session_id
                    ORDER BY f.id LIMIT 1) AS first_turn
            FROM chat_turns t
            GROUP BY t.session_id
            ORDER BY last_activity DESC
            LIMIT ?
            """,
            limit,
        )
        sessions = []
        for row in rows:
            role, _, content = (row["first_turn"] or "").partition("\x00")
            sessions.append(
                SessionSummary(
                    session_id=row["session_id"],
                    first_message=content if role == "user" else "(continued)",
                    last_activity=datetime.fromisoformat(row["last_activity"]),
                    turn_count=row["turn_count"],
                )
            )
        return sessions

    async def delete_session(self, session_id: str) -> None:
        await asyncio.to_thread(
            self._execute, "DELETE FROM chat_turns WHERE session_id = ?", session_id
        )
