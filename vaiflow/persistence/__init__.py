"""Persistence layer for vaiflow chat history."""

from __future__ import annotations

import os
from typing import Optional

from ..config import VaiflowConfig, load_config
from .inmemory import InMemoryHistoryStore
from .repository import HistoryStore
from .sqlite import SQLiteHistoryStore


def get_history_store(
    database_url: Optional[str] = None, config: Optional[VaiflowConfig] = None
) -> HistoryStore:
    """Factory function to obtain a chat history store.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``VAIFLOW_HISTORY_URL``, or from
    loaded configuration. When no database is configured, an in-memory store
    is returned.
    """

    if database_url is None:
        config = config or load_config()
        database_url = os.getenv("VAIFLOW_HISTORY_URL") or config.history_database_url

    if not database_url:
        return InMemoryHistoryStore()

    if database_url.startswith("sqlite://"):
        return SQLiteHistoryStore(database_url.replace("sqlite://", "", 1))
    raise ValueError(f"Unsupported database backend: {database_url}")


__all__ = [
    "HistoryStore",
    "InMemoryHistoryStore",
    "SQLiteHistoryStore",
    "get_history_store",
]
