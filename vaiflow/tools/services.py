"""Collaborators injected into the built-in tools."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..config import RetrievalConfig
from ..llm import LLMProvider
from ..services import Embedder, Reranker, VectorStore


@dataclass
class ToolServices:
    """External services the built-in tools delegate to; all optional.

    A tool whose service is missing fails with ``ServiceNotConfiguredError``
    when invoked, not when registered.
    """

    embedder: Optional[Embedder] = None
    store: Optional[VectorStore] = None
    reranker: Optional[Reranker] = None
    llm: Optional[LLMProvider] = None
    config: RetrievalConfig = field(default_factory=RetrievalConfig)
    index_poll_interval: float = 2.0
