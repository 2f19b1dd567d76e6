"""Interfaces of the external services tools delegate to.

vaiflow never talks to an embedding API or a vector database itself; the
caller injects objects satisfying these protocols.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Sequence

from pydantic import BaseModel, Field


class EmbeddingResult(BaseModel):
    vectors: List[List[float]] = Field(default_factory=list)
    model: Optional[str] = None
    total_tokens: int = 0


class RerankItem(BaseModel):
    index: int
    relevance_score: float


class RerankResult(BaseModel):
    items: List[RerankItem] = Field(default_factory=list)
    model: Optional[str] = None
    total_tokens: int = 0


class Embedder(Protocol):
    """Turns text into vectors."""

    async def embed(
        self,
        texts: Sequence[str],
        *,
        model: Optional[str] = None,
        input_type: str = "document",
        dimensions: Optional[int] = None,
    ) -> EmbeddingResult:
        """Embed ``texts`` in order."""


class Reranker(Protocol):
    """Scores documents against a query."""

    async def rerank(
        self, query: str, documents: Sequence[str], *, model: Optional[str] = None
    ) -> RerankResult:
        """Return relevance scores, most relevant first."""


class VectorConnection(Protocol):
    """A short-lived handle on one collection."""

    async def vector_search(
        self,
        vector: Sequence[float],
        *,
        limit: int,
        num_candidates: int,
        index: str,
        path: str,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Nearest neighbours, best first; each hit carries a ``score``."""

    async def insert_many(self, documents: Sequence[Dict[str, Any]]) -> int:
        """Insert documents and return how many were stored."""

    async def index_ready(self, index: str) -> bool:
        """Whether the vector index is queryable."""

    async def close(self) -> None:
        """Release the connection."""


class VectorStore(Protocol):
    """Factory for collection connections."""

    async def open(self, db: str, collection: str) -> VectorConnection:
        """Open a connection to ``db.collection``."""

    async def list_collections(self, db: str) -> List[Dict[str, Any]]:
        """Describe the collections of ``db``."""
