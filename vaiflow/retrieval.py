"""Retrieval pipeline: embed the query, vector search, optionally rerank."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Mapping, Optional

from .config import RetrievalConfig
from .constants import (
    CANDIDATE_CEILING,
    CANDIDATE_OVERSAMPLING_FACTOR,
    NUM_CANDIDATES_CEILING,
    NUM_CANDIDATES_MULTIPLIER,
)
from .contracts import RetrievalResult, RetrievalTokens, RetrievedDocument
from .exceptions import ToolExecutionError
from .services import Embedder, Reranker, VectorConnection, VectorStore

logger = logging.getLogger(__name__)

_LABEL_FIELDS = ("title", "name", "subject", "heading", "filename")


def resolve_source_label(doc: Mapping[str, Any]) -> str:
    """Best-effort human readable label for a retrieved document.

    Identifying metadata (title, name, ...) wins over the raw source, with
    the year appended when the metadata has one.
    """
    meta = doc.get("metadata") or {}
    for key in _LABEL_FIELDS:
        label = meta.get(key)
        if label and isinstance(label, str):
            if meta.get("year"):
                return f"{label} ({meta['year']})"
            return label
    for candidate in (doc.get("source"), meta.get("source"), doc.get("_id")):
        if candidate:
            return str(candidate)
    return "unknown"


def candidate_limits(max_docs: int) -> tuple[int, int]:
    """Return ``(limit, num_candidates)`` for a vector search."""
    limit = min(max_docs * CANDIDATE_OVERSAMPLING_FACTOR, CANDIDATE_CEILING)
    return limit, min(limit * NUM_CANDIDATES_MULTIPLIER, NUM_CANDIDATES_CEILING)


def _document_text(doc: Mapping[str, Any], text_field: str) -> str:
    text = doc.get(text_field)
    if not text:
        return json.dumps(doc, default=str)
    return text if isinstance(text, str) else json.dumps(text, default=str)


def _body(doc: Mapping[str, Any], text_field: str) -> str:
    text = doc.get(text_field)
    if text is None:
        return ""
    return text if isinstance(text, str) else json.dumps(text, default=str)


def _parse_filter(value: Any) -> Optional[Dict[str, Any]]:
    if value is None or isinstance(value, dict):
        return value
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError) as exc:
        raise ToolExecutionError("Invalid filter JSON.") from exc
    if not isinstance(parsed, dict):
        raise ToolExecutionError("Invalid filter JSON.")
    return parsed


async def close_quietly(connection: Optional[VectorConnection]) -> None:
    """Close ``connection``; failures are logged and never raised."""
    if connection is None:
        return
    try:
        await connection.close()
    except Exception as exc:
        logger.debug(f"Ignoring error while closing connection: {exc}")


class Retriever:
    def __init__(
        self,
        embedder: Embedder,
        store: VectorStore,
        reranker: Optional[Reranker] = None,
        config: Optional[RetrievalConfig] = None,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.reranker = reranker
        self.config = config or RetrievalConfig()

    async def retrieve(
        self,
        query: str,
        db: Optional[str] = None,
        collection: Optional[str] = None,
        *,
        max_docs: Optional[int] = None,
        rerank: Optional[bool] = None,
        model: Optional[str] = None,
        rerank_model: Optional[str] = None,
        text_field: Optional[str] = None,
        filter: Any = None,
    ) -> RetrievalResult:
        """Run the three-stage pipeline for ``query`` against ``db.collection``.

        With reranking the kept documents are ordered by relevance score;
        without it they keep the vector search order.
        """
        cfg = self.config
        db = db or cfg.db
        collection = collection or cfg.collection
        if not db or not collection:
            raise ToolExecutionError("retrieve: database and collection must be specified")
        max_docs = max_docs or cfg.max_docs
        do_rerank = cfg.rerank if rerank is None else rerank
        text_field = text_field or cfg.text_field
        search_filter = _parse_filter(filter)
        limit, num_candidates = candidate_limits(max_docs)

        started = time.perf_counter()
        embedded = await self.embedder.embed(
            [query], model=model or cfg.model, input_type="query", dimensions=cfg.dimensions
        )
        tokens = RetrievalTokens(embed=embedded.total_tokens)

        connection: Optional[VectorConnection] = None
        try:
            connection = await self.store.open(db, collection)
            hits = await connection.vector_search(
                embedded.vectors[0],
                limit=limit,
                num_candidates=num_candidates,
                index=cfg.index,
                path=cfg.field,
                filter=search_filter,
            )
        finally:
            await close_quietly(connection)

        reranked = False
        documents: List[RetrievedDocument]
        if do_rerank and self.reranker is not None and len(hits) > 1:
            result = await self.reranker.rerank(
                query,
                [_document_text(hit, text_field) for hit in hits],
                model=rerank_model or cfg.rerank_model,
            )
            tokens.rerank = result.total_tokens
            ranked = sorted(result.items, key=lambda item: item.relevance_score, reverse=True)
            documents = [
                RetrievedDocument(
                    text=_body(hits[item.index], text_field),
                    source=resolve_source_label(hits[item.index]),
                    score=item.relevance_score,
                    vector_score=hits[item.index].get("score"),
                    metadata=hits[item.index].get("metadata") or {},
                )
                for item in ranked[:max_docs]
            ]
            reranked = True
        else:
            documents = [
                RetrievedDocument(
                    text=_body(hit, text_field),
                    source=resolve_source_label(hit),
                    score=hit.get("score"),
                    metadata=hit.get("metadata") or {},
                )
                for hit in hits[:max_docs]
            ]

        elapsed = round((time.perf_counter() - started) * 1000, 3)
        logger.debug(f"Retrieved {len(documents)} documents from {db}.{collection} in {elapsed}ms")
        return RetrievalResult(documents=documents, time_ms=elapsed, tokens=tokens, reranked=reranked)


async def retrieve(
    query: str,
    db: str,
    collection: str,
    *,
    embedder: Embedder,
    store: VectorStore,
    reranker: Optional[Reranker] = None,
    config: Optional[RetrievalConfig] = None,
    **options: Any,
) -> RetrievalResult:
    """One-shot retrieval without keeping a :class:`Retriever` around."""
    return await Retriever(embedder, store, reranker, config).retrieve(
        query, db, collection, **options
    )
