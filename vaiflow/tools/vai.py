"""Retrieval, embedding and ingestion tools."""

from __future__ import annotations

import logging
import math
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from ..constants import DEFAULT_RERANK_MODEL, DEFAULT_VECTOR_INDEX
from ..contracts import RetrievedDocument, ToolResult
from ..exceptions import ServiceNotConfiguredError, ToolExecutionError
from ..llm import collect_text
from ..registry import ToolRegistry
from ..retrieval import Retriever, close_quietly
from ..utils.polling import wait_until
from .chunking import chunk_text
from .services import ToolServices

logger = logging.getLogger(__name__)


class QueryArgs(BaseModel):
    query: str = Field(..., min_length=1, max_length=5000, description="The question or search query in natural language")
    db: Optional[str] = Field(None, description="Database name. Uses the configured default if omitted.")
    collection: Optional[str] = Field(None, description="Collection with embedded documents. Uses the configured default if omitted.")
    limit: int = Field(5, ge=1, le=50, description="Maximum number of results to return")
    model: Optional[str] = Field(None, description="Embedding model")
    rerank: bool = Field(True, description="Whether to rerank results")
    filter: Optional[Dict[str, Any]] = Field(None, description="Pre-filter for vector search")


class SearchArgs(BaseModel):
    query: str = Field(..., min_length=1, max_length=5000, description="Search query text")
    db: Optional[str] = Field(None, description="Database name")
    collection: Optional[str] = Field(None, description="Collection with embedded documents")
    limit: int = Field(10, ge=1, le=100, description="Maximum results to return")
    model: Optional[str] = Field(None, description="Embedding model")
    filter: Optional[Dict[str, Any]] = Field(None, description="Pre-filter for vector search")


class RerankArgs(BaseModel):
    query: str = Field(..., min_length=1, max_length=5000, description="The query to rank documents against")
    documents: List[Union[str, Dict[str, Any]]] = Field(..., min_length=1, max_length=100, description="Documents to rerank")
    model: str = Field(DEFAULT_RERANK_MODEL, description="Reranking model")


class EmbedArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(..., min_length=1, max_length=32000, description="Text to embed")
    model: Optional[str] = Field(None, description="Embedding model")
    input_type: Literal["document", "query"] = Field(
        "query", alias="inputType", description="Whether this text is a document or a query"
    )
    dimensions: Optional[int] = Field(None, description="Output dimensions")


class SimilarityArgs(BaseModel):
    text1: str = Field(..., min_length=1, max_length=32000, description="First text")
    text2: str = Field(..., min_length=1, max_length=32000, description="Second text")
    model: Optional[str] = Field(None, description="Embedding model")


class IngestArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(..., min_length=1, description="Document text to ingest")
    db: Optional[str] = Field(None, description="Database name")
    collection: Optional[str] = Field(None, description="Collection to store documents in")
    source: Optional[str] = Field(None, description="Source identifier (filename, URL) for citations")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Additional metadata to store with the document")
    chunk_strategy: Literal["fixed", "sentence", "paragraph", "recursive"] = Field(
        "recursive", alias="chunkStrategy", description="Text chunking strategy"
    )
    chunk_size: int = Field(512, ge=100, le=8000, alias="chunkSize", description="Target chunk size in characters")
    model: Optional[str] = Field(None, description="Embedding model")
    wait_for_index: Optional[float] = Field(
        None, ge=0, alias="waitForIndex", description="Seconds to wait for the vector index to become ready"
    )


class CollectionsArgs(BaseModel):
    db: Optional[str] = Field(None, description="Database to list collections from. Uses the configured default if omitted.")


class GenerateArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = Field(..., min_length=1, description="Instruction or question for the model")
    context: Any = Field(None, description="Documents or text to answer from")
    system_prompt: Optional[str] = Field(None, alias="systemPrompt", description="System instructions")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def _results_text(query: str, docs: Sequence[RetrievedDocument], elapsed: float) -> str:
    if not docs:
        return f'No results found for "{query}"'
    lines = [
        f"[{i}] {doc.source} (score: {(doc.score or 0):.3f})\n{doc.text[:500]}"
        for i, doc in enumerate(docs, start=1)
    ]
    return f'Found {len(docs)} results for "{query}" ({elapsed}ms):\n\n' + "\n\n".join(lines)


def _locate(services: ToolServices, tool: str, db: Optional[str], collection: Optional[str]) -> Tuple[str, str]:
    db = db or services.config.db
    collection = collection or services.config.collection
    if not db:
        raise ToolExecutionError(f"{tool}: database not specified (set in inputs, defaults or config)")
    if not collection:
        raise ToolExecutionError(f"{tool}: collection not specified")
    return db, collection


def _context_text(context: Any) -> str:
    if isinstance(context, list):
        parts = []
        for item in context:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict):
                parts.append(item.get("text") or item.get("content") or str(item))
            else:
                parts.append(str(item))
        return "\n\n---\n\n".join(parts)
    return str(context)


def register_vai_tools(registry: ToolRegistry, services: ToolServices) -> None:
    """Register the tools that front the embedding, search and LLM services."""

    def retriever(tool: str) -> Retriever:
        if services.embedder is None:
            raise ServiceNotConfiguredError(tool, "embedder")
        if services.store is None:
            raise ServiceNotConfiguredError(tool, "vector store")
        return Retriever(services.embedder, services.store, services.reranker, services.config)

    async def _retrieve(tool: str, args: Any, rerank: bool) -> ToolResult:
        db, collection = _locate(services, tool, args.db, args.collection)
        result = await retriever(tool).retrieve(
            args.query,
            db,
            collection,
            max_docs=args.limit,
            rerank=rerank,
            model=args.model,
            filter=args.filter,
        )
        structured = {
            "query": args.query,
            "results": [doc.model_dump() for doc in result.documents],
            "result_count": len(result.documents),
            "reranked": result.reranked,
            "collection": collection,
            "time_ms": result.time_ms,
        }
        return ToolResult(structured=structured, text=_results_text(args.query, result.documents, result.time_ms))

    @registry.tool(
        "query",
        "Full retrieval query: embeds the question, runs vector search and reranks results. "
        "Use this when you need to answer a question using the knowledge base.",
        QueryArgs,
    )
    async def query(args: QueryArgs) -> ToolResult:
        return await _retrieve("query", args, args.rerank)

    @registry.tool(
        "search",
        "Raw vector similarity search without reranking. Results are ordered by vector "
        "score only. Use for exploratory searches or when you plan to rerank separately.",
        SearchArgs,
    )
    async def search(args: SearchArgs) -> ToolResult:
        return await _retrieve("search", args, False)

    @registry.tool(
        "rerank",
        "Rerank documents against a query and return them ordered by relevance.",
        RerankArgs,
        default_keys=(),
    )
    async def rerank(args: RerankArgs) -> ToolResult:
        if services.reranker is None:
            raise ServiceNotConfiguredError("rerank", "reranker")
        texts = [
            doc if isinstance(doc, str) else (doc.get("text") or doc.get("content") or str(doc))
            for doc in args.documents
        ]
        result = await services.reranker.rerank(args.query, texts, model=args.model)
        ranked = sorted(result.items, key=lambda item: item.relevance_score, reverse=True)
        results = []
        for item in ranked:
            original = args.documents[item.index]
            base = dict(original) if isinstance(original, dict) else {"text": original}
            results.append({**base, "index": item.index, "score": item.relevance_score})
        lines = [f"[{i}] #{r['index']} {r['score']:.3f}" for i, r in enumerate(results, start=1)]
        return ToolResult(
            structured={"results": results, "result_count": len(results), "model": args.model},
            text=f"Reranked {len(results)} documents:\n" + "\n".join(lines),
        )

    @registry.tool(
        "embed",
        "Embed text and return the vector representation.",
        EmbedArgs,
    )
    async def embed(args: EmbedArgs) -> ToolResult:
        if services.embedder is None:
            raise ServiceNotConfiguredError("embed", "embedder")
        result = await services.embedder.embed(
            [args.text],
            model=args.model or services.config.model,
            input_type=args.input_type,
            dimensions=args.dimensions,
        )
        vector = result.vectors[0]
        return ToolResult(
            structured={"embedding": vector, "model": result.model, "dimensions": len(vector)},
            text=f"Embedded text into {len(vector)} dimensions with {result.model}",
        )

    @registry.tool(
        "similarity",
        "Compare two texts semantically by embedding both and computing cosine similarity.",
        SimilarityArgs,
    )
    async def similarity(args: SimilarityArgs) -> ToolResult:
        if services.embedder is None:
            raise ServiceNotConfiguredError("similarity", "embedder")
        result = await services.embedder.embed(
            [args.text1, args.text2], model=args.model or services.config.model, input_type="document"
        )
        score = cosine_similarity(result.vectors[0], result.vectors[1])
        return ToolResult(
            structured={"similarity": score, "model": result.model},
            text=f"Cosine similarity: {score:.4f}",
        )

    @registry.tool(
        "ingest",
        "Add a document to a collection: chunks the text, embeds each chunk and stores them.",
        IngestArgs,
    )
    async def ingest(args: IngestArgs) -> ToolResult:
        if services.embedder is None:
            raise ServiceNotConfiguredError("ingest", "embedder")
        if services.store is None:
            raise ServiceNotConfiguredError("ingest", "vector store")
        db, collection = _locate(services, "ingest", args.db, args.collection)
        source = args.source or "workflow-ingest"
        started = time.perf_counter()

        chunks = chunk_text(args.text, strategy=args.chunk_strategy, size=args.chunk_size)
        if not chunks:
            return ToolResult(
                structured={"source": source, "chunks": 0, "inserted_count": 0, "collection": collection},
                text="No chunks produced; text may be too short or empty.",
            )

        embedded = await services.embedder.embed(
            chunks, model=args.model or services.config.model, input_type="document"
        )
        ingested_at = datetime.now(timezone.utc).isoformat()
        documents = [
            {
                services.config.text_field: text,
                services.config.field: embedded.vectors[i],
                "source": source,
                "metadata": {
                    **(args.metadata or {}),
                    "ingested_at": ingested_at,
                    "chunk_index": i,
                    "total_chunks": len(chunks),
                    "model": embedded.model,
                    "chunk_strategy": args.chunk_strategy,
                },
            }
            for i, text in enumerate(chunks)
        ]

        connection = None
        index_ready: Optional[bool] = None
        try:
            connection = await services.store.open(db, collection)
            inserted = await connection.insert_many(documents)
            if args.wait_for_index is not None:
                index = services.config.index or DEFAULT_VECTOR_INDEX
                index_ready = await wait_until(
                    lambda: connection.index_ready(index),
                    timeout=args.wait_for_index,
                    interval=services.index_poll_interval,
                )
        finally:
            await close_quietly(connection)

        elapsed = round((time.perf_counter() - started) * 1000, 3)
        structured: Dict[str, Any] = {
            "inserted_count": inserted,
            "chunks": len(chunks),
            "source": source,
            "model": embedded.model,
            "database": db,
            "collection": collection,
            "time_ms": elapsed,
        }
        if index_ready is not None:
            structured["index_ready"] = index_ready
        return ToolResult(
            structured=structured,
            text=f'Ingested "{source}" into {db}.{collection}: {len(chunks)} chunks ({elapsed}ms)',
        )

    @registry.tool(
        "collections",
        "List available collections. Use to discover which knowledge bases exist.",
        CollectionsArgs,
    )
    async def collections(args: CollectionsArgs) -> ToolResult:
        if services.store is None:
            raise ServiceNotConfiguredError("collections", "vector store")
        db = args.db or services.config.db
        if not db:
            raise ToolExecutionError("collections: database not specified")
        found = await services.store.list_collections(db)
        names = ", ".join(str(c.get("name", "?")) for c in found) or "none"
        return ToolResult(
            structured={"collections": found, "database": db},
            text=f"Collections in {db}: {names}",
        )

    @registry.tool(
        "generate",
        "Ask the configured language model to write text, optionally from context.",
        GenerateArgs,
        category="control",
        agent_visible=False,
        default_keys=(),
    )
    async def generate(args: GenerateArgs) -> ToolResult:
        if services.llm is None:
            raise ServiceNotConfiguredError("generate", "LLM provider")
        messages = []
        if args.system_prompt:
            messages.append({"role": "system", "content": args.system_prompt})
        content = args.prompt
        if args.context:
            content = f"{args.prompt}\n\nContext:\n{_context_text(args.context)}"
        messages.append({"role": "user", "content": content})
        text = await collect_text(services.llm, messages)
        logger.debug(f"generate produced {len(text)} characters")
        return ToolResult(
            structured={"text": text, "model": services.llm.model, "provider": services.llm.name},
            text=text,
        )
