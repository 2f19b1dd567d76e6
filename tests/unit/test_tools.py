"""Tests for the built-in tools."""

import pytest

from conftest import FakeLLM, FakeVectorStore
from vaiflow.config import RetrievalConfig
from vaiflow.exceptions import ServiceNotConfiguredError, ToolArgumentError, ToolExecutionError
from vaiflow.tools import ToolServices, build_default_registry


@pytest.fixture
def services(embedder, store, reranker):
    return ToolServices(
        embedder=embedder,
        store=store,
        reranker=reranker,
        llm=FakeLLM(chunks=["Generated", " text"]),
        config=RetrievalConfig(db="main", collection="docs"),
        index_poll_interval=0.001,
    )


@pytest.fixture
def registry(services):
    return build_default_registry(services)


@pytest.mark.asyncio
async def test_query_uses_configured_location_and_reranks(registry, store):
    result = await registry.invoke("query", {"query": "what?", "limit": 2})
    assert result.structured["reranked"] is True
    assert result.structured["result_count"] == 2
    assert result.structured["collection"] == "docs"
    assert store.opened == [("main", "docs")]
    assert result.text.startswith('Found 2 results for "what?"')


@pytest.mark.asyncio
async def test_search_never_reranks(registry, reranker):
    result = await registry.invoke("search", {"query": "what?", "db": "other", "collection": "c"})
    assert result.structured["reranked"] is False
    assert [r["text"] for r in result.structured["results"]] == ["alpha doc", "beta doc", "gamma doc"]
    assert reranker.calls == []


@pytest.mark.asyncio
async def test_rerank_keeps_document_fields(registry):
    result = await registry.invoke(
        "rerank",
        {"query": "q", "documents": [{"text": "one", "id": 1}, "two", {"content": "three"}]},
    )
    ranked = result.structured["results"]
    assert [r["index"] for r in ranked] == [2, 1, 0]
    assert ranked[2] == {"text": "one", "id": 1, "index": 0, "score": 0.1}
    assert ranked[1]["text"] == "two"
    assert result.structured["model"] == "rerank-2.5"


@pytest.mark.asyncio
async def test_embed_and_similarity(registry, embedder):
    embedded = await registry.invoke("embed", {"text": "hello", "inputType": "document"})
    assert embedded.structured["dimensions"] == 2
    assert embedder.calls[-1]["input_type"] == "document"

    same = await registry.invoke("similarity", {"text1": "abc", "text2": "xyz"})
    assert same.structured["similarity"] == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_ingest_chunks_embeds_and_waits_for_index(registry, store):
    text = "\n\n".join(f"Paragraph {i} " + "word " * 40 for i in range(6))
    result = await registry.invoke(
        "ingest",
        {"text": text, "source": "notes.md", "chunkSize": 300, "metadata": {"team": "a"}, "waitForIndex": 1},
    )
    structured = result.structured
    connection = store.connections[0]
    assert structured["chunks"] == len(connection.inserted) > 1
    assert structured["inserted_count"] == structured["chunks"]
    assert structured["index_ready"] is True
    assert connection.closed is True
    doc = connection.inserted[0]
    assert doc["source"] == "notes.md"
    assert doc["metadata"]["team"] == "a"
    assert doc["metadata"]["chunk_index"] == 0
    assert doc["embedding"] == [float(len(doc["text"])), 1.0]


@pytest.mark.asyncio
async def test_ingest_reports_index_not_ready(embedder):
    store = FakeVectorStore(ready=False)
    registry = build_default_registry(
        ToolServices(embedder=embedder, store=store, config=RetrievalConfig(db="d", collection="c"), index_poll_interval=0.001)
    )
    result = await registry.invoke("ingest", {"text": "Some document text long enough.", "waitForIndex": 0.01})
    assert result.structured["index_ready"] is False


@pytest.mark.asyncio
async def test_collections_lists_store(registry):
    result = await registry.invoke("collections", {})
    assert result.structured == {"collections": [{"name": "docs", "count": 3}], "database": "main"}
    assert result.text == "Collections in main: docs"


@pytest.mark.asyncio
async def test_generate_with_context(registry, services):
    result = await registry.invoke("generate", {"prompt": "Summarize", "context": [{"text": "doc one"}, "doc two"]})
    assert result.structured["text"] == "Generated text"
    sent = services.llm.requests[0][-1]["content"]
    assert "doc one" in sent and "doc two" in sent


@pytest.mark.asyncio
async def test_missing_services_fail_at_invocation():
    registry = build_default_registry()
    with pytest.raises(ServiceNotConfiguredError, match="query: no embedder configured"):
        await registry.invoke("query", {"query": "q", "db": "d", "collection": "c"})
    with pytest.raises(ServiceNotConfiguredError):
        await registry.invoke("generate", {"prompt": "p"})


@pytest.mark.asyncio
async def test_query_without_database(embedder, store):
    registry = build_default_registry(ToolServices(embedder=embedder, store=store))
    with pytest.raises(ToolExecutionError, match="database not specified"):
        await registry.invoke("query", {"query": "q"})
    with pytest.raises(ToolArgumentError):
        await registry.invoke("query", {"query": ""})


@pytest.mark.asyncio
async def test_control_tools(registry):
    merged = await registry.invoke(
        "merge",
        {"arrays": [[{"id": 1}, {"id": 2}], [{"id": 2}, {"id": 3}]], "dedup": True, "dedup_field": "id"},
    )
    assert [m["id"] for m in merged.structured["results"]] == [1, 2, 3]

    filtered = await registry.invoke(
        "filter", {"array": [{"score": 0.2}, {"score": 0.7}, {"score": 0.9}], "condition": "item.score > 0.5"}
    )
    assert filtered.structured == {"results": [{"score": 0.7}, {"score": 0.9}], "result_count": 2}

    picked = await registry.invoke("transform", {"array": [{"a": 1, "b": 2}], "fields": ["a"]})
    assert picked.structured["results"] == [{"a": 1}]
    renamed = await registry.invoke("transform", {"array": [{"a": 1}], "mapping": {"x": "a", "y": "literal"}})
    assert renamed.structured["results"] == [{"x": 1, "y": "literal"}]


@pytest.mark.asyncio
async def test_models_lists_current_catalog_by_category(registry):
    everything = await registry.invoke("models", {})
    assert everything.structured["category"] == "all"
    names = [m["name"] for m in everything.structured["models"]]
    assert "voyage-4-large" in names and "rerank-2.5" in names

    rerankers = await registry.invoke("models", {"category": "rerank"})
    assert rerankers.structured["category"] == "reranking"
    assert {m["type"] for m in rerankers.structured["models"]} == {"reranking"}


@pytest.mark.asyncio
async def test_topics_lists_and_searches(registry):
    listed = await registry.invoke("topics", {})
    assert listed.structured["total_topics"] == len(listed.structured["topics"])
    assert "Core Concepts" in listed.structured["categories"]

    searched = await registry.invoke("topics", {"search": "rerank"})
    assert searched.structured["topics"][0]["topic"] == "reranking"
    assert "categories" not in searched.structured

    nothing = await registry.invoke("topics", {"search": "zzz"})
    assert nothing.structured["topics"] == []


@pytest.mark.asyncio
async def test_explain_resolves_aliases_and_close_matches(registry):
    exact = await registry.invoke("explain", {"topic": "Embed"})
    assert exact.structured["found"] is True
    assert exact.structured["topic"] == "embeddings"
    assert exact.text.startswith("# Embeddings")

    fuzzy = await registry.invoke("explain", {"topic": "vector"})
    assert fuzzy.structured["topic"] == "vector-search"
    assert fuzzy.structured["matched_from"] == "vector"

    unknown = await registry.invoke("explain", {"topic": "zzz"})
    assert unknown.structured["found"] is False
    assert "embeddings" in unknown.structured["available"]


@pytest.mark.asyncio
async def test_estimate_costs(registry):
    result = await registry.invoke("estimate", {"docs": 1_000_000, "queries": 10_000, "months": 2})
    estimates = result.structured["estimates"]
    totals = [e["total_cost"] for e in estimates]
    assert totals == sorted(totals)
    assert result.structured["recommendation"] == estimates[0]["model"] == "voyage-4-lite"

    single = await registry.invoke("estimate", {"docs": 1000, "queries": 1000, "months": 12, "model": "voyage-4-large"})
    (only,) = single.structured["estimates"]
    assert only["embedding_cost"] == 0.06
    assert only["monthly_query_cost"] == 0.006
    assert only["total_cost"] == 0.132

    with pytest.raises(ToolExecutionError, match="unknown model"):
        await registry.invoke("estimate", {"model": "nope"})
    with pytest.raises(ToolArgumentError):
        await registry.invoke("estimate", {"months": 61})
