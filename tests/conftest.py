import asyncio
from typing import Any, Dict, List, Optional

import pytest
from pydantic import BaseModel, ConfigDict

from vaiflow.contracts import ToolResult
from vaiflow.llm import BaseLLMProvider, LLMResponse, TokenUsage
from vaiflow.registry import ToolRegistry
from vaiflow.services import EmbeddingResult, RerankItem, RerankResult


class FakeEmbedder:
    """Embeds text as ``[len(text), 1.0]`` and records every call."""

    def __init__(self, model: str = "fake-embed"):
        self.model = model
        self.calls: List[Dict[str, Any]] = []

    async def embed(self, texts, *, model=None, input_type="document", dimensions=None):
        self.calls.append(
            {"texts": list(texts), "model": model, "input_type": input_type, "dimensions": dimensions}
        )
        return EmbeddingResult(
            vectors=[[float(len(text)), 1.0] for text in texts],
            model=model or self.model,
            total_tokens=sum(len(text.split()) for text in texts),
        )


class FakeConnection:
    def __init__(self, hits, ready=True, fail_on_close=False):
        self.hits = hits
        self.ready = ready
        self.fail_on_close = fail_on_close
        self.inserted: List[Dict[str, Any]] = []
        self.search_calls: List[Dict[str, Any]] = []
        self.closed = False

    async def vector_search(self, vector, *, limit, num_candidates, index, path, filter=None):
        self.search_calls.append(
            {"limit": limit, "num_candidates": num_candidates, "index": index, "path": path, "filter": filter}
        )
        return [dict(hit) for hit in self.hits[:limit]]

    async def insert_many(self, documents):
        self.inserted.extend(documents)
        return len(documents)

    async def index_ready(self, index):
        return self.ready

    async def close(self):
        self.closed = True
        if self.fail_on_close:
            raise ConnectionError("close failed")


class FakeVectorStore:
    def __init__(self, hits=(), collections=None, ready=True, fail_on_close=False):
        self.hits = list(hits)
        self.collections = collections or []
        self.ready = ready
        self.fail_on_close = fail_on_close
        self.connections: List[FakeConnection] = []
        self.opened: List[tuple] = []

    async def open(self, db, collection):
        self.opened.append((db, collection))
        connection = FakeConnection(self.hits, self.ready, self.fail_on_close)
        self.connections.append(connection)
        return connection

    async def list_collections(self, db):
        return list(self.collections)


class FakeReranker:
    """Scores documents with ``scores`` (by position) or ascending by position."""

    def __init__(self, scores: Optional[List[float]] = None):
        self.scores = scores
        self.calls: List[Dict[str, Any]] = []

    async def rerank(self, query, documents, *, model=None):
        self.calls.append({"query": query, "documents": list(documents), "model": model})
        scores = self.scores or [round(0.1 * (i + 1), 2) for i in range(len(documents))]
        return RerankResult(
            items=[RerankItem(index=i, relevance_score=s) for i, s in enumerate(scores[: len(documents)])],
            model=model,
            total_tokens=len(documents),
        )


class FakeLLM(BaseLLMProvider):
    """Streams fixed chunks; replays scripted tool-calling responses.

    The last scripted response is repeated once the script runs out.
    """

    name = "fake"

    def __init__(self, chunks=("Hello", " world"), responses=(), model="fake-model", usage=None):
        super().__init__(model)
        self.chunks = list(chunks)
        self.responses: List[LLMResponse] = list(responses)
        self.usage = usage
        self.requests: List[List[Dict[str, Any]]] = []
        self.tool_definitions: List[Dict[str, Any]] = []
        self.streams_closed = 0

    async def stream_chat(self, messages):
        self.requests.append(list(messages))
        try:
            for chunk in self.chunks:
                yield chunk
            if self.usage is not None:
                yield self.usage
        finally:
            self.streams_closed += 1

    async def chat_with_tools(self, messages, tools):
        self.requests.append(list(messages))
        self.tool_definitions = list(tools)
        if not self.responses:
            return LLMResponse(type="text", content="done", usage=TokenUsage(input_tokens=1, output_tokens=1))
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


class EchoArgs(BaseModel):
    model_config = ConfigDict(extra="allow")

    value: Any = None
    db: Optional[str] = None
    collection: Optional[str] = None
    model: Optional[str] = None


class FailArgs(BaseModel):
    message: str = "boom"


class SlowArgs(BaseModel):
    delay: float = 0.01
    value: Any = None


class CountingRegistry(ToolRegistry):
    """Registry with ``echo``, ``fail`` and ``slow`` tools that records invocations."""

    def __init__(self):
        super().__init__()
        self.invocations: List[tuple] = []

        @self.tool("echo", "Return the arguments it was given.", EchoArgs)
        async def echo(args: EchoArgs) -> ToolResult:
            return ToolResult(structured=args.model_dump(exclude_none=True), text="echo")

        @self.tool("fail", "Always fails.", FailArgs, default_keys=())
        async def fail(args: FailArgs) -> ToolResult:
            raise RuntimeError(args.message)

        @self.tool("slow", "Sleeps, then returns its value.", SlowArgs, default_keys=())
        async def slow(args: SlowArgs) -> ToolResult:
            await asyncio.sleep(args.delay)
            return ToolResult(structured={"value": args.value}, text=str(args.value))

    async def invoke(self, name, arguments=None):
        self.invocations.append((name, dict(arguments or {})))
        return await super().invoke(name, arguments)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def hits():
    return [
        {"_id": "a", "text": "alpha doc", "score": 0.9, "metadata": {"title": "Alpha"}},
        {"_id": "b", "text": "beta doc", "score": 0.8, "source": "beta.md"},
        {"_id": "c", "text": "gamma doc", "score": 0.7, "metadata": {"source": "gamma.pdf"}},
    ]


@pytest.fixture
def store(hits):
    return FakeVectorStore(hits, collections=[{"name": "docs", "count": 3}])


@pytest.fixture
def reranker():
    return FakeReranker()


@pytest.fixture
def counting_registry():
    return CountingRegistry()
