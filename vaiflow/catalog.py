"""Static reference data: the model catalog, concept explanations and cost estimates."""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .constants import DEFAULT_EMBED_MODEL

AVG_TOKENS_PER_DOC = 500
AVG_TOKENS_PER_QUERY = 50
MAX_SUGGESTIONS = 5


class ModelInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: str
    context: str
    dimensions: str
    price: str
    price_per_m_tokens: Optional[float] = None
    best_for: str
    legacy: bool = False
    unreleased: bool = False

    @property
    def current(self) -> bool:
        return not self.legacy and not self.unreleased


_FLEXIBLE_DIMS = "1024 (default), 256, 512, 2048"

MODEL_CATALOG: Tuple[ModelInfo, ...] = (
    ModelInfo(name="voyage-4-large", type="embedding", context="32K", dimensions=_FLEXIBLE_DIMS,
              price="$0.12/1M tokens", price_per_m_tokens=0.12, best_for="Best quality, multilingual"),
    ModelInfo(name="voyage-4", type="embedding", context="32K", dimensions=_FLEXIBLE_DIMS,
              price="$0.06/1M tokens", price_per_m_tokens=0.06, best_for="Balanced quality/perf"),
    ModelInfo(name="voyage-4-lite", type="embedding", context="32K", dimensions=_FLEXIBLE_DIMS,
              price="$0.02/1M tokens", price_per_m_tokens=0.02, best_for="Lowest cost"),
    ModelInfo(name="voyage-code-3", type="embedding", context="32K", dimensions=_FLEXIBLE_DIMS,
              price="$0.18/1M tokens", price_per_m_tokens=0.18, best_for="Code retrieval"),
    ModelInfo(name="voyage-finance-2", type="embedding", context="32K", dimensions="1024",
              price="$0.12/1M tokens", price_per_m_tokens=0.12, best_for="Finance"),
    ModelInfo(name="voyage-law-2", type="embedding", context="16K", dimensions="1024",
              price="$0.12/1M tokens", price_per_m_tokens=0.12, best_for="Legal"),
    ModelInfo(name="voyage-context-3", type="embedding", context="32K", dimensions=_FLEXIBLE_DIMS,
              price="$0.18/1M tokens", price_per_m_tokens=0.18, best_for="Contextualized chunks"),
    ModelInfo(name="voyage-multimodal-3.5", type="embedding", context="32K", dimensions=_FLEXIBLE_DIMS,
              price="$0.12/M + $0.60/B px", price_per_m_tokens=0.12, best_for="Text + images + video"),
    ModelInfo(name="rerank-2.5", type="reranking", context="32K", dimensions="-",
              price="$0.05/1M tokens", price_per_m_tokens=0.05, best_for="Best quality reranking"),
    ModelInfo(name="rerank-2.5-lite", type="reranking", context="32K", dimensions="-",
              price="$0.02/1M tokens", price_per_m_tokens=0.02, best_for="Fast reranking"),
)


def find_model(name: str) -> Optional[ModelInfo]:
    return next((m for m in MODEL_CATALOG if m.name == name), None)


def list_models(category: str = "all") -> List[ModelInfo]:
    """Current models, optionally restricted to ``embedding`` or ``reranking``."""
    models = [m for m in MODEL_CATALOG if m.current]
    if category != "all":
        models = [m for m in models if m.type == category]
    return models


class Concept(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    summary: str
    content: str
    links: List[str] = Field(default_factory=list)


_EMBEDDING_DOCS = "https://www.mongodb.com/docs/voyageai/models/text-embeddings/"
_RERANKER_DOCS = "https://www.mongodb.com/docs/voyageai/models/rerankers/"
_VECTOR_SEARCH_DOCS = "https://www.mongodb.com/docs/atlas/atlas-vector-search/vector-search-stage/"

CONCEPTS: Dict[str, Concept] = {
    "embeddings": Concept(
        title="Embeddings",
        summary="What are vector embeddings?",
        content=(
            "An embedding is a fixed-size array of floats (usually 256 to 2048 numbers) that a "
            "model produces for a piece of text or an image. Inputs with similar meaning land "
            "close to each other in that space even when they share no words.\n\n"
            "Voyage 4 models default to 1024 dimensions and can be truncated to fewer dimensions, "
            "trading a little accuracy for cheaper storage and faster search. The voyage-4 family "
            "shares one embedding space, so queries and documents may use different models."
        ),
        links=[_EMBEDDING_DOCS],
    ),
    "reranking": Concept(
        title="Reranking",
        summary="Two-stage retrieval with rerankers",
        content=(
            "A reranker scores each candidate document together with the query instead of "
            "comparing two independently computed vectors. That cross-attention catches relevance "
            "signals an embedding search misses.\n\n"
            "Rerankers are slower than vector search, so they run on a small candidate set that "
            "vector search produced first. rerank-2.5 also follows instructions written into the query."
        ),
        links=[_RERANKER_DOCS],
    ),
    "vector-search": Concept(
        title="Vector Search",
        summary="MongoDB Atlas Vector Search",
        content=(
            "Vector search finds the stored embeddings nearest to a query embedding. Atlas runs it "
            "as the $vectorSearch aggregation stage against a vector index on the embedding field.\n\n"
            "numCandidates controls how many neighbours the approximate search considers before "
            "returning the top results; a larger value improves recall at some latency cost. "
            "A pre-filter restricts the search to documents matching indexed fields."
        ),
        links=[_VECTOR_SEARCH_DOCS],
    ),
    "rag": Concept(
        title="RAG (Retrieval-Augmented Generation)",
        summary="Retrieval-Augmented Generation",
        content=(
            "RAG answers a question by first retrieving relevant passages from a knowledge base "
            "and then asking a language model to answer using only those passages.\n\n"
            "The retrieval half is embed, vector search, rerank. The generation half puts the "
            "retrieved text in the prompt with source labels so the answer can cite them."
        ),
        links=["https://www.mongodb.com/docs/voyageai/tutorials/rag-voyageai-mongodb/"],
    ),
    "cosine-similarity": Concept(
        title="Cosine Similarity",
        summary="Measuring vector distance",
        content=(
            "Cosine similarity is the cosine of the angle between two vectors: the dot product "
            "divided by the product of their lengths. It ranges from -1 to 1, and for text "
            "embeddings higher means more similar.\n\n"
            "Voyage embeddings are normalized to length 1, so cosine similarity equals the dot product."
        ),
        links=[_VECTOR_SEARCH_DOCS],
    ),
    "two-stage-retrieval": Concept(
        title="Two-Stage Retrieval",
        summary="The embed, search, rerank pattern",
        content=(
            "Stage one uses vector search to pull a broad candidate set cheaply (high recall). "
            "Stage two reranks those candidates precisely and keeps the best few (high precision).\n\n"
            "A common setting is to fetch four times the number of results you need and rerank "
            "them down to the final count."
        ),
        links=[_RERANKER_DOCS],
    ),
    "input-type": Concept(
        title="Input Type",
        summary="Query vs document embedding types",
        content=(
            "Embedding requests may declare whether the text is a query or a document. The model "
            "prepends a different internal prompt for each, which improves asymmetric retrieval "
            "where short questions are matched against long passages.\n\n"
            "Embed stored text as documents and search text as queries."
        ),
        links=[_EMBEDDING_DOCS],
    ),
    "models": Concept(
        title="Models",
        summary="Choosing the right model",
        content=(
            "voyage-4-large gives the best quality, voyage-4 balances quality and cost, and "
            "voyage-4-lite is the cheapest. Domain models exist for code, finance and law, and "
            "voyage-multimodal-3.5 embeds images and video alongside text.\n\n"
            "For reranking, rerank-2.5 is the most accurate and rerank-2.5-lite the fastest."
        ),
        links=["https://www.mongodb.com/docs/voyageai/models/"],
    ),
    "api-keys": Concept(
        title="API Keys",
        summary="Managing API keys in Atlas",
        content=(
            "Model API keys are created in the Atlas UI under the AI models section of a project. "
            "Keep them out of source control and supply them through the environment or a config "
            "file with restricted permissions.\n\n"
            "Rotate a key by creating a new one, deploying it, then revoking the old one."
        ),
        links=["https://www.mongodb.com/docs/voyageai/management/api-keys/"],
    ),
    "batch-processing": Concept(
        title="Batch Processing",
        summary="Embedding large datasets efficiently",
        content=(
            "Send many texts per embedding request instead of one at a time; the API accepts "
            "batches up to a token and item limit. Chunk long documents first so every chunk "
            "fits the model's context window.\n\n"
            "Run a small batch end to end before processing the full corpus."
        ),
        links=[_EMBEDDING_DOCS],
    ),
}

CONCEPT_ALIASES: Dict[str, str] = {
    "embed": "embeddings",
    "embedding": "embeddings",
    "rerank": "reranking",
    "vectors": "vector-search",
    "vectorsearch": "vector-search",
    "search": "vector-search",
    "cosine": "cosine-similarity",
    "similarity": "cosine-similarity",
    "two-stage": "two-stage-retrieval",
    "twostage": "two-stage-retrieval",
    "inputtype": "input-type",
    "model": "models",
    "keys": "api-keys",
    "apikeys": "api-keys",
    "api-key": "api-keys",
    "batch": "batch-processing",
    "batching": "batch-processing",
}

TOPIC_CATEGORIES: Dict[str, List[str]] = {
    "Core Concepts": ["embeddings", "vector-search", "rag", "cosine-similarity", "input-type", "two-stage-retrieval"],
    "Models & Pricing": ["models"],
    "API & Configuration": ["api-keys", "batch-processing"],
    "Reranking": ["reranking"],
}


def resolve_concept(topic: Optional[str]) -> Optional[str]:
    """Canonical concept key for ``topic`` by exact name or alias."""
    if not topic:
        return None
    normalized = topic.strip().lower()
    if normalized in CONCEPTS:
        return normalized
    return CONCEPT_ALIASES.get(normalized)


def suggest_topics(text: str, keys: Optional[List[str]] = None) -> List[Dict[str, str]]:
    """Rank concepts by substring and word overlap with ``text``, best first."""
    normalized = text.strip().lower()
    words = [w for w in re.split(r"[\s\-_]+", normalized) if len(w) > 2]
    scored = []
    for key in keys if keys is not None else list(CONCEPTS):
        concept = CONCEPTS[key]
        haystack = f"{key} {concept.title} {concept.summary}".lower()
        score = 0
        if normalized and normalized in key:
            score += 10
        if normalized and normalized in haystack:
            score += 5
        for word in words:
            if word in key:
                score += 3
            if word in haystack:
                score += 1
        if score > 0:
            scored.append((score, key))
    # sort is stable, so ties keep catalog order
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [
        {"topic": key, "title": CONCEPTS[key].title, "summary": CONCEPTS[key].summary}
        for _, key in scored[:MAX_SUGGESTIONS]
    ]


class CostEstimate(BaseModel):
    model: str
    price_per_m_tokens: float
    embedding_cost: float
    monthly_query_cost: float
    total_cost: float


def estimate_cost(model: ModelInfo, docs: int, queries: int, months: int) -> CostEstimate:
    price = model.price_per_m_tokens or 0.0
    embedding = docs * AVG_TOKENS_PER_DOC / 1_000_000 * price
    monthly = queries * AVG_TOKENS_PER_QUERY / 1_000_000 * price
    return CostEstimate(
        model=model.name,
        price_per_m_tokens=price,
        embedding_cost=round(embedding, 4),
        monthly_query_cost=round(monthly, 4),
        total_cost=round(embedding + monthly * months, 4),
    )


def estimate_costs(docs: int, queries: int = 0, months: int = 12) -> List[CostEstimate]:
    """Estimates for every current, priced embedding model, cheapest first."""
    models = [m for m in list_models("embedding") if m.price_per_m_tokens]
    estimates = [estimate_cost(m, docs, queries, months) for m in models]
    return sorted(estimates, key=lambda e: e.total_cost)


def recommended_model(estimates: List[CostEstimate]) -> str:
    return estimates[0].model if estimates else DEFAULT_EMBED_MODEL
