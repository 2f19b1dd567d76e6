"""Model catalog, topic explanation and cost estimate tools.

These answer from static reference data in :mod:`vaiflow.catalog` and need
no external services.
"""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from ..catalog import (
    CONCEPTS,
    TOPIC_CATEGORIES,
    estimate_cost,
    estimate_costs,
    find_model,
    list_models,
    recommended_model,
    resolve_concept,
    suggest_topics,
)
from ..contracts import ToolResult
from ..exceptions import ToolExecutionError
from ..registry import ToolRegistry


class ModelsArgs(BaseModel):
    category: Literal["embedding", "reranking", "rerank", "all"] = Field(
        "all", description="Filter by model category"
    )


class TopicsArgs(BaseModel):
    search: Optional[str] = Field(None, description="Optional search term to filter topics. Omit to list all topics.")


class ExplainArgs(BaseModel):
    topic: str = Field(..., min_length=1, description="Topic to explain; close matches are accepted")


class EstimateArgs(BaseModel):
    docs: int = Field(1000, ge=1, description="Number of documents to embed")
    queries: int = Field(0, ge=0, description="Number of queries per month")
    months: int = Field(12, ge=1, le=60, description="Time horizon in months")
    model: Optional[str] = Field(None, description="Only estimate this embedding model")


def _explanation(key: str, **extra: Any) -> ToolResult:
    concept = CONCEPTS[key]
    related = [s["topic"] for s in suggest_topics(key, [k for k in CONCEPTS if k != key])[:3]]
    structured = {
        "found": True,
        "topic": key,
        "title": concept.title,
        "summary": concept.summary,
        "text": concept.content,
        "links": list(concept.links),
        "related_topics": related,
        **extra,
    }
    text = f"# {concept.title}\n\n{concept.summary}\n\n{concept.content}"
    if concept.links:
        text += f"\n\nLearn more: {', '.join(concept.links)}"
    if related:
        text += f"\n\nRelated: {', '.join(related)}"
    return ToolResult(structured=structured, text=text)


def register_reference_tools(registry: ToolRegistry) -> None:
    """Register models, topics, explain and estimate."""

    @registry.tool(
        "models",
        "List available embedding and reranking models with capabilities and pricing. "
        "Use when selecting a model or comparing options.",
        ModelsArgs,
        category="reference",
        default_keys=(),
    )
    async def models(args: ModelsArgs) -> ToolResult:
        category = "reranking" if args.category == "rerank" else args.category
        found = list_models(category)
        rows = [
            {"name": m.name, "type": m.type, "dimensions": m.dimensions, "price": m.price, "best_for": m.best_for}
            for m in found
        ]
        lines = [f"{m.name} ({m.type}, {m.price}): {m.best_for}" for m in found]
        return ToolResult(
            structured={"models": rows, "category": category},
            text="\n".join(lines) or f"No {category} models",
        )

    @registry.tool(
        "topics",
        "List the topics that explain can cover, optionally filtered by a search term.",
        TopicsArgs,
        category="reference",
        default_keys=(),
    )
    async def topics(args: TopicsArgs) -> ToolResult:
        if args.search:
            found = suggest_topics(args.search)
            if not found:
                return ToolResult(
                    structured={"search": args.search, "topics": [], "total_topics": len(CONCEPTS)},
                    text=f'No topics matching "{args.search}". Call topics without a search to see all {len(CONCEPTS)}.',
                )
        else:
            found = [{"topic": k, "title": c.title, "summary": c.summary} for k, c in CONCEPTS.items()]
        structured: Dict[str, Any] = {"search": args.search, "topics": found, "total_topics": len(CONCEPTS)}
        if not args.search:
            structured["categories"] = TOPIC_CATEGORIES
        noun = "topic" if len(found) == 1 else "topics"
        matching = f' matching "{args.search}"' if args.search else ""
        lines = "\n".join(f"- {t['topic']}: {t['summary']}" for t in found)
        return ToolResult(structured=structured, text=f"{len(found)} {noun}{matching} available:\n\n{lines}")

    @registry.tool(
        "explain",
        "Explain a retrieval concept (embeddings, vector search, RAG, reranking and more). "
        "Close matches resolve to the best topic; use topics to browse.",
        ExplainArgs,
        category="reference",
        default_keys=(),
    )
    async def explain(args: ExplainArgs) -> ToolResult:
        key = resolve_concept(args.topic)
        if key is not None:
            return _explanation(key)
        suggestions = suggest_topics(args.topic)
        if suggestions:
            best = suggestions[0]["topic"]
            return _explanation(best, matched_from=args.topic)
        return ToolResult(
            structured={
                "found": False,
                "topic": args.topic,
                "text": f'No explanation found for "{args.topic}"',
                "suggestions": [],
                "available": list(CONCEPTS),
            },
            text=f'Unknown topic "{args.topic}". Available topics: {", ".join(CONCEPTS)}',
        )

    @registry.tool(
        "estimate",
        "Estimate embedding and query costs at a given scale. "
        "Use when planning ingestion, budgeting or comparing models.",
        EstimateArgs,
        category="reference",
        default_keys=(),
    )
    async def estimate(args: EstimateArgs) -> ToolResult:
        if args.model:
            info = find_model(args.model)
            if info is None:
                raise ToolExecutionError(f"estimate: unknown model {args.model}")
            estimates = [estimate_cost(info, args.docs, args.queries, args.months)]
        else:
            estimates = estimate_costs(args.docs, args.queries, args.months)
        recommendation = recommended_model(estimates)
        lines = [
            f"{e.model}: embed ${e.embedding_cost} + ${e.monthly_query_cost}/mo queries = ${e.total_cost}"
            for e in estimates
        ]
        return ToolResult(
            structured={
                "input": {"docs": args.docs, "queries": args.queries, "months": args.months},
                "estimates": [e.model_dump() for e in estimates],
                "recommendation": recommendation,
            },
            text=(
                f"Cost estimate for {args.docs} docs, {args.queries} queries/mo over {args.months} months:\n"
                + "\n".join(lines)
                + f"\nRecommended: {recommendation}"
            ),
        )
