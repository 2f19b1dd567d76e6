"""Chat turn drivers.

``chat_turn`` runs the fixed pipeline (retrieve once, then stream the
answer). ``agent_chat_turn`` lets the model call registered tools in a
bounded loop. Both are async generators of :mod:`vaiflow.chat.events`.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, AsyncIterator, Dict, List, Optional

from ..config import ChatConfig
from ..constants import (
    DEFAULT_AGENT_HISTORY_BUDGET,
    DEFAULT_HISTORY_BUDGET,
    DEFAULT_MAX_ITERATIONS,
    INJECTABLE_DEFAULTS,
    MAX_ITERATIONS_FALLBACK,
)
from ..contracts import ToolCall
from ..exceptions import UnknownToolError
from ..llm import LLMProvider, TokenUsage
from ..registry import ToolRegistry
from ..retrieval import Retriever
from .events import ChunkEvent, DoneEvent, HistoryEvent, RetrievalEvent, ToolCallEvent, TurnEvent
from .history import ChatHistory
from .prompt import build_agent_messages, build_messages

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


async def _close_stream(stream: Any) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as exc:
        logger.debug(f"Ignoring error while closing model stream: {exc}")


async def chat_turn(
    query: str,
    *,
    retriever: Retriever,
    llm: LLMProvider,
    history: ChatHistory,
    db: Optional[str] = None,
    collection: Optional[str] = None,
    system_prompt: Optional[str] = None,
    history_budget: int = DEFAULT_HISTORY_BUDGET,
    **retrieval_options: Any,
) -> AsyncIterator[TurnEvent]:
    """Retrieve context, then stream the model's answer fragment by fragment.

    The user and assistant turns are recorded only once the answer is
    complete, so an abandoned turn leaves the history untouched.
    """
    started = time.perf_counter()
    retrieval = await retriever.retrieve(query, db, collection, **retrieval_options)
    docs = retrieval.documents
    yield RetrievalEvent(documents=docs, time_ms=retrieval.time_ms, tokens=retrieval.tokens)

    prior = history.messages_with_budget(history_budget)
    messages = build_messages(query, docs, prior, system_prompt)
    yield HistoryEvent(turn_count=len(prior) // 2, message_count=len(messages))

    parts: List[str] = []
    usage = TokenUsage()
    stream = llm.stream_chat(messages)
    try:
        async for item in stream:
            if isinstance(item, TokenUsage):
                usage = item
                continue
            parts.append(item)
            yield ChunkEvent(text=item)
    finally:
        await _close_stream(stream)

    full_response = "".join(parts)
    generation_ms = round(_elapsed_ms(started) - retrieval.time_ms, 3)

    await history.add_turn("user", query)
    await history.add_turn(
        "assistant",
        full_response,
        context=docs,
        metadata={
            "llm_provider": llm.name,
            "llm_model": llm.model,
            "retrieval_time_ms": retrieval.time_ms,
            "generation_time_ms": generation_ms,
            "context_docs_used": len(docs),
        },
    )

    yield DoneEvent(
        full_response=full_response,
        sources=[{"source": doc.source, "score": doc.score} for doc in docs],
        metadata={
            "retrieval_time_ms": retrieval.time_ms,
            "generation_time_ms": generation_ms,
            "tokens": {
                "embed": retrieval.tokens.embed,
                "rerank": retrieval.tokens.rerank,
                "llm_input": usage.input_tokens,
                "llm_output": usage.output_tokens,
            },
            "llm_model": llm.model,
            "llm_provider": llm.name,
            "context_docs_used": len(docs),
        },
    )


async def _call_tool(
    registry: ToolRegistry, visible: List[str], name: str, arguments: Dict[str, Any]
) -> tuple[Any, str, Optional[str]]:
    """Invoke a tool for the model; failures come back as error text."""
    try:
        if name not in visible:
            raise UnknownToolError(name, visible)
        result = await registry.invoke(name, arguments)
    except Exception as exc:
        logger.debug(f"Tool {name} failed inside agent loop: {exc}")
        return None, f"Error: {exc}", str(exc)
    text = result.text or json.dumps(result.structured, default=str)
    return result.structured, text, None


async def agent_chat_turn(
    query: str,
    *,
    llm: LLMProvider,
    registry: ToolRegistry,
    history: ChatHistory,
    db: Optional[str] = None,
    collection: Optional[str] = None,
    system_prompt: Optional[str] = None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    history_budget: int = DEFAULT_AGENT_HISTORY_BUDGET,
) -> AsyncIterator[TurnEvent]:
    """Let the model answer, calling tools as often as it needs.

    Each iteration asks the model once. Tool results (errors included) are
    fed back as tool messages. After ``max_iterations`` model calls without
    a text answer the turn ends with a fixed fallback message.
    """
    started = time.perf_counter()
    prior = history.messages_with_budget(history_budget)
    messages: List[Dict[str, Any]] = build_agent_messages(
        query, prior, system_prompt, db=db, collection=collection
    )
    yield HistoryEvent(turn_count=len(prior) // 2, message_count=len(messages))

    tools = registry.definitions(llm.tool_format)
    visible = [spec.name for spec in registry if spec.agent_visible]
    defaults = {"db": db, "collection": collection}
    call_log: List[ToolCall] = []
    usage = TokenUsage()

    for iteration in range(max_iterations):
        response = await llm.chat_with_tools(messages, tools)
        if response.usage is not None:
            usage = usage + response.usage

        if response.type == "text":
            yield ChunkEvent(text=response.content)
            async for event in _finish_agent_turn(
                query, response.content, llm, history, call_log, usage, started,
                iterations=iteration + 1, limit_reached=False,
            ):
                yield event
            return

        messages.append(llm.format_assistant_tool_call(response))
        for call in response.calls:
            arguments = registry.inject_defaults(call.name, call.arguments, defaults, INJECTABLE_DEFAULTS)
            call_started = time.perf_counter()
            structured, text, error = await _call_tool(registry, visible, call.name, arguments)
            messages.append(llm.format_tool_result(call.id, call.name, text, error is not None))
            entry = ToolCall(
                name=call.name,
                arguments=arguments,
                result=structured,
                text=text,
                error=error,
                elapsed_ms=_elapsed_ms(call_started),
                call_id=call.id,
            )
            call_log.append(entry)
            yield ToolCallEvent(call=entry)

    logger.info(f"Agent turn hit the iteration limit of {max_iterations}")
    yield ChunkEvent(text=MAX_ITERATIONS_FALLBACK)
    async for event in _finish_agent_turn(
        query, MAX_ITERATIONS_FALLBACK, llm, history, call_log, usage, started,
        iterations=max_iterations, limit_reached=True,
    ):
        yield event


async def _finish_agent_turn(
    query: str,
    answer: str,
    llm: LLMProvider,
    history: ChatHistory,
    call_log: List[ToolCall],
    usage: TokenUsage,
    started: float,
    *,
    iterations: int,
    limit_reached: bool,
) -> AsyncIterator[TurnEvent]:
    total_ms = _elapsed_ms(started)
    metadata: Dict[str, Any] = {
        "mode": "agent",
        "llm_provider": llm.name,
        "llm_model": llm.model,
        "tool_call_count": len(call_log),
        "iteration_count": iterations,
        "total_time_ms": total_ms,
    }
    if limit_reached:
        metadata["max_iterations_reached"] = True

    await history.add_turn("user", query)
    await history.add_turn("assistant", answer, metadata=metadata)

    yield DoneEvent(
        full_response=answer,
        tool_calls=list(call_log),
        metadata={
            **metadata,
            "tokens": {"llm_input": usage.input_tokens, "llm_output": usage.output_tokens},
        },
    )


class ChatSession:
    """One conversation: owns its history and picks the turn driver by mode."""

    def __init__(
        self,
        llm: LLMProvider,
        *,
        retriever: Optional[Retriever] = None,
        registry: Optional[ToolRegistry] = None,
        history: Optional[ChatHistory] = None,
        config: Optional[ChatConfig] = None,
        db: Optional[str] = None,
        collection: Optional[str] = None,
    ) -> None:
        self.config = config or ChatConfig()
        if self.config.mode == "agent" and registry is None:
            raise ValueError("Agent mode needs a tool registry")
        if self.config.mode == "pipeline" and retriever is None:
            raise ValueError("Pipeline mode needs a retriever")
        self.llm = llm
        self.retriever = retriever
        self.registry = registry
        self.history = history or ChatHistory(max_turns=self.config.max_turns)
        self.db = db
        self.collection = collection

    @property
    def session_id(self) -> str:
        return self.history.session_id

    async def resume(self) -> bool:
        """Load earlier turns of this session; ``False`` starts fresh."""
        return await self.history.load()

    def turn(self, query: str) -> AsyncIterator[TurnEvent]:
        cfg = self.config
        if cfg.mode == "agent":
            return agent_chat_turn(
                query,
                llm=self.llm,
                registry=self.registry,
                history=self.history,
                db=self.db,
                collection=self.collection,
                system_prompt=cfg.system_prompt,
                max_iterations=cfg.max_iterations,
                history_budget=cfg.agent_history_budget,
            )
        return chat_turn(
            query,
            retriever=self.retriever,
            llm=self.llm,
            history=self.history,
            db=self.db,
            collection=self.collection,
            system_prompt=cfg.system_prompt,
            history_budget=cfg.history_budget,
        )
