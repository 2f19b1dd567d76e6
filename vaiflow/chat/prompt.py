"""Prompt assembly for pipeline and agent chat turns."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from ..constants import HISTORY_RECAP_MAX_CHARS
from ..contracts import RetrievedDocument

DEFAULT_SYSTEM_PROMPT = """\
You are an assistant backed by a retrieval-augmented generation pipeline. \
Your answers are grounded in documents retrieved from the user's knowledge base.

## Conversation memory

You have access to the conversation history from this session. Use it to:
- Understand follow-up questions that reference prior turns (e.g. "tell me more", "compare that to...")
- Maintain continuity across the conversation
- Avoid repeating information you already provided

When the user asks about something from a prior turn, answer from the conversation history. \
You do not need retrieved documents to recall what was already discussed.

## How to use the retrieved context

- Each context document includes a source label and a relevance score (0 to 1). \
Higher scores indicate stronger semantic matches to the user's query.
- Treat documents with scores below 0.3 as weak matches. If only weak matches were \
retrieved, say so rather than forcing an answer from them.
- When documents conflict, surface the discrepancy and let the user decide which to trust.

## Answering rules

1. Ground factual claims in the provided context. Do not supplement with outside knowledge \
unless you explicitly flag it as such (e.g. "Outside the retrieved documents, ...").
2. Cite sources inline using the format [Source: <label>]. Use the source labels from the context block.
3. If the context is insufficient, say so directly. Suggest how the user might refine their \
query or expand their knowledge base.
4. Be concise. Prefer short, direct answers. Use lists or structure when it aids clarity.
5. For follow-up questions about new topics, use the newly retrieved context. For follow-ups \
about prior discussion, use the conversation history."""

AGENT_SYSTEM_PROMPT = """\
You are an assistant with access to embedding, vector search and knowledge base tools. \
You can search knowledge bases, embed text, compare documents, explore collections and \
add new content. Use your tools to answer the user's questions accurately.

## Available tools

- **query**: Full retrieval pipeline (embed, vector search, rerank). Use this as your primary \
tool for answering questions from the knowledge base.
- **search**: Raw vector search without reranking. Faster, useful for exploratory queries.
- **rerank**: Rerank candidate documents against a query.
- **embed**: Get the raw embedding vector for a text.
- **similarity**: Compare two texts semantically. Returns a cosine similarity score.
- **collections**: List available collections. Call this first if you need to discover \
which knowledge bases exist.
- **ingest**: Add new content to a collection (chunk, embed, store).

## Answering rules

1. Always use tools to retrieve information before answering. Do not guess or make up facts.
2. Cite sources from tool results using [Source: <label>] format.
3. You may call multiple tools in sequence. For example: collections to discover \
collections, then query to search one.
4. If a tool returns no results or errors, explain what happened and suggest alternatives.
5. Be concise. Prefer short, direct answers. Use lists or structure when it aids clarity.
6. If the user asks you to ingest content, use ingest. Confirm what was stored."""

Message = Dict[str, str]


def format_context_block(docs: Optional[Sequence[RetrievedDocument]]) -> str:
    if not docs:
        return ""
    lines = ["--- Context Documents ---", ""]
    for doc in docs:
        source = doc.source or doc.metadata.get("source") or "unknown"
        score = f"{doc.score:.2f}" if doc.score is not None else "N/A"
        lines.append(f"[Source: {source} | Relevance: {score}]")
        lines.append(doc.text or "")
        lines.append("")
    lines.append("--- End Context ---")
    return "\n".join(lines)


def build_system_prompt(custom_prompt: Optional[str] = None) -> str:
    """Base instructions, with custom instructions appended rather than replacing them."""
    if not custom_prompt:
        return DEFAULT_SYSTEM_PROMPT
    return f"{DEFAULT_SYSTEM_PROMPT}\n\n## Additional Instructions\n\n{custom_prompt}"


def format_history_recap(history: Sequence[Message]) -> str:
    """Compact recap of prior turns, embedded in the user message.

    Smaller models tend to lose separate history messages to truncation.
    """
    if not history:
        return ""
    lines = ["--- Conversation History ---", ""]
    for turn in history:
        label = "User" if turn["role"] == "user" else "Assistant"
        content = turn["content"]
        if len(content) > HISTORY_RECAP_MAX_CHARS:
            content = content[:HISTORY_RECAP_MAX_CHARS] + "..."
        lines.append(f"{label}: {content}")
        lines.append("")
    lines.append("--- End History ---")
    return "\n".join(lines)


def _user_message(query: str, *blocks: str) -> Message:
    blocks = tuple(block for block in blocks if block)
    if not blocks:
        return {"role": "user", "content": query}
    return {"role": "user", "content": "\n\n".join(blocks) + f"\n\nUser question: {query}"}


def build_messages(
    query: str,
    context_docs: Sequence[RetrievedDocument] = (),
    history: Sequence[Message] = (),
    system_prompt: Optional[str] = None,
) -> List[Message]:
    """Messages for a pipeline turn: system, prior turns, then the question with context."""
    messages: List[Message] = [{"role": "system", "content": build_system_prompt(system_prompt)}]
    messages.extend({"role": turn["role"], "content": turn["content"]} for turn in history)
    messages.append(
        _user_message(query, format_history_recap(history), format_context_block(context_docs))
    )
    return messages


def build_agent_messages(
    query: str,
    history: Sequence[Message] = (),
    system_prompt: Optional[str] = None,
    db: Optional[str] = None,
    collection: Optional[str] = None,
) -> List[Message]:
    """Messages for an agent turn; the agent fetches its own context through tools."""
    prompt = AGENT_SYSTEM_PROMPT
    if db and collection:
        prompt += (
            "\n\n## Active knowledge base\n\n"
            f'The user has a knowledge base configured: database="{db}", '
            f'collection="{collection}". When using query or search, use these as '
            "defaults unless the user specifies otherwise."
        )
    if system_prompt:
        prompt += f"\n\n## Custom instructions\n\n{system_prompt}"

    messages: List[Message] = [{"role": "system", "content": prompt}]
    messages.extend({"role": turn["role"], "content": turn["content"]} for turn in history)
    messages.append(_user_message(query, format_history_recap(history)))
    return messages
