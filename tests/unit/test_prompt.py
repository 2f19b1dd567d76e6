"""Tests for prompt assembly."""

from vaiflow.chat.prompt import (
    AGENT_SYSTEM_PROMPT,
    DEFAULT_SYSTEM_PROMPT,
    build_agent_messages,
    build_messages,
    build_system_prompt,
    format_context_block,
    format_history_recap,
)
from vaiflow.contracts import RetrievedDocument


def test_context_block_lists_sources_and_scores():
    block = format_context_block(
        [
            RetrievedDocument(text="first", source="a.md", score=0.912),
            RetrievedDocument(text="second", source="b.md"),
        ]
    )
    assert block.startswith("--- Context Documents ---")
    assert "[Source: a.md | Relevance: 0.91]" in block
    assert "[Source: b.md | Relevance: N/A]" in block
    assert block.endswith("--- End Context ---")
    assert format_context_block([]) == ""


def test_custom_prompt_is_appended():
    assert build_system_prompt() == DEFAULT_SYSTEM_PROMPT
    prompt = build_system_prompt("Answer in French.")
    assert prompt.startswith(DEFAULT_SYSTEM_PROMPT)
    assert prompt.endswith("## Additional Instructions\n\nAnswer in French.")


def test_history_recap_truncates_long_turns():
    recap = format_history_recap([{"role": "user", "content": "x" * 600}, {"role": "assistant", "content": "ok"}])
    assert "User: " + "x" * 500 + "..." in recap
    assert "Assistant: ok" in recap


def test_pipeline_messages_order():
    history = [{"role": "user", "content": "earlier"}, {"role": "assistant", "content": "reply"}]
    docs = [RetrievedDocument(text="ctx", source="a.md", score=0.5)]
    messages = build_messages("what now?", docs, history, "Be brief.")

    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[0]["content"].endswith("Be brief.")
    last = messages[-1]["content"]
    assert last.index("--- Conversation History ---") < last.index("--- Context Documents ---")
    assert last.endswith("User question: what now?")


def test_bare_question_without_context_or_history():
    messages = build_messages("hi")
    assert messages[-1] == {"role": "user", "content": "hi"}


def test_agent_messages_mention_active_knowledge_base():
    messages = build_agent_messages("q", db="main", collection="docs", system_prompt="Be nice.")
    system = messages[0]["content"]
    assert system.startswith(AGENT_SYSTEM_PROMPT)
    assert 'database="main"' in system
    assert system.endswith("## Custom instructions\n\nBe nice.")
    assert "Active knowledge base" not in build_agent_messages("q", db="main")[0]["content"]
