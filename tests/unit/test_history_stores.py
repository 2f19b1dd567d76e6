"""Tests for chat history store backends."""

import pytest

from vaiflow.config import VaiflowConfig
from vaiflow.contracts import ChatTurn, RetrievedDocument
from vaiflow.persistence import (
    InMemoryHistoryStore,
    SQLiteHistoryStore,
    get_history_store,
)


@pytest.fixture(params=["memory", "sqlite"])
def history_store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryHistoryStore()
    else:
        store = SQLiteHistoryStore(tmp_path / "history.db")
        yield store
        store.close()


@pytest.mark.asyncio
async def test_append_and_load_in_order(history_store):
    for i in range(5):
        await history_store.append_turn("s1", ChatTurn(role="user", content=f"m{i}"))
    turns = await history_store.load_turns("s1")
    assert [t.content for t in turns] == ["m0", "m1", "m2", "m3", "m4"]

    latest = await history_store.load_turns("s1", limit=2)
    assert [t.content for t in latest] == ["m3", "m4"]


@pytest.mark.asyncio
async def test_context_and_metadata_round_trip(history_store):
    turn = ChatTurn(
        role="assistant",
        content="answer",
        context=[RetrievedDocument(text="doc", source="a.md", score=0.4)],
        metadata={"llm_model": "m"},
    )
    await history_store.append_turn("s1", turn)
    [loaded] = await history_store.load_turns("s1")
    assert loaded.context[0].source == "a.md"
    assert loaded.metadata == {"llm_model": "m"}
    assert loaded.timestamp == turn.timestamp


@pytest.mark.asyncio
async def test_list_and_delete_sessions(history_store):
    await history_store.append_turn("s1", ChatTurn(role="user", content="first question"))
    await history_store.append_turn("s1", ChatTurn(role="assistant", content="reply"))
    await history_store.append_turn("s2", ChatTurn(role="assistant", content="hello"))

    sessions = {s.session_id: s for s in await history_store.list_sessions()}
    assert sessions["s1"].first_message == "first question"
    assert sessions["s1"].turn_count == 2
    assert sessions["s2"].first_message == "(continued)"

    await history_store.delete_session("s1")
    assert await history_store.load_turns("s1") == []
    assert [s.session_id for s in await history_store.list_sessions()] == ["s2"]


def test_get_history_store_selects_backend(tmp_path, monkeypatch):
    monkeypatch.delenv("VAIFLOW_HISTORY_URL", raising=False)
    assert isinstance(get_history_store(config=VaiflowConfig()), InMemoryHistoryStore)

    store = get_history_store(f"sqlite://{tmp_path / 'h.db'}")
    assert isinstance(store, SQLiteHistoryStore)
    store.close()

    with pytest.raises(ValueError):
        get_history_store("postgresql://localhost/db")
