"""End-to-end workflow execution against fake services."""

import pytest

from conftest import FakeLLM
from vaiflow.config import RetrievalConfig
from vaiflow.engine import WorkflowEngine, coerce_input, execute_workflow
from vaiflow.exceptions import MissingInputError, StepExecutionError, WorkflowValidationError
from vaiflow.execute import StepCallbacks
from vaiflow.tools import ToolServices, build_default_registry


@pytest.fixture
def registry(embedder, store, reranker):
    return build_default_registry(
        ToolServices(
            embedder=embedder,
            store=store,
            reranker=reranker,
            llm=FakeLLM(chunks=["An ", "answer"]),
            config=RetrievalConfig(model="voyage-4"),
        )
    )


SINGLE_STEP = {
    "name": "single",
    "inputs": {"query": {"type": "string", "required": True}},
    "defaults": {"db": "main", "collection": "docs"},
    "steps": [{"id": "search", "tool": "query", "inputs": {"query": "{{ inputs.query }}"}}],
    "output": {"result": "{{ search.output }}"},
}


@pytest.mark.asyncio
async def test_single_step_output_is_the_tool_result(registry):
    result = await execute_workflow(SINGLE_STEP, registry, {"query": "hello"})
    assert result.plan.layers == [["search"]]
    assert result.output["result"] == result.tool_calls[0].result
    assert result.output["result"]["query"] == "hello"
    assert result.tool_calls[0].arguments["db"] == "main"


@pytest.mark.asyncio
async def test_dry_run_invokes_nothing_and_matches_plan(counting_registry):
    definition = {
        "name": "layers",
        "steps": [
            {"id": "a", "tool": "echo", "inputs": {"value": 1}},
            {"id": "b", "tool": "echo", "inputs": {"value": 2}},
            {"id": "c", "tool": "echo", "inputs": {"value": "{{ a.output.value + b.output.value }}"}},
        ],
    }
    engine = WorkflowEngine(counting_registry)
    dry = await engine.execute_workflow(definition, dry_run=True)
    assert dry.dry_run is True
    assert counting_registry.invocations == []
    assert [p.id for p in dry.preview] == ["a", "b", "c"]

    real = await engine.execute_workflow(definition)
    assert real.plan.layers == dry.plan.layers == [["a", "b"], ["c"]]
    assert real.output["c"] == {"output": {"value": 3}}


@pytest.mark.asyncio
async def test_retrieve_then_generate_pipeline(registry, store):
    definition = {
        "name": "rag",
        "inputs": {"question": {"type": "string", "required": True}, "limit": {"type": "number", "default": 2}},
        "defaults": {"db": "main", "collection": "docs"},
        "steps": [
            {"id": "find", "tool": "search", "inputs": {"query": "{{ inputs.question }}", "limit": "{{ inputs.limit }}"}},
            {
                "id": "rank",
                "tool": "rerank",
                "inputs": {"query": "{{ inputs.question }}", "documents": "{{ find.output.results }}"},
            },
            {
                "id": "answer",
                "tool": "generate",
                "condition": "rank.output.result_count > 0",
                "inputs": {"prompt": "{{ inputs.question }}", "context": "{{ rank.output.results }}"},
            },
            {"id": "never", "tool": "generate", "condition": "find.output.result_count > 10", "inputs": {"prompt": "x"}},
        ],
        "output": {"answer": "{{ answer.output.text }}", "skipped": "{{ never.skipped }}"},
    }
    result = await execute_workflow(definition, registry, {"question": "why?", "limit": "2"})

    assert result.output == {"answer": "An answer", "skipped": True}
    assert result.plan.layers == [["find"], ["rank", "never"], ["answer"]]
    statuses = {r.id: r.status for r in result.steps}
    assert statuses == {"find": "completed", "rank": "completed", "never": "skipped", "answer": "completed"}
    rerank_call = next(c for c in result.tool_calls if c.name == "rerank")
    assert "model" not in rerank_call.arguments
    search_call = next(c for c in result.tool_calls if c.name == "search")
    assert search_call.arguments["limit"] == 2
    assert store.opened == [("main", "docs")]


@pytest.mark.asyncio
async def test_cli_style_db_override(registry, store):
    definition = {**SINGLE_STEP, "defaults": {"db": "main", "collection": "docs"}}
    await execute_workflow(definition, registry, {"query": "q"}, db="other")
    assert store.opened == [("other", "docs")]


@pytest.mark.asyncio
async def test_missing_required_input(registry):
    with pytest.raises(MissingInputError) as excinfo:
        await execute_workflow(SINGLE_STEP, registry, {})
    assert excinfo.value.names == ["query"]


@pytest.mark.asyncio
async def test_invalid_workflow_is_rejected_before_running(counting_registry):
    definition = {
        "name": "cyclic",
        "steps": [
            {"id": "a", "tool": "echo", "inputs": {"value": "{{ b.output }}"}},
            {"id": "b", "tool": "echo", "inputs": {"value": "{{ a.output }}"}},
        ],
    }
    with pytest.raises(WorkflowValidationError) as excinfo:
        await execute_workflow(definition, counting_registry)
    assert any("Circular dependency" in e for e in excinfo.value.errors)
    assert counting_registry.invocations == []


@pytest.mark.asyncio
async def test_step_named_inputs_is_rejected_before_running(counting_registry):
    definition = {
        "name": "shadow",
        "inputs": {"q": {"type": "string"}},
        "steps": [
            {"id": "inputs", "tool": "echo", "inputs": {"value": 1}},
            {"id": "b", "tool": "echo", "inputs": {"value": "{{ inputs.q }}"}},
        ],
    }
    with pytest.raises(WorkflowValidationError) as excinfo:
        await execute_workflow(definition, counting_registry, {"q": "kept"})
    assert excinfo.value.errors == ['Step "inputs": id is reserved']
    assert counting_registry.invocations == []


@pytest.mark.asyncio
async def test_failure_stops_later_layers_and_calls_callbacks(counting_registry):
    events = []
    callbacks = StepCallbacks(
        on_step_start=lambda sid, step: events.append(("start", sid)),
        on_step_complete=lambda sid, output, ms: events.append(("done", sid)),
        on_step_error=lambda sid, exc: events.append(("error", sid)),
    )
    definition = {
        "name": "fails",
        "steps": [
            {"id": "bad", "tool": "fail", "inputs": {"message": "kaput"}},
            {"id": "after", "tool": "echo", "inputs": {"value": "{{ bad.output }}"}},
        ],
    }
    with pytest.raises(StepExecutionError, match='Step "bad" failed: kaput'):
        await execute_workflow(definition, counting_registry, callbacks=callbacks)
    assert events == [("start", "bad"), ("error", "bad")]
    assert [name for name, _ in counting_registry.invocations] == ["fail"]


@pytest.mark.asyncio
async def test_continue_on_error_lets_dependents_run(counting_registry):
    definition = {
        "name": "tolerant",
        "steps": [
            {"id": "bad", "tool": "fail", "continueOnError": True},
            {"id": "after", "tool": "echo", "inputs": {"value": "{{ bad.error }}"}},
        ],
    }
    result = await execute_workflow(definition, counting_registry)
    assert result.output["after"] == {"output": {"value": "boom"}}
    assert result.output["bad"] == {"output": None, "error": "boom"}


def test_coerce_input():
    assert coerce_input("3", "number") == 3
    assert coerce_input("3.5", "number") == 3.5
    assert coerce_input("abc", "number") == "abc"
    assert coerce_input("nan", "number") == "nan"
    assert coerce_input("-inf", "number") == "-inf"
    assert coerce_input("1e999", "number") == "1e999"
    assert coerce_input("true", "boolean") is True
    assert coerce_input("yes", "boolean") is False
    assert coerce_input(7, "string") == 7
