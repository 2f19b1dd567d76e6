"""Tests for execution planning and dry-run previews."""

import random

import pytest

from vaiflow.contracts import Step, WorkflowDefinition
from vaiflow.planner import build_dependency_graph, build_execution_plan, preview_plan


def _step(step_id, *deps, **extra):
    inputs = {f"in_{dep}": f"{{{{ {dep}.output }}}}" for dep in deps}
    return Step(id=step_id, tool="echo", inputs=inputs, **extra)


def test_independent_steps_share_a_layer():
    plan = build_execution_plan([_step("a"), _step("b"), _step("c", "a", "b")])
    assert plan.layers == [["a", "b"], ["c"]]


def test_condition_and_foreach_create_dependencies():
    steps = [
        _step("a"),
        Step(id="b", tool="echo", condition="a.output.value > 1"),
        Step(id="c", tool="echo", forEach="{{ b.output.results }}"),
    ]
    assert build_dependency_graph(steps) == {"a": set(), "b": {"a"}, "c": {"b"}}
    assert build_execution_plan(steps).layers == [["a"], ["b"], ["c"]]


def test_cycle_cannot_be_planned():
    with pytest.raises(ValueError):
        build_execution_plan([_step("a", "b"), _step("b", "a")])


@pytest.mark.parametrize("seed", range(5))
def test_layering_properties_on_random_dags(seed):
    rng = random.Random(seed)
    steps = []
    for i in range(12):
        earlier = [s.id for s in steps]
        deps = rng.sample(earlier, k=min(len(earlier), rng.randint(0, 3)))
        steps.append(_step(f"s{i}", *deps))

    plan = build_execution_plan(steps)
    graph = build_dependency_graph(steps)
    flattened = plan.step_ids
    assert sorted(flattened) == sorted(s.id for s in steps)
    assert len(flattened) == len(set(flattened))
    for step_id, deps in graph.items():
        for dep in deps:
            assert plan.layer_of(step_id) > plan.layer_of(dep)


def test_preview_resolves_inputs_and_redacts():
    definition = WorkflowDefinition(
        name="wf",
        steps=[
            Step(
                id="a",
                tool="echo",
                inputs={
                    "query": "{{ inputs.q }}",
                    "api_key": "sk-123",
                    "long": "x" * 200,
                    "many": list(range(20)),
                },
            ),
            Step(id="b", tool="echo", inputs={"value": "{{ a.output.value }}"}, condition="a.output"),
        ],
    )
    plan = build_execution_plan(definition.steps)
    scope = {"inputs": {"q": "hello"}, "defaults": {}}
    first, second = preview_plan(definition, plan, scope)

    assert first.inputs["query"] == "hello"
    assert first.inputs["api_key"] == "***"
    assert first.inputs["long"] == "x" * 120 + "..."
    assert first.inputs["many"] == "[20 items]"
    assert second.layer == 1
    assert second.inputs["value"] == "{{ a.output.value }}"
    assert second.condition == "a.output"


def test_preview_keeps_mixed_templates_until_every_reference_resolves():
    definition = WorkflowDefinition(
        name="wf",
        steps=[
            Step(id="a", tool="echo", inputs={"value": "{{ inputs.q }}"}),
            Step(
                id="b",
                tool="echo",
                inputs={
                    "summary": "Summarize {{ a.output.value }} now",
                    "mixed": "{{ inputs.q }} and {{ a.output.value }}",
                    "greeting": "Hello {{ inputs.q }}!",
                    "nested": ["about {{ a.output.value }}", {"q": "q={{ inputs.q }}"}],
                },
            ),
        ],
    )
    plan = build_execution_plan(definition.steps)
    _, second = preview_plan(definition, plan, {"inputs": {"q": "cats"}, "defaults": {}})

    assert second.inputs["summary"] == "Summarize {{ a.output.value }} now"
    assert second.inputs["mixed"] == "{{ inputs.q }} and {{ a.output.value }}"
    assert second.inputs["greeting"] == "Hello cats!"
    assert second.inputs["nested"] == ["about {{ a.output.value }}", {"q": "q=cats"}]
