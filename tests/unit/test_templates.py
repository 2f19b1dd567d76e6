"""Tests for template resolution and reference extraction."""

from vaiflow.expressions import MISSING
from vaiflow.templates import (
    condition_references,
    evaluate_condition,
    extract_dependencies,
    is_template,
    resolve,
    resolve_template,
    template_errors,
)

SCOPE = {
    "inputs": {"query": "hello", "limit": 3},
    "defaults": {"db": "main"},
    "search": {"output": {"results": [{"text": "a"}, {"text": "b"}], "result_count": 2}},
}


def test_whole_string_reference_keeps_native_type():
    assert resolve("{{ inputs.limit }}", SCOPE) == 3
    assert resolve("{{search.output.results}}", SCOPE) == [{"text": "a"}, {"text": "b"}]


def test_mixed_string_interpolates():
    assert resolve("Found {{ search.output.result_count }} for {{ inputs.query }}", SCOPE) == (
        "Found 2 for hello"
    )


def test_plain_string_is_unchanged():
    assert resolve("no markers here", SCOPE) == "no markers here"
    assert not is_template("no markers here")


def test_unknown_reference_resolves_missing_and_interpolates_empty():
    assert resolve("{{ nothing.here }}", SCOPE) is MISSING
    assert resolve("x{{ nothing.here }}y", SCOPE) == "xy"


def test_resolve_template_walks_containers():
    value = {
        "query": "{{ inputs.query }}",
        "items": ["{{ inputs.limit }}", "{{ nope }}", 7],
        "nested": {"db": "{{ defaults.db }}", "gone": "{{ nope }}"},
    }
    assert resolve_template(value, SCOPE) == {
        "query": "hello",
        "items": [3, None, 7],
        "nested": {"db": "main"},
    }


def test_extract_dependencies_ignores_workflow_roots():
    inputs = {
        "query": "{{ inputs.query }}",
        "docs": "{{ search.output.results }}",
        "text": "{{ summarize.output.text }} in {{ defaults.db }}",
        "each": "{{ item.text }}",
    }
    assert extract_dependencies(inputs) == {"search", "summarize"}


def test_template_errors_are_reported():
    assert template_errors({"a": "{{ inputs.query ==== }}", "b": "{{ ok }}"})
    assert template_errors({"b": "{{ ok }}"}) == []


def test_condition_with_and_without_markers():
    assert evaluate_condition("{{ search.output.result_count > 1 }}", SCOPE)
    assert evaluate_condition("search.output.result_count > 1", SCOPE)
    assert not evaluate_condition("{{ search.output.missing }}", SCOPE)
    assert [str(p) for p in condition_references("search.output.result_count > inputs.limit")] == [
        "search.output.result_count",
        "inputs.limit",
    ]


def test_malformed_condition_is_false():
    assert evaluate_condition("inputs.limit >", SCOPE) is False
