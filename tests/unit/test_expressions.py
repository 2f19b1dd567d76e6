"""Tests for the restricted expression language."""

import pytest

from vaiflow.expressions import (
    MISSING,
    ExpressionError,
    evaluate_expression,
    is_truthy,
    parse_expression,
    parse_path,
    to_text,
)
from vaiflow.templates import evaluate_condition

SCOPE = {
    "inputs": {"query": "hello", "limit": 3, "flag": True, "empty": ""},
    "search": {"output": {"results": [{"text": "a", "score": 0.9}, {"text": "b"}], "result_count": 2}},
}


def test_parse_path_with_index():
    path = parse_path("search.output.results[1].text")
    assert path.root == "search"
    assert str(path) == "search.output.results[1].text"


def test_parse_path_rejects_bad_segment():
    with pytest.raises(ExpressionError):
        parse_path("search..output")


@pytest.mark.parametrize(
    "expression,expected",
    [
        ("inputs.query", "hello"),
        ("search.output.results[0].score", 0.9),
        ("search.output.results.length", 2),
        ("inputs.limit > 2", True),
        ("inputs.limit >= 4", False),
        ("inputs.query == 'hello'", True),
        ("inputs.limit === '3'", False),
        ("inputs.limit == 3 && inputs.flag", True),
        ("!inputs.flag || inputs.limit < 1", False),
        ("inputs.query + ' world'", "hello world"),
        ("inputs.limit + 2", 5),
        ("(inputs.limit > 5) || true", True),
    ],
)
def test_evaluate_expression(expression, expected):
    assert evaluate_expression(expression, SCOPE) == expected


def test_unknown_paths_are_missing():
    assert evaluate_expression("nope.value", SCOPE) is MISSING
    assert evaluate_expression("search.output.results[5].text", SCOPE) is MISSING
    assert not MISSING


def test_missing_compares_false_for_ordering():
    assert evaluate_expression("nope > 1", SCOPE) is False
    assert evaluate_expression("nope == null", SCOPE) is True


def test_malformed_expression_resolves_to_missing():
    assert evaluate_expression("inputs.query ===", SCOPE) is MISSING
    with pytest.raises(ExpressionError):
        parse_expression("inputs.query $ 2")


@pytest.mark.parametrize(
    "value,expected",
    [([], True), ({}, True), ([0], True), ("", False), (0, False), (float("nan"), False), (None, False), (MISSING, False)],
)
def test_is_truthy(value, expected):
    assert is_truthy(value) is expected


def test_empty_results_still_satisfy_a_condition():
    scope = {"search": {"output": {"results": []}}}
    assert evaluate_condition("{{ search.output.results }}", scope) is True
    assert evaluate_condition("!search.output.results", scope) is False


def test_to_text_renders_json_for_containers():
    assert to_text({"a": 1}) == '{"a": 1}'
    assert to_text(True) == "true"
    assert to_text(None) == "null"
    assert to_text(2.0) == "2"
    assert to_text(MISSING) == ""
