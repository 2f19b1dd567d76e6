"""Tests for workflow files and the workflow catalog."""

import json

import pytest

from vaiflow.exceptions import WorkflowValidationError
from vaiflow.loader import WorkflowCatalog, load_workflow

YAML_WORKFLOW = """
name: research
description: Answer from the knowledge base
inputs:
  question:
    type: string
    required: true
steps:
  - id: find
    tool: query
    inputs:
      query: "{{ inputs.question }}"
"""


def _write_json(path, name, description=None):
    path.write_text(json.dumps({"name": name, "description": description, "steps": [{"id": "a", "tool": "echo"}]}))


def test_load_yaml_and_json(tmp_path):
    (tmp_path / "research.yaml").write_text(YAML_WORKFLOW)
    _write_json(tmp_path / "other.json", "other")

    research = load_workflow(tmp_path / "research.yaml")
    assert research.name == "research"
    assert research.inputs["question"].required is True
    assert research.steps[0].inputs == {"query": "{{ inputs.question }}"}
    assert load_workflow(str(tmp_path / "other.json")).name == "other"


def test_load_by_name_from_search_paths(tmp_path):
    (tmp_path / "research.yml").write_text(YAML_WORKFLOW)
    assert load_workflow("research", [tmp_path / "missing", tmp_path]).name == "research"
    with pytest.raises(FileNotFoundError):
        load_workflow("unknown", [tmp_path])


def test_invalid_files_raise_validation_errors(tmp_path):
    (tmp_path / "list.yaml").write_text("- just\n- a list\n")
    (tmp_path / "broken.json").write_text("{not json")
    (tmp_path / "bad.json").write_text(json.dumps({"steps": [{"id": "a"}]}))

    with pytest.raises(WorkflowValidationError):
        load_workflow(tmp_path / "list.yaml")
    with pytest.raises(WorkflowValidationError):
        load_workflow(tmp_path / "broken.json")
    with pytest.raises(WorkflowValidationError) as excinfo:
        load_workflow(tmp_path / "bad.json")
    joined = "\n".join(excinfo.value.errors)
    assert "name" in joined
    assert "steps.0.tool" in joined


def test_catalog_caches_until_refresh(tmp_path):
    _write_json(tmp_path / "one.json", "one", "First")
    catalog = WorkflowCatalog([tmp_path])
    assert [d.name for d in catalog.list()] == ["one"]

    _write_json(tmp_path / "two.json", "two")
    assert [d.name for d in catalog.list()] == ["one"]
    assert [d.name for d in catalog.list(force_refresh=True)] == ["one", "two"]

    (tmp_path / "three.yaml").write_text("name: three\nsteps:\n  - id: a\n    tool: echo\n")
    catalog.invalidate()
    assert len(catalog.list()) == 3
    assert catalog.get("three").name == "three"
    with pytest.raises(FileNotFoundError):
        catalog.get("four")


def test_catalog_skips_broken_files(tmp_path):
    _write_json(tmp_path / "good.json", "good")
    (tmp_path / "bad.json").write_text("[]")
    catalog = WorkflowCatalog([tmp_path])
    assert [d.name for d in catalog.list()] == ["good"]
    assert set(catalog.paths()) == {"bad", "good"}
