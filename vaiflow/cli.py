"""Command line interface for vaiflow workflows."""

from __future__ import annotations

import asyncio
import importlib
import json
import logging
import traceback
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from .config import load_config
from .contracts import Step, WorkflowDefinition
from .engine import WorkflowEngine
from .exceptions import StepExecutionError, WorkflowValidationError
from .execute import StepCallbacks
from .llm import create_llm_provider
from .loader import WorkflowCatalog, load_workflow
from .registry import ToolRegistry
from .tools import ToolServices, build_default_registry

app = typer.Typer(help="CLI for vaiflow workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for validating and running workflows")

app.add_typer(workflow_app, name="workflow")


@app.callback()
def main() -> None:
    """vaiflow CLI entry point."""
    pass


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_inputs(pairs: Optional[List[str]]) -> Dict[str, str]:
    inputs: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got {pair!r}", param_hint="--input")
        inputs[key.strip()] = value
    return inputs


def _load_services(spec: Optional[str], config_path: Optional[Path]) -> ToolServices:
    """Resolve ``module:attr`` to a :class:`ToolServices` or build one from config."""
    if spec:
        module_name, sep, attr = spec.partition(":")
        if not sep or not attr:
            raise typer.BadParameter("Expected module:attribute", param_hint="--services")
        target: Any = getattr(importlib.import_module(module_name), attr)
        if callable(target) and not isinstance(target, ToolServices):
            target = target()
        if not isinstance(target, ToolServices):
            raise typer.BadParameter(
                f"{spec} did not produce ToolServices", param_hint="--services"
            )
        return target

    config = load_config(str(config_path) if config_path else None)
    return ToolServices(llm=create_llm_provider(config.llm), config=config.retrieval)


def _load_or_exit(path: str, search_paths: Optional[List[Path]] = None) -> WorkflowDefinition:
    try:
        return load_workflow(path, search_paths or [Path.cwd()])
    except FileNotFoundError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    except WorkflowValidationError as exc:
        _print_validation_errors(exc)
        raise typer.Exit(code=1)


def _print_validation_errors(exc: WorkflowValidationError) -> None:
    typer.secho(f"Validation failed ({len(exc.errors)} errors):", fg=typer.colors.RED, err=True)
    for error in exc.errors:
        typer.echo(f"  - {error}", err=True)


def _validated(registry: ToolRegistry, definition: WorkflowDefinition) -> WorkflowDefinition:
    try:
        return WorkflowEngine(registry).validate(definition)
    except WorkflowValidationError as exc:
        _print_validation_errors(exc)
        raise typer.Exit(code=1)


def _progress_callbacks() -> StepCallbacks:
    def start(step_id: str, step: Step) -> None:
        typer.echo(f"> {step_id} ({step.tool})", err=True)

    def complete(step_id: str, output: Any, duration_ms: float) -> None:
        typer.echo(f"  {step_id} done in {duration_ms:.0f}ms", err=True)

    def skip(step_id: str, reason: str) -> None:
        typer.echo(f"  {step_id} skipped: {reason}", err=True)

    def error(step_id: str, exc: BaseException) -> None:
        typer.secho(f"  {step_id} failed: {exc}", fg=typer.colors.RED, err=True)

    return StepCallbacks(
        on_step_start=start, on_step_complete=complete, on_step_skip=skip, on_step_error=error
    )


@workflow_app.command("validate")
def workflow_validate(path: str) -> None:
    """
    Check a workflow file without running it.

    Reports every problem found (unknown tools, bad references, cycles,
    malformed templates) and exits with code 1 when there is any.

    Example:
        vaiflow workflow validate ./workflows/research.yaml
    """
    _configure_logging(False)
    definition = _validated(build_default_registry(), _load_or_exit(path))
    typer.echo(f"Workflow {definition.name} is valid ({len(definition.steps)} steps)")


@workflow_app.command("plan")
def workflow_plan(
    path: str,
    input: Optional[List[str]] = typer.Option(None, "--input", "-i", help="Workflow input key=value"),
) -> None:
    """
    Show the execution layers of a workflow and its resolved step inputs.

    Example:
        vaiflow workflow plan ./research.json --input question="what is RAG?"
    """
    _configure_logging(False)
    registry = build_default_registry()
    definition = _validated(registry, _load_or_exit(path))
    try:
        result = asyncio.run(
            WorkflowEngine(registry).execute_workflow(
                definition, _parse_inputs(input), dry_run=True
            )
        )
    except WorkflowValidationError as exc:
        _print_validation_errors(exc)
        raise typer.Exit(code=1)

    for index, layer in enumerate(result.plan.layers):
        typer.echo(f"Layer {index}: {', '.join(layer)}")
    for preview in result.preview:
        typer.echo(f"- {preview.id} [{preview.tool}]")
        if preview.condition:
            typer.echo(f"    condition: {preview.condition}")
        for key, value in preview.inputs.items():
            typer.echo(f"    {key}: {json.dumps(value, default=str)}")


@workflow_app.command("run")
def workflow_run(
    path: str,
    input: Optional[List[str]] = typer.Option(None, "--input", "-i", help="Workflow input key=value"),
    db: Optional[str] = typer.Option(None, help="Default database for the run"),
    collection: Optional[str] = typer.Option(None, help="Default collection for the run"),
    services: Optional[str] = typer.Option(
        None, help="module:attribute resolving to ToolServices (or a factory for it)"
    ),
    config: Optional[Path] = typer.Option(None, help="Path to a vaiflow.yaml config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging and tracebacks"),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON"),
) -> None:
    """
    Execute a workflow and print its output.

    Steps whose dependencies are satisfied run concurrently, layer by layer.
    A failing step aborts the run with exit code 1.

    Example:
        vaiflow workflow run ./research.yaml --input question="what is RAG?" --db docs
        vaiflow workflow run ./ingest.json --services myapp.services:build --json
    """
    _configure_logging(verbose)
    registry = build_default_registry(_load_services(services, config))
    definition = _validated(registry, _load_or_exit(path))
    engine = WorkflowEngine(registry)
    try:
        result = asyncio.run(
            engine.execute_workflow(
                definition,
                _parse_inputs(input),
                db=db,
                collection=collection,
                callbacks=None if as_json else _progress_callbacks(),
            )
        )
    except WorkflowValidationError as exc:
        _print_validation_errors(exc)
        raise typer.Exit(code=1)
    except StepExecutionError as exc:
        typer.secho(f"Step {exc.step_id} failed: {exc.reason}", fg=typer.colors.RED, err=True)
        if verbose:
            typer.echo(traceback.format_exc(), err=True)
        raise typer.Exit(code=1)

    if as_json:
        typer.echo(result.model_dump_json(indent=2))
        return
    typer.echo(json.dumps(result.output, indent=2, default=str))
    typer.echo(
        f"Completed {len(result.steps)} steps in {result.total_time_ms:.0f}ms",
        err=True,
    )


@workflow_app.command("list")
def workflow_list(
    dir: Optional[List[Path]] = typer.Option(None, "--dir", "-d", help="Directories to scan"),
) -> None:
    """
    List workflow files found in the given directories (default: current dir).

    Example:
        vaiflow workflow list --dir ./workflows
        # Output: research - Answer a question from the knowledge base
    """
    _configure_logging(False)
    catalog = WorkflowCatalog(dir or [Path.cwd()])
    paths = catalog.paths()
    definitions = catalog.entries()
    if not definitions:
        typer.echo("No workflows found")
        return
    for definition in definitions.values():
        description = definition.description or "No description"
        typer.echo(f"{definition.name} - {description}")
    skipped = len(paths) - len(definitions)
    if skipped > 0:
        typer.secho(f"{skipped} files could not be loaded", fg=typer.colors.YELLOW, err=True)


@app.command("tools")
def tools_list() -> None:
    """List the registered tools and what they do."""
    registry = build_default_registry()
    for spec in registry:
        scope = "" if spec.agent_visible else ", workflow only"
        typer.echo(f"{spec.name} [{spec.category}{scope}] - {spec.description}")
        required = registry.required_arguments(spec.name)
        if required:
            typer.echo(f"  required: {', '.join(required)}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
