"""Exception hierarchy for vaiflow."""

from __future__ import annotations

from typing import Iterable, List


class VaiflowError(Exception):
    """Base class for all vaiflow errors."""


class WorkflowValidationError(VaiflowError, ValueError):
    """A workflow definition (or its inputs) is not executable.

    Holds every problem found, not just the first one.
    """

    def __init__(self, errors: Iterable[str], header: str = "Workflow validation failed"):
        self.errors: List[str] = list(errors)
        message = header + ":\n  " + "\n  ".join(self.errors)
        super().__init__(message)


class MissingInputError(WorkflowValidationError):
    """A required workflow input was not supplied and has no default."""

    def __init__(self, names: Iterable[str]):
        self.names = list(names)
        super().__init__(
            [f'Missing required input: "{name}"' for name in self.names],
            header="Workflow inputs are incomplete",
        )


class UnknownToolError(VaiflowError, KeyError):
    def __init__(self, name: str, available: Iterable[str] = ()):
        self.name = name
        self.available = sorted(available)
        super().__init__(name)

    def __str__(self) -> str:
        return f'Unknown tool: "{self.name}". Available: {", ".join(self.available)}'


class ToolArgumentError(VaiflowError, ValueError):
    """Arguments passed to a tool failed its argument model."""

    def __init__(self, tool: str, detail: str):
        self.tool = tool
        self.detail = detail
        super().__init__(f"{tool}: invalid arguments: {detail}")


class ToolExecutionError(VaiflowError, RuntimeError):
    """A built-in tool could not complete its operation."""


class ServiceNotConfiguredError(ToolExecutionError):
    """A tool needed an external collaborator that was never injected."""

    def __init__(self, tool: str, service: str):
        self.tool = tool
        self.service = service
        super().__init__(f"{tool}: no {service} configured")


class StepExecutionError(VaiflowError, RuntimeError):
    """A workflow step failed and the run was aborted."""

    def __init__(self, step_id: str, message: str):
        self.step_id = step_id
        self.reason = message
        super().__init__(f'Step "{step_id}" failed: {message}')
