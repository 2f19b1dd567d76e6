"""Core data contracts for vaiflow workflows, tools and chat."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class WorkflowInput(BaseModel):
    """Declared input of a workflow."""

    model_config = ConfigDict(frozen=True)

    type: Optional[str] = None
    required: bool = False
    default: Any = None
    description: Optional[str] = None

    @property
    def has_default(self) -> bool:
        """``True`` when the definition spelled out a default (even ``null``)."""
        return "default" in self.model_fields_set


class Step(BaseModel):
    """One unit of work bound to a tool and a set of input expressions."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    tool: str
    name: Optional[str] = None
    inputs: Dict[str, Any] = Field(default_factory=dict)
    condition: Optional[str] = None
    for_each: Optional[str] = Field(default=None, alias="forEach")
    continue_on_error: bool = Field(default=False, alias="continueOnError")

    @property
    def display_name(self) -> str:
        return self.name or self.id


class WorkflowDefinition(BaseModel):
    """Declarative workflow: inputs, steps and an output mapping."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: Optional[str] = None
    version: Optional[str] = None
    inputs: Dict[str, WorkflowInput] = Field(default_factory=dict)
    defaults: Dict[str, Any] = Field(default_factory=dict)
    steps: List[Step] = Field(default_factory=list)
    output: Optional[Dict[str, Any]] = None

    def step(self, step_id: str) -> Optional[Step]:
        """Return the step with ``step_id`` or ``None``."""
        return next((s for s in self.steps if s.id == step_id), None)

    @property
    def step_ids(self) -> List[str]:
        return [s.id for s in self.steps]


class ExecutionPlan(BaseModel):
    """Ordered layers of step ids; steps within a layer are independent."""

    layers: List[List[str]] = Field(default_factory=list)

    @property
    def step_ids(self) -> List[str]:
        return [step_id for layer in self.layers for step_id in layer]

    def layer_of(self, step_id: str) -> int:
        """Index of the layer containing ``step_id``."""
        for index, layer in enumerate(self.layers):
            if step_id in layer:
                return index
        raise KeyError(step_id)


class ToolResult(BaseModel):
    """Structured result of a tool plus a short human-readable summary."""

    structured: Any = None
    text: str = ""


class ToolCall(BaseModel):
    """Immutable record of a single tool invocation."""

    model_config = ConfigDict(frozen=True)

    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    text: Optional[str] = None
    error: Optional[str] = None
    elapsed_ms: float = 0.0
    step_id: Optional[str] = None
    call_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class StepRecord(BaseModel):
    """Outcome of one workflow step."""

    id: str
    tool: str
    status: Literal["completed", "skipped", "failed"]
    output: Any = None
    error: Optional[str] = None
    skip_reason: Optional[str] = None
    duration_ms: float = 0.0


class StepPreview(BaseModel):
    """Dry-run view of a step, safe to display."""

    id: str
    tool: str
    name: Optional[str] = None
    layer: int
    inputs: Dict[str, Any] = Field(default_factory=dict)
    condition: Optional[str] = None


class WorkflowResult(BaseModel):
    """Result of ``execute_workflow`` (or of a dry run)."""

    output: Any = None
    steps: List[StepRecord] = Field(default_factory=list)
    tool_calls: List[ToolCall] = Field(default_factory=list)
    plan: ExecutionPlan = Field(default_factory=ExecutionPlan)
    total_time_ms: float = 0.0
    inputs: Dict[str, Any] = Field(default_factory=dict)
    defaults: Dict[str, Any] = Field(default_factory=dict)
    dry_run: bool = False
    preview: List[StepPreview] = Field(default_factory=list)

    @property
    def layers(self) -> List[List[str]]:
        return self.plan.layers

    def step_timings(self) -> Dict[str, float]:
        return {record.id: record.duration_ms for record in self.steps}


class RetrievedDocument(BaseModel):
    """A retrieved document, normalised for display and prompting."""

    text: str = ""
    source: str = "unknown"
    score: Optional[float] = None
    vector_score: Optional[float] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RetrievalTokens(BaseModel):
    embed: int = 0
    rerank: int = 0


class RetrievalResult(BaseModel):
    """Ordered documents returned by one retrieval call."""

    documents: List[RetrievedDocument] = Field(default_factory=list)
    time_ms: float = 0.0
    tokens: RetrievalTokens = Field(default_factory=RetrievalTokens)
    reranked: bool = False


class ChatTurn(BaseModel):
    """One message of a chat session. Turns are never edited."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str
    context: Optional[List[RetrievedDocument]] = None
    metadata: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def as_message(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


class SessionSummary(BaseModel):
    """Overview of a persisted chat session."""

    session_id: str
    first_message: str
    last_activity: Optional[datetime] = None
    turn_count: int = 0
