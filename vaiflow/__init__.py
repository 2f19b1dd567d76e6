"""vaiflow: declarative retrieval workflows and tool-driven chat."""

from .chat import ChatHistory, ChatSession, agent_chat_turn, chat_turn
from .config import VaiflowConfig, load_config
from .contracts import Step, ToolCall, ToolResult, WorkflowDefinition, WorkflowResult
from .engine import WorkflowEngine, execute_workflow
from .execute import StepCallbacks, StepExecutor
from .loader import WorkflowCatalog, load_workflow
from .persistence import get_history_store
from .registry import ToolRegistry
from .retrieval import Retriever
from .tools import ToolServices, build_default_registry

__version__ = "0.1.0"
__all__ = [
    "ChatHistory",
    "ChatSession",
    "Retriever",
    "Step",
    "StepCallbacks",
    "StepExecutor",
    "ToolCall",
    "ToolRegistry",
    "ToolResult",
    "ToolServices",
    "VaiflowConfig",
    "WorkflowCatalog",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowResult",
    "agent_chat_turn",
    "build_default_registry",
    "chat_turn",
    "execute_workflow",
    "get_history_store",
    "load_config",
    "load_workflow",
]
