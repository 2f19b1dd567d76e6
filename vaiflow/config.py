from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

from .constants import (
    DEFAULT_AGENT_HISTORY_BUDGET,
    DEFAULT_EMBEDDING_FIELD,
    DEFAULT_HISTORY_BUDGET,
    DEFAULT_MAX_DOCS,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MAX_TURNS,
    DEFAULT_RERANK_MODEL,
    DEFAULT_TEXT_FIELD,
    DEFAULT_VECTOR_INDEX,
)


class LLMConfig(BaseModel):
    """Which language model answers chat turns and ``generate`` steps."""

    provider: Optional[str] = None
    model: Optional[str] = None


class RetrievalConfig(BaseModel):
    """Defaults for the embed, search and rerank pipeline."""

    db: Optional[str] = None
    collection: Optional[str] = None
    model: Optional[str] = None
    rerank_model: str = DEFAULT_RERANK_MODEL
    index: str = DEFAULT_VECTOR_INDEX
    field: str = DEFAULT_EMBEDDING_FIELD
    dimensions: Optional[int] = None
    text_field: str = DEFAULT_TEXT_FIELD
    max_docs: int = DEFAULT_MAX_DOCS
    rerank: bool = True


class ChatConfig(BaseModel):
    """Chat session settings."""

    mode: Literal["pipeline", "agent"] = "pipeline"
    max_turns: int = DEFAULT_MAX_TURNS
    history_budget: int = DEFAULT_HISTORY_BUDGET
    agent_history_budget: int = DEFAULT_AGENT_HISTORY_BUDGET
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    system_prompt: Optional[str] = None


class VaiflowConfig(BaseModel):
    """Top-level configuration model."""

    llm: LLMConfig = LLMConfig()
    retrieval: RetrievalConfig = RetrievalConfig()
    chat: ChatConfig = ChatConfig()
    history_database_url: Optional[str] = None


def load_config(path: Optional[str] = None) -> VaiflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to VAIFLOW_CONFIG env
            variable or 'vaiflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("VAIFLOW_CONFIG", "vaiflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = VaiflowConfig(**data)
    else:
        config = VaiflowConfig()

    env_history_url = os.getenv("VAIFLOW_HISTORY_URL")
    if env_history_url:
        config.history_database_url = env_history_url
    return config
