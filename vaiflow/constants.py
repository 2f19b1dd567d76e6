"""Shared defaults for vaiflow."""

DEFAULT_VECTOR_INDEX = "vector_index"
DEFAULT_EMBEDDING_FIELD = "embedding"
DEFAULT_TEXT_FIELD = "text"
DEFAULT_EMBED_MODEL = "voyage-4-large"
DEFAULT_RERANK_MODEL = "rerank-2.5"

# Retrieval oversampling: candidates = min(max_docs * FACTOR, CEILING)
DEFAULT_MAX_DOCS = 5
CANDIDATE_OVERSAMPLING_FACTOR = 4
CANDIDATE_CEILING = 20
NUM_CANDIDATES_MULTIPLIER = 15
NUM_CANDIDATES_CEILING = 10000

DEFAULT_MAX_TURNS = 20
DEFAULT_HISTORY_BUDGET = 4000
DEFAULT_AGENT_HISTORY_BUDGET = 8000
CHARS_PER_TOKEN = 4
HISTORY_RECAP_MAX_CHARS = 500

DEFAULT_MAX_ITERATIONS = 10
MAX_ITERATIONS_FALLBACK = (
    "I reached the maximum number of tool-calling iterations. "
    "Here is what I found so far based on the tool results above."
)

# Arguments the agent loop and the workflow engine fill in from defaults
INJECTABLE_DEFAULTS = ("db", "collection")

# Workflow-level scope roots that never name a step
RESERVED_SCOPE_ROOTS = frozenset({"inputs", "defaults"})
ITERATION_SCOPE_ROOTS = frozenset({"item", "index"})

INPUT_TYPES = ("string", "number", "boolean")

# Workflow steps additionally inherit the embedding model from defaults
WORKFLOW_INJECTABLE_DEFAULTS = INJECTABLE_DEFAULTS + ("model",)
