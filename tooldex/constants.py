# --- Embedding ---

EMBEDDING_TEXT_LIMIT = 8000
EMBEDDING_BATCH_SIZE = 256  # texts per provider request

# Embedding models (OpenAI via litellm): model -> dimension
EMBEDDING_MODELS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


# --- Search Fan-out ---

DEFAULT_TOP_K = 10
MAX_TOP_K = 1000
DEFAULT_MAX_CONCURRENCY = 4
DEFAULT_CALL_TIMEOUT_MS = 5000
DEFAULT_RETRIES = 2
RETRY_INITIAL_WAIT = 0.05  # seconds
RETRY_MAX_WAIT = 1.0  # seconds
RETRY_JITTER = 0.05  # seconds
VECTOR_OVERFETCH_FACTOR = 2


# --- Fusion ---

RRF_K = 60
MAX_RRF_K = 1000
DEFAULT_MAX_RESULTS = 100
MAX_RESULTS_LIMIT = 10000
DEFAULT_SOURCE_WEIGHT = 1.0


# --- Deduplication ---

DEDUP_SIMILARITY_THRESHOLD = 0.9
DEDUP_BATCH_SIZE = 100
DEDUP_FIELDS = ("name", "description", "category")
DEDUP_FIELD_WEIGHTS: dict[str, float] = {"name": 0.7, "description": 0.2, "category": 0.1}

# Empirically tuned, no documented derivation; override per deployment
DEDUP_VECTOR_TYPE_THRESHOLDS: dict[str, float] = {
    "semantic": 0.8,
    "categories": 0.9,
    "functionality": 0.7,
    "aliases": 0.6,
    "composites": 0.5,
}
DEDUP_VECTOR_TYPE_WEIGHTS: dict[str, float] = {
    "semantic": 1.0,
    "categories": 0.8,
    "functionality": 0.7,
    "aliases": 0.6,
    "composites": 0.5,
}
DEDUP_DEFAULT_VECTOR_TYPE_WEIGHT = 0.5

# Field similarity mix
NAME_JACCARD_WEIGHT = 0.8
NAME_EDIT_WEIGHT = 0.2
DESCRIPTION_JACCARD_WEIGHT = 0.6
DESCRIPTION_SYNONYM_WEIGHT = 0.4
SIMILARITY_REASON_THRESHOLD = 0.8


# --- Routing ---

ROUTING_FALLBACK_CONFIDENCE = 0.5
ROUTING_HINT_CONFIDENCE = 0.6
KEYWORD_MIN_LENGTH = 3


# --- Consistency Validation ---

HEALTHY_SYNC_PERCENT = 95.0
WARNING_SYNC_PERCENT = 70.0
VALIDATION_SAMPLE_SIZE = 5


# --- Metrics ---

METRICS_EMA_ALPHA = 0.3  # smoothing factor for per-vector-type moving averages
DEDUP_MONITOR_HISTORY = 100


# --- Indexing ---

INDEX_BATCH_SIZE = 50
