import json
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tooldex.constants import (
    DEDUP_BATCH_SIZE,
    DEDUP_SIMILARITY_THRESHOLD,
    DEFAULT_CALL_TIMEOUT_MS,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_RESULTS,
    DEFAULT_RETRIES,
    DEFAULT_TOP_K,
    EMBEDDING_MODELS,
    RRF_K,
    VALIDATION_SAMPLE_SIZE,
)
from tooldex.dedup.config import DeduplicationConfig, DedupStrategy
from tooldex.embedder import EmbeddingConfig
from tooldex.logging import get_logger
from tooldex.search.executor import SearchOptions
from tooldex.search.fusion import FusionConfig

TOOLDEX_DIR = Path.home() / ".tooldex"
SETTINGS_PATH = TOOLDEX_DIR / "settings.json"

_logger = get_logger(__name__)


def load_user_settings() -> dict:
    if not SETTINGS_PATH.exists():
        return {}
    try:
        return json.loads(SETTINGS_PATH.read_text())
    except (json.JSONDecodeError, OSError) as e:
        _logger.warning("Failed to load user settings: %s", e)
        return {}


def save_user_settings(settings: dict) -> None:
    TOOLDEX_DIR.mkdir(exist_ok=True)
    SETTINGS_PATH.write_text(json.dumps(settings, indent=2))


class Config(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TOOLDEX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
        populate_by_name=True,
    )

    # API key read from the standard env var via alias
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")

    embedding_model: str = "text-embedding-3-small"
    db_path: Path = TOOLDEX_DIR / "index.db"
    log_level: str = "INFO"

    # Search fan-out
    top_k: int = DEFAULT_TOP_K
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    call_timeout_ms: int = DEFAULT_CALL_TIMEOUT_MS
    retries: int = DEFAULT_RETRIES

    # Fusion
    rrf_k: int = RRF_K
    max_results: int = DEFAULT_MAX_RESULTS

    # Deduplication
    dedup_strategy: DedupStrategy = DedupStrategy.HYBRID
    similarity_threshold: float = DEDUP_SIMILARITY_THRESHOLD
    dedup_batch_size: int = DEDUP_BATCH_SIZE

    # Consistency validation
    sample_size: int = VALIDATION_SAMPLE_SIZE

    @field_validator("embedding_model")
    @classmethod
    def _validate_embedding_model(cls, v: str) -> str:
        if v not in EMBEDDING_MODELS:
            raise ValueError(f"Unsupported embedding model: {v}. Must be one of: {', '.join(EMBEDDING_MODELS)}")
        return v

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("similarity_threshold")
    @classmethod
    def _validate_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"similarity_threshold must be within [0, 1], got {v}")
        return v

    @field_validator("sample_size")
    @classmethod
    def _validate_sample_size(cls, v: int) -> int:
        if not 1 <= v <= 100:
            raise ValueError(f"sample_size must be 1-100, got {v}")
        return v

    @property
    def embedding(self) -> EmbeddingConfig:
        return EmbeddingConfig.for_model(self.embedding_model)

    @property
    def search_options(self) -> SearchOptions:
        return SearchOptions(
            max_concurrency=self.max_concurrency,
            per_call_timeout_ms=self.call_timeout_ms,
            retries=self.retries,
            top_k=self.top_k,
        )

    @property
    def fusion(self) -> FusionConfig:
        return FusionConfig(k_value=self.rrf_k, max_results=self.max_results)

    @property
    def deduplication(self) -> DeduplicationConfig:
        return DeduplicationConfig(
            strategy=self.dedup_strategy,
            similarity_threshold=self.similarity_threshold,
            rrf_k_value=self.rrf_k,
            batch_size=self.dedup_batch_size,
        )


PERSIST_KEYS = frozenset(
    {
        "embedding_model",
        "db_path",
        "log_level",
        "top_k",
        "max_concurrency",
        "call_timeout_ms",
        "retries",
        "rrf_k",
        "max_results",
        "dedup_strategy",
        "similarity_threshold",
        "dedup_batch_size",
        "sample_size",
    }
)


def get_config() -> Config:
    settings = load_user_settings()

    # init args (settings.json) > env vars > defaults
    overrides = {k: settings[k] for k in PERSIST_KEYS if k in settings}
    return Config(**overrides)
