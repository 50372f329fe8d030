import json
from pathlib import Path

import pydantic
import pytest

from tooldex import config as config_module
from tooldex.config import Config, get_config
from tooldex.dedup import DeduplicationConfig, DedupStrategy
from tooldex.errors import ValidationError
from tooldex.overrides import build_config, merge_config
from tooldex.search import FusionConfig, SearchOptions


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    for key in ("TOOLDEX_TOP_K", "TOOLDEX_EMBEDDING_MODEL", "TOOLDEX_LOG_LEVEL", "TOOLDEX_DEDUP_STRATEGY"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "SETTINGS_PATH", tmp_path / "settings.json")
    monkeypatch.setattr(config_module, "TOOLDEX_DIR", tmp_path)


class TestConfig:
    def test_defaults(self):
        config = Config()
        assert config.embedding_model == "text-embedding-3-small"
        assert config.embedding.dim == 1536
        assert config.dedup_strategy == DedupStrategy.HYBRID

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TOOLDEX_TOP_K", "25")
        monkeypatch.setenv("TOOLDEX_DEDUP_STRATEGY", "rrf_enhanced")

        config = Config()

        assert config.top_k == 25
        assert config.search_options.top_k == 25
        assert config.deduplication.strategy == DedupStrategy.RRF_ENHANCED

    def test_unknown_embedding_model(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TOOLDEX_EMBEDDING_MODEL", "bag-of-words")
        with pytest.raises(ValueError, match="Unsupported embedding model"):
            Config()

    def test_log_level_normalized(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TOOLDEX_LOG_LEVEL", "debug")
        assert Config().log_level == "DEBUG"

    def test_invalid_threshold(self):
        with pytest.raises(ValueError, match="similarity_threshold"):
            Config(similarity_threshold=1.2)

    def test_invalid_sample_size(self):
        with pytest.raises(ValueError, match="sample_size"):
            Config(sample_size=0)

    def test_derived_models(self):
        config = Config(rrf_k=30, max_results=50, retries=0, call_timeout_ms=100, dedup_batch_size=10)

        assert config.fusion == FusionConfig(k_value=30, max_results=50)
        assert config.search_options.retries == 0
        assert config.search_options.per_call_timeout_ms == 100
        assert config.deduplication.rrf_k_value == 30
        assert config.deduplication.batch_size == 10

    def test_get_config_reads_settings(self, tmp_path: Path):
        (tmp_path / "settings.json").write_text(json.dumps({"top_k": 7, "openai_api_key": "ignored"}))
        assert get_config().top_k == 7

    def test_broken_settings_file(self, tmp_path: Path):
        (tmp_path / "settings.json").write_text("{not json")
        assert config_module.load_user_settings() == {}

    def test_save_settings(self, tmp_path: Path):
        config_module.save_user_settings({"top_k": 3})
        assert config_module.load_user_settings() == {"top_k": 3}


class TestMergeConfig:
    def test_scalars_replaced(self):
        merged = merge_config(SearchOptions(), {"top_k": 3, "parallel": False})
        assert merged.top_k == 3
        assert not merged.parallel

    def test_no_overrides_returns_base(self):
        base = FusionConfig()
        assert merge_config(base, None) is base
        assert merge_config(base, {}) is base

    def test_mappings_shallow_merged(self):
        base = DeduplicationConfig()
        merged = merge_config(base, {"weights": {"name": 0.5}, "per_partition_thresholds": {"semantic": 0.6}})

        assert merged.weights == {"name": 0.5, "description": 0.2, "category": 0.1}
        assert merged.per_partition_thresholds["semantic"] == 0.6
        assert merged.per_partition_thresholds["aliases"] == 0.6
        assert base.weights["name"] == 0.7

    def test_tuple_field_replaced(self):
        merged = merge_config(DeduplicationConfig(), {"fields": ["name"]})
        assert merged.fields == ("name",)

    def test_unknown_keys(self):
        with pytest.raises(ValidationError, match="bogus"):
            merge_config(FusionConfig(), {"bogus": 1, "k_value": 10})

    def test_invalid_value(self):
        with pytest.raises(ValidationError, match="FusionConfig"):
            merge_config(FusionConfig(), {"max_results": -1})

    def test_build_config(self):
        assert build_config(SearchOptions, {"top_k": 4}).top_k == 4
        assert build_config(SearchOptions) == SearchOptions()
        with pytest.raises(ValidationError):
            build_config(SearchOptions, {"retries": -1})

    def test_runtime_models_frozen(self):
        with pytest.raises(pydantic.ValidationError):
            SearchOptions().top_k = 5
