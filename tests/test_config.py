"""
Unit Tests for Engine Configuration
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from retrieval_engine.config import ONE_WEEK_SEC, EngineConfig, get_config, reset_config


class TestEngineConfig:
    """Test configuration loading and validation."""

    def setup_method(self):
        reset_config()

    def teardown_method(self):
        reset_config()

    def test_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            config = EngineConfig.from_env()

        assert config.storage_dir == Path("data/vector-store")
        assert config.embedding_model == "text-embedding-3-small"
        assert config.embedding_dim == 1536
        assert config.cache_ttl_sec == ONE_WEEK_SEC
        assert config.cache_persist_interval_sec == 30.0
        assert config.offline_pattern_threshold == 0.85
        assert config.max_retry_attempts == 3
        assert config.retry_backoff_sec == 5.0
        assert config.sweep_interval_sec == 900
        assert config.keyword_mode is False
        assert config.openai_api_key is None

    def test_from_env(self):
        env = {
            "VECTOR_STORAGE_DIR": "/srv/vectors",
            "OPENAI_API_KEY": "sk-test",
            "EMBEDDING_DIM": "256",
            "SYNC_MAX_RETRY_ATTEMPTS": "5",
            "RETRIEVAL_KEYWORD_MODE": "true",
        }
        with patch.dict("os.environ", env, clear=True):
            config = EngineConfig.from_env()

        assert config.storage_dir == Path("/srv/vectors")
        assert config.openai_api_key == "sk-test"
        assert config.embedding_dim == 256
        assert config.max_retry_attempts == 5
        assert config.keyword_mode is True

    def test_valid_config_has_no_issues(self):
        assert EngineConfig(openai_api_key="sk-test").validate() == []

    def test_mock_embeddings_need_no_key(self):
        assert EngineConfig(use_mock_embeddings=True).validate() == []

    @pytest.mark.parametrize("overrides,fragment", [
        ({"openai_api_key": None}, "OPENAI_API_KEY"),
        ({"embedding_dim": 0}, "EMBEDDING_DIM"),
        ({"cache_persist_interval_sec": -1}, "EMBEDDING_CACHE_PERSIST_INTERVAL_SEC"),
        ({"offline_pattern_threshold": 1.5}, "OFFLINE_PATTERN_THRESHOLD"),
        ({"max_retry_attempts": 0}, "SYNC_MAX_RETRY_ATTEMPTS"),
        ({"sweep_interval_sec": 0}, "SYNC_SWEEP_INTERVAL_SEC"),
        ({"sync_workers": 0}, "SYNC_WORKERS"),
    ])
    def test_invalid_values_reported(self, overrides, fragment):
        config = EngineConfig(**{"openai_api_key": "sk-test", **overrides})

        issues = config.validate()

        assert len(issues) == 1
        assert fragment in issues[0]

    def test_get_config_singleton(self):
        with patch.dict("os.environ", {}, clear=True):
            assert get_config() is get_config()
