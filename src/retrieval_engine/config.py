"""
Engine Configuration

Loads retrieval engine settings from environment variables.

Environment Variables:
    VECTOR_STORAGE_DIR: Root directory for namespace files (default: data/vector-store)
    OPENAI_API_KEY: Credentials for the embedding provider
    EMBEDDING_MODEL: OpenAI embedding model (default: text-embedding-3-small)
    EMBEDDING_DIM: Embedding dimension D (default: 1536)
    EMBEDDING_MAX_CHARS: Input truncation limit (default: 8191)
    EMBEDDING_TIMEOUT_SEC: Per-request timeout for embedding calls (default: 30)
    EMBEDDING_CACHE_TTL_SEC: Cache / offline pattern TTL (default: one week)
    EMBEDDING_CACHE_PERSIST_INTERVAL_SEC: Minimum seconds between cache file rewrites (default: 30)
    OFFLINE_PATTERN_THRESHOLD: Minimum similarity to reuse a pattern (default: 0.85)
    SYNC_MAX_RETRY_ATTEMPTS: Failures before a namespace is abandoned (default: 3)
    SYNC_RETRY_BACKOFF_SEC: Linear backoff unit (default: 5)
    SYNC_SWEEP_INTERVAL_SEC: Periodic retry sweep interval (default: 900)
    SYNC_WORKERS: Worker threads for sync runs (default: 4)
    RETRIEVAL_KEYWORD_MODE: Always use keyword retrieval (default: false)
    USE_MOCK_EMBEDDINGS: Use deterministic hash embeddings (default: false)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_STORAGE_DIR = os.path.join("data", "vector-store")
ONE_WEEK_SEC = 7 * 24 * 60 * 60


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


@dataclass
class EngineConfig:
    """Configuration for the retrieval engine."""

    storage_dir: Path = Path(DEFAULT_STORAGE_DIR)
    openai_api_key: str | None = None
    embedding_model: str = "text-embedding-3-small"
    embedding_dim: int = 1536
    embedding_max_chars: int = 8191
    embedding_timeout_sec: float = 30.0
    cache_ttl_sec: int = ONE_WEEK_SEC
    cache_persist_interval_sec: float = 30.0
    offline_pattern_threshold: float = 0.85
    max_retry_attempts: int = 3
    retry_backoff_sec: float = 5.0
    sweep_interval_sec: float = 15 * 60
    sync_workers: int = 4
    keyword_mode: bool = False
    use_mock_embeddings: bool = False

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Load config from environment variables."""
        return cls(
            storage_dir=Path(os.environ.get("VECTOR_STORAGE_DIR") or DEFAULT_STORAGE_DIR),
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            embedding_model=os.environ.get("EMBEDDING_MODEL", "text-embedding-3-small"),
            embedding_dim=int(os.environ.get("EMBEDDING_DIM", "1536")),
            embedding_max_chars=int(os.environ.get("EMBEDDING_MAX_CHARS", "8191")),
            embedding_timeout_sec=float(os.environ.get("EMBEDDING_TIMEOUT_SEC", "30")),
            cache_ttl_sec=int(os.environ.get("EMBEDDING_CACHE_TTL_SEC", str(ONE_WEEK_SEC))),
            cache_persist_interval_sec=float(os.environ.get("EMBEDDING_CACHE_PERSIST_INTERVAL_SEC", "30")),
            offline_pattern_threshold=float(os.environ.get("OFFLINE_PATTERN_THRESHOLD", "0.85")),
            max_retry_attempts=int(os.environ.get("SYNC_MAX_RETRY_ATTEMPTS", "3")),
            retry_backoff_sec=float(os.environ.get("SYNC_RETRY_BACKOFF_SEC", "5")),
            sweep_interval_sec=float(os.environ.get("SYNC_SWEEP_INTERVAL_SEC", "900")),
            sync_workers=int(os.environ.get("SYNC_WORKERS", "4")),
            keyword_mode=_env_bool("RETRIEVAL_KEYWORD_MODE"),
            use_mock_embeddings=_env_bool("USE_MOCK_EMBEDDINGS"),
        )

    def validate(self) -> list[str]:
        """Return a list of configuration issues (empty when valid)."""
        issues = []

        if not self.openai_api_key and not self.use_mock_embeddings:
            issues.append("OPENAI_API_KEY is required unless USE_MOCK_EMBEDDINGS=true")

        if self.embedding_dim < 1:
            issues.append(f"EMBEDDING_DIM must be >= 1: {self.embedding_dim}")

        if self.embedding_max_chars < 1:
            issues.append(f"EMBEDDING_MAX_CHARS must be >= 1: {self.embedding_max_chars}")

        if self.cache_persist_interval_sec < 0:
            issues.append(
                f"EMBEDDING_CACHE_PERSIST_INTERVAL_SEC must be >= 0: {self.cache_persist_interval_sec}"
            )

        if not 0.0 < self.offline_pattern_threshold <= 1.0:
            issues.append(
                f"OFFLINE_PATTERN_THRESHOLD must be in (0, 1]: {self.offline_pattern_threshold}"
            )

        if self.max_retry_attempts < 1:
            issues.append(f"SYNC_MAX_RETRY_ATTEMPTS must be >= 1: {self.max_retry_attempts}")

        if self.retry_backoff_sec < 0:
            issues.append(f"SYNC_RETRY_BACKOFF_SEC must be >= 0: {self.retry_backoff_sec}")

        if self.sweep_interval_sec <= 0:
            issues.append(f"SYNC_SWEEP_INTERVAL_SEC must be > 0: {self.sweep_interval_sec}")

        if self.sync_workers < 1:
            issues.append(f"SYNC_WORKERS must be >= 1: {self.sync_workers}")

        return issues


# Global config singleton
_config: EngineConfig | None = None


def get_config() -> EngineConfig:
    """Get the global engine config (lazy-loaded from env)."""
    global _config
    if _config is None:
        _config = EngineConfig.from_env()
    return _config


def reset_config() -> None:
    """Reset config (useful for testing)."""
    global _config
    _config = None
