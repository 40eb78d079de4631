"""
Embeddings Module - Single Responsibility: Generate text embeddings.

It has ONE job: convert text to vector embeddings. Caching, pattern reuse
and fallback decisions live in the resolver, not here.

FAILURE CONTRACT:
-----------------
`embed()` never raises. A provider error is logged and an all-zero vector of
the configured dimension comes back instead. Cosine similarity against a zero
vector is 0, so it behaves as "no match" anywhere it flows. Callers that need
to know the call failed use `try_embed()`, which returns None.
"""

from __future__ import annotations

import hashlib
import logging
import os

import numpy as np
from openai import OpenAI

from retrieval_engine.core import EmbeddingProvider

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 8191


def truncate_text(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> str:
    """Keep the first `max_chars` characters; the prefix is what gets embedded."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars]


class OpenAIEmbeddings:
    """
    OpenAI-based embedding provider.

    Uses text-embedding-3-small by default (1536 dimensions). Every request
    carries a timeout so a hung call cannot stall a sync run indefinitely.
    """

    system = "openai"

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: str | None = None,
        dimensions: int | None = None,
        max_chars: int = DEFAULT_MAX_CHARS,
        timeout: float = 30.0,
        client: OpenAI | None = None,
    ):
        self.model = model
        self.max_chars = max_chars
        self._dimensions = dimensions
        self._client = client or OpenAI(
            api_key=api_key or os.environ.get("OPENAI_API_KEY"),
            timeout=timeout,
            max_retries=0,
        )

    @property
    def dimensions(self) -> int:
        """Return embedding dimensions for the model."""
        if self._dimensions is not None:
            return self._dimensions
        model_dims = {
            "text-embedding-3-small": 1536,
            "text-embedding-3-large": 3072,
            "text-embedding-ada-002": 1536,
        }
        return model_dims.get(self.model, 1536)

    def try_embed(self, text: str) -> np.ndarray | None:
        """Generate embedding for a single text, None on any provider error."""
        try:
            response = self._client.embeddings.create(
                input=truncate_text(text, self.max_chars),
                model=self.model,
                encoding_format="float",
            )
            embedding = np.array(response.data[0].embedding, dtype=np.float64)
        except Exception as e:
            logger.error(f"Embedding request failed for model {self.model}: {e}")
            return None

        if embedding.shape[0] != self.dimensions:
            logger.error(
                f"Embedding model {self.model} returned {embedding.shape[0]} dimensions, "
                f"expected {self.dimensions}"
            )
            return None
        return embedding

    def embed(self, text: str) -> np.ndarray:
        """Generate embedding for a single text (zero vector on failure)."""
        embedding = self.try_embed(text)
        if embedding is None:
            return np.zeros(self.dimensions, dtype=np.float64)
        return embedding

    def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        """Generate embeddings for multiple texts efficiently."""
        if not texts:
            return []

        try:
            response = self._client.embeddings.create(
                input=[truncate_text(t, self.max_chars) for t in texts],
                model=self.model,
                encoding_format="float",
            )
        except Exception as e:
            logger.error(f"Batch embedding request failed for {len(texts)} texts: {e}")
            return [np.zeros(self.dimensions, dtype=np.float64) for _ in texts]

        return [
            np.array(item.embedding, dtype=np.float64)
            for item in response.data
        ]


class MockEmbeddings:
    """
    Mock embedding provider for testing without API calls.

    Generates deterministic pseudo-embeddings from text hashes.
    NOT for production use - only for testing/development.
    """

    system = "mock"
    model = "mock-hash"

    def __init__(self, dimensions: int = 1536):
        self._dimensions = dimensions

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed(self, text: str) -> np.ndarray:
        """Generate deterministic pseudo-embedding from text hash."""
        seed = int.from_bytes(hashlib.sha256(text.encode()).digest()[:8], "big")
        rng = np.random.default_rng(seed)
        return rng.standard_normal(self._dimensions)

    def try_embed(self, text: str) -> np.ndarray | None:
        return self.embed(text)

    def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        """Generate embeddings for multiple texts."""
        return [self.embed(text) for text in texts]


def get_embedding_provider(
    use_mock: bool = False,
    model: str = "text-embedding-3-small",
    api_key: str | None = None,
    dimensions: int = 1536,
    max_chars: int = DEFAULT_MAX_CHARS,
    timeout: float = 30.0,
) -> EmbeddingProvider:
    """
    Factory function to get the appropriate embedding provider.

    Args:
        use_mock: If True, return MockEmbeddings (for testing)
    """
    if use_mock:
        return MockEmbeddings(dimensions=dimensions)
    return OpenAIEmbeddings(
        model=model,
        api_key=api_key,
        dimensions=dimensions,
        max_chars=max_chars,
        timeout=timeout,
    )
