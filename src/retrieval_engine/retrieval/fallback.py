"""
Keyword fallback retrieval - the degraded path when no query embedding exists.

Scores a namespace's stored documents by literal token overlap with the
query, plus a fixed bonus when the query names a document category. It never
calls the embedding provider, so it is available whenever the store is.
"""

from __future__ import annotations

import logging

from retrieval_engine.core import QueryMatch, VectorStore

logger = logging.getLogger(__name__)

MIN_TOKEN_LENGTH = 3
TYPE_BONUS = 3

# Query keyword -> document type it boosts
TYPE_KEYWORDS: dict[str, str] = {
    "hour": "business_hours",
    "service": "service",
    "contact": "contact_info",
    "payment": "payment_methods",
    "promotion": "promotion",
}


def tokenize(query: str) -> list[str]:
    """Lowercase whitespace-separated words longer than two characters."""
    return [word for word in query.lower().split() if len(word) >= MIN_TOKEN_LENGTH]


def keyword_score(query: str, content: str, doc_type: str) -> int:
    """Token overlap count plus the category bonus."""
    lowered_query = query.lower()
    lowered_content = content.lower()

    score = sum(1 for token in tokenize(query) if token in lowered_content)
    for keyword, boosted_type in TYPE_KEYWORDS.items():
        if keyword in lowered_query and doc_type == boosted_type:
            score += TYPE_BONUS
    return score


class KeywordFallbackRetriever:
    """Keyword-overlap retriever over one namespace of a vector store."""

    def __init__(self, store: VectorStore):
        self._store = store

    def simple_retrieve(self, namespace_id: str, query: str, limit: int = 5) -> list[QueryMatch]:
        """Top `limit` documents by keyword score; ties keep insertion order."""
        if limit <= 0:
            return []

        vectors = self._store.snapshot(namespace_id)
        if not vectors:
            return []

        scored = []
        for vector in vectors:
            metadata = vector.flat_metadata
            score = keyword_score(query, metadata.get("content", ""), metadata.get("type", ""))
            scored.append(QueryMatch(id=vector.id, score=float(score), metadata=dict(metadata)))

        # list.sort is stable
        scored.sort(key=lambda match: match.score, reverse=True)
        logger.debug(f"Keyword retrieval scored {len(scored)} documents in {namespace_id}")
        return scored[:limit]
