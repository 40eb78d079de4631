"""
Retrieval adapter - the public façade over resolver, store and fallback.

ONE contract for callers: store a document, retrieve relevant documents,
delete a business's data. Which retrieval path runs is decided per call:

    RetrievalMode.VECTOR   resolve the query embedding, cosine search
    RetrievalMode.KEYWORD  token-overlap scoring, no embedding needed

A call starts in KEYWORD mode only when keyword mode is configured. A VECTOR
call drops to KEYWORD when its own query embedding cannot be resolved; the
decision lives in a local variable, so one failed call never changes how
the next call is served.

`retrieve_relevant` never raises. An empty list is a normal answer.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Callable, Iterable, Mapping

import numpy as np
from pydantic import ValidationError

from retrieval_engine.core import QueryMatch, VectorStore
from retrieval_engine.embeddings.resolver import EmbeddingResolver
from retrieval_engine.errors import DimensionMismatchError, EmbeddingUnavailableError, SyncError
from retrieval_engine.observability import (
    EMBEDDING_SOURCE,
    RETRIEVAL_DOCUMENT_COUNT,
    RETRIEVAL_MODE,
    RETRIEVAL_NAMESPACE_ID,
    RETRIEVAL_RESULT_COUNT,
    RETRIEVAL_STALE_REMOVED,
    RETRIEVAL_TOP_SCORE,
    get_tracer,
    retrieval_attributes,
)
from retrieval_engine.observability import get_config as get_phoenix_config
from retrieval_engine.retrieval.document import Document
from retrieval_engine.retrieval.fallback import KeywordFallbackRetriever
from retrieval_engine.retrieval.store import validate_namespace_id
from retrieval_engine.schemas.metadata import IDENTIFIER_KEYS, Vector

logger = logging.getLogger(__name__)


class RetrievalMode(str, Enum):
    VECTOR = "vector"
    KEYWORD = "keyword"


# (document type, section title, merge every chunk of the type)
CONTEXT_SECTIONS: tuple[tuple[str, str, bool], ...] = (
    ("basic_info", "BUSINESS INFORMATION", False),
    ("contact_info", "CONTACT INFORMATION", False),
    ("service", "SERVICES", True),
    ("business_hours", "BUSINESS HOURS", False),
    ("promotion", "PROMOTIONS", True),
    ("faq", "FREQUENTLY ASKED QUESTIONS", True),
    ("payment_methods", "PAYMENT METHODS", False),
    ("custom_response", "CUSTOM RESPONSES", True),
)


def format_chunks_for_context(documents: Iterable[Document]) -> str:
    """
    Group documents into titled sections for a chat prompt.

    Single-valued sections (business info, contact, hours, payment methods)
    use the first document of their type; list sections join all of them.
    Documents of unknown types are left out.
    """
    by_type: dict[str, list[Document]] = {}
    for doc in documents:
        by_type.setdefault(doc.type, []).append(doc)

    sections = []
    for doc_type, title, merge in CONTEXT_SECTIONS:
        docs = by_type.get(doc_type)
        if not docs:
            continue
        body = "\n\n".join(d.content for d in docs) if merge else docs[0].content
        sections.append(f"## {title}\n{body}")
    return "\n\n".join(sections)


class RetrievalAdapter:
    """
    Façade combining EmbeddingResolver + VectorStore + KeywordFallbackRetriever.

    Dependencies are INJECTED. The adapter itself holds no mutable state
    beyond its configuration.
    """

    def __init__(
        self,
        store: VectorStore,
        resolver: EmbeddingResolver,
        fallback: KeywordFallbackRetriever | None = None,
        keyword_mode: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._resolver = resolver
        self._fallback = fallback or KeywordFallbackRetriever(store)
        self.keyword_mode = keyword_mode
        self._clock = clock

    @property
    def store(self) -> VectorStore:
        return self._store

    @property
    def resolver(self) -> EmbeddingResolver:
        return self._resolver

    def document_id(self, metadata: Mapping[str, Any]) -> str:
        """rag-{namespaceId}-{type}-{first identifier present, else a ms timestamp}."""
        suffix = next(
            (str(metadata[key]) for key in IDENTIFIER_KEYS if metadata.get(key) not in (None, "")),
            None,
        )
        if suffix is None:
            suffix = str(int(self._clock() * 1000))
        return f"rag-{metadata.get('namespaceId')}-{metadata.get('type')}-{suffix}"

    # -----------------------------------------------------------------------
    # store / delete
    # -----------------------------------------------------------------------

    def store_document(self, document: Document, embedding: np.ndarray) -> bool:
        """Store one document under its derived id. Returns False on any failure."""
        try:
            vector = self._to_vector(document, embedding)
            validate_namespace_id(vector.namespace_id)
            if vector.values.shape != (self._store.dimension,):
                raise DimensionMismatchError(self._store.dimension, vector.values.shape[0], vector.id)
            if not np.all(np.isfinite(vector.values)):
                raise ValueError(f"Vector {vector.id} contains non-finite values")
        except (ValidationError, ValueError, TypeError) as e:
            logger.error(f"Could not build vector for document: {e}")
            return False
        return self._store.upsert([vector])

    def delete_business_data(self, namespace_id: str) -> bool:
        """Delete every vector of a namespace. Zero removed is still success."""
        try:
            removed = self._store.delete_many({"namespaceId": namespace_id})
        except Exception as e:
            logger.error(f"Failed to delete data for namespace {namespace_id}: {e}")
            return False
        logger.info(f"Deleted {removed} vectors for namespace {namespace_id}")
        return True

    # -----------------------------------------------------------------------
    # retrieval
    # -----------------------------------------------------------------------

    def retrieve_relevant(
        self,
        namespace_id: str,
        query_text: str,
        limit: int = 5,
        mode: RetrievalMode | None = None,
    ) -> list[Document]:
        """
        Most relevant documents of a namespace for a free-text query.

        Each returned document's metadata carries `score`. Never raises.
        """
        try:
            return self._retrieve(namespace_id, query_text, limit, mode)
        except Exception as e:
            logger.error(f"Retrieval failed for namespace {namespace_id}: {e}")
            return []

    def _retrieve(
        self,
        namespace_id: str,
        query_text: str,
        limit: int,
        mode: RetrievalMode | None,
    ) -> list[Document]:
        if mode is None:
            mode = RetrievalMode.KEYWORD if self.keyword_mode else RetrievalMode.VECTOR

        capture = get_phoenix_config().capture_query_text
        attributes = retrieval_attributes(
            namespace_id, mode.value, limit, query_text if capture else None
        )

        with get_tracer().start_span("retrieve_relevant", attributes=attributes) as span:
            matches: list[QueryMatch] = []

            if mode is RetrievalMode.VECTOR:
                embedding = self._resolve_query(query_text, span)
                if embedding is None:
                    logger.warning(
                        f"No query embedding for namespace {namespace_id}; "
                        "using keyword retrieval for this call"
                    )
                    mode = RetrievalMode.KEYWORD
                    span.set_attribute(RETRIEVAL_MODE, mode.value)
                else:
                    result = self._store.query(
                        embedding,
                        filter={"namespaceId": namespace_id},
                        top_k=limit,
                        include_metadata=True,
                    )
                    matches = result.matches

            if mode is RetrievalMode.KEYWORD:
                matches = self._fallback.simple_retrieve(namespace_id, query_text, limit)

            documents = [self._to_document(match) for match in matches]
            span.set_attribute(RETRIEVAL_RESULT_COUNT, len(documents))
            if matches:
                span.set_attribute(RETRIEVAL_TOP_SCORE, matches[0].score)

        logger.info(
            f"Retrieved {len(documents)} documents for namespace {namespace_id} ({mode.value})"
        )
        return documents

    def _resolve_query(self, query_text: str, span: Any) -> np.ndarray | None:
        try:
            resolution = self._resolver.resolve(query_text)
        except Exception as e:
            logger.warning(f"Embedding resolution raised: {e}")
            span.set_attribute(EMBEDDING_SOURCE, "none")
            return None
        span.set_attribute(EMBEDDING_SOURCE, resolution.source.value)
        return resolution.embedding

    # -----------------------------------------------------------------------
    # indexing
    # -----------------------------------------------------------------------

    def index_documents(self, namespace_id: str, documents: list[Document]) -> int:
        """
        Replace a namespace's indexed documents with `documents`.

        Every document's embedding is resolved before anything is written;
        vectors from earlier runs that are no longer produced are removed.

        Raises:
            EmbeddingUnavailableError: some document had no embedding, so
                nothing was written (zero vectors are never stored).
            SyncError: the store could not persist the namespace.
        """
        with get_tracer().start_span(
            "index_documents",
            attributes={RETRIEVAL_NAMESPACE_ID: namespace_id},
        ) as span:
            vectors = []
            for document in documents:
                metadata = {**document.metadata, "namespaceId": namespace_id}
                resolution = self._resolver.resolve(document.content)
                if resolution.embedding is None:
                    raise EmbeddingUnavailableError(
                        f"No embedding for {metadata.get('type')} document in {namespace_id}"
                    )
                vectors.append(
                    self._to_vector(
                        Document(content=document.content, metadata=metadata, id=document.id),
                        resolution.embedding,
                    )
                )

            if vectors and not self._store.upsert(vectors):
                raise SyncError(f"Could not persist vectors for namespace {namespace_id}")

            produced = {v.id for v in vectors}
            stale = [v.id for v in self._store.snapshot(namespace_id) if v.id not in produced]
            if stale:
                self._store.delete_ids(namespace_id, stale)

            span.set_attribute(RETRIEVAL_DOCUMENT_COUNT, len(vectors))
            span.set_attribute(RETRIEVAL_STALE_REMOVED, len(stale))

        logger.info(
            f"Indexed {len(vectors)} documents for namespace {namespace_id}, "
            f"removed {len(stale)} stale"
        )
        return len(vectors)

    # -----------------------------------------------------------------------
    # conversions
    # -----------------------------------------------------------------------

    def _to_vector(self, document: Document, embedding: np.ndarray) -> Vector:
        metadata = {**document.metadata, "content": document.content}
        metadata.pop("score", None)
        return Vector(
            id=document.id or self.document_id(metadata),
            values=embedding,
            metadata=metadata,
        )

    @staticmethod
    def _to_document(match: QueryMatch) -> Document:
        metadata = dict(match.metadata)
        content = metadata.pop("content", "")
        metadata["score"] = match.score
        return Document(content=content, metadata=metadata, id=match.id)
