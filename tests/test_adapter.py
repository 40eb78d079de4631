"""
Unit Tests for the Retrieval Adapter

Tests the public façade with an in-memory store and a resolver whose provider
can be switched between healthy and failing, so the per-call fallback to
keyword retrieval (and recovery from it) can be observed directly.

PATTERNS:
---------
1. Provider double with a `healthy` switch instead of patching OpenAI
2. Fixed clock for timestamp-based document ids
3. MagicMock stores for failure paths the real store never takes
"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from retrieval_engine.embeddings import EmbeddingResolver, InMemoryEmbeddingCache
from retrieval_engine.errors import EmbeddingUnavailableError, SyncError
from retrieval_engine.retrieval import (
    Document,
    RetrievalAdapter,
    RetrievalMode,
    format_chunks_for_context,
)
from retrieval_engine.retrieval.store import FileVectorStore, InMemoryVectorStore
from retrieval_engine.schemas import Vector


class SwitchableProvider:
    """Embeds by keyword: 'hour' texts point one way, everything else another."""

    def __init__(self):
        self.healthy = True
        self.calls = 0

    @property
    def dimensions(self) -> int:
        return 3

    def try_embed(self, text):
        self.calls += 1
        if not self.healthy:
            return None
        if "hour" in text.lower():
            return np.array([0.0, 1.0, 0.0])
        return np.array([1.0, 0.0, 0.1])

    def embed(self, text):
        result = self.try_embed(text)
        return np.zeros(3) if result is None else result


# ---------------------------------------------------------------------------
# FIXTURES
# ---------------------------------------------------------------------------


@pytest.fixture
def provider():
    return SwitchableProvider()


@pytest.fixture
def store():
    return InMemoryVectorStore(dimension=3)


@pytest.fixture
def adapter(store, provider):
    resolver = EmbeddingResolver(provider, InMemoryEmbeddingCache())
    return RetrievalAdapter(store, resolver, clock=lambda: 1_700_000_000.5)


@pytest.fixture
def indexed(adapter):
    adapter.index_documents("B1", [
        Document("Service: Haircut\nPrice: $50", {"type": "service", "source": "feed_ai", "serviceId": "s1"}),
        Document("Business Hours:\nMonday: 09:00 - 17:00", {"type": "business_hours", "source": "feed_ai"}),
    ])
    return adapter


# ---------------------------------------------------------------------------
# DOCUMENT IDS
# ---------------------------------------------------------------------------


class TestDocumentId:

    def test_uses_first_identifier(self, adapter):
        doc_id = adapter.document_id({"namespaceId": "B1", "type": "faq", "faqId": "f9"})
        assert doc_id == "rag-B1-faq-f9"

    def test_falls_back_to_millisecond_timestamp(self, adapter):
        doc_id = adapter.document_id({"namespaceId": "B1", "type": "basic_info"})
        assert doc_id == "rag-B1-basic_info-1700000000500"


# ---------------------------------------------------------------------------
# STORE / DELETE
# ---------------------------------------------------------------------------


class TestStoreDocument:

    def test_store_document_is_retrievable(self, adapter, store):
        doc = Document("Question: Parking?\nAnswer: Yes", {"namespaceId": "B1", "type": "faq", "faqId": "f1"})

        assert adapter.store_document(doc, np.array([1.0, 0.0, 0.0])) is True
        assert [v.id for v in store.snapshot("B1")] == ["rag-B1-faq-f1"]

    def test_store_document_with_bad_metadata_returns_false(self, adapter):
        doc = Document("x", {"namespaceId": "B1", "type": "not_a_type"})
        assert adapter.store_document(doc, np.array([1.0, 0.0, 0.0])) is False

    @pytest.mark.parametrize("embedding,namespace", [
        (np.array([1.0, 0.0]), "B1"),
        (np.array([np.nan, 0.0, 0.0]), "B1"),
        (np.array([1.0, 0.0, 0.0]), "../escape"),
    ])
    def test_store_document_rejects_what_the_store_would_skip(self, adapter, store, embedding, namespace):
        doc = Document("x", {"namespaceId": namespace, "type": "faq", "faqId": "f1"})

        assert adapter.store_document(doc, embedding) is False
        assert store.get_stats()["totalVectors"] == 0

    def test_delete_business_data(self, indexed, store):
        assert indexed.delete_business_data("B1") is True
        assert store.snapshot("B1") == []

    def test_delete_of_empty_namespace_is_success(self, adapter):
        assert adapter.delete_business_data("nobody") is True

    def test_delete_failure_returns_false(self, provider):
        store = MagicMock()
        store.delete_many.side_effect = RuntimeError("io")
        adapter = RetrievalAdapter(store, EmbeddingResolver(provider, InMemoryEmbeddingCache()))

        assert adapter.delete_business_data("B1") is False


# ---------------------------------------------------------------------------
# RETRIEVAL
# ---------------------------------------------------------------------------


class TestRetrieveRelevant:

    def test_vector_retrieval_ranks_by_similarity(self, indexed):
        docs = indexed.retrieve_relevant("B1", "what are your hours?", limit=2)

        assert [d.type for d in docs] == ["business_hours", "service"]
        assert docs[0].content.startswith("Business Hours:")
        assert docs[0].score == pytest.approx(1.0)
        assert "content" not in docs[0].metadata

    def test_limit(self, indexed):
        assert len(indexed.retrieve_relevant("B1", "haircut", limit=1)) == 1

    def test_unknown_namespace_is_empty(self, indexed):
        assert indexed.retrieve_relevant("B9", "haircut") == []

    def test_provider_outage_falls_back_to_keywords(self, indexed, provider):
        provider.healthy = False

        docs = indexed.retrieve_relevant("B1", "opening hours monday", limit=1)

        assert [d.type for d in docs] == ["business_hours"]

    def test_next_call_uses_vectors_again(self, indexed, provider):
        provider.healthy = False
        indexed.retrieve_relevant("B1", "opening hours", limit=1)
        provider.healthy = True

        docs = indexed.retrieve_relevant("B1", "haircut please", limit=1)

        assert docs[0].type == "service"
        assert docs[0].score == pytest.approx(1.0)

    def test_keyword_mode_never_embeds(self, indexed, provider):
        calls = provider.calls
        indexed.keyword_mode = True

        docs = indexed.retrieve_relevant("B1", "haircut price", limit=1)

        assert docs[0].type == "service"
        assert provider.calls == calls

    def test_explicit_mode_overrides_configuration(self, indexed, provider):
        calls = provider.calls
        indexed.retrieve_relevant("B1", "haircut", mode=RetrievalMode.KEYWORD)
        assert provider.calls == calls

    def test_resolver_exception_falls_back(self, store):
        resolver = MagicMock()
        resolver.resolve.side_effect = RuntimeError("boom")
        adapter = RetrievalAdapter(store, resolver)
        store.upsert([{
            "id": "a",
            "values": [1.0, 0.0, 0.0],
            "metadata": {"namespaceId": "B1", "type": "faq", "content": "haircut"},
        }])

        docs = adapter.retrieve_relevant("B1", "haircut")

        assert [d.id for d in docs] == ["a"]

    def test_store_failure_returns_empty_list(self, provider):
        store = MagicMock()
        store.query.side_effect = RuntimeError("store down")
        adapter = RetrievalAdapter(store, EmbeddingResolver(provider, InMemoryEmbeddingCache()))

        assert adapter.retrieve_relevant("B1", "anything") == []


# ---------------------------------------------------------------------------
# INDEXING
# ---------------------------------------------------------------------------


class TestIndexDocuments:

    def test_documents_get_namespace_and_ids(self, indexed, store):
        ids = [v.id for v in store.snapshot("B1")]
        assert ids[0] == "rag-B1-service-s1"
        assert ids[1] == "rag-B1-business_hours-1700000000500"

    def test_stale_documents_removed(self, indexed, store):
        count = indexed.index_documents("B1", [
            Document("Service: Haircut\nPrice: $55", {"type": "service", "source": "feed_ai", "serviceId": "s1"}),
        ])

        assert count == 1
        vectors = store.snapshot("B1")
        assert [v.id for v in vectors] == ["rag-B1-service-s1"]
        assert vectors[0].flat_metadata["content"].endswith("$55")

    def test_stale_removal_stays_in_its_namespace(self, indexed, store):
        store.upsert([Vector(
            id="rag-B1-business_hours-1700000000500",
            values=np.array([0.0, 1.0, 0.0]),
            metadata={"namespaceId": "B2", "type": "business_hours", "content": "copied id"},
        )])

        indexed.index_documents("B1", [
            Document("Service: Haircut\nPrice: $50", {"type": "service", "source": "feed_ai", "serviceId": "s1"}),
        ])

        assert [v.id for v in store.snapshot("B1")] == ["rag-B1-service-s1"]
        assert [v.id for v in store.snapshot("B2")] == ["rag-B1-business_hours-1700000000500"]

    def test_indexing_never_loads_other_namespaces(self, tmp_path, provider):
        storage = tmp_path / "vector-store"
        seed = FileVectorStore(storage, dimension=3)
        for i in range(20):
            seed.upsert([Vector(
                id=f"rag-N{i}-faq-1",
                values=np.array([1.0, 0.0, 0.0]),
                metadata={"namespaceId": f"N{i}", "type": "faq", "faqId": "1"},
            )])

        store = FileVectorStore(storage, dimension=3)
        adapter = RetrievalAdapter(store, EmbeddingResolver(provider, InMemoryEmbeddingCache()))
        docs = [Document("Service: Cut", {"type": "service", "serviceId": "s1"})]

        with patch.object(store, "_load_namespace", wraps=store._load_namespace) as load:
            adapter.index_documents("B1", docs + [Document("Q", {"type": "faq", "faqId": "f1"})])
            adapter.index_documents("B1", docs)

        assert {c.args[0] for c in load.call_args_list} == {"B1"}
        assert [v.id for v in store.snapshot("B1")] == ["rag-B1-service-s1"]

    def test_stale_ids_deleted_in_one_call(self, provider):
        store = MagicMock()
        store.upsert.return_value = True
        store.snapshot.return_value = [
            Vector(id=i, values=np.ones(3), metadata={"namespaceId": "B1", "type": "faq"})
            for i in ("old-1", "old-2", "rag-B1-faq-f1")
        ]
        adapter = RetrievalAdapter(store, EmbeddingResolver(provider, InMemoryEmbeddingCache()))

        adapter.index_documents("B1", [Document("Q", {"type": "faq", "faqId": "f1"})])

        store.delete_ids.assert_called_once_with("B1", ["old-1", "old-2"])
        store.delete_one.assert_not_called()

    def test_missing_embedding_writes_nothing(self, adapter, store, provider):
        provider.healthy = False

        with pytest.raises(EmbeddingUnavailableError):
            adapter.index_documents("B1", [Document("x", {"type": "faq"})])

        assert store.snapshot("B1") == []

    def test_persist_failure_raises_sync_error(self, provider):
        store = MagicMock()
        store.upsert.return_value = False
        adapter = RetrievalAdapter(store, EmbeddingResolver(provider, InMemoryEmbeddingCache()))

        with pytest.raises(SyncError):
            adapter.index_documents("B1", [Document("x", {"type": "faq", "faqId": "1"})])

    def test_empty_document_list_clears_namespace(self, indexed, store):
        assert indexed.index_documents("B1", []) == 0
        assert store.snapshot("B1") == []


# ---------------------------------------------------------------------------
# CONTEXT FORMATTING
# ---------------------------------------------------------------------------


class TestFormatChunksForContext:

    def test_sections_in_fixed_order(self):
        docs = [
            Document("Q: a\nA: b", {"type": "faq"}),
            Document("Service: Cut", {"type": "service"}),
            Document("Business Name: X", {"type": "basic_info"}),
            Document("Service: Color", {"type": "service"}),
        ]

        assert format_chunks_for_context(docs) == (
            "## BUSINESS INFORMATION\nBusiness Name: X\n\n"
            "## SERVICES\nService: Cut\n\nService: Color\n\n"
            "## FREQUENTLY ASKED QUESTIONS\nQ: a\nA: b"
        )

    def test_single_valued_section_uses_first_document(self):
        docs = [
            Document("Hours one", {"type": "business_hours"}),
            Document("Hours two", {"type": "business_hours"}),
        ]
        assert format_chunks_for_context(docs) == "## BUSINESS HOURS\nHours one"

    def test_empty(self):
        assert format_chunks_for_context([]) == ""
