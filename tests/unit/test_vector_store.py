"""
Unit Tests for Vector Store

Runs against an in-memory Chroma client.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock
import threading

import pytest

from rag_pipeline.core import VectorStore, build_search_filter, normalize_metadata
from rag_pipeline.exceptions import ValidationError, VectorStoreError

from conftest import make_fragment


class TestNormalizeMetadata:
    """Metadata coercion."""

    def test_primitives_kept(self):
        metadata = {"source": "a.txt", "page": 3, "score": 0.5, "draft": False, "tag": None}
        assert normalize_metadata(metadata) == metadata

    def test_datetime_to_iso(self):
        moment = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert normalize_metadata({"at": moment}) == {"at": "2024-01-02T03:04:05+00:00"}

    def test_sequences_joined(self):
        assert normalize_metadata({"tags": ["a", "b", 3]}) == {"tags": "a,b,3"}

    def test_mapping_to_json(self):
        assert normalize_metadata({"author": {"name": "Ada"}}) == {"author": '{"name": "Ada"}'}

    def test_empty(self):
        assert normalize_metadata(None) == {}


class TestBuildSearchFilter:
    """Expiry clause composition."""

    def test_expiry_only(self):
        assert build_search_filter(1000) == {"expiresAtMs": {"$gt": 1000}}

    def test_equality_keys_become_clauses(self):
        search_filter = build_search_filter(1000, {"documentId": "doc-1", "source": "a.txt"})
        assert search_filter == {
            "$and": [
                {"expiresAtMs": {"$gt": 1000}},
                {"documentId": "doc-1"},
                {"source": "a.txt"},
            ]
        }

    def test_operator_filter_kept_whole(self):
        where = {"$or": [{"source": "a.txt"}, {"source": "b.txt"}]}
        assert build_search_filter(5, where) == {"$and": [{"expiresAtMs": {"$gt": 5}}, where]}


class TestVectorStore:
    """Behaviour of the Chroma-backed store."""

    @pytest.mark.asyncio
    async def test_add_and_count(self, chroma_store):
        added = await chroma_store.add(
            [
                make_fragment("doc-1-chunk-0", "doc-1", [1.0, 0.0]),
                make_fragment("doc-1-chunk-1", "doc-1", [0.0, 1.0]),
            ]
        )

        assert added == 2
        assert await chroma_store.count() == 2

    @pytest.mark.asyncio
    async def test_add_empty(self, chroma_store):
        assert await chroma_store.add([]) == 0

    @pytest.mark.asyncio
    async def test_add_rejects_missing_embedding(self, chroma_store):
        with pytest.raises(ValidationError):
            await chroma_store.add([make_fragment("f-1", "doc-1", [])])

    @pytest.mark.asyncio
    async def test_add_rejects_mixed_dimensions(self, chroma_store):
        with pytest.raises(ValidationError):
            await chroma_store.add(
                [
                    make_fragment("f-1", "doc-1", [1.0, 0.0]),
                    make_fragment("f-2", "doc-1", [1.0, 0.0, 0.0]),
                ]
            )

    @pytest.mark.asyncio
    async def test_add_is_upsert(self, chroma_store):
        await chroma_store.add([make_fragment("f-1", "doc-1", [1.0, 0.0], text="old")])
        await chroma_store.add([make_fragment("f-1", "doc-1", [1.0, 0.0], text="new")])

        results = await chroma_store.search([1.0, 0.0], k=5)

        assert await chroma_store.count() == 1
        assert results[0].text == "new"

    @pytest.mark.asyncio
    async def test_search_orders_by_relevance(self, chroma_store):
        await chroma_store.add(
            [
                make_fragment("far", "doc-1", [0.0, 1.0]),
                make_fragment("near", "doc-1", [1.0, 0.1]),
                make_fragment("exact", "doc-1", [1.0, 0.0]),
            ]
        )

        results = await chroma_store.search([1.0, 0.0], k=3)

        assert [result.fragment_id for result in results] == ["exact", "near", "far"]
        assert results[0].relevance == pytest.approx(1.0, abs=1e-4)
        assert all(a.relevance >= b.relevance for a, b in zip(results, results[1:]))

    @pytest.mark.asyncio
    async def test_search_excludes_expired_even_when_closest(self, chroma_store):
        await chroma_store.add(
            [
                make_fragment("expired", "doc-1", [1.0, 0.0], expired=True),
                make_fragment("live", "doc-1", [0.6, 0.8]),
            ]
        )

        results = await chroma_store.search([1.0, 0.0], k=5)

        assert [result.fragment_id for result in results] == ["live"]

    @pytest.mark.asyncio
    async def test_search_scoped_to_document(self, chroma_store):
        await chroma_store.add(
            [
                make_fragment("a-0", "doc-a", [1.0, 0.0]),
                make_fragment("b-0", "doc-b", [0.9, 0.1]),
            ]
        )

        results = await chroma_store.search([1.0, 0.0], k=5, where={"documentId": "doc-b"})

        assert [result.fragment_id for result in results] == ["b-0"]
        assert results[0].metadata["documentId"] == "doc-b"

    @pytest.mark.asyncio
    async def test_relevance_not_clamped(self, chroma_store):
        await chroma_store.add([make_fragment("opposite", "doc-1", [-1.0, 0.0])])

        results = await chroma_store.search([1.0, 0.0], k=1)

        assert results[0].relevance == pytest.approx(-1.0, abs=1e-4)

    @pytest.mark.asyncio
    async def test_system_metadata_stored(self, chroma_store):
        fragment = make_fragment(
            "f-1", "doc-1", [1.0, 0.0], metadata={"source": "a.txt", "documentId": "spoofed"}
        )
        await chroma_store.add([fragment])

        metadata = (await chroma_store.search([1.0, 0.0], k=1))[0].metadata

        assert metadata["documentId"] == "doc-1"
        assert metadata["source"] == "a.txt"
        assert metadata["expiresAtMs"] == fragment.expires_at_ms
        assert metadata["chunkIndex"] == 0

    @pytest.mark.asyncio
    async def test_search_validation(self, chroma_store):
        with pytest.raises(ValidationError):
            await chroma_store.search([], k=5)
        with pytest.raises(ValidationError):
            await chroma_store.search([1.0, 0.0], k=0)

    @pytest.mark.asyncio
    async def test_delete_expired(self, chroma_store):
        await chroma_store.add(
            [
                make_fragment("old-1", "doc-1", [1.0, 0.0], expired=True),
                make_fragment("old-2", "doc-2", [0.0, 1.0], expired=True),
                make_fragment("live", "doc-1", [0.6, 0.8]),
            ]
        )

        assert await chroma_store.delete_expired() == 2
        assert await chroma_store.count() == 1

    @pytest.mark.asyncio
    async def test_delete_expired_with_reference_time(self, chroma_store):
        await chroma_store.add([make_fragment("live", "doc-1", [1.0, 0.0])])

        later = datetime.now(timezone.utc) + timedelta(days=8)

        assert await chroma_store.delete_expired(now=later) == 1
        assert await chroma_store.count() == 0

    @pytest.mark.asyncio
    async def test_delete_by_document(self, chroma_store):
        await chroma_store.add(
            [
                make_fragment("a-0", "doc-a", [1.0, 0.0]),
                make_fragment("a-1", "doc-a", [0.9, 0.1]),
                make_fragment("b-0", "doc-b", [0.0, 1.0]),
            ]
        )

        assert await chroma_store.delete_by_document("doc-a") == 2
        assert await chroma_store.delete_by_document("doc-a") == 0
        assert await chroma_store.count() == 1

    @pytest.mark.asyncio
    async def test_get_by_document(self, chroma_store):
        await chroma_store.add(
            [
                replace(make_fragment("a-1", "doc-a", [0.9, 0.1], text="second"), chunk_index=1),
                make_fragment("a-0", "doc-a", [1.0, 0.0], text="first"),
                make_fragment("a-old", "doc-a", [1.0, 0.0], expired=True),
                make_fragment("b-0", "doc-b", [0.0, 1.0]),
            ]
        )

        fragments = await chroma_store.get_by_document("doc-a")

        assert [fragment.fragment_id for fragment in fragments] == ["a-0", "a-1"]
        assert [fragment.text for fragment in fragments] == ["first", "second"]
        assert fragments[0].document_id == "doc-a"
        assert await chroma_store.get_by_document("doc-missing") == []

        with pytest.raises(ValidationError):
            await chroma_store.get_by_document("")

    @pytest.mark.asyncio
    async def test_list_fragments_skips_expired(self, chroma_store):
        await chroma_store.add(
            [
                make_fragment("live", "doc-1", [1.0, 0.0]),
                make_fragment("old", "doc-2", [0.0, 1.0], expired=True),
            ]
        )

        fragments = await chroma_store.list_fragments()

        assert [fragment.fragment_id for fragment in fragments] == ["live"]

    @pytest.mark.asyncio
    async def test_delete_by_ids(self, chroma_store):
        await chroma_store.add([make_fragment("f-1", "doc-1", [1.0, 0.0])])

        assert await chroma_store.delete_by_ids([]) == 0
        assert await chroma_store.delete_by_ids(["f-1"]) == 1
        assert await chroma_store.count() == 0

    @pytest.mark.asyncio
    async def test_ping(self, chroma_store):
        assert await chroma_store.ping() is True

    def test_unsupported_backend(self):
        store = VectorStore(backend="pinecone")
        with pytest.raises(VectorStoreError):
            store.client

    @pytest.mark.asyncio
    async def test_collection_created_off_event_loop(self):
        collection = Mock()
        collection.count.return_value = 0
        client = Mock()
        creating_threads = []

        def get_or_create_collection(**kwargs):
            creating_threads.append(threading.get_ident())
            return collection

        client.get_or_create_collection.side_effect = get_or_create_collection
        store = VectorStore(collection_name="lazy", client=client)

        assert await store.count() == 0
        assert await store.count() == 0

        assert len(creating_threads) == 1
        assert creating_threads[0] != threading.get_ident()
