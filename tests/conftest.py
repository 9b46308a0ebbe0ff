"""
Test Configuration - Shared test fixtures and setup

This module provides common test fixtures and configuration for the test suite.
"""

import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence
from unittest.mock import AsyncMock, Mock

import pytest

from rag_pipeline.config import RAGConfig
from rag_pipeline.core import (
    AnswerSynthesizer,
    EmbeddingGenerator,
    GenerationResponse,
    QueryHistory,
    RAGQueryProcessor,
    VectorStore,
    VectorStoreBase,
)
from rag_pipeline.infrastructure import EmbeddingCache, PerformanceMetrics
from rag_pipeline.models import HistoryEntry, RetrievalResult, TextFragment


def letter_vector(text: str) -> List[float]:
    """Deterministic 27-dimensional bag-of-letters embedding, L2-normalized."""
    counts = [0.0] * 27
    for char in text.lower():
        if "a" <= char <= "z":
            counts[ord(char) - ord("a")] += 1.0
    counts[26] = 0.5
    norm = math.sqrt(sum(value * value for value in counts))
    return [value / norm for value in counts]


class FakeEmbeddingProvider:
    """Embedding provider returning letter vectors, optionally failing first."""

    def __init__(self, failures: Optional[Sequence[Exception]] = None, vector=None):
        self.failures = list(failures or [])
        self.vector = vector
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.failures:
            raise self.failures.pop(0)
        if self.vector is not None:
            return self.vector
        return letter_vector(text)


class FakeGenerationProvider:
    """Generation provider that echoes a fixed answer."""

    def __init__(
        self,
        answer: str = "Paris is the capital of France.",
        tokens_used: int = 42,
        failures: Optional[Sequence[Exception]] = None,
        fail_when: Optional[str] = None,
    ):
        self.model = "fake-model"
        self.max_tokens = 256
        self.temperature = 0.3
        self.answer = answer
        self.tokens_used = tokens_used
        self.failures = list(failures or [])
        self.fail_when = fail_when
        self.calls: List[tuple] = []

    async def generate(self, system_prompt: str, user_prompt: str) -> GenerationResponse:
        self.calls.append((system_prompt, user_prompt))
        if self.failures:
            raise self.failures.pop(0)
        if self.fail_when and self.fail_when in user_prompt:
            from rag_pipeline.exceptions import GenerationError

            raise GenerationError("Generation provider returned no usable text")
        return GenerationResponse(text=self.answer, tokens_used=self.tokens_used)


def make_result(fragment_id: str = "doc-1-chunk-0", relevance: float = 0.9, **metadata):
    """Build a retrieval result with the given relevance."""
    return RetrievalResult.from_distance(
        fragment_id=fragment_id,
        text=f"Text of {fragment_id}",
        metadata={"source": "guide.txt", **metadata},
        distance=1.0 - relevance,
    )


def make_fragment(
    fragment_id: str,
    document_id: str,
    embedding: List[float],
    text: str = "fragment text",
    expired: bool = False,
    metadata: Optional[dict] = None,
) -> TextFragment:
    """Build a fragment that is live, or already expired when ``expired``."""
    now = datetime.now(timezone.utc)
    if expired:
        created_at, expires_at = now - timedelta(days=2), now - timedelta(days=1)
    else:
        created_at, expires_at = now, now + timedelta(days=7)
    return TextFragment(
        id=fragment_id,
        text=text,
        source_document_id=document_id,
        chunk_index=0,
        total_chunks=1,
        created_at=created_at,
        expires_at=expires_at,
        embedding=embedding,
        metadata=metadata or {"source": f"{document_id}.txt"},
    )


@pytest.fixture
def embedding_provider():
    """Fake embedding provider."""
    return FakeEmbeddingProvider()


@pytest.fixture
def generation_provider():
    """Fake generation provider."""
    return FakeGenerationProvider()


@pytest.fixture
def embedding_generator(embedding_provider):
    """Embedding generator with zero backoff."""
    return EmbeddingGenerator(
        provider=embedding_provider,
        cache=EmbeddingCache(capacity=100),
        base_delay=0,
        batch_pause_seconds=0,
    )


@pytest.fixture
def mock_vector_store():
    """Mock vector store for testing."""
    mock = Mock(spec=VectorStoreBase)
    mock.collection_name = "mock-collection"
    mock.add = AsyncMock(side_effect=lambda fragments: len(fragments))
    mock.search = AsyncMock(return_value=[make_result("doc-1-chunk-0", 0.9)])
    mock.delete_by_ids = AsyncMock(return_value=0)
    mock.delete_by_document = AsyncMock(return_value=0)
    mock.delete_expired = AsyncMock(return_value=0)
    mock.get_by_document = AsyncMock(return_value=[])
    mock.list_fragments = AsyncMock(return_value=[])
    mock.count = AsyncMock(return_value=1)
    mock.ping = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def chroma_store():
    """Vector store on an in-memory Chroma client with a unique collection."""
    import chromadb

    return VectorStore(
        collection_name=f"test-{uuid.uuid4().hex}",
        client=chromadb.EphemeralClient(),
    )


@pytest.fixture
def query_processor(embedding_generator, mock_vector_store, generation_provider):
    """Query processor wired with fakes and zero backoff."""
    return RAGQueryProcessor(
        embedding_generator=embedding_generator,
        vector_store=mock_vector_store,
        synthesizer=AnswerSynthesizer(generation_provider),
        history=QueryHistory(max_entries=100),
        metrics=PerformanceMetrics(),
        base_delay=0,
        batch_pause_seconds=0,
    )


@pytest.fixture
def test_config() -> RAGConfig:
    """Configuration with backoff and pauses disabled."""
    config = RAGConfig()
    config.embedding.retry_base_delay = 0
    config.embedding.batch_pause_seconds = 0
    config.retry.base_delay = 0
    config.batch.pause_seconds = 0
    config.retention.enabled = False
    return config


@pytest.fixture
def sample_text() -> str:
    """Two-paragraph document used by ingestion tests."""
    return (
        "Machine learning is a subset of artificial intelligence that enables computers "
        "to learn from data.\n\n"
        "Vector databases store high-dimensional embeddings for efficient similarity search."
    )


def make_history_entry(entry_id: str, age: timedelta = timedelta(0)) -> HistoryEntry:
    """Build a history entry recorded ``age`` ago."""
    return HistoryEntry(
        id=entry_id,
        query=f"query {entry_id}",
        answer="answer",
        source_count=1,
        confidence=0.5,
        processing_time_ms=10,
        timestamp=datetime.now(timezone.utc) - age,
    )
