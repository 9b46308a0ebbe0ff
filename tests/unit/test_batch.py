"""
Unit Tests for Batch Coordinator
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from rag_pipeline.core import BatchCoordinator
from rag_pipeline.exceptions import GenerationError, RetryExhaustedError, TransientProviderError
from rag_pipeline.models import BatchFailure, QueryResult

from conftest import FakeGenerationProvider


def query_result(query: str) -> QueryResult:
    return QueryResult(
        query=query, answer=f"Answer to {query}", sources=[], confidence=0.5, processing_time_ms=1
    )


class TestBatchCoordinator:
    """Test cases for BatchCoordinator class."""

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            BatchCoordinator(Mock(), batch_size=0)

    @pytest.mark.asyncio
    async def test_failures_reported_in_place(self):
        async def process_query(query, **kwargs):
            if query == "bad":
                raise GenerationError("no usable text")
            return query_result(query)

        processor = Mock()
        processor.process_query = AsyncMock(side_effect=process_query)
        coordinator = BatchCoordinator(processor, batch_size=3, pause_seconds=0)

        results = await coordinator.run_batch(["q1", "bad", "q3"])

        assert isinstance(results[0], QueryResult)
        assert isinstance(results[1], BatchFailure)
        assert isinstance(results[2], QueryResult)
        assert results[1].query == "bad"
        assert results[1].error_kind == "generation_error"
        assert results[1].error == "No answer could be generated"
        assert results[1].status == "failed"
        assert [r.query for r in results] == ["q1", "bad", "q3"]

    @pytest.mark.asyncio
    async def test_unexpected_error_reported_without_detail(self):
        processor = Mock()
        processor.process_query = AsyncMock(
            side_effect=RuntimeError("secret detail /var/lib/chroma.sqlite3")
        )
        coordinator = BatchCoordinator(processor, pause_seconds=0)

        [failure] = await coordinator.run_batch(["q"])

        assert failure.error_kind == "internal_error"
        assert failure.error == "An unexpected error occurred"

    @pytest.mark.asyncio
    async def test_provider_text_not_reported(self):
        error = RetryExhaustedError(TransientProviderError("429 from api.example key sk-abc"), 3)
        processor = Mock()
        processor.process_query = AsyncMock(side_effect=error)
        coordinator = BatchCoordinator(processor, pause_seconds=0)

        [failure] = await coordinator.run_batch(["q"])

        assert failure.error_kind == "retry_exhausted"
        assert "sk-abc" not in failure.error

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_batch_size(self):
        in_flight = 0
        peak = 0

        async def process_query(query, **kwargs):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return query_result(query)

        processor = Mock()
        processor.process_query = AsyncMock(side_effect=process_query)
        coordinator = BatchCoordinator(processor, batch_size=3, pause_seconds=0)

        queries = [f"q{i}" for i in range(8)]
        results = await coordinator.run_batch(queries)

        assert peak == 3
        assert [r.query for r in results] == queries

    @pytest.mark.asyncio
    async def test_input_order_kept_when_completion_order_differs(self):
        delays = {"q0": 0.03, "q1": 0.02, "q2": 0.01}
        completed = []

        async def process_query(query, **kwargs):
            await asyncio.sleep(delays[query])
            completed.append(query)
            return query_result(query)

        processor = Mock()
        processor.process_query = AsyncMock(side_effect=process_query)
        coordinator = BatchCoordinator(processor, batch_size=3, pause_seconds=0)

        results = await coordinator.run_batch(["q0", "q1", "q2"])

        assert completed == ["q2", "q1", "q0"]
        assert [r.query for r in results] == ["q0", "q1", "q2"]

    @pytest.mark.asyncio
    async def test_options_forwarded(self):
        processor = Mock()
        processor.process_query = AsyncMock(side_effect=lambda q, **kwargs: query_result(q))
        coordinator = BatchCoordinator(processor, pause_seconds=0)

        await coordinator.run_batch(["q"], max_results=7, include_metadata=True, document_id="d")

        processor.process_query.assert_awaited_once_with(
            "q", max_results=7, include_metadata=True, document_id="d"
        )

    @pytest.mark.asyncio
    async def test_cancellation_not_captured(self):
        processor = Mock()
        processor.process_query = AsyncMock(side_effect=asyncio.CancelledError())
        coordinator = BatchCoordinator(processor, pause_seconds=0)

        with pytest.raises(asyncio.CancelledError):
            await coordinator.run_batch(["q"])


class TestBatchThroughProcessor:
    """Batch processing through a real query processor."""

    @pytest.mark.asyncio
    async def test_middle_query_fails(self, embedding_generator, mock_vector_store):
        from rag_pipeline.core import AnswerSynthesizer, RAGQueryProcessor

        processor = RAGQueryProcessor(
            embedding_generator=embedding_generator,
            vector_store=mock_vector_store,
            synthesizer=AnswerSynthesizer(FakeGenerationProvider(fail_when="explode")),
            base_delay=0,
            batch_pause_seconds=0,
        )

        results = await processor.batch_process_queries(
            ["first question", "please explode", "third question"]
        )

        assert [type(r) for r in results] == [QueryResult, BatchFailure, QueryResult]
        assert results[1].error_kind == "generation_error"
        assert processor.metrics.successful_queries == 2
        assert processor.metrics.failed_queries == 1
