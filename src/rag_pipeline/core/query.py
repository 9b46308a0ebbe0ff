"""
Query Processing - End-to-end RAG query orchestration

Part of the RAG Query Pipeline.

License: MIT
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Dict, Any, Optional, Tuple
import asyncio
import logging
import time

from ..exceptions import RetryExhaustedError, ValidationError, is_retryable_error
from ..infrastructure import monitoring
from ..infrastructure.monitoring import PerformanceMetrics
from ..models import QueryResult, RetrievalResult, SynthesisResult
from ..utils.helpers import backoff_delay, create_unique_id
from .answer_synthesizer import AnswerSynthesizer
from .batch import BatchCoordinator, BatchItem
from .embedding_generator import EmbeddingGenerator
from .history import QueryHistory
from .vector_store import DOCUMENT_ID_KEY, VectorStoreBase

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 1000
MAX_RESULTS_LIMIT = 20


class QueryStage(str, Enum):
    """Pipeline stages of a single query."""

    EMBEDDING = "embedding"
    RETRIEVING = "retrieving"
    SYNTHESIZING = "synthesizing"
    DONE = "done"
    RETRY = "retry"
    FAILED = "failed"


class RAGQueryProcessor:
    """
    End-to-end RAG query processor.

    Combines embedding generation, vector search, and answer synthesis.
    Retryable failures restart the whole sequence from the embedding stage
    with exponential backoff, bounded by an attempt budget and a wall-clock
    retry window. Completed queries are recorded in the history and folded
    into the running performance metrics.
    """

    def __init__(
        self,
        embedding_generator: EmbeddingGenerator,
        vector_store: VectorStoreBase,
        synthesizer: AnswerSynthesizer,
        history: Optional[QueryHistory] = None,
        metrics: Optional[PerformanceMetrics] = None,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: Optional[float] = None,
        max_retry_window_seconds: Optional[float] = 60.0,
        batch_size: int = 3,
        batch_pause_seconds: float = 1.0,
    ):
        """
        Initialize the RAG query processor.

        Args:
            embedding_generator: EmbeddingGenerator instance
            vector_store: VectorStore instance
            synthesizer: AnswerSynthesizer instance
            history: Query history; a default one is created when omitted
            metrics: Performance counters; fresh counters when omitted
            max_attempts: Attempts of the full stage sequence
            base_delay: Base backoff delay in seconds
            max_delay: Optional cap on a single backoff delay
            max_retry_window_seconds: No retry is scheduled past this elapsed time
            batch_size: Concurrent queries per sub-batch
            batch_pause_seconds: Pause between sub-batches
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.embedding_generator = embedding_generator
        self.vector_store = vector_store
        self.synthesizer = synthesizer
        self.history = history if history is not None else QueryHistory()
        self.metrics = metrics if metrics is not None else PerformanceMetrics()
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_retry_window_seconds = max_retry_window_seconds
        self.batch_coordinator = BatchCoordinator(
            self, batch_size=batch_size, pause_seconds=batch_pause_seconds
        )

    @property
    def model(self) -> str:
        return self.synthesizer.model

    def _validate(self, query: str, max_results: int) -> str:
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("Query cannot be empty")
        if len(query) > MAX_QUERY_LENGTH:
            raise ValidationError(f"Query cannot exceed {MAX_QUERY_LENGTH} characters")
        if (
            isinstance(max_results, bool)
            or not isinstance(max_results, int)
            or not 1 <= max_results <= MAX_RESULTS_LIMIT
        ):
            raise ValidationError(f"max_results must be between 1 and {MAX_RESULTS_LIMIT}")
        return query.strip()

    async def process_query(
        self,
        query: str,
        max_results: int = 5,
        include_metadata: bool = False,
        document_id: Optional[str] = None,
    ) -> QueryResult:
        """
        Process a complete RAG query.

        Args:
            query: User's question
            max_results: Number of fragments to retrieve
            include_metadata: Include fragment metadata in the prompt and sources
            document_id: Restrict retrieval to one source document

        Returns:
            QueryResult with answer, sources and metadata

        Raises:
            ValidationError: If the query or max_results is invalid
            RetryExhaustedError: If every attempt failed with a retryable error
            RAGPipelineError: Non-retryable stage failures propagate unchanged
        """
        query = self._validate(query, max_results)
        query_id = create_unique_id("query")
        where = {DOCUMENT_ID_KEY: document_id} if document_id else None
        log_extra = {"query_id": query_id, "document_id": document_id}

        logger.info(f"Processing query: {query[:100]}", extra=log_extra)
        start_time = time.perf_counter()

        with monitoring.query_duration_tracker():
            try:
                results, synthesis, attempts, timings = await self._run_with_retry(
                    query, max_results, include_metadata, where, query_id
                )
            except Exception as e:
                self.metrics.record_failure()
                monitoring.record_error(getattr(e, "error_kind", type(e).__name__), "query")
                logger.error(
                    f"Query failed: {str(e)}",
                    extra={**log_extra, "stage": QueryStage.FAILED.value},
                )
                raise

        processing_time_ms = int(round((time.perf_counter() - start_time) * 1000))

        result = QueryResult(
            query=query,
            answer=synthesis.answer,
            sources=results,
            confidence=synthesis.confidence,
            processing_time_ms=processing_time_ms,
            metadata={
                "query_id": query_id,
                "model": self.model,
                "retrieved_count": len(results),
                "max_results": max_results,
                "document_id": document_id,
                "attempts": attempts,
                "total_tokens_used": synthesis.tokens_used,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                **timings,
            },
        )

        self.history.record(result, model=self.model)
        self.metrics.record_success(processing_time_ms, result.confidence, synthesis.tokens_used)

        logger.info(
            f"Query completed successfully in {processing_time_ms}ms",
            extra={
                **log_extra,
                "stage": QueryStage.DONE.value,
                "attempts": attempts,
                "sources": len(results),
                "confidence": result.confidence,
            },
        )
        return result

    async def _run_stages(
        self,
        query: str,
        max_results: int,
        include_metadata: bool,
        where: Optional[Dict[str, Any]],
        stage_log: Dict[str, Any],
    ) -> Tuple[List[RetrievalResult], SynthesisResult, Dict[str, int]]:
        timings = {}

        stage_log["stage"] = QueryStage.EMBEDDING
        stage_start = time.perf_counter()
        query_vector = await self.embedding_generator.embed(query)
        timings["embedding_time_ms"] = int(round((time.perf_counter() - stage_start) * 1000))

        stage_log["stage"] = QueryStage.RETRIEVING
        stage_start = time.perf_counter()
        results = await self.vector_store.search(query_vector, k=max_results, where=where)
        timings["search_time_ms"] = int(round((time.perf_counter() - stage_start) * 1000))

        stage_log["stage"] = QueryStage.SYNTHESIZING
        stage_start = time.perf_counter()
        synthesis = await self.synthesizer.synthesize(query, results, include_metadata)
        timings["generation_time_ms"] = int(round((time.perf_counter() - stage_start) * 1000))

        stage_log["stage"] = QueryStage.DONE
        return results, synthesis, timings

    async def _run_with_retry(
        self,
        query: str,
        max_results: int,
        include_metadata: bool,
        where: Optional[Dict[str, Any]],
        query_id: str,
    ) -> Tuple[List[RetrievalResult], SynthesisResult, int, Dict[str, int]]:
        started = time.monotonic()
        last_error: Optional[Exception] = None
        attempt = 0

        while attempt < self.max_attempts:
            attempt += 1
            stage_log: Dict[str, Any] = {"stage": QueryStage.EMBEDDING}

            try:
                results, synthesis, timings = await self._run_stages(
                    query, max_results, include_metadata, where, stage_log
                )
                return results, synthesis, attempt, timings

            except Exception as e:
                failed_stage = stage_log["stage"].value
                if not is_retryable_error(e):
                    logger.error(
                        f"Non-retryable failure during {failed_stage}: {str(e)}",
                        extra={"query_id": query_id, "stage": failed_stage, "attempt": attempt},
                    )
                    raise

                last_error = e
                if attempt >= self.max_attempts:
                    break

                delay = backoff_delay(attempt, self.base_delay, self.max_delay)
                elapsed = time.monotonic() - started
                if (
                    self.max_retry_window_seconds is not None
                    and elapsed + delay > self.max_retry_window_seconds
                ):
                    logger.warning(
                        f"Retry window of {self.max_retry_window_seconds}s exceeded, giving up",
                        extra={"query_id": query_id, "attempt": attempt},
                    )
                    break

                monitoring.record_retry("query")
                logger.warning(
                    f"Attempt {attempt} failed during {failed_stage}: {str(e)}. "
                    f"Retrying in {delay:.2f}s...",
                    extra={
                        "query_id": query_id,
                        "stage": QueryStage.RETRY.value,
                        "failed_stage": failed_stage,
                        "attempt": attempt,
                    },
                )
                await asyncio.sleep(delay)

        raise RetryExhaustedError(last_error, attempt) from last_error

    async def batch_process_queries(
        self,
        queries: List[str],
        max_results: int = 5,
        include_metadata: bool = False,
        document_id: Optional[str] = None,
    ) -> List[BatchItem]:
        """
        Process several queries; failures are returned as data.

        Args:
            queries: Questions to answer
            max_results: Fragments retrieved per query

        Returns:
            One QueryResult or BatchFailure per query, in input order
        """
        return await self.batch_coordinator.run_batch(
            queries,
            max_results=max_results,
            include_metadata=include_metadata,
            document_id=document_id,
        )

    def get_history(self, limit: int = 50) -> Dict[str, Any]:
        return self.history.get_history(limit)

    def clear_history(self) -> Dict[str, Any]:
        """Clear the query history and reset performance metrics."""
        logger.info("Clearing RAG query history and resetting metrics")
        self.history.clear()
        self.metrics.reset()
        return {"success": True, "message": "History and metrics reset"}

    async def get_stats(self) -> Dict[str, Any]:
        """
        Get an aggregate snapshot of the pipeline.

        Returns:
            Dictionary with vector store, embedding, model, performance and history stats
        """
        total_fragments = await self.vector_store.count()
        cache_stats = self.embedding_generator.get_cache_stats()
        provider = self.synthesizer.provider

        return {
            "vector_database": {
                "total_fragments": total_fragments,
                "collection_name": getattr(self.vector_store, "collection_name", None),
            },
            "embeddings": {
                "cache_size": cache_stats["size"],
                "capacity": cache_stats["capacity"],
                "hits": cache_stats["hits"],
                "misses": cache_stats["misses"],
                "model": cache_stats["model"],
            },
            "ai": {
                "model": self.model,
                "max_tokens": getattr(provider, "max_tokens", None),
                "temperature": getattr(provider, "temperature", None),
            },
            "performance": self.metrics.snapshot(),
            "query_history": {
                "total_entries": len(self.history),
                "max_entries": self.history.max_entries,
                "ttl_hours": self.history.ttl_seconds / 3600,
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
