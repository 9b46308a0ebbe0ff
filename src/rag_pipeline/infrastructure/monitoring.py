"""
Monitoring - Prometheus metrics and running performance counters

Part of the RAG Query Pipeline.

License: MIT
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, Optional
import time
import logging
from contextlib import contextmanager

logger = logging.getLogger(__name__)

# Prometheus metrics (initialized lazily)
_metrics_initialized = False
REQUEST_COUNT = None
REQUEST_DURATION = None
QUERY_DURATION = None
EMBEDDING_DURATION = None
VECTOR_SEARCH_DURATION = None
LLM_GENERATION_DURATION = None
CACHE_HITS = None
CACHE_MISSES = None
ERROR_COUNT = None
RETRY_COUNT = None
VECTOR_STORE_SIZE = None


def setup_prometheus_metrics() -> bool:
    """
    Initialize Prometheus metrics for the RAG pipeline.

    Returns:
        True if metrics are available
    """
    global _metrics_initialized
    global REQUEST_COUNT, REQUEST_DURATION, QUERY_DURATION
    global EMBEDDING_DURATION, VECTOR_SEARCH_DURATION, LLM_GENERATION_DURATION
    global CACHE_HITS, CACHE_MISSES, ERROR_COUNT, RETRY_COUNT, VECTOR_STORE_SIZE

    if _metrics_initialized:
        return True

    try:
        from prometheus_client import Counter, Histogram, Gauge

        # HTTP request metrics
        REQUEST_COUNT = Counter(
            "rag_http_requests_total", "Total HTTP requests", ["method", "endpoint", "status_code"]
        )

        REQUEST_DURATION = Histogram(
            "rag_http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
        )

        # Pipeline metrics
        QUERY_DURATION = Histogram(
            "rag_query_duration_seconds", "RAG query processing duration in seconds", ["outcome"]
        )

        EMBEDDING_DURATION = Histogram(
            "rag_embedding_duration_seconds", "Embedding generation duration in seconds"
        )

        VECTOR_SEARCH_DURATION = Histogram(
            "rag_vector_search_duration_seconds", "Vector search duration in seconds"
        )

        LLM_GENERATION_DURATION = Histogram(
            "rag_llm_generation_duration_seconds", "LLM generation duration in seconds", ["model"]
        )

        # Cache metrics
        CACHE_HITS = Counter("rag_embedding_cache_hits_total", "Total embedding cache hits")

        CACHE_MISSES = Counter("rag_embedding_cache_misses_total", "Total embedding cache misses")

        # Error metrics
        ERROR_COUNT = Counter("rag_errors_total", "Total errors", ["error_kind", "component"])

        RETRY_COUNT = Counter("rag_retries_total", "Total retries scheduled", ["scope"])

        VECTOR_STORE_SIZE = Gauge(
            "rag_vector_store_fragments", "Number of fragments in the vector store"
        )

        _metrics_initialized = True
        logger.info("Prometheus metrics initialized")
        return True

    except ImportError:
        logger.warning("prometheus_client not available, metrics disabled")
        return False


def generate_metrics_payload() -> bytes:
    """Render the Prometheus exposition payload."""
    from prometheus_client import generate_latest

    return generate_latest()


@contextmanager
def query_duration_tracker():
    """
    Context manager to track query duration.

    Yields a dict whose ``outcome`` key may be updated by the caller.
    """
    start_time = time.time()
    labels = {"outcome": "success"}
    try:
        yield labels
    except Exception:
        labels["outcome"] = "failure"
        raise
    finally:
        duration = time.time() - start_time
        if QUERY_DURATION:
            QUERY_DURATION.labels(outcome=labels["outcome"]).observe(duration)


@contextmanager
def embedding_duration_tracker():
    """Context manager to track embedding generation duration."""
    start_time = time.time()
    try:
        yield
    finally:
        duration = time.time() - start_time
        if EMBEDDING_DURATION:
            EMBEDDING_DURATION.observe(duration)


@contextmanager
def vector_search_duration_tracker():
    """Context manager to track vector search duration."""
    start_time = time.time()
    try:
        yield
    finally:
        duration = time.time() - start_time
        if VECTOR_SEARCH_DURATION:
            VECTOR_SEARCH_DURATION.observe(duration)


@contextmanager
def llm_generation_duration_tracker(model: str = "unknown"):
    """
    Context manager to track LLM generation duration.

    Args:
        model: Model name for labeling
    """
    start_time = time.time()
    try:
        yield
    finally:
        duration = time.time() - start_time
        if LLM_GENERATION_DURATION:
            LLM_GENERATION_DURATION.labels(model=model).observe(duration)


def record_http_request(method: str, endpoint: str, status_code: int, duration: float):
    """Record one HTTP request."""
    if REQUEST_DURATION:
        REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration)
    if REQUEST_COUNT:
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code=status_code).inc()


def record_cache_hit():
    """Record a cache hit."""
    if CACHE_HITS:
        CACHE_HITS.inc()


def record_cache_miss():
    """Record a cache miss."""
    if CACHE_MISSES:
        CACHE_MISSES.inc()


def record_error(error_kind: str, component: str):
    """
    Record an error occurrence.

    Args:
        error_kind: Stable error label (e.g. 'validation_error', 'retry_exhausted')
        component: Component where error occurred (e.g. 'embedding', 'vector_store')
    """
    if ERROR_COUNT:
        ERROR_COUNT.labels(error_kind=error_kind, component=component).inc()


def record_retry(scope: str):
    """Record a scheduled retry for 'query' or 'embedding'."""
    if RETRY_COUNT:
        RETRY_COUNT.labels(scope=scope).inc()


def set_vector_store_size(count: int):
    """Publish the current fragment count."""
    if VECTOR_STORE_SIZE:
        VECTOR_STORE_SIZE.set(count)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PerformanceMetrics:
    """
    Process-wide running counters for completed queries.

    Averages cover successful queries only and are updated incrementally:
    ``new_avg = (old_avg * (n - 1) + value) / n``.
    """

    total_queries: int = 0
    successful_queries: int = 0
    failed_queries: int = 0
    total_tokens_used: int = 0
    average_processing_time: float = 0.0
    average_confidence: float = 0.0
    last_query_time: Optional[datetime] = None
    start_time: datetime = field(default_factory=_utcnow)

    def record_success(self, processing_time_ms: float, confidence: float, tokens_used: int = 0):
        """
        Fold one successful query into the counters.

        Args:
            processing_time_ms: End-to-end processing time in milliseconds
            confidence: Confidence of the produced answer
            tokens_used: Tokens consumed by generation
        """
        self.total_queries += 1
        self.successful_queries += 1
        self.total_tokens_used += int(tokens_used or 0)
        self.last_query_time = _utcnow()

        n = self.successful_queries
        self.average_processing_time = (
            self.average_processing_time * (n - 1) + processing_time_ms
        ) / n
        self.average_confidence = (self.average_confidence * (n - 1) + confidence) / n

    def record_failure(self):
        """Count one query that terminated in failure."""
        self.total_queries += 1
        self.failed_queries += 1
        self.last_query_time = _utcnow()

    @property
    def success_rate(self) -> float:
        if self.total_queries == 0:
            return 0.0
        return self.successful_queries / self.total_queries * 100

    def reset(self):
        """Zero every counter and restart the clock."""
        self.total_queries = 0
        self.successful_queries = 0
        self.failed_queries = 0
        self.total_tokens_used = 0
        self.average_processing_time = 0.0
        self.average_confidence = 0.0
        self.last_query_time = None
        self.start_time = _utcnow()

    def snapshot(self) -> Dict[str, Any]:
        """
        Get a display-ready copy of the counters.

        Returns:
            Dictionary with rounded averages and ISO timestamps
        """
        now = _utcnow()
        return {
            "total_queries": self.total_queries,
            "successful_queries": self.successful_queries,
            "failed_queries": self.failed_queries,
            "success_rate": round(self.success_rate, 2),
            "total_tokens_used": self.total_tokens_used,
            "average_processing_time_ms": int(round(self.average_processing_time)),
            "average_confidence": round(self.average_confidence, 2),
            "last_query_time": self.last_query_time.isoformat() if self.last_query_time else None,
            "start_time": self.start_time.isoformat(),
            "uptime_seconds": round((now - self.start_time).total_seconds(), 3),
        }
