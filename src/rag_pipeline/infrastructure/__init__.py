"""
Infrastructure Components - Monitoring, caching, and operational tools

This module provides:
- Bounded in-memory embedding cache
- Prometheus metrics and running performance counters
- Structured logging configuration
- Retention sweep for expired data

License: MIT
"""

from .cache import EmbeddingCache
from .monitoring import (
    PerformanceMetrics,
    setup_prometheus_metrics,
    query_duration_tracker,
    embedding_duration_tracker,
    vector_search_duration_tracker,
    llm_generation_duration_tracker,
)
from .logging_config import (
    setup_logging,
    setup_production_logging,
    setup_development_logging,
    JSONFormatter,
)
from .retention import RetentionSweeper

__all__ = [
    "EmbeddingCache",
    "PerformanceMetrics",
    "setup_prometheus_metrics",
    "query_duration_tracker",
    "embedding_duration_tracker",
    "vector_search_duration_tracker",
    "llm_generation_duration_tracker",
    "setup_logging",
    "setup_production_logging",
    "setup_development_logging",
    "JSONFormatter",
    "RetentionSweeper",
]
