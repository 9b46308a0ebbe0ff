"""
RAG Query Pipeline - Retrieval-augmented question answering over a vector store

This package provides the components needed to answer natural-language
questions from indexed documents:

Core
- Text chunking with sliding-window overlap
- Embedding generation with caching and retry
- Chroma vector storage with document scoping and expiry
- Answer synthesis with derived confidence
- End-to-end query orchestration, batching, history and metrics

Infrastructure
- FastAPI server
- Prometheus monitoring and structured logging
- Retention sweep for expired fragments

License: MIT
"""

__version__ = "1.0.0"
__author__ = "RAG Course"
__email__ = "contact@ragcourse.com"

# Core exports
from .core.text_chunker import TextChunker
from .core.embedding_generator import EmbeddingGenerator
from .core.vector_store import VectorStore, VectorStoreBase
from .core.answer_synthesizer import AnswerSynthesizer, NO_INFORMATION_ANSWER
from .core.query import RAGQueryProcessor
from .core.batch import BatchCoordinator
from .core.history import QueryHistory
from .core.document_processor import DocumentProcessor

# Infrastructure exports
from .infrastructure.cache import EmbeddingCache
from .infrastructure.monitoring import PerformanceMetrics, setup_prometheus_metrics
from .infrastructure.retention import RetentionSweeper

# Models and errors
from .models import (
    TextFragment,
    RetrievalResult,
    StoredFragment,
    QueryResult,
    HistoryEntry,
    BatchFailure,
)
from .exceptions import (
    RAGPipelineError,
    ValidationError,
    DocumentNotFoundError,
    TransientProviderError,
    PermanentProviderError,
    EmbeddingError,
    GenerationError,
    VectorStoreError,
    RetryExhaustedError,
)

# Configuration exports
from .config import RAGConfig, ConfigManager, get_config, get_config_manager

# Service
from .service import RAGService

__all__ = [
    # Core
    "TextChunker",
    "EmbeddingGenerator",
    "VectorStore",
    "VectorStoreBase",
    "AnswerSynthesizer",
    "NO_INFORMATION_ANSWER",
    "RAGQueryProcessor",
    "BatchCoordinator",
    "QueryHistory",
    "DocumentProcessor",
    # Infrastructure
    "EmbeddingCache",
    "PerformanceMetrics",
    "setup_prometheus_metrics",
    "RetentionSweeper",
    # Models
    "TextFragment",
    "RetrievalResult",
    "StoredFragment",
    "QueryResult",
    "HistoryEntry",
    "BatchFailure",
    # Errors
    "RAGPipelineError",
    "ValidationError",
    "DocumentNotFoundError",
    "TransientProviderError",
    "PermanentProviderError",
    "EmbeddingError",
    "GenerationError",
    "VectorStoreError",
    "RetryExhaustedError",
    # Configuration
    "RAGConfig",
    "ConfigManager",
    "get_config",
    "get_config_manager",
    # Service
    "RAGService",
]
