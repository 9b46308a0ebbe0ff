"""
Core RAG Components - Building blocks of the query pipeline

This module contains the essential components:
- Text chunking and document ingestion
- Embedding generation and provider adapters
- Vector storage and retrieval
- Answer synthesis, query orchestration and batching

License: MIT
"""

from .text_chunker import TextChunker
from .document_processor import DocumentProcessor
from .embedding_generator import EmbeddingGenerator
from .vector_store import VectorStore, VectorStoreBase, build_search_filter, normalize_metadata
from .providers import (
    GenerationResponse,
    OpenAIEmbeddingProvider,
    OpenAIGenerationProvider,
    normalize_generation_response,
)
from .answer_synthesizer import AnswerSynthesizer, calculate_confidence
from .history import QueryHistory
from .batch import BatchCoordinator
from .query import RAGQueryProcessor, QueryStage

__all__ = [
    "TextChunker",
    "DocumentProcessor",
    "EmbeddingGenerator",
    "VectorStore",
    "VectorStoreBase",
    "build_search_filter",
    "normalize_metadata",
    "GenerationResponse",
    "OpenAIEmbeddingProvider",
    "OpenAIGenerationProvider",
    "normalize_generation_response",
    "AnswerSynthesizer",
    "calculate_confidence",
    "QueryHistory",
    "BatchCoordinator",
    "RAGQueryProcessor",
    "QueryStage",
]
