"""
RAG Service - Composition root for the query pipeline

Builds every component once from configuration and owns their lifecycle.
The HTTP layer holds one instance on ``app.state``; there are no module-level
service singletons.

Part of the RAG Query Pipeline.

License: MIT
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from .config import RAGConfig
from .core.answer_synthesizer import AnswerSynthesizer
from .core.batch import BatchItem
from .core.document_processor import DocumentProcessor
from .core.embedding_generator import EmbeddingGenerator
from .core.history import QueryHistory
from .core.providers import (
    EmbeddingProvider,
    GenerationProvider,
    OpenAIEmbeddingProvider,
    OpenAIGenerationProvider,
)
from .core.query import RAGQueryProcessor
from .core.text_chunker import TextChunker
from .core.vector_store import VectorStore, VectorStoreBase
from .infrastructure.cache import EmbeddingCache
from .infrastructure.monitoring import PerformanceMetrics
from .infrastructure.retention import RetentionSweeper
from .models import QueryResult

logger = logging.getLogger(__name__)


class RAGService:
    """
    Production RAG service wiring chunking, embedding, retrieval and synthesis.
    """

    def __init__(
        self,
        query_processor: RAGQueryProcessor,
        document_processor: DocumentProcessor,
        retention_sweeper: Optional[RetentionSweeper] = None,
        max_batch_queries: int = 10,
    ):
        self.query_processor = query_processor
        self.document_processor = document_processor
        self.retention_sweeper = retention_sweeper
        self.max_batch_queries = max_batch_queries
        self.started = False

    @classmethod
    def from_config(
        cls,
        config: RAGConfig,
        embedding_provider: Optional[EmbeddingProvider] = None,
        generation_provider: Optional[GenerationProvider] = None,
        vector_store: Optional[VectorStoreBase] = None,
    ) -> "RAGService":
        """
        Build the service from configuration.

        Args:
            config: Loaded configuration
            embedding_provider: Override for the OpenAI embedding provider
            generation_provider: Override for the OpenAI generation provider
            vector_store: Override for the Chroma vector store

        Returns:
            Fully wired service
        """
        logger.info("Initializing RAG service components...")

        embedding_provider = embedding_provider or OpenAIEmbeddingProvider(
            model=config.embedding.model, api_key=config.llm.api_key
        )
        generation_provider = generation_provider or OpenAIGenerationProvider(
            model=config.llm.model,
            max_tokens=config.llm.max_tokens,
            temperature=config.llm.temperature,
            api_key=config.llm.api_key,
        )

        if vector_store is None:
            vector_store = VectorStore(
                collection_name=config.vector_store.collection_name,
                backend=config.vector_store.backend,
                distance_metric=config.vector_store.metric,
                path=config.vector_store.persist_directory,
                host=config.vector_store.host,
                port=config.vector_store.port,
            )

        embedding_generator = EmbeddingGenerator(
            provider=embedding_provider,
            cache=EmbeddingCache(capacity=config.embedding.cache_capacity),
            model=config.embedding.model,
            max_input_length=config.embedding.max_input_length,
            dimensions=config.embedding.dimension,
            batch_size=config.embedding.batch_size,
            batch_pause_seconds=config.embedding.batch_pause_seconds,
            max_attempts=config.embedding.max_retries,
            base_delay=config.embedding.retry_base_delay,
        )

        history = QueryHistory(
            max_entries=config.history.max_entries,
            ttl_seconds=config.history.ttl_hours * 3600,
        )

        query_processor = RAGQueryProcessor(
            embedding_generator=embedding_generator,
            vector_store=vector_store,
            synthesizer=AnswerSynthesizer(generation_provider, model=config.llm.model),
            history=history,
            metrics=PerformanceMetrics(),
            max_attempts=config.retry.max_attempts,
            base_delay=config.retry.base_delay,
            max_delay=config.retry.max_delay,
            max_retry_window_seconds=config.retry.max_retry_window_seconds,
            batch_size=config.batch.batch_size,
            batch_pause_seconds=config.batch.pause_seconds,
        )

        document_processor = DocumentProcessor(
            chunker=TextChunker(
                max_chunk_size=config.chunking.max_chunk_size,
                overlap_size=config.chunking.overlap_size,
            ),
            embedding_generator=embedding_generator,
            vector_store=vector_store,
            retention_days=config.retention.retention_days,
        )

        retention_sweeper = None
        if config.retention.enabled:
            retention_sweeper = RetentionSweeper(
                vector_store,
                interval_seconds=config.retention.cleanup_interval_minutes * 60,
                history=history,
            )

        logger.info("RAG service initialization completed")
        return cls(
            query_processor,
            document_processor,
            retention_sweeper=retention_sweeper,
            max_batch_queries=config.batch.max_queries,
        )

    @property
    def vector_store(self) -> VectorStoreBase:
        return self.query_processor.vector_store

    async def start(self) -> None:
        """Start background tasks."""
        if self.started:
            return
        if self.retention_sweeper is not None:
            self.retention_sweeper.start()
        self.started = True

    async def stop(self) -> None:
        """Stop background tasks."""
        logger.info("Cleaning up RAG service resources")
        if self.retention_sweeper is not None:
            await self.retention_sweeper.stop()
        self.started = False

    async def process_query(
        self,
        query: str,
        max_results: int = 5,
        include_metadata: bool = False,
        document_id: Optional[str] = None,
    ) -> QueryResult:
        return await self.query_processor.process_query(
            query,
            max_results=max_results,
            include_metadata=include_metadata,
            document_id=document_id,
        )

    async def batch_process_queries(
        self,
        queries: List[str],
        max_results: int = 5,
        include_metadata: bool = False,
        document_id: Optional[str] = None,
    ) -> List[BatchItem]:
        return await self.query_processor.batch_process_queries(
            queries,
            max_results=max_results,
            include_metadata=include_metadata,
            document_id=document_id,
        )

    async def get_stats(self) -> Dict[str, Any]:
        return await self.query_processor.get_stats()

    def get_history(self, limit: int = 50) -> Dict[str, Any]:
        return self.query_processor.get_history(limit)

    def clear_history(self) -> Dict[str, Any]:
        return self.query_processor.clear_history()

    async def ingest_document(
        self,
        text: str,
        source: str,
        metadata: Optional[Dict[str, Any]] = None,
        document_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.document_processor.process_text(
            text, source, metadata=metadata, document_id=document_id
        )

    async def delete_document(self, document_id: str) -> Dict[str, Any]:
        return await self.document_processor.delete_document(document_id)

    async def get_document_info(self, document_id: str) -> Dict[str, Any]:
        return await self.document_processor.get_document_info(document_id)

    async def list_documents(self) -> List[Dict[str, Any]]:
        return await self.document_processor.list_documents()

    async def get_document_stats(self) -> Dict[str, Any]:
        return await self.document_processor.get_system_stats()

    async def health_check(self) -> Dict[str, Any]:
        """
        Health check of the pipeline's dependencies.

        Returns:
            Dictionary with overall health and per-component status
        """
        services = {}

        vector_healthy = await self.vector_store.ping()
        services["vector_store"] = {
            "healthy": vector_healthy,
            "backend": getattr(self.vector_store, "backend", "custom"),
        }

        services["embedding_cache"] = {
            "healthy": True,
            **self.query_processor.embedding_generator.get_cache_stats(),
        }

        sweeper = self.retention_sweeper
        services["retention_sweep"] = {
            "healthy": sweeper is None or not self.started or sweeper.running,
            "enabled": sweeper is not None,
            "running": bool(sweeper and sweeper.running),
        }

        return {
            "healthy": all(service["healthy"] for service in services.values()),
            "services": services,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
