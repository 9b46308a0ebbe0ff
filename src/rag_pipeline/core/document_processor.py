"""
Document Processor - Turn extracted document text into stored fragments

Format-specific parsing happens upstream; this module receives plain text,
chunks it, embeds the chunks and stores them with a retention window.

Part of the RAG Query Pipeline.

License: MIT
"""

from datetime import datetime, timedelta, timezone
from typing import List, Dict, Any, Optional
import logging
import uuid

from ..exceptions import DocumentNotFoundError, EmbeddingError, ValidationError
from ..models import StoredFragment, TextFragment, to_epoch_ms
from ..utils.helpers import Timer
from .embedding_generator import EmbeddingGenerator
from .text_chunker import TextChunker
from .vector_store import VectorStoreBase

logger = logging.getLogger(__name__)


class DocumentProcessor:
    """
    Ingestion pipeline for already-extracted document text.

    Every fragment receives ``expires_at = created_at + retention_days`` so it
    drops out of retrieval once the retention window passes.
    """

    def __init__(
        self,
        chunker: TextChunker,
        embedding_generator: EmbeddingGenerator,
        vector_store: VectorStoreBase,
        retention_days: int = 7,
    ):
        """
        Initialize the document processor.

        Args:
            chunker: Text chunker
            embedding_generator: Embedding generator used for chunks
            vector_store: Destination store
            retention_days: Lifetime of stored fragments in days
        """
        if retention_days < 1:
            raise ValueError("retention_days must be at least 1")

        self.chunker = chunker
        self.embedding_generator = embedding_generator
        self.vector_store = vector_store
        self.retention_days = retention_days

    def build_fragments(
        self,
        document_id: str,
        chunks: List[str],
        embeddings: List[List[float]],
        source: str,
        original_size: int,
        metadata: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> List[TextFragment]:
        """
        Assemble fragments for one document.

        Args:
            document_id: Source document identifier
            chunks: Chunk texts
            embeddings: One embedding per chunk
            source: Human-readable document source (e.g. file name)
            original_size: Length of the original text
            metadata: Caller metadata merged into each fragment
            created_at: Creation time (defaults to now, UTC)

        Returns:
            Fragments ready to store
        """
        created_at = created_at or datetime.now(timezone.utc)
        expires_at = created_at + timedelta(days=self.retention_days)
        total_chunks = len(chunks)

        fragments = []
        for index, (text, embedding) in enumerate(zip(chunks, embeddings)):
            fragment_metadata = {
                **(metadata or {}),
                "documentId": document_id,
                "chunkIndex": index,
                "totalChunks": total_chunks,
                "source": source,
                "chunkSize": len(text),
                "originalSize": original_size,
                "createdAt": created_at.isoformat(),
                "createdAtMs": to_epoch_ms(created_at),
                "expiresAt": expires_at.isoformat(),
                "expiresAtMs": to_epoch_ms(expires_at),
            }
            fragments.append(
                TextFragment(
                    id=f"{document_id}-chunk-{index}",
                    text=text,
                    source_document_id=document_id,
                    chunk_index=index,
                    total_chunks=total_chunks,
                    created_at=created_at,
                    expires_at=expires_at,
                    embedding=embedding,
                    metadata=fragment_metadata,
                )
            )

        return fragments

    async def process_text(
        self,
        text: str,
        source: str,
        metadata: Optional[Dict[str, Any]] = None,
        document_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Chunk, embed and store one document.

        Args:
            text: Extracted plain text
            source: Document source name
            metadata: Optional caller metadata
            document_id: Identifier to use; a UUID is generated when omitted

        Returns:
            Summary with document_id, chunk count, sizes and expiry

        Raises:
            ValidationError: If the text yields no chunks
            EmbeddingError: If the embedding count does not match the chunk count
        """
        document_id = document_id or str(uuid.uuid4())
        logger.info(f"Starting document processing: {source}", extra={"document_id": document_id})

        with Timer("Document processing") as timer:
            chunks = self.chunker.split_text(text)
            if not chunks:
                raise ValidationError("Document contains no text to index")

            embeddings = await self.embedding_generator.embed_batch(chunks)
            if len(embeddings) != len(chunks):
                raise EmbeddingError(
                    f"Expected {len(chunks)} embeddings, received {len(embeddings)}"
                )

            fragments = self.build_fragments(
                document_id, chunks, embeddings, source, len(text), metadata
            )
            await self.vector_store.add(fragments)

        logger.info(
            f"Document processed successfully: {source}",
            extra={
                "document_id": document_id,
                "chunk_count": len(fragments),
                "processing_time_ms": timer.elapsed_ms,
            },
        )

        return {
            "document_id": document_id,
            "source": source,
            "chunk_count": len(fragments),
            "original_size": len(text),
            "average_chunk_size": sum(len(c) for c in chunks) // len(chunks),
            "expires_at": fragments[0].expires_at.isoformat(),
            "processing_time_ms": timer.elapsed_ms,
        }

    async def delete_document(self, document_id: str) -> Dict[str, Any]:
        """
        Delete all fragments belonging to a document.

        Args:
            document_id: Document identifier

        Returns:
            Summary with the number of deleted fragments
        """
        deleted = await self.vector_store.delete_by_document(document_id)
        return {"document_id": document_id, "fragments_deleted": deleted}

    async def get_document_info(self, document_id: str) -> Dict[str, Any]:
        """
        Summarize the live fragments of one document.

        Args:
            document_id: Document identifier

        Returns:
            Chunk count, text length, average chunk size, source, timestamps
            and the first fragment's metadata

        Raises:
            DocumentNotFoundError: If no live fragment belongs to the document
        """
        fragments = await self.vector_store.get_by_document(document_id)
        if not fragments:
            logger.warning(f"Document not found: {document_id}")
            raise DocumentNotFoundError(document_id)

        total_chunks = len(fragments)
        total_text_length = sum(len(fragment.text) for fragment in fragments)
        first = fragments[0].metadata

        return {
            "document_id": document_id,
            "total_chunks": total_chunks,
            "total_text_length": total_text_length,
            "average_chunk_size": round(total_text_length / total_chunks),
            "original_size": first.get("originalSize"),
            "source": first.get("source", "unknown"),
            "created_at": first.get("createdAt"),
            "expires_at": first.get("expiresAt"),
            "status": "processed",
            "metadata": dict(first),
        }

    async def list_documents(self) -> List[Dict[str, Any]]:
        """
        List every document that still has live fragments, newest first.

        Returns:
            One summary per document
        """
        grouped: Dict[str, List[StoredFragment]] = {}
        for fragment in await self.vector_store.list_fragments():
            if fragment.document_id:
                grouped.setdefault(fragment.document_id, []).append(fragment)

        def newest_first(item):
            document_id, fragments = item
            return (-int(fragments[0].metadata.get("createdAtMs", 0) or 0), document_id)

        documents = []
        for document_id, fragments in sorted(grouped.items(), key=newest_first):
            first = min(fragments, key=lambda fragment: fragment.chunk_index).metadata
            documents.append(
                {
                    "document_id": document_id,
                    "source": first.get("source", "unknown"),
                    "chunk_count": len(fragments),
                    "original_size": first.get("originalSize", 0),
                    "created_at": first.get("createdAt"),
                    "expires_at": first.get("expiresAt"),
                }
            )
        return documents

    async def get_system_stats(self) -> Dict[str, Any]:
        """Fragment and document counts with embedding cache statistics."""
        documents = await self.list_documents()
        cache_stats = self.embedding_generator.get_cache_stats()

        return {
            "vector_database": {
                "total_fragments": await self.vector_store.count(),
                "total_documents": len(documents),
                "collection_name": getattr(self.vector_store, "collection_name", None),
            },
            "embeddings": {
                "cache_size": cache_stats["size"],
                "model": cache_stats["model"],
                "max_input_length": cache_stats["max_input_length"],
            },
            "retention_days": self.retention_days,
        }
