"""
Vector Store - Storage and retrieval for fragment embeddings

Part of the RAG Query Pipeline.

License: MIT
"""

from datetime import datetime, timezone
from functools import partial
from typing import List, Dict, Any, Optional
import asyncio
import json
import logging
import threading
from abc import ABC, abstractmethod

from ..exceptions import ValidationError, VectorStoreError
from ..infrastructure import monitoring
from ..models import RetrievalResult, StoredFragment, TextFragment, to_epoch_ms

logger = logging.getLogger(__name__)

EXPIRES_AT_MS_KEY = "expiresAtMs"
DOCUMENT_ID_KEY = "documentId"


def _normalize_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        items = []
        for item in value:
            if isinstance(item, (dict, list, tuple)):
                items.append(json.dumps(item, default=str))
            elif isinstance(item, datetime):
                items.append(item.isoformat())
            else:
                items.append(str(item))
        return ",".join(items)
    return json.dumps(value, default=str)


def normalize_metadata(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Coerce every metadata value to a primitive the store accepts.

    Primitives are kept, datetimes become ISO-8601 strings, sequences become
    comma-joined strings and mappings (or anything else) become JSON.

    Args:
        metadata: Arbitrary metadata mapping

    Returns:
        Mapping of str keys to str/int/float/bool/None
    """
    if not metadata:
        return {}
    return {str(key): _normalize_value(value) for key, value in metadata.items()}


def build_search_filter(now_ms: int, where: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Conjoin the mandatory expiry clause with an optional caller filter.

    Plain equality maps (``{"documentId": "doc-1"}``) are split into one
    clause per key; filters already written with operators are kept whole.
    """
    clauses: List[Dict[str, Any]] = [{EXPIRES_AT_MS_KEY: {"$gt": now_ms}}]

    if where:
        if any(str(key).startswith("$") for key in where):
            clauses.append(where)
        else:
            clauses.extend({key: value} for key, value in where.items())

    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class VectorStoreBase(ABC):
    """Abstract base class for vector stores."""

    @abstractmethod
    async def add(self, fragments: List[TextFragment]) -> int:
        """Store fragments with embeddings in the vector store."""
        pass

    @abstractmethod
    async def search(
        self, query_vector: List[float], k: int = 5, where: Optional[Dict[str, Any]] = None
    ) -> List[RetrievalResult]:
        """Return the ``k`` nearest non-expired fragments matching ``where``."""
        pass

    @abstractmethod
    async def get_by_document(self, document_id: str) -> List[StoredFragment]:
        """Return the non-expired fragments of one document in chunk order."""
        pass

    @abstractmethod
    async def list_fragments(self) -> List[StoredFragment]:
        """Return every non-expired fragment."""
        pass

    @abstractmethod
    async def delete_by_ids(self, ids: List[str]) -> int:
        """Delete fragments by their IDs."""
        pass

    @abstractmethod
    async def delete_by_document(self, document_id: str) -> int:
        """Delete every fragment of one source document."""
        pass

    @abstractmethod
    async def delete_expired(self) -> int:
        """Delete fragments whose expiry has passed."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of stored fragments."""
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Check if the vector store is healthy."""
        pass


class VectorStore(VectorStoreBase):
    """
    ChromaDB-backed vector store.

    Chroma's client is synchronous; every call is dispatched to the event
    loop's default executor so retention sweeps and live queries interleave.
    """

    def __init__(
        self,
        collection_name: str = "rag-documents",
        backend: str = "ephemeral",
        client: Any = None,
        distance_metric: str = "cosine",
        **kwargs: Any,
    ) -> None:
        """
        Initialize the vector store.

        Args:
            collection_name: Chroma collection name
            backend: 'ephemeral', 'persistent' or 'http'
            client: Pre-built Chroma client (overrides ``backend``)
            distance_metric: HNSW space ('cosine', 'l2', 'ip')
            **kwargs: Backend-specific configuration (path, host, port)
        """
        self.collection_name = collection_name
        self.backend = backend
        self.distance_metric = distance_metric
        self.config = kwargs
        self._client: Any = client
        self._collection: Any = None
        self._init_lock = threading.Lock()

    @property
    def client(self) -> Any:
        """Lazy initialization of vector store client."""
        if self._client is None:
            with self._init_lock:
                if self._client is None:
                    self._client = self._create_client()
        return self._client

    @property
    def collection(self) -> Any:
        """Get or create the collection."""
        if self._collection is None:
            client = self.client
            with self._init_lock:
                if self._collection is None:
                    self._collection = client.get_or_create_collection(
                        name=self.collection_name,
                        metadata={"hnsw:space": self.distance_metric},
                    )
                    logger.info(f"Using Chroma collection: {self.collection_name}")
        return self._collection

    def _create_client(self) -> Any:
        """Create ChromaDB client."""
        try:
            import chromadb
        except ImportError:
            raise ImportError("ChromaDB library required. Install with: pip install chromadb")

        if self.backend == "ephemeral":
            return chromadb.EphemeralClient()
        elif self.backend == "persistent":
            return chromadb.PersistentClient(path=self.config.get("path") or "./chroma_data")
        elif self.backend == "http":
            return chromadb.HttpClient(
                host=self.config.get("host") or "localhost",
                port=int(self.config.get("port") or 8000),
            )
        else:
            raise VectorStoreError(f"Unsupported backend: {self.backend}")

    async def _run(self, func, *args, **kwargs) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    async def _collection_call(self, method: str, **kwargs) -> Any:
        # Resolved on the executor thread; first use creates the client and collection
        return await self._run(lambda: getattr(self.collection, method)(**kwargs))

    def _fragment_metadata(self, fragment: TextFragment) -> Dict[str, Any]:
        metadata = normalize_metadata(fragment.metadata)
        metadata.update(
            {
                DOCUMENT_ID_KEY: fragment.source_document_id,
                "chunkIndex": fragment.chunk_index,
                "totalChunks": fragment.total_chunks,
                "createdAt": fragment.created_at.isoformat(),
                "createdAtMs": fragment.created_at_ms,
                "expiresAt": fragment.expires_at.isoformat(),
                EXPIRES_AT_MS_KEY: fragment.expires_at_ms,
            }
        )
        # Chroma rejects None metadata values
        return {key: value for key, value in metadata.items() if value is not None}

    async def add(self, fragments: List[TextFragment]) -> int:
        """
        Store fragments with embeddings in the vector store.

        Args:
            fragments: Fragments carrying one embedding each

        Returns:
            Number of fragments stored

        Raises:
            ValidationError: If an embedding is missing or dimensions disagree
        """
        if not fragments:
            logger.warning("No fragments provided for storage")
            return 0

        dimension = None
        for fragment in fragments:
            if not fragment.embedding:
                raise ValidationError(f"Fragment {fragment.id} has no embedding")
            if dimension is None:
                dimension = len(fragment.embedding)
            elif len(fragment.embedding) != dimension:
                raise ValidationError(
                    f"Fragment {fragment.id} embedding has {len(fragment.embedding)} "
                    f"dimensions, expected {dimension}"
                )

        try:
            await self._collection_call(
                "upsert",
                ids=[fragment.id for fragment in fragments],
                embeddings=[list(fragment.embedding) for fragment in fragments],
                documents=[fragment.text for fragment in fragments],
                metadatas=[self._fragment_metadata(fragment) for fragment in fragments],
            )
        except Exception as e:
            logger.error(f"Error storing fragments: {str(e)}")
            raise

        logger.info(f"Successfully stored {len(fragments)} fragments")
        return len(fragments)

    async def search(
        self, query_vector: List[float], k: int = 5, where: Optional[Dict[str, Any]] = None
    ) -> List[RetrievalResult]:
        """
        Search for the nearest non-expired fragments.

        Args:
            query_vector: Query vector to search with
            k: Number of results to return
            where: Optional equality filter, e.g. ``{"documentId": "doc-1"}``

        Returns:
            Results ordered by descending relevance

        Raises:
            ValidationError: If query_vector is empty or k < 1
        """
        if not query_vector:
            raise ValidationError("Query vector cannot be empty")
        if k < 1:
            raise ValidationError("k must be at least 1")

        now_ms = to_epoch_ms(datetime.now(timezone.utc))
        search_filter = build_search_filter(now_ms, where)

        try:
            with monitoring.vector_search_duration_tracker():
                response = await self._collection_call(
                    "query",
                    query_embeddings=[list(query_vector)],
                    n_results=k,
                    where=search_filter,
                    include=["documents", "metadatas", "distances"],
                )
        except Exception as e:
            logger.error(f"Error searching vector store: {str(e)}")
            raise

        ids = (response.get("ids") or [[]])[0]
        documents = (response.get("documents") or [[]])[0] or []
        metadatas = (response.get("metadatas") or [[]])[0] or []
        distances = (response.get("distances") or [[]])[0] or []

        results = []
        for i, fragment_id in enumerate(ids):
            results.append(
                RetrievalResult.from_distance(
                    fragment_id=fragment_id,
                    text=documents[i] if i < len(documents) else "",
                    metadata=metadatas[i] if i < len(metadatas) else {},
                    distance=distances[i] if i < len(distances) else 1.0,
                )
            )

        results.sort(key=lambda result: result.relevance, reverse=True)

        logger.debug(f"Vector search returned {len(results)} results", extra={"k": k})
        return results

    async def _get_live(self, where: Optional[Dict[str, Any]] = None) -> List[StoredFragment]:
        now_ms = to_epoch_ms(datetime.now(timezone.utc))
        response = await self._collection_call(
            "get",
            where=build_search_filter(now_ms, where),
            include=["documents", "metadatas"],
        )

        ids = response.get("ids") or []
        documents = response.get("documents") or []
        metadatas = response.get("metadatas") or []

        return [
            StoredFragment(
                fragment_id=fragment_id,
                text=(documents[i] if i < len(documents) else None) or "",
                metadata=dict((metadatas[i] if i < len(metadatas) else None) or {}),
            )
            for i, fragment_id in enumerate(ids)
        ]

    async def get_by_document(self, document_id: str) -> List[StoredFragment]:
        """
        Read back the live fragments of one document.

        Args:
            document_id: Source document identifier

        Returns:
            Fragments ordered by chunk index; empty when the document is
            unknown or fully expired
        """
        if not document_id:
            raise ValidationError("document_id cannot be empty")

        fragments = await self._get_live({DOCUMENT_ID_KEY: document_id})
        fragments.sort(key=lambda fragment: fragment.chunk_index)
        return fragments

    async def list_fragments(self) -> List[StoredFragment]:
        return await self._get_live()

    async def delete_by_ids(self, ids: List[str]) -> int:
        """
        Delete fragments by their IDs.

        Args:
            ids: Fragment IDs to delete

        Returns:
            Number of IDs submitted for deletion
        """
        if not ids:
            return 0

        try:
            await self._collection_call("delete", ids=list(ids))
        except Exception as e:
            logger.error(f"Error deleting fragments: {str(e)}")
            raise

        logger.info(f"Deleted {len(ids)} fragments")
        return len(ids)

    async def _delete_where(self, where: Dict[str, Any]) -> int:
        matches = await self._collection_call("get", where=where, include=["metadatas"])
        ids = matches.get("ids") or []
        if not ids:
            return 0
        return await self.delete_by_ids(ids)

    async def delete_by_document(self, document_id: str) -> int:
        """
        Delete every fragment that belongs to a document.

        Args:
            document_id: Source document identifier

        Returns:
            Number of fragments deleted
        """
        if not document_id:
            raise ValidationError("document_id cannot be empty")

        deleted = await self._delete_where({DOCUMENT_ID_KEY: document_id})
        logger.info(f"Deleted document {document_id}", extra={"fragments_deleted": deleted})
        return deleted

    async def delete_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete fragments whose ``expiresAtMs`` lies in the past.

        Args:
            now: Reference time (defaults to current UTC time)

        Returns:
            Number of fragments deleted
        """
        now_ms = to_epoch_ms(now or datetime.now(timezone.utc))
        deleted = await self._delete_where({EXPIRES_AT_MS_KEY: {"$lt": now_ms}})
        if deleted:
            logger.info(f"Deleted {deleted} expired fragments")
        return deleted

    async def count(self) -> int:
        total = await self._collection_call("count")
        monitoring.set_vector_store_size(total)
        return total

    async def ping(self) -> bool:
        """
        Check if the vector store is healthy.

        Returns:
            True if the store is accessible and responsive
        """
        try:
            await self._run(lambda: self.client.heartbeat())
            return True
        except Exception as e:
            logger.error(f"Vector store health check failed: {str(e)}")
            return False
