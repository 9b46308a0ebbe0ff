"""
Data Models - Fragments, retrieval results and query results

Part of the RAG Query Pipeline.

License: MIT
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import List, Dict, Any, Optional

from .exceptions import ValidationError

SOURCE_PREVIEW_LENGTH = 200


def to_epoch_ms(moment: datetime) -> int:
    """Convert a datetime to integer milliseconds since the epoch."""
    return int(moment.timestamp() * 1000)


@dataclass(frozen=True)
class TextFragment:
    """A bounded slice of a source document together with its embedding."""

    id: str
    text: str
    source_document_id: str
    chunk_index: int
    total_chunks: int
    created_at: datetime
    expires_at: datetime
    embedding: List[float] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.id:
            raise ValidationError("Fragment id cannot be empty")
        if self.expires_at <= self.created_at:
            raise ValidationError(
                f"Fragment {self.id} expires_at must be later than created_at"
            )

    @property
    def created_at_ms(self) -> int:
        return to_epoch_ms(self.created_at)

    @property
    def expires_at_ms(self) -> int:
        return to_epoch_ms(self.expires_at)


@dataclass
class RetrievalResult:
    """
    One nearest-neighbour hit from the vector store.

    ``relevance`` is ``1 - distance`` and is deliberately not clamped: with
    cosine distance it lies in [-1, 1].
    """

    fragment_id: str
    text: str
    metadata: Dict[str, Any]
    distance: float
    relevance: float

    @classmethod
    def from_distance(
        cls, fragment_id: str, text: str, metadata: Optional[Dict[str, Any]], distance: float
    ) -> "RetrievalResult":
        return cls(
            fragment_id=fragment_id,
            text=text or "",
            metadata=dict(metadata or {}),
            distance=float(distance),
            relevance=1.0 - float(distance),
        )

    def to_source(self, include_metadata: bool = False) -> Dict[str, Any]:
        """Render as a source preview for API responses."""
        preview = self.text[:SOURCE_PREVIEW_LENGTH]
        if len(self.text) > SOURCE_PREVIEW_LENGTH:
            preview += "..."

        source = {
            "id": self.fragment_id,
            "source": self.metadata.get("source", "Unknown"),
            "relevance": self.relevance,
            "text": preview,
        }
        if include_metadata:
            source["metadata"] = self.metadata
        return source


@dataclass
class StoredFragment:
    """A fragment read back from the vector store without its embedding."""

    fragment_id: str
    text: str
    metadata: Dict[str, Any]

    @property
    def document_id(self) -> Optional[str]:
        return self.metadata.get("documentId")

    @property
    def chunk_index(self) -> int:
        return int(self.metadata.get("chunkIndex", 0) or 0)


@dataclass
class SynthesisResult:
    """Answer produced by the synthesizer."""

    answer: str
    confidence: float
    tokens_used: int = 0


@dataclass
class QueryResult:
    """Final result of one RAG query."""

    query: str
    answer: str
    sources: List[RetrievalResult]
    confidence: float
    processing_time_ms: int
    metadata: Dict[str, Any] = field(default_factory=dict)
    status: str = "ok"

    @property
    def tokens_used(self) -> int:
        return int(self.metadata.get("total_tokens_used", 0) or 0)

    def to_dict(self, include_metadata: bool = False) -> Dict[str, Any]:
        return {
            "query": self.query,
            "answer": self.answer,
            "sources": [source.to_source(include_metadata) for source in self.sources],
            "confidence": self.confidence,
            "processing_time_ms": self.processing_time_ms,
            "metadata": dict(self.metadata),
            "status": self.status,
        }


@dataclass
class BatchFailure:
    """A batch item that failed; reported as data instead of raised."""

    query: str
    error: str
    error_kind: str = "pipeline_error"
    status: str = "failed"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class HistoryEntry:
    """Trimmed record of a completed query."""

    id: str
    query: str
    answer: str
    source_count: int
    confidence: float
    processing_time_ms: int
    timestamp: datetime
    tokens_used: int = 0
    model: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        entry = asdict(self)
        entry["timestamp"] = self.timestamp.isoformat()
        return entry
