"""
Query History - Bounded, time-limited record of completed queries

Part of the RAG Query Pipeline.

License: MIT
"""

from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, List, Optional
import logging
import secrets

from ..models import HistoryEntry, QueryResult, to_epoch_ms
from ..utils.helpers import truncate_text

logger = logging.getLogger(__name__)

QUERY_PREVIEW_LENGTH = 200
ANSWER_PREVIEW_LENGTH = 500


class QueryHistory:
    """
    Fixed-capacity history keyed by entry id.

    Inserting past ``max_entries`` evicts the oldest entry. Entries older
    than ``ttl_seconds`` are removed by ``remove_expired``.
    """

    def __init__(self, max_entries: int = 1000, ttl_seconds: float = 30 * 24 * 3600):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._entries: "OrderedDict[str, HistoryEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def new_entry_id(now: Optional[datetime] = None) -> str:
        moment = now or datetime.now(timezone.utc)
        return f"query_{to_epoch_ms(moment)}_{secrets.token_hex(4)}"

    def add(self, entry: HistoryEntry) -> HistoryEntry:
        """Insert an entry, evicting the oldest beyond capacity."""
        self._entries[entry.id] = entry

        while len(self._entries) > self.max_entries:
            evicted_id, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted history entry {evicted_id}")

        return entry

    def record(self, result: QueryResult, model: Optional[str] = None) -> HistoryEntry:
        """
        Store a trimmed copy of a completed query.

        Args:
            result: Completed query result
            model: Generation model that produced the answer

        Returns:
            The stored entry
        """
        now = datetime.now(timezone.utc)
        entry = HistoryEntry(
            id=self.new_entry_id(now),
            query=truncate_text(result.query, QUERY_PREVIEW_LENGTH),
            answer=truncate_text(result.answer, ANSWER_PREVIEW_LENGTH),
            source_count=len(result.sources),
            confidence=result.confidence,
            processing_time_ms=result.processing_time_ms,
            timestamp=now,
            tokens_used=result.tokens_used,
            model=model,
        )
        return self.add(entry)

    def get_history(self, limit: int = 50) -> Dict[str, Any]:
        """
        Get the most recent entries, newest first.

        Args:
            limit: Maximum number of entries to return

        Returns:
            Dictionary with entries, total, limit and timestamp
        """
        limit = max(int(limit), 0)
        # Insertion order is chronological
        ordered = list(reversed(self._entries.values()))

        return {
            "entries": [entry.to_dict() for entry in ordered[:limit]],
            "total": len(self._entries),
            "limit": limit,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def entries(self) -> List[HistoryEntry]:
        return list(self._entries.values())

    def remove_expired(self, now: Optional[datetime] = None) -> int:
        """
        Drop entries older than the TTL.

        Returns:
            Number of entries removed
        """
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(seconds=self.ttl_seconds)
        expired = [entry_id for entry_id, entry in self._entries.items() if entry.timestamp < cutoff]

        for entry_id in expired:
            del self._entries[entry_id]

        if expired:
            logger.info(f"Removed {len(expired)} expired history entries")
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
