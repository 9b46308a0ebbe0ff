"""
Retention Sweep - Recurring purge of expired fragments and history entries

Part of the RAG Query Pipeline.

License: MIT
"""

from typing import Dict, Optional, TYPE_CHECKING
import asyncio
import logging

from . import monitoring

if TYPE_CHECKING:
    from ..core.history import QueryHistory
    from ..core.vector_store import VectorStoreBase

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """
    Independently scheduled task that deletes expired data.

    A failing sweep is logged and the loop keeps running. The sweep shares
    the vector store with live queries and assumes no mutual exclusion.
    """

    def __init__(
        self,
        vector_store: "VectorStoreBase",
        interval_seconds: float = 3600,
        history: Optional["QueryHistory"] = None,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.vector_store = vector_store
        self.interval_seconds = interval_seconds
        self.history = history
        self.sweeps_completed = 0
        self.sweeps_failed = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Dict[str, int]:
        """
        Run a single sweep.

        Returns:
            Counts of removed fragments and history entries
        """
        fragments_deleted = await self.vector_store.delete_expired()
        history_removed = self.history.remove_expired() if self.history is not None else 0

        self.sweeps_completed += 1
        logger.info(
            "Retention sweep completed",
            extra={"fragments_deleted": fragments_deleted, "history_removed": history_removed},
        )
        return {"fragments_deleted": fragments_deleted, "history_removed": history_removed}

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception as e:
                self.sweeps_failed += 1
                monitoring.record_error("retention_sweep_error", "retention")
                logger.error(f"Retention sweep failed: {str(e)}")

    def start(self) -> None:
        """Schedule the recurring sweep on the running loop. Idempotent."""
        if self.running:
            return

        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info(f"Retention sweep scheduled every {self.interval_seconds}s")

    async def stop(self) -> None:
        """Cancel the sweep and wait for it to finish."""
        if self._task is None:
            return

        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Retention sweep stopped")
