"""
Batch Coordinator - Fan a list of queries out across the query processor

Part of the RAG Query Pipeline.

License: MIT
"""

from typing import List, Optional, Union, TYPE_CHECKING
import asyncio
import logging

from ..exceptions import describe_error
from ..models import BatchFailure, QueryResult
from ..utils.helpers import chunk_list

if TYPE_CHECKING:
    from .query import RAGQueryProcessor

logger = logging.getLogger(__name__)

BatchItem = Union[QueryResult, BatchFailure]


class BatchCoordinator:
    """
    Run queries in fixed-size concurrent sub-batches.

    A failure in one query is captured as a ``BatchFailure`` and never aborts
    its siblings or later sub-batches. Results keep input order.
    """

    def __init__(
        self,
        processor: "RAGQueryProcessor",
        batch_size: int = 3,
        pause_seconds: float = 1.0,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.processor = processor
        self.batch_size = batch_size
        self.pause_seconds = pause_seconds

    async def run_batch(
        self,
        queries: List[str],
        max_results: int = 5,
        include_metadata: bool = False,
        document_id: Optional[str] = None,
    ) -> List[BatchItem]:
        """
        Process queries in sub-batches.

        Args:
            queries: Questions to answer
            max_results: Fragments retrieved per query
            include_metadata: Include fragment metadata in prompts
            document_id: Optional document scope applied to every query

        Returns:
            One QueryResult or BatchFailure per input, in input order
        """
        results: List[BatchItem] = []
        batches = chunk_list(list(queries), self.batch_size)

        logger.info(
            f"Processing batch of {len(queries)} queries in {len(batches)} sub-batches"
        )

        for i, batch in enumerate(batches):
            outcomes = await asyncio.gather(
                *(
                    self.processor.process_query(
                        query,
                        max_results=max_results,
                        include_metadata=include_metadata,
                        document_id=document_id,
                    )
                    for query in batch
                ),
                return_exceptions=True,
            )

            for query, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    error_kind, message = describe_error(outcome)
                    logger.warning(
                        f"Batch query failed: {str(outcome)}",
                        extra={"error_kind": error_kind},
                    )
                    results.append(BatchFailure(query=query, error=message, error_kind=error_kind))
                else:
                    results.append(outcome)

            if i < len(batches) - 1 and self.pause_seconds > 0:
                await asyncio.sleep(self.pause_seconds)

        failed = sum(1 for result in results if isinstance(result, BatchFailure))
        logger.info(
            f"Batch completed: {len(results) - failed} succeeded, {failed} failed",
            extra={"total": len(results), "failed": failed},
        )
        return results
