"""
Embedding Generator - Generate embeddings for queries and document chunks

Wraps an embedding provider with text cleaning, truncation, a bounded
in-memory cache and retry with exponential backoff.

Part of the RAG Query Pipeline.

License: MIT
"""

from numbers import Real
from typing import List, Dict, Any, Optional
import asyncio
import logging
import re

from ..exceptions import EmbeddingError, ValidationError
from ..infrastructure import monitoring
from ..infrastructure.cache import EmbeddingCache
from ..utils.helpers import chunk_list, retry_async
from .providers import EmbeddingProvider

logger = logging.getLogger(__name__)

_DISALLOWED_CHARS = re.compile(r"[^\w\s.,!?-]")
_WHITESPACE = re.compile(r"\s+")
_SENTENCE_END = re.compile(r"[.!?]")


class EmbeddingGenerator:
    """
    Generate embeddings through a provider, memoized by cleaned text.

    Supports batch processing and error handling for production use.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        cache: Optional[EmbeddingCache] = None,
        model: str = "text-embedding-3-small",
        max_input_length: int = 8000,
        dimensions: Optional[int] = None,
        batch_size: int = 5,
        batch_pause_seconds: float = 0.1,
        max_attempts: int = 3,
        base_delay: float = 0.5,
    ):
        """
        Initialize the embedding generator.

        Args:
            provider: Embedding provider to call
            cache: Embedding cache; a 1000-entry cache is created when omitted
            model: Model name, reported in stats
            max_input_length: Maximum characters sent to the provider
            dimensions: Expected vector length; unchecked when None
            batch_size: Number of texts embedded concurrently in a batch
            batch_pause_seconds: Pause between sub-batches
            max_attempts: Provider attempts per text
            base_delay: Base backoff delay in seconds
        """
        if max_input_length < 1:
            raise ValueError("max_input_length must be at least 1")

        self.provider = provider
        self.cache = cache if cache is not None else EmbeddingCache()
        self.model = model
        self.max_input_length = max_input_length
        self.dimensions = dimensions
        self.batch_size = batch_size
        self.batch_pause_seconds = batch_pause_seconds
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    @staticmethod
    def clean_text(text: str) -> str:
        """Collapse whitespace and drop characters outside the allow-list."""
        text = _WHITESPACE.sub(" ", text)
        text = _DISALLOWED_CHARS.sub("", text)
        return _WHITESPACE.sub(" ", text).strip()

    def truncate_text(self, text: str) -> str:
        """
        Fit text into ``max_input_length`` characters.

        Prefers the last sentence end inside the limit, then the last whole
        word, then a hard cut.
        """
        limit = self.max_input_length
        if len(text) <= limit:
            return text

        window = text[:limit]

        sentence_end = -1
        for match in _SENTENCE_END.finditer(window):
            sentence_end = match.end()
        if sentence_end > 0:
            return window[:sentence_end].strip()

        # A space right after the limit still means the last word is whole
        word_end = text.rfind(" ", 0, limit + 1)
        if word_end > 0:
            return text[:word_end].strip()

        return window

    def _validate_vector(self, vector: Any) -> List[float]:
        if not isinstance(vector, (list, tuple)) or not vector:
            raise EmbeddingError("Embedding provider returned an empty or malformed vector")

        if any(isinstance(v, bool) or not isinstance(v, Real) for v in vector):
            raise EmbeddingError("Embedding vector contains non-numeric values")

        if self.dimensions is not None and len(vector) != self.dimensions:
            raise EmbeddingError(
                f"Embedding dimension mismatch: expected {self.dimensions}, got {len(vector)}"
            )

        return [float(v) for v in vector]

    async def embed(self, text: str) -> List[float]:
        """
        Generate the embedding for one text.

        Args:
            text: Query or chunk text

        Returns:
            Embedding vector

        Raises:
            EmbeddingError: If the text is empty after cleaning or the vector is malformed
        """
        if not isinstance(text, str):
            raise EmbeddingError(f"Cannot embed non-string input: {type(text).__name__}")

        cleaned = self.clean_text(text)
        if not cleaned:
            raise EmbeddingError("Text is empty after cleaning")

        cache_key = self.cache.get_cache_key(cleaned)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Embedding cache hit", extra={"cache_key": cache_key})
            return list(cached)

        prepared = self.truncate_text(cleaned)

        def _record_retry(attempt: int, error: BaseException) -> None:
            monitoring.record_retry("embedding")

        with monitoring.embedding_duration_tracker():
            raw_vector = await retry_async(
                lambda: self.provider.embed(prepared),
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                operation="Embedding generation",
                on_retry=_record_retry,
            )

        vector = self._validate_vector(raw_vector)
        self.cache.set(cache_key, vector)

        logger.debug(
            f"Generated embedding with {len(vector)} dimensions",
            extra={"text_length": len(cleaned), "truncated_length": len(prepared)},
        )
        return list(vector)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for many texts.

        Sub-batches are embedded concurrently; output order matches input.

        Args:
            texts: Texts to embed

        Returns:
            One vector per input text

        Raises:
            ValidationError: If ``texts`` is empty
        """
        if not texts:
            raise ValidationError("Texts must be a non-empty list")

        logger.info(f"Generating embeddings for {len(texts)} texts")

        embeddings: List[List[float]] = []
        batches = chunk_list(list(texts), self.batch_size)

        for i, batch in enumerate(batches):
            embeddings.extend(await asyncio.gather(*(self.embed(text) for text in batch)))

            if i < len(batches) - 1 and self.batch_pause_seconds > 0:
                await asyncio.sleep(self.batch_pause_seconds)

            # Log progress for large sets
            if len(texts) > 50:
                logger.info(f"Processed {len(embeddings)}/{len(texts)} texts")

        return embeddings

    def get_cache_stats(self) -> Dict[str, Any]:
        stats = self.cache.get_cache_stats()
        stats["model"] = self.model
        stats["max_input_length"] = self.max_input_length
        return stats

    def clear_cache(self) -> None:
        self.cache.clear()
