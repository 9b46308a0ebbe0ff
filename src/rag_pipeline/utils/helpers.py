"""
Utility Helper Functions - Common utilities for the RAG pipeline

Part of the RAG Query Pipeline.

License: MIT
"""

import asyncio
import hashlib
import time
import uuid
from typing import List, Any, Awaitable, Callable, Optional, TypeVar
import logging

from ..exceptions import is_retryable_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


def generate_hash(text: str, algorithm: str = "sha256") -> str:
    """
    Generate hash for a given text.

    Args:
        text: Text to hash
        algorithm: Hash algorithm to use (md5, sha1, sha256)

    Returns:
        Hexadecimal hash string

    Raises:
        ValueError: If algorithm is not supported
    """
    algorithms = {"md5": hashlib.md5, "sha1": hashlib.sha1, "sha256": hashlib.sha256}

    if algorithm not in algorithms:
        raise ValueError(f"Unsupported algorithm: {algorithm}")

    hash_func = algorithms[algorithm]
    return hash_func(text.encode("utf-8")).hexdigest()


def chunk_list(items: List[Any], chunk_size: int) -> List[List[Any]]:
    """
    Split a list into chunks of specified size.

    Args:
        items: List to chunk
        chunk_size: Size of each chunk

    Returns:
        List of chunks

    Raises:
        ValueError: If chunk_size is less than 1
    """
    if chunk_size < 1:
        raise ValueError("Chunk size must be at least 1")

    return [items[i : i + chunk_size] for i in range(0, len(items), chunk_size)]


def format_duration(seconds: float) -> str:
    """
    Format duration in human-readable format.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string
    """
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    elif seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        remaining_seconds = seconds % 60
        return f"{minutes}m {remaining_seconds:.0f}s"
    else:
        hours = int(seconds // 3600)
        remaining_minutes = int((seconds % 3600) // 60)
        return f"{hours}h {remaining_minutes}m"


def backoff_delay(attempt: int, base_delay: float, max_delay: Optional[float] = None) -> float:
    """Exponential backoff: ``base_delay * 2 ** attempt``, optionally capped."""
    delay = base_delay * (2**attempt)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


async def retry_async(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: Optional[float] = None,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    operation: str = "operation",
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
) -> T:
    """
    Await a coroutine factory with exponential backoff on retryable errors.

    Args:
        func: Zero-argument callable returning a fresh awaitable per attempt
        max_attempts: Total number of attempts (not retries)
        base_delay: Base delay in seconds
        max_delay: Optional cap on a single delay
        is_retryable: Predicate deciding whether an error is transient
        operation: Name used in log messages
        on_retry: Called with the failed attempt number and error before sleeping

    Returns:
        Result of the first successful attempt

    Raises:
        The last error when attempts are exhausted or the error is not retryable
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return await func()
        except Exception as e:
            if attempt >= max_attempts or not is_retryable(e):
                raise

            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                f"{operation} attempt {attempt} failed: {str(e)}. Retrying in {delay:.2f}s..."
            )
            if on_retry is not None:
                on_retry(attempt, e)
            await asyncio.sleep(delay)

    # Unreachable: the loop either returns or raises
    raise RuntimeError(f"{operation} exited retry loop without a result")


def truncate_text(text: str, max_length: int, suffix: str = "") -> str:
    """
    Truncate text to maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to add when truncating

    Returns:
        Truncated text
    """
    if not text or len(text) <= max_length:
        return text

    if max_length <= len(suffix):
        return suffix[:max_length]

    return text[: max_length - len(suffix)] + suffix


class Timer:
    """Simple timer context manager for measuring execution time."""

    def __init__(self, name: str = "Timer"):
        """
        Initialize timer.

        Args:
            name: Timer name for logging
        """
        self.name = name
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        """Start the timer."""
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Stop the timer and log duration."""
        self.end_time = time.perf_counter()
        logger.debug(f"{self.name} completed in {format_duration(self.elapsed_time)}")

    @property
    def elapsed_time(self) -> float:
        """Get elapsed time in seconds."""
        if self.start_time is None:
            return 0.0

        end_time = self.end_time if self.end_time is not None else time.perf_counter()
        return end_time - self.start_time

    @property
    def elapsed_ms(self) -> int:
        return int(round(self.elapsed_time * 1000))


def create_unique_id(prefix: str = "") -> str:
    """
    Create a unique identifier.

    Args:
        prefix: Optional prefix for the ID

    Returns:
        Unique identifier string
    """
    unique_id = str(uuid.uuid4())

    if prefix:
        return f"{prefix}_{unique_id}"

    return unique_id
