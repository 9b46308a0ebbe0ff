"""
Exceptions - Error taxonomy for the RAG query pipeline

Every error raised by the pipeline carries a stable ``error_kind`` label so
that callers (HTTP layer, batch coordinator) can report failures without
exposing internal detail.

License: MIT
"""

import asyncio
from typing import Optional, Tuple

INTERNAL_ERROR_KIND = "internal_error"
INTERNAL_ERROR_MESSAGE = "An unexpected error occurred"

# Lower-cased message fragments that mark a provider failure as transient
RETRYABLE_SIGNATURES = (
    "timeout",
    "timed out",
    "rate limit",
    "rate_limit",
    "429",
    "too many requests",
    "network",
    "econnreset",
    "connection reset",
    "socket hang up",
    "service unavailable",
    "bad gateway",
    "gateway timeout",
    "http error 5",
    "temporary",
    "fetch failed",
)


class RAGPipelineError(Exception):
    """Base exception for all pipeline errors."""

    error_kind = "pipeline_error"
    public_message = "The request could not be processed"
    # Caller-facing errors echo their own message; the rest use public_message
    exposes_detail = False

    @property
    def safe_message(self) -> str:
        if self.exposes_detail:
            return str(self)
        return self.public_message

    def to_dict(self) -> dict:
        return {"error": self.error_kind, "message": self.safe_message}


class ValidationError(RAGPipelineError):
    """Raised when input shape or size is invalid. Never retried."""

    error_kind = "validation_error"
    exposes_detail = True


class DocumentNotFoundError(RAGPipelineError):
    """Raised when no live fragment belongs to the requested document."""

    error_kind = "not_found"
    exposes_detail = True

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document with ID {document_id} not found")


class ProviderError(RAGPipelineError):
    """Raised when an external provider call fails."""

    error_kind = "provider_error"
    public_message = "An upstream provider request failed"


class TransientProviderError(ProviderError):
    """Timeout, rate limit, network or 5xx-like failure. Retried with backoff."""

    error_kind = "transient_provider_error"
    public_message = "An upstream provider is temporarily unavailable"


class PermanentProviderError(ProviderError):
    """Malformed or unusable provider response. Not retried."""

    error_kind = "permanent_provider_error"
    public_message = "An upstream provider returned an unusable response"


class EmbeddingError(PermanentProviderError):
    """Raised when text cannot be embedded or the embedding is malformed."""

    error_kind = "embedding_error"
    public_message = "The text could not be embedded"


class GenerationError(PermanentProviderError):
    """Raised when the generation provider returns no usable text."""

    error_kind = "generation_error"
    public_message = "No answer could be generated"


class VectorStoreError(RAGPipelineError):
    """Raised when a vector store operation fails."""

    error_kind = "vector_store_error"
    public_message = "The vector store request failed"


class RetryExhaustedError(RAGPipelineError):
    """Raised when all attempts failed with retryable errors."""

    error_kind = "retry_exhausted"
    public_message = "The request failed after repeated attempts"

    def __init__(self, last_error: Exception, attempts: int):
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(f"Giving up after {attempts} attempt(s): {last_error}")


def describe_error(error: BaseException) -> Tuple[str, str]:
    """
    Label and caller-safe message for any error.

    Errors outside the pipeline taxonomy are reported as ``internal_error``
    with a generic message.
    """
    if isinstance(error, RAGPipelineError):
        return error.error_kind, error.safe_message
    return INTERNAL_ERROR_KIND, INTERNAL_ERROR_MESSAGE


def is_retryable_error(error: Optional[BaseException]) -> bool:
    """
    Decide whether an error is worth retrying.

    Args:
        error: Exception raised by a provider or stage

    Returns:
        True for transient failures, False otherwise
    """
    if error is None:
        return False

    if isinstance(error, TransientProviderError):
        return True

    if isinstance(error, (ValidationError, PermanentProviderError, RetryExhaustedError)):
        return False

    if isinstance(error, asyncio.TimeoutError):
        return True

    message = str(error).lower()
    if not message:
        return False

    return any(signature in message for signature in RETRYABLE_SIGNATURES)
