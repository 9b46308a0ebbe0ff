"""
API Dependencies - Dependency injection for FastAPI

Part of the RAG Query Pipeline.

License: MIT
"""

from fastapi import HTTPException, Request
import logging
import uuid

from ..exceptions import (
    DocumentNotFoundError,
    PermanentProviderError,
    RAGPipelineError,
    RetryExhaustedError,
    TransientProviderError,
    ValidationError,
)
from ..service import RAGService

logger = logging.getLogger(__name__)


def get_rag_service(request: Request) -> RAGService:
    """
    Get the RAG service stored on the application state.

    Raises:
        HTTPException: If the service has not been initialized
    """
    rag_service = getattr(request.app.state, "rag_service", None)
    if rag_service is None:
        raise HTTPException(status_code=503, detail="RAG service is not initialized")
    return rag_service


def get_request_id(request: Request) -> str:
    """
    Get or generate request ID for tracing.

    Args:
        request: FastAPI request object

    Returns:
        Request identifier
    """
    # Check if request ID already exists
    if hasattr(request.state, "request_id"):
        return request.state.request_id

    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id

    return request_id


def error_status_code(error: RAGPipelineError) -> int:
    """
    Map a pipeline error onto an HTTP status code.

    Returns:
        400 for validation, 404 for unknown documents, 503 for transient
        or exhausted retries, 502 for permanent provider failures, 500 otherwise
    """
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, DocumentNotFoundError):
        return 404
    if isinstance(error, (TransientProviderError, RetryExhaustedError)):
        return 503
    if isinstance(error, PermanentProviderError):
        return 502
    return 500
