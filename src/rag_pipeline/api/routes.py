"""
API Routes - HTTP endpoints for the RAG pipeline

Part of the RAG Query Pipeline.

License: MIT
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from typing import List, Dict, Any, Optional
import logging

from ..models import BatchFailure
from ..service import RAGService
from .dependencies import get_rag_service

logger = logging.getLogger(__name__)

# Create router
router = APIRouter()

MAX_BATCH_QUERIES = 10


# Request/Response models
class QueryRequest(BaseModel):
    """Request model for RAG queries."""

    query: str = Field(..., min_length=3, max_length=1000, description="User's question")
    max_results: int = Field(default=5, ge=1, le=20, description="Number of fragments to retrieve")
    include_metadata: bool = Field(default=False, description="Include fragment metadata")
    document_id: Optional[str] = Field(default=None, description="Restrict retrieval to a document")

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Query must be at least 3 characters long")
        return v


class BatchQueryRequest(BaseModel):
    """Request model for batch RAG queries."""

    queries: List[str] = Field(..., min_length=1, max_length=MAX_BATCH_QUERIES)
    max_results: int = Field(default=5, ge=1, le=20)
    include_metadata: bool = False
    document_id: Optional[str] = None


class DocumentRequest(BaseModel):
    """Request model for indexing already-extracted text."""

    text: str = Field(..., min_length=1, description="Plain document text")
    source: str = Field(default="api", max_length=500, description="Document source name")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    document_id: Optional[str] = Field(default=None, max_length=200)


class SuccessResponse(BaseModel):
    """Envelope for successful responses."""

    success: bool = True
    data: Dict[str, Any]


class ErrorResponse(BaseModel):
    """Error response model."""

    success: bool = False
    error: str
    message: str
    request_id: Optional[str] = None


@router.post("/rag/query", response_model=SuccessResponse, tags=["Query"])
async def query_endpoint(request: QueryRequest, rag_service: RAGService = Depends(get_rag_service)):
    """
    Process a RAG query and return an answer with sources.

    Args:
        request: Query request containing question and parameters
        rag_service: RAG service instance

    Returns:
        Answer, sources, confidence and metadata
    """
    logger.info(
        "RAG query request received",
        extra={"query": request.query[:100], "max_results": request.max_results},
    )

    result = await rag_service.process_query(
        request.query,
        max_results=request.max_results,
        include_metadata=request.include_metadata,
        document_id=request.document_id,
    )

    return SuccessResponse(data=result.to_dict(include_metadata=request.include_metadata))


@router.post("/rag/batch", response_model=SuccessResponse, tags=["Query"])
async def batch_query_endpoint(
    request: BatchQueryRequest, rag_service: RAGService = Depends(get_rag_service)
):
    """
    Process up to ten queries; individual failures are reported per item.
    """
    logger.info("Batch RAG query request received", extra={"query_count": len(request.queries)})

    results = await rag_service.batch_process_queries(
        request.queries,
        max_results=request.max_results,
        include_metadata=request.include_metadata,
        document_id=request.document_id,
    )

    failed = sum(1 for result in results if isinstance(result, BatchFailure))
    items = [
        result.to_dict()
        if isinstance(result, BatchFailure)
        else result.to_dict(include_metadata=request.include_metadata)
        for result in results
    ]

    return SuccessResponse(
        data={
            "results": items,
            "summary": {
                "total": len(results),
                "successful": len(results) - failed,
                "failed": failed,
            },
        }
    )


@router.get("/rag/stats", response_model=SuccessResponse, tags=["Monitoring"])
async def stats_endpoint(rag_service: RAGService = Depends(get_rag_service)):
    """Aggregate pipeline statistics."""
    return SuccessResponse(data=await rag_service.get_stats())


@router.get("/rag/history", response_model=SuccessResponse, tags=["Monitoring"])
async def history_endpoint(
    limit: int = Query(default=50, ge=1, le=1000),
    rag_service: RAGService = Depends(get_rag_service),
):
    """Most recent queries, newest first."""
    return SuccessResponse(data=rag_service.get_history(limit))


@router.delete("/rag/history", response_model=SuccessResponse, tags=["Monitoring"])
async def clear_history_endpoint(rag_service: RAGService = Depends(get_rag_service)):
    """Clear query history and reset performance metrics."""
    return SuccessResponse(data=rag_service.clear_history())


@router.post("/documents", response_model=SuccessResponse, status_code=201, tags=["Documents"])
async def create_document_endpoint(
    request: DocumentRequest, rag_service: RAGService = Depends(get_rag_service)
):
    """
    Chunk, embed and index already-extracted document text.
    """
    summary = await rag_service.ingest_document(
        request.text,
        request.source,
        metadata=request.metadata,
        document_id=request.document_id,
    )
    return SuccessResponse(data=summary)


@router.delete("/documents/{document_id}", response_model=SuccessResponse, tags=["Documents"])
async def delete_document_endpoint(
    document_id: str, rag_service: RAGService = Depends(get_rag_service)
):
    """Delete every fragment of a document."""
    return SuccessResponse(data=await rag_service.delete_document(document_id))


@router.get("/documents", response_model=SuccessResponse, tags=["Documents"])
async def list_documents_endpoint(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    rag_service: RAGService = Depends(get_rag_service),
):
    """Paginated list of documents that still have live fragments, newest first."""
    documents = await rag_service.list_documents()
    start = (page - 1) * limit

    return SuccessResponse(
        data={
            "documents": documents[start : start + limit],
            "pagination": {"page": page, "limit": limit, "total": len(documents)},
        }
    )


@router.get("/documents/all", response_model=SuccessResponse, tags=["Documents"])
async def list_all_documents_endpoint(rag_service: RAGService = Depends(get_rag_service)):
    documents = await rag_service.list_documents()
    return SuccessResponse(data={"documents": documents, "total": len(documents)})


@router.get("/documents/stats", response_model=SuccessResponse, tags=["Documents"])
async def document_stats_endpoint(rag_service: RAGService = Depends(get_rag_service)):
    """Fragment and document counts with embedding cache statistics."""
    return SuccessResponse(data=await rag_service.get_document_stats())


@router.get("/documents/{document_id}", response_model=SuccessResponse, tags=["Documents"])
async def get_document_endpoint(
    document_id: str, rag_service: RAGService = Depends(get_rag_service)
):
    """Summary of one document; 404 when none of its fragments are live."""
    return SuccessResponse(data=await rag_service.get_document_info(document_id))
