"""
API Components - FastAPI server and endpoints

This module provides the HTTP surface of the pipeline:
- FastAPI application factory with monitoring
- REST endpoints for querying, stats, history and documents
- Dependency injection and error mapping

License: MIT
"""

from .main import create_app, main
from .dependencies import get_rag_service, error_status_code

__all__ = [
    "create_app",
    "main",
    "get_rag_service",
    "error_status_code",
]
