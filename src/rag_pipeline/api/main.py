"""
FastAPI Application - Main entry point for the RAG API

Part of the RAG Query Pipeline.

License: MIT
"""

from datetime import datetime, timezone
from typing import Optional
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
import time
import logging
from contextlib import asynccontextmanager

from .. import __version__
from ..config import RAGConfig, get_config
from ..exceptions import INTERNAL_ERROR_KIND, INTERNAL_ERROR_MESSAGE, RAGPipelineError
from ..infrastructure import monitoring
from ..infrastructure.logging_config import setup_logging
from ..service import RAGService
from .dependencies import error_status_code, get_rag_service, get_request_id
from .routes import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown tasks."""
    config: RAGConfig = app.state.config or get_config()

    setup_logging(
        level=config.logging.level,
        format_type=config.logging.format_type,
        log_file=config.logging.log_file,
        environment=config.environment,
        max_file_size=config.logging.max_file_size,
        backup_count=config.logging.backup_count,
    )
    logger.info("Starting RAG API")

    if config.monitoring.prometheus_enabled:
        monitoring.setup_prometheus_metrics()

    if app.state.rag_service is None:
        app.state.rag_service = RAGService.from_config(config)

    rag_service: RAGService = app.state.rag_service
    await rag_service.start()
    logger.info("RAG API startup complete")

    yield

    logger.info("Shutting down RAG API")
    await rag_service.stop()
    logger.info("RAG API shutdown complete")


def _error_response(request: Request, status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": error,
            "message": message,
            "request_id": get_request_id(request),
        },
    )


def create_app(
    rag_service: Optional[RAGService] = None, config: Optional[RAGConfig] = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        rag_service: Pre-built service; built from configuration at startup when omitted
        config: Configuration; the global configuration is used when omitted

    Returns:
        Configured application
    """
    app = FastAPI(
        title="RAG Query Pipeline API",
        description="Retrieval-Augmented Generation query API",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.rag_service = rag_service
    app.state.config = config

    cors_origins = config.cors_origins if config is not None else ["*"]
    metrics_path = config.monitoring.metrics_path if config is not None else "/metrics"
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    # Monitoring middleware
    @app.middleware("http")
    async def add_monitoring(request: Request, call_next):
        """Add monitoring and metrics to all requests."""
        start_time = time.time()
        request_id = get_request_id(request)

        response = await call_next(request)

        duration = time.time() - start_time
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)
        monitoring.record_http_request(request.method, endpoint, response.status_code, duration)

        response.headers["X-Process-Time"] = str(duration)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """
        Health check endpoint for load balancer and monitoring.

        Returns:
            Dictionary with service health status
        """
        rag_service = get_rag_service(request)
        health_status = await rag_service.health_check()

        body = {
            "status": "healthy" if health_status["healthy"] else "unhealthy",
            "timestamp": health_status["timestamp"],
            "version": __version__,
            "services": health_status["services"],
        }
        return JSONResponse(status_code=200 if health_status["healthy"] else 503, content=body)

    @app.get("/live", tags=["Health"])
    async def liveness_check():
        """Simple response indicating the process is alive."""
        return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get(metrics_path, tags=["Monitoring"])
    async def get_metrics():
        """Prometheus metrics endpoint."""
        return Response(content=monitoring.generate_metrics_payload(), media_type="text/plain")

    app.include_router(router, prefix="/api/v1")

    @app.exception_handler(RAGPipelineError)
    async def pipeline_exception_handler(request: Request, exc: RAGPipelineError):
        status_code = error_status_code(exc)
        if status_code >= 500:
            logger.error(f"Request failed: {str(exc)}", extra={"error_kind": exc.error_kind})
        else:
            logger.warning(f"Request rejected: {str(exc)}", extra={"error_kind": exc.error_kind})
        return _error_response(request, status_code, exc.error_kind, exc.safe_message)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        messages = [
            f"{'.'.join(str(part) for part in error['loc'] if part != 'body')}: {error['msg']}"
            for error in exc.errors()
        ]
        return _error_response(request, 400, "validation_error", "; ".join(messages))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return _error_response(request, exc.status_code, "http_error", str(exc.detail))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Global exception handler for unhandled errors.

        Args:
            request: The request that caused the exception
            exc: The exception that was raised

        Returns:
            JSON error response without internal detail
        """
        logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
        return _error_response(request, 500, INTERNAL_ERROR_KIND, INTERNAL_ERROR_MESSAGE)

    return app


def main() -> None:
    """Run the API server with uvicorn."""
    import uvicorn

    config = get_config()
    uvicorn.run(
        create_app(config=config),
        host=config.api_host,
        port=config.api_port,
        log_level=config.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
