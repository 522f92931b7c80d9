"""Retrieval service main application."""

import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
import structlog

from retrieval_libs.common.config import SearchConfig
from retrieval_libs.common.logging import configure_logging
from retrieval_libs.common.metrics import MetricsCollector, get_metrics_collector
from .api.routes import router as api_router
from .hybrid.search_manager import SearchManager

logger = structlog.get_logger("retrieval_service")


def create_app(
    config: Optional[SearchConfig] = None,
    search_manager: Optional[SearchManager] = None,
    metrics_collector: Optional[MetricsCollector] = None,
) -> FastAPI:
    """Build the FastAPI application.

    ``search_manager`` and ``metrics_collector`` may be injected (tests);
    otherwise they are created from ``config`` at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        # Startup
        service_config = config or SearchConfig()
        configure_logging(
            "retrieval-service",
            service_config.retrieval_log_level,
            service_config.retrieval_log_format,
            env=service_config.retrieval_env,
        )

        logger.info("Starting retrieval service", backend=service_config.retrieval_index_backend)

        app.state.metrics_collector = metrics_collector or get_metrics_collector("retrieval-service")
        app.state.search_manager = search_manager or SearchManager.from_config(
            service_config,
            metrics_collector=app.state.metrics_collector,
        )

        logger.info("Retrieval service started successfully")

        yield

        # Shutdown
        logger.info("Shutting down retrieval service")
        await app.state.search_manager.cleanup()
        logger.info("Retrieval service shutdown complete")

    app = FastAPI(
        title="Retrieval Service",
        description="Hybrid BM25 and vector retrieval fused with Reciprocal Rank Fusion",
        version="0.1.0",
        lifespan=lifespan
    )

    app.include_router(api_router, prefix="/api/v1")

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Collect metrics for HTTP requests."""
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        response.headers["X-Process-Time"] = str(duration)
        collector = getattr(request.app.state, "metrics_collector", None)
        if collector is not None:
            collector.record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status=response.status_code,
                duration=duration
            )
        return response

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        if await request.app.state.search_manager.health_check():
            return {"status": "healthy", "service": "retrieval-service"}
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "service": "retrieval-service"}
        )

    @app.get("/metrics")
    async def metrics(request: Request):
        """Prometheus metrics endpoint."""
        metrics_data = request.app.state.metrics_collector.get_metrics()
        return Response(content=metrics_data, media_type="text/plain")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": "retrieval-service",
            "version": "0.1.0",
            "status": "running",
            "endpoints": {
                "health": "/health",
                "metrics": "/metrics",
                "search": "/api/v1/search",
                "documents": "/api/v1/documents",
                "stats": "/api/v1/stats"
            }
        }

    return app


app = create_app()


def main() -> None:
    """Run the service with uvicorn."""
    config = SearchConfig()
    uvicorn.run(
        "retrieval_service.app.main:app",
        host="0.0.0.0",
        port=config.retrieval_search_port,
        log_level=config.retrieval_log_level.lower()
    )


if __name__ == "__main__":
    main()
