"""Embedding service main application.

``build_embedding_service`` is the composition root: it wires the device
selector, loader, registry, engine, and facade explicitly. ``create_app``
wraps the result in a FastAPI application. Nothing is held in module-level
globals other than the app object used by ``uvicorn``.
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from libs.common.config import EmbeddingConfig
from libs.common.logging import configure_logging

from .api.routes import router as api_router
from .batching.device_selector import DeviceSelector
from .encoders.engine import InferenceEngine
from .encoders.loader import ModelLoader, SentenceTransformerLoader
from .encoders.registry import ModelRegistry
from .encoders.service import EmbeddingService
from .models import ModelConfig
from .runtime.metrics import MetricsCollector, get_metrics_collector
from .runtime.retry import ModelLoadRetryHandler

SERVICE_NAME = "embedding-service"

logger = structlog.get_logger("embedding_service")


def build_embedding_service(
    config: EmbeddingConfig,
    metrics: Optional[MetricsCollector] = None,
    loader: Optional[ModelLoader] = None,
) -> EmbeddingService:
    """Wire a ready-to-load ``EmbeddingService`` from settings."""
    registry = ModelRegistry(
        loader=loader or SentenceTransformerLoader(),
        device_selector=DeviceSelector(),
        max_sequence_length_limit=config.ml_max_sequence_length_limit,
    )
    return EmbeddingService(
        registry=registry,
        engine=InferenceEngine(),
        max_batch_size=config.ml_max_batch_size,
        metrics=metrics,
    )


async def load_default_model(service: EmbeddingService, config: EmbeddingConfig) -> ModelConfig:
    """Load the configured default model, retrying transient load failures."""
    retry_handler = ModelLoadRetryHandler(
        max_attempts=config.ml_model_load_retries,
        base_delay=config.ml_model_load_retry_delay,
    )
    return await retry_handler.switch_model_with_retry(
        service.switch_model,
        ModelConfig.from_settings(config),
    )


def create_app(
    config: Optional[EmbeddingConfig] = None,
    service: Optional[EmbeddingService] = None,
    metrics: Optional[MetricsCollector] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Parameters
    - config: settings; read from the environment when omitted
    - service: a pre-built service; when given, no default model is loaded
    - metrics: collector; the process-wide one when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = config or EmbeddingConfig()
        configure_logging(SERVICE_NAME, settings.ml_log_level, settings.ml_log_format)
        app.state.config = settings
        app.state.startup_time = time.time()
        app.state.metrics_collector = metrics or get_metrics_collector(SERVICE_NAME)

        logger.info("Starting embedding service")

        if service is not None:
            app.state.embedding_service = service
        else:
            app.state.embedding_service = build_embedding_service(settings, app.state.metrics_collector)
            try:
                await load_default_model(app.state.embedding_service, settings)
            except Exception as e:
                logger.error("Failed to load default model", model_id=settings.ml_embedding_model, error=str(e))
                raise

        logger.info("Embedding service started successfully")

        yield

        logger.info("Shutting down embedding service")
        app.state.embedding_service.registry.clear()
        logger.info("Embedding service shutdown complete")

    app = FastAPI(
        title="Embedding Service",
        description="Sentence embedding inference with hot model switching",
        version="0.1.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Collect metrics and add the processing time header."""
        start_time = time.time()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            logger.exception("Unhandled error", path=request.url.path)
            status_code = 500
            response = JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "detail": str(e)}
            )

        duration = time.time() - start_time
        response.headers["X-Process-Time"] = str(duration)

        collector = getattr(request.app.state, "metrics_collector", None)
        if collector is not None:
            collector.record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status=status_code,
                duration=duration
            )

        return response

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        embedding_service: Optional[EmbeddingService] = getattr(request.app.state, "embedding_service", None)
        if embedding_service is not None and await embedding_service.health_check():
            return {"status": "healthy", "service": SERVICE_NAME}
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "service": SERVICE_NAME}
        )

    @app.get("/live")
    async def liveness(request: Request):
        """Liveness probe. Returns quickly if process is responsive."""
        return {
            "status": "alive",
            "service": SERVICE_NAME,
            "uptime_seconds": time.time() - getattr(request.app.state, "startup_time", time.time())
        }

    @app.get("/ready")
    async def readiness(request: Request):
        """Readiness probe. Ready once a model can serve requests."""
        embedding_service: Optional[EmbeddingService] = getattr(request.app.state, "embedding_service", None)
        if embedding_service is None or not await embedding_service.health_check():
            return JSONResponse(
                status_code=503,
                content={"status": "not_ready", "service": SERVICE_NAME}
            )

        status = embedding_service.get_status()
        return {
            "status": "ready",
            "service": SERVICE_NAME,
            "state": status.state.value,
            "model_id": status.config.model_id if status.config else None,
            "version": status.version
        }

    @app.get("/metrics")
    async def metrics_endpoint(request: Request):
        """Prometheus metrics endpoint."""
        collector = getattr(request.app.state, "metrics_collector", None)
        if collector is None:
            return Response(content="# No metrics available\n", media_type="text/plain")
        return Response(content=collector.get_metrics(), media_type="text/plain")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": SERVICE_NAME,
            "version": "0.1.0",
            "status": "running",
            "endpoints": {
                "encode": "/encode",
                "encode_batch": "/encode/batch",
                "model_info": "/model/info",
                "model_status": "/model/status",
                "model_switch": "/model/switch",
                "metrics": "/metrics"
            },
            "probes": {
                "health": "/health",
                "live": "/live",
                "ready": "/ready"
            }
        }

    return app


app = create_app()


def main() -> None:
    """Run the service with uvicorn on the configured host and port."""
    settings = EmbeddingConfig()
    uvicorn.run(
        "embedding_service.main:app",
        host=settings.ml_embedding_host,
        port=settings.ml_embedding_port,
        log_level=settings.ml_log_level.lower()
    )


if __name__ == "__main__":
    main()
