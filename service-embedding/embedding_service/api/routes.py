"""API routes for the embedding service."""

import time
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
import structlog

from ..encoders.service import EmbeddingService
from ..errors import InferenceError, InvalidConfig, ModelNotFound
from ..models import (
    BatchEmbeddingResponse,
    BatchEncodeRequest,
    EmbeddingResponse,
    EncodeRequest,
    ModelConfig,
    ModelStatus,
    ModelSwitchRequest,
)

logger = structlog.get_logger("embedding_service.api")

router = APIRouter()


def get_embedding_service(request: Request) -> EmbeddingService:
    """Get the embedding service from application state."""
    return request.app.state.embedding_service


def to_http_error(error: InferenceError) -> HTTPException:
    """Map an engine failure onto an HTTP status code."""
    if isinstance(error, InvalidConfig):
        status_code = 400
    elif isinstance(error, ModelNotFound):
        status_code = 503
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=error.message)


@router.post("/encode", response_model=EmbeddingResponse)
async def encode(
    request: EncodeRequest,
    service: EmbeddingService = Depends(get_embedding_service)
):
    """Generate an embedding for a single text."""
    start_time = time.time()
    try:
        response = await service.encode(request.text, request.normalize)
    except InferenceError as e:
        logger.error("Encoding failed", error=e.message, error_type=type(e).__name__)
        raise to_http_error(e)

    logger.info(
        "Embedding generated",
        model_id=response.model_id,
        dimension=len(response.embedding),
        latency_ms=(time.time() - start_time) * 1000
    )
    return response


@router.post("/encode/batch", response_model=BatchEmbeddingResponse)
async def encode_batch(
    request: BatchEncodeRequest,
    service: EmbeddingService = Depends(get_embedding_service)
):
    """Generate embeddings for a batch of texts."""
    start_time = time.time()
    try:
        response = await service.encode_batch(request.texts, request.normalize)
    except InferenceError as e:
        logger.error(
            "Batch encoding failed",
            error=e.message,
            error_type=type(e).__name__,
            batch_size=len(request.texts)
        )
        raise to_http_error(e)

    logger.info(
        "Batch embeddings generated",
        model_id=response.model_id,
        count=len(response.embeddings),
        latency_ms=(time.time() - start_time) * 1000
    )
    return response


@router.get("/model/info", response_model=ModelConfig)
async def model_info(service: EmbeddingService = Depends(get_embedding_service)):
    """Get the configuration of the active model."""
    try:
        return await service.get_model_info()
    except InferenceError as e:
        raise to_http_error(e)


@router.get("/model/status", response_model=ModelStatus)
async def model_status(service: EmbeddingService = Depends(get_embedding_service)):
    """Get registry state, active config, and snapshot version."""
    return service.get_status()


@router.post("/model/switch")
async def switch_model(
    request: ModelSwitchRequest,
    service: EmbeddingService = Depends(get_embedding_service)
) -> Dict[str, Any]:
    """Load a different model and make it active."""
    config = request.to_model_config()
    try:
        active = await service.switch_model(config)
    except InferenceError as e:
        logger.error("Model switch failed", model_id=config.model_id, error=e.message)
        raise to_http_error(e)

    logger.info("Model switched", model_id=active.model_id)
    return {"status": "switched", "model": active.model_dump()}
