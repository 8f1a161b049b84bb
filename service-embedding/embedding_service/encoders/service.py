"""Embedding service facade.

Combines the model registry and the inference engine into the public
operations: ``encode``, ``encode_batch``, ``get_model_info`` and
``switch_model``. Input validation happens here, before any tensor work.

Notes
- Inference and model loading are CPU/accelerator bound and run in worker
  threads, so the event loop keeps accepting requests while they execute.
- Each request takes exactly one snapshot and uses it for both the vectors
  and the reported ``model_id``; a concurrent switch cannot mix the two.
- No retries happen here; callers own retry policy.
"""

import asyncio
import time
from typing import List, Optional

import structlog

from libs.common.metrics import MetricsCollector

from ..errors import EncodingFailed, InferenceError, InvalidConfig, ModelNotFound
from ..models import (
    BatchEmbeddingResponse,
    EmbeddingResponse,
    ModelConfig,
    ModelStatus,
    validate_model_config,
)
from .engine import InferenceEngine
from .registry import ModelRegistry, Snapshot

logger = structlog.get_logger("embedding_service.service")

DEFAULT_MAX_BATCH_SIZE = 100


class EmbeddingService:
    """Public facade over the model registry and inference engine."""

    def __init__(
        self,
        registry: ModelRegistry,
        engine: InferenceEngine,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Create the service.

        Parameters
        - registry: owner of the active model
        - engine: stateless inference runner
        - max_batch_size: upper bound on texts per ``encode_batch`` call
        - metrics: optional collector for embedding and model-load metrics
        """
        self.registry = registry
        self.engine = engine
        self.max_batch_size = max_batch_size
        self.metrics = metrics

    async def encode(self, text: str, normalize: bool = True) -> EmbeddingResponse:
        """Embed a single text."""
        if not text or not text.strip():
            raise InvalidConfig("Text cannot be empty")

        snapshot = self.registry.current()
        vectors = await self._run(snapshot, [text], normalize, operation="encode")

        embedding = vectors[0]
        if not embedding:
            raise EncodingFailed("Failed to generate embedding", model_id=snapshot.config.model_id)

        logger.debug(
            "Generated embedding",
            model_id=snapshot.config.model_id,
            dimension=len(embedding),
        )
        return EmbeddingResponse(
            embedding=embedding,
            text=text,
            model_id=snapshot.config.model_id,
        )

    async def encode_batch(self, texts: List[str], normalize: bool = True) -> BatchEmbeddingResponse:
        """Embed several texts with one forward pass.

        Blank texts are dropped; the response lists the texts that were
        embedded, in their original relative order.
        """
        if not texts:
            raise InvalidConfig("Text list cannot be empty")

        non_empty_texts = [text for text in texts if text and text.strip()]
        if not non_empty_texts:
            raise InvalidConfig("All texts are empty")

        if len(non_empty_texts) > self.max_batch_size:
            raise InvalidConfig(
                f"Batch size {len(non_empty_texts)} exceeds maximum {self.max_batch_size}"
            )

        snapshot = self.registry.current()
        logger.debug(
            "Processing batch",
            model_id=snapshot.config.model_id,
            batch_size=len(non_empty_texts),
            dropped=len(texts) - len(non_empty_texts),
        )
        embeddings = await self._run(snapshot, non_empty_texts, normalize, operation="encode_batch")

        if not embeddings or any(not embedding for embedding in embeddings):
            raise EncodingFailed("Failed to generate embeddings", model_id=snapshot.config.model_id)

        return BatchEmbeddingResponse(
            embeddings=embeddings,
            texts=non_empty_texts,
            model_id=snapshot.config.model_id,
        )

    async def get_model_info(self) -> ModelConfig:
        """Config of the active model; ``ModelNotFound`` when none is loaded."""
        return self.registry.current_config()

    async def switch_model(self, config: ModelConfig) -> ModelConfig:
        """Validate ``config`` and load it as the new active model."""
        validate_model_config(config, self.registry.max_sequence_length_limit)

        logger.info("Switching model", model_id=config.model_id, revision=config.revision)
        start_time = time.time()
        try:
            snapshot = await asyncio.to_thread(self.registry.load, config)
        except InferenceError:
            if self.metrics:
                self.metrics.record_model_load(config.model_id, time.time() - start_time, status="failure")
            raise

        if self.metrics:
            self.metrics.record_model_load(
                config.model_id,
                time.time() - start_time,
                version=snapshot.version,
            )
        return snapshot.config

    def get_status(self) -> ModelStatus:
        return self.registry.status()

    async def health_check(self) -> bool:
        """Healthy once a model is servable, including while a switch is loading."""
        try:
            self.registry.current()
        except ModelNotFound:
            return False
        return True

    async def _run(
        self,
        snapshot: Snapshot,
        texts: List[str],
        normalize: bool,
        operation: str,
    ) -> List[List[float]]:
        model_id = snapshot.config.model_id
        start_time = time.time()
        try:
            vectors = await asyncio.to_thread(self.engine.encode_to_lists, snapshot, texts, normalize)
        except InferenceError:
            if self.metrics:
                self.metrics.record_embedding(model_id, operation, len(texts), time.time() - start_time, status="failure")
            raise

        if self.metrics:
            self.metrics.record_embedding(model_id, operation, len(texts), time.time() - start_time)
        return vectors
