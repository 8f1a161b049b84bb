"""Model loaders that materialize an encoder and tokenizer from a ``ModelConfig``.

Loading resolves artifacts from the local Hugging Face cache or the hub and
may take seconds. It never touches shared state: the registry swaps the
result in afterwards.
"""

import time
from dataclasses import dataclass, field
from typing import Optional, Protocol

import torch
import structlog
from sentence_transformers import models as st_models

from ..errors import ModelLoadFailed
from ..models import ModelConfig
from .tokenizer import TokenizerAdapter

logger = structlog.get_logger("embedding_service.loader")

DEFAULT_REVISION = "main"


@dataclass(frozen=True)
class LoadedModel:
    """An encoder bound to its tokenizer, device, and config."""
    encoder: torch.nn.Module
    tokenizer: TokenizerAdapter
    device: torch.device
    config: ModelConfig
    embedding_dimension: int
    loaded_at: float = field(default_factory=time.time)


class ModelLoader(Protocol):
    """Builds a ``LoadedModel``; raises ``ModelLoadFailed`` on any failure."""

    def load(self, config: ModelConfig, device: torch.device) -> LoadedModel:
        ...


class SentenceTransformerLoader:
    """Loads sentence-transformers checkpoints through their Transformer module.

    The module resolves ``config.json``, the weights, and ``tokenizer.json``
    for the requested revision and builds the Hugging Face ``AutoModel`` and
    fast tokenizer. Pooling is not taken from the checkpoint; the inference
    engine always applies masked mean pooling.
    """

    def __init__(self, cache_dir: Optional[str] = None):
        self.cache_dir = cache_dir

    def load(self, config: ModelConfig, device: torch.device) -> LoadedModel:
        revision = config.revision or DEFAULT_REVISION
        log = logger.bind(model_id=config.model_id, revision=revision, device=str(device))
        log.info("Loading model", tokenizer_ref=config.tokenizer_ref)
        start_time = time.time()

        model_args = {"revision": revision, "use_safetensors": not config.use_pth}
        config_args = {"revision": revision}
        if config.approximate_gelu:
            config_args["hidden_act"] = "gelu_new"
        # A revision names a commit of the model repo; a separate tokenizer repo uses its default branch.
        tokenizer_args = {"revision": revision} if config.tokenizer_ref == config.model_id else {}

        try:
            module = st_models.Transformer(
                config.model_id,
                max_seq_length=config.max_sequence_length,
                model_args=model_args,
                tokenizer_args=tokenizer_args,
                config_args=config_args,
                cache_dir=self.cache_dir,
                tokenizer_name_or_path=config.tokenizer_ref,
            )
            encoder = module.auto_model
            encoder.to(device)
            encoder.eval()
        except Exception as e:
            log.error("Failed to load model", error=str(e))
            raise ModelLoadFailed(
                f"Failed to load model {config.model_id}@{revision}: {e}",
                model_id=config.model_id,
            ) from e

        max_length = self._effective_max_length(encoder, config)
        loaded = LoadedModel(
            encoder=encoder,
            tokenizer=TokenizerAdapter(module.tokenizer, max_length),
            device=device,
            config=config,
            embedding_dimension=int(encoder.config.hidden_size),
        )

        log.info(
            "Model loaded",
            embedding_dimension=loaded.embedding_dimension,
            max_sequence_length=max_length,
            duration_s=round(time.time() - start_time, 3),
        )
        return loaded

    @staticmethod
    def _effective_max_length(encoder: torch.nn.Module, config: ModelConfig) -> int:
        """Clamp the requested length to the encoder's position embedding table."""
        limit = getattr(encoder.config, "max_position_embeddings", None)
        if limit and config.max_sequence_length > limit:
            logger.warning(
                "max_sequence_length exceeds position embeddings, clamping",
                model_id=config.model_id,
                requested=config.max_sequence_length,
                limit=limit,
            )
            return int(limit)
        return config.max_sequence_length
