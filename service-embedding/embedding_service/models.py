"""Data records exchanged by the embedding service.

All records are immutable once constructed except where noted. ``ModelConfig``
is frozen so a loaded model can never have its configuration mutated in place;
switching models always goes through a fresh load.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from libs.common.config import DEFAULT_EMBEDDING_MODEL, EmbeddingConfig

from .errors import InvalidConfig

MAX_SEQUENCE_LENGTH_LIMIT = 8192


class ModelConfig(BaseModel):
    """Identifies and parameterizes one loadable model."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_id: str = Field(default=DEFAULT_EMBEDDING_MODEL, description="Hub id or local path of the encoder")
    tokenizer_ref: str = Field(default=DEFAULT_EMBEDDING_MODEL, description="Hub id or local path of the tokenizer")
    revision: Optional[str] = Field(default=None, description="Hub revision; defaults to main")
    max_sequence_length: int = Field(default=512, description="Truncation length in tokens")
    device: str = Field(default="cpu", description="cpu, cuda, metal or auto")
    use_pth: bool = Field(default=False, description="Load pytorch_model.bin instead of safetensors")
    approximate_gelu: bool = Field(default=False, description="Use the tanh GELU approximation")

    @classmethod
    def from_settings(cls, config: EmbeddingConfig) -> "ModelConfig":
        """Build the default model config from service settings.

        The tokenizer reference falls back to the model id, which is how
        sentence-transformers checkpoints are published.
        """
        return cls(
            model_id=config.ml_embedding_model,
            tokenizer_ref=config.ml_embedding_tokenizer or config.ml_embedding_model,
            revision=config.ml_embedding_revision,
            max_sequence_length=config.ml_embedding_max_sequence_length,
            device=config.ml_embedding_device,
            use_pth=config.ml_embedding_use_pth,
            approximate_gelu=config.ml_embedding_approximate_gelu,
        )


def validate_sequence_length(config: ModelConfig, limit: int = MAX_SEQUENCE_LENGTH_LIMIT) -> None:
    """Raise ``InvalidConfig`` unless ``1 <= max_sequence_length <= limit``."""
    if config.max_sequence_length < 1 or config.max_sequence_length > limit:
        raise InvalidConfig(
            f"max_sequence_length must be between 1 and {limit}, "
            f"got {config.max_sequence_length}",
            model_id=config.model_id,
        )


def validate_model_config(config: ModelConfig, limit: int = MAX_SEQUENCE_LENGTH_LIMIT) -> None:
    """Validate a config before any load is attempted."""
    if not config.model_id.strip():
        raise InvalidConfig("model_id cannot be empty")
    if not config.tokenizer_ref.strip():
        raise InvalidConfig("tokenizer_ref cannot be empty", model_id=config.model_id)
    validate_sequence_length(config, limit)


class ModelSwitchRequest(BaseModel):
    """Request model for model switching. Identifiers have no defaults."""

    model_config = ConfigDict(protected_namespaces=())

    model_id: str = Field(..., description="Hub id or local path of the encoder")
    tokenizer_ref: str = Field(..., description="Hub id or local path of the tokenizer")
    revision: Optional[str] = Field(default=None, description="Hub revision; defaults to main")
    max_sequence_length: int = Field(default=512, description="Truncation length in tokens")
    device: str = Field(default="cpu", description="cpu, cuda, metal or auto")
    use_pth: bool = Field(default=False, description="Load pytorch_model.bin instead of safetensors")
    approximate_gelu: bool = Field(default=False, description="Use the tanh GELU approximation")

    def to_model_config(self) -> ModelConfig:
        return ModelConfig(**self.model_dump())


class EncodeRequest(BaseModel):
    """Request model for single-text encoding."""
    text: str = Field(..., description="Text to embed")
    normalize: bool = Field(True, description="L2-normalize the embedding")


class BatchEncodeRequest(BaseModel):
    """Request model for batch encoding."""
    texts: List[str] = Field(..., description="Texts to embed, in order")
    normalize: bool = Field(True, description="L2-normalize the embeddings")


class EmbeddingResponse(BaseModel):
    """Response model for single-text encoding."""

    model_config = ConfigDict(protected_namespaces=())

    embedding: List[float] = Field(..., description="Embedding vector (float32 values)")
    text: str = Field(..., description="Source text")
    model_id: str = Field(..., description="Model that produced the embedding")


class BatchEmbeddingResponse(BaseModel):
    """Response model for batch encoding. ``embeddings[i]`` belongs to ``texts[i]``."""

    model_config = ConfigDict(protected_namespaces=())

    embeddings: List[List[float]] = Field(..., description="Embedding vectors in input order")
    texts: List[str] = Field(..., description="Source texts that were embedded")
    model_id: str = Field(..., description="Model that produced the embeddings")


class ModelState(str, Enum):
    """Readiness of the model registry."""
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"


class ModelStatus(BaseModel):
    """Point-in-time view of the registry used by health and info endpoints."""

    model_config = ConfigDict(protected_namespaces=())

    state: ModelState
    config: Optional[ModelConfig] = None
    version: int = 0
    embedding_dimension: Optional[int] = None
    loaded_at: Optional[float] = None
