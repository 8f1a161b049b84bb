"""Configuration management for the embedding service.

This module centralizes environment-driven configuration. It builds on
``pydantic_settings.BaseSettings`` so configuration can be provided via
environment variables, ``.env`` files, or defaults.

Highlights
- Strongly-typed settings with sensible defaults
- One place to discover commonly used environment variables
- Small service-specific subclasses to keep concerns clear

Usage
- Inject the config in your service entrypoint: ``config = EmbeddingConfig()``
- Or select dynamically: ``config = get_config("embedding")``
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


class BaseConfig(BaseSettings):
    """Base configuration class for all services.

    Field names double as environment variable names (case-insensitive), so
    ``ml_log_level`` is read from ``ML_LOG_LEVEL``.

    Notes
    - Add new shared settings here so downstream services inherit them.
    - Prefer declaring a field over reading ``os.environ`` directly.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    ml_env: str = Field(default="local")

    # Logging
    ml_log_level: str = Field(default="INFO")
    ml_log_format: str = Field(default="json")


class EmbeddingConfig(BaseConfig):
    """Configuration for the embedding service.

    Includes the default model selection, the inference limits, and the
    retry policy applied when loading the default model at startup.
    """

    ml_embedding_host: str = Field(default="127.0.0.1")
    ml_embedding_port: int = Field(default=9006)

    # Default model
    ml_embedding_model: str = Field(default=DEFAULT_EMBEDDING_MODEL)
    ml_embedding_tokenizer: Optional[str] = Field(default=None)
    ml_embedding_revision: Optional[str] = Field(default=None)
    ml_embedding_max_sequence_length: int = Field(default=512)
    ml_embedding_device: str = Field(default="cpu")
    ml_embedding_use_pth: bool = Field(default=False)
    ml_embedding_approximate_gelu: bool = Field(default=False)

    # Limits
    ml_max_batch_size: int = Field(default=100)
    ml_max_sequence_length_limit: int = Field(default=8192)

    # Startup load retry policy
    ml_model_load_retries: int = Field(default=3)
    ml_model_load_retry_delay: float = Field(default=1.0)


def get_config(service_name: str) -> BaseConfig:
    """Get configuration for a specific service.

    Parameters
    - service_name: Literal name, currently only ``embedding``.

    Returns
    - A concrete ``BaseConfig`` subclass pre-wired to read the right env vars.
    """
    config_map = {
        "embedding": EmbeddingConfig,
    }

    # Default to ``BaseConfig`` to avoid surprising crashes for unknown names.
    config_class = config_map.get(service_name, BaseConfig)
    return config_class()
