"""Error taxonomy for the embedding service.

Every failure raised by the registry, the inference engine, or the service
facade is an ``InferenceError``. The transport layer maps the subclasses to
status codes; the message is carried on the exception itself.
"""

from typing import Optional


class InferenceError(Exception):
    """Base exception for embedding inference operations."""

    def __init__(self, message: str, model_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.model_id = model_id

    def __str__(self) -> str:
        return self.message


class InvalidConfig(InferenceError):
    """Bad identifiers, out-of-range sequence length, or invalid input batch."""
    pass


class ModelNotFound(InferenceError):
    """No model has been loaded yet."""

    def __init__(self, message: str = "No model loaded", model_id: Optional[str] = None):
        super().__init__(message, model_id)


class ModelLoadFailed(InferenceError):
    """Artifact retrieval, weight deserialization, or tokenizer construction failed."""
    pass


class EncodingFailed(InferenceError):
    """Tokenization or forward pass failed."""
    pass
