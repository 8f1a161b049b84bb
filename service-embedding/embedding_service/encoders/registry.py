"""Model registry holding the single active model.

The active model lives in a single slot as an immutable ``Snapshot``
(loaded model + version). Readers grab the slot's current reference without
locking; a writer builds the replacement completely before assigning it, so a
reader sees either the old snapshot or the new one and never a partial model.

Locks
- ``_load_lock`` serializes whole loads so at most one swap is in progress.
- ``_swap_lock`` covers only the reference assignment and version bump.
Readers never take either lock. Artifact retrieval and deserialization run
while holding ``_load_lock`` only, so reads are never blocked by a download.
"""

import threading
from dataclasses import dataclass
from typing import Optional

import structlog

from ..batching.device_selector import DeviceSelector
from ..errors import ModelLoadFailed, ModelNotFound
from ..models import (
    MAX_SEQUENCE_LENGTH_LIMIT,
    ModelConfig,
    ModelState,
    ModelStatus,
    validate_sequence_length,
)
from .loader import LoadedModel, ModelLoader

logger = structlog.get_logger("embedding_service.registry")


@dataclass(frozen=True)
class Snapshot:
    """Read handle to a loaded model, valid for the duration of one call."""
    model: LoadedModel
    version: int

    @property
    def config(self) -> ModelConfig:
        return self.model.config


class ModelRegistry:
    """Owns the currently loaded model and swaps it atomically."""

    def __init__(
        self,
        loader: ModelLoader,
        device_selector: Optional[DeviceSelector] = None,
        max_sequence_length_limit: int = MAX_SEQUENCE_LENGTH_LIMIT,
    ):
        self._loader = loader
        self._device_selector = device_selector or DeviceSelector()
        self.max_sequence_length_limit = max_sequence_length_limit

        self._snapshot: Optional[Snapshot] = None
        self._version = 0
        self._loading = False
        self._load_lock = threading.Lock()
        self._swap_lock = threading.Lock()

    @property
    def state(self) -> ModelState:
        if self._loading:
            return ModelState.LOADING
        return ModelState.READY if self._snapshot is not None else ModelState.UNLOADED

    def load(self, config: ModelConfig) -> Snapshot:
        """Load ``config`` and make it the current model.

        Raises ``InvalidConfig`` for an out-of-range sequence length and
        ``ModelLoadFailed`` when the loader fails. On failure the previous
        model, if any, stays current.
        """
        validate_sequence_length(config, self.max_sequence_length_limit)

        with self._load_lock:
            self._loading = True
            try:
                device = self._device_selector.select(config.device)
                try:
                    loaded = self._loader.load(config, device)
                except ModelLoadFailed:
                    raise
                except Exception as e:
                    logger.error("Model loader raised", model_id=config.model_id, error=str(e))
                    raise ModelLoadFailed(
                        f"Failed to load model {config.model_id}: {e}",
                        model_id=config.model_id,
                    ) from e

                with self._swap_lock:
                    previous = self._snapshot
                    self._version += 1
                    snapshot = Snapshot(model=loaded, version=self._version)
                    self._snapshot = snapshot
            finally:
                self._loading = False

        logger.info(
            "Model swapped in",
            model_id=config.model_id,
            version=snapshot.version,
            device=str(loaded.device),
            previous_model_id=previous.config.model_id if previous else None,
        )
        if previous is not None:
            self._release(previous)
        return snapshot

    def current(self) -> Snapshot:
        """Return the active snapshot without copying weights."""
        snapshot = self._snapshot
        if snapshot is None:
            raise ModelNotFound()
        return snapshot

    def current_config(self) -> ModelConfig:
        return self.current().config

    def status(self) -> ModelStatus:
        state = self.state
        snapshot = self._snapshot
        if snapshot is None:
            return ModelStatus(state=state)
        return ModelStatus(
            state=state,
            config=snapshot.config,
            version=snapshot.version,
            embedding_dimension=snapshot.model.embedding_dimension,
            loaded_at=snapshot.model.loaded_at,
        )

    def clear(self) -> None:
        """Drop the current model."""
        with self._swap_lock:
            previous = self._snapshot
            self._snapshot = None
        if previous is not None:
            logger.info("Model released", model_id=previous.config.model_id, version=previous.version)
            self._release(previous)

    def _release(self, snapshot: Snapshot) -> None:
        # In-flight readers keep their own reference; memory is reclaimed when they finish.
        if snapshot.model.device.type != "cpu":
            self._device_selector.clear_cache(snapshot.model.device)
