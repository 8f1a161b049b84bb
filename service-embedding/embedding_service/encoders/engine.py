"""Inference engine: tokens in, pooled sentence vectors out.

Every call, single text or batch, goes through the same path:

1. tokenize with batch-longest padding
2. stack ids and masks into ``[batch, seq_len]`` tensors, token types all zero
3. forward pass to ``[batch, seq_len, hidden]`` hidden states
4. mean pooling over real tokens only (mask-weighted sum / mask count)
5. optional L2 normalization
6. one float32 row per input text, in input order

Padding positions are excluded from both the sum and the denominator of the
mean, so a text embedded alone and the same text embedded next to a longer
one produce the same vector up to floating point tolerance.
"""

import inspect
import time
from typing import Dict, List, Sequence, Tuple

import numpy as np
import torch
import structlog

from libs.common.logging import log_performance

from ..errors import EncodingFailed
from .registry import Snapshot
from .tokenizer import TokenizedText

logger = structlog.get_logger("embedding_service.engine")


def build_batch_tensors(
    rows: Sequence[TokenizedText],
    device: torch.device,
) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
    """Stack tokenized rows into ``(input_ids, attention_mask, token_type_ids)``."""
    input_ids = torch.tensor([row.token_ids for row in rows], dtype=torch.long, device=device)
    attention_mask = torch.tensor([row.attention_mask for row in rows], dtype=torch.long, device=device)
    token_type_ids = torch.zeros_like(input_ids)
    return input_ids, attention_mask, token_type_ids


def mean_pool(hidden_states: torch.Tensor, attention_mask: torch.Tensor) -> torch.Tensor:
    """Average ``[batch, seq, hidden]`` states over positions where the mask is 1."""
    mask = attention_mask.unsqueeze(-1).to(hidden_states.dtype)
    summed = (hidden_states * mask).sum(dim=1)
    counts = mask.sum(dim=1)
    return summed / counts


def l2_normalize(vectors: torch.Tensor) -> torch.Tensor:
    """Scale each row to unit Euclidean length. All-zero rows are not guarded."""
    return vectors / vectors.pow(2).sum(dim=1, keepdim=True).sqrt()


class InferenceEngine:
    """Runs the encoder for a borrowed snapshot.

    The engine keeps no reference to the snapshot after ``encode`` returns.
    """

    def __init__(self):
        self._accepts_token_types: Dict[type, bool] = {}

    def encode(
        self,
        snapshot: Snapshot,
        texts: Sequence[str],
        normalize: bool = True,
    ) -> np.ndarray:
        """Return a ``[len(texts), hidden]`` float32 array, rows in input order."""
        if not texts:
            raise EncodingFailed("No texts to encode")

        model = snapshot.model
        start_time = time.time()

        rows = model.tokenizer.encode_batch(texts)

        try:
            input_ids, attention_mask, token_type_ids = build_batch_tensors(rows, model.device)
            inputs = {"input_ids": input_ids, "attention_mask": attention_mask}
            if self._accepts_token_type_ids(model.encoder):
                inputs["token_type_ids"] = token_type_ids

            with torch.inference_mode():
                outputs = model.encoder(**inputs)
                hidden_states = outputs[0]
                pooled = mean_pool(hidden_states, attention_mask)
                if normalize:
                    pooled = l2_normalize(pooled)

            vectors = pooled.to(dtype=torch.float32, device="cpu").numpy()
        except (RuntimeError, ValueError, IndexError, TypeError) as e:
            logger.error(
                "Forward pass failed",
                model_id=model.config.model_id,
                batch_size=len(texts),
                error=str(e),
            )
            raise EncodingFailed(
                f"Inference failed for batch of {len(texts)}: {e}",
                model_id=model.config.model_id,
            ) from e

        if vectors.ndim != 2 or vectors.shape[0] != len(texts):
            raise EncodingFailed(
                f"Expected {len(texts)} embeddings, got array of shape {vectors.shape}",
                model_id=model.config.model_id,
            )

        log_performance(
            "encode",
            (time.time() - start_time) * 1000,
            model_id=model.config.model_id,
            batch_size=len(texts),
            seq_len=int(input_ids.shape[1]),
        )
        return vectors

    def encode_to_lists(
        self,
        snapshot: Snapshot,
        texts: Sequence[str],
        normalize: bool = True,
    ) -> List[List[float]]:
        """Same as ``encode`` but unstacked into JSON-serializable rows."""
        return self.encode(snapshot, texts, normalize).tolist()

    def _accepts_token_type_ids(self, encoder: torch.nn.Module) -> bool:
        # Encoders such as DistilBERT have no segment embeddings.
        key = type(encoder)
        if key not in self._accepts_token_types:
            params = inspect.signature(encoder.forward).parameters
            self._accepts_token_types[key] = "token_type_ids" in params
        return self._accepts_token_types[key]
