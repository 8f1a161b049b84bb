"""Tokenizer adapter around a pretrained Hugging Face tokenizer.

Batches are padded to the longest sequence in the call, never to a global
maximum, and truncated to the model's configured ``max_sequence_length``.
"""

from typing import List, NamedTuple, Sequence

import structlog
from transformers import PreTrainedTokenizerBase

from ..errors import EncodingFailed

logger = structlog.get_logger("embedding_service.tokenizer")


class TokenizedText(NamedTuple):
    """Token ids and the parallel attention mask (1 = real token, 0 = pad)."""
    token_ids: List[int]
    attention_mask: List[int]


class TokenizerAdapter:
    """Encodes text into padded token-id / attention-mask pairs."""

    def __init__(self, tokenizer: PreTrainedTokenizerBase, max_sequence_length: int):
        self._tokenizer = tokenizer
        self.max_sequence_length = max_sequence_length

        if tokenizer.pad_token is None:
            fallback = tokenizer.unk_token or tokenizer.eos_token
            if fallback is not None:
                tokenizer.pad_token = fallback
                logger.info("Tokenizer has no pad token, using fallback", pad_token=fallback)
            else:
                logger.warning("Tokenizer has no pad token; mixed-length batches will fail")

    @property
    def pad_token_id(self):
        return self._tokenizer.pad_token_id

    def encode_one(self, text: str) -> TokenizedText:
        return self.encode_batch([text])[0]

    def encode_batch(self, texts: Sequence[str]) -> List[TokenizedText]:
        """Tokenize ``texts`` together, padding every row to the longest one."""
        try:
            encoded = self._tokenizer(
                list(texts),
                padding="longest",
                truncation=True,
                max_length=self.max_sequence_length,
                add_special_tokens=True,
                return_attention_mask=True,
                return_token_type_ids=False,
            )
        except Exception as e:
            logger.error("Tokenization failed", batch_size=len(texts), error=str(e))
            raise EncodingFailed(f"Tokenization failed: {e}") from e

        rows = [
            TokenizedText(list(ids), list(mask))
            for ids, mask in zip(encoded["input_ids"], encoded["attention_mask"])
        ]

        lengths = {len(row.token_ids) for row in rows}
        if len(rows) != len(texts) or len(lengths) > 1:
            raise EncodingFailed(
                f"Tokenizer returned {len(rows)} rows of lengths {sorted(lengths)} "
                f"for a batch of {len(texts)}"
            )
        return rows
