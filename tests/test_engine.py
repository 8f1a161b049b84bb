"""Tests for pooling, normalization, and the inference engine."""

import dataclasses

import numpy as np
import pytest
import torch

from embedding_service.encoders.engine import (
    InferenceEngine,
    build_batch_tensors,
    l2_normalize,
    mean_pool,
)
from embedding_service.encoders.registry import Snapshot
from embedding_service.encoders.tokenizer import TokenizedText
from embedding_service.errors import EncodingFailed

from tests.model_fixtures import HIDDEN_SIZE, InMemoryLoader, make_config


class RecordingEncoder(torch.nn.Module):
    """Encoder without segment embeddings that returns constant states."""

    def __init__(self):
        super().__init__()
        self.received = []

    def forward(self, **inputs):
        self.received.append(sorted(inputs))
        batch, seq_len = inputs["input_ids"].shape
        return (torch.ones(batch, seq_len, 4),)


class FailingEncoder(torch.nn.Module):
    def forward(self, input_ids, attention_mask=None, token_type_ids=None):
        raise RuntimeError("CUDA out of memory")


@pytest.fixture
def snapshot():
    model = InMemoryLoader().load(make_config(), torch.device("cpu"))
    return Snapshot(model=model, version=1)


def with_encoder(snapshot, encoder):
    return Snapshot(model=dataclasses.replace(snapshot.model, encoder=encoder), version=snapshot.version)


def test_mean_pool_ignores_padding():
    """Padding positions contribute to neither the sum nor the count."""
    hidden = torch.tensor([[[1.0, 2.0], [3.0, 4.0], [100.0, 100.0]]])
    mask = torch.tensor([[1, 1, 0]])

    pooled = mean_pool(hidden, mask)
    assert torch.allclose(pooled, torch.tensor([[2.0, 3.0]]))


def test_l2_normalize():
    """Rows are scaled to unit length."""
    normalized = l2_normalize(torch.tensor([[3.0, 4.0], [0.0, 2.0]]))
    assert torch.allclose(normalized, torch.tensor([[0.6, 0.8], [0.0, 1.0]]))


def test_build_batch_tensors():
    """Ids and masks are stacked as long tensors with zero token types."""
    rows = [TokenizedText([2, 5, 3], [1, 1, 1]), TokenizedText([2, 3, 0], [1, 1, 0])]
    input_ids, attention_mask, token_type_ids = build_batch_tensors(rows, torch.device("cpu"))

    assert input_ids.shape == (2, 3)
    assert input_ids.dtype == torch.long
    assert attention_mask.tolist() == [[1, 1, 1], [1, 1, 0]]
    assert token_type_ids.tolist() == [[0, 0, 0], [0, 0, 0]]


def test_encode_shape_and_dtype(engine, snapshot):
    """One float32 row of the hidden size per input text."""
    vectors = engine.encode(snapshot, ["the cat sat", "hello world", "fox"])

    assert vectors.shape == (3, HIDDEN_SIZE)
    assert vectors.dtype == np.float32


def test_normalized_vectors_have_unit_norm(engine, snapshot):
    """Normalized outputs have L2 norm 1 within float tolerance."""
    vectors = engine.encode(snapshot, ["the quick brown fox", "a cat", "one two three four five"])

    np.testing.assert_allclose(np.linalg.norm(vectors, axis=1), 1.0, atol=1e-5)


def test_unnormalized_vectors_are_raw_means(engine, snapshot):
    """Without normalization the pooled mean is returned as is."""
    raw = engine.encode(snapshot, ["the quick brown fox"], normalize=False)
    normalized = engine.encode(snapshot, ["the quick brown fox"], normalize=True)

    np.testing.assert_allclose(raw / np.linalg.norm(raw, axis=1, keepdims=True), normalized, atol=1e-5)
    assert not np.isclose(np.linalg.norm(raw), 1.0)


def test_batch_matches_single(engine, snapshot):
    """A text embeds the same alone and next to longer texts."""
    texts = ["cat", "the quick brown fox jumps over the lazy dog", "hello world"]
    batch = engine.encode(snapshot, texts)

    for index, text in enumerate(texts):
        single = engine.encode(snapshot, [text])
        np.testing.assert_allclose(batch[index], single[0], atol=1e-5)


def test_naive_pooling_would_differ(engine, snapshot):
    """Averaging padded positions yields a different vector for short texts."""
    texts = ["cat", "the quick brown fox jumps over the lazy dog"]
    model = snapshot.model
    rows = model.tokenizer.encode_batch(texts)
    input_ids, attention_mask, token_type_ids = build_batch_tensors(rows, model.device)

    with torch.inference_mode():
        hidden = model.encoder(
            input_ids=input_ids,
            attention_mask=attention_mask,
            token_type_ids=token_type_ids,
        )[0]
    naive = l2_normalize(hidden.mean(dim=1)).numpy()

    pooled = engine.encode(snapshot, texts)
    assert not np.allclose(naive[0], pooled[0], atol=1e-3)


def test_output_order_follows_input(engine, snapshot):
    """Row i is the embedding of text i."""
    forward = engine.encode(snapshot, ["cat", "dog"])
    reverse = engine.encode(snapshot, ["dog", "cat"])

    np.testing.assert_allclose(forward[0], reverse[1], atol=1e-5)
    np.testing.assert_allclose(forward[1], reverse[0], atol=1e-5)
    assert not np.allclose(forward[0], forward[1])


def test_encode_to_lists(engine, snapshot):
    """Rows come back as plain lists of floats."""
    rows = engine.encode_to_lists(snapshot, ["hello"])

    assert isinstance(rows, list)
    assert len(rows) == 1
    assert len(rows[0]) == HIDDEN_SIZE
    assert all(isinstance(value, float) for value in rows[0])


def test_empty_input_is_rejected(engine, snapshot):
    with pytest.raises(EncodingFailed):
        engine.encode(snapshot, [])


def test_forward_errors_become_encoding_failed(engine, snapshot):
    """A failing forward pass surfaces as EncodingFailed with the model id."""
    broken = with_encoder(snapshot, FailingEncoder())

    with pytest.raises(EncodingFailed) as exc_info:
        engine.encode(broken, ["hello"])

    assert "out of memory" in exc_info.value.message
    assert exc_info.value.model_id == snapshot.config.model_id


def test_token_type_ids_only_passed_when_accepted(engine, snapshot):
    """Encoders without a token_type_ids argument never receive one."""
    encoder = RecordingEncoder()
    vectors = engine.encode(with_encoder(snapshot, encoder), ["hello world", "cat"])

    assert encoder.received == [["attention_mask", "input_ids"]]
    np.testing.assert_allclose(vectors, np.full((2, 4), 0.5, dtype=np.float32), atol=1e-6)
