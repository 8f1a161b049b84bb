"""Shared fixtures for embedding service tests."""

import pytest

from embedding_service.batching.device_selector import DeviceSelector
from embedding_service.encoders.engine import InferenceEngine
from embedding_service.encoders.registry import ModelRegistry
from embedding_service.encoders.service import EmbeddingService

from tests.model_fixtures import OLD_MODEL_ID, InMemoryLoader, build_hf_tokenizer, make_config


@pytest.fixture
def hf_tokenizer():
    return build_hf_tokenizer()


@pytest.fixture
def loader():
    return InMemoryLoader()


@pytest.fixture
def registry(loader):
    return ModelRegistry(loader=loader, device_selector=DeviceSelector())


@pytest.fixture
def loaded_registry(registry):
    registry.load(make_config(OLD_MODEL_ID))
    return registry


@pytest.fixture
def engine():
    return InferenceEngine()


@pytest.fixture
def service(loaded_registry, engine):
    return EmbeddingService(registry=loaded_registry, engine=engine)


@pytest.fixture
def unloaded_service(engine):
    registry = ModelRegistry(loader=InMemoryLoader(), device_selector=DeviceSelector())
    return EmbeddingService(registry=registry, engine=engine)
