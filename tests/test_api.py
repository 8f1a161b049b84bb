"""HTTP tests for the embedding service application."""

import pytest
from fastapi.testclient import TestClient

from embedding_service.main import build_embedding_service, create_app, load_default_model
from libs.common.config import EmbeddingConfig
from libs.common.metrics import MetricsCollector

from tests.model_fixtures import HIDDEN_SIZE, NEW_MODEL_ID, OLD_MODEL_ID, InMemoryLoader


def make_client(service):
    app = create_app(
        config=EmbeddingConfig(),
        service=service,
        metrics=MetricsCollector("api-test"),
    )
    return TestClient(app)


@pytest.fixture
def client(service):
    with make_client(service) as client:
        yield client


@pytest.fixture
def unloaded_client(unloaded_service):
    with make_client(unloaded_service) as client:
        yield client


def switch_payload(model_id, **overrides):
    payload = {
        "model_id": model_id,
        "tokenizer_ref": model_id,
        "max_sequence_length": 32,
        "device": "cpu",
    }
    payload.update(overrides)
    return payload


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["endpoints"]["encode"] == "/encode"


def test_probes(client):
    """Test health, liveness, and readiness with a model loaded."""
    assert client.get("/health").json() == {"status": "healthy", "service": "embedding-service"}
    assert client.get("/live").json()["status"] == "alive"

    ready = client.get("/ready")
    assert ready.status_code == 200
    assert ready.json()["model_id"] == OLD_MODEL_ID
    assert ready.json()["state"] == "ready"


def test_probes_without_model(unloaded_client):
    assert unloaded_client.get("/health").status_code == 503
    assert unloaded_client.get("/ready").status_code == 503
    assert unloaded_client.get("/live").status_code == 200


def test_encode(client):
    response = client.post("/encode", json={"text": "Hello world"})

    assert response.status_code == 200
    body = response.json()
    assert body["model_id"] == OLD_MODEL_ID
    assert body["text"] == "Hello world"
    assert len(body["embedding"]) == HIDDEN_SIZE
    assert "X-Process-Time" in response.headers


def test_encode_blank_text_is_bad_request(client):
    response = client.post("/encode", json={"text": "   "})

    assert response.status_code == 400
    assert response.json()["detail"] == "Text cannot be empty"


def test_encode_missing_field(client):
    assert client.post("/encode", json={}).status_code == 422


def test_encode_batch(client):
    response = client.post("/encode/batch", json={"texts": ["cat", "", "the lazy dog"]})

    assert response.status_code == 200
    body = response.json()
    assert body["texts"] == ["cat", "the lazy dog"]
    assert len(body["embeddings"]) == 2


def test_encode_batch_errors(client):
    assert client.post("/encode/batch", json={"texts": []}).json()["detail"] == "Text list cannot be empty"

    response = client.post("/encode/batch", json={"texts": ["cat"] * 101})
    assert response.status_code == 400
    assert response.json()["detail"] == "Batch size 101 exceeds maximum 100"


def test_no_model_is_service_unavailable(unloaded_client):
    assert unloaded_client.post("/encode", json={"text": "hello"}).status_code == 503
    assert unloaded_client.get("/model/info").status_code == 503


def test_model_info_and_status(client):
    info = client.get("/model/info").json()
    assert info["model_id"] == OLD_MODEL_ID
    assert info["max_sequence_length"] == 32

    status = client.get("/model/status").json()
    assert status["state"] == "ready"
    assert status["version"] == 1
    assert status["embedding_dimension"] == HIDDEN_SIZE


def test_switch_model(client):
    """Test switching models over HTTP."""
    response = client.post("/model/switch", json=switch_payload(NEW_MODEL_ID))

    assert response.status_code == 200
    assert response.json()["status"] == "switched"
    assert response.json()["model"]["model_id"] == NEW_MODEL_ID
    assert client.post("/encode", json={"text": "hello"}).json()["model_id"] == NEW_MODEL_ID


def test_switch_model_invalid_config(client):
    response = client.post("/model/switch", json=switch_payload(NEW_MODEL_ID, max_sequence_length=0))

    assert response.status_code == 400
    assert "max_sequence_length" in response.json()["detail"]
    assert client.get("/model/info").json()["model_id"] == OLD_MODEL_ID


def test_switch_model_blank_model_id(client, loader):
    calls_before = len(loader.calls)

    response = client.post("/model/switch", json=switch_payload("  "))

    assert response.status_code == 400
    assert response.json()["detail"] == "model_id cannot be empty"
    assert len(loader.calls) == calls_before


def test_switch_model_requires_identifiers(client, loader):
    """A body without model_id and tokenizer_ref is rejected, nothing is loaded."""
    calls_before = len(loader.calls)

    assert client.post("/model/switch", json={}).status_code == 422
    assert client.post("/model/switch", json={"model_id": NEW_MODEL_ID}).status_code == 422

    assert len(loader.calls) == calls_before
    assert client.get("/model/info").json()["model_id"] == OLD_MODEL_ID


def test_switch_model_load_failure(client, loader):
    loader.fail_for.add(NEW_MODEL_ID)

    response = client.post("/model/switch", json=switch_payload(NEW_MODEL_ID))

    assert response.status_code == 500
    assert client.get("/model/info").json()["model_id"] == OLD_MODEL_ID


def test_metrics_endpoint(client):
    client.post("/encode", json={"text": "hello"})

    response = client.get("/metrics")
    assert response.status_code == 200
    assert "http_requests_total" in response.text

    collector = client.app.state.metrics_collector
    assert collector.registry.get_sample_value(
        "http_requests_total",
        {"method": "POST", "endpoint": "/encode", "status": "200"},
    ) == 1.0


@pytest.mark.asyncio
async def test_load_default_model_from_settings():
    """The composition root loads the configured default model."""
    settings = EmbeddingConfig(
        ml_embedding_model=OLD_MODEL_ID,
        ml_embedding_max_sequence_length=32,
        ml_max_batch_size=5,
        ml_model_load_retry_delay=0.0,
    )
    loader = InMemoryLoader()
    service = build_embedding_service(settings, loader=loader)

    active = await load_default_model(service, settings)

    assert active.model_id == OLD_MODEL_ID
    assert active.tokenizer_ref == OLD_MODEL_ID
    assert service.max_batch_size == 5
    assert len(loader.calls) == 1
