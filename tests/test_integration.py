from unittest.mock import MagicMock

import numpy as np
import pytest
from httpx import ASGITransport, AsyncClient

from modelselect.api import main
from modelselect.api.main import app
from modelselect.data.utils import SEGMENTATION_FEATURE_NAMES

DEFAULT_PAYLOAD_SINGLE = {
    "features": {name: 0.0 for name in SEGMENTATION_FEATURE_NAMES},
}


@pytest.fixture(autouse=True)
def mock_model(monkeypatch):
    dummy_model = MagicMock()
    dummy_model.classes_ = np.array(["PS", "WS"])
    dummy_model.predict.side_effect = lambda df: np.array(["PS"] * len(df))
    dummy_model.predict_proba.side_effect = lambda df: np.tile([0.8, 0.2], (len(df), 1))
    monkeypatch.setattr(main, "model", dummy_model)


@pytest.fixture(autouse=True)
def mock_model_version(monkeypatch):
    model_version = MagicMock()
    model_version.name = "Segmentation_Quality_Classifier"
    model_version.version = "3"
    model_version.run_id = "abc123"
    model_version.creation_timestamp = 0
    monkeypatch.setattr(main, "model_version", model_version)


@pytest.mark.asyncio
async def test_health_check():
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://127.0.0.1:8000"
    ) as client:
        response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_health_check_without_model(monkeypatch):
    monkeypatch.setattr(main, "model", None)
    monkeypatch.setattr(main, "load_model_for_app", lambda: (None, None))
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://127.0.0.1:8000"
    ) as client:
        response = await client.get("/health")
    assert response.status_code == 503


@pytest.mark.asyncio
async def test_model_info():
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://127.0.0.1:8000"
    ) as client:
        response = await client.get("/model/info")
    assert response.status_code == 200
    data = response.json()
    assert data["model_name"] == "Segmentation_Quality_Classifier"
    assert data["latest_version"] == "3"
    assert data["classes"] == ["PS", "WS"]


@pytest.mark.asyncio
async def test_predict():
    payload = DEFAULT_PAYLOAD_SINGLE
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://127.0.0.1:8000"
    ) as client:
        response = await client.post("/predict", json=payload)
    assert response.status_code == 200
    data = response.json()
    assert data["prediction"] == "PS"
    assert data["probabilities"] == pytest.approx({"PS": 0.8, "WS": 0.2})


@pytest.mark.asyncio
async def test_predict_rejects_empty_features():
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://127.0.0.1:8000"
    ) as client:
        response = await client.post("/predict", json={"features": {}})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_batch_predict():
    payload = {"inputs": [DEFAULT_PAYLOAD_SINGLE, DEFAULT_PAYLOAD_SINGLE]}
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://127.0.0.1:8000"
    ) as client:
        response = await client.post("/batch_predict", json=payload)
    assert response.status_code == 200
    data = response.json()
    assert "predictions" in data
    assert isinstance(data["predictions"], list)
    assert len(data["predictions"]) == 2
