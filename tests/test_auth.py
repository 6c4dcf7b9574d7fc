import pytest

from domus_api.settings import settings


@pytest.fixture
def secured(client, monkeypatch):
    monkeypatch.setattr(settings, "api_token", "s3cret")
    return client


def test_dev_mode_allows_anonymous(client):
    assert client.post("/api/robot/parar").status_code == 200


def test_missing_token(secured, publisher):
    r = secured.post("/api/robot/parar")
    assert r.status_code == 401
    assert r.json() == {"error": "Token requerido"}
    assert publisher.sent == []


def test_wrong_token(secured):
    r = secured.get("/api/robot/resumen", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401


def test_valid_token(secured):
    r = secured.get("/api/robot/resumen", headers={"Authorization": "Bearer s3cret"})
    assert r.status_code == 200


def test_health_is_public(secured):
    r = secured.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
