from fastapi.testclient import TestClient

from app.core import celery, database, redis
from app.main import app


def _check(result):
    async def check():
        return result

    return check


def test_health_shape(monkeypatch):
    monkeypatch.setattr(redis, "check_connection", _check(True))
    monkeypatch.setattr(celery, "check_connection", _check(True))
    client = TestClient(app)
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["services"] == {"database": True, "redis": True, "rabbitmq": True}
    assert body["environment"] == "local"


def test_health_redis_down(monkeypatch):
    monkeypatch.setattr(redis, "check_connection", _check(False))
    monkeypatch.setattr(celery, "check_connection", _check(True))
    client = TestClient(app)
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "degraded"
    assert r.json()["services"]["redis"] is False


def test_health_database_down(monkeypatch):
    monkeypatch.setattr(database, "check_connection", _check(False))
    monkeypatch.setattr(redis, "check_connection", _check(True))
    monkeypatch.setattr(celery, "check_connection", _check(True))
    r = TestClient(app).get("/health")
    assert r.json()["services"]["database"] is False
