# apps/api/tests/test_health.py
import sentry_sdk
from httpx import ASGITransport, AsyncClient

from podcast_api import main
from podcast_api.core.config import settings
from podcast_api.services import plans as catalog


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_ready_pings_database(client):
    response = await client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready"}


async def test_security_headers_and_request_id(client):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"


async def test_metrics_exposition(client):
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")


async def test_ready_hides_database_errors(client, monkeypatch):
    class BrokenSession:
        async def __aenter__(self):
            raise ConnectionRefusedError("connection to 10.0.0.5:5432 refused")

        async def __aexit__(self, *exc):
            return False

    monkeypatch.setattr(main, "async_session_factory", lambda: BrokenSession())

    response = await client.get("/ready")
    assert response.status_code == 503
    assert response.json() == {"status": "not ready"}


async def test_unhandled_errors_are_reported_without_detail(client, monkeypatch, sentry_events):
    async def explode(db):
        raise RuntimeError("pool exhausted at db-primary")

    monkeypatch.setattr(catalog, "list_active", explode)

    transport = ASGITransport(app=main.app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/plans")

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error", "error_code": "INTERNAL_ERROR"}
    assert [str(e) for e in sentry_events["exceptions"]] == ["pool exhausted at db-primary"]


def test_sentry_stays_off_without_dsn(monkeypatch):
    calls = []
    monkeypatch.setattr(settings, "SENTRY_DSN", None)
    monkeypatch.setattr(sentry_sdk, "init", lambda **kw: calls.append(kw))

    assert main.init_sentry() is False
    assert calls == []


def test_sentry_initialised_with_dsn(monkeypatch):
    calls = []
    monkeypatch.setattr(settings, "SENTRY_DSN", "https://public@o0.ingest.sentry.io/1")
    monkeypatch.setattr(sentry_sdk, "init", lambda **kw: calls.append(kw))

    assert main.init_sentry() is True
    assert calls[0]["dsn"] == "https://public@o0.ingest.sentry.io/1"
    assert calls[0]["environment"] == "test"
    assert calls[0]["send_default_pii"] is False
