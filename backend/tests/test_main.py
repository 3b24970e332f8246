# tests/test_main.py - Gateway behaviour: health, correlation ids, error bodies
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.exc import OperationalError

from main import app
from routers import tasks as tasks_router
from tests.conftest import get_auth_headers


@pytest.mark.asyncio
async def test_root(client: AsyncClient):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.json()["name"] == "Task Board"


@pytest.mark.asyncio
async def test_health_reports_database(client: AsyncClient, db_engine):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["database"] == "connected"
    assert resp.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_request_id_echoed(client: AsyncClient):
    resp = await client.get("/", headers={"X-Request-ID": "req-123"})
    assert resp.headers["X-Request-ID"] == "req-123"
    assert resp.headers["X-Correlation-ID"] == "req-123"
    assert "X-Response-Time" in resp.headers


@pytest.mark.asyncio
async def test_error_body_carries_request_id(client: AsyncClient):
    resp = await client.get("/api/auth/profile", headers={"X-Request-ID": "req-456"})
    assert resp.status_code == 401
    assert resp.json()["request_id"] == "req-456"


@pytest.mark.asyncio
async def test_validation_errors_are_400(client: AsyncClient, admin_user, test_board):
    resp = await client.post(
        "/api/tasks",
        json={"title": "", "assigned_to": []},
        headers=get_auth_headers(admin_user),
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["detail"].startswith("title:")
    assert body["errors"][0]["loc"] == ["body", "title"]


@pytest.mark.asyncio
async def test_unhandled_error_is_500_with_detail(db_engine, admin_user, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is gone"))

    monkeypatch.setattr(tasks_router, "parse_status_filter", broken)
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        resp = await ac.get("/api/tasks/board/b1", headers=get_auth_headers(admin_user))

    assert resp.status_code == 500
    body = resp.json()
    assert body["detail"] == "Server error"
    assert "database is gone" in body["error"]
    assert "stack" in body
