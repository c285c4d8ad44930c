"""Integration tests for webhook and internal dispatch API endpoints.

Uses the in-memory webhook repository behind a real WebhookService and
httpx AsyncClient with dependency overrides for authentication.
"""

from __future__ import annotations

import uuid
from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.clienthub.core.tenant import TenantContext
from src.clienthub.webhooks.dispatcher import WebhookDispatcher
from src.clienthub.webhooks.service import WebhookService
from src.clienthub.webhooks.sweeper import DispatchSweeper
from src.clienthub.webhooks.tester import WebhookTester
from tests.doubles import InMemoryDispatcherConfigStore, InMemoryWebhookRepository

TENANT_ID = str(uuid.uuid4())
USER_ID = uuid.uuid4()
INTERNAL_SECRET = "internal-s3cret"


def _make_mock_app():
    """Create a minimal FastAPI app with the webhook and internal routers."""
    from fastapi import FastAPI

    from src.clienthub.api.v1.internal import router as internal_router
    from src.clienthub.api.v1.webhooks import router
    from src.clienthub.core.exceptions import register_exception_handlers

    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(router)
    app.include_router(internal_router)
    return app


def _mock_user(role: str = "admin"):
    mock_user = MagicMock()
    mock_user.id = USER_ID
    mock_user.tenant_id = TENANT_ID
    mock_user.is_active = True
    mock_user.role = role
    return mock_user


def _mock_get_current_user():
    """Return a mock admin user for auth bypass."""
    return _mock_user()


def _mock_get_tenant():
    """Return a mock tenant context."""
    mock_tenant = MagicMock()
    mock_tenant.tenant_id = TENANT_ID
    return mock_tenant


def _build_service(repo, store, deliveries: list) -> WebhookService:
    def handler(request: httpx.Request) -> httpx.Response:
        deliveries.append(request)
        return httpx.Response(200, text="ok")

    transport = httpx.MockTransport(handler)
    dispatcher = WebhookDispatcher(repo, transport=transport)

    async def list_tenants():
        return [TenantContext(tenant_id=TENANT_ID, tenant_slug="acme", schema_name="tenant_acme")]

    return WebhookService(
        repo,
        dispatcher,
        store,
        WebhookTester(repo, transport=transport),
        DispatchSweeper(dispatcher, repo, store, list_tenants),
    )


@pytest_asyncio.fixture
async def client_and_repo():
    """Create test client with in-memory webhook storage and mocked auth."""
    from src.clienthub.api.deps import get_current_user, get_tenant

    app = _make_mock_app()
    repo = InMemoryWebhookRepository()
    store = InMemoryDispatcherConfigStore(internal_secret=INTERNAL_SECRET)
    deliveries: list = []

    app.dependency_overrides[get_current_user] = _mock_get_current_user
    app.dependency_overrides[get_tenant] = _mock_get_tenant
    app.state.webhook_service = _build_service(repo, store, deliveries)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client, repo, deliveries


async def _create(client, **overrides) -> dict:
    body = {
        "name": "CRM sync",
        "url": "https://hooks.example.com/crm",
        "events": ["client.created", "task.completed"],
        **overrides,
    }
    response = await client.post("/api/v1/webhooks", json=body)
    assert response.status_code == 201, response.text
    return response.json()


# ── Configurations ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_webhook(client_and_repo):
    """POST /api/v1/webhooks -> 201 with generated secret."""
    client, repo, _ = client_and_repo
    data = await _create(client)

    assert data["name"] == "CRM sync"
    assert len(data["secret_key"]) == 64
    assert data["events"] == ["client.created", "task.completed"]
    assert data["http_method"] == "POST"
    assert data["user_id"] == str(USER_ID)
    assert data["id"] in repo.configs


@pytest.mark.asyncio
async def test_create_webhook_invalid_url(client_and_repo):
    """POST with a non-http URL -> 422."""
    client, _, _ = client_and_repo
    response = await client.post(
        "/api/v1/webhooks", json={"name": "Bad", "url": "ftp://example.com"},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_webhook_unknown_event(client_and_repo):
    client, _, _ = client_and_repo
    response = await client.post(
        "/api/v1/webhooks",
        json={"name": "Bad", "url": "https://example.com", "events": ["client.exploded"]},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_get_update_delete(client_and_repo):
    """Full CRUD cycle over /api/v1/webhooks/{id}."""
    client, repo, _ = client_and_repo
    created = await _create(client)
    config_id = created["id"]

    listed = await client.get("/api/v1/webhooks")
    assert [c["id"] for c in listed.json()] == [config_id]

    fetched = await client.get(f"/api/v1/webhooks/{config_id}")
    assert fetched.status_code == 200

    patched = await client.patch(f"/api/v1/webhooks/{config_id}", json={"enabled": False})
    assert patched.status_code == 200
    assert patched.json()["enabled"] is False

    deleted = await client.delete(f"/api/v1/webhooks/{config_id}")
    assert deleted.status_code == 204
    assert repo.configs == {}


@pytest.mark.asyncio
async def test_get_missing_webhook(client_and_repo):
    """GET /api/v1/webhooks/{unknown} -> 404 with error code."""
    client, _, _ = client_and_repo
    response = await client.get(f"/api/v1/webhooks/{uuid.uuid4()}")
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


@pytest.mark.asyncio
async def test_malformed_webhook_id(client_and_repo):
    """GET /api/v1/webhooks/{not-a-uuid} -> 422 instead of a server error."""
    client, _, _ = client_and_repo
    response = await client.get("/api/v1/webhooks/does-not-exist")
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_regenerate_secret(client_and_repo):
    client, _, _ = client_and_repo
    created = await _create(client)

    response = await client.post(f"/api/v1/webhooks/{created['id']}/regenerate-secret")

    assert response.status_code == 200
    assert response.json()["secret_key"] != created["secret_key"]


# ── Test delivery and introspection ──────────────────────────────────────────


@pytest.mark.asyncio
async def test_send_test_webhook_and_read_logs(client_and_repo):
    """POST /{id}/test -> delivery recorded in logs and stats."""
    client, _, deliveries = client_and_repo
    created = await _create(client)

    response = await client.post(f"/api/v1/webhooks/{created['id']}/test")
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["status_code"] == 200
    assert len(deliveries) == 1

    logs = (await client.get(f"/api/v1/webhooks/{created['id']}/logs")).json()
    assert [log["event_type"] for log in logs] == ["test.webhook"]
    assert len((await client.get("/api/v1/webhooks/logs")).json()) == 1

    stats = (await client.get(f"/api/v1/webhooks/{created['id']}/stats")).json()
    assert stats["total_deliveries"] == 1
    assert stats["success_rate"] == 100.0


@pytest.mark.asyncio
async def test_send_test_webhook_requires_https(client_and_repo):
    client, _, _ = client_and_repo
    created = await _create(client, url="http://hooks.example.com/plain")

    response = await client.post(f"/api/v1/webhooks/{created['id']}/test")

    assert response.status_code == 422
    assert response.json()["code"] == "webhook_url_not_https"


@pytest.mark.asyncio
async def test_queue_and_manual_processing(client_and_repo):
    """Queued rows show up in /queue and are delivered by /dispatcher/process."""
    client, repo, deliveries = client_and_repo
    created = await _create(client)
    await repo.enqueue_event(TENANT_ID, created["id"], "client.created", "evt_1", {"data": {}})

    queue = (await client.get("/api/v1/webhooks/queue")).json()
    assert [q["status"] for q in queue] == ["pending"]
    assert len((await client.get(f"/api/v1/webhooks/{created['id']}/queue")).json()) == 1

    status_before = (await client.get("/api/v1/webhooks/dispatcher/status")).json()
    assert status_before["pending_events"] == 1

    result = await client.post("/api/v1/webhooks/dispatcher/process")
    assert result.status_code == 200
    assert result.json()["processed"] == 1
    assert len(deliveries) == 1

    status_after = (await client.get("/api/v1/webhooks/dispatcher/status")).json()
    assert status_after["pending_events"] == 0
    assert status_after["last_run_success"] is True


# ── Dispatcher configuration ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_update_dispatcher_config_hides_secret(client_and_repo):
    """PATCH /dispatcher/config -> 200 without internal_secret."""
    client, _, _ = client_and_repo
    response = await client.patch(
        "/api/v1/webhooks/dispatcher/config", json={"enabled": False, "debounce_seconds": 10},
    )
    assert response.status_code == 200
    assert response.json() == {"enabled": False, "debounce_seconds": 10}


@pytest.mark.asyncio
async def test_update_dispatcher_config_requires_admin():
    """PATCH /dispatcher/config as a non-admin -> 403."""
    from src.clienthub.api.deps import get_current_user

    app = _make_mock_app()
    app.dependency_overrides[get_current_user] = lambda: _mock_user(role="member")
    app.state.webhook_service = _build_service(
        InMemoryWebhookRepository(), InMemoryDispatcherConfigStore(), [],
    )

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.patch("/api/v1/webhooks/dispatcher/config", json={"enabled": False})
        assert response.status_code == 403


# ── Internal dispatch ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_internal_dispatch_requires_secret(client_and_repo):
    client, _, _ = client_and_repo

    missing = await client.post("/api/v1/internal/webhooks/dispatch")
    wrong = await client.post(
        "/api/v1/internal/webhooks/dispatch", headers={"X-Internal-Secret": "nope"},
    )

    assert missing.status_code == 401
    assert wrong.status_code == 401


@pytest.mark.asyncio
async def test_internal_dispatch_processes_all_tenants(client_and_repo):
    client, repo, deliveries = client_and_repo
    created = await _create(client)
    await repo.enqueue_event(TENANT_ID, created["id"], "client.created", "evt_1", {"data": {}})

    response = await client.post(
        "/api/v1/internal/webhooks/dispatch", headers={"X-Internal-Secret": INTERNAL_SECRET},
    )

    assert response.status_code == 200
    assert response.json() == {"message": "Webhook events processed", "processed": 1}
    assert len(deliveries) == 1


# ── Service Unavailable ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_webhooks_api_503_when_not_initialized():
    """app.state.webhook_service = None -> 503."""
    from src.clienthub.api.deps import get_current_user, get_tenant

    app = _make_mock_app()
    app.dependency_overrides[get_current_user] = _mock_get_current_user
    app.dependency_overrides[get_tenant] = _mock_get_tenant
    app.state.webhook_service = None

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/api/v1/webhooks")
        assert response.status_code == 503
        response = await client.post("/api/v1/internal/webhooks/dispatch")
        assert response.status_code == 503
