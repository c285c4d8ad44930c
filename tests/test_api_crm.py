"""Integration tests for the client, task, meeting and billing API endpoints.

Real services run over the in-memory repositories; authentication is
bypassed with dependency overrides and the summarizer uses a fake LLM.
"""

from __future__ import annotations

import uuid
from datetime import date, timedelta
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.clienthub.billing.service import BillingService
from src.clienthub.clients.service import ClientService
from src.clienthub.meetings.service import MeetingService, MeetingTypeService
from src.clienthub.meetings.summarizer import MeetingSummarizer
from src.clienthub.tasks.service import TaskService
from tests.doubles import (
    FakeLLM,
    InMemoryBillingRepository,
    InMemoryClientRepository,
    InMemoryMeetingRepository,
    InMemoryPlanRepository,
    InMemoryTaskRepository,
)

TENANT_ID = str(uuid.uuid4())
USER_ID = uuid.uuid4()
TRANSCRIPT = "Cliente comentou que o cartão está alto. Combinamos revisar o orçamento."


def _make_mock_app():
    """Create a minimal FastAPI app with the CRM routers."""
    from fastapi import FastAPI

    from src.clienthub.api.v1 import billing, clients, meetings, tasks
    from src.clienthub.core.exceptions import register_exception_handlers

    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(clients.router)
    app.include_router(tasks.router)
    app.include_router(meetings.types_router)
    app.include_router(meetings.router)
    app.include_router(billing.router)
    return app


def _mock_get_current_user():
    """Return a mock user for auth bypass."""
    mock_user = MagicMock()
    mock_user.id = USER_ID
    mock_user.tenant_id = TENANT_ID
    mock_user.is_active = True
    mock_user.role = "member"
    return mock_user


def _mock_get_tenant():
    """Return a mock tenant context."""
    mock_tenant = MagicMock()
    mock_tenant.tenant_id = TENANT_ID
    return mock_tenant


def _install_services(app) -> None:
    clients_repo = InMemoryClientRepository()
    meetings_repo = InMemoryMeetingRepository()
    tasks_repo = InMemoryTaskRepository()
    billing = BillingService(InMemoryPlanRepository(), InMemoryBillingRepository())
    types = MeetingTypeService(meetings_repo)

    app.state.client_service = ClientService(clients_repo, meetings_repo, tasks_repo)
    app.state.task_service = TaskService(tasks_repo, clients_repo)
    app.state.meeting_type_service = types
    app.state.meeting_service = MeetingService(
        meetings_repo, types, clients_repo, billing, summarizer=MeetingSummarizer(FakeLLM()),
    )
    app.state.billing_service = billing


@pytest_asyncio.fixture
async def client():
    """Create test client with in-memory services and mocked auth."""
    from src.clienthub.api.deps import get_current_user, get_tenant

    app = _make_mock_app()
    app.dependency_overrides[get_current_user] = _mock_get_current_user
    app.dependency_overrides[get_tenant] = _mock_get_tenant
    _install_services(app)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _create_client(client, **overrides) -> dict:
    response = await client.post("/api/v1/clients", json={"name": "Marina Alves", **overrides})
    assert response.status_code == 201, response.text
    return response.json()


def _task(client_id: str, title: str, **overrides) -> dict:
    return {
        "client_id": client_id,
        "title": title,
        "owner": "Cliente",
        "due_date": "2030-01-15",
        **overrides,
    }


# ── Clients ──────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_and_get_client(client):
    """POST /api/v1/clients -> 201, GET /{id} -> client with metrics."""
    created = await _create_client(client, email="marina@example.com", risk_score=55)

    assert created["status"] == "prospecto"
    assert created["user_id"] == str(USER_ID)

    response = await client.get(f"/api/v1/clients/{created['id']}")
    assert response.status_code == 200
    detail = response.json()
    assert detail["client"]["email"] == "marina@example.com"
    assert detail["metrics"]["recent_meetings"] == []
    assert detail["metrics"]["pending_tasks"] == []


@pytest.mark.asyncio
async def test_create_client_blank_name(client):
    """POST with a blank name -> 422."""
    response = await client.post("/api/v1/clients", json={"name": "   "})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_clients_filters_by_risk(client):
    await _create_client(client, name="Baixo", risk_score=10)
    await _create_client(client, name="Alto", risk_score=85)

    everyone = (await client.get("/api/v1/clients")).json()
    high = (await client.get("/api/v1/clients", params={"risk_level": "high"})).json()

    assert [c["name"] for c in everyone] == ["Alto", "Baixo"]
    assert [c["name"] for c in high] == ["Alto"]


@pytest.mark.asyncio
async def test_search_client_by_name(client):
    """GET /api/v1/clients/search?name= -> case-insensitive match."""
    await _create_client(client, name="Marina Alves")

    found = await client.get("/api/v1/clients/search", params={"name": "marina"})
    missing = await client.get("/api/v1/clients/search", params={"name": "Rafael"})

    assert found.status_code == 200
    assert found.json()["client"]["name"] == "Marina Alves"
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_update_and_delete_client(client):
    created = await _create_client(client)

    patched = await client.patch(f"/api/v1/clients/{created['id']}", json={"status": "ativo"})
    assert patched.status_code == 200
    assert patched.json()["status"] == "ativo"

    deleted = await client.delete(f"/api/v1/clients/{created['id']}")
    assert deleted.status_code == 204
    assert (await client.get(f"/api/v1/clients/{created['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_calculate_risk_score(client):
    """POST /api/v1/clients/{id}/risk -> breakdown, score stored on the client."""
    created = await _create_client(client)
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    await client.post("/api/v1/tasks", json=[_task(created["id"], "Enviar extratos", due_date=yesterday)])

    response = await client.post(f"/api/v1/clients/{created['id']}/risk")

    assert response.status_code == 200
    body = response.json()
    assert body["total_score"] == 20
    assert body["classification"] == "Baixo"
    assert [f["impact"] for f in body["factors"]] == [20]
    detail = (await client.get(f"/api/v1/clients/{created['id']}")).json()
    assert detail["client"]["risk_score"] == 20

    missing = await client.post(f"/api/v1/clients/{uuid.uuid4()}/risk")
    assert missing.status_code == 404


# ── Tasks ────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_batch_create_tasks_and_board(client):
    """POST /api/v1/tasks with a list -> 201, tasks land on the board."""
    owner = await _create_client(client)
    response = await client.post(
        "/api/v1/tasks",
        json=[_task(owner["id"], "Enviar extratos"), _task(owner["id"], "Revisar seguro", owner="Leonardo")],
    )
    assert response.status_code == 201, response.text
    assert len(response.json()) == 2

    board = (await client.get("/api/v1/tasks/board")).json()
    assert board["counts"]["pendente"] == 2
    assert [t["title"] for t in board["columns"]["pendente"]] == ["Enviar extratos", "Revisar seguro"]


@pytest.mark.asyncio
async def test_task_for_unknown_client(client):
    response = await client.post("/api/v1/tasks", json=[_task(str(uuid.uuid4()), "Orfã")])
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_malformed_ids_rejected_before_lookup(client):
    assert (await client.get("/api/v1/clients/abc")).status_code == 422
    assert (await client.get("/api/v1/tasks", params={"client_id": "abc"})).status_code == 422
    response = await client.post("/api/v1/tasks", json=[_task("no-such-client", "Orfã")])
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_complete_and_move_task(client):
    owner = await _create_client(client)
    [task] = (await client.post("/api/v1/tasks", json=[_task(owner["id"], "Enviar extratos")])).json()

    done = await client.put(f"/api/v1/tasks/{task['id']}/status", json={"status": "concluida"})
    assert done.status_code == 200
    assert done.json()["completed_at"] is not None

    moved = await client.put(
        f"/api/v1/tasks/{task['id']}/move", json={"status": "em_andamento", "order_position": 0},
    )
    assert moved.status_code == 200
    assert moved.json()["status"] == "em_andamento"
    assert moved.json()["completed_at"] is None

    listed = (await client.get("/api/v1/tasks", params={"client_id": owner["id"]})).json()
    assert [t["id"] for t in listed] == [task["id"]]


@pytest.mark.asyncio
async def test_move_task_rejects_negative_position(client):
    owner = await _create_client(client)
    [task] = (await client.post("/api/v1/tasks", json=[_task(owner["id"], "Enviar extratos")])).json()

    response = await client.put(
        f"/api/v1/tasks/{task['id']}/move", json={"status": "backlog", "order_position": -1},
    )
    assert response.status_code == 422


# ── Meeting types ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_meeting_types_seeded_and_custom_created(client):
    """GET /api/v1/meeting-types -> system types, POST -> custom type."""
    types = (await client.get("/api/v1/meeting-types")).json()
    assert [t["code"] for t in types] == ["C1", "C2", "C3", "C4", "FUP"]

    created = await client.post(
        "/api/v1/meeting-types", json={"code": "onb", "display_name": "Onboarding"},
    )
    assert created.status_code == 201
    assert created.json()["code"] == "ONB"

    toggled = await client.post(f"/api/v1/meeting-types/{created.json()['id']}/toggle")
    assert toggled.status_code == 200
    assert toggled.json()["is_active"] is False


@pytest.mark.asyncio
async def test_system_meeting_type_toggle_forbidden(client):
    [c1, *_] = (await client.get("/api/v1/meeting-types")).json()

    response = await client.post(f"/api/v1/meeting-types/{c1['id']}/toggle")

    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


# ── Meetings ─────────────────────────────────────────────────────────────────


async def _create_meeting(client, client_id: str) -> dict:
    response = await client.post(
        "/api/v1/meetings",
        json={
            "client_id": client_id,
            "meeting_type": "c1",
            "meeting_date": "2030-03-01T14:00:00Z",
            "transcript_text": TRANSCRIPT,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_add_and_list_meetings(client):
    owner = await _create_client(client)
    meeting = await _create_meeting(client, owner["id"])

    assert meeting["meeting_type"] == "C1"
    listed = (await client.get("/api/v1/meetings", params={"client_id": owner["id"]})).json()
    assert [m["id"] for m in listed] == [meeting["id"]]

    detail = (await client.get(f"/api/v1/clients/{owner['id']}")).json()
    assert len(detail["metrics"]["recent_meetings"]) == 1


@pytest.mark.asyncio
async def test_summarize_without_subscription(client):
    """POST /{id}/summarize with no subscription -> 402."""
    owner = await _create_client(client)
    meeting = await _create_meeting(client, owner["id"])

    response = await client.post(f"/api/v1/meetings/{meeting['id']}/summarize")

    assert response.status_code == 402
    assert response.json()["code"] == "credit_limit_reached"


@pytest.mark.asyncio
async def test_summarize_after_upgrade(client):
    """POST /{id}/summarize -> summary stored, one credit consumed."""
    owner = await _create_client(client)
    meeting = await _create_meeting(client, owner["id"])
    assert (await client.post("/api/v1/billing/upgrade", json={"plan_name": "pro"})).status_code == 200

    response = await client.post(f"/api/v1/meetings/{meeting['id']}/summarize")

    assert response.status_code == 200, response.text
    result = response.json()
    assert result["credits_remaining"] == 99
    assert result["meeting"]["summarized_at"] is not None
    assert result["meeting"]["decisions"] == ["Montar orçamento mensal"]
    assert [t["title"] for t in result["suggested_tasks"]] == ["Enviar faturas"]

    usage = (await client.get("/api/v1/billing/usage", params={"days": 7})).json()
    assert usage["total"] == 1


@pytest.mark.asyncio
async def test_delete_meeting(client):
    owner = await _create_client(client)
    meeting = await _create_meeting(client, owner["id"])

    assert (await client.delete(f"/api/v1/meetings/{meeting['id']}")).status_code == 204
    assert (await client.get(f"/api/v1/meetings/{meeting['id']}")).status_code == 404


# ── Billing ──────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_billing_plans_and_empty_subscription(client):
    plans = (await client.get("/api/v1/billing/plans")).json()
    assert [p["name"] for p in plans] == ["free", "pro", "unlimited"]

    subscription = await client.get("/api/v1/billing/subscription")
    assert subscription.status_code == 200
    assert subscription.json() is None

    credits = (await client.get("/api/v1/billing/credits")).json()
    assert credits["allowed"] is False


@pytest.mark.asyncio
async def test_upgrade_and_cancel(client):
    upgraded = await client.post("/api/v1/billing/upgrade", json={"plan_name": "pro"})
    assert upgraded.status_code == 200
    assert upgraded.json()["plan"]["name"] == "pro"

    credits = (await client.get("/api/v1/billing/credits")).json()
    assert credits == {"allowed": True, "reason": None, "remaining": 100}

    cancelled = await client.post("/api/v1/billing/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["cancel_at_period_end"] is True


@pytest.mark.asyncio
async def test_upgrade_to_unknown_plan(client):
    response = await client.post("/api/v1/billing/upgrade", json={"plan_name": "enterprise"})
    assert response.status_code == 404


@pytest_asyncio.fixture
async def admin_client():
    """Client authenticated as a tenant admin; yields (client, app)."""
    from src.clienthub.api.deps import get_current_user, get_tenant

    def _admin_user():
        admin = _mock_get_current_user()
        admin.id = uuid.uuid4()
        admin.role = "admin"
        return admin

    app = _make_mock_app()
    app.dependency_overrides[get_current_user] = _admin_user
    app.dependency_overrides[get_tenant] = _mock_get_tenant
    _install_services(app)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac, app


@pytest.mark.asyncio
async def test_admin_routes_require_admin_role(client):
    path = f"/api/v1/billing/admin/users/{USER_ID}"
    assert (await client.post(f"{path}/reset-credits")).status_code == 403
    assert (await client.post(f"{path}/extend", json={"days": 7})).status_code == 403
    assert (await client.put(f"{path}/plan", json={"plan_name": "pro"})).status_code == 403


@pytest.mark.asyncio
async def test_admin_resets_credits_and_extends_period(admin_client):
    client, app = admin_client
    billing = app.state.billing_service
    consultant = str(uuid.uuid4())
    started = await billing.start_free_subscription(TENANT_ID, consultant)
    await billing.consume_credit(TENANT_ID, consultant, "meeting_summary")
    path = f"/api/v1/billing/admin/users/{consultant}"

    reset = await client.post(f"{path}/reset-credits")
    assert reset.status_code == 200
    assert reset.json()["credits_used"] == 0

    extended = await client.post(f"{path}/extend", json={"days": 15})
    assert extended.status_code == 200
    subscription = await billing.get_subscription(TENANT_ID, consultant)
    assert subscription.current_period_end - started.current_period_end == timedelta(days=15)

    assert (await client.post(f"{path}/extend", json={"days": 0})).status_code == 422


@pytest.mark.asyncio
async def test_admin_changes_plan(admin_client):
    client, app = admin_client
    consultant = str(uuid.uuid4())
    await app.state.billing_service.start_free_subscription(TENANT_ID, consultant)

    response = await client.put(
        f"/api/v1/billing/admin/users/{consultant}/plan", json={"plan_name": "pro"},
    )

    assert response.status_code == 200
    assert response.json()["plan"]["name"] == "pro"
    assert response.json()["user_id"] == consultant


@pytest.mark.asyncio
async def test_admin_action_without_subscription(admin_client):
    client, _ = admin_client
    response = await client.post(f"/api/v1/billing/admin/users/{uuid.uuid4()}/reset-credits")
    assert response.status_code == 404
    assert response.json()["code"] == "subscription_not_found"


# ── Service Unavailable ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_crm_api_503_when_not_initialized():
    """Services missing from app.state -> 503."""
    from src.clienthub.api.deps import get_current_user, get_tenant

    app = _make_mock_app()
    app.dependency_overrides[get_current_user] = _mock_get_current_user
    app.dependency_overrides[get_tenant] = _mock_get_tenant

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        for path in ("/api/v1/clients", "/api/v1/tasks", "/api/v1/meetings", "/api/v1/meeting-types", "/api/v1/billing/plans"):
            response = await ac.get(path)
            assert response.status_code == 503, path
