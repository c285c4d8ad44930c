"""Shared fixtures for ClientHub tests.

Provides:
- A fixed tenant id and two consultant ids (owner and another user)
- In-memory repositories from tests.doubles
- Services wired against those repositories with a recording webhook emitter

Nothing here touches PostgreSQL or Redis.
"""

from __future__ import annotations

import uuid

import pytest

from src.clienthub.billing.service import BillingService
from src.clienthub.clients.service import ClientService
from src.clienthub.meetings.service import MeetingService, MeetingTypeService
from src.clienthub.tasks.service import TaskService
from tests.doubles import (
    InMemoryBillingRepository,
    InMemoryClientRepository,
    InMemoryDispatcherConfigStore,
    InMemoryMeetingRepository,
    InMemoryPlanRepository,
    InMemoryTaskRepository,
    InMemoryWebhookRepository,
    RecordingEmitter,
)


@pytest.fixture
def tenant_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def user_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def other_user_id() -> str:
    return str(uuid.uuid4())


# ── Repositories ────────────────────────────────────────────────────────────


@pytest.fixture
def webhook_repo() -> InMemoryWebhookRepository:
    return InMemoryWebhookRepository()


@pytest.fixture
def config_store() -> InMemoryDispatcherConfigStore:
    return InMemoryDispatcherConfigStore()


@pytest.fixture
def client_repo() -> InMemoryClientRepository:
    return InMemoryClientRepository()


@pytest.fixture
def meeting_repo() -> InMemoryMeetingRepository:
    return InMemoryMeetingRepository()


@pytest.fixture
def task_repo() -> InMemoryTaskRepository:
    return InMemoryTaskRepository()


@pytest.fixture
def plan_repo() -> InMemoryPlanRepository:
    return InMemoryPlanRepository()


@pytest.fixture
def billing_repo() -> InMemoryBillingRepository:
    return InMemoryBillingRepository()


@pytest.fixture
def emitter() -> RecordingEmitter:
    return RecordingEmitter()


# ── Services ────────────────────────────────────────────────────────────────


@pytest.fixture
def billing_service(plan_repo, billing_repo) -> BillingService:
    return BillingService(plan_repo, billing_repo)


@pytest.fixture
def client_service(client_repo, meeting_repo, task_repo, emitter) -> ClientService:
    return ClientService(client_repo, meeting_repo, task_repo, emitter=emitter)


@pytest.fixture
def task_service(task_repo, client_repo, emitter) -> TaskService:
    return TaskService(task_repo, client_repo, emitter=emitter)


@pytest.fixture
def meeting_type_service(meeting_repo) -> MeetingTypeService:
    return MeetingTypeService(meeting_repo)
