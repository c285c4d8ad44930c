"""FastAPI application factory.

Creates the app with tenant middleware, logging middleware, metrics middleware,
CORS, Sentry, lifespan events for database initialization and the webhook
sweep worker, and the v1 API router.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.clienthub.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.clienthub.api.middleware.tenant import TenantAuthMiddleware
from src.clienthub.api.v1.router import router as v1_router
from src.clienthub.config import get_settings
from src.clienthub.core.database import close_db, get_shared_session, get_tenant_session, init_db
from src.clienthub.core.exceptions import register_exception_handlers
from src.clienthub.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.clienthub.core.redis import close_redis, get_redis_pool


def _init_services(app: FastAPI) -> None:
    """Build repositories and services and attach them to app.state."""
    from src.clienthub.billing.repository import BillingRepository, PlanRepository
    from src.clienthub.billing.service import BillingService
    from src.clienthub.clients.repository import ClientRepository
    from src.clienthub.clients.service import ClientService
    from src.clienthub.meetings.repository import MeetingRepository
    from src.clienthub.meetings.service import MeetingService, MeetingTypeService
    from src.clienthub.meetings.summarizer import MeetingSummarizer
    from src.clienthub.services.llm import get_llm_service
    from src.clienthub.services.tenant_provisioning import list_tenant_contexts
    from src.clienthub.tasks.repository import TaskRepository
    from src.clienthub.tasks.service import TaskService
    from src.clienthub.webhooks.dispatcher import WebhookDispatcher
    from src.clienthub.webhooks.emitter import WebhookEmitter
    from src.clienthub.webhooks.repository import DispatcherConfigStore, WebhookRepository
    from src.clienthub.webhooks.service import WebhookService
    from src.clienthub.webhooks.sweeper import DispatchSweeper
    from src.clienthub.webhooks.tester import WebhookTester
    from src.clienthub.webhooks.trigger import DispatchTrigger

    settings = get_settings()

    # ── Webhooks ────────────────────────────────────────────────────────
    webhook_repository = WebhookRepository(get_tenant_session)
    config_store = DispatcherConfigStore(get_shared_session)
    dispatcher = WebhookDispatcher(
        webhook_repository,
        batch_size=settings.WEBHOOK_BATCH_SIZE,
        timeout=settings.WEBHOOK_DELIVERY_TIMEOUT,
        failure_threshold=settings.WEBHOOK_FAILURE_THRESHOLD,
        user_agent=settings.WEBHOOK_USER_AGENT,
    )
    trigger = DispatchTrigger(webhook_repository, config_store, dispatcher)
    emitter = WebhookEmitter(webhook_repository, trigger, max_attempts=settings.WEBHOOK_MAX_ATTEMPTS)
    tester = WebhookTester(
        webhook_repository,
        timeout=settings.WEBHOOK_DELIVERY_TIMEOUT,
        user_agent=settings.WEBHOOK_USER_AGENT,
    )
    sweeper = DispatchSweeper(
        dispatcher,
        webhook_repository,
        config_store,
        list_tenants=list_tenant_contexts,
        interval_seconds=settings.WEBHOOK_SWEEP_INTERVAL_SECONDS,
    )
    app.state.webhook_trigger = trigger
    app.state.webhook_sweeper = sweeper
    app.state.webhook_service = WebhookService(
        webhook_repository, dispatcher, config_store, tester, sweeper,
    )

    # ── CRM ─────────────────────────────────────────────────────────────
    client_repository = ClientRepository(get_tenant_session)
    meeting_repository = MeetingRepository(get_tenant_session)
    task_repository = TaskRepository(get_tenant_session)

    billing_service = BillingService(
        PlanRepository(get_shared_session),
        BillingRepository(get_tenant_session),
    )
    meeting_type_service = MeetingTypeService(meeting_repository)

    llm = get_llm_service()
    summarizer = MeetingSummarizer(llm) if llm.available else None

    app.state.billing_service = billing_service
    app.state.meeting_type_service = meeting_type_service
    app.state.client_service = ClientService(
        client_repository, meeting_repository, task_repository, emitter=emitter,
    )
    app.state.task_service = TaskService(task_repository, client_repository, emitter=emitter)
    app.state.meeting_service = MeetingService(
        meeting_repository,
        meeting_type_service,
        client_repository,
        billing_service,
        summarizer=summarizer,
        emitter=emitter,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and services on startup, close on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    try:
        _init_services(app)
        log.info("services_initialized")
    except Exception:
        log.warning("services_init_failed", exc_info=True)

    sweeper = getattr(app.state, "webhook_sweeper", None)
    if sweeper is not None and settings.WEBHOOK_SWEEP_INTERVAL_SECONDS > 0:
        app.state.webhook_sweeper_task = asyncio.create_task(
            sweeper.run_forever(), name="webhook_sweeper",
        )

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    sweeper_task = getattr(app.state, "webhook_sweeper_task", None)
    if sweeper_task and not sweeper_task.done():
        sweeper.stop()
        sweeper_task.cancel()
        try:
            await sweeper_task
        except asyncio.CancelledError:
            pass
        log.info("webhook_sweeper_task_stopped")

    trigger = getattr(app.state, "webhook_trigger", None)
    if trigger is not None:
        await trigger.cancel_all()

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="ClientHub API",
        version="0.1.0",
        description="Multi-tenant CRM for financial consultants with outbound webhooks",
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # Middleware is added in reverse order (last added = outermost)

    # Tenant middleware (inner -- resolves tenant context from JWT/header)
    redis_client = get_redis_pool()
    app.add_middleware(TenantAuthMiddleware, redis_client=redis_client)

    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
