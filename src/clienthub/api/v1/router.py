"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.clienthub.api.v1 import auth, billing, clients, health, internal, meetings, tasks, tenants, webhooks

router = APIRouter()

router.include_router(health.router)
router.include_router(tenants.router)
router.include_router(auth.router)
router.include_router(clients.router)
router.include_router(meetings.types_router)
router.include_router(meetings.router)
router.include_router(tasks.router)
router.include_router(billing.router)
router.include_router(webhooks.router)
router.include_router(internal.router)
