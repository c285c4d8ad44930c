"""Advisory practice onboarding.

Each tenant is one advisory practice (a consultant's office or a team);
its consultants, clients and webhooks live in the practice's own schema.
These routes run before any practice exists, so they skip tenant
middleware and are reserved for platform operators holding the internal
secret.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from src.clienthub.api.v1.internal import require_internal_secret
from src.clienthub.core.exceptions import NotFoundError
from src.clienthub.schemas.tenant import PracticeCreate, PracticeRead
from src.clienthub.services.tenant_provisioning import (
    get_tenant_by_slug,
    list_tenants,
    provision_tenant,
)

router = APIRouter(
    prefix="/api/v1/tenants",
    tags=["tenants"],
    dependencies=[Depends(require_internal_secret)],
)


@router.post("", response_model=PracticeRead, status_code=status.HTTP_201_CREATED)
async def onboard_practice(body: PracticeCreate) -> PracticeRead:
    """Create the practice schema with every CRM, billing and webhook table."""
    result = await provision_tenant(slug=body.slug, name=body.name)
    return PracticeRead(
        id=result["tenant_id"],
        slug=result["slug"],
        name=result["name"],
        schema_name=result["schema_name"],
    )


@router.get("", response_model=list[PracticeRead])
async def list_practices() -> list[PracticeRead]:
    return [PracticeRead(**row) for row in await list_tenants()]


@router.get("/{slug}", response_model=PracticeRead)
async def get_practice(slug: str) -> PracticeRead:
    row = await get_tenant_by_slug(slug)
    if row is None:
        raise NotFoundError(f"Practice not found: {slug}", code="practice_not_found")
    return PracticeRead(**row)
