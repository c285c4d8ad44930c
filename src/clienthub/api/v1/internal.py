"""Internal endpoints called by infrastructure, not by users.

These paths skip tenant middleware; callers authenticate with the
dispatcher's internal secret in the X-Internal-Secret header.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from src.clienthub.api.v1.webhooks import _get_webhook_service
from src.clienthub.webhooks.schemas import DispatchResult

router = APIRouter(prefix="/api/v1/internal", tags=["internal"])


async def require_internal_secret(
    request: Request,
    x_internal_secret: str | None = Header(default=None),
) -> None:
    """401 unless X-Internal-Secret matches the platform's internal secret."""
    service = _get_webhook_service(request)
    if not await service.verify_internal_secret(x_internal_secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid internal secret",
        )


@router.post(
    "/webhooks/dispatch",
    response_model=DispatchResult,
    dependencies=[Depends(require_internal_secret)],
)
async def dispatch_webhooks(request: Request) -> DispatchResult:
    """Dispatch due webhook events for every tenant."""
    service = _get_webhook_service(request)
    return await service.dispatch_all_tenants()
