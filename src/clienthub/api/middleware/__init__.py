"""API middleware package."""

from src.clienthub.api.middleware.logging import LoggingMiddleware
from src.clienthub.api.middleware.tenant import TenantAuthMiddleware

__all__ = ["LoggingMiddleware", "TenantAuthMiddleware"]
