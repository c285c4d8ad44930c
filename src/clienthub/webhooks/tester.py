"""Send a one-off ``test.webhook`` delivery to a configuration.

The request is made synchronously from the API call (not via the queue),
is signed like a real delivery and is logged as attempt 1. Connection
problems are classified so the UI can tell a DNS typo from a TLS problem.
"""

from __future__ import annotations

import ssl
import time

import httpx
import structlog

from src.clienthub.core.exceptions import NotFoundError, ValidationError
from src.clienthub.webhooks.dispatcher import BODYLESS_METHODS, MAX_RESPONSE_BODY
from src.clienthub.webhooks.repository import WebhookRepository
from src.clienthub.webhooks.schemas import (
    TEST_EVENT_TYPE,
    DeliveryLogCreate,
    WebhookConfigRead,
    WebhookTestErrorType,
    WebhookTestResult,
)
from src.clienthub.webhooks.signing import build_event_payload, serialize_payload, signed_headers

logger = structlog.get_logger(__name__)

PROTECTED_HEADERS = frozenset({"content-type", "user-agent"})
TEST_MESSAGE = "This is a test webhook from ClientHub"

_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo",
    "name resolution",
    "no address associated",
    "dns",
)
_SSL_MARKERS = ("ssl", "certificate", "tls")


def classify_transport_error(exc: httpx.HTTPError) -> WebhookTestErrorType:
    """Map an httpx failure to timeout / dns_error / ssl_error / connection_error."""
    if isinstance(exc, httpx.TimeoutException):
        return WebhookTestErrorType.TIMEOUT

    cause = exc.__cause__ or exc.__context__
    if isinstance(cause, ssl.SSLError):
        return WebhookTestErrorType.SSL_ERROR

    message = f"{exc} {cause or ''}".lower()
    if any(marker in message for marker in _SSL_MARKERS):
        return WebhookTestErrorType.SSL_ERROR
    if any(marker in message for marker in _DNS_MARKERS):
        return WebhookTestErrorType.DNS_ERROR
    return WebhookTestErrorType.CONNECTION_ERROR


def merge_test_headers(custom: dict[str, str], standard: dict[str, str]) -> dict[str, str]:
    """Custom headers first, minus Content-Type / User-Agent, then the signed standard set."""
    headers = {
        name: value
        for name, value in (custom or {}).items()
        if name.lower() not in PROTECTED_HEADERS
    }
    headers.update(standard)
    return headers


class WebhookTester:
    """Performs test deliveries for send_test_webhook().

    Args:
        repository: WebhookRepository for config lookup and delivery logging.
        timeout: HTTP timeout in seconds.
        user_agent: Value of the User-Agent header.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        repository: WebhookRepository,
        *,
        timeout: float = 10.0,
        user_agent: str = "ClientHub-Webhooks/1.0",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._repository = repository
        self._timeout = timeout
        self._user_agent = user_agent
        self._transport = transport

    async def send_test_webhook(
        self, tenant_id: str, user_id: str, config_id: str
    ) -> WebhookTestResult:
        """Deliver a ``test.webhook`` event to the user's configuration.

        Raises:
            NotFoundError: The configuration does not exist or belongs to another user.
            ValidationError: The configuration URL is not HTTPS.
        """
        config = await self._repository.get_config(tenant_id, user_id, config_id)
        if config is None:
            raise NotFoundError(f"Webhook configuration not found: {config_id}")
        if not config.url.lower().startswith("https://"):
            raise ValidationError("Test webhooks require an HTTPS URL", code="webhook_url_not_https")

        payload = build_event_payload(
            TEST_EVENT_TYPE,
            {
                "message": TEST_MESSAGE,
                "webhook_name": config.name,
                "webhook_id": config.id,
            },
            test=True,
        )
        result = await self._send(config, payload)

        await self._repository.add_delivery_log(
            tenant_id,
            DeliveryLogCreate(
                webhook_config_id=config.id,
                event_type=TEST_EVENT_TYPE,
                event_id=payload["event_id"],
                payload=payload,
                status_code=result.status_code,
                response_body=result.body,
                response_headers=result.headers,
                attempt_number=1,
                error_message=result.error,
                duration_ms=result.duration,
                success=result.success,
            ),
        )
        logger.info(
            "webhook_test_sent",
            tenant_id=tenant_id,
            webhook_config_id=config.id,
            success=result.success,
            status_code=result.status_code,
            error_type=result.error_type.value if result.error_type else None,
        )
        return result

    async def _send(self, config: WebhookConfigRead, payload: dict) -> WebhookTestResult:
        body = serialize_payload(payload)
        standard = signed_headers(
            body,
            config.secret_key,
            event_type=TEST_EVENT_TYPE,
            event_id=payload["event_id"],
            user_agent=self._user_agent,
        )
        headers = merge_test_headers(config.headers, standard)
        method = (config.http_method or "POST").upper()

        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.request(
                    method,
                    config.url,
                    headers=headers,
                    content=None if method in BODYLESS_METHODS else body.encode("utf-8"),
                )
        except httpx.HTTPError as exc:
            return WebhookTestResult(
                success=False,
                duration=int((time.perf_counter() - start) * 1000),
                error=str(exc) or exc.__class__.__name__,
                error_type=classify_transport_error(exc),
            )

        duration = int((time.perf_counter() - start) * 1000)
        return WebhookTestResult(
            success=response.is_success,
            status_code=response.status_code,
            duration=duration,
            body=response.text[:MAX_RESPONSE_BODY],
            headers=dict(response.headers),
            error=None if response.is_success else f"HTTP {response.status_code}",
        )
