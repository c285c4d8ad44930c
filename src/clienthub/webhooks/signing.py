"""Secrets, event ids, payload serialization and HMAC signatures for webhooks.

Receivers verify a delivery by recomputing
``hmac_sha256(secret_key, raw_body).hexdigest()`` and comparing it with the
``X-Webhook-Signature`` header (``sha256=<hex>``).
"""

from __future__ import annotations

import hashlib
import hmac
import json
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
EVENT_TYPE_HEADER = "X-Event-Type"
DELIVERY_ID_HEADER = "X-Delivery-ID"

_EVENT_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_secret_key() -> str:
    """Return 32 random bytes as a 64 character hex string."""
    return secrets.token_hex(32)


def generate_event_id() -> str:
    """Return an event id of the form ``evt_<epoch ms>_<9 random chars>``."""
    suffix = "".join(secrets.choice(_EVENT_ID_ALPHABET) for _ in range(9))
    return f"evt_{int(time.time() * 1000)}_{suffix}"


def serialize_payload(payload: dict[str, Any]) -> str:
    """Compact JSON used both as the request body and as the signed message."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)


def create_webhook_signature(payload: str | dict[str, Any], secret: str) -> str:
    """HMAC-SHA256 hex digest of ``payload`` keyed with ``secret``.

    Dict payloads are serialized with serialize_payload() first so the
    signature always matches the bytes that go on the wire.
    """
    body = payload if isinstance(payload, str) else serialize_payload(payload)
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_webhook_signature(body: str, secret: str, signature_header: str) -> bool:
    """Constant-time check of a ``sha256=<hex>`` header against ``body``."""
    expected = f"sha256={create_webhook_signature(body, secret)}"
    return hmac.compare_digest(expected, signature_header)


def build_event_payload(
    event_type: str,
    data: dict[str, Any],
    previous_values: dict[str, Any] | None = None,
    *,
    event_id: str | None = None,
    test: bool = False,
) -> dict[str, Any]:
    """Assemble the JSON document delivered to receivers."""
    payload: dict[str, Any] = {
        "event_id": event_id or generate_event_id(),
        "event_type": event_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "test": test,
        "data": data,
    }
    if previous_values is not None:
        payload["previous_values"] = previous_values
    return payload


def signed_headers(
    body: str,
    secret: str,
    event_type: str,
    event_id: str,
    user_agent: str,
) -> dict[str, str]:
    """Standard delivery headers, signature included."""
    return {
        "Content-Type": "application/json",
        "User-Agent": user_agent,
        EVENT_TYPE_HEADER: event_type,
        DELIVERY_ID_HEADER: event_id,
        SIGNATURE_HEADER: f"sha256={create_webhook_signature(body, secret)}",
        TIMESTAMP_HEADER: str(int(time.time())),
    }
