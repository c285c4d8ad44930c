"""LLM provider abstraction via LiteLLM Router.

Provides a tenant-aware completion service with:
- Claude Sonnet 4 as the primary model for meeting summaries
- GPT-4o as fallback when Claude is unavailable
- Prompt injection sanitization of user-supplied content (transcripts)
- Tenant metadata in every LLM call for cost tracking
"""

from __future__ import annotations

import re
from typing import TypeVar

import instructor
import structlog
from litellm import Router
from pydantic import BaseModel

from src.clienthub.config import get_settings
from src.clienthub.core.tenant import get_current_tenant

logger = structlog.get_logger(__name__)

ResponseModelT = TypeVar("ResponseModelT", bound=BaseModel)

# ── Prompt Injection Detection ────────────────────────────────────────────────

_INJECTION_PATTERNS: list[tuple[str, re.Pattern]] = [
    (
        "instruction_override",
        re.compile(
            r"ignore\s+(all\s+)?previous\s+instructions|"
            r"disregard\s+(all\s+)?(your\s+)?instructions|"
            r"ignore\s+(todas\s+as\s+)?instru[çc][õo]es\s+anteriores",
            re.IGNORECASE,
        ),
    ),
    (
        "system_prompt_exfiltration",
        re.compile(
            r"(reveal|show|print|repeat)\s+(your\s+)?(system\s+prompt|instructions)|"
            r"repeat\s+everything\s+above",
            re.IGNORECASE,
        ),
    ),
    (
        "control_characters",
        re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]{3,}"),
    ),
]


def detect_prompt_injection(text: str) -> tuple[bool, str | None]:
    """Return (is_injection, pattern_name) for ``text``."""
    for pattern_name, pattern in _INJECTION_PATTERNS:
        if pattern.search(text):
            logger.warning(
                "prompt_injection_detected",
                pattern=pattern_name,
                text_preview=text[:100],
            )
            return True, pattern_name
    return False, None


def sanitize_messages(messages: list[dict]) -> list[dict]:
    """Strip injection patterns from non-system messages.

    System messages are trusted and never modified.
    """
    sanitized = []
    for msg in messages:
        content = msg.get("content", "")
        if msg.get("role") == "system" or not content:
            sanitized.append(msg)
            continue

        is_injection, pattern_name = detect_prompt_injection(content)
        if not is_injection:
            sanitized.append(msg)
            continue

        cleaned = content
        for _, pattern in _INJECTION_PATTERNS:
            cleaned = pattern.sub("[removed]", cleaned)
        logger.warning(
            "prompt_injection_sanitized",
            role=msg.get("role"),
            pattern=pattern_name,
            original_length=len(content),
            cleaned_length=len(cleaned),
        )
        sanitized.append({**msg, "content": cleaned})
    return sanitized


# ── LLM Service ──────────────────────────────────────────────────────────────


class LLMService:
    """LLM provider abstraction with LiteLLM Router.

    All calls include tenant metadata for cost tracking. When no provider
    key is configured the router is None and structured_completion() raises.
    """

    def __init__(self) -> None:
        settings = get_settings()

        model_list = []

        if settings.ANTHROPIC_API_KEY:
            model_list.append({
                "model_name": "reasoning",
                "litellm_params": {
                    "model": "anthropic/claude-sonnet-4-20250514",
                    "api_key": settings.ANTHROPIC_API_KEY,
                },
            })

        # Fallback
        if settings.OPENAI_API_KEY:
            model_list.append({
                "model_name": "reasoning",
                "litellm_params": {
                    "model": "openai/gpt-4o",
                    "api_key": settings.OPENAI_API_KEY,
                },
            })

        if not model_list:
            logger.warning("No LLM API keys configured -- meeting summaries will be unavailable")
            self.router = None
            return

        self.router = Router(
            model_list=model_list,
            num_retries=settings.LLM_MAX_RETRIES,
            timeout=settings.LLM_TIMEOUT,
            allowed_fails=3,
            cooldown_time=30,
        )

    @property
    def available(self) -> bool:
        return self.router is not None

    def _tenant_metadata(self) -> dict:
        try:
            tenant = get_current_tenant()
        except RuntimeError:
            return {}
        return {"tenant_id": tenant.tenant_id, "tenant_slug": tenant.tenant_slug}

    async def structured_completion(
        self,
        messages: list[dict],
        response_model: type[ResponseModelT],
        model: str = "reasoning",
        max_tokens: int = 4096,
        temperature: float = 0.1,
        metadata: dict | None = None,
    ) -> ResponseModelT:
        """Run a completion and parse it into ``response_model``.

        Uses instructor over the router's acompletion so the fallback and
        retry policy of the Router also applies to structured extraction.

        Raises:
            RuntimeError: If no LLM API keys are configured.
        """
        if not self.router:
            raise RuntimeError("No LLM API keys configured")

        tenant_metadata = self._tenant_metadata()
        client = instructor.from_litellm(self.router.acompletion)
        result = await client.chat.completions.create(
            model=model,
            response_model=response_model,
            messages=sanitize_messages(messages),
            max_tokens=max_tokens,
            temperature=temperature,
            metadata={**tenant_metadata, **(metadata or {})},
        )
        logger.info(
            "llm_structured_completion",
            model=model,
            response_model=response_model.__name__,
            tenant_id=tenant_metadata.get("tenant_id", ""),
        )
        return result


# ── Singleton ─────────────────────────────────────────────────────────────────

_llm_service: LLMService | None = None


def get_llm_service() -> LLMService:
    """Get or create the LLM service singleton."""
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service
