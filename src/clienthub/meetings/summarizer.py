"""MeetingSummarizer -- structured AI summary of a meeting transcript.

Uses LLMService.structured_completion() (instructor over the LiteLLM Router)
to extract summary bullets, decisions, suggested tasks and risk signals.
"""

from __future__ import annotations

import structlog

from src.clienthub.core.exceptions import ExternalServiceError
from src.clienthub.meetings.schemas import MeetingSummary
from src.clienthub.services.llm import LLMService

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = """Você é um assistente especializado em planejamento financeiro pessoal.

Metodologia em 4 pilares:
1) Fluxo de Caixa: organização, orçamento, categorização
2) Proteção Patrimonial: seguros, reservas, blindagem
3) Investimentos: alocação, liquidez, objetivos
4) Expansão Patrimonial: patrimônio, imóveis, negócios

Tipos de reunião:
- C1 Análise: mapear situação, dores, objetivos
- C2 Proteção: coberturas e riscos
- C3 Investimentos: alocação e estratégia
- C4 Consolidação: revisar tudo
- FUP: checagem de progresso

Sinais de risco: linguagem defensiva ("caro", "depois vejo", "talvez"), falta de
documentos, falta de compromisso, energia baixa, resistência."""

USER_PROMPT = """Analise a transcrição abaixo e gere um resumo estruturado.
Use APENAS as informações da transcrição.

Cliente: {client_name}
Tipo de reunião: {meeting_type}

TRANSCRIÇÃO:
{transcript}

Retorne:
- summary: tópicos do resumo executivo
- decisions: decisões tomadas
- suggested_tasks: tarefas SMART com title, description, owner ("Leonardo" ou "Cliente") e due_date (YYYY-MM-DD)
- risk_signals: sinais de risco identificados (lista vazia se nenhum)"""

# Transcripts beyond this are truncated before the call
MAX_TRANSCRIPT_CHARS = 60_000


class MeetingSummarizer:
    """Produces a MeetingSummary from a transcript.

    Args:
        llm: LLMService providing structured_completion().
    """

    def __init__(self, llm: LLMService) -> None:
        self._llm = llm

    async def summarize(
        self, transcript: str, meeting_type: str, client_name: str = ""
    ) -> MeetingSummary:
        """Summarize ``transcript``.

        Raises:
            ExternalServiceError: The AI provider is not configured or the call failed.
        """
        text = transcript.strip()
        if len(text) > MAX_TRANSCRIPT_CHARS:
            logger.info(
                "transcript_truncated",
                original_chars=len(text),
                max_chars=MAX_TRANSCRIPT_CHARS,
            )
            text = text[:MAX_TRANSCRIPT_CHARS]

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": USER_PROMPT.format(
                    client_name=client_name or "-",
                    meeting_type=meeting_type,
                    transcript=text,
                ),
            },
        ]
        try:
            return await self._llm.structured_completion(
                messages,
                response_model=MeetingSummary,
                metadata={"feature": "meeting_summary", "meeting_type": meeting_type},
            )
        except RuntimeError as exc:
            raise ExternalServiceError(str(exc), code="llm_unavailable") from exc
        except Exception as exc:
            logger.error("meeting_summary_failed", meeting_type=meeting_type, error=str(exc))
            raise ExternalServiceError(f"AI summary failed: {exc}", code="llm_error") from exc
