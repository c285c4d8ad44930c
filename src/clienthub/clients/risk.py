"""Client risk score.

The score is the sum of fixed impacts from five factors, clamped to 0..100:

- no real advance for more than 30 days: +25
- overdue tasks owned by the client: +20
- risk signals in each of the last two meetings held: +15
- two or more tasks completed in the last 7 days: -15
- a meeting scheduled within the next 7 days: -10

Classification uses the same bands as the ``risk_level`` list filter.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from src.clienthub.clients.schemas import (
    RISK_RANGES,
    RiskClassification,
    RiskFactor,
    RiskLevel,
    RiskScoreBreakdown,
)
from src.clienthub.meetings.schemas import MeetingRead

NO_ADVANCE_DAYS = 30
NO_ADVANCE_IMPACT = 25
OVERDUE_TASKS_IMPACT = 20
DEFENSIVE_MEETINGS = 2
DEFENSIVE_IMPACT = 15
COMPLETED_TASKS_THRESHOLD = 2
COMPLETED_TASKS_IMPACT = -15
UPCOMING_WINDOW_DAYS = 7
UPCOMING_MEETING_IMPACT = -10

# Placeholder the summarizer writes when a meeting had no risk signals
NO_SIGNALS = "nenhum sinal identificado"

_CLASSIFICATION = {
    RiskLevel.LOW: RiskClassification.BAIXO,
    RiskLevel.MEDIUM: RiskClassification.MEDIO,
    RiskLevel.HIGH: RiskClassification.ALTO,
}


def classify_risk(score: int) -> RiskClassification:
    for level, (low, high) in RISK_RANGES.items():
        if low <= score <= high:
            return _CLASSIFICATION[level]
    raise ValueError(f"Risk score out of range: {score}")


def has_risk_signals(meeting: MeetingRead) -> bool:
    """True when the meeting summary recorded at least one real risk signal."""
    return any(
        signal.strip() and signal.strip().lower() != NO_SIGNALS
        for signal in meeting.risk_signals
    )


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def evaluate_risk(
    days_since_last_advance: int | None,
    overdue_client_tasks: int,
    completed_last_week: int,
    meetings: list[MeetingRead],
    now: datetime | None = None,
) -> RiskScoreBreakdown:
    """Score a client from its activity metrics and meetings.

    Args:
        days_since_last_advance: Days since last_activity_date, None if never.
        overdue_client_tasks: Open client-owned tasks past their due date.
        completed_last_week: Tasks completed in the last 7 days.
        meetings: The client's meetings in any order.
        now: Reference time, defaults to the current UTC time.
    """
    now = now or datetime.now(timezone.utc)
    factors: list[RiskFactor] = []

    if days_since_last_advance is not None and days_since_last_advance > NO_ADVANCE_DAYS:
        factors.append(RiskFactor(
            factor="Sem avanço há mais de 30 dias",
            impact=NO_ADVANCE_IMPACT,
            description=f"{days_since_last_advance} dias sem avanço real",
        ))

    if overdue_client_tasks > 0:
        factors.append(RiskFactor(
            factor="Tarefas do cliente vencidas",
            impact=OVERDUE_TASKS_IMPACT,
            description=f"{overdue_client_tasks} tarefa(s) vencida(s)",
        ))

    held = sorted(
        (m for m in meetings if _aware(m.meeting_date) <= now),
        key=lambda m: _aware(m.meeting_date),
        reverse=True,
    )[:DEFENSIVE_MEETINGS]
    if len(held) == DEFENSIVE_MEETINGS and all(has_risk_signals(m) for m in held):
        factors.append(RiskFactor(
            factor="Linguagem defensiva em 2 reuniões seguidas",
            impact=DEFENSIVE_IMPACT,
            description="Sinais de resistência detectados",
        ))

    if completed_last_week >= COMPLETED_TASKS_THRESHOLD:
        factors.append(RiskFactor(
            factor="Tarefas concluídas na última semana",
            impact=COMPLETED_TASKS_IMPACT,
            description=f"{completed_last_week} tarefa(s) concluída(s)",
        ))

    horizon = now + timedelta(days=UPCOMING_WINDOW_DAYS)
    if any(now <= _aware(m.meeting_date) <= horizon for m in meetings):
        factors.append(RiskFactor(
            factor="Próxima reunião agendada",
            impact=UPCOMING_MEETING_IMPACT,
            description="Reunião confirmada nos próximos 7 dias",
        ))

    total = max(0, min(100, sum(f.impact for f in factors)))
    return RiskScoreBreakdown(
        total_score=total,
        classification=classify_risk(total),
        factors=factors,
    )
