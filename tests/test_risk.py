"""Risk score tests: each factor, clamping, classification and persistence."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone

import pytest

from src.clienthub.clients.risk import classify_risk, evaluate_risk, has_risk_signals
from src.clienthub.clients.schemas import ClientCreate, RiskClassification
from src.clienthub.core.exceptions import NotFoundError
from src.clienthub.meetings.schemas import MeetingCreate, MeetingRead
from src.clienthub.tasks.schemas import TaskCreate, TaskOwner, TaskStatus

NOW = datetime(2030, 6, 15, 12, 0, tzinfo=timezone.utc)


def _meeting(days_from_now: float, risk_signals: list[str] | None = None) -> MeetingRead:
    return MeetingRead(
        id=str(uuid.uuid4()),
        tenant_id="t",
        user_id="u",
        client_id="c",
        meeting_type="FUP",
        meeting_date=NOW + timedelta(days=days_from_now),
        risk_signals=risk_signals or [],
    )


def _score(days=None, overdue=0, completed=0, meetings=()):
    return evaluate_risk(days, overdue, completed, list(meetings), now=NOW)


# ── Factors ─────────────────────────────────────────────────────────────────


def test_no_factors_scores_zero():
    breakdown = _score(days=3)
    assert breakdown.total_score == 0
    assert breakdown.classification is RiskClassification.BAIXO
    assert breakdown.factors == []


def test_no_advance_over_thirty_days():
    assert _score(days=30).total_score == 0

    breakdown = _score(days=31)
    [factor] = breakdown.factors
    assert factor.impact == 25
    assert factor.description == "31 dias sem avanço real"


def test_never_advanced_is_not_penalised():
    assert _score(days=None).factors == []


def test_overdue_client_tasks():
    [factor] = _score(overdue=3).factors
    assert factor.impact == 20
    assert factor.description == "3 tarefa(s) vencida(s)"


def test_risk_signals_in_last_two_meetings():
    meetings = [_meeting(-1, ["depois vejo"]), _meeting(-8, ["está caro"])]
    [factor] = _score(meetings=meetings).factors
    assert factor.impact == 15
    assert factor.factor == "Linguagem defensiva em 2 reuniões seguidas"


def test_risk_signals_need_both_recent_meetings():
    only_latest = [_meeting(-1, ["depois vejo"]), _meeting(-8, []), _meeting(-15, ["está caro"])]
    assert _score(meetings=only_latest).total_score == 0

    single = [_meeting(-1, ["depois vejo"])]
    assert _score(meetings=single).total_score == 0


def test_placeholder_signal_is_not_a_risk():
    assert has_risk_signals(_meeting(-1, ["Nenhum sinal identificado"])) is False
    assert has_risk_signals(_meeting(-1, ["  "])) is False
    assert has_risk_signals(_meeting(-1, ["", "vou pensar"])) is True


def test_future_meetings_do_not_count_as_held():
    meetings = [_meeting(30), _meeting(-1, ["depois vejo"]), _meeting(-8, ["está caro"])]
    assert [f.impact for f in _score(meetings=meetings).factors] == [15]


def test_completed_tasks_last_week_lowers_score():
    breakdown = _score(days=40, completed=2)
    assert [f.impact for f in breakdown.factors] == [25, -15]
    assert breakdown.total_score == 10

    assert [f.impact for f in _score(days=40, completed=1).factors] == [25]


def test_upcoming_meeting_within_seven_days():
    breakdown = _score(overdue=1, meetings=[_meeting(6)])
    assert [f.impact for f in breakdown.factors] == [20, -10]
    assert breakdown.factors[1].factor == "Próxima reunião agendada"

    assert _score(overdue=1, meetings=[_meeting(8)]).total_score == 20


# ── Total & classification ──────────────────────────────────────────────────


def test_all_risk_factors_add_up():
    meetings = [_meeting(-1, ["depois vejo"]), _meeting(-8, ["está caro"])]
    breakdown = _score(days=45, overdue=2, meetings=meetings)
    assert breakdown.total_score == 60
    assert breakdown.classification is RiskClassification.MEDIO


def test_score_is_clamped_at_zero():
    breakdown = _score(completed=5, meetings=[_meeting(2)])
    assert sum(f.impact for f in breakdown.factors) == -25
    assert breakdown.total_score == 0


@pytest.mark.parametrize(
    ("score", "expected"),
    [
        (0, RiskClassification.BAIXO),
        (39, RiskClassification.BAIXO),
        (40, RiskClassification.MEDIO),
        (69, RiskClassification.MEDIO),
        (70, RiskClassification.ALTO),
        (100, RiskClassification.ALTO),
    ],
)
def test_classification_bands(score, expected):
    assert classify_risk(score) is expected


# ── ClientService ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_calculate_persists_score_and_emits_update(
    client_service, client_repo, task_repo, emitter, tenant_id, user_id,
):
    client = await client_service.create_client(tenant_id, user_id, ClientCreate(name="Ana Souza"))
    await client_repo.touch_activity(
        tenant_id, user_id, client.id, datetime.now(timezone.utc) - timedelta(days=40),
    )
    await task_repo.create_tasks(
        tenant_id,
        user_id,
        [TaskCreate(
            client_id=client.id, title="Enviar extratos", owner=TaskOwner.CLIENT,
            due_date=date.today() - timedelta(days=3),
        )],
        assigned_date=date.today(),
    )
    emitter.events.clear()

    breakdown = await client_service.calculate_risk_score(tenant_id, user_id, client.id)

    assert breakdown.total_score == 45
    assert breakdown.classification is RiskClassification.MEDIO
    assert (await client_repo.get_client(tenant_id, user_id, client.id)).risk_score == 45
    [(name, data, previous)] = emitter.events
    assert name == "client.updated"
    assert data["risk_score"] == 45
    assert previous["risk_score"] == 0


@pytest.mark.asyncio
async def test_unchanged_score_emits_nothing(client_service, emitter, tenant_id, user_id):
    client = await client_service.create_client(tenant_id, user_id, ClientCreate(name="Ana Souza"))
    emitter.events.clear()

    breakdown = await client_service.calculate_risk_score(tenant_id, user_id, client.id)

    assert breakdown.total_score == 0
    assert emitter.events == []


@pytest.mark.asyncio
async def test_calculate_uses_meetings_and_completed_tasks(
    client_service, client_repo, meeting_repo, task_repo, tenant_id, user_id,
):
    client = await client_service.create_client(
        tenant_id, user_id, ClientCreate(name="Ana Souza", risk_score=80),
    )
    now = datetime.now(timezone.utc)
    for days_ago in (2, 9):
        meeting = await meeting_repo.create_meeting(
            tenant_id, user_id,
            MeetingCreate(client_id=client.id, meeting_type="FUP", meeting_date=now - timedelta(days=days_ago)),
        )
        await meeting_repo.update_meeting(tenant_id, user_id, meeting.id, {"risk_signals": ["depois vejo"]})
    await task_repo.create_tasks(
        tenant_id,
        user_id,
        [
            TaskCreate(
                client_id=client.id, title=title, owner=TaskOwner.CONSULTANT,
                due_date=date.today(), status=TaskStatus.CONCLUIDA,
            )
            for title in ("Revisar seguro", "Montar planilha")
        ],
        assigned_date=date.today(),
    )

    breakdown = await client_service.calculate_risk_score(tenant_id, user_id, client.id)

    assert [f.impact for f in breakdown.factors] == [15, -15]
    assert breakdown.total_score == 0
    assert (await client_repo.get_client(tenant_id, user_id, client.id)).risk_score == 0


@pytest.mark.asyncio
async def test_calculate_for_other_users_client(client_service, tenant_id, user_id, other_user_id):
    client = await client_service.create_client(tenant_id, other_user_id, ClientCreate(name="Ana Souza"))
    with pytest.raises(NotFoundError):
        await client_service.calculate_risk_score(tenant_id, user_id, client.id)
