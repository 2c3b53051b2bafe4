from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from supportboard.exceptions import StoreWriteError, WritePolicyError
from supportboard.models.agent import Agent
from supportboard.models.base import TicketStatus
from supportboard.models.period_metric import PeriodMetric
from supportboard.models.ticket import Ticket
from supportboard.schemas.metrics import MetricValues, MetricsWindow
from supportboard.schemas.zendesk import AgentRecord, TicketRecord
from supportboard.services import writer_service
from tests.conftest import NOW, make_ticket, make_user

WINDOW = MetricsWindow(start=NOW - timedelta(days=30), end=NOW)


def _agent(user_id: int, name: str) -> AgentRecord:
    return AgentRecord.model_validate(make_user(user_id, name))


async def _count(db: AsyncSession, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------


async def test_agent_upsert_round_trip(db: AsyncSession):
    """Writing the same external id twice leaves one row with the latest name."""
    await writer_service.upsert_agents(db, [_agent(42, "Old Name")])
    await db.commit()
    await writer_service.upsert_agents(db, [_agent(42, "New Name")])
    await db.commit()

    result = await db.execute(select(Agent).where(Agent.zendesk_id == 42))
    agents = result.scalars().all()
    assert len(agents) == 1
    assert agents[0].name == "New Name"


async def test_agent_keys_maps_external_ids(db: AsyncSession):
    count = await writer_service.upsert_agents(db, [_agent(1, "A"), _agent(2, "B")])
    await db.commit()

    keys = await writer_service.agent_keys(db, [1, 2, 3])

    assert count == 2
    assert set(keys) == {1, 2}
    result = await db.execute(select(Agent.id).where(Agent.zendesk_id == 1))
    assert keys[1] == result.scalar_one()
    assert await writer_service.agent_keys(db, []) == {}


# ---------------------------------------------------------------------------
# Tickets
# ---------------------------------------------------------------------------


def test_batched_splits_into_fixed_sizes():
    batches = list(writer_service.batched(list(range(150)), 100))

    assert [len(b) for b in batches] == [100, 50]
    assert list(writer_service.batched([], 100)) == []
    with pytest.raises(ValueError):
        list(writer_service.batched([1], 0))


async def test_ticket_upsert_overwrites_by_external_id(db: AsyncSession):
    first = TicketRecord.model_validate(make_ticket(7, 101, "open", tags=["api"]))
    await writer_service.upsert_tickets(db, [first])

    updated = TicketRecord.model_validate(
        make_ticket(7, 202, "solved", tags=["enterprise"], custom_fields=[{"id": 1, "value": "x"}])
    )
    await writer_service.upsert_tickets(db, [updated])

    result = await db.execute(select(Ticket).where(Ticket.zendesk_id == 7))
    ticket = result.scalar_one()
    assert ticket.status == TicketStatus.solved
    assert ticket.assignee_id == 202
    assert ticket.tags == ["enterprise"]
    assert ticket.custom_fields == {"1": "x"}
    assert ticket.solved_at is not None


async def test_upsert_tickets_writes_in_batches(db: AsyncSession, monkeypatch):
    calls = []
    original = writer_service.upsert_ticket_batch

    async def spy(session, batch):
        calls.append(len(batch))
        return await original(session, batch)

    monkeypatch.setattr(writer_service, "upsert_ticket_batch", spy)
    tickets = [TicketRecord.model_validate(make_ticket(i, 101)) for i in range(1, 151)]

    written = await writer_service.upsert_tickets(db, tickets, batch_size=100)

    assert written == 150
    assert calls == [100, 50]
    assert await _count(db, Ticket) == 150


async def test_tickets_for_untracked_agents_are_stored(db: AsyncSession):
    ticket = TicketRecord.model_validate(make_ticket(1, 999999))

    await writer_service.upsert_tickets(db, [ticket])

    assert await _count(db, Ticket) == 1


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


async def test_metric_rerun_overwrites_snapshot(db: AsyncSession):
    await writer_service.upsert_agents(db, [_agent(1, "A")])
    keys = await writer_service.agent_keys(db, [1])

    await writer_service.upsert_metric(db, keys[1], WINDOW, MetricValues(closed=3), NOW)
    await db.commit()
    await writer_service.upsert_metric(
        db, keys[1], WINDOW, MetricValues(closed=5), NOW + timedelta(hours=1)
    )
    await db.commit()

    result = await db.execute(select(PeriodMetric))
    rows = result.scalars().all()
    assert len(rows) == 1
    assert rows[0].closed == 5
    assert rows[0].calculated_at.replace(tzinfo=None) == (NOW + timedelta(hours=1)).replace(tzinfo=None)


async def test_metric_for_another_window_is_a_new_row(db: AsyncSession):
    await writer_service.upsert_agents(db, [_agent(1, "A")])
    keys = await writer_service.agent_keys(db, [1])
    other = MetricsWindow(start=WINDOW.start - timedelta(days=30), end=WINDOW.start)

    await writer_service.upsert_metric(db, keys[1], WINDOW, MetricValues(), NOW)
    await writer_service.upsert_metric(db, keys[1], other, MetricValues(), NOW)
    await db.commit()

    assert await _count(db, PeriodMetric) == 2


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class _PolicyViolation(Exception):
    sqlstate = "42501"


class _DiskFull(Exception):
    pass


@pytest.mark.parametrize(
    "orig, expected",
    [
        (_PolicyViolation("permission denied for table tickets"), WritePolicyError),
        (Exception('new row violates row-level security policy for table "tickets"'), WritePolicyError),
        (_DiskFull("disk full"), StoreWriteError),
    ],
)
async def test_write_failures_are_translated(db: AsyncSession, monkeypatch, orig, expected):
    async def failing_execute(*args, **kwargs):
        raise DBAPIError("INSERT INTO tickets ...", {}, orig)

    monkeypatch.setattr(db, "execute", failing_execute)
    ticket = TicketRecord.model_validate(make_ticket(1, 101))

    with pytest.raises(expected) as exc_info:
        await writer_service.upsert_ticket_batch(db, [ticket])

    assert exc_info.value.table == "tickets"
    assert exc_info.value.__cause__ is not None
    if expected is WritePolicyError:
        assert "policy" in str(exc_info.value)
    else:
        assert not isinstance(exc_info.value, WritePolicyError)
