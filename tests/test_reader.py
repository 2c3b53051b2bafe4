from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from supportboard.models.agent import Agent
from supportboard.models.period_metric import PeriodMetric
from supportboard.schemas.metrics import AgentMetricResponse, MetricsWindow
from supportboard.services import reader_service
from supportboard.services.reader_service import get_latest_metrics, resolve_period
from tests.conftest import NOW


async def _agent(db: AsyncSession, zendesk_id: int, name: str) -> Agent:
    agent = Agent(zendesk_id=zendesk_id, name=name, email=f"{name.lower()}@example.com")
    db.add(agent)
    await db.commit()
    await db.refresh(agent)
    return agent


async def _metric(
    db: AsyncSession,
    agent: Agent,
    calculated_at: datetime,
    days: int = 30,
    **values,
) -> PeriodMetric:
    metric = PeriodMetric(
        agent_id=agent.id,
        period_start=calculated_at - timedelta(days=days),
        period_end=calculated_at,
        calculated_at=calculated_at,
        **values,
    )
    db.add(metric)
    await db.commit()
    return metric


# ---------------------------------------------------------------------------
# Latest snapshot selection
# ---------------------------------------------------------------------------


async def test_latest_snapshot_per_agent_wins(db: AsyncSession):
    ada = await _agent(db, 1, "Ada")
    await _metric(db, ada, NOW - timedelta(days=2), closed=1)
    await _metric(db, ada, NOW - timedelta(days=1), closed=9)
    await _metric(db, ada, NOW - timedelta(days=3), days=7, closed=4)

    result = await get_latest_metrics(db)

    assert len(result.per_agent) == 1
    assert result.per_agent[0].closed == 9
    assert result.per_agent[0].name == "Ada"
    assert result.per_agent[0].zendesk_id == 1


async def test_window_limits_by_calculation_time(db: AsyncSession):
    ada = await _agent(db, 1, "Ada")
    await _metric(db, ada, NOW - timedelta(days=20), closed=2)
    await _metric(db, ada, NOW - timedelta(days=1), closed=7)

    window = MetricsWindow(start=NOW - timedelta(days=30), end=NOW - timedelta(days=10))
    result = await get_latest_metrics(db, window)

    assert [m.closed for m in result.per_agent] == [2]


async def test_team_average_over_selected_rows(db: AsyncSession):
    ada = await _agent(db, 1, "Ada")
    bob = await _agent(db, 2, "Bob")
    await _metric(db, ada, NOW - timedelta(days=5), closed=100, ces_percent=0.0)
    await _metric(db, ada, NOW - timedelta(days=1), closed=4, ces_percent=50.0)
    await _metric(db, bob, NOW - timedelta(days=2), closed=6, ces_percent=100.0)

    result = await get_latest_metrics(db)

    assert [m.name for m in result.per_agent] == ["Ada", "Bob"]
    assert result.team_average.agent_count == 2
    assert result.team_average.closed == pytest.approx(5.0)
    assert result.team_average.ces_percent == pytest.approx(75.0)


async def test_empty_window_returns_empty_state(db: AsyncSession):
    ada = await _agent(db, 1, "Ada")
    await _metric(db, ada, NOW - timedelta(days=1))

    window = MetricsWindow(start=NOW - timedelta(days=90), end=NOW - timedelta(days=60))
    result = await get_latest_metrics(db, window)

    assert result.per_agent == []
    assert result.team_average is None


async def test_query_failure_degrades_to_empty_state(db: AsyncSession, monkeypatch):
    async def broken_execute(*args, **kwargs):
        raise OperationalError("SELECT ...", {}, Exception("connection refused"))

    monkeypatch.setattr(db, "execute", broken_execute)

    result = await get_latest_metrics(db)

    assert result.per_agent == []
    assert result.team_average is None


async def test_unconvertible_row_degrades_to_empty_state(db: AsyncSession, monkeypatch):
    ada = await _agent(db, 1, "Ada")
    await _metric(db, ada, NOW - timedelta(days=1), closed=2)

    def broken_response(**fields):
        return AgentMetricResponse.model_validate({})

    monkeypatch.setattr(reader_service, "AgentMetricResponse", broken_response)

    result = await get_latest_metrics(db)

    assert result.per_agent == []
    assert result.team_average is None


# ---------------------------------------------------------------------------
# Period presets
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "name, start, end",
    [
        ("last-7-days", NOW - timedelta(days=7), NOW),
        ("last-30-days", NOW - timedelta(days=30), NOW),
        (
            "this-month",
            datetime(2025, 7, 1, tzinfo=timezone.utc),
            datetime(2025, 8, 1, tzinfo=timezone.utc),
        ),
        (
            "last-month",
            datetime(2025, 6, 1, tzinfo=timezone.utc),
            datetime(2025, 7, 1, tzinfo=timezone.utc),
        ),
    ],
)
def test_resolve_period(name, start, end):
    window = resolve_period(name, NOW)

    assert window.start == start
    assert window.end == end


def test_resolve_unknown_period():
    with pytest.raises(ValueError):
        resolve_period("last-decade", NOW)


def test_last_month_in_january():
    window = resolve_period("last-month", datetime(2025, 1, 15, tzinfo=timezone.utc))

    assert window.start == datetime(2024, 12, 1, tzinfo=timezone.utc)
    assert window.end == datetime(2025, 1, 1, tzinfo=timezone.utc)
