import logging
from datetime import datetime, timedelta
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from supportboard.models.agent import Agent
from supportboard.models.period_metric import PeriodMetric
from supportboard.schemas.metrics import (
    AgentMetricResponse,
    LatestMetricsResponse,
    MetricValues,
    MetricsWindow,
)
from supportboard.services.metrics_service import team_average

logger = logging.getLogger(__name__)

PERIOD_PRESETS = ("last-7-days", "last-30-days", "this-month", "last-month")


def _month_start(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def resolve_period(name: str, now: datetime) -> MetricsWindow:
    """Translate a dashboard period preset into a window."""
    if name == "last-7-days":
        return MetricsWindow(start=now - timedelta(days=7), end=now)
    if name == "last-30-days":
        return MetricsWindow(start=now - timedelta(days=30), end=now)

    this_month = _month_start(now)
    if name == "this-month":
        next_month = _month_start(this_month + timedelta(days=32))
        return MetricsWindow(start=this_month, end=next_month)
    if name == "last-month":
        last_month = _month_start(this_month - timedelta(days=1))
        return MetricsWindow(start=last_month, end=this_month)

    raise ValueError(f"Unknown period {name!r}, expected one of {', '.join(PERIOD_PRESETS)}")


def latest_metrics_query(window: Optional[MetricsWindow] = None):
    """
    Latest snapshot per agent.

    Rows are ranked per agent by ``calculated_at`` (ties broken by id) and
    only rank 1 is kept, so a newer snapshot always replaces older ones
    rather than being averaged with them.
    """
    rank = (
        func.row_number()
        .over(
            partition_by=PeriodMetric.agent_id,
            order_by=(PeriodMetric.calculated_at.desc(), PeriodMetric.id.desc()),
        )
        .label("rank")
    )
    ranked = select(PeriodMetric.id, rank)
    if window is not None:
        ranked = ranked.where(
            PeriodMetric.calculated_at >= window.start,
            PeriodMetric.calculated_at < window.end,
        )
    ranked = ranked.subquery()

    return (
        select(PeriodMetric, Agent.zendesk_id, Agent.name)
        .join(ranked, ranked.c.id == PeriodMetric.id)
        .join(Agent, Agent.id == PeriodMetric.agent_id)
        .where(ranked.c.rank == 1)
        .order_by(Agent.name)
    )


async def get_latest_metrics(
    db: AsyncSession, window: Optional[MetricsWindow] = None
) -> LatestMetricsResponse:
    """Latest snapshot per agent plus the team average.

    An empty window is a normal result. Query failures and rows that do not
    convert are logged and also produce the empty result, so the dashboard
    shows "no data" instead of an error.
    """
    try:
        result = await db.execute(latest_metrics_query(window))
        per_agent = [
            AgentMetricResponse(
                **MetricValues.model_validate(metric).model_dump(),
                agent_id=metric.agent_id,
                zendesk_id=zendesk_id,
                name=name,
                period_start=metric.period_start,
                period_end=metric.period_end,
                calculated_at=metric.calculated_at,
            )
            for metric, zendesk_id, name in result.all()
        ]
    except (SQLAlchemyError, OSError, ValidationError):
        logger.exception("Failed to read latest metrics")
        return LatestMetricsResponse()

    return LatestMetricsResponse(per_agent=per_agent, team_average=team_average(per_agent))
