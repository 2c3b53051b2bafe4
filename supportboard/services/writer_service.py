import logging
import uuid
from collections.abc import Iterable, Iterator, Sequence
from datetime import datetime
from typing import TypeVar

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from supportboard.exceptions import StoreWriteError, WritePolicyError
from supportboard.models.agent import Agent
from supportboard.models.period_metric import PeriodMetric
from supportboard.models.ticket import Ticket
from supportboard.schemas.metrics import METRIC_FIELDS, MetricValues, MetricsWindow
from supportboard.schemas.zendesk import AgentRecord, TicketRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TICKET_FIELDS = (
    "subject",
    "status",
    "priority",
    "type",
    "assignee_id",
    "requester_id",
    "submitter_id",
    "created_at",
    "updated_at",
    "solved_at",
    "tags",
    "custom_fields",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _insert_for(db: AsyncSession, table):
    """Return the dialect's INSERT construct so ON CONFLICT is available."""
    if db.get_bind().dialect.name == "postgresql":
        return pg_insert(table)
    return sqlite_insert(table)


def _is_policy_violation(exc: DBAPIError) -> bool:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code == "42501":
        return True
    return "row-level security" in str(orig).lower()


def _translate(exc: DBAPIError, table: str) -> StoreWriteError:
    if _is_policy_violation(exc):
        return WritePolicyError(table, str(exc.orig))
    return StoreWriteError(table, str(exc.orig))


def batched(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError("batch size must be at least 1")
    for i in range(0, len(items), size):
        yield list(items[i : i + size])


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------

async def upsert_agents(db: AsyncSession, agents: Iterable[AgentRecord]) -> int:
    """Insert or update agents by Zendesk id. Flushes but does not commit."""
    count = 0
    for record in agents:
        stmt = _insert_for(db, Agent.__table__).values(
            id=uuid.uuid4(),
            zendesk_id=record.id,
            name=record.name,
            email=record.email,
            role=record.role,
            active=record.active,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["zendesk_id"],
            set_={
                "name": stmt.excluded.name,
                "email": stmt.excluded.email,
                "role": stmt.excluded.role,
                "active": stmt.excluded.active,
                "updated_at": func.now(),
            },
        )
        try:
            await db.execute(stmt)
        except DBAPIError as e:
            raise _translate(e, "agents") from e
        count += 1

    logger.debug("Upserted %d agents", count)
    return count


async def agent_keys(db: AsyncSession, zendesk_ids: Iterable[int]) -> dict[int, uuid.UUID]:
    """Map Zendesk user ids to internal agent ids; unknown ids are absent."""
    ids = list(set(zendesk_ids))
    if not ids:
        return {}
    result = await db.execute(select(Agent.zendesk_id, Agent.id).where(Agent.zendesk_id.in_(ids)))
    return {zendesk_id: agent_id for zendesk_id, agent_id in result.all()}


# ---------------------------------------------------------------------------
# Tickets
# ---------------------------------------------------------------------------

async def upsert_ticket_batch(db: AsyncSession, tickets: Sequence[TicketRecord]) -> int:
    """Upsert one batch of tickets as a single multi-row statement."""
    if not tickets:
        return 0

    rows = [
        {
            "id": uuid.uuid4(),
            "zendesk_id": record.id,
            **{field: getattr(record, field) for field in _TICKET_FIELDS},
        }
        for record in tickets
    ]
    stmt = _insert_for(db, Ticket.__table__).values(rows)
    set_ = {field: stmt.excluded[field] for field in _TICKET_FIELDS}
    set_["imported_at"] = func.now()
    stmt = stmt.on_conflict_do_update(index_elements=["zendesk_id"], set_=set_)

    try:
        await db.execute(stmt)
    except DBAPIError as e:
        raise _translate(e, "tickets") from e
    return len(rows)


async def upsert_tickets(
    db: AsyncSession, tickets: Sequence[TicketRecord], batch_size: int = 100
) -> int:
    """Upsert tickets batch by batch, committing after each one."""
    written = 0
    for batch in batched(tickets, batch_size):
        written += await upsert_ticket_batch(db, batch)
        await db.commit()
    return written


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

async def upsert_metric(
    db: AsyncSession,
    agent_id: uuid.UUID,
    window: MetricsWindow,
    values: MetricValues,
    calculated_at: datetime,
) -> None:
    """Write the snapshot for (agent, window); an existing one is overwritten."""
    metric_values = values.model_dump(include=set(METRIC_FIELDS))
    stmt = _insert_for(db, PeriodMetric.__table__).values(
        id=uuid.uuid4(),
        agent_id=agent_id,
        period_start=window.start,
        period_end=window.end,
        calculated_at=calculated_at,
        **metric_values,
    )
    set_ = {field: stmt.excluded[field] for field in METRIC_FIELDS}
    set_["calculated_at"] = stmt.excluded.calculated_at
    stmt = stmt.on_conflict_do_update(
        index_elements=["agent_id", "period_start", "period_end"],
        set_=set_,
    )

    try:
        await db.execute(stmt)
    except DBAPIError as e:
        raise _translate(e, "period_metrics") from e
