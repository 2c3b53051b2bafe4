import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON elsewhere (the test suite runs on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class TicketStatus(str, enum.Enum):
    new = "new"
    open = "open"
    pending = "pending"
    hold = "hold"
    solved = "solved"
    closed = "closed"


class TicketPriority(str, enum.Enum):
    low = "low"
    normal = "normal"
    high = "high"
    urgent = "urgent"


class TicketType(str, enum.Enum):
    problem = "problem"
    incident = "incident"
    question = "question"
    task = "task"


class SatisfactionScore(str, enum.Enum):
    good = "good"
    bad = "bad"
    offered = "offered"
    unoffered = "unoffered"
    received = "received"


CLOSED_STATUSES = frozenset({TicketStatus.solved, TicketStatus.closed})
OPEN_STATUSES = frozenset({TicketStatus.new, TicketStatus.open, TicketStatus.pending})
