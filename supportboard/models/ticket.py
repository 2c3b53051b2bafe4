import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import BigInteger, DateTime, Enum, Index, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from supportboard.models.base import (
    Base,
    JSONType,
    TicketPriority,
    TicketStatus,
    TicketType,
)


class Ticket(Base):
    """A Zendesk ticket as last seen by a sync.

    ``created_at``/``updated_at`` are Zendesk's own timestamps, not row
    bookkeeping; ``imported_at`` records when the row was last written.
    ``assignee_id`` holds an ``agents.zendesk_id`` but is not constrained,
    since the feed carries tickets assigned to agents we do not track.
    """

    __tablename__ = "tickets"
    __table_args__ = (
        Index("ix_tickets_assignee_id", "assignee_id"),
        Index("ix_tickets_status", "status"),
        Index("ix_tickets_created_at", "created_at"),
        Index("ix_tickets_updated_at", "updated_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    zendesk_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    subject: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[TicketStatus] = mapped_column(
        Enum(TicketStatus, name="ticketstatus"), nullable=False
    )
    priority: Mapped[Optional[TicketPriority]] = mapped_column(
        Enum(TicketPriority, name="ticketpriority"), nullable=True
    )
    type: Mapped[Optional[TicketType]] = mapped_column(
        Enum(TicketType, name="tickettype"), nullable=True
    )
    assignee_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    requester_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    submitter_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    solved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    custom_fields: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    imported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
