import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from supportboard.models.base import Base

if TYPE_CHECKING:
    from supportboard.models.agent import Agent


class PeriodMetric(Base):
    """One statistics snapshot for one agent over one window.

    Rows are only ever written by the sync; recalculating the same window
    overwrites the existing row.
    """

    __tablename__ = "period_metrics"
    __table_args__ = (
        UniqueConstraint(
            "agent_id", "period_start", "period_end", name="uq_period_metrics_agent_period"
        ),
        Index("ix_period_metrics_agent_id", "agent_id"),
        Index("ix_period_metrics_calculated_at", "calculated_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False
    )
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    ces_percent: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    avg_pcc: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    closed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    open: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    open_greater_than_14: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    closed_less_than_7: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    closed_equal_1: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    participation_rate: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    link_count: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    citation_count: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    creation_count: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    enterprise_percent: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    technical_percent: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    survey_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    agent: Mapped["Agent"] = relationship("Agent", back_populates="metrics", lazy="raise")
