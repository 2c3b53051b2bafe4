from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, Boolean, Index, String, true
from sqlalchemy.orm import Mapped, mapped_column, relationship

from supportboard.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from supportboard.models.period_metric import PeriodMetric


class Agent(TimestampMixin, Base):
    """A tracked support engineer, keyed by their Zendesk user id."""

    __tablename__ = "agents"
    __table_args__ = (Index("ix_agents_name", "name"),)

    zendesk_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())

    # Relationships
    metrics: Mapped[list["PeriodMetric"]] = relationship(
        "PeriodMetric", back_populates="agent", lazy="raise", passive_deletes=True
    )
