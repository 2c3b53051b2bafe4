from supportboard.models.agent import Agent
from supportboard.models.base import (
    Base,
    SatisfactionScore,
    TicketPriority,
    TicketStatus,
    TicketType,
    TimestampMixin,
)
from supportboard.models.period_metric import PeriodMetric
from supportboard.models.ticket import Ticket

__all__ = [
    "Agent",
    "Base",
    "PeriodMetric",
    "SatisfactionScore",
    "Ticket",
    "TicketPriority",
    "TicketStatus",
    "TicketType",
    "TimestampMixin",
]
