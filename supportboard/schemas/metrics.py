import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, field_validator, model_validator


class MetricsWindow(BaseModel):
    """Half-open interval [start, end)."""

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def check_order(self):
        if self.end <= self.start:
            raise ValueError("window end must be after window start")
        return self

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


class MetricValues(BaseModel):
    """The derived statistics stored on a ``PeriodMetric`` row.

    Column names follow the dashboard's labels: ``avg_pcc`` is the average
    resolution time in hours, ``participation_rate`` is overall quality,
    ``link_count`` communication, ``citation_count`` quality of responses and
    ``creation_count`` technical accuracy (all heuristic 1-5 scores).
    """

    ces_percent: float = 0.0
    avg_pcc: float = 0.0
    closed: int = 0
    open: int = 0
    open_greater_than_14: int = 0
    closed_less_than_7: float = 0.0
    closed_equal_1: float = 0.0
    participation_rate: float = 3.0
    link_count: float = 3.0
    citation_count: float = 3.0
    creation_count: float = 3.0
    enterprise_percent: float = 0.0
    technical_percent: float = 0.0
    survey_count: int = 0

    model_config = {"from_attributes": True}


METRIC_FIELDS: tuple[str, ...] = tuple(MetricValues.model_fields)


class TeamAverage(BaseModel):
    """Per-field mean across agents; counts become fractional."""

    agent_count: int
    ces_percent: float
    avg_pcc: float
    closed: float
    open: float
    open_greater_than_14: float
    closed_less_than_7: float
    closed_equal_1: float
    participation_rate: float
    link_count: float
    citation_count: float
    creation_count: float
    enterprise_percent: float
    technical_percent: float
    survey_count: float


class AgentMetricResponse(MetricValues):
    agent_id: uuid.UUID
    zendesk_id: int
    name: str
    period_start: datetime
    period_end: datetime
    calculated_at: datetime


class LatestMetricsResponse(BaseModel):
    per_agent: list[AgentMetricResponse] = []
    team_average: TeamAverage | None = None
