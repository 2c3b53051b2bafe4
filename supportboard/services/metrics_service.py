"""
Per-agent metric calculation.

Everything here is pure: the caller passes the tickets, the ratings and the
clock. The four quality scores are heuristics on a 1-5 scale and fall back
to a neutral 3 when there is nothing to score.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from statistics import fmean
from typing import Optional

from supportboard.models.base import (
    CLOSED_STATUSES,
    OPEN_STATUSES,
    SatisfactionScore,
    TicketPriority,
    TicketStatus,
)
from supportboard.schemas.metrics import METRIC_FIELDS, MetricValues, MetricsWindow, TeamAverage
from supportboard.schemas.zendesk import AgentRecord, SatisfactionRatingRecord, TicketRecord

NEUTRAL_SCORE = 3.0
ENTERPRISE_MARKER = "enterprise"
TECHNICAL_KEYWORDS = ("technical", "api", "integration", "development", "bug")
HIGH_PRIORITIES = frozenset({TicketPriority.high, TicketPriority.urgent})


def _clamp_score(value: float) -> float:
    return max(1.0, min(5.0, value))


def _percent(part: int, whole: int) -> float:
    return part / whole * 100 if whole else 0.0


def _days(delta: timedelta) -> float:
    return delta.total_seconds() / 86400


def _good_count(ratings: Sequence[SatisfactionRatingRecord]) -> int:
    return sum(1 for r in ratings if r.score == SatisfactionScore.good)


def _closed_in_window(
    tickets: Sequence[TicketRecord], window: Optional[MetricsWindow]
) -> list[TicketRecord]:
    """Closed tickets, attributed to the window by when they were solved."""
    closed = [t for t in tickets if t.status in CLOSED_STATUSES]
    if window is None:
        return closed
    return [t for t in closed if window.contains(t.solved_at or t.updated_at)]


# ---------------------------------------------------------------------------
# Heuristic scores
# ---------------------------------------------------------------------------

def resolution_score(tickets: Sequence[TicketRecord]) -> float:
    """Bucket the mean solve time in days: faster is better."""
    if not tickets:
        return NEUTRAL_SCORE
    solve_days = [_days(t.solved_at - t.created_at) for t in tickets if t.solved_at]
    if not solve_days:
        return 2.0

    mean_days = fmean(solve_days)
    if mean_days <= 1:
        return 5.0
    if mean_days <= 3:
        return 4.0
    if mean_days <= 7:
        return 3.0
    if mean_days <= 14:
        return 2.0
    return 1.0


def satisfaction_score(ratings: Sequence[SatisfactionRatingRecord]) -> float:
    if not ratings:
        return NEUTRAL_SCORE
    return _clamp_score(_good_count(ratings) / len(ratings) * 5)


def handling_score(tickets: Sequence[TicketRecord]) -> float:
    """Share of high/urgent tickets that got solved, scaled to 1-5."""
    if not tickets:
        return NEUTRAL_SCORE
    high = [t for t in tickets if t.priority in HIGH_PRIORITIES]
    if not high:
        return 4.0
    handled = sum(1 for t in high if t.status in CLOSED_STATUSES)
    return _clamp_score(handled / len(high) * 5)


def overall_quality_score(
    tickets: Sequence[TicketRecord], ratings: Sequence[SatisfactionRatingRecord]
) -> float:
    return fmean(
        [resolution_score(tickets), satisfaction_score(ratings), handling_score(tickets)]
    )


def communication_score(tickets: Sequence[TicketRecord]) -> float:
    # Share of tickets touched after creation; a ratio, so the clamp pins it at 1
    if not tickets:
        return NEUTRAL_SCORE
    touched = sum(1 for t in tickets if t.updated_at > t.created_at)
    return _clamp_score(touched / len(tickets))


def response_quality_score(ratings: Sequence[SatisfactionRatingRecord]) -> float:
    if not ratings:
        return NEUTRAL_SCORE
    bad = sum(1 for r in ratings if r.score == SatisfactionScore.bad)
    return _clamp_score((_good_count(ratings) * 5 + bad) / len(ratings))


def technical_accuracy_score(tickets: Sequence[TicketRecord]) -> float:
    """Penalise reopened tickets: open again after their last update."""
    if not tickets:
        return NEUTRAL_SCORE
    reopened = sum(
        1 for t in tickets if t.status == TicketStatus.open and t.updated_at > t.created_at
    )
    return _clamp_score((1 - reopened / len(tickets)) * 5)


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------

def _has_tag(ticket: TicketRecord, keywords: Iterable[str]) -> bool:
    return any(keyword in tag.lower() for tag in ticket.tags for keyword in keywords)


def calculate_agent_metrics(
    agent: AgentRecord,
    tickets: Iterable[TicketRecord],
    ratings: Iterable[SatisfactionRatingRecord],
    *,
    now: datetime,
    window: Optional[MetricsWindow] = None,
    open_age_days: int = 14,
) -> MetricValues:
    """Compute one agent's snapshot from the full ticket and rating lists.

    Only tickets and ratings whose ``assignee_id`` is the agent's Zendesk id
    are considered. ``window`` restricts which closed tickets count as closed
    in the period; open counts, averages and tag shares use every assigned
    ticket. ``now`` drives the open-ticket aging.
    """
    agent_tickets = [t for t in tickets if t.assignee_id == agent.id]
    agent_ratings = [r for r in ratings if r.assignee_id == agent.id]

    closed = _closed_in_window(agent_tickets, window)
    open_tickets = [t for t in agent_tickets if t.status in OPEN_STATUSES]
    age_limit = timedelta(days=open_age_days)

    solve_days = [_days(t.solved_at - t.created_at) for t in closed if t.solved_at]
    handle_hours = [
        (t.updated_at - t.created_at).total_seconds() / 3600 for t in agent_tickets
    ]

    return MetricValues(
        ces_percent=_percent(_good_count(agent_ratings), len(agent_ratings)),
        avg_pcc=fmean(handle_hours) if handle_hours else 0.0,
        closed=len(closed),
        open=len(open_tickets),
        open_greater_than_14=sum(1 for t in open_tickets if now - t.created_at > age_limit),
        closed_less_than_7=_percent(sum(1 for d in solve_days if d <= 7), len(closed)),
        closed_equal_1=_percent(sum(1 for d in solve_days if d <= 1), len(closed)),
        participation_rate=overall_quality_score(agent_tickets, agent_ratings),
        link_count=communication_score(agent_tickets),
        citation_count=response_quality_score(agent_ratings),
        creation_count=technical_accuracy_score(agent_tickets),
        enterprise_percent=_percent(
            sum(1 for t in agent_tickets if _has_tag(t, (ENTERPRISE_MARKER,))),
            len(agent_tickets),
        ),
        technical_percent=_percent(
            sum(1 for t in agent_tickets if _has_tag(t, TECHNICAL_KEYWORDS)),
            len(agent_tickets),
        ),
        survey_count=len(agent_ratings),
    )


def team_average(values: Sequence[MetricValues]) -> Optional[TeamAverage]:
    """Per-field arithmetic mean across agents, or None when there are none."""
    if not values:
        return None
    return TeamAverage(
        agent_count=len(values),
        **{field: fmean(getattr(v, field) for v in values) for field in METRIC_FIELDS},
    )
