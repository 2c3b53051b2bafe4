"""Records as returned by the Zendesk REST API.

Only the fields the dashboard uses are declared; everything else in the
payload is ignored.
"""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, field_validator

from supportboard.models.base import (
    SatisfactionScore,
    TicketPriority,
    TicketStatus,
    TicketType,
)


class AgentRecord(BaseModel):
    id: int
    name: str
    email: str = ""
    role: str | None = "agent"
    active: bool = True

    @field_validator("email", mode="before")
    @classmethod
    def none_email_to_empty(cls, value):
        return value or ""


class TicketRecord(BaseModel):
    id: int
    subject: str | None = None
    status: TicketStatus
    priority: TicketPriority | None = None
    type: TicketType | None = None
    assignee_id: int | None = None
    requester_id: int | None = None
    submitter_id: int | None = None
    created_at: datetime
    updated_at: datetime
    solved_at: datetime | None = None
    tags: list[str] = []
    custom_fields: dict[str, Any] = {}

    @field_validator("tags", mode="before")
    @classmethod
    def none_tags_to_empty(cls, value):
        return value or []

    @field_validator("custom_fields", mode="before")
    @classmethod
    def flatten_custom_fields(cls, value):
        """Zendesk sends ``[{"id": 123, "value": "x"}, ...]``; store ``{"123": "x"}``."""
        if value is None:
            return {}
        if isinstance(value, list):
            return {
                str(item["id"]): item.get("value")
                for item in value
                if isinstance(item, dict) and "id" in item
            }
        return value


class SatisfactionRatingRecord(BaseModel):
    id: int
    score: SatisfactionScore
    ticket_id: int | None = None
    assignee_id: int | None = None
    requester_id: int | None = None
    comment: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
