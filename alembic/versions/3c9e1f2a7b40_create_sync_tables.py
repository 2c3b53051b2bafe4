"""create agents, tickets and period_metrics

Revision ID: 3c9e1f2a7b40
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "3c9e1f2a7b40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ticket_status = sa.Enum("new", "open", "pending", "hold", "solved", "closed", name="ticketstatus")
ticket_priority = sa.Enum("low", "normal", "high", "urgent", name="ticketpriority")
ticket_type = sa.Enum("problem", "incident", "question", "task", name="tickettype")

METRIC_COLUMNS = (
    ("ces_percent", sa.Float),
    ("avg_pcc", sa.Float),
    ("closed", sa.Integer),
    ("open", sa.Integer),
    ("open_greater_than_14", sa.Integer),
    ("closed_less_than_7", sa.Float),
    ("closed_equal_1", sa.Float),
    ("participation_rate", sa.Float),
    ("link_count", sa.Float),
    ("citation_count", sa.Float),
    ("creation_count", sa.Float),
    ("enterprise_percent", sa.Float),
    ("technical_percent", sa.Float),
    ("survey_count", sa.Integer),
)


def upgrade() -> None:
    op.create_table(
        "agents",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("zendesk_id", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(100), nullable=True),
        sa.Column("active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_agents_name", "agents", ["name"])

    op.create_table(
        "tickets",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("zendesk_id", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("subject", sa.Text(), nullable=True),
        sa.Column("status", ticket_status, nullable=False),
        sa.Column("priority", ticket_priority, nullable=True),
        sa.Column("type", ticket_type, nullable=True),
        sa.Column("assignee_id", sa.BigInteger(), nullable=True),
        sa.Column("requester_id", sa.BigInteger(), nullable=True),
        sa.Column("submitter_id", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("solved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tags", postgresql.JSONB(), nullable=False),
        sa.Column("custom_fields", postgresql.JSONB(), nullable=False),
        sa.Column("imported_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_tickets_assignee_id", "tickets", ["assignee_id"])
    op.create_index("ix_tickets_status", "tickets", ["status"])
    op.create_index("ix_tickets_created_at", "tickets", ["created_at"])
    op.create_index("ix_tickets_updated_at", "tickets", ["updated_at"])

    op.create_table(
        "period_metrics",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "agent_id",
            sa.Uuid(),
            sa.ForeignKey("agents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("calculated_at", sa.DateTime(timezone=True), nullable=False),
        *(
            sa.Column(name, type_(), server_default="0", nullable=False)
            for name, type_ in METRIC_COLUMNS
        ),
        sa.UniqueConstraint(
            "agent_id", "period_start", "period_end", name="uq_period_metrics_agent_period"
        ),
    )
    op.create_index("ix_period_metrics_agent_id", "period_metrics", ["agent_id"])
    op.create_index("ix_period_metrics_calculated_at", "period_metrics", ["calculated_at"])


def downgrade() -> None:
    op.drop_table("period_metrics")
    op.drop_table("tickets")
    op.drop_table("agents")
    ticket_type.drop(op.get_bind(), checkfirst=True)
    ticket_priority.drop(op.get_bind(), checkfirst=True)
    ticket_status.drop(op.get_bind(), checkfirst=True)
