"""Initial schema.

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # TRAFFIC_REPORTS
    op.create_table(
        "traffic_reports",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("street", sa.String(100), nullable=False),
        sa.Column("direction", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("user_fingerprint", sa.String(100), nullable=False),
        sa.Column("reported_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("speed", sa.Float),
        sa.Column("auto_submitted", sa.Boolean, server_default=sa.false(), nullable=False),
    )
    op.create_index(
        "ix_traffic_reports_street_direction_reported_at",
        "traffic_reports",
        ["street", "direction", "reported_at"],
    )
    op.create_index(
        "ix_traffic_reports_fingerprint_reported_at",
        "traffic_reports",
        ["user_fingerprint", "reported_at"],
    )

    # INCIDENT_REPORTS
    op.create_table(
        "incident_reports",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("street", sa.String(100), nullable=False),
        sa.Column("direction", sa.String(20), nullable=False),
        sa.Column("incident_type", sa.String(50), nullable=False),
        sa.Column("user_fingerprint", sa.String(100), nullable=False),
        sa.Column("reported_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_incident_reports_street_reported_at", "incident_reports", ["street", "reported_at"])

    # RATE_LIMITS (one row per admission slot)
    op.create_table(
        "rate_limits",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("identifier", sa.String(300), nullable=False),
        sa.Column("action_kind", sa.String(50), nullable=False),
        sa.Column("slot", sa.Integer, nullable=False, server_default="0"),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_action_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("count", sa.Integer, nullable=False, server_default="1"),
        sa.UniqueConstraint("identifier", "action_kind", "slot"),
    )
    op.create_index("ix_rate_limits_last_action_at", "rate_limits", ["last_action_at"])

    # PAGE_VISITS
    op.create_table(
        "page_visits",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_fingerprint", sa.String(100), nullable=False),
        sa.Column("visited_at", sa.DateTime(timezone=True), nullable=False),
    )

    # NOTIFICATION_OUTBOX
    op.create_table(
        "notification_outbox",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("topic", sa.String(200), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("attempts", sa.Integer, server_default="0"),
        sa.Column("last_error", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("delivered_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_notification_outbox_status", "notification_outbox", ["status"])


def downgrade() -> None:
    op.drop_table("notification_outbox")
    op.drop_table("page_visits")
    op.drop_table("rate_limits")
    op.drop_table("incident_reports")
    op.drop_table("traffic_reports")
