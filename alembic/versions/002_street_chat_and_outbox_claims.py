"""Add street chat messages and outbox claims.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "street_chat_messages",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("street", sa.String(100), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("user_fingerprint", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_street_chat_messages_street_created_at",
        "street_chat_messages",
        ["street", "created_at"],
    )

    op.add_column("notification_outbox", sa.Column("claimed_at", sa.DateTime(timezone=True)))


def downgrade() -> None:
    op.drop_column("notification_outbox", "claimed_at")
    op.drop_table("street_chat_messages")
