"""In-app notifications table.

Revision ID: 7a41c9e2b5d3
Revises: 3e8b1c6d2f40
Create Date: 2026-10-18 12:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "7a41c9e2b5d3"
down_revision = "3e8b1c6d2f40"
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("notifications"):
        op.create_table(
            "notifications",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("user_id", sa.Uuid(), nullable=False),
            sa.Column("event_type", sa.String(), nullable=False),
            sa.Column("reference_type", sa.String(), nullable=False, server_default="proposal"),
            sa.Column("reference_id", sa.Uuid(), nullable=False),
            sa.Column("title", sa.String(), nullable=False),
            sa.Column("message", sa.String(), nullable=False, server_default=""),
            sa.Column("action_url", sa.String(), nullable=False, server_default=""),
            sa.Column("priority", sa.String(), nullable=False, server_default="normal"),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("read_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        for column in ("user_id", "event_type", "reference_id", "is_read"):
            op.create_index(op.f(f"ix_notifications_{column}"), "notifications", [column])


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    if inspector.has_table("notifications"):
        op.drop_table("notifications")
