"""Proposal lifecycle tables: proposals, versions, decisions, projects, audit.

Revision ID: 3e8b1c6d2f40
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "3e8b1c6d2f40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("proposals"):
        op.create_table(
            "proposals",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("team_id", sa.Uuid(), nullable=True),
            sa.Column("active_team_id", sa.Uuid(), nullable=True),
            sa.Column("department_id", sa.Uuid(), nullable=True),
            sa.Column("reviewer_id", sa.Uuid(), nullable=True),
            sa.Column("status", sa.String(), nullable=False, server_default="draft"),
            sa.Column("created_by", sa.Uuid(), nullable=False),
            sa.Column("submission_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("submitted_at", sa.DateTime(), nullable=True),
            sa.Column("approved_at", sa.DateTime(), nullable=True),
            sa.Column("approved_by", sa.Uuid(), nullable=True),
            sa.Column("rejected_at", sa.DateTime(), nullable=True),
            sa.Column("rejected_by", sa.Uuid(), nullable=True),
            sa.Column("rejection_reason", sa.String(), nullable=True),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("active_team_id", name="uq_proposals_active_team_id"),
        )
        for column in (
            "team_id",
            "department_id",
            "reviewer_id",
            "status",
            "created_by",
            "deleted_at",
        ):
            op.create_index(op.f(f"ix_proposals_{column}"), "proposals", [column])

    if not inspector.has_table("proposal_versions"):
        op.create_table(
            "proposal_versions",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("proposal_id", sa.Uuid(), nullable=False),
            sa.Column("version_number", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(), nullable=False),
            sa.Column("abstract", sa.String(), nullable=False, server_default=""),
            sa.Column("problem_statement", sa.String(), nullable=False, server_default=""),
            sa.Column("objectives", sa.String(), nullable=False, server_default=""),
            sa.Column("methodology", sa.String(), nullable=False, server_default=""),
            sa.Column("timeline", sa.String(), nullable=False, server_default=""),
            sa.Column("expected_outcomes", sa.String(), nullable=False, server_default=""),
            sa.Column("file_url", sa.String(), nullable=True),
            sa.Column("file_hash", sa.String(), nullable=True),
            sa.Column("file_size_bytes", sa.Integer(), nullable=True),
            sa.Column("is_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_by", sa.Uuid(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["proposal_id"], ["proposals.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "proposal_id",
                "version_number",
                name="uq_proposal_versions_proposal_number",
            ),
        )
        op.create_index(
            op.f("ix_proposal_versions_proposal_id"), "proposal_versions", ["proposal_id"]
        )
        op.create_index(
            op.f("ix_proposal_versions_created_by"), "proposal_versions", ["created_by"]
        )

    if not inspector.has_table("decisions"):
        op.create_table(
            "decisions",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("proposal_id", sa.Uuid(), nullable=False),
            sa.Column("version_id", sa.Uuid(), nullable=False),
            sa.Column("reviewer_id", sa.Uuid(), nullable=False),
            sa.Column("kind", sa.String(), nullable=False),
            sa.Column("justification", sa.String(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["proposal_id"], ["proposals.id"]),
            sa.ForeignKeyConstraint(["version_id"], ["proposal_versions.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        for column in ("proposal_id", "version_id", "reviewer_id", "kind"):
            op.create_index(op.f(f"ix_decisions_{column}"), "decisions", [column])

    if not inspector.has_table("projects"):
        op.create_table(
            "projects",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("proposal_id", sa.Uuid(), nullable=False),
            sa.Column("team_id", sa.Uuid(), nullable=False),
            sa.Column("department_id", sa.Uuid(), nullable=True),
            sa.Column("title", sa.String(), nullable=False),
            sa.Column("summary", sa.String(), nullable=False, server_default=""),
            sa.Column("approved_by", sa.Uuid(), nullable=False),
            sa.Column("visibility", sa.String(), nullable=False, server_default="private"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["proposal_id"], ["proposals.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("proposal_id"),
        )
        op.create_index(op.f("ix_projects_team_id"), "projects", ["team_id"])
        op.create_index(op.f("ix_projects_department_id"), "projects", ["department_id"])

    if not inspector.has_table("audit_entries"):
        op.create_table(
            "audit_entries",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("entity_type", sa.String(), nullable=False),
            sa.Column("entity_id", sa.Uuid(), nullable=False),
            sa.Column("action", sa.String(), nullable=False),
            sa.Column("actor_id", sa.Uuid(), nullable=False),
            sa.Column("actor_role", sa.String(), nullable=False, server_default=""),
            sa.Column("old_state", sa.JSON(), nullable=True),
            sa.Column("new_state", sa.JSON(), nullable=True),
            sa.Column("context", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        for column in ("entity_type", "entity_id", "action", "actor_id"):
            op.create_index(op.f(f"ix_audit_entries_{column}"), "audit_entries", [column])


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    for table in ("audit_entries", "projects", "decisions", "proposal_versions", "proposals"):
        if inspector.has_table(table):
            op.drop_table(table)
