"""Append-only content snapshots of a proposal."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field

from proposal_lifecycle.core.time import utcnow
from proposal_lifecycle.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class ProposalVersion(QueryModel, table=True):
    """Numbered content snapshot; read-only once ``is_locked`` is set."""

    __tablename__ = "proposal_versions"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        UniqueConstraint(
            "proposal_id",
            "version_number",
            name="uq_proposal_versions_proposal_number",
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    proposal_id: UUID = Field(foreign_key="proposals.id", index=True)
    version_number: int
    title: str
    abstract: str = Field(default="")
    problem_statement: str = Field(default="")
    objectives: str = Field(default="")
    methodology: str = Field(default="")
    timeline: str = Field(default="")
    expected_outcomes: str = Field(default="")
    file_url: str | None = None
    file_hash: str | None = None
    file_size_bytes: int | None = None
    is_approved: bool = Field(default=False)
    is_locked: bool = Field(default=False)
    created_by: UUID = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
