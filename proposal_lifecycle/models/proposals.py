"""Proposal model: the lifecycle-governed container of versions."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field

from proposal_lifecycle.core.time import utcnow
from proposal_lifecycle.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Proposal(QueryModel, table=True):
    """Team proposal moving through the review lifecycle.

    ``active_team_id`` mirrors ``team_id`` while the proposal is neither
    terminal nor soft-deleted; its UNIQUE constraint keeps one active
    proposal per team.
    """

    __tablename__ = "proposals"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    team_id: UUID | None = Field(default=None, index=True)
    active_team_id: UUID | None = Field(default=None, unique=True)
    department_id: UUID | None = Field(default=None, index=True)
    reviewer_id: UUID | None = Field(default=None, index=True)
    status: str = Field(default="draft", index=True)
    created_by: UUID = Field(index=True)
    submission_count: int = Field(default=0)
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    rejected_at: datetime | None = None
    rejected_by: UUID | None = None
    rejection_reason: str | None = None
    deleted_at: datetime | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
