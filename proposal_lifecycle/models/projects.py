"""Project records derived from approved proposals."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field

from proposal_lifecycle.core.time import utcnow
from proposal_lifecycle.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Project(QueryModel, table=True):
    """Downstream record created exactly once per approved proposal."""

    __tablename__ = "projects"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    proposal_id: UUID = Field(foreign_key="proposals.id", unique=True)
    team_id: UUID = Field(index=True)
    department_id: UUID | None = Field(default=None, index=True)
    title: str
    summary: str = Field(default="")
    approved_by: UUID
    visibility: str = Field(default="private")
    created_at: datetime = Field(default_factory=utcnow)
