"""Reviewer decisions recorded against a specific proposal version."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field

from proposal_lifecycle.core.time import utcnow
from proposal_lifecycle.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Decision(QueryModel, table=True):
    """Immutable reviewer verdict; one row per review action."""

    __tablename__ = "decisions"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    proposal_id: UUID = Field(foreign_key="proposals.id", index=True)
    version_id: UUID = Field(foreign_key="proposal_versions.id", index=True)
    reviewer_id: UUID = Field(index=True)
    kind: str = Field(index=True)
    justification: str
    created_at: datetime = Field(default_factory=utcnow)
