"""Append-only audit log model for lifecycle actions."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field

from proposal_lifecycle.core.time import utcnow
from proposal_lifecycle.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class AuditEntry(QueryModel, table=True):
    """Append-only audit log entry; rows are never updated."""

    __tablename__ = "audit_entries"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    entity_type: str = Field(index=True)
    entity_id: UUID = Field(index=True)
    action: str = Field(index=True)
    actor_id: UUID = Field(index=True)
    actor_role: str = Field(default="")
    old_state: dict[str, object] | None = Field(default=None, sa_column=Column(JSON))
    new_state: dict[str, object] | None = Field(default=None, sa_column=Column(JSON))
    context: dict[str, object] | None = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
