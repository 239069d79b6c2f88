"""In-app notification rows written by the notification worker."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field

from proposal_lifecycle.core.time import utcnow
from proposal_lifecycle.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Notification(QueryModel, table=True):
    """One user's copy of a lifecycle event."""

    __tablename__ = "notifications"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(index=True)
    event_type: str = Field(index=True)
    reference_type: str = Field(default="proposal")
    reference_id: UUID = Field(index=True)
    title: str
    message: str = Field(default="")
    action_url: str = Field(default="")
    priority: str = Field(default="normal")
    is_read: bool = Field(default=False, index=True)
    read_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
