"""Schemas for the in-app notification inbox."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class NotificationRead(SQLModel):
    id: UUID
    event_type: str
    reference_type: str
    reference_id: UUID
    title: str
    message: str
    action_url: str
    priority: str
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime


class NotificationList(SQLModel):
    """A page of the caller's notifications plus their total unread count."""

    items: list[NotificationRead]
    unread_count: int


class UnreadCountRead(SQLModel):
    unread_count: int


class MarkAllReadResponse(SQLModel):
    updated: int
