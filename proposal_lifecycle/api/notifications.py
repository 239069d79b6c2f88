"""In-app notification inbox for the calling user."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, Response, status
from sqlmodel.ext.asyncio.session import AsyncSession

from proposal_lifecycle.api.deps import ACTOR_DEP, SESSION_DEP
from proposal_lifecycle.core.auth import ActorContext
from proposal_lifecycle.models.notifications import Notification
from proposal_lifecycle.schemas.errors import ErrorResponse
from proposal_lifecycle.schemas.notifications import (
    MarkAllReadResponse,
    NotificationList,
    NotificationRead,
    UnreadCountRead,
)
from proposal_lifecycle.services.notifications import inbox

router = APIRouter(
    prefix="/notifications",
    tags=["notifications"],
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
)
IS_READ_QUERY = Query(default=None)
LIMIT_QUERY = Query(default=50, ge=1, le=200)
OFFSET_QUERY = Query(default=0, ge=0)


def _to_read(notification: Notification) -> NotificationRead:
    return NotificationRead.model_validate(notification, from_attributes=True)


@router.get("", response_model=NotificationList)
async def list_notifications(
    response: Response,
    is_read: bool | None = IS_READ_QUERY,
    limit: int = LIMIT_QUERY,
    offset: int = OFFSET_QUERY,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> NotificationList:
    """List the caller's notifications, newest first."""
    items = await inbox.list_notifications(
        session,
        user_id=actor.user_id,
        is_read=is_read,
        limit=limit,
        offset=offset,
    )
    response.headers["X-Limit"] = str(limit)
    response.headers["X-Offset"] = str(offset)
    return NotificationList(
        items=[_to_read(item) for item in items],
        unread_count=await inbox.unread_count(session, actor.user_id),
    )


@router.get("/unread-count", response_model=UnreadCountRead)
async def unread_count(
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> UnreadCountRead:
    return UnreadCountRead(unread_count=await inbox.unread_count(session, actor.user_id))


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> MarkAllReadResponse:
    return MarkAllReadResponse(updated=await inbox.mark_all_read(session, actor.user_id))


@router.post("/{notification_id}/read", response_model=NotificationRead)
async def mark_read(
    notification_id: UUID,
    session: AsyncSession = SESSION_DEP,
    actor: ActorContext = ACTOR_DEP,
) -> NotificationRead:
    notification = await inbox.mark_read(
        session,
        notification_id=notification_id,
        user_id=actor.user_id,
    )
    return _to_read(notification)
