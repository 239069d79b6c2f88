"""Per-user in-app notification inbox.

The worker turns each queued ``ProposalNotification`` into one row per
target user; the routes in ``api/notifications.py`` read and acknowledge
them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import func, update
from sqlmodel import col, select

from proposal_lifecycle.core.errors import NotFoundError
from proposal_lifecycle.core.time import utcnow
from proposal_lifecycle.models.notifications import Notification

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from proposal_lifecycle.services.notifications.queue import ProposalNotification

PRIORITY_NORMAL = "normal"
PRIORITY_HIGH = "high"


@dataclass(frozen=True)
class NotificationText:
    title: str
    message: str
    priority: str = PRIORITY_NORMAL


_VERDICT_TEXT = {
    "approve": NotificationText(
        "Proposal Approved",
        "Your proposal has been approved!",
        PRIORITY_HIGH,
    ),
    "revise": NotificationText(
        "Revision Requested",
        "Your proposal requires revision. Please check the feedback.",
        PRIORITY_HIGH,
    ),
    "reject": NotificationText(
        "Proposal Rejected",
        "Unfortunately, your proposal has been rejected.",
        PRIORITY_HIGH,
    ),
}

_EVENT_TEXT = {
    "proposal_submitted": NotificationText(
        "Proposal Submitted", "A proposal is waiting for your review."
    ),
    "reviewer_assigned": NotificationText(
        "Review Assigned", "You have been assigned to review a proposal."
    ),
    "proposal_approved": _VERDICT_TEXT["approve"],
}


def describe_event(notification: ProposalNotification) -> NotificationText:
    """Title, message and priority shown to recipients of ``notification``."""
    if notification.event_type == "decision_recorded":
        kind = str(notification.payload.get("kind", ""))
        return _VERDICT_TEXT.get(
            kind,
            NotificationText(
                "Proposal Feedback",
                "You have received feedback on your proposal.",
                PRIORITY_HIGH,
            ),
        )
    if notification.event_type == "project_published":
        title = notification.payload.get("project_title") or "Your project"
        return NotificationText(
            "Project Published",
            f"'{title}' has been published to the public archive!",
        )
    text = _EVENT_TEXT.get(notification.event_type)
    if text is not None:
        return text
    return NotificationText(notification.event_type.replace("_", " ").capitalize(), "")


def _reference(notification: ProposalNotification) -> tuple[str, UUID, str]:
    project_id = notification.payload.get("project_id")
    if notification.event_type == "project_published" and project_id:
        return "project", UUID(str(project_id)), f"/projects/{project_id}"
    proposal_id = notification.proposal_id
    return "proposal", proposal_id, f"/proposals/{proposal_id}"


async def store_notification(
    session: AsyncSession,
    notification: ProposalNotification,
) -> list[Notification]:
    """Add one unread row per target; the caller commits."""
    text = describe_event(notification)
    reference_type, reference_id, action_url = _reference(notification)
    rows = [
        Notification(
            user_id=target,
            event_type=notification.event_type,
            reference_type=reference_type,
            reference_id=reference_id,
            title=text.title,
            message=text.message,
            action_url=action_url,
            priority=text.priority,
        )
        for target in dict.fromkeys(notification.target_ids)
    ]
    session.add_all(rows)
    await session.flush()
    return rows


async def list_notifications(
    session: AsyncSession,
    *,
    user_id: UUID,
    is_read: bool | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Notification]:
    query = Notification.objects.filter_by(user_id=user_id)
    if is_read is not None:
        query = query.filter_by(is_read=is_read)
    return await (
        query.order_by(col(Notification.created_at).desc(), col(Notification.id))
        .offset(offset)
        .limit(limit)
        .all(session)
    )


async def unread_count(session: AsyncSession, user_id: UUID) -> int:
    statement = (
        select(func.count())
        .select_from(Notification)
        .where(col(Notification.user_id) == user_id)
        .where(col(Notification.is_read).is_(False))
    )
    return int((await session.exec(statement)).one())


async def mark_read(
    session: AsyncSession,
    *,
    notification_id: UUID,
    user_id: UUID,
) -> Notification:
    """Acknowledge one notification; other users' rows are reported as missing."""
    notification = await Notification.objects.by_id(notification_id).first(session)
    if notification is None or notification.user_id != user_id:
        raise NotFoundError("Notification not found")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        session.add(notification)
        await session.commit()
    return notification


async def mark_all_read(session: AsyncSession, user_id: UUID) -> int:
    result = await session.exec(
        update(Notification)
        .where(col(Notification.user_id) == user_id)
        .where(col(Notification.is_read).is_(False))
        .values(is_read=True, read_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    await session.commit()
    return int(result.rowcount or 0)
