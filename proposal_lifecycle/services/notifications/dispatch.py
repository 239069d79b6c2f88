"""Notification dispatch handler run by the queue worker."""

from __future__ import annotations

from proposal_lifecycle.core.logging import get_logger
from proposal_lifecycle.db.session import async_session_maker
from proposal_lifecycle.services.notifications.inbox import store_notification
from proposal_lifecycle.services.notifications.queue import (
    ProposalNotification,
    decode_notification_task,
    requeue_if_failed,
)
from proposal_lifecycle.services.queue import QueuedTask

logger = get_logger(__name__)


async def _deliver(notification: ProposalNotification) -> None:
    """Write the recipients' inbox rows in one transaction."""
    if not notification.target_ids:
        return
    async with async_session_maker() as session:
        rows = await store_notification(session, notification)
        await session.commit()
    logger.info(
        "proposal.notification.dispatch",
        extra={
            "event_type": notification.event_type,
            "proposal_id": str(notification.proposal_id),
            "target_ids": [str(target) for target in notification.target_ids],
            "stored": len(rows),
        },
    )


async def process_notification_task(task: QueuedTask) -> None:
    await _deliver(decode_notification_task(task))


def requeue_notification_task(task: QueuedTask, *, delay_seconds: float = 0) -> bool:
    return requeue_if_failed(decode_notification_task(task), delay_seconds=delay_seconds)
