"""Queue persistence for proposal lifecycle notifications."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from proposal_lifecycle.core.config import settings
from proposal_lifecycle.core.logging import get_logger
from proposal_lifecycle.services.queue import QueuedTask, enqueue_task
from proposal_lifecycle.services.queue import requeue_if_failed as requeue_task_if_failed

logger = get_logger(__name__)
TASK_TYPE = "proposal_notification"


@dataclass(frozen=True)
class ProposalNotification:
    """A lifecycle event addressed to a set of users."""

    # proposal_submitted | reviewer_assigned | decision_recorded | proposal_approved ...
    event_type: str
    proposal_id: UUID
    target_ids: list[UUID] = field(default_factory=list)
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    attempts: int = 0


def _to_task(notification: ProposalNotification) -> QueuedTask:
    return QueuedTask(
        task_type=TASK_TYPE,
        payload={
            "event_type": notification.event_type,
            "proposal_id": str(notification.proposal_id),
            "target_ids": [str(target) for target in notification.target_ids],
            "payload": notification.payload,
        },
        created_at=notification.created_at,
        attempts=notification.attempts,
    )


def decode_notification_task(task: QueuedTask) -> ProposalNotification:
    if task.task_type != TASK_TYPE:
        raise ValueError(f"Unexpected task_type={task.task_type!r}; expected {TASK_TYPE!r}")
    data = task.payload
    return ProposalNotification(
        event_type=str(data["event_type"]),
        proposal_id=UUID(data["proposal_id"]),
        target_ids=[UUID(target) for target in data.get("target_ids", [])],
        payload=dict(data.get("payload") or {}),
        created_at=task.created_at,
        attempts=task.attempts,
    )


def enqueue_notification(notification: ProposalNotification) -> bool:
    """Push a notification onto the Redis queue; never raises."""
    queued = enqueue_task(
        _to_task(notification),
        settings.rq_queue_name,
        redis_url=settings.rq_redis_url,
    )
    if queued:
        logger.info(
            "proposal.notification.enqueued",
            extra={
                "event_type": notification.event_type,
                "proposal_id": str(notification.proposal_id),
                "target_count": len(notification.target_ids),
            },
        )
    return queued


def requeue_if_failed(notification: ProposalNotification, *, delay_seconds: float = 0) -> bool:
    return requeue_task_if_failed(
        _to_task(notification),
        settings.rq_queue_name,
        max_retries=settings.rq_dispatch_max_retries,
        redis_url=settings.rq_redis_url,
        delay_seconds=delay_seconds,
    )
