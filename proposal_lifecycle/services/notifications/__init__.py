"""Proposal notification queueing and dispatch."""

from proposal_lifecycle.services.notifications.queue import (
    TASK_TYPE,
    ProposalNotification,
    decode_notification_task,
    enqueue_notification,
)

__all__ = [
    "TASK_TYPE",
    "ProposalNotification",
    "decode_notification_task",
    "enqueue_notification",
]
