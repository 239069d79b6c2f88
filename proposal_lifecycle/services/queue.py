"""Redis list-backed task queue with delayed retry scheduling.

Ready tasks live in a Redis list; tasks waiting for a retry delay live in a
sorted set (``<queue>:scheduled``) scored by their due timestamp and are moved
back onto the list as the worker polls.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, cast

import redis

from proposal_lifecycle.core.config import settings
from proposal_lifecycle.core.logging import get_logger

logger = get_logger(__name__)

_SCHEDULED_SUFFIX = ":scheduled"
_PROMOTE_BATCH_SIZE = 100


@dataclass(frozen=True)
class QueuedTask:
    """Serializable envelope for one unit of background work."""

    task_type: str
    payload: dict[str, Any]
    created_at: datetime
    attempts: int = 0

    def to_json(self) -> str:
        return json.dumps(
            {
                "task_type": self.task_type,
                "payload": self.payload,
                "created_at": self.created_at.isoformat(),
                "attempts": self.attempts,
            },
            sort_keys=True,
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> QueuedTask:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        data: dict[str, Any] = json.loads(text)
        return cls(
            task_type=str(data["task_type"]),
            payload=dict(data.get("payload") or {}),
            created_at=datetime.fromisoformat(data["created_at"]),
            attempts=int(data.get("attempts", 0)),
        )


def _redis_client(redis_url: str | None = None) -> redis.Redis:
    return redis.Redis.from_url(redis_url or settings.rq_redis_url)


def _scheduled_key(queue_name: str) -> str:
    return f"{queue_name}{_SCHEDULED_SUFFIX}"


def _now_seconds() -> float:
    return time.time()


def _promote_due_tasks(client: redis.Redis, queue_name: str) -> float | None:
    """Move due scheduled tasks onto the ready list.

    Returns the seconds until the next scheduled task, or ``None`` when the
    schedule is empty.
    """
    scheduled = _scheduled_key(queue_name)
    now = _now_seconds()
    due = cast(
        list[str | bytes],
        client.zrangebyscore(scheduled, "-inf", now, start=0, num=_PROMOTE_BATCH_SIZE),
    )
    if due:
        client.lpush(queue_name, *due)
        client.zrem(scheduled, *due)
        logger.debug(
            "queue.scheduled.promoted",
            extra={"queue_name": queue_name, "count": len(due)},
        )
    upcoming = cast(
        list[tuple[str | bytes, float]],
        client.zrangebyscore(scheduled, now, "+inf", start=0, num=1, withscores=True),
    )
    if not upcoming:
        return None
    return max(0.0, float(upcoming[0][1]) - now)


def enqueue_task(
    task: QueuedTask,
    queue_name: str,
    *,
    redis_url: str | None = None,
    delay_seconds: float = 0,
) -> bool:
    """Push a task now, or schedule it when ``delay_seconds`` is positive.

    Returns ``False`` instead of raising when Redis is unreachable.
    """
    delay = max(0.0, float(delay_seconds))
    try:
        client = _redis_client(redis_url=redis_url)
        if delay > 0:
            client.zadd(_scheduled_key(queue_name), {task.to_json(): _now_seconds() + delay})
        else:
            client.lpush(queue_name, task.to_json())
    except redis.RedisError as exc:
        logger.warning(
            "queue.enqueue_failed",
            extra={"task_type": task.task_type, "queue_name": queue_name, "error": str(exc)},
        )
        return False
    logger.info(
        "queue.enqueued",
        extra={
            "task_type": task.task_type,
            "queue_name": queue_name,
            "attempt": task.attempts,
            "delay_seconds": delay,
        },
    )
    return True


def dequeue_task(
    queue_name: str,
    *,
    redis_url: str | None = None,
    block: bool = False,
    block_timeout: float = 0,
) -> QueuedTask | None:
    """Pop the oldest ready task, optionally blocking until one arrives."""
    client = _redis_client(redis_url=redis_url)
    next_due = _promote_due_tasks(client, queue_name)
    raw: str | bytes | None
    if block:
        timeout = max(0.0, float(block_timeout))
        if next_due is not None:
            timeout = min(timeout, next_due) if timeout else next_due
        popped = cast(
            tuple[bytes | str, bytes | str] | None,
            client.brpop([queue_name], timeout=timeout),
        )
        raw = popped[1] if popped is not None else None
    else:
        raw = cast(str | bytes | None, client.rpop(queue_name))
    if raw is None:
        return None
    try:
        return QueuedTask.from_json(raw)
    except (ValueError, KeyError, TypeError):
        logger.error(
            "queue.decode_failed",
            extra={"queue_name": queue_name, "raw_payload": str(raw)},
        )
        raise


def requeue_if_failed(
    task: QueuedTask,
    queue_name: str,
    *,
    max_retries: int,
    redis_url: str | None = None,
    delay_seconds: float = 0,
) -> bool:
    """Requeue a failed task with one more attempt; drop it past ``max_retries``."""
    retry = replace(task, attempts=task.attempts + 1)
    if retry.attempts > max_retries:
        logger.warning(
            "queue.task.dropped",
            extra={
                "task_type": task.task_type,
                "queue_name": queue_name,
                "attempts": retry.attempts,
            },
        )
        return False
    return enqueue_task(retry, queue_name, redis_url=redis_url, delay_seconds=delay_seconds)
