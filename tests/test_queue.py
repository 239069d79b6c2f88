# ruff: noqa: INP001
"""Redis queue helper tests, including delayed retry scheduling."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
import redis

from proposal_lifecycle.services import queue
from proposal_lifecycle.services.queue import (
    QueuedTask,
    dequeue_task,
    enqueue_task,
    requeue_if_failed,
)


class _FakeRedis:
    def __init__(self) -> None:
        self.values: list[str] = []
        self.scheduled: dict[str, float] = {}

    def lpush(self, key: str, *values: str) -> None:
        del key
        for value in values:
            self.values.insert(0, value)

    def rpop(self, key: str) -> str | None:
        del key
        if not self.values:
            return None
        return self.values.pop()

    def brpop(self, keys: list[str], timeout: float = 0) -> tuple[str, str] | None:
        del timeout
        value = self.rpop(keys[0])
        return None if value is None else (keys[0], value)

    def zadd(self, key: str, mapping: dict[str, float]) -> None:
        del key
        self.scheduled.update(mapping)

    def zrem(self, key: str, *members: str) -> None:
        del key
        for member in members:
            self.scheduled.pop(member, None)

    def zrangebyscore(
        self,
        key: str,
        low: float | str,
        high: float | str,
        *,
        start: int = 0,
        num: int | None = None,
        withscores: bool = False,
    ) -> list[object]:
        del key
        lo = float("-inf") if low == "-inf" else float(low)
        hi = float("inf") if high == "+inf" else float(high)
        hits = sorted(
            ((member, score) for member, score in self.scheduled.items() if lo <= score <= hi),
            key=lambda item: item[1],
        )
        hits = hits[start : start + num if num is not None else None]
        if withscores:
            return list(hits)
        return [member for member, _ in hits]


@pytest.fixture
def fake_redis(monkeypatch: pytest.MonkeyPatch) -> _FakeRedis:
    fake = _FakeRedis()

    def _fake_client(*, redis_url: str | None = None) -> _FakeRedis:
        return fake

    monkeypatch.setattr("proposal_lifecycle.services.queue._redis_client", _fake_client)
    return fake


def _task(attempts: int = 0) -> QueuedTask:
    return QueuedTask(
        task_type="proposal_notification",
        payload={"event_type": "proposal_submitted"},
        created_at=datetime.now(UTC),
        attempts=attempts,
    )


def test_enqueue_then_dequeue_preserves_envelope(fake_redis: _FakeRedis) -> None:
    task = _task(attempts=1)

    assert enqueue_task(task, "lifecycle")
    item = dequeue_task("lifecycle")

    assert item == task
    assert dequeue_task("lifecycle") is None


def test_queue_is_first_in_first_out(fake_redis: _FakeRedis) -> None:
    for index in range(3):
        enqueue_task(
            QueuedTask(task_type="t", payload={"n": index}, created_at=datetime.now(UTC)),
            "lifecycle",
        )

    order = []
    while (item := dequeue_task("lifecycle")) is not None:
        order.append(item.payload["n"])
    assert order == [0, 1, 2]


@pytest.mark.parametrize("attempts", [0, 1, 2, 3])
def test_requeue_respects_retry_cap(fake_redis: _FakeRedis, attempts: int) -> None:
    task = _task(attempts=attempts)

    if attempts >= 3:
        assert requeue_if_failed(task, "lifecycle", max_retries=3) is False
        assert fake_redis.values == []
    else:
        assert requeue_if_failed(task, "lifecycle", max_retries=3) is True
        requeued = dequeue_task("lifecycle")
        assert requeued is not None
        assert requeued.attempts == attempts + 1


def test_delayed_task_waits_until_due(
    fake_redis: _FakeRedis,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    clock = {"now": 1_000.0}
    monkeypatch.setattr(queue, "_now_seconds", lambda: clock["now"])

    assert enqueue_task(_task(), "lifecycle", delay_seconds=30)
    assert fake_redis.values == []
    assert len(fake_redis.scheduled) == 1

    clock["now"] = 1_010.0
    assert dequeue_task("lifecycle") is None

    clock["now"] = 1_031.0
    item = dequeue_task("lifecycle")
    assert item is not None
    assert item.payload == {"event_type": "proposal_submitted"}
    assert fake_redis.scheduled == {}


def test_enqueue_returns_false_when_redis_is_down(monkeypatch: pytest.MonkeyPatch) -> None:
    class _DownRedis:
        def lpush(self, *_args: object) -> None:
            raise redis.ConnectionError("refused")

    def _down_client(*, redis_url: str | None = None) -> _DownRedis:
        return _DownRedis()

    monkeypatch.setattr("proposal_lifecycle.services.queue._redis_client", _down_client)

    assert enqueue_task(_task(), "lifecycle") is False


def test_dequeue_raises_on_garbage_payload(fake_redis: _FakeRedis) -> None:
    fake_redis.values.append("not-json")

    with pytest.raises(ValueError):
        dequeue_task("lifecycle")
