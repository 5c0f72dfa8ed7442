from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from async_tasks.core.errors import TransportError
from async_tasks.transport.base import (
    MAX_DELAY_SECONDS,
    BatchEntry,
    BatchFailure,
    BatchSuccess,
    QueueMessage,
    SendBatchResult,
    SendMessageResult,
)

DEFAULT_VISIBILITY_TIMEOUT_S = 30.0


@dataclass(slots=True)
class _Stored:
    message_id: str
    body: str
    visible_at: float
    receive_count: int = 0
    receipt_handle: str | None = None


@dataclass(slots=True)
class _Queue:
    messages: list[_Stored] = field(default_factory=list)
    waiters: set[asyncio.Event] = field(default_factory=set)


class InMemoryTransport:
    """Process-local queue transport with delay and visibility-timeout semantics."""

    def __init__(
        self,
        *,
        visibility_timeout_s: float = DEFAULT_VISIBILITY_TIMEOUT_S,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._visibility_timeout_s = float(visibility_timeout_s)
        self._clock = clock or time.monotonic
        self._queues: dict[str, _Queue] = {}
        self.calls: list[tuple[str, str]] = []

    def _queue(self, queue_address: str) -> _Queue:
        queue_address = (queue_address or "").strip()
        if not queue_address:
            raise TransportError("queue_address is required")
        queue = self._queues.get(queue_address)
        if queue is None:
            queue = _Queue()
            self._queues[queue_address] = queue
        return queue

    def _append(self, queue: _Queue, body: str, delay_seconds: int | None) -> str:
        delay = int(delay_seconds or 0)
        if delay < 0 or delay > MAX_DELAY_SECONDS:
            raise TransportError(f"delay_seconds must be between 0 and {MAX_DELAY_SECONDS}")
        message_id = str(uuid.uuid4())
        queue.messages.append(_Stored(message_id=message_id, body=body, visible_at=self._clock() + delay))
        for waiter in queue.waiters:
            waiter.set()
        return message_id

    def pending(self, queue_address: str) -> list[str]:
        return [m.body for m in self._queue(queue_address).messages]

    async def send(self, queue_address: str, body: str, *, delay_seconds: int | None = None) -> SendMessageResult:
        self.calls.append(("send", queue_address))
        queue = self._queue(queue_address)
        return SendMessageResult(message_id=self._append(queue, body, delay_seconds))

    async def send_batch(self, queue_address: str, entries: list[BatchEntry]) -> SendBatchResult:
        self.calls.append(("send_batch", queue_address))
        queue = self._queue(queue_address)
        if not entries:
            raise TransportError("batch must contain at least one entry", aws_code="EmptyBatchRequest")

        successful: list[BatchSuccess] = []
        failed: list[BatchFailure] = []
        for entry in entries:
            try:
                message_id = self._append(queue, entry.body, entry.delay_seconds)
            except TransportError as exc:
                failed.append(BatchFailure(id=entry.id, sender_fault=True, code="InvalidParameterValue", message=str(exc)))
                continue
            successful.append(BatchSuccess(id=entry.id, message_id=message_id))
        return SendBatchResult(successful=successful, failed=failed)

    def _take_visible(self, queue: _Queue, max_messages: int) -> list[QueueMessage]:
        now = self._clock()
        out: list[QueueMessage] = []
        for stored in queue.messages:
            if len(out) >= max_messages:
                break
            if stored.visible_at > now:
                continue
            stored.receive_count += 1
            stored.receipt_handle = str(uuid.uuid4())
            stored.visible_at = now + self._visibility_timeout_s
            out.append(
                QueueMessage(
                    message_id=stored.message_id,
                    body=stored.body,
                    receipt_handle=stored.receipt_handle,
                    attributes={"ApproximateReceiveCount": str(stored.receive_count)},
                )
            )
        return out

    async def receive(self, queue_address: str, *, max_messages: int, wait_seconds: int) -> list[QueueMessage]:
        self.calls.append(("receive", queue_address))
        queue = self._queue(queue_address)
        max_messages = max(1, int(max_messages))

        messages = self._take_visible(queue, max_messages)
        if messages or wait_seconds <= 0:
            return messages

        arrived = asyncio.Event()
        queue.waiters.add(arrived)
        try:
            await asyncio.wait_for(arrived.wait(), timeout=float(wait_seconds))
        except asyncio.TimeoutError:
            return []
        finally:
            queue.waiters.discard(arrived)
        return self._take_visible(queue, max_messages)

    async def delete(self, queue_address: str, receipt_handle: str) -> None:
        self.calls.append(("delete", queue_address))
        queue = self._queue(queue_address)
        receipt_handle = (receipt_handle or "").strip()
        if not receipt_handle:
            raise TransportError("receipt_handle is required")
        queue.messages = [m for m in queue.messages if m.receipt_handle != receipt_handle]
