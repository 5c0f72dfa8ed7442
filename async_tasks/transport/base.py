from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

MAX_DELAY_SECONDS = 900
MAX_BATCH_ENTRIES = 10


@dataclass(frozen=True, slots=True)
class SendMessageResult:
    message_id: str | None


@dataclass(frozen=True, slots=True)
class BatchEntry:
    id: str
    body: str
    delay_seconds: int | None = None


@dataclass(frozen=True, slots=True)
class BatchSuccess:
    id: str
    message_id: str | None = None


@dataclass(frozen=True, slots=True)
class BatchFailure:
    id: str
    sender_fault: bool
    code: str
    message: str | None = None


@dataclass(frozen=True, slots=True)
class SendBatchResult:
    successful: list[BatchSuccess] = field(default_factory=list)
    failed: list[BatchFailure] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class QueueMessage:
    message_id: str | None
    body: str | None
    receipt_handle: str | None
    attributes: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class QueueTransport(Protocol):
    """At-least-once queue primitives addressed by an opaque queue address."""

    async def send(self, queue_address: str, body: str, *, delay_seconds: int | None = None) -> SendMessageResult: ...

    async def send_batch(self, queue_address: str, entries: list[BatchEntry]) -> SendBatchResult: ...

    async def receive(self, queue_address: str, *, max_messages: int, wait_seconds: int) -> list[QueueMessage]: ...

    async def delete(self, queue_address: str, receipt_handle: str) -> None: ...
