from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from async_tasks.core.config import DEFAULT_MAX_MESSAGES, DEFAULT_WAIT_TIME_SECONDS
from async_tasks.core.errors import (
    MalformedRequestError,
    MessageBodyMissing,
    OperationNotRegistered,
    TaskHandlerFailed,
    error_details,
)
from async_tasks.core.logging import get_logger
from async_tasks.core.metrics import observe_message_result
from async_tasks.core.redact import redact_text
from async_tasks.tasks.context import ContextProvider
from async_tasks.tasks.model import HandlerFailure, QueueConfiguration, Task
from async_tasks.tasks.registry import OperationRegistry
from async_tasks.transport.base import QueueMessage, QueueTransport

log = get_logger(__name__)

MessageHandler = Callable[[QueueMessage], Awaitable[None]]


def _is_missing(value: Any) -> bool:
    # Empty objects and lists count as present; null and falsy scalars do not.
    if value is None or value is False:
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    if isinstance(value, str):
        return value == ""
    return False


def parse_task(message: QueueMessage) -> Task[Any]:
    body = getattr(message, "body", None)
    if not body:
        raise MessageBodyMissing()

    try:
        data = json.loads(body)
    except ValueError as exc:
        raise MalformedRequestError(body) from exc

    if not isinstance(data, dict):
        raise MalformedRequestError(data)
    if any(_is_missing(data.get(key)) for key in ("operationName", "taskId", "payload")):
        raise MalformedRequestError(data)
    return Task.from_wire(data)


async def handle_message(
    message: QueueMessage,
    *,
    context_provider: ContextProvider,
    registry: OperationRegistry,
) -> None:
    """Routes one delivered message to its operation handler.

    Raises MessageBodyMissing, MalformedRequestError or OperationNotRegistered before
    any handler runs. Handler exceptions propagate unchanged; a returned
    HandlerFailure is raised as TaskHandlerFailed. The message is never deleted here.
    """
    task = parse_task(message)

    operation = registry.get(task.operation_name)
    if operation is None:
        raise OperationNotRegistered(task.operation_name)

    ctx = await context_provider(message)

    result = await operation.handle(task, ctx)
    if isinstance(result, HandlerFailure):
        raise TaskHandlerFailed(task.operation_name, task_id=task.task_id, failure=result)


def create_message_handler(
    *,
    registry: OperationRegistry | None,
    context_provider: ContextProvider | None,
) -> MessageHandler:
    if registry is None:
        raise TypeError("routes configuration required")
    if not callable(context_provider):
        raise TypeError("contextProvider required")

    async def _handle(message: QueueMessage) -> None:
        await handle_message(message, context_provider=context_provider, registry=registry)

    return _handle


def _result_label(exc: BaseException) -> str:
    if isinstance(exc, (MessageBodyMissing, MalformedRequestError)):
        return "malformed"
    if isinstance(exc, OperationNotRegistered):
        return "unroutable"
    return "error"


@dataclass(frozen=True, slots=True)
class PollResult:
    received: int
    handled: int
    failed: int


class TaskConsumer:
    def __init__(
        self,
        transport: QueueTransport,
        queue: QueueConfiguration,
        handle: MessageHandler,
        *,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        wait_seconds: int = DEFAULT_WAIT_TIME_SECONDS,
    ) -> None:
        self._transport = transport
        self._queue = queue
        self._handle = handle
        self._max_messages = max(1, int(max_messages))
        self._wait_seconds = max(0, int(wait_seconds))
        self._stop_event = asyncio.Event()

    @property
    def queue(self) -> QueueConfiguration:
        return self._queue

    def stop(self) -> None:
        self._stop_event.set()

    async def _process(self, message: QueueMessage) -> bool:
        started = time.monotonic()
        try:
            await self._handle(message)
        except Exception as exc:
            details = error_details(exc)
            log.warning(
                "tasks_message_failed queue=%s message_id=%s details=%s",
                self._queue.queue_name,
                message.message_id,
                details,
            )
            observe_message_result(result=_result_label(exc))
            return False

        observe_message_result(result="ok", duration_s=time.monotonic() - started)
        if not message.receipt_handle:
            log.warning("tasks_message_without_receipt queue=%s message_id=%s", self._queue.queue_name, message.message_id)
            return True
        try:
            await self._transport.delete(self._queue.transport_address, message.receipt_handle)
        except Exception as exc:
            log.warning(
                "tasks_message_delete_failed queue=%s message_id=%s err=%s",
                self._queue.queue_name,
                message.message_id,
                redact_text(f"{type(exc).__name__}: {exc}"),
            )
        return True

    async def poll_once(self) -> PollResult:
        messages = await self._transport.receive(
            self._queue.transport_address,
            max_messages=self._max_messages,
            wait_seconds=self._wait_seconds,
        )
        if not messages:
            return PollResult(received=0, handled=0, failed=0)

        outcomes = await asyncio.gather(*(self._process(m) for m in messages))
        handled = sum(1 for ok in outcomes if ok)
        return PollResult(received=len(messages), handled=handled, failed=len(messages) - handled)

    async def run(
        self,
        *,
        poll_interval_s: float = 0.0,
        max_iterations: int | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        iterations = 0
        log.info("tasks_consumer_start queue=%s", self._queue.queue_name)
        while not self._stop_event.is_set() and not (stop_event is not None and stop_event.is_set()):
            try:
                await self.poll_once()
            except Exception as exc:
                log.warning(
                    "tasks_consumer_receive_failed queue=%s err=%s",
                    self._queue.queue_name,
                    redact_text(f"{type(exc).__name__}: {exc}"),
                )

            iterations += 1
            if max_iterations is not None and iterations >= max_iterations:
                break

            if poll_interval_s > 0:
                await asyncio.sleep(poll_interval_s)
        log.info("tasks_consumer_stop queue=%s", self._queue.queue_name)
