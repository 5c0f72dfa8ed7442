from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from async_tasks.core.config import DEFAULT_MAX_MESSAGES, DEFAULT_WAIT_TIME_SECONDS
from async_tasks.core.errors import ErrorCode, QueueNotRegistered, TaskError, TransportError, ValidationError
from async_tasks.core.logging import get_logger
from async_tasks.core.metrics import BATCH_ENTRIES_TOTAL, TASKS_REJECTED_TOTAL, TASKS_SUBMITTED_TOTAL
from async_tasks.core.redact import redact_text
from async_tasks.tasks.batch import RoutedTask, group_by_queue, reconcile
from async_tasks.tasks.consumer import TaskConsumer, create_message_handler
from async_tasks.tasks.context import ContextProvider, default_context_provider
from async_tasks.tasks.model import (
    DEFAULT_QUEUE_NAME,
    BatchSubmitStatus,
    QueueConfiguration,
    SubmitAllTasksResponse,
    SubmitTaskInput,
    SubmitTaskResponse,
    Task,
)
from async_tasks.tasks.registry import (
    Handler,
    Operation,
    OperationRegistry,
    Validator,
    check_delay_seconds,
    validate_payload,
)
from async_tasks.transport.base import BatchEntry, BatchFailure, QueueTransport, SendBatchResult

log = get_logger(__name__)


def _new_task_id() -> str:
    return str(uuid.uuid4())


def _rejection_reason(exc: BaseException) -> str:
    return exc.code.value.lower() if isinstance(exc, TaskError) else "error"


def _failed_batch(entries: Sequence[BatchEntry], exc: Exception) -> SendBatchResult:
    if isinstance(exc, TransportError):
        code = exc.aws_code or exc.code.value
    elif isinstance(exc, TaskError):
        code = exc.code.value
    else:
        code = ErrorCode.TRANSPORT_ERROR.value
    message = redact_text(str(exc))
    return SendBatchResult(
        failed=[BatchFailure(id=e.id, sender_fault=False, code=code, message=message) for e in entries]
    )


class TaskClient:
    """Registers operations on configured queues and submits tasks to them.

    The ``default`` queue is always present; ``queues`` adds named queues next to it.
    Register every operation before submitting or consuming: the registry is not
    synchronized against concurrent registration.
    """

    def __init__(
        self,
        transport: QueueTransport,
        *,
        default_queue: str | QueueConfiguration,
        queues: Mapping[str, str | QueueConfiguration] | None = None,
    ) -> None:
        self._transport = transport
        self._queues: dict[str, QueueConfiguration] = {}
        for name, queue in (queues or {}).items():
            self._queues[name] = self._queue_config(name, queue)
        self._queues[DEFAULT_QUEUE_NAME] = self._queue_config(DEFAULT_QUEUE_NAME, default_queue)
        self._registry = OperationRegistry(known_queues=self._queues.keys())

    @staticmethod
    def _queue_config(name: str, queue: str | QueueConfiguration) -> QueueConfiguration:
        if isinstance(queue, QueueConfiguration):
            address = queue.transport_address
        else:
            address = str(queue or "")
        address = address.strip()
        if not name or not address:
            raise ValidationError(f"queue {name or '<missing>'} requires a transport address")
        return QueueConfiguration(queue_name=name, transport_address=address)

    @property
    def registry(self) -> OperationRegistry:
        return self._registry

    @property
    def queues(self) -> dict[str, QueueConfiguration]:
        return dict(self._queues)

    @property
    def registered_operations(self) -> list[str]:
        return self._registry.registered_operations

    def register_operation(self, operation: Operation) -> None:
        registered = self._registry.register(operation)
        log.info("tasks_operation_registered operation=%s queue=%s", registered.operation_name, registered.queue_name)

    def operation(
        self,
        operation_name: str,
        *,
        validate: Validator,
        queue_name: str | None = None,
    ) -> Callable[[Handler], Handler]:
        return self._registry.operation(operation_name, validate=validate, queue_name=queue_name)

    async def _route_to_task(self, request: SubmitTaskInput[Any]) -> RoutedTask:
        operation = self._registry.require(request.operation_name)
        await validate_payload(operation, request.payload)

        queue_name = operation.resolved_queue_name
        if queue_name not in self._queues:
            raise QueueNotRegistered(queue_name)
        delay_seconds = check_delay_seconds(request.delay_seconds)

        task = Task(task_id=_new_task_id(), operation_name=operation.operation_name, payload=request.payload)
        return RoutedTask(task=task, queue_name=queue_name, delay_seconds=delay_seconds)

    async def submit_task(self, request: SubmitTaskInput[Any]) -> SubmitTaskResponse:
        try:
            routed = await self._route_to_task(request)
        except Exception as exc:
            TASKS_REJECTED_TOTAL.labels(reason=_rejection_reason(exc)).inc()
            raise

        queue = self._queues[routed.queue_name]
        result = await self._transport.send(
            queue.transport_address,
            routed.task.to_json(),
            delay_seconds=routed.delay_seconds,
        )
        TASKS_SUBMITTED_TOTAL.labels(operation=routed.task.operation_name, queue=routed.queue_name).inc()
        log.debug(
            "tasks_submitted operation=%s queue=%s task_id=%s",
            routed.task.operation_name,
            routed.queue_name,
            routed.task.task_id,
        )
        return SubmitTaskResponse(task_id=routed.task.task_id, message_id=result.message_id or None)

    async def submit_all_tasks(self, requests: Sequence[SubmitTaskInput[Any]]) -> SubmitAllTasksResponse:
        """Batch submission: all-or-nothing pre-flight, then one batch call per queue.

        Results come back in the order of ``requests``. Entries the transport rejects
        are reported as FAILED results rather than raised.
        """
        requests = list(requests)
        if not requests:
            return SubmitAllTasksResponse(results=[])

        outcomes = await asyncio.gather(*(self._route_to_task(r) for r in requests), return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                TASKS_REJECTED_TOTAL.labels(reason=_rejection_reason(outcome)).inc()
                raise outcome
        routed: list[RoutedTask] = list(outcomes)

        entries_by_queue = group_by_queue(routed)

        async def _send(queue_name: str) -> SendBatchResult:
            queue = self._queues[queue_name]
            return await self._transport.send_batch(queue.transport_address, entries_by_queue[queue_name])

        queue_names = list(entries_by_queue)
        sent = await asyncio.gather(*(_send(name) for name in queue_names), return_exceptions=True)
        responses: list[SendBatchResult] = []
        for queue_name, response in zip(queue_names, sent):
            if isinstance(response, Exception):
                log.warning(
                    "tasks_batch_send_failed queue=%s entries=%s err=%s",
                    queue_name,
                    len(entries_by_queue[queue_name]),
                    redact_text(f"{type(response).__name__}: {response}"),
                )
                response = _failed_batch(entries_by_queue[queue_name], response)
            elif isinstance(response, BaseException):
                raise response
            responses.append(response)

        results = reconcile([r.task.task_id for r in routed], responses)
        for item, result in zip(routed, results):
            if result.status == BatchSubmitStatus.SUCCESSFUL:
                TASKS_SUBMITTED_TOTAL.labels(operation=item.task.operation_name, queue=item.queue_name).inc()
            BATCH_ENTRIES_TOTAL.labels(status=result.status.value.lower()).inc()
        failed = sum(1 for r in results if r.status == BatchSubmitStatus.FAILED)
        if failed:
            log.warning("tasks_batch_partial_failure total=%s failed=%s", len(results), failed)
        return SubmitAllTasksResponse(results=results)

    def generate_consumers(
        self,
        *,
        context_provider: ContextProvider = default_context_provider,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        wait_seconds: int = DEFAULT_WAIT_TIME_SECONDS,
    ) -> dict[str, TaskConsumer]:
        handle = create_message_handler(registry=self._registry, context_provider=context_provider)
        return {
            name: TaskConsumer(
                self._transport,
                queue,
                handle,
                max_messages=max_messages,
                wait_seconds=wait_seconds,
            )
            for name, queue in self._queues.items()
        }
