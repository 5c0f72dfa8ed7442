from __future__ import annotations

import asyncio
import uuid
from collections.abc import Sequence
from typing import Any

from async_tasks.tasks.consumer import TaskConsumer
from async_tasks.tasks.model import (
    BatchSubmitResultEntry,
    BatchSubmitStatus,
    SubmitAllTasksResponse,
    SubmitTaskInput,
    SubmitTaskResponse,
)
from async_tasks.tasks.registry import Operation, OperationRegistry, check_delay_seconds, validate_payload

NOOP_MESSAGE_ID = "not-a-real-message-id"


class NoopClient:
    """Drop-in TaskClient for callers' tests: validates submissions, never enqueues."""

    def __init__(self) -> None:
        self._registry = OperationRegistry(known_queues=None)

    @property
    def registry(self) -> OperationRegistry:
        return self._registry

    @property
    def registered_operations(self) -> list[str]:
        return self._registry.registered_operations

    def register_operation(self, operation: Operation) -> None:
        self._registry.register(operation)

    async def _route_to_task(self, request: SubmitTaskInput[Any]) -> str:
        operation = self._registry.require(request.operation_name)
        await validate_payload(operation, request.payload)
        check_delay_seconds(request.delay_seconds)
        return str(uuid.uuid4())

    async def submit_task(self, request: SubmitTaskInput[Any]) -> SubmitTaskResponse:
        task_id = await self._route_to_task(request)
        return SubmitTaskResponse(task_id=task_id, message_id=NOOP_MESSAGE_ID)

    async def submit_all_tasks(self, requests: Sequence[SubmitTaskInput[Any]]) -> SubmitAllTasksResponse:
        task_ids = await asyncio.gather(*(self._route_to_task(r) for r in requests), return_exceptions=True)
        for task_id in task_ids:
            if isinstance(task_id, BaseException):
                raise task_id
        return SubmitAllTasksResponse(
            results=[BatchSubmitResultEntry(task_id=t, status=BatchSubmitStatus.SUCCESSFUL) for t in task_ids]
        )

    def generate_consumers(self, **_: Any) -> dict[str, TaskConsumer]:
        return {}
