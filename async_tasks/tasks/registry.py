from __future__ import annotations

from collections.abc import Awaitable, Callable, Collection
from dataclasses import dataclass, field
from typing import Any

from async_tasks.core.errors import InvalidPayloadError, OperationNotRegistered, QueueNotRegistered, ValidationError
from async_tasks.core.logging import get_logger
from async_tasks.tasks.model import DEFAULT_QUEUE_NAME, Task, ValidationFailure
from async_tasks.transport.base import MAX_DELAY_SECONDS

log = get_logger(__name__)

Validator = Callable[[Any], Awaitable[Any]]
Handler = Callable[[Task[Any], Any], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class Operation:
    operation_name: str
    validate: Validator
    handle: Handler
    queue_name: str | None = None

    @property
    def resolved_queue_name(self) -> str:
        return self.queue_name or DEFAULT_QUEUE_NAME


@dataclass(slots=True)
class OperationRegistry:
    """Operation name -> Operation table owned by one client.

    ``known_queues`` is the client's live queue table; registration is refused for
    operations bound to a queue outside it. ``None`` disables the queue check.
    """

    known_queues: Collection[str] | None = None
    routes: dict[str, Operation] = field(default_factory=dict)

    def register(self, operation: Operation) -> Operation:
        name = operation.operation_name
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("No operationName provided")
        if not callable(operation.validate):
            raise ValidationError("No validate function provided")
        if not callable(operation.handle):
            raise ValidationError("No handle function provided")

        queue_name = operation.resolved_queue_name
        if self.known_queues is not None and queue_name not in self.known_queues:
            raise QueueNotRegistered(queue_name)

        if operation.queue_name != queue_name:
            operation = Operation(
                operation_name=name,
                validate=operation.validate,
                handle=operation.handle,
                queue_name=queue_name,
            )
        if name in self.routes:
            log.info("tasks_operation_replaced operation=%s queue=%s", name, queue_name)
        self.routes[name] = operation
        return operation

    def operation(
        self,
        operation_name: str,
        *,
        validate: Validator,
        queue_name: str | None = None,
    ) -> Callable[[Handler], Handler]:
        def _wrap(fn: Handler) -> Handler:
            self.register(Operation(operation_name=operation_name, validate=validate, handle=fn, queue_name=queue_name))
            return fn

        return _wrap

    def get(self, operation_name: str) -> Operation | None:
        return self.routes.get(operation_name)

    def require(self, operation_name: str) -> Operation:
        operation = self.routes.get(operation_name) if isinstance(operation_name, str) else None
        if operation is None:
            raise OperationNotRegistered(operation_name)
        return operation

    @property
    def registered_operations(self) -> list[str]:
        return list(self.routes)


async def validate_payload(operation: Operation, payload: Any) -> None:
    try:
        result = await operation.validate(payload)
    except Exception as exc:
        raise InvalidPayloadError(operation.operation_name, cause=exc) from exc
    if isinstance(result, ValidationFailure):
        raise InvalidPayloadError(operation.operation_name, cause=result)


def check_delay_seconds(delay_seconds: Any) -> int | None:
    if delay_seconds is None:
        return None
    if isinstance(delay_seconds, bool) or not isinstance(delay_seconds, int):
        raise ValidationError("delay_seconds must be an integer")
    if delay_seconds < 0 or delay_seconds > MAX_DELAY_SECONDS:
        raise ValidationError(f"delay_seconds must be between 0 and {MAX_DELAY_SECONDS}")
    return delay_seconds
