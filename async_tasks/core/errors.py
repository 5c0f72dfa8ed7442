from __future__ import annotations

from enum import Enum
from typing import Any

from async_tasks.core.redact import redact_any


class ErrorCode(str, Enum):
    # Registration / configuration
    VALIDATION_ERROR = "VALIDATION_ERROR"
    QUEUE_NOT_REGISTERED = "QUEUE_NOT_REGISTERED"
    # Submission
    OPERATION_NOT_REGISTERED = "OPERATION_NOT_REGISTERED"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    # Consumption
    MESSAGE_BODY_MISSING = "MESSAGE_BODY_MISSING"
    MALFORMED_REQUEST = "MALFORMED_REQUEST"
    HANDLER_FAILED = "HANDLER_FAILED"
    # Transport
    TRANSPORT_ERROR = "TRANSPORT_ERROR"


class TaskError(Exception):
    code: ErrorCode = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TaskError, ValueError):
    code = ErrorCode.VALIDATION_ERROR


class QueueNotRegistered(TaskError):
    code = ErrorCode.QUEUE_NOT_REGISTERED

    def __init__(self, queue_name: str) -> None:
        super().__init__("No queue configured for queue name")
        self.queue_name = queue_name


class OperationNotRegistered(TaskError):
    code = ErrorCode.OPERATION_NOT_REGISTERED

    def __init__(self, operation_name: str) -> None:
        super().__init__("No handler registered for operation")
        self.operation_name = operation_name


class InvalidPayloadError(TaskError):
    code = ErrorCode.INVALID_PAYLOAD

    def __init__(self, operation_name: str, *, cause: Any = None) -> None:
        super().__init__("Payload validation failed")
        self.operation_name = operation_name or None
        self.cause = cause


class MessageBodyMissing(TaskError, TypeError):
    code = ErrorCode.MESSAGE_BODY_MISSING

    def __init__(self) -> None:
        super().__init__("expected message to have a body")


class MalformedRequestError(TaskError):
    code = ErrorCode.MALFORMED_REQUEST

    def __init__(self, request: Any) -> None:
        super().__init__("Malformed request received")
        self.request = request


class TaskHandlerFailed(TaskError):
    code = ErrorCode.HANDLER_FAILED

    def __init__(self, operation_name: str, *, task_id: str, failure: Any) -> None:
        reason = str(getattr(failure, "reason", "") or "").strip()
        super().__init__(f"Task handler failed: {reason}" if reason else "Task handler failed")
        self.operation_name = operation_name
        self.task_id = task_id
        self.failure = failure


class TransportError(TaskError):
    code = ErrorCode.TRANSPORT_ERROR

    def __init__(self, message: str, *, status_code: int | None = None, aws_code: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.aws_code = aws_code


def error_details(exc: BaseException) -> dict[str, Any]:
    if not isinstance(exc, TaskError):
        return {"code": ErrorCode.HANDLER_FAILED.value, "type": type(exc).__name__, "message": str(exc)}

    details: dict[str, Any] = {"code": exc.code.value, "type": type(exc).__name__, "message": exc.message}
    for attr in ("operation_name", "queue_name", "task_id", "status_code", "aws_code"):
        value = getattr(exc, attr, None)
        if value is not None:
            details[attr] = value
    cause = getattr(exc, "cause", None)
    if cause is not None:
        details["cause"] = f"{type(cause).__name__}: {cause}" if isinstance(cause, BaseException) else str(cause)
    if isinstance(exc, MalformedRequestError):
        details["request"] = redact_any(exc.request)
    return details
