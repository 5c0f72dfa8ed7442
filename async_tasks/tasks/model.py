from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from async_tasks.transport.base import BatchFailure

DEFAULT_QUEUE_NAME = "default"

P = TypeVar("P")


@dataclass(frozen=True, slots=True)
class Task(Generic[P]):
    task_id: str
    operation_name: str
    payload: P

    def to_wire(self) -> dict[str, Any]:
        return {"taskId": self.task_id, "operationName": self.operation_name, "payload": self.payload}

    def to_json(self) -> str:
        return json.dumps(self.to_wire(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Task[Any]:
        return cls(
            task_id=str(data["taskId"]),
            operation_name=str(data["operationName"]),
            payload=data["payload"],
        )

    @classmethod
    def from_json(cls, body: str) -> Task[Any]:
        return cls.from_wire(json.loads(body))


@dataclass(frozen=True, slots=True)
class QueueConfiguration:
    queue_name: str
    transport_address: str


@dataclass(frozen=True, slots=True)
class SubmitTaskInput(Generic[P]):
    operation_name: str
    payload: P
    delay_seconds: int | None = None


@dataclass(frozen=True, slots=True)
class SubmitTaskResponse:
    task_id: str
    message_id: str | None


class BatchSubmitStatus(str, Enum):
    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"


@dataclass(frozen=True, slots=True)
class BatchSubmitResultEntry:
    task_id: str
    status: BatchSubmitStatus
    error: BatchFailure | None = None


@dataclass(frozen=True, slots=True)
class SubmitAllTasksResponse:
    results: list[BatchSubmitResultEntry] = field(default_factory=list)


# Validators and handlers may raise, or return one of these; returning None is Ok.


@dataclass(frozen=True, slots=True)
class Ok:
    pass


@dataclass(frozen=True, slots=True)
class ValidationFailure:
    reason: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class HandlerFailure:
    reason: str
    details: dict[str, Any] = field(default_factory=dict)
    retryable: bool = True


OK = Ok()
