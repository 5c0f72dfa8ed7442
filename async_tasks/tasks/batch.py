from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from async_tasks.core.logging import get_logger
from async_tasks.tasks.model import BatchSubmitResultEntry, BatchSubmitStatus, Task
from async_tasks.transport.base import BatchEntry, BatchFailure, BatchSuccess, SendBatchResult

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RoutedTask:
    task: Task
    queue_name: str
    delay_seconds: int | None = None

    def to_entry(self) -> BatchEntry:
        return BatchEntry(id=self.task.task_id, body=self.task.to_json(), delay_seconds=self.delay_seconds)


def group_by_queue(routed: Iterable[RoutedTask]) -> dict[str, list[BatchEntry]]:
    """Groups entries per destination queue; first-seen queue order, input order within a queue."""
    out: dict[str, list[BatchEntry]] = {}
    for item in routed:
        out.setdefault(item.queue_name, []).append(item.to_entry())
    return out


def reconcile(task_ids: Sequence[str], responses: Iterable[SendBatchResult]) -> list[BatchSubmitResultEntry]:
    """Maps unordered, id-correlated batch responses back onto ``task_ids`` order."""
    succeeded: dict[str, BatchSuccess] = {}
    failed: dict[str, BatchFailure] = {}
    for response in responses:
        for ok in response.successful:
            succeeded[ok.id] = ok
        for err in response.failed:
            failed[err.id] = err

    results: list[BatchSubmitResultEntry] = []
    for task_id in task_ids:
        error = failed.get(task_id)
        if error is not None:
            results.append(BatchSubmitResultEntry(task_id=task_id, status=BatchSubmitStatus.FAILED, error=error))
        else:
            if task_id not in succeeded:
                log.warning("tasks_batch_entry_unacknowledged task_id=%s", task_id)
            results.append(BatchSubmitResultEntry(task_id=task_id, status=BatchSubmitStatus.SUCCESSFUL))
    return results
