from __future__ import annotations

import asyncio
import json

import pytest

from async_tasks.core.errors import InvalidPayloadError, OperationNotRegistered, TransportError
from async_tasks.tasks.client import TaskClient
from async_tasks.tasks.model import BatchSubmitStatus, SubmitTaskInput
from async_tasks.tasks.registry import Operation
from async_tasks.transport.base import BatchEntry, BatchFailure, BatchSuccess, SendBatchResult, SendMessageResult


class _ScriptedTransport:
    """Records batch calls; fails entries whose payload carries ``"fail": true``.

    Responses list failures first and successes reversed, so they never line up
    with the request order.
    """

    def __init__(self, *, raise_on: str | None = None) -> None:
        self.batches: list[tuple[str, list[BatchEntry]]] = []
        self.sends: list[str] = []
        self._raise_on = raise_on

    async def send(self, queue_address, body, *, delay_seconds=None):
        self.sends.append(queue_address)
        return SendMessageResult(message_id="m")

    async def send_batch(self, queue_address, entries):
        self.batches.append((queue_address, list(entries)))
        await asyncio.sleep(0)
        if queue_address == self._raise_on:
            raise TransportError("queue transport SendMessageBatch failed", status_code=500)
        successful = []
        failed = []
        for entry in entries:
            payload = json.loads(entry.body)["payload"]
            if isinstance(payload, dict) and payload.get("fail"):
                failed.append(BatchFailure(id=entry.id, sender_fault=False, code="ServiceUnavailable"))
            else:
                successful.append(BatchSuccess(id=entry.id, message_id=f"msg-{entry.id}"))
        return SendBatchResult(successful=list(reversed(successful)), failed=failed)

    async def receive(self, queue_address, *, max_messages, wait_seconds):
        return []

    async def delete(self, queue_address, receipt_handle):
        return None


async def _validate(payload):
    if not isinstance(payload, dict):
        raise ValueError("payload must be an object")


async def _handle(task, ctx):
    return None


def _setup(transport: _ScriptedTransport) -> TaskClient:
    client = TaskClient(transport, default_queue="q://default", queues={"high": "q://high"})
    client.register_operation(Operation(operation_name="Operation1", validate=_validate, handle=_handle))
    client.register_operation(Operation(operation_name="Urgent", validate=_validate, handle=_handle, queue_name="high"))
    return client


def test_submit_all_tasks_one_batch_call_per_queue() -> None:
    transport = _ScriptedTransport()
    client = _setup(transport)

    resp = asyncio.run(
        client.submit_all_tasks(
            [
                SubmitTaskInput(operation_name="Operation1", payload={"n": 1}),
                SubmitTaskInput(operation_name="Operation1", payload={"n": 2}),
            ]
        )
    )

    assert len(resp.results) == 2
    assert resp.results[0].task_id
    assert resp.results[0].status == BatchSubmitStatus.SUCCESSFUL
    assert resp.results[0].error is None
    assert len(transport.batches) == 1
    assert transport.sends == []


def test_submit_all_tasks_groups_by_destination_queue() -> None:
    transport = _ScriptedTransport()
    client = _setup(transport)

    resp = asyncio.run(
        client.submit_all_tasks(
            [
                SubmitTaskInput(operation_name="Operation1", payload={"n": 1}),
                SubmitTaskInput(operation_name="Urgent", payload={"n": 2}),
                SubmitTaskInput(operation_name="Operation1", payload={"n": 3}),
            ]
        )
    )

    by_queue = dict(transport.batches)
    assert sorted(by_queue) == ["q://default", "q://high"]
    default_ids = [e.id for e in by_queue["q://default"]]
    assert default_ids == [resp.results[0].task_id, resp.results[2].task_id]
    assert [json.loads(e.body)["payload"]["n"] for e in by_queue["q://default"]] == [1, 3]
    assert [e.id for e in by_queue["q://high"]] == [resp.results[1].task_id]


def test_submit_all_tasks_passes_delay_seconds_per_entry() -> None:
    transport = _ScriptedTransport()
    client = _setup(transport)

    asyncio.run(
        client.submit_all_tasks(
            [
                SubmitTaskInput(operation_name="Operation1", payload={"n": 1}, delay_seconds=10),
                SubmitTaskInput(operation_name="Operation1", payload={"n": 2}),
            ]
        )
    )

    entries = transport.batches[0][1]
    assert entries[0].delay_seconds == 10
    assert entries[1].delay_seconds is None


def test_submit_all_tasks_entries_keyed_by_task_id() -> None:
    transport = _ScriptedTransport()
    client = _setup(transport)

    resp = asyncio.run(client.submit_all_tasks([SubmitTaskInput(operation_name="Operation1", payload={"n": 1})]))

    entry = transport.batches[0][1][0]
    assert entry.id == resp.results[0].task_id
    assert json.loads(entry.body) == {"taskId": entry.id, "operationName": "Operation1", "payload": {"n": 1}}


def test_submit_all_tasks_results_follow_input_order() -> None:
    transport = _ScriptedTransport()
    client = _setup(transport)

    resp = asyncio.run(
        client.submit_all_tasks(
            [
                SubmitTaskInput(operation_name="Operation1", payload={"fail": True}),
                SubmitTaskInput(operation_name="Operation1", payload={"n": 2}),
                SubmitTaskInput(operation_name="Urgent", payload={"fail": True}),
                SubmitTaskInput(operation_name="Operation1", payload={"n": 4}),
            ]
        )
    )

    statuses = [r.status for r in resp.results]
    assert statuses == [
        BatchSubmitStatus.FAILED,
        BatchSubmitStatus.SUCCESSFUL,
        BatchSubmitStatus.FAILED,
        BatchSubmitStatus.SUCCESSFUL,
    ]
    assert resp.results[0].error is not None
    assert resp.results[0].error.code == "ServiceUnavailable"
    assert resp.results[1].error is None
    sent_ids = [e.id for _, entries in transport.batches for e in entries]
    assert sorted(sent_ids) == sorted(r.task_id for r in resp.results)


def test_submit_all_tasks_preflight_failure_sends_nothing() -> None:
    transport = _ScriptedTransport()
    client = _setup(transport)

    with pytest.raises(InvalidPayloadError):
        asyncio.run(
            client.submit_all_tasks(
                [
                    SubmitTaskInput(operation_name="Operation1", payload={"n": 1}),
                    SubmitTaskInput(operation_name="Operation1", payload="not-an-object"),
                ]
            )
        )
    assert transport.batches == []
    assert transport.sends == []


def test_submit_all_tasks_raises_first_failure_in_input_order() -> None:
    transport = _ScriptedTransport()
    client = _setup(transport)

    async def _slow_fail(payload):
        await asyncio.sleep(0.01)
        raise ValueError("slow")

    client.register_operation(Operation(operation_name="Slow", validate=_slow_fail, handle=_handle))

    with pytest.raises(InvalidPayloadError) as excinfo:
        asyncio.run(
            client.submit_all_tasks(
                [
                    SubmitTaskInput(operation_name="Slow", payload={"n": 1}),
                    SubmitTaskInput(operation_name="Missing", payload={"n": 2}),
                ]
            )
        )
    assert excinfo.value.operation_name == "Slow"
    assert transport.batches == []


def test_submit_all_tasks_unregistered_operation_sends_nothing() -> None:
    transport = _ScriptedTransport()
    client = _setup(transport)

    with pytest.raises(OperationNotRegistered):
        asyncio.run(
            client.submit_all_tasks(
                [
                    SubmitTaskInput(operation_name="Operation1", payload={"n": 1}),
                    SubmitTaskInput(operation_name="NopeNopeNope", payload={"n": 2}),
                ]
            )
        )
    assert transport.batches == []


def test_submit_all_tasks_failed_queue_call_reports_entries_failed() -> None:
    transport = _ScriptedTransport(raise_on="q://high")
    client = _setup(transport)

    resp = asyncio.run(
        client.submit_all_tasks(
            [
                SubmitTaskInput(operation_name="Urgent", payload={"n": 1}),
                SubmitTaskInput(operation_name="Operation1", payload={"n": 2}),
                SubmitTaskInput(operation_name="Urgent", payload={"n": 3}),
            ]
        )
    )

    sent_ids = {e.id: address for address, entries in transport.batches for e in entries}
    assert [sent_ids[r.task_id] for r in resp.results] == ["q://high", "q://default", "q://high"]
    assert [r.status for r in resp.results] == [
        BatchSubmitStatus.FAILED,
        BatchSubmitStatus.SUCCESSFUL,
        BatchSubmitStatus.FAILED,
    ]
    failure = resp.results[0].error
    assert failure.sender_fault is False
    assert failure.code == "TRANSPORT_ERROR"
    assert failure.message == "queue transport SendMessageBatch failed"


def test_submit_all_tasks_failed_queue_call_uses_aws_code() -> None:
    class _Throttled(_ScriptedTransport):
        async def send_batch(self, queue_address, entries):
            self.batches.append((queue_address, list(entries)))
            raise TransportError("queue transport SendMessageBatch failed", status_code=400, aws_code="RequestThrottled")

    transport = _Throttled()
    client = _setup(transport)

    resp = asyncio.run(client.submit_all_tasks([SubmitTaskInput(operation_name="Operation1", payload={"n": 1})]))

    assert resp.results[0].status == BatchSubmitStatus.FAILED
    assert resp.results[0].error.code == "RequestThrottled"


def test_submit_all_tasks_empty_input() -> None:
    transport = _ScriptedTransport()
    client = _setup(transport)
    resp = asyncio.run(client.submit_all_tasks([]))
    assert resp.results == []
    assert transport.batches == []
