from __future__ import annotations

import asyncio

import pytest

from async_tasks.core.errors import InvalidPayloadError, OperationNotRegistered
from async_tasks.tasks.model import BatchSubmitStatus, SubmitTaskInput
from async_tasks.tasks.noop import NOOP_MESSAGE_ID, NoopClient
from async_tasks.tasks.registry import Operation


async def _validate(payload):
    if not isinstance(payload, dict):
        raise ValueError("payload must be an object")


async def _handle(task, ctx):
    return None


def _client() -> NoopClient:
    client = NoopClient()
    client.register_operation(Operation(operation_name="Work", validate=_validate, handle=_handle, queue_name="anywhere"))
    return client


def test_noop_client_accepts_any_queue_name() -> None:
    assert _client().registered_operations == ["Work"]


def test_noop_submit_task_returns_placeholder_message_id() -> None:
    resp = asyncio.run(_client().submit_task(SubmitTaskInput(operation_name="Work", payload={"a": 1})))
    assert resp.message_id == NOOP_MESSAGE_ID
    assert resp.task_id


def test_noop_submit_task_still_validates() -> None:
    client = _client()
    with pytest.raises(OperationNotRegistered):
        asyncio.run(client.submit_task(SubmitTaskInput(operation_name="Missing", payload={})))
    with pytest.raises(InvalidPayloadError):
        asyncio.run(client.submit_task(SubmitTaskInput(operation_name="Work", payload="nope")))


def test_noop_submit_all_tasks_reports_every_entry_successful() -> None:
    resp = asyncio.run(
        _client().submit_all_tasks(
            [
                SubmitTaskInput(operation_name="Work", payload={"n": 1}),
                SubmitTaskInput(operation_name="Work", payload={"n": 2}),
            ]
        )
    )
    assert len(resp.results) == 2
    assert {r.status for r in resp.results} == {BatchSubmitStatus.SUCCESSFUL}
    assert resp.results[0].task_id != resp.results[1].task_id


def test_noop_submit_all_tasks_raises_first_failure_in_input_order() -> None:
    client = _client()

    async def _slow_reject(payload):
        await asyncio.sleep(0.01)
        raise ValueError("slow")

    client.register_operation(Operation(operation_name="Slow", validate=_slow_reject, handle=_handle))

    with pytest.raises(InvalidPayloadError) as excinfo:
        asyncio.run(
            client.submit_all_tasks(
                [
                    SubmitTaskInput(operation_name="Slow", payload={}),
                    SubmitTaskInput(operation_name="Missing", payload={}),
                ]
            )
        )
    assert excinfo.value.operation_name == "Slow"


def test_noop_generate_consumers_is_empty() -> None:
    assert _client().generate_consumers(wait_seconds=0) == {}
