from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

import httpx

from async_tasks.core.errors import TransportError
from async_tasks.core.logging import get_logger
from async_tasks.core.redact import redact_text
from async_tasks.transport.base import (
    MAX_BATCH_ENTRIES,
    BatchEntry,
    BatchFailure,
    BatchSuccess,
    QueueMessage,
    SendBatchResult,
    SendMessageResult,
)

log = get_logger(__name__)

_CONTENT_TYPE = "application/x-amz-json-1.0"
_TARGET_PREFIX = "AmazonSQS."


def _normalize_endpoint_url(endpoint_url: str) -> str:
    endpoint_url = (endpoint_url or "").strip()
    if not endpoint_url:
        raise ValueError("endpoint_url is required")

    parsed = urlparse(endpoint_url)
    scheme = (parsed.scheme or "").lower()
    if scheme not in {"http", "https"}:
        raise ValueError("endpoint_url must be http(s)")

    if not parsed.netloc:
        raise ValueError("endpoint_url must include host")

    return endpoint_url.rstrip("/") + "/"


def _aws_error_code(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    raw = data.get("__type") or data.get("code")
    if not isinstance(raw, str) or not raw.strip():
        return None
    # "com.amazonaws.sqs#QueueDoesNotExist" -> "QueueDoesNotExist"
    return raw.rsplit("#", 1)[-1].strip()


def _chunks(entries: list[BatchEntry], size: int) -> list[list[BatchEntry]]:
    return [entries[i : i + size] for i in range(0, len(entries), size)]


class HttpQueueTransport:
    """SQS JSON-protocol transport for SQS-compatible endpoints (no request signing)."""

    def __init__(
        self,
        *,
        endpoint_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        self._endpoint_url = _normalize_endpoint_url(endpoint_url)
        self._timeout_s = float(timeout_s)
        self._client = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(self._timeout_s, connect=10.0),
        )

    async def __aenter__(self) -> HttpQueueTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(self, action: str, body: dict[str, Any], *, extra_timeout_s: float = 0.0) -> dict[str, Any]:
        timeout = httpx.Timeout(self._timeout_s + max(0.0, extra_timeout_s), connect=10.0)
        try:
            resp = await self._client.post(
                self._endpoint_url,
                json=body,
                headers={"X-Amz-Target": _TARGET_PREFIX + action, "Content-Type": _CONTENT_TYPE},
                timeout=timeout,
            )
        except httpx.HTTPError as exc:
            msg = redact_text(f"{type(exc).__name__}: {exc}")
            log.warning("tasks_transport_request_failed action=%s err=%s", action, msg)
            raise TransportError(f"queue transport {action} request failed") from exc

        try:
            data: Any = resp.json() if resp.content else {}
        except ValueError:
            data = None

        if resp.status_code < 200 or resp.status_code >= 300:
            aws_code = _aws_error_code(data)
            raise TransportError(
                f"queue transport {action} failed",
                status_code=resp.status_code,
                aws_code=aws_code,
            )
        if not isinstance(data, dict):
            raise TransportError(f"queue transport {action} response is not a JSON object", status_code=resp.status_code)
        return data

    async def send(self, queue_address: str, body: str, *, delay_seconds: int | None = None) -> SendMessageResult:
        request: dict[str, Any] = {"QueueUrl": queue_address, "MessageBody": body}
        if delay_seconds is not None:
            request["DelaySeconds"] = int(delay_seconds)
        data = await self._call("SendMessage", request)
        message_id = data.get("MessageId")
        return SendMessageResult(message_id=str(message_id) if message_id else None)

    async def send_batch(self, queue_address: str, entries: list[BatchEntry]) -> SendBatchResult:
        successful: list[BatchSuccess] = []
        failed: list[BatchFailure] = []
        # The service caps each request at MAX_BATCH_ENTRIES entries.
        for chunk in _chunks(list(entries), MAX_BATCH_ENTRIES):
            request_entries: list[dict[str, Any]] = []
            for entry in chunk:
                item: dict[str, Any] = {"Id": entry.id, "MessageBody": entry.body}
                if entry.delay_seconds is not None:
                    item["DelaySeconds"] = int(entry.delay_seconds)
                request_entries.append(item)

            try:
                data = await self._call("SendMessageBatch", {"QueueUrl": queue_address, "Entries": request_entries})
            except TransportError as exc:
                # Earlier chunks are already enqueued.
                code = exc.aws_code or exc.code.value
                failed.extend(
                    BatchFailure(id=entry.id, sender_fault=False, code=code, message=exc.message) for entry in chunk
                )
                continue

            for item in data.get("Successful") or []:
                message_id = item.get("MessageId")
                successful.append(BatchSuccess(id=str(item.get("Id")), message_id=str(message_id) if message_id else None))
            for item in data.get("Failed") or []:
                failed.append(
                    BatchFailure(
                        id=str(item.get("Id")),
                        sender_fault=bool(item.get("SenderFault")),
                        code=str(item.get("Code") or ""),
                        message=item.get("Message"),
                    )
                )
        return SendBatchResult(successful=successful, failed=failed)

    async def receive(self, queue_address: str, *, max_messages: int, wait_seconds: int) -> list[QueueMessage]:
        data = await self._call(
            "ReceiveMessage",
            {
                "QueueUrl": queue_address,
                "MaxNumberOfMessages": int(max_messages),
                "WaitTimeSeconds": int(wait_seconds),
                "AttributeNames": ["All"],
            },
            extra_timeout_s=float(wait_seconds),
        )
        out: list[QueueMessage] = []
        for item in data.get("Messages") or []:
            attributes = item.get("Attributes")
            out.append(
                QueueMessage(
                    message_id=item.get("MessageId"),
                    body=item.get("Body"),
                    receipt_handle=item.get("ReceiptHandle"),
                    attributes=dict(attributes) if isinstance(attributes, dict) else {},
                )
            )
        return out

    async def delete(self, queue_address: str, receipt_handle: str) -> None:
        await self._call("DeleteMessage", {"QueueUrl": queue_address, "ReceiptHandle": receipt_handle})
