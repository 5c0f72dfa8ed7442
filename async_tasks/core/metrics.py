from __future__ import annotations

from prometheus_client import Counter, Histogram

BATCH_STATUSES: tuple[str, ...] = (
    "successful",
    "failed",
)

MESSAGE_RESULTS: tuple[str, ...] = (
    "ok",
    "malformed",
    "unroutable",
    "error",
)

TASKS_SUBMITTED_TOTAL = Counter(
    "async_tasks_submitted_total",
    "Total tasks handed to the transport by operation and queue.",
    ["operation", "queue"],
)

TASKS_REJECTED_TOTAL = Counter(
    "async_tasks_rejected_total",
    "Total submissions rejected before reaching the transport.",
    ["reason"],
)

BATCH_ENTRIES_TOTAL = Counter(
    "async_tasks_batch_entries_total",
    "Total batch-submitted entries by transport status.",
    ["status"],
)

MESSAGES_HANDLED_TOTAL = Counter(
    "async_tasks_messages_handled_total",
    "Total delivered messages by handling result.",
    ["result"],
)

HANDLER_LATENCY_SECONDS = Histogram(
    "async_tasks_handler_latency_seconds",
    "Latency of operation handlers (seconds).",
    buckets=(
        0.01,
        0.05,
        0.1,
        0.5,
        1.0,
        5.0,
        30.0,
        120.0,
        600.0,
    ),
)


def _init_labelsets() -> None:
    for status in BATCH_STATUSES:
        BATCH_ENTRIES_TOTAL.labels(status=status).inc(0)
    for result in MESSAGE_RESULTS:
        MESSAGES_HANDLED_TOTAL.labels(result=result).inc(0)


_init_labelsets()


def observe_message_result(*, result: str, duration_s: float | None = None) -> None:
    result = (result or "").strip()
    if result not in MESSAGE_RESULTS:
        result = "error"
    MESSAGES_HANDLED_TOTAL.labels(result=result).inc()
    if duration_s is not None and duration_s >= 0:
        HANDLER_LATENCY_SECONDS.observe(duration_s)
