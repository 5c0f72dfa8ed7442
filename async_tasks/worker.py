from __future__ import annotations

import asyncio
import importlib
import signal
from typing import Any

from async_tasks.core.config import Settings, load_settings
from async_tasks.core.logging import configure_logging, get_logger
from async_tasks.core.redact import redact_text
from async_tasks.tasks.client import TaskClient
from async_tasks.tasks.consumer import TaskConsumer
from async_tasks.tasks.context import ContextProvider, default_context_provider
from async_tasks.transport.base import QueueTransport
from async_tasks.transport.http import HttpQueueTransport
from async_tasks.transport.memory import InMemoryTransport

log = get_logger(__name__)

REGISTER_HOOK = "register_operations"
CONTEXT_PROVIDER_HOOK = "context_provider"


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    signals = [signal.SIGINT]
    if hasattr(signal, "SIGTERM"):
        signals.append(signal.SIGTERM)

    for sig in signals:
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            signal.signal(sig, lambda *_: stop_event.set())
        except (RuntimeError, ValueError):
            continue


def build_transport(settings: Settings) -> QueueTransport:
    if settings.uses_memory_transport:
        return InMemoryTransport()
    return HttpQueueTransport(endpoint_url=settings.endpoint_url, timeout_s=settings.http_timeout_s)


def build_client(settings: Settings, *, transport: QueueTransport | None = None) -> TaskClient:
    return TaskClient(
        transport or build_transport(settings),
        default_queue=settings.default_queue_url,
        queues=settings.queues,
    )


def load_operations(client: TaskClient, module_name: str) -> ContextProvider:
    """Imports ``module_name`` and calls its ``register_operations(client)`` hook.

    The module may also expose an async ``context_provider(message)``; the default
    provider is used otherwise.
    """
    module_name = (module_name or "").strip()
    if not module_name:
        return default_context_provider

    module = importlib.import_module(module_name)
    register = getattr(module, REGISTER_HOOK, None)
    if not callable(register):
        raise TypeError(f"{module_name} must define {REGISTER_HOOK}(client)")
    register(client)

    provider = getattr(module, CONTEXT_PROVIDER_HOOK, None)
    if provider is None:
        return default_context_provider
    if not callable(provider):
        raise TypeError(f"{module_name}.{CONTEXT_PROVIDER_HOOK} must be callable")
    return provider


async def run_consumers(
    consumers: dict[str, TaskConsumer],
    *,
    stop_event: asyncio.Event,
    poll_interval_s: float = 0.0,
    max_iterations: int | None = None,
) -> None:
    if not consumers:
        log.warning("tasks_worker_no_consumers")
        return

    runs = [
        asyncio.create_task(
            consumer.run(poll_interval_s=poll_interval_s, max_iterations=max_iterations, stop_event=stop_event),
            name=f"consumer:{name}",
        )
        for name, consumer in consumers.items()
    ]
    stop_wait = asyncio.create_task(stop_event.wait())
    try:
        await asyncio.wait([*runs, stop_wait], return_when=asyncio.FIRST_COMPLETED)
        if stop_event.is_set():
            # Consumers may be parked in a long poll; do not wait out the receive.
            for run in runs:
                run.cancel()
        results: list[Any] = await asyncio.gather(*runs, return_exceptions=True)
        for name, result in zip(consumers, results):
            if isinstance(result, Exception):
                log.warning("tasks_consumer_crashed queue=%s err=%s", name, redact_text(f"{type(result).__name__}: {result}"))
    finally:
        stop_wait.cancel()


async def main_async(
    *,
    max_iterations: int | None = None,
    poll_interval_s: float | None = None,
    transport: QueueTransport | None = None,
) -> None:
    settings = load_settings()
    configure_logging(settings.log_level)

    owned_transport = transport is None
    active_transport = transport or build_transport(settings)
    try:
        client = build_client(settings, transport=active_transport)
        context_provider = load_operations(client, settings.operations_module)
        consumers = client.generate_consumers(
            context_provider=context_provider,
            max_messages=settings.max_messages,
            wait_seconds=settings.wait_time_seconds,
        )

        stop_event = asyncio.Event()
        _install_signal_handlers(stop_event)

        log.info(
            "tasks_worker_start env=%s queues=%s operations=%s",
            settings.app_env,
            ",".join(consumers),
            ",".join(client.registered_operations),
        )
        await run_consumers(
            consumers,
            stop_event=stop_event,
            poll_interval_s=settings.poll_interval_s if poll_interval_s is None else poll_interval_s,
            max_iterations=max_iterations,
        )
        log.info("tasks_worker_stop")
    finally:
        if owned_transport and isinstance(active_transport, HttpQueueTransport):
            await active_transport.aclose()


def main(argv: list[str] | None = None) -> None:
    _ = argv
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
