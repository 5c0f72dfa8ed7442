from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from async_tasks.transport.base import QueueMessage

ContextProvider = Callable[[QueueMessage], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class DefaultTaskContext:
    raw_message: QueueMessage


async def default_context_provider(raw_message: QueueMessage) -> DefaultTaskContext:
    return DefaultTaskContext(raw_message=raw_message)
