from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

from async_tasks.core.logging import get_logger, parse_log_level
from async_tasks.core.redact import redact_text

log = get_logger(__name__)

DEFAULT_MAX_MESSAGES = 5
DEFAULT_WAIT_TIME_SECONDS = 20
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True, slots=True)
class Settings:
    app_env: str
    log_level: int
    endpoint_url: str
    default_queue_url: str
    queues: dict[str, str] = field(default_factory=dict)
    operations_module: str = ""
    max_messages: int = DEFAULT_MAX_MESSAGES
    wait_time_seconds: int = DEFAULT_WAIT_TIME_SECONDS
    poll_interval_s: float = 0.0
    http_timeout_s: float = DEFAULT_HTTP_TIMEOUT_SECONDS

    @property
    def is_prod(self) -> bool:
        return self.app_env in {"prod", "production"}

    @property
    def uses_memory_transport(self) -> bool:
        return not self.endpoint_url


def _get(env: Mapping[str, str], key: str, default: str) -> str:
    value = env.get(key, default)
    return value.strip()


def _get_int(env: Mapping[str, str], key: str, *, default: int, min_v: int, max_v: int) -> int:
    try:
        value = int(_get(env, key, str(default)) or str(default))
    except ValueError:
        value = default
    return max(min_v, min(value, max_v))


def _get_float(env: Mapping[str, str], key: str, *, default: float, min_v: float, max_v: float) -> float:
    try:
        value = float(_get(env, key, str(default)) or str(default))
    except ValueError:
        value = default
    return max(min_v, min(value, max_v))


def parse_queues(raw: str) -> dict[str, str]:
    out: dict[str, str] = {}
    for item in (raw or "").split(","):
        item = item.strip()
        if not item:
            continue
        name, sep, url = item.partition("=")
        name = name.strip()
        url = url.strip()
        if not sep or not name or not url:
            log.warning("tasks_queue_entry_ignored entry=%s", redact_text(item))
            continue
        out[name] = url
    return out


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if env is None else env

    app_env = _get(env, "APP_ENV", "dev").lower()
    endpoint_url = _get(env, "TASKS_ENDPOINT_URL", "")
    default_queue_url = _get(env, "TASKS_DEFAULT_QUEUE_URL", "")
    if not default_queue_url and not endpoint_url:
        default_queue_url = "memory://default"

    settings = Settings(
        app_env=app_env,
        log_level=parse_log_level(_get(env, "LOG_LEVEL", "INFO")),
        endpoint_url=endpoint_url,
        default_queue_url=default_queue_url,
        queues=parse_queues(_get(env, "TASKS_QUEUES", "")),
        operations_module=_get(env, "TASKS_OPERATIONS_MODULE", ""),
        max_messages=_get_int(env, "TASKS_MAX_MESSAGES", default=DEFAULT_MAX_MESSAGES, min_v=1, max_v=10),
        wait_time_seconds=_get_int(
            env, "TASKS_WAIT_TIME_SECONDS", default=DEFAULT_WAIT_TIME_SECONDS, min_v=0, max_v=20
        ),
        poll_interval_s=_get_float(env, "TASKS_POLL_INTERVAL_SECONDS", default=0.0, min_v=0.0, max_v=300.0),
        http_timeout_s=_get_float(
            env, "TASKS_HTTP_TIMEOUT_SECONDS", default=DEFAULT_HTTP_TIMEOUT_SECONDS, min_v=1.0, max_v=600.0
        ),
    )

    if endpoint_url and not default_queue_url:
        raise ValueError("Missing required env vars: TASKS_DEFAULT_QUEUE_URL")

    if settings.is_prod:
        missing: list[str] = []
        if not settings.endpoint_url:
            missing.append("TASKS_ENDPOINT_URL")
        if not settings.operations_module:
            missing.append("TASKS_OPERATIONS_MODULE")
        if missing:
            raise ValueError(f"Missing required env vars for prod: {', '.join(missing)}")

    return settings
