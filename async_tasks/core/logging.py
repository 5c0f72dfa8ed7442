from __future__ import annotations

import logging

from async_tasks.core.redact import redact_any

_LOG_FORMAT = "%(levelname)s %(name)s %(message)s"


class RedactFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
            record.msg = redact_any(message)
            record.args = ()
            for key, value in list(record.__dict__.items()):
                if key.startswith("_") or key in {"exc_info", "stack_info"}:
                    continue
                record.__dict__[key] = redact_any(value)
        except Exception:
            pass
        return True


def parse_log_level(raw: str | None, *, default: int = logging.INFO) -> int:
    name = (raw or "").strip().upper()
    if not name:
        return default
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    # Filters on a logger do not see records propagated from child loggers; handlers do.
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RedactFilter) for f in handler.filters):
            handler.addFilter(RedactFilter())


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
