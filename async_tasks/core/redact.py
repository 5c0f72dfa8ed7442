from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlsplit, urlunsplit

REDACTED = "***"

_SENSITIVE_KEY_PARTS = (
    "token",
    "secret",
    "password",
    "authorization",
    "api_key",
    "apikey",
    "credential",
    "cookie",
)

_QUEUE_URL_RE = re.compile(r"(?i)\b(?:https?|sqs)://[^\s\"'<>]+")
_SIGNING_PARAM_RE = re.compile(r"(?i)\b(X-Amz-Security-Token|X-Amz-Signature|X-Amz-Credential|AWSAccessKeyId|Signature)=[^&\s\"']+")
_TRAILING_PUNCT = ".,);:]}"


def is_sensitive_key(key: str) -> bool:
    key_l = key.lower()
    return any(part in key_l for part in _SENSITIVE_KEY_PARTS)


def _mask_userinfo(url: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    # rpartition: a password may itself contain '@'.
    userinfo, at, host = parts.netloc.rpartition("@")
    if not at or ":" not in userinfo:
        return url
    username = userinfo.split(":", 1)[0]
    return urlunsplit(parts._replace(netloc=f"{username}:{REDACTED}@{host}"))


def redact_queue_url(text: str) -> str:
    def _repl(m: re.Match[str]) -> str:
        url = m.group(0)
        core = url.rstrip(_TRAILING_PUNCT)
        return _mask_userinfo(core) + url[len(core) :]

    return _QUEUE_URL_RE.sub(_repl, text)


def redact_text(text: str) -> str:
    return _SIGNING_PARAM_RE.sub(r"\1=" + REDACTED, redact_queue_url(text))


def redact_any(value: Any) -> Any:
    """Redacts strings and, recursively, mapping values under sensitive keys."""
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, Mapping):
        return {
            k: REDACTED if isinstance(k, str) and is_sensitive_key(k) else redact_any(v) for k, v in value.items()
        }
    if isinstance(value, list):
        return [redact_any(v) for v in value]
    if isinstance(value, tuple):
        return tuple(redact_any(v) for v in value)
    return value
