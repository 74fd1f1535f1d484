"""Masking of credentials before values reach the log."""

import json
import re
from typing import Any

_BEARER_PATTERN = re.compile(r"Bearer\s+[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE)
_SENSITIVE_KEYS = {"authorization", "password", "client_secret", "access_token", "refresh_token"}


def redact_text(text: str) -> str:
    if not text:
        return text
    return _BEARER_PATTERN.sub("Bearer [REDACTED]", text)


def redact_for_log(value: Any) -> str:
    """Serialize a value for logging with credentials masked."""
    def scrub(item: Any) -> Any:
        if isinstance(item, dict):
            return {
                k: "[REDACTED]" if isinstance(k, str) and k.lower() in _SENSITIVE_KEYS else scrub(v)
                for k, v in item.items()
            }
        if isinstance(item, list):
            return [scrub(v) for v in item]
        return item

    try:
        text = json.dumps(scrub(value), default=str)
    except (TypeError, ValueError):
        text = str(value)
    return redact_text(text)


__all__ = ["redact_text", "redact_for_log"]
