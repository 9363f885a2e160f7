"""
Log redaction for account data.

``SensitiveDataFilter`` masks token-like strings and the values of
sensitive mapping keys in log record arguments before any handler formats
them. Install it on the handlers that leave the process::

    handler.addFilter(SensitiveDataFilter())
"""
import re
import logging
from typing import Any

REDACTED = "[REDACTED]"

SENSITIVE_KEYS = (
    "accesstoken",
    "access_token",
    "token",
    "password",
    "secret",
    "authorization",
    "credit_card",
    "ssn",
    "api_key",
)

_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]{51,}$")
_BEARER_RE = re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+", re.IGNORECASE)


def _is_sensitive_key(key: Any) -> bool:
    lowered = str(key).lower()
    return any(sk in lowered for sk in SENSITIVE_KEYS)


def sanitize(data: Any) -> Any:
    """Return a copy of ``data`` with secrets masked."""
    if isinstance(data, str):
        if _TOKEN_RE.match(data):
            return f"{data[:10]}...{data[-5:]}"
        return _BEARER_RE.sub(r"\1" + REDACTED, data)
    if isinstance(data, dict):
        return {
            k: REDACTED if _is_sensitive_key(k) else sanitize(v)
            for k, v in data.items()
        }
    if isinstance(data, (list, tuple)):
        return type(data)(sanitize(v) for v in data)
    return data


class SensitiveDataFilter(logging.Filter):
    """Masks secrets in ``record.msg`` and ``record.args``."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = _BEARER_RE.sub(r"\1" + REDACTED, record.msg)
        if isinstance(record.args, dict):
            record.args = sanitize(record.args)
        elif isinstance(record.args, tuple):
            record.args = tuple(sanitize(a) for a in record.args)
        return True
