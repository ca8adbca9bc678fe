"""Redaction of sensitive values from exception text before it is logged."""

from __future__ import annotations

import re

_SENSITIVE_PATTERNS = [
    re.compile(r"(api[_-]?key|token|secret|password|auth)[=:]\s*['\"]?([^\s'\"]+)['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"[a-zA-Z0-9]{32,}"),
    re.compile(r"sk-[a-zA-Z0-9]{20,}"),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove sensitive information from error messages."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def describe_exception(exc: BaseException) -> str:
    """`TypeName: sanitized message` for log lines."""
    text = sanitize_error_message(str(exc))
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__
