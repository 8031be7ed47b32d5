"""Sensitive data redaction utilities."""

import re

_PATTERNS = [
    re.compile(r"(?i)bearer\s+[A-Za-z0-9\-._~+/]+=*"),
    re.compile(r"(?i)basic\s+[A-Za-z0-9+/]+=*"),
    re.compile(r"(?i)(password|secret|token)\s*=\s*[^\s,;&]+"),
    re.compile(r"\btk_[A-Za-z0-9]{29}\b"),
]

_SENSITIVE_HEADERS = {"authorization", "proxy-authorization", "cookie"}


def redact_text(text: str) -> str:
    """Redact likely secrets in arbitrary text."""

    redacted = text
    for pattern in _PATTERNS:
        redacted = pattern.sub("[REDACTED]", redacted)
    return redacted


def redact_headers(headers) -> dict[str, str]:
    """Copy of `headers` with credential-bearing values replaced."""

    return {
        name: "<redacted>" if name.lower() in _SENSITIVE_HEADERS else value
        for name, value in headers.items()
    }
