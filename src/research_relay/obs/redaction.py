"""Credential redaction for log lines and surfaced error text."""

from __future__ import annotations

import logging
import re
import sys

REDACTED = "[REDACTED]"

_SENSITIVE_PATTERNS = (
    re.compile(r"GEMINI_API_KEY[=:]\s*[\"']?[^\"'\s]+[\"']?", re.IGNORECASE),
    re.compile(r"api[_-]?key[=:]\s*[\"']?[^\"'\s]+[\"']?", re.IGNORECASE),
    re.compile(r"authorization[=:]\s*[\"']?[^\"'\s]+[\"']?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9_\-.]+", re.IGNORECASE),
    re.compile(r"token[=:]\s*[\"']?[^\"'\s]+[\"']?", re.IGNORECASE),
)

_LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [relay] %(name)s: %(message)s"


def redact(text: str) -> str:
    """Mask recognizable key/token patterns in `text`."""
    for pattern in _SENSITIVE_PATTERNS:
        text = pattern.sub(REDACTED, text)
    return text


class RedactingFilter(logging.Filter):
    """Logging filter that redacts the fully formatted message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message or record.args:
            record.msg = cleaned
            record.args = ()
        return True


def configure_logging(debug: bool = False) -> logging.Logger:
    """Attach a stderr handler with redaction to the package logger.

    Standard output is left alone; it may be used as a protocol channel.
    """

    logger = logging.getLogger("research_relay")
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    if not any(getattr(handler, "_relay_handler", False) for handler in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler.addFilter(RedactingFilter())
        handler._relay_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
