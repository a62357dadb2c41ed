"""Classified failures surfaced to callers."""

from __future__ import annotations

from enum import Enum
from typing import Any

from research_relay.obs.redaction import redact

_STDERR_EXCERPT_CHARS = 500


class ErrorKind(str, Enum):
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    PATH_NOT_ALLOWED = "PATH_NOT_ALLOWED"
    ENGINE_NOT_FOUND = "ENGINE_NOT_FOUND"
    AUTH_MISSING = "AUTH_MISSING"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    EXECUTION_FAILED = "EXECUTION_FAILED"
    CACHE_EXPIRED = "CACHE_EXPIRED"
    INVALID_SEGMENT_INDEX = "INVALID_SEGMENT_INDEX"
    INTERNAL = "INTERNAL"


HINTS: dict[ErrorKind, str] = {
    ErrorKind.INVALID_ARGUMENT: "Check the tool arguments and try again.",
    ErrorKind.PATH_NOT_ALLOWED: (
        "Use validate_paths to check which paths are accessible, or keep paths inside the project root."
    ),
    ErrorKind.ENGINE_NOT_FOUND: "Install the Gemini CLI: npm install -g @google/gemini-cli",
    ErrorKind.AUTH_MISSING: (
        "Authenticate the Gemini CLI: run 'gemini' and choose 'Login with Google', or set GEMINI_API_KEY."
    ),
    ErrorKind.QUOTA_EXCEEDED: (
        "Quota exhausted on every fallback model. Wait for the quota to reset or use quick_query for lighter tasks."
    ),
    ErrorKind.EXECUTION_FAILED: "Check the server logs for details.",
    ErrorKind.CACHE_EXPIRED: "Segments expire after one hour. Re-run the original query to regenerate them.",
    ErrorKind.INVALID_SEGMENT_INDEX: "Request a chunk index between 1 and the reported total.",
    ErrorKind.INTERNAL: "Check the server logs for details.",
}


class RelayError(Exception):
    """Base class for classified failures.

    `message` is the primary, user-facing line. Raw engine stderr is kept apart
    in `stderr` and is always redacted before it is stored.
    """

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        stderr: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint or HINTS[self.kind]
        self.stderr = sanitize_stderr(stderr) if stderr else None
        self.details = dict(details or {})

    def to_payload(self) -> dict[str, Any]:
        details: dict[str, Any] = {**self.details, "nextStep": self.hint}
        if self.stderr:
            details["stderr"] = self.stderr
        return {
            "error": {
                "code": self.kind.value,
                "message": self.message,
                "details": details,
            }
        }


class InvalidArgumentError(RelayError):
    kind = ErrorKind.INVALID_ARGUMENT


class PathNotAllowedError(RelayError):
    kind = ErrorKind.PATH_NOT_ALLOWED


class EngineNotFoundError(RelayError):
    kind = ErrorKind.ENGINE_NOT_FOUND


class AuthenticationMissingError(RelayError):
    kind = ErrorKind.AUTH_MISSING


class QuotaExhaustedError(RelayError):
    kind = ErrorKind.QUOTA_EXCEEDED


class ExecutionFailedError(RelayError):
    kind = ErrorKind.EXECUTION_FAILED


class CacheExpiredError(RelayError):
    kind = ErrorKind.CACHE_EXPIRED


class InvalidSegmentIndexError(RelayError):
    kind = ErrorKind.INVALID_SEGMENT_INDEX


def sanitize_stderr(stderr: str) -> str:
    cleaned = redact(stderr.strip())
    if len(cleaned) <= _STDERR_EXCERPT_CHARS:
        return cleaned
    return cleaned[: _STDERR_EXCERPT_CHARS - 3] + "..."
