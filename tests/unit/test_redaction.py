import logging

import pytest

from research_relay.errors import ExecutionFailedError, sanitize_stderr
from research_relay.obs.redaction import REDACTED, RedactingFilter, configure_logging, redact
from research_relay.obs.tracing import command_preview, truncate


@pytest.mark.parametrize(
    "secret",
    [
        "GEMINI_API_KEY=AIzaSyD-secret",
        "api_key: 'abc123'",
        "Authorization: xyz",
        "Bearer eyJhbGciOi.payload.sig",
        "token=ghp_abcdef",
    ],
)
def test_redact_masks_credentials(secret: str) -> None:
    cleaned = redact(f"request failed ({secret}) please retry")

    assert REDACTED in cleaned
    assert "please retry" in cleaned
    assert secret not in cleaned


def test_redact_leaves_ordinary_text() -> None:
    assert redact("Analyzed 3 files in src/") == "Analyzed 3 files in src/"


def test_filter_redacts_formatted_message() -> None:
    record = logging.LogRecord("research_relay.test", logging.INFO, __file__, 1, "env %s", ("token=abc",), None)

    assert RedactingFilter().filter(record) is True
    assert record.getMessage() == f"env {REDACTED}"


def test_configure_logging_is_idempotent() -> None:
    logger = configure_logging(debug=True)
    handlers = len(logger.handlers)

    configure_logging(debug=False)

    assert len(logger.handlers) == handlers
    assert logger.level == logging.INFO


def test_sanitize_stderr_truncates() -> None:
    cleaned = sanitize_stderr("  " + "e" * 900 + "  ")

    assert len(cleaned) == 500
    assert cleaned.endswith("...")


def test_error_payload_shape() -> None:
    error = ExecutionFailedError("Engine execution failed: exit code 1", stderr="bad token=xyz", details={"model": "m"})

    payload = error.to_payload()

    assert payload["error"]["code"] == "EXECUTION_FAILED"
    assert payload["error"]["message"] == "Engine execution failed: exit code 1"
    assert payload["error"]["details"]["model"] == "m"
    assert payload["error"]["details"]["nextStep"]
    assert "xyz" not in payload["error"]["details"]["stderr"]


def test_command_preview_truncates_prompt() -> None:
    preview = command_preview("gemini", ["-m", "flash", "-p", "q" * 300])

    assert preview.startswith("gemini -m flash -p ")
    assert preview.endswith("...[truncated]")
    assert preview.count("q") == 100


def test_truncate() -> None:
    assert truncate("short", 10) == "short"
    assert truncate("abcdefghij", 6) == "abc..."
