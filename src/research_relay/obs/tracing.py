"""Timing and log-safe previews for engine invocations."""

from __future__ import annotations

import time

_PROMPT_FLAGS = frozenset({"-p", "--prompt"})


class Timer:
    """Simple context timer used around engine and tool calls."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0

    def lap_ms(self) -> int:
        return int((time.perf_counter() - self._start) * 1000.0)


def truncate(text: str, max_length: int, marker: str = "...") -> str:
    if len(text) <= max_length:
        return text
    return text[: max(0, max_length - len(marker))] + marker


def command_preview(command: str, args: list[str], prompt_chars: int = 100) -> str:
    """Render a command line for logging with the prompt argument shortened."""
    shown: list[str] = []
    for index, arg in enumerate(args):
        if index > 0 and args[index - 1] in _PROMPT_FLAGS:
            arg = truncate(arg, prompt_chars + len("...[truncated]"), "...[truncated]")
        shown.append(arg)
    return " ".join([command, *shown])
