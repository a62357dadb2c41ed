from __future__ import annotations

import json
from typing import Any

import pytest

from research_relay.engine.runner import CommandFailedError
from research_relay.types import OutputCallback


class ScriptedRunner:
    """Command runner that replays canned outcomes instead of spawning processes.

    Each outcome is either stdout text (streamed to `on_output` first) or an
    exception instance to raise.
    """

    def __init__(self, outcomes: list[str | BaseException]) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[dict[str, Any]] = []

    async def run(
        self,
        command: str,
        args: list[str],
        on_output: OutputCallback | None = None,
        *,
        timeout: float | None = None,
    ) -> str:
        self.calls.append({"command": command, "args": list(args), "timeout": timeout})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        if on_output is not None:
            on_output(outcome)
        return outcome

    def models(self) -> list[str | None]:
        used: list[str | None] = []
        for call in self.calls:
            args = call["args"]
            used.append(args[args.index("-m") + 1] if "-m" in args else None)
        return used


def engine_reply(text: str, tokens: int = 120, tool_calls: int = 2) -> str:
    return json.dumps(
        {
            "response": text,
            "stats": {
                "models": {"gemini-2.5-flash": {"tokens": {"total": tokens}}},
                "tools": {"totalCalls": tool_calls},
            },
        }
    )


def quota_failure(command: str = "gemini") -> CommandFailedError:
    return CommandFailedError(command, 1, "Error: RESOURCE_EXHAUSTED: quota exceeded for model")


@pytest.fixture()
def project_root(tmp_path):
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "auth.py").write_text("def login():\n    return True\n", encoding="utf-8")
    (root / "README.md").write_text("# demo\n", encoding="utf-8")
    return root
