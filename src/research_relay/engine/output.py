"""Tolerant parsing of engine stdout."""

from __future__ import annotations

import re
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, ValidationError

_FILES_SECTION = re.compile(r"## Files Referenced\n([\s\S]*?)(?:\n##|$)")
_BULLET = re.compile(r"^[-*]\s*")


class TokenStats(BaseModel):
    total: int = 0


class ModelStats(BaseModel):
    tokens: TokenStats = Field(default_factory=TokenStats)


class ToolCallStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_calls: int = Field(default=0, alias="totalCalls")


class EngineStats(BaseModel):
    models: dict[str, ModelStats] = Field(default_factory=dict)
    tools: ToolCallStats = Field(default_factory=ToolCallStats)


class EngineReply(BaseModel):
    """The engine's JSON output envelope."""

    response: str
    stats: EngineStats | None = None

    @property
    def tokens_used(self) -> int | None:
        if self.stats is None or not self.stats.models:
            return None
        return sum(model.tokens.total for model in self.stats.models.values())

    @property
    def tool_calls(self) -> int | None:
        if self.stats is None:
            return None
        return self.stats.tools.total_calls


@dataclass(frozen=True, slots=True)
class StructuredOutput:
    reply: EngineReply

    @property
    def text(self) -> str:
        return self.reply.response


@dataclass(frozen=True, slots=True)
class RawOutput:
    text: str


EngineOutput = StructuredOutput | RawOutput


def parse_engine_output(raw: str) -> EngineOutput:
    """Validate against the reply schema, otherwise keep the payload as literal text."""
    try:
        return StructuredOutput(EngineReply.model_validate_json(raw))
    except ValidationError:
        return RawOutput(raw)


def extract_files_referenced(text: str) -> list[str]:
    match = _FILES_SECTION.search(text)
    if not match:
        return []
    files: list[str] = []
    for line in match.group(1).split("\n"):
        entry = _BULLET.sub("", line).strip().strip("`")
        if entry and not entry.startswith("#") and entry not in files:
            files.append(entry)
    return files
