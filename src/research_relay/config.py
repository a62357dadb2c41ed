"""Configuration models for the research relay."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Flags that would let the engine write files or run commands.
FORBIDDEN_ENGINE_FLAGS = frozenset({"--yolo", "-y", "yolo", "auto_edit", "--approval-mode=yolo"})

DEFAULT_CHUNK_SIZE_KB = 10


class EngineConfig(BaseModel):
    """Configures how the external analysis engine is invoked."""

    binary: str = Field(default="gemini", min_length=1)
    model_flag: str = "-m"
    prompt_flag: str = "-p"
    output_format_flag: str = "--output-format"
    output_format: str = "json"
    non_interactive_flags: tuple[str, ...] = ("--approval-mode", "default")
    timeout_seconds: float | None = Field(default=None, gt=0.0)
    fast_tiers: tuple[str | None, ...] = ("gemini-3-flash-preview", "gemini-2.5-flash", None)
    deep_tiers: tuple[str | None, ...] = ("gemini-3-pro-preview", "gemini-2.5-pro", None)

    @field_validator("non_interactive_flags")
    @classmethod
    def _reject_write_flags(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for flag in value:
            if flag.strip().lower() in FORBIDDEN_ENGINE_FLAGS:
                raise ValueError(f"Flag grants write/execute capability: {flag}")
        return value

    @field_validator("fast_tiers", "deep_tiers")
    @classmethod
    def _check_tiers(cls, value: tuple[str | None, ...]) -> tuple[str | None, ...]:
        if not 2 <= len(value) <= 3:
            raise ValueError("a tier plan needs 2 or 3 candidates")
        if any(candidate is None for candidate in value[:-1]):
            raise ValueError("only the last tier may be unspecified")
        return value


class SegmentConfig(BaseModel):
    """Configures response segmentation and segment retention."""

    chunk_size_kb: int = Field(default=DEFAULT_CHUNK_SIZE_KB, ge=1)
    newline_window: int = Field(default=500, ge=0)
    ttl_seconds: float = Field(default=3600.0, gt=0.0)
    sweep_interval_seconds: float = Field(default=300.0, gt=0.0)

    @property
    def target_size(self) -> int:
        return self.chunk_size_kb * 1024


class LivenessConfig(BaseModel):
    """Configures keep-alive progress notifications for long calls."""

    interval_seconds: float = Field(default=25.0, gt=0.0)
    preview_chars: int = Field(default=150, ge=0)
    max_message_chars: int = Field(default=500, ge=40)


class RelaySettings(BaseSettings):
    """Process-level settings read once from the environment."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    project_root: Path = Field(default_factory=lambda: Path(os.getcwd()))
    response_chunk_size_kb: int = DEFAULT_CHUNK_SIZE_KB
    relay_debug: bool = False
    relay_engine_binary: str = "gemini"
    relay_engine_timeout_seconds: float | None = None

    @field_validator("response_chunk_size_kb", mode="before")
    @classmethod
    def _fallback_chunk_size(cls, value: Any) -> int:
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return DEFAULT_CHUNK_SIZE_KB
        return parsed if parsed > 0 else DEFAULT_CHUNK_SIZE_KB

    @field_validator("project_root")
    @classmethod
    def _absolute_root(cls, value: Path) -> Path:
        return Path(os.path.abspath(value))

    def engine_config(self) -> EngineConfig:
        return EngineConfig(
            binary=self.relay_engine_binary,
            timeout_seconds=self.relay_engine_timeout_seconds,
        )

    def segment_config(self) -> SegmentConfig:
        return SegmentConfig(chunk_size_kb=self.response_chunk_size_kb)
