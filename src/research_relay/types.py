"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable


class RequestClass(str, Enum):
    """Request classes, each bound to its own model tier plan."""

    FAST = "fast"
    DEEP = "deep"


@dataclass(slots=True)
class PathVerdict:
    """Outcome of checking one path reference against the trusted root."""

    input: str
    resolved: str
    exists: bool
    allowed: bool
    reason: str | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "input": self.input,
            "resolved": self.resolved,
            "exists": self.exists,
            "allowed": self.allowed,
        }
        if self.reason:
            payload["reason"] = self.reason
        return payload


@dataclass(slots=True)
class BatchVerdict:
    """Verdicts for every path reference found in a block of text."""

    all_valid: bool
    results: list[PathVerdict]
    invalid: list[PathVerdict]


@dataclass(frozen=True, slots=True)
class ModelTierPlan:
    """Ordered model candidates for a request class; `None` lets the engine pick."""

    request_class: RequestClass
    candidates: tuple[str | None, ...]

    def __post_init__(self) -> None:
        if not 2 <= len(self.candidates) <= 3:
            raise ValueError("a tier plan needs 2 or 3 candidates")
        if any(candidate is None for candidate in self.candidates[:-1]):
            raise ValueError("only the last tier may be unspecified")

    def __len__(self) -> int:
        return len(self.candidates)


@dataclass(slots=True)
class OrchestrationResult:
    """Normalized answer from one successful engine call."""

    text: str
    files_referenced: list[str]
    latency_ms: int
    model_used: str
    tokens_used: int | None = None
    external_call_count: int | None = None


@dataclass(frozen=True, slots=True)
class Segment:
    """A contiguous slice of an oversized answer (1-based index)."""

    index: int
    total_count: int
    content: str


@dataclass(frozen=True, slots=True)
class SegmentBundle:
    """All segments of one answer stored under a retrieval key."""

    key: str
    segments: tuple[Segment, ...]
    created_at: float
    expires_at: float

    @property
    def total_count(self) -> int:
        return len(self.segments)


@dataclass(frozen=True, slots=True)
class SegmentMetadata:
    total_count: int
    created_at: float
    expires_at: float


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """One liveness notification for an in-flight call."""

    progress: int
    message: str
    total: int | None = None


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float
    metadata: dict[str, Any] = field(default_factory=dict)


OutputCallback = Callable[[str], None]
ProgressSink = Callable[[ProgressEvent], None]
