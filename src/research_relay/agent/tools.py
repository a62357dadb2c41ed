"""Built-in research tools exposed by the relay."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

from research_relay.agent.registry import ToolRegistry, ToolSpec
from research_relay.config import SegmentConfig
from research_relay.engine.diagnostics import EngineDiagnostics
from research_relay.engine.orchestrator import ExecutionOrchestrator
from research_relay.errors import (
    CacheExpiredError,
    InvalidArgumentError,
    InvalidSegmentIndexError,
    PathNotAllowedError,
    RelayError,
)
from research_relay.guard.paths import PathGuard
from research_relay.obs.tracing import Timer
from research_relay.responses.segmenter import needs_segmenting, split
from research_relay.responses.store import SegmentStore
from research_relay.types import OutputCallback, RequestClass

logger = logging.getLogger(__name__)

SERVER_NAME = "research-relay"
SERVER_VERSION = "0.1.0"

Focus = Literal["security", "architecture", "performance", "general"]

FOCUS_INSTRUCTIONS: dict[str, str] = {
    "security": "Focus on security implications, vulnerabilities, attack vectors, and security best practices.",
    "architecture": "Focus on architectural patterns, design decisions, component relationships, and structural concerns.",
    "performance": "Focus on performance characteristics, bottlenecks, optimization opportunities, and efficiency.",
    "general": "",
}

STYLE_INSTRUCTIONS: dict[str, str] = {
    "concise": "Provide a brief, focused response with only essential information.",
    "normal": "",
    "detailed": "Provide a comprehensive response with thorough analysis and examples.",
}

CITATION_INSTRUCTIONS: dict[str, str] = {
    "none": "",
    "paths_only": (
        "Include a '## Files Referenced' section at the end of your response listing all "
        "file paths you examined or referenced in your analysis."
    ),
}

NO_PROMPT_MESSAGE = (
    "Please provide a prompt for analysis. Use @ syntax to include files "
    "(e.g., '@src/auth.py explain what this does') or ask general questions."
)
SEGMENTED_WARNING = "Response chunked due to size. Use fetch_chunk to retrieve the remaining content."


class QuickQueryInput(BaseModel):
    prompt: str
    focus: Focus | None = None
    response_style: Literal["concise", "normal", "detailed"] = "normal"


class DeepResearchInput(BaseModel):
    prompt: str
    focus: Focus | None = None
    citation_mode: Literal["none", "paths_only"] = "none"


class FetchChunkInput(BaseModel):
    cache_key: str = Field(min_length=1)
    chunk_index: int = Field(ge=1)


class ValidatePathsInput(BaseModel):
    paths: list[str]


class HealthCheckInput(BaseModel):
    include_diagnostics: bool = False


def register_builtin_tools(
    registry: ToolRegistry,
    orchestrator: ExecutionOrchestrator,
    store: SegmentStore,
    guard: PathGuard,
    *,
    segment_config: SegmentConfig | None = None,
    diagnostics: EngineDiagnostics | None = None,
) -> None:
    """Register default tool set.

    Tools:
    - `quick_query`: fast engine tiers, optional focus and response style.
    - `deep_research`: deep engine tiers, optional focus and citation listing.
    - `fetch_chunk`: continuation of a segmented answer.
    - `validate_paths`: containment/existence preflight for path references.
    - `health_check`: server status with optional engine diagnostics.
    """

    segments = segment_config or SegmentConfig()
    engine_diagnostics = diagnostics or EngineDiagnostics(orchestrator.runner, orchestrator.config)

    async def _run_query(
        tool: str,
        prompt: str,
        request_class: RequestClass,
        on_output: OutputCallback | None,
        extra: dict[str, Any],
    ) -> dict[str, Any]:
        with Timer() as timer:
            try:
                result = await orchestrator.execute(prompt, request_class, on_output)
            except RelayError as exc:
                logger.error("%s: failed - %s", tool, exc.message)
                payload = exc.to_payload()
                payload["error"]["details"]["tool"] = tool
                return payload

            answer = result.text
            chunks: dict[str, Any] | None = None
            if needs_segmenting(answer, segments.target_size):
                pieces = split(answer, segments.target_size, newline_window=segments.newline_window)
                cache_key = store.put(pieces, ttl_seconds=segments.ttl_seconds)
                chunks = {"cacheKey": cache_key, "current": 1, "total": len(pieces)}
                answer = pieces[0].content
                logger.debug("%s: response chunked into %d segments, key=%s", tool, len(pieces), cache_key)

        response: dict[str, Any] = {
            "tool": tool,
            "model": result.model_used,
            **extra,
            "answer": answer,
            "filesAccessed": result.files_referenced,
            "stats": {
                "tokensUsed": result.tokens_used or 0,
                "toolCalls": result.external_call_count or 0,
                "latencyMs": int(timer.elapsed_ms),
            },
            "meta": {
                "projectRoot": guard.root,
                "truncated": False,
                "warnings": [SEGMENTED_WARNING] if chunks else [],
            },
        }
        if chunks:
            response["chunks"] = chunks
        logger.info("%s: completed in %dms", tool, int(timer.elapsed_ms))
        return response

    def _precheck(prompt: str) -> dict[str, Any] | None:
        if not prompt.strip():
            return InvalidArgumentError(NO_PROMPT_MESSAGE, details={"field": "prompt"}).to_payload()
        batch = guard.validate_batch(prompt)
        if not batch.all_valid:
            return PathNotAllowedError(
                "Invalid @path references in prompt",
                details={"invalidPaths": [verdict.as_dict() for verdict in batch.invalid]},
            ).to_payload()
        return None

    async def _quick_query(data: QuickQueryInput, on_output: OutputCallback | None) -> dict[str, Any]:
        rejected = _precheck(data.prompt)
        if rejected is not None:
            return rejected
        full_prompt = data.prompt
        if data.focus and data.focus != "general":
            full_prompt = f"{FOCUS_INSTRUCTIONS[data.focus]}\n\n{full_prompt}"
        if STYLE_INSTRUCTIONS[data.response_style]:
            full_prompt = f"{STYLE_INSTRUCTIONS[data.response_style]}\n\n{full_prompt}"
        return await _run_query(
            "quick_query",
            full_prompt,
            RequestClass.FAST,
            on_output,
            {"focus": data.focus or "general", "responseStyle": data.response_style},
        )

    async def _deep_research(data: DeepResearchInput, on_output: OutputCallback | None) -> dict[str, Any]:
        rejected = _precheck(data.prompt)
        if rejected is not None:
            return rejected
        full_prompt = data.prompt
        if data.focus and data.focus != "general":
            full_prompt = f"{FOCUS_INSTRUCTIONS[data.focus]}\n\n{full_prompt}"
        if CITATION_INSTRUCTIONS[data.citation_mode]:
            full_prompt = f"{full_prompt}\n\n{CITATION_INSTRUCTIONS[data.citation_mode]}"
        return await _run_query(
            "deep_research",
            full_prompt,
            RequestClass.DEEP,
            on_output,
            {"focus": data.focus or "general", "citationMode": data.citation_mode},
        )

    async def _fetch_chunk(data: FetchChunkInput, on_output: OutputCallback | None) -> dict[str, Any]:
        del on_output
        metadata = store.metadata(data.cache_key)
        if metadata is None:
            logger.warning("fetch_chunk: key not found or expired: %s", data.cache_key)
            return CacheExpiredError(
                "Cache key not found or expired.", details={"cacheKey": data.cache_key}
            ).to_payload()
        segment = store.get_segment(data.cache_key, data.chunk_index)
        if segment is None:
            logger.warning(
                "fetch_chunk: index %d out of range (total: %d)", data.chunk_index, metadata.total_count
            )
            return InvalidSegmentIndexError(
                "Requested chunk index out of range",
                details={"requestedIndex": data.chunk_index, "totalChunks": metadata.total_count},
            ).to_payload()
        return {
            "tool": "fetch_chunk",
            "cacheKey": data.cache_key,
            "chunk": {
                "index": segment.index,
                "total": segment.total_count,
                "content": segment.content,
            },
            "meta": {"expiresAt": _isoformat(metadata.expires_at)},
        }

    async def _validate_paths(data: ValidatePathsInput, on_output: OutputCallback | None) -> dict[str, Any]:
        del on_output
        verdicts = guard.validate_many(data.paths)
        valid = sum(1 for verdict in verdicts if verdict.allowed and verdict.exists)
        logger.info("validate_paths: %d valid, %d invalid", valid, len(verdicts) - valid)
        return {"tool": "validate_paths", "results": [verdict.as_dict() for verdict in verdicts]}

    async def _health_check(data: HealthCheckInput, on_output: OutputCallback | None) -> dict[str, Any]:
        del on_output
        response: dict[str, Any] = {
            "tool": "health_check",
            "status": "ok",
            "server": {"name": SERVER_NAME, "version": SERVER_VERSION},
        }
        if not data.include_diagnostics:
            return response

        report = await engine_diagnostics.validate_setup()
        diagnostics: dict[str, Any] = {
            "projectRoot": guard.root,
            "engineOnPath": report.installed,
            "engineVersion": report.version,
            "authConfigured": report.authenticated,
            "readOnlyModeEnforced": True,
            "segmentStore": store.stats(),
        }
        if report.auth_method:
            diagnostics["authMethod"] = report.auth_method
        if report.errors:
            diagnostics["warnings"] = report.errors
        response["status"] = "ok" if report.installed and report.authenticated else "degraded"
        response["diagnostics"] = diagnostics
        return response

    registry.register(
        ToolSpec(
            name="quick_query",
            description=(
                "Analyze code or files quickly using the engine's large context window. "
                "Example: {prompt: 'Explain @src/auth.py security approach', focus: 'security'}"
            ),
            args_schema=QuickQueryInput,
            handler=_quick_query,
            tags=["query"],
        )
    )
    registry.register(
        ToolSpec(
            name="deep_research",
            description=(
                "Comprehensive multi-file analysis with deep reasoning. "
                "Example: {prompt: 'Trace auth flow from @src/routes', citation_mode: 'paths_only'}"
            ),
            args_schema=DeepResearchInput,
            handler=_deep_research,
            tags=["query"],
        )
    )
    registry.register(
        ToolSpec(
            name="fetch_chunk",
            description="Retrieve a continuation chunk of a large response by cache key and 1-based index.",
            args_schema=FetchChunkInput,
            handler=_fetch_chunk,
            tags=["utility"],
        )
    )
    registry.register(
        ToolSpec(
            name="validate_paths",
            description="Check that paths exist and stay inside the project root before analysis.",
            args_schema=ValidatePathsInput,
            handler=_validate_paths,
            tags=["utility"],
        )
    )
    registry.register(
        ToolSpec(
            name="health_check",
            description="Report server status and, optionally, engine installation and auth diagnostics.",
            args_schema=HealthCheckInput,
            handler=_health_check,
            tags=["utility"],
        )
    )


def _isoformat(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()
