"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from time import perf_counter
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ConfigDict, Field

from research_relay.obs.tracing import truncate
from research_relay.progress.liveness import LivenessNotifier
from research_relay.types import OutputCallback, ProgressSink, ToolTrace

logger = logging.getLogger(__name__)

ToolHandler = Callable[[BaseModel, OutputCallback | None], Awaitable[dict[str, Any]]]


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: ToolHandler
    tags: list[str] = Field(default_factory=list)

    async def invoke(
        self, payload: dict[str, Any], on_output: OutputCallback | None = None
    ) -> dict[str, Any]:
        data = self.args_schema.model_validate(payload)
        return await self.handler(data, on_output)

    def definition(self) -> dict[str, Any]:
        schema = self.args_schema.model_json_schema()
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": {
                "type": "object",
                "properties": schema.get("properties", {}),
                "required": schema.get("required", []),
            },
        }


class ToolRegistry:
    """Stores tool specs, runs them under liveness tracking, exports LangChain tools."""

    def __init__(self, notifier: LivenessNotifier | None = None) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._observer: Callable[[ToolTrace], None] | None = None
        self.notifier = notifier or LivenessNotifier()

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def exists(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> ToolSpec:
        spec = self._tools.get(name)
        if spec is None:
            raise KeyError(f"Unknown tool: {name}")
        return spec

    def validate(self, name: str, payload: dict[str, Any]) -> BaseModel:
        """Validate `payload` against the tool schema without running it."""
        return self.get(name).args_schema.model_validate(payload)

    def set_observer(self, observer: Callable[[ToolTrace], None] | None) -> None:
        """Set an optional callback invoked after each tool execution."""
        self._observer = observer

    async def execute(
        self,
        name: str,
        payload: dict[str, Any],
        *,
        progress: ProgressSink | None = None,
    ) -> dict[str, Any]:
        """Validate `payload` and run the tool.

        Progress notifications are only produced when `progress` is given.
        """
        return await self._execute_spec(self.get(name), payload, progress)

    def definitions(self) -> list[dict[str, Any]]:
        return [spec.definition() for spec in self._tools.values()]

    def as_langchain_tools(self) -> list[StructuredTool]:
        tools: list[StructuredTool] = []
        for spec in self._tools.values():
            tools.append(
                StructuredTool.from_function(
                    name=spec.name,
                    description=spec.description,
                    args_schema=spec.args_schema,
                    coroutine=self._build_coroutine(spec),
                )
            )
        return tools

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def _build_coroutine(self, spec: ToolSpec) -> Callable[..., Awaitable[dict[str, Any]]]:
        async def _callable(**kwargs: Any) -> dict[str, Any]:
            return await self._execute_spec(spec, kwargs, None)

        return _callable

    async def _execute_spec(
        self,
        spec: ToolSpec,
        payload: dict[str, Any],
        progress: ProgressSink | None,
    ) -> dict[str, Any]:
        logger.info("Tool invocation: %s %s", spec.name, _payload_preview(payload))
        start = perf_counter()
        async with self.notifier.track(spec.name, progress) as tracker:
            output = await spec.invoke(payload, tracker.observe)
            tracker.failed = "error" in output
        latency_ms = (perf_counter() - start) * 1000.0

        if self._observer is not None:
            self._observer(
                ToolTrace(
                    name=spec.name,
                    input_payload=payload,
                    output_preview=truncate(str(output), 320),
                    latency_ms=latency_ms,
                )
            )
        return output


def _payload_preview(payload: dict[str, Any]) -> dict[str, Any]:
    preview = dict(payload)
    prompt = preview.get("prompt")
    if isinstance(prompt, str) and len(prompt) > 100:
        preview["prompt"] = prompt[:100] + "...[truncated]"
    return preview
