"""FastAPI entrypoint exposing the relay tools over HTTP."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, ValidationError

from research_relay.agent.registry import ToolRegistry
from research_relay.agent.tools import SERVER_NAME, SERVER_VERSION, register_builtin_tools
from research_relay.config import LivenessConfig, RelaySettings
from research_relay.engine.diagnostics import EngineDiagnostics
from research_relay.engine.orchestrator import ExecutionOrchestrator
from research_relay.engine.runner import CommandRunner, ProcessRunner
from research_relay.errors import RelayError
from research_relay.guard.paths import PathGuard
from research_relay.obs.redaction import configure_logging
from research_relay.progress.liveness import LivenessNotifier
from research_relay.responses.store import SegmentStore
from research_relay.types import ProgressEvent

logger = logging.getLogger(__name__)


class ToolCallRequest(BaseModel):
    arguments: dict[str, Any] = Field(default_factory=dict)
    progress: bool = False


@dataclass(slots=True)
class RelayServices:
    settings: RelaySettings
    registry: ToolRegistry
    store: SegmentStore
    guard: PathGuard


def build_services(
    settings: RelaySettings | None = None,
    runner: CommandRunner | None = None,
    liveness: LivenessConfig | None = None,
) -> RelayServices:
    settings = settings or RelaySettings()
    engine = settings.engine_config()
    segments = settings.segment_config()
    runner = runner or ProcessRunner()

    store = SegmentStore(
        ttl_seconds=segments.ttl_seconds,
        sweep_interval_seconds=segments.sweep_interval_seconds,
    )
    guard = PathGuard(settings.project_root)
    registry = ToolRegistry(LivenessNotifier(liveness))
    register_builtin_tools(
        registry,
        ExecutionOrchestrator(runner, config=engine),
        store,
        guard,
        segment_config=segments,
        diagnostics=EngineDiagnostics(runner, engine),
    )
    return RelayServices(settings=settings, registry=registry, store=store, guard=guard)


def create_app(services: RelayServices | None = None) -> FastAPI:
    services = services or build_services()
    configure_logging(services.settings.relay_debug)
    registry = services.registry

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info("%s v%s started, project root: %s", SERVER_NAME, SERVER_VERSION, services.guard.root)
        yield
        services.store.close()
        logger.info("%s stopped", SERVER_NAME)

    app = FastAPI(title="Research Relay", version=SERVER_VERSION, lifespan=lifespan)
    app.state.services = services

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "server": {"name": SERVER_NAME, "version": SERVER_VERSION},
            "project_root": services.guard.root,
            "tool_count": len(registry.specs()),
            "segment_store": services.store.stats(),
        }

    @app.get("/tools")
    def tools() -> dict[str, Any]:
        return {"items": registry.definitions()}

    @app.post("/tools/{name}", response_model=None)
    async def call_tool(name: str, request: ToolCallRequest) -> dict[str, Any] | StreamingResponse:
        try:
            registry.validate(name, request.arguments)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"Unknown tool: {name}") from exc
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc

        if not request.progress:
            return await registry.execute(name, request.arguments)
        return StreamingResponse(
            _stream_tool_call(registry, name, request.arguments),
            media_type="application/x-ndjson",
        )

    return app


async def _stream_tool_call(
    registry: ToolRegistry, name: str, arguments: dict[str, Any]
) -> AsyncIterator[str]:
    """Yield progress events as they happen, then one result line."""
    events: asyncio.Queue[ProgressEvent] = asyncio.Queue()
    call = asyncio.ensure_future(registry.execute(name, arguments, progress=events.put_nowait))
    try:
        while not call.done():
            getter = asyncio.ensure_future(events.get())
            done, _ = await asyncio.wait({getter, call}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                yield _ndjson({"type": "progress", **asdict(getter.result())})
            else:
                getter.cancel()
        while not events.empty():
            yield _ndjson({"type": "progress", **asdict(events.get_nowait())})

        try:
            result = call.result()
        except Exception as exc:
            logger.exception("Tool %s failed while streaming", name)
            result = RelayError(f"Tool execution failed: {exc}").to_payload()
        yield _ndjson({"type": "result", "result": result})
    finally:
        if not call.done():
            call.cancel()


def _ndjson(payload: dict[str, Any]) -> str:
    return json.dumps(payload) + "\n"


app = create_app()
