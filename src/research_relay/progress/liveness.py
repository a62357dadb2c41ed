"""Keep-alive progress notifications for long-running engine calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from research_relay.config import LivenessConfig
from research_relay.obs.tracing import truncate
from research_relay.types import ProgressEvent, ProgressSink

logger = logging.getLogger(__name__)

_STATUS_MESSAGES = (
    "{operation} - the engine is analyzing your request...",
    "{operation} - processing files and generating insights...",
    "{operation} - creating a structured response...",
    "{operation} - large analysis in progress (this is normal for big requests)...",
    "{operation} - still working, quality results take time...",
)


class CallTracker:
    """Progress state for exactly one in-flight call."""

    def __init__(self, operation: str, sink: ProgressSink | None, config: LivenessConfig) -> None:
        self.operation = operation
        self.sink = sink
        self.config = config
        self.latest_output = ""
        self.ticks = 0
        self.failed = False
        self._timer: asyncio.Task[None] | None = None

    @property
    def active(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def observe(self, new_output: str) -> None:
        """Record the newest output piece; pass as the orchestrator's progress callback."""
        self.latest_output = new_output

    def status_message(self) -> str:
        base = _STATUS_MESSAGES[self.ticks % len(_STATUS_MESSAGES)].format(operation=self.operation)
        preview = self.latest_output[-self.config.preview_chars :].strip() if self.config.preview_chars else ""
        message = f"{base}\nOutput: ...{preview}" if preview else base
        return truncate(message, self.config.max_message_chars)

    def _emit(self, event: ProgressEvent) -> None:
        if self.sink is None:
            return
        try:
            self.sink(event)
        except Exception:
            logger.exception("Failed to deliver progress notification for %s", self.operation)

    def start(self) -> None:
        if self.sink is None:
            return
        self._emit(ProgressEvent(progress=0, message=f"Starting {self.operation}"))
        self._timer = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.config.interval_seconds)
            self.ticks += 1
            self._emit(ProgressEvent(progress=self.ticks, message=self.status_message()))

    def finish(self, success: bool) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self.sink is None:
            return
        outcome = "completed successfully" if success else "failed"
        self._emit(ProgressEvent(progress=100, total=100, message=f"{self.operation} {outcome}"))


class LivenessNotifier:
    """Creates an independent tracker and timer for every tracked call."""

    def __init__(self, config: LivenessConfig | None = None) -> None:
        self.config = config or LivenessConfig()

    @asynccontextmanager
    async def track(self, operation: str, sink: ProgressSink | None) -> AsyncIterator[CallTracker]:
        tracker = CallTracker(operation, sink, self.config)
        tracker.start()
        try:
            yield tracker
        except BaseException:
            tracker.finish(success=False)
            raise
        tracker.finish(success=not tracker.failed)
