"""Time-bounded in-memory storage for segmented answers."""

from __future__ import annotations

import asyncio
import logging
import secrets
import threading
import time
from collections.abc import Callable, Iterable

from research_relay.types import Segment, SegmentBundle, SegmentMetadata

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600.0
DEFAULT_SWEEP_INTERVAL_SECONDS = 300.0

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_key(now: float | None = None) -> str:
    """`seg_` + base36 millisecond time + random suffix."""
    millis = int((time.time() if now is None else now) * 1000)
    return f"seg_{_to_base36(millis)}{secrets.token_hex(5)}"


class SegmentStore:
    """Holds segment bundles until they expire.

    Expiry is checked on every read and by a background sweep that runs on the
    current asyncio loop. The sweep stops itself once the store is empty and is
    restarted by the next `put`. Stored bundles are immutable.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._bundles: dict[str, SegmentBundle] = {}
        self._lock = threading.Lock()
        self._sweeper: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._bundles)

    def put(self, segments: Iterable[Segment], ttl_seconds: float | None = None) -> str:
        stored = tuple(segments)
        if not stored:
            raise ValueError("cannot store an empty segment list")
        now = self._clock()
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            key = generate_key(now)
            while key in self._bundles:
                key = generate_key(now)
            self._bundles[key] = SegmentBundle(
                key=key, segments=stored, created_at=now, expires_at=now + ttl
            )
        logger.debug("Stored %d segments under %s", len(stored), key)
        self.start()
        return key

    def get(self, key: str) -> SegmentBundle | None:
        with self._lock:
            bundle = self._bundles.get(key)
            if bundle is None:
                return None
            if self._is_expired(bundle, self._clock()):
                del self._bundles[key]
                return None
            return bundle

    def get_segment(self, key: str, index: int) -> Segment | None:
        bundle = self.get(key)
        if bundle is None or not 1 <= index <= bundle.total_count:
            return None
        return bundle.segments[index - 1]

    def metadata(self, key: str) -> SegmentMetadata | None:
        bundle = self.get(key)
        if bundle is None:
            return None
        return SegmentMetadata(
            total_count=bundle.total_count,
            created_at=bundle.created_at,
            expires_at=bundle.expires_at,
        )

    def evict(self, key: str) -> bool:
        with self._lock:
            return self._bundles.pop(key, None) is not None

    def sweep(self) -> int:
        """Drop every expired bundle and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, bundle in self._bundles.items() if self._is_expired(bundle, now)]
            for key in expired:
                del self._bundles[key]
        if expired:
            logger.debug("Swept %d expired segment bundles", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._bundles.clear()

    def stats(self) -> dict[str, float | int | None]:
        with self._lock:
            created = [bundle.created_at for bundle in self._bundles.values()]
        return {
            "size": len(created),
            "oldest_created_at": min(created) if created else None,
            "newest_created_at": max(created) if created else None,
        }

    @property
    def sweeping(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start(self) -> None:
        """Start the background sweep on the running loop, if any and not active."""
        if self.sweeping:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: expiry is still enforced lazily on reads.
            return
        self._sweeper = loop.create_task(self._sweep_loop())

    def stop(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            self._sweeper = None

    def close(self) -> None:
        self.stop()
        self.clear()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            self.sweep()
            if not self._bundles:
                self._sweeper = None
                return

    @staticmethod
    def _is_expired(bundle: SegmentBundle, now: float) -> bool:
        return now > bundle.expires_at
