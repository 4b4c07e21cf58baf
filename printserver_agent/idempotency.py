import asyncio
import logging
import time
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class IdempotencyCache:
    """
    Process-local record of object keys already printed.

    Entries live for ``ttl_seconds``. ``has`` ignores expired entries even
    before the sweeper removes them. Nothing is persisted: a restart forgets
    everything, so a job printed right before a crash may print again.
    """

    def __init__(self, ttl_seconds: float = 3600, sweep_interval: float = 300):
        self.ttl_seconds = ttl_seconds
        self.sweep_interval = sweep_interval
        self._entries: Dict[str, float] = {}

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key: str):
        return self.has(key)

    def has(self, key: str, now: Optional[float] = None) -> bool:
        ts = self._entries.get(key)
        if ts is None:
            return False
        now = time.time() if now is None else now
        return now - ts <= self.ttl_seconds

    def mark_processed(self, key: str, now: Optional[float] = None):
        self._entries[key] = time.time() if now is None else now

    def sweep(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        expired = [k for k, ts in self._entries.items() if now - ts > self.ttl_seconds]
        for k in expired:
            del self._entries[k]
        if expired:
            logger.info("Idempotency sweep removed %d expired entr%s", len(expired), "y" if len(expired) == 1 else "ies")
        return len(expired)

    async def run_sweeper(self, stop: asyncio.Event):
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.sweep_interval)
            except asyncio.TimeoutError:
                self.sweep()
