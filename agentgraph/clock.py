""" Time sources for the engine. ManualClock lets tests run on virtual time. """

import asyncio
import time
from datetime import datetime, timedelta, timezone


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic_ms(self) -> float:
        return time.monotonic() * 1000

    async def sleep(self, ms: float) -> None:
        await asyncio.sleep(max(ms, 0) / 1000)


class ManualClock:
    """
    Virtual clock. `sleep` advances time instantly and yields to the loop,
    so backoffs, tick intervals and schedule waits cost no wall time.
    """

    def __init__(self, start: datetime = None):
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        if self._now.tzinfo is None:
            self._now = self._now.replace(tzinfo=timezone.utc)
        self._elapsed_ms = 0.0

    def now(self) -> datetime:
        return self._now

    def monotonic_ms(self) -> float:
        return self._elapsed_ms

    def advance(self, ms: float) -> None:
        self._elapsed_ms += ms
        self._now = self._now + timedelta(milliseconds=ms)

    async def sleep(self, ms: float) -> None:
        if ms > 0:
            self.advance(ms)
        await asyncio.sleep(0)
