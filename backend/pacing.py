"""Frame pacing: suspend the capture task until a frame's budget is used up.

The choreographer only talks to a Clock, so tests can swap in a virtual clock
and run a 960-frame plan without sleeping for real.
"""
from __future__ import annotations

import asyncio
import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float:
        """Monotonic time in seconds."""
        ...

    async def sleep(self, seconds: float) -> None:
        ...


class MonotonicClock:
    """Wall-clock pacing backed by time.monotonic and asyncio.sleep."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class FramePacer:
    """Tracks one frame's budget against a clock.

    start() marks the beginning of a frame's work; finish() sleeps out whatever
    is left of the interval. Overruns are not compensated: the next frame simply
    starts late, and the overrun is reported back to the caller.
    """

    def __init__(self, clock: Clock, frame_interval: float) -> None:
        self.clock = clock
        self.frame_interval = frame_interval
        self._frame_start: float | None = None

    def start(self) -> None:
        self._frame_start = self.clock.now()

    async def finish(self) -> bool:
        """Wait out the frame budget. Returns False if the frame ran over."""
        if self._frame_start is None:
            raise RuntimeError("FramePacer.finish() called before start()")
        elapsed = self.clock.now() - self._frame_start
        self._frame_start = None
        remaining = self.frame_interval - elapsed
        if remaining > 0:
            await self.clock.sleep(remaining)
            return True
        return False
