"""Scroll choreographer: drives a CapturePlan against a render backend.

The loop is strictly sequential. Scroll state belongs to the single page being
captured, so frame N+1 never starts before frame N is captured and its pacing
wait has finished.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol, TypeVar

from capture_plan import CapturePlan
from errors import Cancelled, RenderBackendFailure
from pacing import Clock, FramePacer, MonotonicClock
from tools.frame_store import Frame

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_STEP_TIMEOUT = 10.0  # seconds per scroll / capture call


class RenderBackend(Protocol):
    async def load_document(self, html: str) -> int: ...

    async def set_scroll_offset(self, y: int) -> None: ...

    async def capture_raster_frame(self) -> bytes: ...

    async def close(self) -> None: ...


class FrameSink(Protocol):
    """Receives frames in capture order. add() may block on disk I/O and is
    run in a worker thread."""

    def add(self, frame: Frame) -> None: ...


@dataclass
class CaptureResult:
    frame_count: int
    late_frames: int
    final_scroll_y: int
    elapsed_seconds: float


class ScrollChoreographer:
    def __init__(
        self,
        clock: Clock | None = None,
        step_timeout: float = DEFAULT_STEP_TIMEOUT,
        cancel_event: asyncio.Event | None = None,
        on_frame: Callable[[int, int], None] | None = None,
    ) -> None:
        self.clock = clock or MonotonicClock()
        self.step_timeout = step_timeout
        self.cancel_event = cancel_event
        self.on_frame = on_frame

    @staticmethod
    async def _store_frame(sink: FrameSink, frame: Frame) -> None:
        write = asyncio.ensure_future(asyncio.to_thread(sink.add, frame))
        try:
            await asyncio.shield(write)
        except asyncio.CancelledError:
            # scratch cleanup must not race a half-written frame
            await asyncio.wait([write])
            raise

    async def _backend_call(self, what: str, index: int, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.step_timeout)
        except RenderBackendFailure:
            raise
        except asyncio.TimeoutError:
            raise RenderBackendFailure(
                f"{what} timed out after {self.step_timeout:.1f}s on frame {index}"
            ) from None
        except Exception as e:
            raise RenderBackendFailure(f"{what} failed on frame {index}: {e}") from e

    async def capture(self, plan: CapturePlan, backend: RenderBackend, sink: FrameSink) -> CaptureResult:
        """Capture every frame of `plan` into `sink`, paced to plan.frame_rate.

        Raises Cancelled if the cancel event is set between frames, and
        RenderBackendFailure on any scroll/capture error or timeout.
        """
        pacer = FramePacer(self.clock, plan.frame_interval)
        log_every = plan.frame_rate
        late_frames = 0
        scroll_y = 0
        captured = 0
        loop_start = self.clock.now()

        logger.info(
            "Capturing up to %d frames at %d fps (pause=%d, scroll=%d, max_scroll=%dpx, policy=%s)",
            plan.total_frames, plan.frame_rate, plan.pause_frames, plan.scroll_frames,
            plan.max_scroll, plan.policy.value,
        )

        for index in range(plan.total_frames):
            if self.cancel_event is not None and self.cancel_event.is_set():
                logger.info("Capture cancelled before frame %d/%d", index, plan.total_frames)
                raise Cancelled(f"Capture cancelled after {captured} frames")

            scroll_y = plan.scroll_offset(index)
            final = plan.is_final_frame(index)

            pacer.start()
            await self._backend_call("scroll", index, backend.set_scroll_offset(scroll_y))
            image = await self._backend_call("capture", index, backend.capture_raster_frame())
            await self._store_frame(sink, Frame(index=index, scroll_y=scroll_y, image=image))
            captured += 1
            if self.on_frame is not None:
                self.on_frame(captured, plan.total_frames)

            if not await pacer.finish():
                late_frames += 1

            if index % log_every == 0:
                logger.info(
                    "Frame %d/%d (%d%%) scroll_y=%d",
                    index, plan.total_frames, round(100 * index / plan.total_frames), scroll_y,
                )
            if final:
                break

        elapsed = self.clock.now() - loop_start
        if late_frames:
            logger.warning(
                "%d/%d frames overran the %.1fms frame budget; capture took %.2fs for %.2fs of video",
                late_frames, captured, plan.frame_interval * 1000, elapsed, captured / plan.frame_rate,
            )
        logger.info("Captured %d frames, final scroll_y=%d", captured, scroll_y)
        return CaptureResult(
            frame_count=captured,
            late_frames=late_frames,
            final_scroll_y=scroll_y,
            elapsed_seconds=elapsed,
        )
