"""Top-level entry point: HTML landing page → scrolling MP4.

Stages:
  1. Load the HTML in a headless browser and measure the page height
  2. Compute the capture plan and run the paced capture loop
  3. Release the browser, encode the frames, clean up scratch storage
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable

from capture_plan import CapturePlan, compute_plan, validate_plan_inputs
from choreographer import RenderBackend, ScrollChoreographer
from config import VideoSettings, load_settings
from errors import InvalidParameters, RenderBackendFailure
from pacing import Clock
from tools.encoder_tools import MoviepyEncoder, VideoEncoder, encode_frames
from tools.frame_store import open_frame_store
from tools.render_tools import PlaywrightRenderBackend

logger = logging.getLogger(__name__)

BackendFactory = Callable[[VideoSettings], Awaitable[RenderBackend]]
ProgressFn = Callable[[str, float], None]

# Overall progress share per stage
STAGE_PROGRESS = {
    "load": (0.0, 0.05),
    "capture": (0.05, 0.80),
    "encode": (0.80, 1.0),
}


@dataclass
class VideoResult:
    output_path: str
    file_name: str
    frame_count: int
    total_duration_seconds: float
    page_height: int
    file_size: int
    late_frames: int = 0

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["file_size_readable"] = f"{self.file_size / (1024 * 1024):.2f} MB"
        return data


async def open_playwright_backend(settings: VideoSettings) -> PlaywrightRenderBackend:
    backend = PlaywrightRenderBackend(
        width=settings.width,
        height=settings.height,
        load_timeout_ms=settings.load_timeout_ms,
        capture_timeout_ms=settings.capture_timeout_ms,
    )
    await backend.start()
    return backend


def sanitize_label(label: str) -> str:
    """'Acme Roofing B.V.' -> 'acme_roofing_b_v_'"""
    return re.sub(r"[^a-z0-9]", "_", label.lower())


def plan_for_page(settings: VideoSettings, page_height: int) -> CapturePlan:
    return compute_plan(
        frame_rate=settings.frame_rate,
        pause_seconds=settings.pause_seconds,
        viewport_height=settings.height,
        page_height=page_height,
        policy=settings.policy,
        scroll_speed=settings.scroll_speed,
        total_duration_seconds=settings.total_duration_seconds,
        min_scroll_seconds=settings.min_scroll_seconds,
        easing=settings.easing,
    )


def _report(on_progress: ProgressFn | None, stage: str, fraction: float) -> None:
    if on_progress is None:
        return
    lo, hi = STAGE_PROGRESS[stage]
    on_progress(stage, lo + (hi - lo) * fraction)


async def generate_video(
    html_content: str,
    target_label: str,
    *,
    settings: VideoSettings | None = None,
    backend_factory: BackendFactory = open_playwright_backend,
    encoder: VideoEncoder | None = None,
    clock: Clock | None = None,
    cancel_event: asyncio.Event | None = None,
    on_progress: ProgressFn | None = None,
) -> VideoResult:
    """Render `html_content` into a scrolling video named after `target_label`.

    Raises one of InvalidParameters, RenderBackendFailure, EncodingFailure or
    Cancelled. Whatever happens, no scratch frames and no partial output are
    left behind.
    """
    settings = settings or load_settings()
    if not html_content or not html_content.strip():
        raise InvalidParameters("html_content is required")
    if not target_label or not target_label.strip():
        raise InvalidParameters("target_label is required")
    validate_plan_inputs(
        settings.frame_rate,
        settings.height,
        settings.pause_seconds,
        settings.easing,
        policy=settings.policy,
        total_duration_seconds=settings.total_duration_seconds,
        scroll_speed=settings.scroll_speed,
        min_scroll_seconds=settings.min_scroll_seconds,
    )

    encoder = encoder or MoviepyEncoder()
    timestamp = int(time.time() * 1000)
    safe_label = sanitize_label(target_label)
    job_key = f"{safe_label}_{timestamp}"
    file_name = f"{settings.filename_prefix}_{job_key}.mp4"
    os.makedirs(settings.output_dir, exist_ok=True)
    output_path = os.path.join(settings.output_dir, file_name)

    logger.info("Generating video for %s -> %s", target_label, file_name)

    store = open_frame_store(settings.frame_store, job_key)
    backend: RenderBackend | None = None
    succeeded = False
    try:
        # Stage 1: load + measure
        _report(on_progress, "load", 0.0)
        backend = await backend_factory(settings)
        page_height = await backend.load_document(html_content)
        plan = plan_for_page(settings, page_height)
        logger.info("Capture plan: %s", plan.summary())
        _report(on_progress, "load", 1.0)

        # Stage 2: capture
        choreographer = ScrollChoreographer(
            clock=clock,
            step_timeout=settings.step_timeout_seconds,
            cancel_event=cancel_event,
            on_frame=lambda done, total: _report(on_progress, "capture", done / total),
        )
        capture = await choreographer.capture(plan, backend, store)

        # The browser isn't needed for encoding
        closing, backend = backend, None
        try:
            await closing.close()
        except RenderBackendFailure:
            raise
        except Exception as e:
            raise RenderBackendFailure("Browser failed to close", detail=str(e)) from e

        # Stage 3: encode
        frame_count = await encode_frames(
            store,
            plan.frame_rate,
            output_path,
            encoder,
            on_progress=lambda fraction: _report(on_progress, "encode", fraction),
        )
        succeeded = True
    finally:
        try:
            if backend is not None:
                try:
                    await backend.close()
                except Exception as e:
                    logger.warning("Browser close failed during cleanup: %s", e)
        finally:
            store.cleanup()
            if not succeeded and os.path.exists(output_path):
                os.remove(output_path)

    result = VideoResult(
        output_path=output_path,
        file_name=file_name,
        frame_count=frame_count,
        total_duration_seconds=frame_count / plan.frame_rate,
        page_height=page_height,
        file_size=os.path.getsize(output_path),
        late_frames=capture.late_frames,
    )
    logger.info(
        "Video generated: %s (%d frames, %.2fs, %s)",
        file_name, frame_count, result.total_duration_seconds, result.as_dict()["file_size_readable"],
    )
    return result
