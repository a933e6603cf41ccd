"""Celery app + thin task wrapper around the async video pipeline.

The task calls asyncio.run() so the Playwright capture loop runs inside the
worker's own event loop. One video per worker process: capture pacing is
real-time and a second browser in the same container would steal its CPU.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

from celery import Celery
from dotenv import load_dotenv

from config import load_settings
from errors import VideoGenerationError
from video_pipeline import generate_video

load_dotenv()

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

app = Celery("scrollvideo", broker=REDIS_URL, backend=REDIS_URL)

app.conf.update(
    # Long-running tasks: don't let a single worker hoard messages
    worker_prefetch_multiplier=1,
    worker_concurrency=1,
    # Requeue if worker crashes mid-task
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # 10 min per video, same as the old Cloud Run request timeout
    task_soft_time_limit=600,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_default_queue="video",
)


def run_generate_video(
    html_content: str, target_label: str, overrides: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Run one generation and shape the outcome as the JSON the HTTP layer returns."""
    try:
        settings = load_settings(**(overrides or {}))
        result = asyncio.run(generate_video(html_content, target_label, settings=settings))
    except VideoGenerationError as e:
        logger.exception("Video generation failed for %s", target_label)
        return {"success": False, "target_label": target_label, "error": e.to_dict()}

    return {
        "success": True,
        "target_label": target_label,
        "file_name": result.file_name,
        "file_size": result.file_size,
        "file_size_readable": result.as_dict()["file_size_readable"],
        "frame_count": result.frame_count,
        "duration_seconds": result.total_duration_seconds,
        "page_height": result.page_height,
    }


@app.task(name="video.generate", bind=True, max_retries=0)
def generate_video_task(
    self, html_content: str, target_label: str, overrides: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Scroll-capture one landing page into an MP4."""
    logger.info("Celery task started: generate_video(%s) id=%s", target_label, self.request.id)
    return run_generate_video(html_content, target_label, overrides)
