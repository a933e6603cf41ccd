"""Frame sequence → MP4 via moviepy (ffmpeg underneath)."""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Callable, Protocol, Sequence

from moviepy import ImageSequenceClip
from proglog import ProgressBarLogger

from errors import EncodingFailure

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

# Same x264 settings the Cloud Run service used
VIDEO_CODEC = "libx264"
VIDEO_PRESET = "slow"
FFMPEG_PARAMS = ["-crf", "18", "-movflags", "+faststart"]
DIAGNOSTIC_TAIL = 600  # chars of ffmpeg output kept on failure


class VideoEncoder(Protocol):
    async def encode(
        self,
        frames: Sequence[Any],
        frame_rate: int,
        output_path: str,
        on_progress: ProgressCallback | None = None,
    ) -> None: ...


class _FractionLogger(ProgressBarLogger):
    """Turns moviepy's per-frame bar updates into a 0..1 fraction."""

    def __init__(self, on_progress: ProgressCallback | None) -> None:
        super().__init__()
        self.on_progress = on_progress
        self._last_decile = -1

    def bars_callback(self, bar, attr, value, old_value=None):
        if attr != "index":
            return
        total = self.bars.get(bar, {}).get("total")
        if not total:
            return
        fraction = min(1.0, (value + 1) / total)
        decile = int(fraction * 10)
        if decile != self._last_decile:
            self._last_decile = decile
            logger.info("Encoding: %d%% complete", decile * 10)
        if self.on_progress is not None:
            self.on_progress(fraction)


class MoviepyEncoder:
    def __init__(self, codec: str = VIDEO_CODEC, preset: str = VIDEO_PRESET, threads: int | None = None) -> None:
        self.codec = codec
        self.preset = preset
        self.threads = threads

    def _encode_sync(
        self,
        frames: Sequence[Any],
        frame_rate: int,
        output_path: str,
        on_progress: ProgressCallback | None,
    ) -> None:
        clip = ImageSequenceClip(list(frames), fps=frame_rate)
        try:
            clip.write_videofile(
                output_path,
                fps=frame_rate,
                codec=self.codec,
                preset=self.preset,
                audio=False,
                threads=self.threads,
                ffmpeg_params=FFMPEG_PARAMS,
                logger=_FractionLogger(on_progress),
            )
        finally:
            clip.close()

    async def encode(
        self,
        frames: Sequence[Any],
        frame_rate: int,
        output_path: str,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        logger.info("Encoding %d frames at %d fps with %s", len(frames), frame_rate, self.codec)
        job = asyncio.ensure_future(
            asyncio.to_thread(self._encode_sync, frames, frame_rate, output_path, on_progress)
        )
        try:
            await asyncio.shield(job)
        except asyncio.CancelledError:
            # The encoder thread can't be interrupted. The output may only be
            # removed once it has exited.
            logger.warning("Encoding cancelled, waiting for the encoder thread to exit")
            await asyncio.wait([job])
            if not job.cancelled() and job.exception() is not None:
                logger.warning("Encoder thread failed after cancellation: %s", job.exception())
            raise
        except Exception as e:
            raise EncodingFailure(
                "ffmpeg failed to encode the frame sequence",
                detail=str(e)[-DIAGNOSTIC_TAIL:],
            ) from e


async def encode_frames(
    store: Any,
    frame_rate: int,
    output_path: str,
    encoder: VideoEncoder,
    on_progress: ProgressCallback | None = None,
) -> int:
    """Verify the frame sequence, encode it and check the output exists.

    Returns the number of frames handed to the encoder. On any failure the
    partial output file is removed before the error propagates.
    """
    frames = store.encoder_input()  # raises FrameSequenceError before ffmpeg runs
    try:
        await encoder.encode(frames, frame_rate, output_path, on_progress)
        if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
            raise EncodingFailure("Encoder finished but produced no output")
    except BaseException:
        _remove_partial(output_path)
        raise
    return len(frames)


def _remove_partial(output_path: str) -> None:
    if os.path.exists(output_path):
        try:
            os.remove(output_path)
            logger.info("Removed partial output %s", os.path.basename(output_path))
        except OSError as e:
            logger.warning("Could not remove partial output %s: %s", os.path.basename(output_path), e)
