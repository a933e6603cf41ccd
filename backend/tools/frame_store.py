"""Scratch storage for captured frames, one store per video job.

DiskFrameStore writes zero-padded PNGs (frame_00000.png, ...) into a job-owned
temp directory, the layout ffmpeg-style sequence readers expect.
MemoryFrameStore keeps decoded numpy arrays instead, for short videos.
Both hand the encoder an ordered list and refuse to do so if indices have gaps.
"""
from __future__ import annotations

import io
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from typing import Any

import numpy as np
from PIL import Image

from errors import FrameSequenceError

logger = logging.getLogger(__name__)

FRAME_NAME_TEMPLATE = "frame_{index:05d}.png"


@dataclass(frozen=True)
class Frame:
    index: int
    scroll_y: int
    image: bytes


def _check_dense(indices: list[int]) -> None:
    if not indices:
        raise FrameSequenceError("No frames were captured")
    for expected, actual in enumerate(indices):
        if actual != expected:
            if actual in indices[:expected]:
                raise FrameSequenceError(f"Duplicate frame index {actual} at position {expected}")
            raise FrameSequenceError(f"Frame sequence has a gap: expected index {expected}, found {actual}")


class DiskFrameStore:
    """PNG frames on disk in a private temp directory."""

    def __init__(self, job_key: str, base_dir: str | None = None) -> None:
        self.job_key = job_key
        self.directory = tempfile.mkdtemp(prefix=f"scroll_frames_{job_key}_", dir=base_dir)
        self._indices: list[int] = []

    def __len__(self) -> int:
        return len(self._indices)

    def add(self, frame: Frame) -> None:
        path = os.path.join(self.directory, FRAME_NAME_TEMPLATE.format(index=frame.index))
        with open(path, "wb") as f:
            f.write(frame.image)
        self._indices.append(frame.index)

    def encoder_input(self) -> list[str]:
        """Ordered frame paths. Raises FrameSequenceError on gaps or duplicates."""
        _check_dense(self._indices)
        paths = [
            os.path.join(self.directory, FRAME_NAME_TEMPLATE.format(index=i))
            for i in range(len(self._indices))
        ]
        missing = [p for p in paths if not os.path.exists(p)]
        if missing:
            raise FrameSequenceError(f"{len(missing)} frame file(s) missing from scratch storage")
        return paths

    def cleanup(self) -> None:
        if os.path.isdir(self.directory):
            shutil.rmtree(self.directory, ignore_errors=True)
            logger.debug("Removed frame scratch dir for job %s", self.job_key)
        self._indices.clear()


class MemoryFrameStore:
    """Decoded RGB frames held in memory."""

    def __init__(self, job_key: str) -> None:
        self.job_key = job_key
        self._frames: list[tuple[int, np.ndarray]] = []

    def __len__(self) -> int:
        return len(self._frames)

    def add(self, frame: Frame) -> None:
        with Image.open(io.BytesIO(frame.image)) as img:
            array = np.asarray(img.convert("RGB"))
        self._frames.append((frame.index, array))

    def encoder_input(self) -> list[Any]:
        _check_dense([index for index, _ in self._frames])
        return [array for _, array in self._frames]

    def cleanup(self) -> None:
        self._frames.clear()


def open_frame_store(kind: str, job_key: str) -> DiskFrameStore | MemoryFrameStore:
    if kind == "memory":
        return MemoryFrameStore(job_key)
    if kind == "disk":
        return DiskFrameStore(job_key)
    raise ValueError(f"Unknown frame store '{kind}'")
