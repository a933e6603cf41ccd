from __future__ import annotations

import io
import os
from typing import Any, Sequence

import pytest
from PIL import Image

from errors import EncodingFailure, RenderBackendFailure


def make_png(width: int = 8, height: int = 6, color: tuple[int, int, int] = (124, 58, 237)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


class FakeClock:
    """Virtual monotonic clock: sleep() advances time instantly."""

    def __init__(self, start: float = 100.0) -> None:
        self.t = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.t += seconds


class FakeBackend:
    def __init__(
        self,
        clock: FakeClock | None = None,
        page_height: int = 5080,
        capture_cost: float = 0.004,
        fail_on_capture: int | None = None,
        fail_on_load: bool = False,
    ) -> None:
        self.clock = clock
        self.page_height = page_height
        self.capture_cost = capture_cost
        self.fail_on_capture = fail_on_capture
        self.fail_on_load = fail_on_load
        self.png = make_png()
        self.scrolls: list[int] = []
        self.captures = 0
        self.closed = False
        self.close_calls = 0

    async def load_document(self, html: str) -> int:
        if self.fail_on_load:
            raise RenderBackendFailure("Page did not finish loading within 30000ms")
        return self.page_height

    async def set_scroll_offset(self, y: int) -> None:
        self.scrolls.append(y)

    async def capture_raster_frame(self) -> bytes:
        if self.fail_on_capture is not None and self.captures == self.fail_on_capture:
            raise RuntimeError("Target page, context or browser has been closed")
        self.captures += 1
        if self.clock is not None:
            self.clock.advance(self.capture_cost)
        return self.png

    async def close(self) -> None:
        self.closed = True
        self.close_calls += 1


class FakeEncoder:
    def __init__(self, fail: bool = False, write_output: bool = True, backend: FakeBackend | None = None) -> None:
        self.fail = fail
        self.write_output = write_output
        self.backend = backend
        self.calls: list[dict[str, Any]] = []

    async def encode(self, frames: Sequence[Any], frame_rate: int, output_path: str, on_progress=None) -> None:
        self.calls.append({
            "frame_count": len(frames),
            "frame_rate": frame_rate,
            "output_path": output_path,
            "backend_closed": self.backend.closed if self.backend else None,
            "frames_exist": all(os.path.exists(f) for f in frames if isinstance(f, str)),
        })
        if self.write_output or self.fail:
            with open(output_path, "wb") as f:
                f.write(b"\x00\x00\x00\x18ftypmp42")
        if on_progress is not None:
            on_progress(1.0)
        if self.fail:
            raise EncodingFailure("ffmpeg failed to encode the frame sequence", detail="Conversion failed!")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def png() -> bytes:
    return make_png()


@pytest.fixture
def scratch_dir(tmp_path, monkeypatch):
    """Point tempfile at a private dir so tests can assert it ends up empty."""
    import tempfile

    path = tmp_path / "scratch"
    path.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(path))
    return path
