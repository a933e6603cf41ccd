from __future__ import annotations

from typing import Any


class VideoGenerationError(Exception):
    """Base for every failure that ends a video-generation attempt."""

    kind = "VideoGenerationError"

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.detail:
            data["detail"] = self.detail
        return data


class InvalidParameters(VideoGenerationError):
    """Malformed plan inputs, rejected before any backend work."""

    kind = "InvalidParameters"


class RenderBackendFailure(VideoGenerationError):
    """Document load, scroll or capture failed or timed out."""

    kind = "RenderBackendFailure"


class EncodingFailure(VideoGenerationError):
    """Encoder exited with an error or produced no output."""

    kind = "EncodingFailure"


class FrameSequenceError(EncodingFailure):
    """Frame indices are not dense and contiguous."""


class Cancelled(VideoGenerationError):
    """External cancellation observed between frames."""

    kind = "Cancelled"
