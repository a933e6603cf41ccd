from __future__ import annotations

import os
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from capture_plan import DEFAULT_MIN_SCROLL_SECONDS, PlanPolicy
from errors import InvalidParameters

# Defaults mirror the production roofing server: 1920x1080, 60 fps, 16 s total,
# held at the top for the first second.
ENV_KEYS = {
    "frame_rate": "VIDEO_FPS",
    "width": "VIDEO_WIDTH",
    "height": "VIDEO_HEIGHT",
    "policy": "VIDEO_POLICY",
    "easing": "VIDEO_EASING",
    "pause_seconds": "VIDEO_PAUSE_SECONDS",
    "total_duration_seconds": "VIDEO_TOTAL_SECONDS",
    "scroll_speed": "VIDEO_SCROLL_SPEED",
    "min_scroll_seconds": "VIDEO_MIN_SCROLL_SECONDS",
    "output_dir": "VIDEO_OUTPUT_DIR",
    "filename_prefix": "VIDEO_FILENAME_PREFIX",
    "load_timeout_ms": "VIDEO_LOAD_TIMEOUT_MS",
    "capture_timeout_ms": "VIDEO_CAPTURE_TIMEOUT_MS",
    "frame_store": "VIDEO_FRAME_STORE",
}


class VideoSettings(BaseModel):
    frame_rate: int = Field(60, gt=0)
    width: int = Field(1920, gt=0)
    height: int = Field(1080, gt=0)
    policy: PlanPolicy = PlanPolicy.FIXED_DURATION
    easing: str = "linear"
    pause_seconds: float = Field(1.0, ge=0)
    total_duration_seconds: float = Field(16.0, gt=0)
    scroll_speed: float = Field(800.0, gt=0)  # px/s
    min_scroll_seconds: float = Field(DEFAULT_MIN_SCROLL_SECONDS, ge=0)
    output_dir: str = "videos"
    filename_prefix: str = "site"
    load_timeout_ms: int = Field(30000, gt=0)
    capture_timeout_ms: int = Field(10000, gt=0)
    frame_store: Literal["disk", "memory"] = "disk"

    @property
    def step_timeout_seconds(self) -> float:
        return self.capture_timeout_ms / 1000


def build_settings(**values: Any) -> VideoSettings:
    """Construct settings, turning pydantic validation errors into InvalidParameters."""
    try:
        return VideoSettings(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise InvalidParameters(f"Invalid video settings: {problems}") from None


def load_settings(**overrides: Any) -> VideoSettings:
    """Settings from VIDEO_* environment variables, with keyword overrides on top."""
    values: dict[str, Any] = {}
    for field_name, env_key in ENV_KEYS.items():
        raw = os.getenv(env_key)
        if raw not in (None, ""):
            values[field_name] = raw
    values.update({k: v for k, v in overrides.items() if v is not None})
    return build_settings(**values)
