"""Capture plan: how many frames to grab and where the page is scrolled for each.

Three plan policies are supported:

- fixed_duration: total length and frame rate are fixed, the scroll speed
  falls out of the page height.
- speed_driven: scroll speed (px/s) is fixed, the scroll phase lasts
  max(min_scroll_seconds, max_scroll / scroll_speed), so longer pages
  produce longer videos.
- stop_at_bottom: constant speed, capture ends on the first frame that
  reaches the bottom. total_frames is only an upper bound here.

The plan is a pure function of its inputs and never touches the browser.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from errors import InvalidParameters
from utils.easing import EASINGS

DEFAULT_MIN_SCROLL_SECONDS = 3.0


class PlanPolicy(str, Enum):
    FIXED_DURATION = "fixed_duration"
    SPEED_DRIVEN = "speed_driven"
    STOP_AT_BOTTOM = "stop_at_bottom"


@dataclass(frozen=True)
class CapturePlan:
    policy: PlanPolicy
    frame_rate: int
    viewport_height: int
    page_height: int
    pause_frames: int
    scroll_frames: int
    easing: str = "linear"
    scroll_speed: float | None = None

    @property
    def max_scroll(self) -> int:
        return max(0, self.page_height - self.viewport_height)

    @property
    def total_frames(self) -> int:
        """Frames to capture; an upper bound under stop_at_bottom."""
        return self.pause_frames + self.scroll_frames

    @property
    def scroll_increment(self) -> float:
        if self.scroll_frames == 0:
            return 0.0
        return self.max_scroll / self.scroll_frames

    @property
    def frame_interval(self) -> float:
        """Nominal wall-clock budget per frame, in seconds."""
        return 1.0 / self.frame_rate

    @property
    def scroll_duration_seconds(self) -> float:
        return self.scroll_frames / self.frame_rate

    @property
    def total_duration_seconds(self) -> float:
        return self.total_frames / self.frame_rate

    def scroll_offset(self, index: int) -> int:
        """Scroll offset (px) for frame `index`, clamped to [0, max_scroll]."""
        if index < 0 or index >= self.total_frames:
            raise IndexError(f"frame {index} outside plan of {self.total_frames} frames")
        if index < self.pause_frames or self.max_scroll == 0:
            return 0

        k = index - self.pause_frames
        if self.policy is PlanPolicy.STOP_AT_BOTTOM:
            if k == self.scroll_frames - 1:
                return self.max_scroll
            # multiply before dividing so whole-pixel steps stay exact
            y = math.floor((k + 1) * self.scroll_speed / self.frame_rate)
        else:
            progress = 1.0 if self.scroll_frames == 1 else k / (self.scroll_frames - 1)
            y = math.floor(EASINGS[self.easing](progress) * self.max_scroll)
        return min(self.max_scroll, max(0, y))

    def is_final_frame(self, index: int) -> bool:
        """True when capture should stop after this frame."""
        if index == self.total_frames - 1:
            return True
        if self.policy is not PlanPolicy.STOP_AT_BOTTOM or index < self.pause_frames:
            return False
        return self.scroll_offset(index) >= self.max_scroll

    def summary(self) -> dict[str, object]:
        return {
            "policy": self.policy.value,
            "frame_rate": self.frame_rate,
            "page_height": self.page_height,
            "max_scroll": self.max_scroll,
            "pause_frames": self.pause_frames,
            "scroll_frames": self.scroll_frames,
            "total_frames": self.total_frames,
            "scroll_increment": round(self.scroll_increment, 3),
            "easing": self.easing,
            "duration_seconds": round(self.total_duration_seconds, 3),
        }


def _parse_policy(policy: PlanPolicy | str) -> PlanPolicy:
    try:
        return PlanPolicy(policy)
    except ValueError:
        raise InvalidParameters(f"unknown plan policy '{policy}'") from None


def validate_plan_inputs(
    frame_rate: int,
    viewport_height: int,
    pause_seconds: float = 0.0,
    easing: str = "linear",
    policy: PlanPolicy | str = PlanPolicy.FIXED_DURATION,
    total_duration_seconds: float | None = None,
    scroll_speed: float | None = None,
    min_scroll_seconds: float = DEFAULT_MIN_SCROLL_SECONDS,
) -> PlanPolicy:
    """Checks that don't need the page height; run before launching a browser.

    Returns the parsed policy.
    """
    policy = _parse_policy(policy)
    if frame_rate <= 0:
        raise InvalidParameters(f"frame_rate must be positive, got {frame_rate}")
    if viewport_height <= 0:
        raise InvalidParameters(f"viewport_height must be positive, got {viewport_height}")
    if pause_seconds < 0:
        raise InvalidParameters(f"pause_seconds must not be negative, got {pause_seconds}")
    if easing not in EASINGS:
        raise InvalidParameters(
            f"unknown easing '{easing}', expected one of {', '.join(sorted(EASINGS))}"
        )

    if policy is PlanPolicy.FIXED_DURATION:
        if total_duration_seconds is None or total_duration_seconds <= 0:
            raise InvalidParameters("fixed_duration policy needs a positive total_duration_seconds")
        if total_duration_seconds < pause_seconds:
            raise InvalidParameters(
                f"total_duration_seconds ({total_duration_seconds}) is shorter than "
                f"pause_seconds ({pause_seconds})"
            )
        # The scroll phase must get at least one frame, whatever the page height.
        if math.floor(total_duration_seconds * frame_rate) <= round(pause_seconds * frame_rate):
            raise InvalidParameters(
                f"total_duration_seconds ({total_duration_seconds}) leaves no frames to scroll "
                f"after a {pause_seconds}s pause at {frame_rate} fps"
            )
    else:
        if scroll_speed is None or scroll_speed <= 0:
            raise InvalidParameters(f"{policy.value} policy needs a positive scroll_speed")
        if policy is PlanPolicy.SPEED_DRIVEN and min_scroll_seconds < 0:
            raise InvalidParameters("min_scroll_seconds must not be negative")
    return policy


def compute_plan(
    *,
    frame_rate: int,
    pause_seconds: float,
    viewport_height: int,
    page_height: int,
    policy: PlanPolicy | str = PlanPolicy.FIXED_DURATION,
    scroll_speed: float | None = None,
    total_duration_seconds: float | None = None,
    min_scroll_seconds: float = DEFAULT_MIN_SCROLL_SECONDS,
    easing: str = "linear",
) -> CapturePlan:
    """Build the CapturePlan for one video. Raises InvalidParameters on bad input."""
    policy = validate_plan_inputs(
        frame_rate,
        viewport_height,
        pause_seconds,
        easing,
        policy=policy,
        total_duration_seconds=total_duration_seconds,
        scroll_speed=scroll_speed,
        min_scroll_seconds=min_scroll_seconds,
    )
    if page_height < 0:
        raise InvalidParameters(f"page_height must not be negative, got {page_height}")

    max_scroll = max(0, page_height - viewport_height)
    pause_frames = round(pause_seconds * frame_rate)

    if policy is PlanPolicy.FIXED_DURATION:
        total_frames = math.floor(total_duration_seconds * frame_rate)
        scroll_frames = total_frames - pause_frames
    elif policy is PlanPolicy.SPEED_DRIVEN:
        scroll_duration = max(min_scroll_seconds, max_scroll / scroll_speed)
        scroll_frames = round(scroll_duration * frame_rate)
    else:
        scroll_frames = math.ceil(max_scroll * frame_rate / scroll_speed)

    # A page taller than the viewport always gets a frame at the bottom.
    if max_scroll > 0:
        scroll_frames = max(1, scroll_frames)
    # Short page with no pause: a single still of the top of the page.
    if pause_frames + scroll_frames == 0:
        scroll_frames = 1

    return CapturePlan(
        policy=policy,
        frame_rate=frame_rate,
        viewport_height=viewport_height,
        page_height=page_height,
        pause_frames=pause_frames,
        scroll_frames=scroll_frames,
        easing=easing,
        scroll_speed=scroll_speed,
    )
