from __future__ import annotations

import pytest

from capture_plan import CapturePlan, PlanPolicy, compute_plan, validate_plan_inputs
from errors import InvalidParameters
from utils.easing import EASINGS


def fixed(page_height=5080, **kw):
    params = dict(
        frame_rate=60, pause_seconds=1, viewport_height=1080, page_height=page_height,
        policy="fixed_duration", total_duration_seconds=16,
    )
    params.update(kw)
    return compute_plan(**params)


def offsets(plan: CapturePlan) -> list[int]:
    out = []
    for i in range(plan.total_frames):
        out.append(plan.scroll_offset(i))
        if plan.is_final_frame(i):
            break
    return out


# ── fixed duration ──────────────────────────


def test_fixed_duration_frame_counts():
    plan = fixed()
    assert plan.pause_frames == 60
    assert plan.total_frames == 960
    assert plan.scroll_frames == 900
    assert plan.max_scroll == 4000
    assert plan.total_duration_seconds == 16.0


def test_fixed_duration_lands_exactly_on_max_scroll():
    plan = fixed(page_height=4321)
    ys = offsets(plan)
    assert ys[-1] == plan.max_scroll == 3241
    assert len(ys) == 960


def test_scroll_increment_is_derived_from_page_height():
    plan = fixed()
    assert plan.scroll_increment == pytest.approx(4000 / 900)


# ── speed driven ────────────────────────────


def speed(max_scroll, **kw):
    params = dict(
        frame_rate=60, pause_seconds=1, viewport_height=1080, page_height=1080 + max_scroll,
        policy=PlanPolicy.SPEED_DRIVEN, scroll_speed=800,
    )
    params.update(kw)
    return compute_plan(**params)


def test_speed_driven_duration_follows_page_length():
    plan = speed(4000)
    assert plan.scroll_duration_seconds == 5.0
    assert plan.scroll_frames == 300
    assert plan.total_frames == 360


def test_speed_driven_minimum_scroll_duration():
    plan = speed(600)
    assert plan.scroll_duration_seconds == 3.0
    assert plan.scroll_frames == 180


def test_speed_driven_short_page_holds_at_top():
    plan = speed(0)
    assert plan.max_scroll == 0
    assert plan.scroll_frames == 180
    assert set(offsets(plan)) == {0}


# ── stop at bottom ──────────────────────────


def bottom(max_scroll, **kw):
    params = dict(
        frame_rate=60, pause_seconds=1, viewport_height=1080, page_height=1080 + max_scroll,
        policy="stop_at_bottom", scroll_speed=800,
    )
    params.update(kw)
    return compute_plan(**params)


def test_stop_at_bottom_ends_on_max_scroll():
    plan = bottom(4000)
    ys = offsets(plan)
    assert ys[-1] == 4000
    assert len(ys) <= plan.total_frames
    assert ys.count(4000) == 1


def test_stop_at_bottom_uneven_step_never_overshoots():
    plan = bottom(1001, scroll_speed=700)
    ys = offsets(plan)
    assert max(ys) == 1001
    assert ys[-1] == 1001
    assert len(ys) == plan.pause_frames + plan.scroll_frames


def test_stop_at_bottom_no_scroll_needed_stops_after_pause():
    plan = bottom(0, page_height=900)
    assert plan.max_scroll == 0
    assert plan.total_frames == plan.pause_frames == 60
    assert offsets(plan) == [0] * 60


# ── invariants for every policy ─────────────


@pytest.mark.parametrize("plan", [
    fixed(),
    fixed(page_height=1500, easing="ease_out_cubic"),
    fixed(page_height=20000, easing="ease_in_out_cubic", frame_rate=30),
    fixed(page_height=700),
    speed(4000, easing="ease_in_out_sine"),
    speed(123),
    bottom(4000),
    bottom(2999, scroll_speed=333, frame_rate=24),
])
def test_offsets_monotonic_and_bounded(plan):
    ys = offsets(plan)
    assert all(0 <= y <= plan.max_scroll for y in ys)
    assert all(a <= b for a, b in zip(ys, ys[1:]))
    assert ys[:plan.pause_frames] == [0] * plan.pause_frames
    assert plan.total_frames >= plan.pause_frames
    if plan.max_scroll > 0 and plan.scroll_frames > 0:
        assert ys[-1] == plan.max_scroll


@pytest.mark.parametrize("name", sorted(EASINGS))
def test_easing_endpoints(name):
    f = EASINGS[name]
    assert f(0.0) == pytest.approx(0.0)
    assert f(1.0) == 1.0


def test_single_scroll_frame_jumps_to_bottom():
    plan = fixed(frame_rate=2, total_duration_seconds=1.5)
    assert plan.pause_frames == 2
    assert plan.scroll_frames == 1
    assert plan.scroll_offset(2) == plan.max_scroll


def test_plan_is_pure():
    assert fixed(easing="ease_out_cubic") == fixed(easing="ease_out_cubic")
    assert speed(2500) == speed(2500)


def test_scroll_offset_outside_plan():
    plan = fixed()
    with pytest.raises(IndexError):
        plan.scroll_offset(960)


# ── rejected input ──────────────────────────


@pytest.mark.parametrize("kw", [
    {"frame_rate": 0},
    {"frame_rate": -30},
    {"viewport_height": 0},
    {"pause_seconds": -1},
    {"page_height": -5},
    {"easing": "bounce"},
    {"total_duration_seconds": None},
    {"total_duration_seconds": 0.5},
    {"total_duration_seconds": 1},
    {"total_duration_seconds": 1.01},
    {"policy": "zigzag"},
])
def test_invalid_parameters(kw):
    with pytest.raises(InvalidParameters):
        fixed(**kw)


def test_speed_policies_need_scroll_speed():
    with pytest.raises(InvalidParameters):
        speed(1000, scroll_speed=None)
    with pytest.raises(InvalidParameters):
        bottom(1000, scroll_speed=0)


def test_fixed_duration_with_no_scroll_frames_is_rejected():
    # a 1 s video that is all pause would never reach the bottom
    with pytest.raises(InvalidParameters, match="no frames to scroll"):
        fixed(frame_rate=60, pause_seconds=1, total_duration_seconds=1)


def test_speed_driven_tiny_scroll_still_reaches_bottom():
    plan = speed(5, min_scroll_seconds=0)
    assert plan.max_scroll == 5
    assert plan.scroll_frames == 1
    assert offsets(plan)[-1] == 5


def test_stop_at_bottom_short_page_without_pause_gets_one_frame():
    plan = bottom(0, page_height=800, pause_seconds=0)
    assert plan.total_frames == 1
    assert offsets(plan) == [0]
    assert plan.is_final_frame(0)


def test_validate_plan_inputs_checks_policy_specific_fields():
    with pytest.raises(InvalidParameters, match="shorter than"):
        validate_plan_inputs(60, 1080, pause_seconds=5, policy="fixed_duration", total_duration_seconds=2)
    with pytest.raises(InvalidParameters, match="scroll_speed"):
        validate_plan_inputs(60, 1080, policy="speed_driven")
    assert validate_plan_inputs(
        60, 1080, policy="stop_at_bottom", scroll_speed=800
    ) is PlanPolicy.STOP_AT_BOTTOM
