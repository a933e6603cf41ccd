"""Render a local HTML file into a scrolling MP4.

Usage:
  scroll-video render site.html --label "Acme Roofing"
  scroll-video render site.html --label "Acme" --policy speed_driven --scroll-speed 600
  scroll-video plan --page-height 5200
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from capture_plan import PlanPolicy
from config import load_settings
from errors import VideoGenerationError
from utils.easing import EASINGS
from video_pipeline import generate_video, plan_for_page

console = Console()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="scroll-video", description=__doc__.splitlines()[0])
    sub = parser.add_subparsers(dest="command", required=True)

    def add_plan_options(p: argparse.ArgumentParser) -> None:
        p.add_argument("--policy", choices=[policy.value for policy in PlanPolicy])
        p.add_argument("--easing", choices=sorted(EASINGS))
        p.add_argument("--fps", type=int, dest="frame_rate")
        p.add_argument("--width", type=int)
        p.add_argument("--height", type=int)
        p.add_argument("--pause", type=float, dest="pause_seconds")
        p.add_argument("--duration", type=float, dest="total_duration_seconds")
        p.add_argument("--scroll-speed", type=float, dest="scroll_speed", help="px/s")
        p.add_argument("--min-scroll", type=float, dest="min_scroll_seconds")

    render = sub.add_parser("render", help="Render an HTML file to MP4")
    render.add_argument("html_file", type=Path)
    render.add_argument("--label", required=True, help="Business name used in the file name")
    render.add_argument("--out-dir", dest="output_dir")
    render.add_argument("--frame-store", choices=["disk", "memory"])
    render.add_argument("-v", "--verbose", action="store_true")
    add_plan_options(render)

    plan = sub.add_parser("plan", help="Print the capture plan for a page height")
    plan.add_argument("--page-height", type=int, required=True)
    add_plan_options(plan)

    return parser.parse_args(argv)


_OVERRIDE_FIELDS = (
    "policy", "easing", "frame_rate", "width", "height", "pause_seconds",
    "total_duration_seconds", "scroll_speed", "min_scroll_seconds",
    "output_dir", "frame_store",
)


def _overrides(args: argparse.Namespace) -> dict:
    return {f: getattr(args, f, None) for f in _OVERRIDE_FIELDS}


def show_plan(args: argparse.Namespace) -> int:
    settings = load_settings(**_overrides(args))
    plan = plan_for_page(settings, args.page_height)
    table = Table(title="Capture plan", show_header=False)
    table.add_column(style="bold")
    table.add_column()
    for key, value in plan.summary().items():
        table.add_row(key, str(value))
    console.print(table)
    return 0


async def render(args: argparse.Namespace) -> int:
    settings = load_settings(**_overrides(args))
    html = args.html_file.read_text(encoding="utf-8")

    with Progress(
        TextColumn("[bold]{task.fields[stage]:<8}"),
        BarColumn(bar_width=40),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("video", total=1.0, stage="load")

        def on_progress(stage: str, fraction: float) -> None:
            progress.update(task, completed=fraction, stage=stage)

        result = await generate_video(html, args.label, settings=settings, on_progress=on_progress)

    console.print(f"[green]●[/green] {result.output_path}")
    console.print(
        f"  {result.frame_count} frames, {result.total_duration_seconds:.2f}s, "
        f"{result.as_dict()['file_size_readable']}, page height {result.page_height}px"
    )
    if result.late_frames:
        console.print(f"  [yellow]{result.late_frames} frames overran their time budget[/yellow]")
    return 0


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if getattr(args, "verbose", False) else logging.WARNING,
        format="%(levelname)s  %(name)s  %(message)s",
    )
    try:
        if args.command == "plan":
            return show_plan(args)
        return asyncio.run(render(args))
    except VideoGenerationError as e:
        console.print(f"[red]{e.kind}[/red]: {e.message}")
        if e.detail:
            console.print(f"[dim]{e.detail}[/dim]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
