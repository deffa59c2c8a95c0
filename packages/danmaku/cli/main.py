"""Command-line interface for Danmaku.

Runs the engine against a virtual host clock, so a simulated playback of
any length finishes instantly and is fully reproducible.
"""

from __future__ import annotations

import argparse
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
import logging
from pathlib import Path
import sys

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from danmaku.core.bullets.models import RenderSnapshot
from danmaku.core.comments.generator import generate_comments
from danmaku.core.comments.ingest import load_comments
from danmaku.core.comments.models import Comment
from danmaku.core.comments.pipeline import DensityLimits, build_schedule
from danmaku.core.config.loader import configure_logging
from danmaku.core.config.models import EngineConfig
from danmaku.core.layout.viewport import LaneLayout, Viewport
from danmaku.core.session import DanmakuSession
from danmaku.core.timing.manual import ManualClock
from danmaku.core.utils.json import write_json

console = Console()
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlaybackEvent:
    """A scripted playback action at a virtual time.

    Attributes:
        at_ms: Virtual time at which the action fires.
        kind: "seek", "pause" or "rate".
        value: Seek target (ms), pause length (ms) or new rate.
    """

    at_ms: float
    kind: str
    value: float


def parse_event(kind: str, value: str) -> PlaybackEvent:
    """Parse an ``AT:VALUE`` option (seconds, except rates).

    Example:
        >>> parse_event("seek", "50:5")
        PlaybackEvent(at_ms=50000.0, kind='seek', value=5000.0)
    """
    try:
        at_s, value_s = value.split(":", 1)
        at_ms = float(at_s) * 1000
        amount = float(value_s) if kind == "rate" else float(value_s) * 1000
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Expected AT:VALUE for --{kind}, got {value!r}") from e
    return PlaybackEvent(at_ms=at_ms, kind=kind, value=amount)


def _load_config(path: str | None) -> EngineConfig:
    return EngineConfig.load_or_default(Path(path) if path else None)


def _load_input(args: argparse.Namespace) -> list[Comment]:
    if args.comments:
        return load_comments(args.comments)
    return generate_comments(
        args.generate,
        args.duration,
        seed=args.seed,
        reverse_share=args.reverse_share,
    )


def _setup_logging(args: argparse.Namespace, config: EngineConfig) -> None:
    if args.log_level:
        logging_config = config.logging.model_copy(update={"level": args.log_level.upper()})
        config = config.model_copy(update={"logging": logging_config})
    configure_logging(config)


def run_simulation(
    session: DanmakuSession,
    host: ManualClock,
    *,
    duration_ms: float,
    tick_ms: float,
    events: Sequence[PlaybackEvent] = (),
) -> tuple[RenderSnapshot, int]:
    """Play ``session`` from its current position until ``duration_ms``.

    Args:
        session: Session built on ``host``.
        host: Manual host clock driving the session.
        duration_ms: Stop once virtual time reaches this position.
        tick_ms: Host ms advanced between ticks.
        events: Scripted seeks, pauses and rate changes.

    Returns:
        The final frame and the peak number of bullets seen on screen.
    """
    pending = sorted(events, key=lambda e: e.at_ms)
    session.play()
    frame = session.tick()
    peak = len(frame)

    while session.loop.now_ms < duration_ms:
        host.advance(tick_ms)
        frame = session.tick()
        peak = max(peak, len(frame))

        while pending and pending[0].at_ms <= session.loop.now_ms:
            event = pending.pop(0)
            logger.info(f"Event {event.kind}={event.value} at {session.loop.now_ms:.0f}ms")
            if event.kind == "seek":
                session.seek(event.value)
            elif event.kind == "rate":
                session.set_rate(event.value)
            elif event.kind == "pause":
                session.pause()
                host.advance(event.value)
                session.tick()
                session.play()

    return frame, peak


def simulate(args: argparse.Namespace) -> int:
    """Run a scripted virtual playback and print the results."""
    config = _load_config(args.config)
    _setup_logging(args, config)

    comments = _load_input(args)
    events = (
        [parse_event("seek", s) for s in args.seek]
        + [parse_event("pause", s) for s in args.pause]
        + [parse_event("rate", s) for s in args.rate_change]
    )

    host = ManualClock()
    viewport = Viewport(args.width, args.height)
    with DanmakuSession(
        comments, viewport=viewport, config=config, host_clock=host, rate=args.rate
    ) as session:
        frame, peak = run_simulation(
            session,
            host,
            duration_ms=args.duration * 1000,
            tick_ms=args.tick_ms,
            events=events,
        )
        stats = session.stats.as_dict()
        scheduled = len(session.loop.schedule)

    table = Table(title="Simulation")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Comments", str(len(comments)))
    table.add_row("Scheduled", str(scheduled))
    table.add_row("Spawned", str(stats["spawned"]))
    table.add_row("Deferred", str(stats["deferred"]))
    table.add_row("Skipped", str(stats["skipped"]))
    table.add_row("Seeks", str(stats["seeks"]))
    for reason, count in sorted(stats["dropped"].items()):
        table.add_row(f"Dropped ({reason})", str(count))
    table.add_row("Peak on screen", str(peak))
    console.print(table)

    if args.show and frame.bullets:
        bullets = Table(title=f"Frame at {frame.time_ms / 1000:.1f}s")
        for column in ("id", "motion", "row", "x", "progress", "text"):
            bullets.add_column(column)
        for b in frame.bullets[: args.show]:
            bullets.add_row(
                str(b.id),
                b.motion_class.name,
                str(b.row),
                f"{b.x_px:.0f}",
                f"{b.progress:.2f}",
                escape(b.text),
            )
        console.print(bullets)

    if args.out:
        write_json(args.out, {"stats": stats, "peak": peak, "scheduled": scheduled})
        console.print(f"[green]Summary written to[/green] {args.out}")
    return 0


def inspect(args: argparse.Namespace) -> int:
    """Print pipeline statistics for a comment set."""
    config = _load_config(args.config)
    _setup_logging(args, config)

    comments = _load_input(args)
    viewport = Viewport(args.width, args.height)
    settings = config.settings
    schedule = build_schedule(
        comments,
        settings,
        viewport,
        playback_rate=args.rate,
        policy=config.pipeline,
        min_rate=config.allocator.min_rate,
    )
    layout = LaneLayout.compute(viewport, settings, config.layout)
    limits = DensityLimits.compute(
        settings, viewport, args.rate, config.pipeline, config.allocator.min_rate
    )
    motions = Counter(tc.motion_class.name for tc in schedule.comments)

    table = Table(title="Pipeline")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    stats = schedule.stats
    table.add_row("Total", str(stats.total))
    table.add_row("Negative time", str(stats.negative_time))
    table.add_row("Source filtered", str(stats.source_filtered))
    table.add_row("Motion filtered", str(stats.motion_filtered))
    table.add_row("Density dropped", str(stats.density_dropped))
    table.add_row("Kept", str(stats.kept))
    for name, count in sorted(motions.items()):
        table.add_row(f"  {name}", str(count))
    console.print(table)

    geometry = Table(title="Layout")
    geometry.add_column("Metric")
    geometry.add_column("Value", justify="right")
    geometry.add_row("Line height", f"{layout.line_height:.0f}px")
    geometry.add_row("Rows per pool", str(layout.scroll_rows))
    geometry.add_row("Density bucket", f"{limits.bucket_seconds}s")
    geometry.add_row("Scroll cap / bucket", str(limits.scroll_cap))
    geometry.add_row("Fixed cap / bucket", str(limits.fixed_cap))
    console.print(geometry)
    return 0


def _add_input_args(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--comments", help="Comment payload JSON (dandanplay or plain records)")
    source.add_argument(
        "--generate", type=int, default=500, help="Generate N random comments (default: 500)"
    )
    parser.add_argument("--duration", type=float, default=120.0, help="Seconds (default: 120)")
    parser.add_argument("--seed", type=int, default=None, help="Seed for generated comments")
    parser.add_argument(
        "--reverse-share",
        type=float,
        default=0.0,
        help="Share of generated scrolling comments moving right",
    )
    parser.add_argument("--width", type=float, default=1280.0, help="Viewport width in px")
    parser.add_argument("--height", type=float, default=720.0, help="Viewport height in px")
    parser.add_argument("--rate", type=float, default=1.0, help="Playback rate (default: 1.0)")
    parser.add_argument("--config", default=None, help="Engine config (.json/.yaml)")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")


def build_arg_parser() -> argparse.ArgumentParser:
    """Build argument parser for CLI."""
    p = argparse.ArgumentParser(
        prog="danmaku",
        description="Danmaku - bullet comment scheduling engine",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    sim = sub.add_parser("simulate", help="Run a virtual playback")
    _add_input_args(sim)
    sim.add_argument("--tick-ms", type=float, default=100.0, help="Host ms per tick")
    sim.add_argument(
        "--seek", action="append", default=[], metavar="AT:TO", help="Seek at AT s to TO s"
    )
    sim.add_argument(
        "--pause", action="append", default=[], metavar="AT:FOR", help="Pause at AT s for FOR s"
    )
    sim.add_argument(
        "--rate-change",
        action="append",
        default=[],
        metavar="AT:RATE",
        help="Change playback rate at AT s",
    )
    sim.add_argument("--show", type=int, default=10, help="Bullets to list from the last frame")
    sim.add_argument("--out", default=None, help="Write a JSON summary to this path")

    insp = sub.add_parser("inspect", help="Print pipeline statistics")
    _add_input_args(insp)
    return p


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for CLI."""
    p = build_arg_parser()
    args = p.parse_args(argv)

    try:
        if args.cmd == "simulate":
            return simulate(args)
        if args.cmd == "inspect":
            return inspect(args)
    except (argparse.ArgumentTypeError, FileNotFoundError, ValueError) as e:
        console.print(f"[red]ERROR: {e}[/red]")
        return 1
    return 1


if __name__ == "__main__":
    sys.exit(main())
