"""
  M A T R I X   host
  Runs the animations against a frame buffer and pushes frames to a sink.

  The host loop reads the clock once per tick, lets the active animation
  draw, and flushes a brightness-scaled copy of the buffer. Without LED
  hardware attached the sinks are a terminal preview (curses, one "██" per
  logical pixel, the mapping undone so the picture reads the right way up)
  and a headless counter for profiling and tests.

  Controls (terminal preview):
    q         quit
    n         next animation
    p         next palette
    + / -     brightness
    [ / ]     slower / faster automaton
    c         cycle wipe column skip (1, 2, 4)
    r         reseed automaton
    o         swap panel order
    1 2 3     rotate panel 1 / 2 / 3 by 90 degrees
    s         toggle stats overlay
"""

from __future__ import annotations

import argparse
import curses
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Protocol, Sequence

import numpy as np
from numpy.typing import NDArray

from led_anim import (
    PALETTE_NAMES,
    Animation,
    AnimationSelector,
    BlinkAnimation,
    FireworkAnimation,
    MatrixConfig,
    MultiSpawnWaveAnimation,
    RainbowWaveAnimation,
    SnowAnimation,
    TrafficAnimation,
)
from led_clock import Clock, ManualClock
from led_frame import FrameBuffer
from led_life import LOG_PATH, LifeAnimation, StatsLogger
from led_mapper import PANEL_COUNT, PANEL_SIZE, VALID_ROTATIONS, PanelConfig, logical_view
from led_settings import Settings

log = logging.getLogger(__name__)

DEFAULT_FPS: int = 50
COLUMN_SKIPS: tuple[int, ...] = (1, 2, 4)


def build_animations(seed: int | None = None, stats: StatsLogger | None = None) -> list[Animation]:
    """Every animation the selector can switch to, in menu order."""
    return [
        SnowAnimation(seed),
        TrafficAnimation(seed),
        FireworkAnimation(seed),
        RainbowWaveAnimation(seed),
        MultiSpawnWaveAnimation(seed),
        BlinkAnimation(seed),
        LifeAnimation(seed, stats=stats),
    ]


# ═══════════════════════════════════════════════════════════════════════
#  Sinks
# ═══════════════════════════════════════════════════════════════════════

class FrameSink(Protocol):
    def show(self, pixels: NDArray[np.uint8]) -> None: ...


class HeadlessSink:
    """Counts frames and keeps the last one."""

    def __init__(self) -> None:
        self.frames: int = 0
        self.last: NDArray[np.uint8] | None = None

    def show(self, pixels: NDArray[np.uint8]) -> None:
        self.frames += 1
        self.last = pixels


class ColorMap:
    """RGB -> curses colour pair, via the xterm 6x6x6 cube where available."""

    BASIC: tuple[tuple[int, tuple[int, int, int]], ...] = (
        (curses.COLOR_BLACK, (0, 0, 0)),
        (curses.COLOR_RED, (255, 0, 0)),
        (curses.COLOR_GREEN, (0, 255, 0)),
        (curses.COLOR_YELLOW, (255, 255, 0)),
        (curses.COLOR_BLUE, (0, 0, 255)),
        (curses.COLOR_MAGENTA, (255, 0, 255)),
        (curses.COLOR_CYAN, (0, 255, 255)),
        (curses.COLOR_WHITE, (255, 255, 255)),
    )

    def __init__(self) -> None:
        self.cube: bool = False
        self._pairs: dict[int, int] = {}

    def setup(self) -> None:
        curses.start_color()
        curses.use_default_colors()
        max_pairs = curses.COLOR_PAIRS - 1
        self.cube = curses.COLORS >= 256 and max_pairs >= 216
        if self.cube:
            for i in range(216):
                curses.init_pair(i + 1, 16 + i, -1)
                self._pairs[i] = i + 1
        else:
            for i, (c, _) in enumerate(self.BASIC):
                if i + 1 > max_pairs:
                    break
                curses.init_pair(i + 1, c, -1)
                self._pairs[i] = i + 1

    def key(self, rgb: Sequence[int]) -> int:
        r, g, b = (int(v) for v in rgb)
        if self.cube:
            return (r * 6 // 256) * 36 + (g * 6 // 256) * 6 + (b * 6 // 256)
        best, best_d = 0, 1 << 30
        for i, (_, (br, bg, bb)) in enumerate(self.BASIC):
            d = (r - br) ** 2 + (g - bg) ** 2 + (b - bb) ** 2
            if d < best_d:
                best, best_d = i, d
        return best

    def pair(self, rgb: Sequence[int]) -> int:
        return curses.color_pair(self._pairs.get(self.key(rgb), 0))


class TerminalSink:
    """Draws the logical image into a curses window."""

    def __init__(self, stdscr: curses.window, config: MatrixConfig, cmap: ColorMap) -> None:
        self.stdscr = stdscr
        self.config = config
        self.cmap = cmap
        self.status: str = ""
        self.overlay: list[str] = []

    def show(self, pixels: NDArray[np.uint8]) -> None:
        scr = self.stdscr
        max_y, max_x = scr.getmaxyx()
        image = logical_view(pixels, self.config.panel)
        h, w = image.shape[:2]
        scr.erase()
        for y in range(min(h, max_y - 1)):
            for x in range(min(w, (max_x - 1) // 2)):
                px = image[y, x]
                if not px.any():
                    continue
                try:
                    scr.addstr(y, x * 2, "██", self.cmap.pair(px))
                except curses.error:
                    pass
        for i, line in enumerate(self.overlay):
            row = h + 1 + i
            if row < max_y - 1:
                try:
                    scr.addstr(row, 0, line[: max_x - 1], curses.A_DIM)
                except curses.error:
                    pass
        if self.status:
            try:
                scr.addstr(max_y - 1, 0, self.status[: max_x - 1], curses.A_DIM)
            except curses.error:
                pass
        scr.refresh()


# ═══════════════════════════════════════════════════════════════════════
#  Host
# ═══════════════════════════════════════════════════════════════════════

class MatrixHost:
    """One frame buffer, one selector, one sink, one clock."""

    def __init__(
        self,
        config: MatrixConfig,
        sink: FrameSink,
        clock: Clock | ManualClock | None = None,
        animations: Sequence[Animation] | None = None,
        seed: int | None = None,
        stats: StatsLogger | None = None,
    ) -> None:
        self.config = config
        self.sink = sink
        self.clock = clock if clock is not None else Clock()
        self.frame = FrameBuffer(config.panel.led_count)
        if animations is None:
            animations = build_animations(seed, stats)
        self.selector = AnimationSelector(animations, self.frame, config)
        self.settings = Settings(config, self.selector)
        self.ticks: int = 0

    def now(self) -> int:
        return self.clock.millis()

    def select(self, name: str) -> Animation:
        return self.selector.select(name, self.now())

    def tick(self, now: int | None = None) -> bool:
        """Advance the active animation and flush. Never raises."""
        if now is None:
            now = self.now()
        self.ticks += 1
        drew = False
        try:
            drew = self.selector.update(now)
        except Exception:
            name = self.selector.active_name
            log.exception("animation %s failed, disabling it", name)
            self.selector.end()
            self.frame.clear()
        self.sink.show(self.frame.scaled(self.config.brightness))
        return drew

    def close(self) -> None:
        self.selector.end()


# ═══════════════════════════════════════════════════════════════════════
#  CLI
# ═══════════════════════════════════════════════════════════════════════

def _parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Chained LED panel animations, previewed in the terminal.",
    )
    p.add_argument("--panels", type=int, default=PANEL_COUNT, help="panels in the chain")
    p.add_argument("--panel-size", type=int, default=PANEL_SIZE, help="pixels per panel side")
    p.add_argument(
        "--rotation", type=int, nargs="+", choices=VALID_ROTATIONS, default=None,
        metavar="DEG", help="mount angle per panel (0/90/180/270)",
    )
    p.add_argument("--order", choices=("left", "right"), default="left",
                   help="which panel the strip starts at")
    p.add_argument("--animation", default="life", help="animation to start with")
    p.add_argument("--palette", default=PALETTE_NAMES[0], help="palette name or index")
    p.add_argument("--brightness", type=int, default=None, help="0..255")
    p.add_argument("--fps", type=int, default=DEFAULT_FPS, help="host ticks per second")
    p.add_argument("--seed", type=int, default=None, help="RNG seed")
    p.add_argument("--headless", type=int, default=0, metavar="N",
                   help="run N ticks without a terminal and print a summary")
    p.add_argument("--stats", type=Path, nargs="?", const=LOG_PATH, default=None,
                   help="write automaton telemetry CSV (default: led_stats.csv)")
    p.add_argument("--log", type=Path, default=None, help="log file")
    p.add_argument("--config", type=Path, default=None, help="JSON settings file")
    return p


def build_host(args: argparse.Namespace, sink: FrameSink, stats: StatsLogger | None) -> MatrixHost:
    config = MatrixConfig(panel=PanelConfig(
        panel_count=args.panels,
        panel_size=args.panel_size,
        reversed=args.order == "right",
        rotations=list(args.rotation or []),
    ))
    clock: Clock | ManualClock = ManualClock() if args.headless else Clock()
    host = MatrixHost(config, sink, clock=clock, seed=args.seed, stats=stats)
    settings = host.settings

    wanted: dict[str, Any] = {"palette": args.palette, "animation": args.animation}
    if args.brightness is not None:
        wanted["brightness"] = args.brightness
    if args.config is not None:
        with open(args.config) as fh:
            wanted.update(json.load(fh))
    for result in settings.apply(wanted, host.now()):
        if not result.ok:
            print(f"ignoring {result.name}: {result.error}", file=sys.stderr)
    if host.selector.active is None:
        host.select(host.selector.names[0])
    return host


def _stats_lines(host: MatrixHost) -> list[str]:
    anim = host.selector.active
    lines = [f"animation : {host.selector.active_name or 'none'}"]
    if isinstance(anim, LifeAnimation):
        s = anim.snapshot()
        lines += [
            f"generation: {s.generation:,}  pop {s.population}",
            f"phase     : {s.phase}  col {s.wipe_column}",
            f"fading    : +{s.newborn} -{s.dying}",
            f"cycle     : {'none' if s.cycle_period == 0 else f'period {s.cycle_period}'}"
            f"  repeats {s.hash_repeats}  same {s.same_count_run}",
            f"reseeds   : {s.total_reseeds}  last {s.last_event or 'none'}",
        ]
    return lines


def run_headless(host: MatrixHost, ticks: int, fps: int) -> None:
    clock = host.clock
    step = max(1, 1000 // max(1, fps))
    t0 = time.perf_counter()
    for _ in range(ticks):
        if isinstance(clock, ManualClock):
            clock.advance(step)
        host.tick()
    dt = time.perf_counter() - t0
    print(
        f"{ticks} ticks of {host.selector.active_name or 'none'} in {dt:.2f}s "
        f"({ticks / max(dt, 1e-9):.0f} ticks/s)"
    )
    for line in _stats_lines(host):
        print(line)


def run_terminal(stdscr: curses.window, args: argparse.Namespace, stats: StatsLogger | None) -> None:
    curses.curs_set(0)
    stdscr.nodelay(True)
    stdscr.timeout(0)

    cmap = ColorMap()
    cmap.setup()

    sink = TerminalSink(stdscr, MatrixConfig(), cmap)
    host = build_host(args, sink, stats)
    sink.config = host.config
    settings = host.settings
    show_stats = False
    delay = 1.0 / max(1, args.fps)

    try:
        while True:
            # ── Input ──────────────────────────────────────────────
            try:
                key = stdscr.getch()
            except curses.error:
                key = -1

            now = host.now()
            if key in (ord("q"), ord("Q")):
                break
            elif key in (ord("n"), ord("N")):
                host.selector.next(now)
            elif key in (ord("p"), ord("P")):
                settings.set("palette", (host.config.palette_index + 1) % len(PALETTE_NAMES))
            elif key in (ord("+"), ord("=")):
                settings.set("brightness", min(255, host.config.brightness + 10))
            elif key in (ord("-"), ord("_")):
                settings.set("brightness", max(0, host.config.brightness - 10))
            elif key == ord("["):
                settings.set("speed_multiplier", host.config.speed_multiplier / 1.5)
            elif key == ord("]"):
                settings.set("speed_multiplier", host.config.speed_multiplier * 1.5)
            elif key in (ord("c"), ord("C")):
                i = COLUMN_SKIPS.index(host.config.column_skip) if host.config.column_skip in COLUMN_SKIPS else -1
                settings.set("column_skip", COLUMN_SKIPS[(i + 1) % len(COLUMN_SKIPS)])
            elif key in (ord("r"), ord("R")):
                anim = host.selector.active
                if isinstance(anim, LifeAnimation) and anim.running:
                    anim.reseed("manual", now)
            elif key in (ord("o"), ord("O")):
                settings.swap_panels()
            elif key in (ord("1"), ord("2"), ord("3")):
                panel = key - ord("1")
                if panel < host.config.panel.panel_count:
                    settings.set_rotation(panel, (host.config.panel.rotation(panel) + 90) % 360)
            elif key in (ord("s"), ord("S")):
                show_stats = not show_stats

            # ── Tick + render ──────────────────────────────────────
            snap = settings.snapshot()
            sink.status = (
                f" {snap['animation']} | {snap['palette']} | bri {snap['brightness']}"
                f" | x{snap['speed_multiplier']:.2f} | skip {snap['column_skip']}"
                f" | {snap['panel_order']} {snap['rotation']}   q quit"
            )
            sink.overlay = _stats_lines(host) if show_stats else []
            host.tick()

            time.sleep(delay)
    finally:
        host.close()


def main(argv: Sequence[str] | None = None) -> int:
    args = _parser().parse_args(argv)

    if args.log is not None:
        logging.basicConfig(
            filename=args.log, level=logging.INFO,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )
    elif args.headless:
        logging.basicConfig(level=logging.INFO)
    else:
        # curses owns the terminal
        logging.basicConfig(level=logging.CRITICAL)

    stats: StatsLogger | None = None
    if args.stats is not None:
        stats = StatsLogger(args.stats)
        stats.open()

    try:
        if args.headless:
            host = build_host(args, HeadlessSink(), stats)
            try:
                run_headless(host, args.headless, args.fps)
            finally:
                host.close()
        else:
            curses.wrapper(run_terminal, args, stats)
    except KeyboardInterrupt:
        pass
    finally:
        if stats is not None:
            stats.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
