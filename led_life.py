"""
  L I F E   on the panels
  Conway's Game of Life for a chained LED matrix, revealed by a wipe.

  Each generation is computed in one go, but shown column by column: a
  cursor sweeps the matrix (alternating direction every generation) and only
  the columns it has passed show the new state. Newborn cells flare in from
  near-white through an over-saturated version of their colour; dying cells
  wait until the cursor reaches them, then blink, flash and fade out.

  The world is a torus. When it dies out, freezes, or settles into a short
  oscillator, it reseeds itself.

  Three timers share the host clock:
    generation   300 ms / speed, counted from the end of the last wipe
    wipe         750 ms / speed for a full sweep (5 ms floor), per column
    fade         the animation's own interval; drives per-cell transitions
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import IO, ClassVar

import numpy as np
from numpy.typing import NDArray
from scipy.ndimage import convolve

from led_anim import Animation, AnimationState, hue_color
from led_clock import CLOCK_MASK, due, elapsed
from led_frame import Color
from led_mapper import index_table

log = logging.getLogger(__name__)

# ── Rule ────────────────────────────────────────────────────────────────
NEIGHBOR_KERNEL: NDArray = np.array([[1, 1, 1], [1, 0, 1], [1, 1, 1]], dtype=np.uint8)

# ── Timing (ms) ─────────────────────────────────────────────────────────
GENERATION_MS: int = 300
FADE_TICK_MS: int = 20
WIPE_MS: float = 750.0
MIN_WIPE_MS: float = 5.0
CLEANUP_MS: int = 1000

# ── Birth: near-white -> over-saturated target -> target ───────────────
BIRTH_MS: int = 1600
BIRTH_PEAK: float = 0.40
OVERSATURATION: float = 1.5
NEAR_WHITE: Color = (240, 240, 240)

# ── Death: 5 blinks, flash, fade to black ──────────────────────────────
DEATH_MS_MIN: int = 2000
DEATH_MS_MAX: int = 2200
DEATH_BLINKS: int = 5
DEATH_BLINK_END: float = 0.50
DEATH_FLASH_END: float = 0.60
DEATH_DIM: float = 0.30
DEATH_FLASH: float = 1.5

# ── Stagnation ─────────────────────────────────────────────────────────
HASH_HISTORY: int = 8         # oscillator periods up to this are caught
REPEAT_THRESHOLD: int = 12    # repeated hashes tolerated before reseed
SAME_COUNT_LIMIT: int = 60    # unchanged live counts tolerated before reseed

# ── Pattern library (row, col) ─────────────────────────────────────────
PATTERNS: dict[str, list[tuple[int, int]]] = {
    "block": [(0, 0), (0, 1), (1, 0), (1, 1)],
    "blinker": [(0, 0), (0, 1), (0, 2)],
    "toad": [(0, 1), (0, 2), (0, 3), (1, 0), (1, 1), (1, 2)],
    "beacon": [(0, 0), (0, 1), (1, 0), (2, 3), (3, 2), (3, 3)],
    "glider": [(0, 1), (1, 2), (2, 0), (2, 1), (2, 2)],
    "lwss": [
        (0, 1), (0, 4), (1, 0), (2, 0), (2, 4),
        (3, 0), (3, 1), (3, 2), (3, 3),
    ],
    "r_pentomino": [(0, 1), (0, 2), (1, 0), (1, 1), (2, 1)],
    "acorn": [(0, 1), (1, 3), (2, 0), (2, 1), (2, 4), (2, 5), (2, 6)],
    "diehard": [(0, 6), (1, 0), (1, 1), (2, 1), (2, 5), (2, 6), (2, 7)],
    "pi_heptomino": [(0, 0), (0, 1), (0, 2), (1, 1), (2, 1), (3, 0), (3, 2)],
    "pentadecathlon": [
        (0, 1), (1, 1), (2, 0), (2, 2), (3, 1), (4, 1),
        (5, 1), (6, 1), (7, 0), (7, 2), (8, 1), (9, 1),
    ],
    "pulsar": [
        (0, 2), (0, 3), (0, 4), (0, 8), (0, 9), (0, 10),
        (2, 0), (2, 5), (2, 7), (2, 12),
        (3, 0), (3, 5), (3, 7), (3, 12),
        (4, 0), (4, 5), (4, 7), (4, 12),
        (5, 2), (5, 3), (5, 4), (5, 8), (5, 9), (5, 10),
        (7, 2), (7, 3), (7, 4), (7, 8), (7, 9), (7, 10),
        (8, 0), (8, 5), (8, 7), (8, 12),
        (9, 0), (9, 5), (9, 7), (9, 12),
        (10, 0), (10, 5), (10, 7), (10, 12),
        (12, 2), (12, 3), (12, 4), (12, 8), (12, 9), (12, 10),
    ],
}


# ═══════════════════════════════════════════════════════════════════════
#  Grid storage
# ═══════════════════════════════════════════════════════════════════════

class BitGrid:
    """Fixed-size alive/dead grid, sized once, indexed as grid[x, y]."""

    def __init__(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"grid must be non-empty, got {width}x{height}")
        self.width: int = width
        self.height: int = height
        self.cells: NDArray[np.bool_] = np.zeros((height, width), dtype=np.bool_)

    def _check(self, x: int, y: int) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"cell ({x}, {y}) outside {self.width}x{self.height}")

    def __getitem__(self, xy: tuple[int, int]) -> bool:
        x, y = xy
        self._check(x, y)
        return bool(self.cells[y, x])

    def __setitem__(self, xy: tuple[int, int], alive: bool) -> None:
        x, y = xy
        self._check(x, y)
        self.cells[y, x] = alive

    def load(self, cells: NDArray[np.bool_]) -> None:
        if cells.shape != self.cells.shape:
            raise ValueError(f"shape {cells.shape} != {self.cells.shape}")
        np.copyto(self.cells, cells)

    def clear(self) -> None:
        self.cells.fill(False)

    def count(self) -> int:
        return int(np.count_nonzero(self.cells))

    def packed(self) -> bytes:
        """The grid as a packed bitset, 8 cells per byte, row-major."""
        return np.packbits(self.cells, axis=None).tobytes()

    def digest(self) -> int:
        return hash(self.packed())


def life_rule(cells: NDArray[np.bool_]) -> tuple[NDArray[np.bool_], NDArray[np.bool_], NDArray[np.bool_]]:
    """One toroidal B3/S23 step. Returns (next, born, died)."""
    n = convolve(cells.astype(np.uint8), NEIGHBOR_KERNEL, mode="wrap")
    n_is_3 = n == 3
    born = ~cells & n_is_3
    survive = cells & (n_is_3 | (n == 2))
    died = cells & ~survive
    return born | survive, born, died


# ═══════════════════════════════════════════════════════════════════════
#  Transition colours
# ═══════════════════════════════════════════════════════════════════════

def birth_colors(
    target: NDArray[np.uint8], age_ms: NDArray[np.int64], duration_ms: NDArray[np.int64],
) -> NDArray[np.uint8]:
    """Fade-in colour for each newborn at its age; exact target once done."""
    t = np.clip(age_ms / np.maximum(duration_ms, 1), 0.0, 1.0)[..., None]
    tgt = target.astype(np.float64)
    white = np.asarray(NEAR_WHITE, dtype=np.float64)
    over = np.minimum(tgt * OVERSATURATION, 255.0)

    rising = white + (over - white) * (t / BIRTH_PEAK)
    settling = over + (tgt - over) * ((t - BIRTH_PEAK) / (1.0 - BIRTH_PEAK))
    out = np.where(t < BIRTH_PEAK, rising, settling)
    out = np.where(t >= 1.0, tgt, out)
    return np.clip(np.rint(out), 0, 255).astype(np.uint8)


def death_levels(age_ms: NDArray[np.int64], duration_ms: NDArray[np.int64]) -> NDArray[np.float64]:
    """Brightness multiplier for each dying cell at its age."""
    t = np.clip(age_ms / np.maximum(duration_ms, 1), 0.0, 1.0)
    blink_idx = np.floor(t / DEATH_BLINK_END * (DEATH_BLINKS * 2)).astype(np.int64)
    blink = np.where(blink_idx % 2 == 0, 1.0, DEATH_DIM)
    fade = 1.0 - (t - DEATH_FLASH_END) / (1.0 - DEATH_FLASH_END)
    level = np.where(
        t < DEATH_BLINK_END, blink,
        np.where(t < DEATH_FLASH_END, DEATH_FLASH, fade),
    )
    return np.where(t >= 1.0, 0.0, np.clip(level, 0.0, DEATH_FLASH))


def death_colors(
    source: NDArray[np.uint8], age_ms: NDArray[np.int64], duration_ms: NDArray[np.int64],
) -> NDArray[np.uint8]:
    level = death_levels(age_ms, duration_ms)[..., None]
    return np.clip(np.rint(source.astype(np.float64) * level), 0, 255).astype(np.uint8)


# ═══════════════════════════════════════════════════════════════════════
#  Wipe + stagnation state
# ═══════════════════════════════════════════════════════════════════════

class Phase(Enum):
    NEEDS_GENERATION = "needs_generation"
    WIPING = "wiping"
    IDLE = "idle"


class WipeDirection(Enum):
    LEFT_TO_RIGHT = 1
    RIGHT_TO_LEFT = -1


@dataclass
class WipeCursor:
    direction: WipeDirection = WipeDirection.LEFT_TO_RIGHT
    column: int = 0
    active: bool = False


@dataclass
class StagnationTracker:
    """Live-count and hash bookkeeping between reseeds."""

    last_count: int = -1
    last_hash: int = 0
    hash_repeats: int = 0
    same_count_run: int = 0
    cycle_period: int = 0
    history: deque[int] = field(default_factory=lambda: deque(maxlen=HASH_HISTORY))

    def reset(self, count: int = -1, digest: int = 0) -> None:
        self.last_count = count
        self.last_hash = digest
        self.hash_repeats = 0
        self.same_count_run = 0
        self.cycle_period = 0
        self.history.clear()
        if count >= 0:
            self.history.append(digest)

    def check(
        self,
        count: int,
        digest: int,
        repeat_threshold: int = REPEAT_THRESHOLD,
        count_limit: int = SAME_COUNT_LIMIT,
    ) -> str:
        """Record one generation. Returns the reseed reason, or ''."""
        self.cycle_period = 0
        if count == self.last_count:
            self.same_count_run += 1
            # Period = distance back to the most recent identical grid
            for period in range(1, len(self.history) + 1):
                if self.history[-period] == digest:
                    self.cycle_period = period
                    break
            self.hash_repeats = self.hash_repeats + 1 if self.cycle_period else 0
        else:
            self.same_count_run = 0
            self.hash_repeats = 0

        self.history.append(digest)
        self.last_count = count
        self.last_hash = digest

        if count == 0:
            return "empty"
        if self.hash_repeats > repeat_threshold:
            return f"repeat(period={self.cycle_period})"
        if self.same_count_run >= count_limit:
            return "same_count"
        return ""


@dataclass(frozen=True)
class LifeSnapshot:
    """Read-only view of the automaton for overlays and telemetry."""
    generation: int = 0
    population: int = 0
    phase: str = Phase.NEEDS_GENERATION.value
    wipe_column: int = 0
    wipe_active: bool = False
    newborn: int = 0
    dying: int = 0
    hash_repeats: int = 0
    same_count_run: int = 0
    cycle_period: int = 0
    last_event: str = ""
    total_reseeds: int = 0
    failed: bool = False


LOG_PATH = Path(__file__).resolve().parent / "led_stats.csv"


# ═══════════════════════════════════════════════════════════════════════
#  Stats logger
# ═══════════════════════════════════════════════════════════════════════

class StatsLogger:
    """Writes automaton telemetry to CSV for post-hoc tuning."""

    HEADER: ClassVar[str] = (
        "gen,time_s,population,newborn,dying,hash_repeats,"
        "same_count_run,cycle_period,reseeds,event\n"
    )

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh: IO[str] | None = None
        self._t0: float = time.monotonic()

    def open(self) -> None:
        try:
            self._fh = open(self._path, "w")
            self._fh.write(self.HEADER)
            self._fh.flush()
        except OSError as exc:
            log.warning("stats log %s unavailable: %s", self._path, exc)
            self._fh = None

    def log(self, snap: LifeSnapshot, event: str = "") -> None:
        if self._fh is None:
            return
        t = time.monotonic() - self._t0
        try:
            self._fh.write(
                f"{snap.generation},{t:.1f},{snap.population},{snap.newborn},"
                f"{snap.dying},{snap.hash_repeats},{snap.same_count_run},"
                f"{snap.cycle_period},{snap.total_reseeds},{event}\n"
            )
            # Flush on events or periodically
            if event or snap.generation % 50 == 0:
                self._fh.flush()
        except OSError:
            pass

    def close(self) -> None:
        if self._fh is not None:
            try:
                self._fh.close()
            except OSError:
                pass
            self._fh = None


# ═══════════════════════════════════════════════════════════════════════
#  The automaton
# ═══════════════════════════════════════════════════════════════════════

class LifeAnimation(Animation):
    """
    Game of Life across the whole logical matrix with a wipe reveal.

    The two BitGrids are swapped every generation: `_cur` holds the newest
    generation, `_prev` the one before it, which is what unswept columns keep
    showing. Shadow arrays hold per-cell transition state, shape (h, w[, 3]).
    """

    name = "life"
    default_interval_ms = FADE_TICK_MS

    def __init__(
        self,
        seed: int | None = None,
        stats: StatsLogger | None = None,
        repeat_threshold: int = REPEAT_THRESHOLD,
        count_limit: int = SAME_COUNT_LIMIT,
    ) -> None:
        super().__init__(seed)
        self.generation_ms: int = GENERATION_MS
        self.repeat_threshold: int = repeat_threshold
        self.count_limit: int = count_limit
        self.stats: StatsLogger | None = stats
        self._np_rng: np.random.Generator = np.random.default_rng(seed)

        self.failed: bool = False
        self.width: int = 0
        self.height: int = 0
        self.generation: int = 0
        self.phase: Phase = Phase.NEEDS_GENERATION
        self.wipe: WipeCursor = WipeCursor()
        self.tracker: StagnationTracker = StagnationTracker()
        self.last_event: str = ""
        self.total_reseeds: int = 0

        self._cur: BitGrid | None = None
        self._prev: BitGrid | None = None
        self._swept: NDArray[np.bool_] | None = None
        self.color_target: NDArray[np.uint8] | None = None
        self.transition_color: NDArray[np.uint8] | None = None
        self.fade_start: NDArray[np.int64] | None = None
        self.fade_duration: NDArray[np.int64] | None = None
        self.is_newborn: NDArray[np.bool_] | None = None
        self.is_dying: NDArray[np.bool_] | None = None

        self._phase_since: int = 0
        self._wipe_started: int = 0
        self._wipe_steps: int = 0
        self._last_cleanup: int = 0
        self._table: NDArray[np.intp] | None = None
        self._table_key: tuple | None = None

    def set_interval(self, ms: int) -> None:
        self.generation_ms = ms

    # ── Lifecycle ──────────────────────────────────────────────────

    def start(self, now: int) -> None:
        assert self.config is not None
        self.failed = False
        self.generation = 0
        self.total_reseeds = 0
        self.last_event = ""
        self.wipe = WipeCursor()
        try:
            self._allocate(self.config.panel.width, self.config.panel.height)
        except (MemoryError, ValueError) as exc:
            log.error(
                "life: cannot allocate %dx%d grid: %s",
                self.config.panel.width, self.config.panel.height, exc,
            )
            self._release()
            self.failed = True
            self.state = AnimationState.ENDED
            return
        self._last_cleanup = now
        self.randomize(self.config.density, now)
        self.total_reseeds = 0
        self.last_event = "begin"

    def stop(self) -> None:
        self._release()

    def _allocate(self, width: int, height: int) -> None:
        self.width, self.height = width, height
        self._cur = BitGrid(width, height)
        self._prev = BitGrid(width, height)
        self._swept = np.ones(width, dtype=np.bool_)
        self.color_target = np.zeros((height, width, 3), dtype=np.uint8)
        self.transition_color = np.zeros((height, width, 3), dtype=np.uint8)
        self.fade_start = np.zeros((height, width), dtype=np.int64)
        self.fade_duration = np.zeros((height, width), dtype=np.int64)
        self.is_newborn = np.zeros((height, width), dtype=np.bool_)
        self.is_dying = np.zeros((height, width), dtype=np.bool_)

    def _release(self) -> None:
        self._cur = self._prev = None
        self._swept = None
        self.color_target = self.transition_color = None
        self.fade_start = self.fade_duration = None
        self.is_newborn = self.is_dying = None
        self._table = None
        self._table_key = None

    # ── Accessors ──────────────────────────────────────────────────

    @property
    def grid(self) -> BitGrid:
        assert self._cur is not None
        return self._cur

    def population(self) -> int:
        return self._cur.count() if self._cur is not None else 0

    def snapshot(self) -> LifeSnapshot:
        if self._cur is None or self.is_newborn is None or self.is_dying is None:
            return LifeSnapshot(failed=self.failed, last_event=self.last_event)
        return LifeSnapshot(
            generation=self.generation,
            population=self.population(),
            phase=self.phase.value,
            wipe_column=self.wipe.column,
            wipe_active=self.wipe.active,
            newborn=int(np.count_nonzero(self.is_newborn)),
            dying=int(np.count_nonzero(self.is_dying)),
            hash_repeats=self.tracker.hash_repeats,
            same_count_run=self.tracker.same_count_run,
            cycle_period=self.tracker.cycle_period,
            last_event=self.last_event,
            total_reseeds=self.total_reseeds,
            failed=self.failed,
        )

    def generation_interval(self) -> float:
        assert self.config is not None
        return self.generation_ms / max(self.config.speed_multiplier, 1e-6)

    def wipe_duration(self) -> float:
        assert self.config is not None
        return max(MIN_WIPE_MS, WIPE_MS / max(self.config.speed_multiplier, 1e-6))

    def wipe_step_ms(self) -> float:
        """Delay between cursor steps (each step covers column_skip columns)."""
        assert self.config is not None
        per_column = self.wipe_duration() / max(self.width, 1)
        return per_column * max(1, self.config.column_skip)

    # ── Seeding ────────────────────────────────────────────────────

    def _clear_shadow(self) -> None:
        assert self.color_target is not None and self.transition_color is not None
        assert self.fade_start is not None and self.fade_duration is not None
        assert self.is_newborn is not None and self.is_dying is not None
        self.color_target.fill(0)
        self.transition_color.fill(0)
        self.fade_start.fill(0)
        self.fade_duration.fill(0)
        self.is_newborn.fill(False)
        self.is_dying.fill(False)

    def _pick_colors(self, n: int) -> NDArray[np.uint8]:
        assert self.config is not None
        if n == 0:
            return np.zeros((0, 3), dtype=np.uint8)
        if self.config.use_palette:
            pal = np.asarray(self.config.palette, dtype=np.uint8)
            return pal[self._np_rng.integers(0, len(pal), size=n)]
        hues = self._np_rng.random(n)
        return np.asarray([hue_color(h) for h in hues], dtype=np.uint8)

    def _reset_display(self, cells: NDArray[np.bool_], now: int) -> None:
        """Show `cells` at once, no transitions, and restart bookkeeping."""
        assert self._cur is not None and self._prev is not None
        assert self._swept is not None and self.color_target is not None
        self._cur.load(cells)
        self._prev.load(cells)
        self._clear_shadow()
        self.color_target[cells] = self._pick_colors(int(np.count_nonzero(cells)))
        self._swept.fill(True)
        self.wipe.active = False
        self.wipe.column = 0
        self.phase = Phase.NEEDS_GENERATION
        self._phase_since = now
        self.tracker.reset(self._cur.count(), self._cur.digest())

    def randomize(self, density: int | None = None, now: int = 0) -> int:
        """Fill the grid at `density` percent. Returns the live count."""
        assert self.config is not None
        if density is None:
            density = self.config.density
        p = max(0, min(100, int(density))) / 100.0
        cells = self._np_rng.random((self.height, self.width)) < p
        self._reset_display(cells, now)
        return int(np.count_nonzero(cells))

    def place(
        self, name: str, x: int, y: int, rotation: int = 0, cells: NDArray[np.bool_] | None = None,
    ) -> NDArray[np.bool_]:
        """Stamp a named pattern at (x, y), wrapping around the torus."""
        pattern = PATTERNS[name]
        if cells is None:
            cells = np.zeros((self.height, self.width), dtype=np.bool_)
        for dy, dx in pattern:
            for _ in range(rotation % 4):
                dy, dx = dx, -dy
            cells[(y + dy) % self.height, (x + dx) % self.width] = True
        return cells

    def set_pattern(self, name: str, now: int = 0) -> None:
        """Clear the world and centre a named pattern in it. KeyError if unknown."""
        pattern = PATTERNS[name]
        rows = max(r for r, _ in pattern) + 1
        cols = max(c for _, c in pattern) + 1
        cells = self.place(name, (self.width - cols) // 2, (self.height - rows) // 2)
        self._reset_display(cells, now)
        self.last_event = f"pattern:{name}"

    def load(self, cells: NDArray[np.bool_], now: int = 0) -> None:
        """Replace the world with an explicit (h, w) boolean array."""
        self._reset_display(np.asarray(cells, dtype=np.bool_), now)

    def reseed(self, reason: str, now: int) -> None:
        assert self.config is not None
        self.randomize(max(1, self.config.density), now)
        self.total_reseeds += 1
        self.last_event = f"reseed:{reason}"
        log.info("life: gen %d reseeded (%s)", self.generation, reason)
        if self.stats is not None:
            self.stats.log(self.snapshot(), self.last_event)

    # ── Simulation ─────────────────────────────────────────────────

    def _stamp(self, now: int) -> int:
        # 0 marks "no transition", so a transition never starts at 0
        return now if now != 0 else 1

    def step_generation(self, now: int) -> str:
        """Compute the next generation and start its wipe. Returns event."""
        assert self._cur is not None and self._prev is not None
        assert self.color_target is not None and self.transition_color is not None
        assert self.fade_start is not None and self.fade_duration is not None
        assert self.is_newborn is not None and self.is_dying is not None
        assert self._swept is not None

        if self.wipe.active:
            self.advance_wipe(now, self.width)
        stamp = self._stamp(now)
        shown = self.cell_colors(now)
        nxt, born, died = life_rule(self._cur.cells)

        # Births: colour now, fade in from near-white
        self.color_target[born] = self._pick_colors(int(np.count_nonzero(born)))
        self.transition_color[born] = NEAR_WHITE
        self.fade_start[born] = stamp
        self.fade_duration[born] = BIRTH_MS
        self.is_newborn[born] = True
        self.is_dying[born] = False

        # Deaths: flagged only; the wipe starts their fade
        self.transition_color[died] = shown[died]
        self.fade_start[died] = 0
        self.fade_duration[died] = 0
        self.is_newborn[died] = False
        self.is_dying[died] = True

        self._prev.load(nxt)
        self._cur, self._prev = self._prev, self._cur
        self.generation += 1
        self._phase_since = now

        event = ""
        reason = self.tracker.check(
            self._cur.count(), self._cur.digest(), self.repeat_threshold, self.count_limit,
        )
        if reason:
            self.reseed(reason, now)
            event = self.last_event
        else:
            self._start_wipe(now)

        if self.stats is not None and not event and self.generation % 10 == 0:
            self.stats.log(self.snapshot(), event)
        return event

    def _start_wipe(self, now: int) -> None:
        assert self._swept is not None
        # Alternate direction every generation
        if self.generation % 2 == 1:
            self.wipe.direction = WipeDirection.LEFT_TO_RIGHT
            self.wipe.column = 0
        else:
            self.wipe.direction = WipeDirection.RIGHT_TO_LEFT
            self.wipe.column = self.width - 1
        self.wipe.active = True
        self._swept.fill(False)
        self._wipe_started = now
        self._wipe_steps = 0
        self.phase = Phase.WIPING

    def advance_wipe(self, now: int, steps: int = 1) -> None:
        """Sweep `steps` cursor steps; finishing the sweep enters IDLE."""
        assert self.config is not None and self._swept is not None
        assert self.is_dying is not None and self.fade_start is not None
        assert self.fade_duration is not None
        skip = max(1, self.config.column_skip)
        stamp = self._stamp(now)
        d = self.wipe.direction.value

        for _ in range(steps):
            if not self.wipe.active:
                break
            first = self.wipe.column
            self._wipe_steps += 1
            cols = [c for c in range(first, first + d * skip, d) if 0 <= c < self.width]
            self._swept[cols] = True

            # Dying cells in the swept columns start their death sequence
            waiting = np.zeros_like(self.is_dying)
            waiting[:, cols] = self.is_dying[:, cols] & (self.fade_start[:, cols] == 0)
            n = int(np.count_nonzero(waiting))
            if n:
                self.fade_start[waiting] = stamp
                self.fade_duration[waiting] = self._np_rng.integers(
                    DEATH_MS_MIN, DEATH_MS_MAX + 1, size=n,
                )

            nxt = first + d * skip
            if 0 <= nxt < self.width:
                self.wipe.column = nxt
            else:
                self.wipe.active = False
                self.phase = Phase.IDLE
                self._phase_since = now

    # ── Transitions ────────────────────────────────────────────────

    def _ages(self, now: int) -> NDArray[np.int64]:
        assert self.fade_start is not None
        return (now - self.fade_start) & CLOCK_MASK

    def settle_fades(self, now: int) -> None:
        """Retire transitions whose duration has run out."""
        assert self.fade_start is not None and self.fade_duration is not None
        assert self.is_newborn is not None and self.is_dying is not None
        assert self.color_target is not None and self.transition_color is not None
        active = self.fade_start != 0
        if not active.any():
            return
        done = active & (self._ages(now) >= self.fade_duration)

        born_done = done & self.is_newborn
        self.is_newborn[born_done] = False
        self.fade_start[born_done] = 0
        self.fade_duration[born_done] = 0
        self.transition_color[born_done] = 0

        dead_done = done & self.is_dying
        self.is_dying[dead_done] = False
        self.fade_start[dead_done] = 0
        self.fade_duration[dead_done] = 0
        self.transition_color[dead_done] = 0
        self.color_target[dead_done] = 0

    def cell_colors(self, now: int) -> NDArray[np.uint8]:
        """What every logical cell looks like at `now`, shape (h, w, 3)."""
        assert self._cur is not None and self._prev is not None and self._swept is not None
        assert self.color_target is not None and self.transition_color is not None
        assert self.fade_start is not None and self.fade_duration is not None
        assert self.is_newborn is not None and self.is_dying is not None

        shown = np.where(self._swept[None, :], self._cur.cells, self._prev.cells)
        out = np.zeros((self.height, self.width, 3), dtype=np.uint8)
        out[shown] = self.color_target[shown]

        fading = self.fade_start != 0
        ages = self._ages(now)

        nb = shown & self.is_newborn & fading
        if nb.any():
            out[nb] = birth_colors(self.color_target[nb], ages[nb], self.fade_duration[nb])

        waiting = self.is_dying & ~fading
        out[waiting] = self.transition_color[waiting]

        dying = self.is_dying & fading
        if dying.any():
            out[dying] = death_colors(self.transition_color[dying], ages[dying], self.fade_duration[dying])
        return out

    def cleanup_phantoms(self) -> int:
        """Force consistent shadow state. Returns the number of cells fixed."""
        assert self._cur is not None
        assert self.color_target is not None and self.transition_color is not None
        assert self.fade_start is not None and self.fade_duration is not None
        assert self.is_newborn is not None and self.is_dying is not None

        alive = self._cur.cells
        # Alive cells cannot be dying; dead cells cannot be newborn
        bad_flags = (alive & self.is_dying) | (~alive & self.is_newborn)
        self.is_dying &= ~alive
        self.is_newborn &= alive
        # A cell cannot be both
        both = self.is_newborn & self.is_dying
        self.is_newborn &= ~both
        # Newborn without a running fade has finished its fade
        stale_nb = self.is_newborn & (self.fade_start == 0)
        self.is_newborn &= ~stale_nb
        # Fade running for a cell in no transition
        stray_fade = (self.fade_start != 0) & ~self.is_newborn & ~self.is_dying
        self.fade_start[stray_fade] = 0
        self.fade_duration[stray_fade] = 0

        phantom = ~alive & ~self.is_dying & (
            self.color_target.any(axis=2)
            | self.transition_color.any(axis=2)
            | (self.fade_start != 0)
        )
        self.color_target[phantom] = 0
        self.transition_color[phantom] = 0
        self.fade_start[phantom] = 0
        self.fade_duration[phantom] = 0

        fixed = int(np.count_nonzero(bad_flags | both | stale_nb | stray_fade | phantom))
        if fixed:
            log.debug("life: cleaned %d inconsistent cells", fixed)
        return fixed

    # ── Rendering ──────────────────────────────────────────────────

    def _index_table(self) -> NDArray[np.intp]:
        assert self.config is not None
        key = self.config.panel.key()
        if self._table is None or key != self._table_key:
            self._table = index_table(self.config.panel)
            self._table_key = key
        return self._table

    def render(self, now: int) -> None:
        assert self.frame is not None
        self.settle_fades(now)
        colors = self.cell_colors(now)
        self.frame.set_many(self._index_table().ravel(), colors.reshape(-1, 3))

    # ── Tick ───────────────────────────────────────────────────────

    def draw(self, now: int) -> None:
        assert self.config is not None
        if self.failed or self._cur is None:
            return
        if self.phase is Phase.IDLE:
            self.phase = Phase.NEEDS_GENERATION

        if self.phase is Phase.NEEDS_GENERATION:
            if due(now, self._phase_since, self.generation_interval()):
                self.step_generation(now)
        elif self.phase is Phase.WIPING:
            # Steps owed since the sweep began
            owed = int(elapsed(now, self._wipe_started) // self.wipe_step_ms()) - self._wipe_steps
            if owed > 0:
                self.advance_wipe(now, owed)

        if due(now, self._last_cleanup, CLEANUP_MS):
            self._last_cleanup = now
            self.cleanup_phantoms()

        self.render(now)
