"""
Animation contract, selector, palettes and the particle/wave animations.

Every animation follows the same lifecycle:

    UNINITIALIZED --begin()--> RUNNING --end()--> ENDED

begin() receives the frame buffer and the shared MatrixConfig explicitly and
resets all local state; update(now) rate-limits against the instance's own
interval and draws at most once per call; end() drops everything and is safe
to call at any time. The selector guarantees the outgoing animation is ended
before the incoming one begins.

All drawing goes through led_mapper.map_to_physical(); a None index means
the logical pixel is not on the matrix and is simply skipped.
"""

from __future__ import annotations

import colorsys
import logging
import math
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Iterable

from led_clock import due
from led_frame import BLACK, WHITE, Color, FrameBuffer, blend, scale
from led_mapper import PanelConfig, map_to_physical

log = logging.getLogger(__name__)

# ── Palettes ────────────────────────────────────────────────────────────
# Five colours each, named as the controller's menu shows them.
PALETTES: list[tuple[str, list[Color]]] = [
    ("blu_orange_green", [(0, 128, 255), (255, 128, 0), (0, 200, 60), (64, 0, 128), (255, 255, 64)]),
    ("cool_sunset",      [(255, 100, 0), (255, 0, 102), (128, 0, 128), (0, 255, 128), (255, 255, 128)]),
    ("neon_tropical",    [(0, 255, 255), (255, 0, 255), (255, 255, 0), (0, 255, 0), (255, 127, 0)]),
    ("galaxy",           [(0, 0, 128), (75, 0, 130), (128, 0, 128), (0, 128, 128), (255, 0, 128)]),
    ("forest_fire",      [(34, 139, 34), (255, 69, 0), (139, 0, 139), (205, 133, 63), (255, 215, 0)]),
    ("cotton_candy",     [(255, 182, 193), (152, 251, 152), (135, 206, 250), (238, 130, 238), (255, 160, 122)]),
    ("sea_shore",        [(0, 206, 209), (127, 255, 212), (240, 230, 140), (255, 160, 122), (173, 216, 230)]),
    ("fire_and_ice",     [(255, 0, 0), (255, 140, 0), (255, 69, 0), (0, 255, 255), (0, 128, 255)]),
    ("retro_arcade",     [(255, 0, 128), (128, 0, 255), (0, 255, 128), (255, 255, 0), (255, 128, 0)]),
    ("royal_rainbow",    [(139, 0, 0), (218, 165, 32), (255, 0, 255), (75, 0, 130), (0, 100, 140)]),
    ("red",              [(139, 0, 0), (139, 0, 0), (139, 0, 0), (139, 0, 0), (139, 0, 0)]),
]
PALETTE_NAMES: list[str] = [name for name, _ in PALETTES]


def hue_color(hue: float, value: float = 1.0) -> Color:
    """Fully saturated colour for hue in [0, 1)."""
    r, g, b = colorsys.hsv_to_rgb(hue % 1.0, 1.0, max(0.0, min(1.0, value)))
    return (int(r * 255), int(g * 255), int(b * 255))


def palette_at(colors: list[Color], pos: float) -> Color:
    """Blend along the palette; pos wraps over [0, len-1)."""
    n = len(colors)
    if n == 0:
        return BLACK
    if n == 1:
        return colors[0]
    span = float(n - 1)
    pos = math.fmod(pos, span)
    if pos < 0:
        pos += span
    i = int(pos)
    if i >= n - 1:
        return colors[n - 1]
    return blend(colors[i], colors[i + 1], pos - i)


# ── Shared configuration ────────────────────────────────────────────────

@dataclass
class MatrixConfig:
    """Every runtime tunable, passed by reference into each animation."""

    panel: PanelConfig = field(default_factory=PanelConfig)
    palette_index: int = 0
    use_palette: bool = True
    brightness: int = 30
    spawn_rate: float = 0.6        # 0..1, per tick
    tail_length: int = 5           # 1..30
    max_particles: int = 200       # 10..500
    fade_amount: int = 80          # 0..255, trail fade per tick
    speed_multiplier: float = 1.0  # automaton
    column_skip: int = 1           # automaton wipe columns per step
    density: int = 33              # automaton reseed density, percent

    @property
    def palette(self) -> list[Color]:
        return PALETTES[self.palette_index][1]

    @property
    def palette_name(self) -> str:
        return PALETTES[self.palette_index][0]


# ═══════════════════════════════════════════════════════════════════════
#  Contract
# ═══════════════════════════════════════════════════════════════════════

class AnimationState(Enum):
    UNINITIALIZED = "uninitialized"
    RUNNING = "running"
    ENDED = "ended"


class Animation:
    """Base class for everything the selector can run.

    Subclasses override start() / draw() / stop(); the base class owns the
    lifecycle state and the rate limit.
    """

    name: ClassVar[str] = "base"
    default_interval_ms: ClassVar[int] = 50

    def __init__(self, seed: int | None = None) -> None:
        self.interval_ms: int = self.default_interval_ms
        self.state: AnimationState = AnimationState.UNINITIALIZED
        self.frame: FrameBuffer | None = None
        self.config: MatrixConfig | None = None
        self.rng: random.Random = random.Random(seed)
        self._last_update: int = 0

    @property
    def running(self) -> bool:
        return self.state is AnimationState.RUNNING

    def set_interval(self, ms: int) -> None:
        self.interval_ms = ms

    # ── Lifecycle ──────────────────────────────────────────────────

    def begin(self, frame: FrameBuffer, config: MatrixConfig, now: int) -> bool:
        """Reset local state and start running. False if it failed closed."""
        if self.running:
            self.end()
        self.frame = frame
        self.config = config
        self._last_update = now
        frame.clear()
        self.state = AnimationState.RUNNING
        self.start(now)
        return self.running

    def update(self, now: int) -> bool:
        """Draw one frame if the interval has elapsed. True if it drew."""
        if not self.running:
            return False
        if not due(now, self._last_update, self.interval_ms):
            return False
        self._last_update = now
        self.draw(now)
        return True

    def end(self) -> None:
        if self.running:
            self.stop()
        self.frame = None
        self.config = None
        self.state = AnimationState.ENDED

    # ── Hooks ──────────────────────────────────────────────────────

    def start(self, now: int) -> None:
        pass

    def draw(self, now: int) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        pass

    # ── Helpers ────────────────────────────────────────────────────

    def put(self, x: int, y: int, color: Color) -> None:
        assert self.frame is not None and self.config is not None
        self.frame.set(map_to_physical(x, y, self.config.panel), color)

    def put_add(self, x: int, y: int, color: Color) -> None:
        assert self.frame is not None and self.config is not None
        self.frame.add(map_to_physical(x, y, self.config.panel), color)

    def pick_color(self) -> Color:
        assert self.config is not None
        if self.config.use_palette:
            return self.rng.choice(self.config.palette)
        return hue_color(self.rng.random())


class AnimationSelector:
    """Owns the animation instances; exactly one is live at a time."""

    def __init__(
        self,
        animations: Iterable[Animation],
        frame: FrameBuffer,
        config: MatrixConfig,
    ) -> None:
        self._anims: dict[str, Animation] = {}
        for anim in animations:
            self._anims[anim.name] = anim
        self.frame = frame
        self.config = config
        self.active: Animation | None = None

    @property
    def names(self) -> list[str]:
        return list(self._anims)

    @property
    def active_name(self) -> str:
        return self.active.name if self.active is not None else ""

    def get(self, name: str) -> Animation:
        return self._anims[name]

    def select(self, name: str, now: int) -> Animation:
        """End the current animation, then begin `name`. KeyError if unknown."""
        incoming = self._anims[name]
        if self.active is not None:
            self.active.end()
        self.active = None
        self.frame.clear()
        if not incoming.begin(self.frame, self.config, now):
            log.error("animation %s failed to start", name)
        self.active = incoming
        log.info("animation -> %s", name)
        return incoming

    def next(self, now: int) -> Animation:
        names = self.names
        i = names.index(self.active_name) + 1 if self.active is not None else 0
        return self.select(names[i % len(names)], now)

    def update(self, now: int) -> bool:
        if self.active is None:
            return False
        return self.active.update(now)

    def end(self) -> None:
        if self.active is not None:
            self.active.end()
        self.active = None


# ═══════════════════════════════════════════════════════════════════════
#  Spawn / drift animations
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class Flake:
    """One drifting particle; colour blends start -> end as frac grows."""
    x: int
    y: int
    dx: int
    dy: int
    start: Color
    end: Color
    frac: float = 0.0
    bounce: bool = False

    def color(self) -> Color:
        if not self.bounce:
            return blend(self.start, self.end, self.frac)
        if self.frac <= 0.5:
            return blend(self.start, self.end, self.frac * 2)
        return blend(self.end, self.start, (self.frac - 0.5) * 2)


class SnowAnimation(Animation):
    """Flakes enter from a random edge and drift straight across, trailing."""

    name = "snow"
    default_interval_ms = 80
    max_tail: ClassVar[int] = 30
    frac_step: ClassVar[float] = 0.02
    min_tail_level: ClassVar[float] = 10 / 255

    def __init__(self, seed: int | None = None) -> None:
        super().__init__(seed)
        self.flakes: list[Flake] = []

    def start(self, now: int) -> None:
        self.flakes = []

    def stop(self) -> None:
        self.flakes = []

    def _edges(self) -> tuple[int, ...]:
        return (0, 1, 2, 3)  # top, bottom, left, right

    def spawn(self) -> Flake | None:
        assert self.config is not None
        w, h = self.config.panel.width, self.config.panel.height
        pal = self.config.palette if self.config.use_palette else []
        if len(set(pal)) >= 2:
            start = self.rng.choice(pal)
            end = self.rng.choice([c for c in pal if c != start])
        else:
            start = self.pick_color()
            end = self.pick_color()
        edge = self.rng.choice(self._edges())
        if edge == 0:
            f = Flake(self.rng.randrange(w), 0, 0, 1, start, end)
        elif edge == 1:
            f = Flake(self.rng.randrange(w), h - 1, 0, -1, start, end)
        elif edge == 2:
            f = Flake(0, self.rng.randrange(h), 1, 0, start, end)
        else:
            f = Flake(w - 1, self.rng.randrange(h), -1, 0, start, end)
        self.flakes.append(f)
        return f

    def draw(self, now: int) -> None:
        assert self.frame is not None and self.config is not None
        cfg = self.config
        w, h = cfg.panel.width, cfg.panel.height

        self.frame.fade_all(cfg.fade_amount)

        if self.rng.random() < cfg.spawn_rate and len(self.flakes) < cfg.max_particles:
            self.spawn()

        tail = min(cfg.tail_length, self.max_tail)
        alive: list[Flake] = []
        for f in self.flakes:
            f.x += f.dx
            f.y += f.dy
            if not (0 <= f.x < w and 0 <= f.y < h):
                continue
            f.frac = min(1.0, f.frac + self.frac_step)
            main = f.color()
            self.put_add(f.x, f.y, main)

            for t in range(1, tail + 1):
                tx, ty = f.x - t * f.dx, f.y - t * f.dy
                if not (0 <= tx < w and 0 <= ty < h):
                    break
                level = max(1.0 - t / (tail + 1), self.min_tail_level)
                self.put_add(tx, ty, scale(main, level))
            alive.append(f)
        self.flakes = alive


class TrafficAnimation(SnowAnimation):
    """Cars run along the rows only, in both directions, short tails."""

    name = "traffic"
    default_interval_ms = 37
    max_tail = 10

    def _edges(self) -> tuple[int, ...]:
        return (2, 3)


# ═══════════════════════════════════════════════════════════════════════
#  Fireworks
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class Spark:
    x: float
    y: float
    vx: float
    vy: float
    hue: float
    life: int
    brightness: float = 1.0


@dataclass
class Rocket:
    x: float
    y: float
    vy: float
    hue: float
    exploded: bool = False
    sparks: list[Spark] = field(default_factory=list)


class FireworkAnimation(Animation):
    """Rockets climb, slow down, burst into sparks that fall under gravity."""

    name = "fireworks"
    default_interval_ms = 15
    max_fireworks: ClassVar[int] = 10
    spark_count: ClassVar[int] = 40
    gravity: ClassVar[float] = 0.15
    launch_probability: ClassVar[float] = 0.15
    burst_velocity: ClassVar[float] = 0.3

    def __init__(self, seed: int | None = None) -> None:
        super().__init__(seed)
        self.rockets: list[Rocket] = []

    def start(self, now: int) -> None:
        self.rockets = []
        for _ in range(3):
            self.launch()

    def stop(self) -> None:
        self.rockets = []

    def launch(self) -> Rocket:
        assert self.config is not None
        r = Rocket(
            x=float(self.rng.randrange(self.config.panel.width)),
            y=float(self.config.panel.height - 1),
            vy=0.5 + self.rng.randrange(50) / 100.0,
            hue=self.rng.random(),
        )
        self.rockets.append(r)
        return r

    def explode(self, r: Rocket) -> None:
        r.exploded = True
        r.sparks = []
        for _ in range(self.spark_count):
            angle = self.rng.random() * 2 * math.pi
            speed = 0.1 + self.rng.randrange(40) / 100.0
            r.sparks.append(Spark(
                x=r.x,
                y=r.y,
                vx=math.cos(angle) * speed,
                vy=math.sin(angle) * speed,
                hue=r.hue + self.rng.uniform(-0.04, 0.04),
                life=50 + self.rng.randrange(50),
            ))

    def step_physics(self) -> None:
        kept: list[Rocket] = []
        for r in self.rockets:
            if not r.exploded:
                r.y -= r.vy
                r.vy *= 0.98
                if r.vy < self.burst_velocity:
                    self.explode(r)
                kept.append(r)
                continue
            any_alive = False
            for s in r.sparks:
                s.x += s.vx
                s.y += s.vy
                s.vy += self.gravity
                if s.life > 0:
                    s.life -= 1
                    s.brightness = min(1.0, s.life / 100.0)
                    any_alive = True
            if any_alive:
                kept.append(r)
        self.rockets = kept

    def draw(self, now: int) -> None:
        assert self.frame is not None and self.config is not None
        self.frame.clear()
        self.step_physics()

        for r in self.rockets:
            if not r.exploded:
                for i in range(3):
                    self.put(int(r.x), int(r.y) + i, hue_color(r.hue, 1.0 - i * 80 / 255))
                continue
            for s in r.sparks:
                if s.life > 0:
                    self.put(round(s.x), round(s.y), hue_color(s.hue, s.brightness))

        if len(self.rockets) < self.max_fireworks and self.rng.random() < self.launch_probability:
            self.launch()


# ═══════════════════════════════════════════════════════════════════════
#  Palette waves
# ═══════════════════════════════════════════════════════════════════════

class RainbowWaveAnimation(Animation):
    """Palette gradient scrolling sideways with a gentle vertical ripple.

    spawn_rate drives scroll speed (x2), fade_amount the ripple height
    (/128) and tail_length the horizontal frequency.
    """

    name = "rainbow"
    default_interval_ms = 50

    def __init__(self, seed: int | None = None) -> None:
        super().__init__(seed)
        self.frame_counter: int = 0

    def start(self, now: int) -> None:
        self.frame_counter = 0

    def draw(self, now: int) -> None:
        assert self.config is not None
        cfg = self.config
        self.frame_counter += 1
        colors = cfg.palette if cfg.use_palette else [hue_color(i / 5) for i in range(6)]
        speed = 2.0 * cfg.spawn_rate
        amp = cfg.fade_amount / 128.0
        freq = 0.05 + cfg.tail_length * 0.01
        offset = self.frame_counter * speed

        for y in range(cfg.panel.height):
            wave = math.sin(y * 0.3) * amp
            for x in range(cfg.panel.width):
                self.put(x, y, palette_at(colors, x * freq + offset + wave))


@dataclass
class WaveSource:
    cx: float
    cy: float
    freq: float
    speed: float
    phase: float
    amplitude: float


class MultiSpawnWaveAnimation(Animation):
    """Several ripple centres summed into one palette field."""

    name = "waves"
    default_interval_ms = 60
    n_sources: ClassVar[int] = 4
    time_step: ClassVar[float] = 0.05

    def __init__(self, seed: int | None = None) -> None:
        super().__init__(seed)
        self.sources: list[WaveSource] = []
        self.frame_counter: int = 0

    def start(self, now: int) -> None:
        assert self.config is not None
        cfg = self.config
        self.frame_counter = 0
        base_speed = 1.5 * cfg.spawn_rate
        base_amp = cfg.fade_amount / 128.0
        base_freq = 0.05 + cfg.tail_length * 0.01
        self.sources = [
            WaveSource(
                cx=float(self.rng.randrange(cfg.panel.width)),
                cy=float(self.rng.randrange(cfg.panel.height)),
                freq=base_freq + self.rng.randrange(20) / 100.0,
                speed=base_speed + self.rng.randrange(-10, 10) / 100.0,
                phase=self.rng.randrange(1000) / 100.0,
                amplitude=max(0.1, base_amp + self.rng.randrange(-10, 10) / 100.0),
            )
            for _ in range(self.n_sources)
        ]

    def stop(self) -> None:
        self.sources = []

    def draw(self, now: int) -> None:
        assert self.config is not None
        cfg = self.config
        self.frame_counter += 1
        colors = cfg.palette if cfg.use_palette else [hue_color(i / 5) for i in range(6)]
        t = self.frame_counter * self.time_step
        n = len(self.sources)
        if n == 0:
            return

        for y in range(cfg.panel.height):
            for x in range(cfg.panel.width):
                total = 0.0
                for s in self.sources:
                    dist = math.hypot(x - s.cx, y - s.cy)
                    total += math.sin(dist * s.freq - t * s.speed + s.phase) * s.amplitude
                level = max(0.0, min(1.0, (total + n) / (2 * n)))
                self.put(x, y, palette_at(colors, level * (len(colors) - 1) * 0.999))


class BlinkAnimation(Animation):
    """Whole matrix on/off. Handy for checking wiring and power."""

    name = "blink"
    default_interval_ms = 500

    def __init__(self, seed: int | None = None) -> None:
        super().__init__(seed)
        self.lit: bool = False

    def start(self, now: int) -> None:
        self.lit = False

    def draw(self, now: int) -> None:
        assert self.frame is not None
        self.lit = not self.lit
        if self.lit:
            self.frame.fill(WHITE)
        else:
            self.frame.clear()
