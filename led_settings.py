"""
Parameter surface for the matrix.

Adapters (the CLI, a JSON config file, the terminal preview's keys) never
touch MatrixConfig directly; they go through Settings, whose setters accept
untrusted values, validate them, and report what happened in a
SettingResult. A rejected value leaves the previous one in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from led_anim import PALETTE_NAMES, AnimationSelector, MatrixConfig
from led_mapper import VALID_ROTATIONS

log = logging.getLogger(__name__)

BRIGHTNESS_RANGE = (0, 255)
SPAWN_RANGE = (0.0, 1.0)
TAIL_RANGE = (1, 30)
PARTICLE_RANGE = (10, 500)
FADE_RANGE = (0, 255)
INTERVAL_RANGE = (10, 60000)
SPEED_RANGE = (0.1, 500.0)
DENSITY_RANGE = (1, 100)

_TRUE = {"1", "true", "on", "yes"}
_FALSE = {"0", "false", "off", "no"}


@dataclass(frozen=True)
class SettingResult:
    name: str
    value: Any
    ok: bool = True
    error: str = ""
    clamped: bool = False


class _Reject(Exception):
    pass


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        raise _Reject(f"expected an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise _Reject(f"expected an integer, got {value!r}")
        return int(value)
    try:
        return int(str(value).strip())
    except ValueError:
        raise _Reject(f"expected an integer, got {value!r}") from None


def _as_float(value: Any) -> float:
    if isinstance(value, bool):
        raise _Reject(f"expected a number, got {value!r}")
    try:
        f = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError, OverflowError):
        raise _Reject(f"expected a number, got {value!r}") from None
    if f != f or f in (float("inf"), float("-inf")):
        raise _Reject(f"expected a finite number, got {value!r}")
    return f


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise _Reject(f"expected on/off, got {value!r}")


def _in_range(v: float, bounds: tuple[float, float]) -> None:
    lo, hi = bounds
    if not lo <= v <= hi:
        raise _Reject(f"{v} outside {lo}..{hi}")


class Settings:
    """Validated setters over a MatrixConfig (and the animation selector)."""

    def __init__(self, config: MatrixConfig, selector: AnimationSelector | None = None) -> None:
        self.config = config
        self.selector = selector
        self._setters: dict[str, Callable[[Any], tuple[Any, bool]]] = {
            "palette": self._palette,
            "brightness": self._brightness,
            "spawn_rate": self._spawn_rate,
            "tail_length": self._tail_length,
            "max_particles": self._max_particles,
            "fade_amount": self._fade_amount,
            "interval": self._interval,
            "panel_order": self._panel_order,
            "speed_multiplier": self._speed_multiplier,
            "column_skip": self._column_skip,
            "use_palette": self._use_palette,
            "density": self._density,
            "animation": self._animation,
        }
        self._now: int = 0

    @property
    def names(self) -> list[str]:
        return [*self._setters, "rotation"]

    @staticmethod
    def palette_names() -> list[str]:
        return list(PALETTE_NAMES)

    # ── Entry points ───────────────────────────────────────────────

    def set(self, name: str, value: Any, now: int = 0) -> SettingResult:
        """Apply one setting by name. Never raises."""
        setter = self._setters.get(name)
        if setter is None:
            return self._rejected(name, value, f"unknown setting {name!r}")
        self._now = now
        try:
            effective, clamped = setter(value)
        except _Reject as exc:
            return self._rejected(name, value, str(exc))
        if clamped:
            log.info("setting %s: %r clamped to %r", name, value, effective)
        return SettingResult(name, effective, clamped=clamped)

    def set_rotation(self, panel: Any, angle: Any) -> SettingResult:
        name = f"rotation[{panel}]"
        try:
            p = _as_int(panel)
            a = _as_int(angle)
        except _Reject as exc:
            return self._rejected(name, angle, str(exc))
        if not 0 <= p < self.config.panel.panel_count:
            return self._rejected(name, angle, f"no panel {p}")
        if a not in VALID_ROTATIONS:
            return self._rejected(name, angle, f"rotation must be one of {VALID_ROTATIONS}")
        self.config.panel.set_rotation(p, a)
        return SettingResult(name, a)

    def swap_panels(self) -> SettingResult:
        self.config.panel.swap()
        return SettingResult("panel_order", self._order_name())

    def apply(self, values: Mapping[str, Any], now: int = 0) -> list[SettingResult]:
        """Bulk update, e.g. from a JSON file. `rotation` takes a list of angles."""
        results: list[SettingResult] = []
        # Animation last so the others are in place when it begins
        for name, value in sorted(values.items(), key=lambda kv: kv[0] == "animation"):
            if name == "rotation":
                if isinstance(value, (list, tuple)):
                    results.extend(self.set_rotation(i, a) for i, a in enumerate(value))
                else:
                    results.append(self._rejected(name, value, "expected a list of angles"))
            else:
                results.append(self.set(name, value, now))
        return results

    def get(self, name: str) -> Any:
        """Current value of a setting; KeyError if unknown."""
        return self.snapshot()[name]

    def snapshot(self) -> dict[str, Any]:
        c = self.config
        active = self.selector.active if self.selector is not None else None
        return {
            "palette": c.palette_name,
            "brightness": c.brightness,
            "spawn_rate": c.spawn_rate,
            "tail_length": c.tail_length,
            "max_particles": c.max_particles,
            "fade_amount": c.fade_amount,
            "interval": self._interval_of(active) if active is not None else None,
            "panel_order": self._order_name(),
            "rotation": list(c.panel.rotations),
            "speed_multiplier": c.speed_multiplier,
            "column_skip": c.column_skip,
            "use_palette": c.use_palette,
            "density": c.density,
            "animation": active.name if active is not None else "",
        }

    # ── Helpers ────────────────────────────────────────────────────

    def _rejected(self, name: str, value: Any, error: str) -> SettingResult:
        log.warning("setting %s: rejected %r (%s)", name, value, error)
        try:
            previous = self.get(name)
        except KeyError:
            previous = None
        return SettingResult(name, previous, ok=False, error=error)

    def _order_name(self) -> str:
        return "right" if self.config.panel.reversed else "left"

    @staticmethod
    def _interval_of(anim: Any) -> int:
        # The automaton's user-facing interval is its generation interval
        return getattr(anim, "generation_ms", anim.interval_ms)

    # ── Setters: (value) -> (effective, clamped) ───────────────────

    def _palette(self, value: Any) -> tuple[Any, bool]:
        if isinstance(value, str) and value.strip() in PALETTE_NAMES:
            idx = PALETTE_NAMES.index(value.strip())
        else:
            idx = _as_int(value)
            _in_range(idx, (0, len(PALETTE_NAMES) - 1))
        self.config.palette_index = idx
        return PALETTE_NAMES[idx], False

    def _brightness(self, value: Any) -> tuple[Any, bool]:
        v = _as_int(value)
        _in_range(v, BRIGHTNESS_RANGE)
        self.config.brightness = v
        return v, False

    def _spawn_rate(self, value: Any) -> tuple[Any, bool]:
        v = _as_float(value)
        _in_range(v, SPAWN_RANGE)
        self.config.spawn_rate = v
        return v, False

    def _tail_length(self, value: Any) -> tuple[Any, bool]:
        v = _as_int(value)
        _in_range(v, TAIL_RANGE)
        self.config.tail_length = v
        return v, False

    def _max_particles(self, value: Any) -> tuple[Any, bool]:
        v = _as_int(value)
        _in_range(v, PARTICLE_RANGE)
        self.config.max_particles = v
        return v, False

    def _fade_amount(self, value: Any) -> tuple[Any, bool]:
        v = _as_int(value)
        _in_range(v, FADE_RANGE)
        self.config.fade_amount = v
        return v, False

    def _interval(self, value: Any) -> tuple[Any, bool]:
        v = _as_int(value)
        _in_range(v, INTERVAL_RANGE)
        if self.selector is None or self.selector.active is None:
            raise _Reject("no active animation")
        self.selector.active.set_interval(v)
        return v, False

    def _panel_order(self, value: Any) -> tuple[Any, bool]:
        s = str(value).strip().lower()
        if s not in ("left", "right"):
            raise _Reject(f"panel order must be left or right, got {value!r}")
        self.config.panel.reversed = s == "right"
        return s, False

    def _speed_multiplier(self, value: Any) -> tuple[Any, bool]:
        v = _as_float(value)
        lo, hi = SPEED_RANGE
        clamped = min(hi, max(lo, v))
        self.config.speed_multiplier = clamped
        return clamped, clamped != v

    def _column_skip(self, value: Any) -> tuple[Any, bool]:
        v = _as_int(value)
        clamped = max(1, v)
        self.config.column_skip = clamped
        return clamped, clamped != v

    def _use_palette(self, value: Any) -> tuple[Any, bool]:
        v = _as_bool(value)
        self.config.use_palette = v
        return v, False

    def _density(self, value: Any) -> tuple[Any, bool]:
        v = _as_int(value)
        _in_range(v, DENSITY_RANGE)
        self.config.density = v
        return v, False

    def _animation(self, value: Any) -> tuple[Any, bool]:
        if self.selector is None:
            raise _Reject("no animation selector")
        name = str(value).strip()
        if name not in self.selector.names:
            raise _Reject(f"unknown animation {name!r}")
        self.selector.select(name, self._now)
        return name, False
