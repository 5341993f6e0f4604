import json

import numpy as np
import pytest

from led_anim import Animation, BlinkAnimation, MatrixConfig
from led_clock import ManualClock
from led_life import LifeAnimation
from led_matrix import ColorMap, HeadlessSink, MatrixHost, build_animations, main


class Boom(Animation):
    name = "boom"
    default_interval_ms = 10

    def draw(self, now):
        raise RuntimeError("kaboom")


def make_host(animations=None, **kw):
    config = MatrixConfig(**kw)
    sink = HeadlessSink()
    clock = ManualClock()
    host = MatrixHost(config, sink, clock=clock, animations=animations, seed=1)
    return host, sink, clock


def test_build_animations_names():
    names = [a.name for a in build_animations()]
    assert names == ["snow", "traffic", "fireworks", "rainbow", "waves", "blink", "life"]


def test_tick_flushes_scaled_frames():
    host, sink, clock = make_host(animations=[BlinkAnimation()], brightness=30)
    host.select("blink")
    clock.advance(500)
    assert host.tick()
    assert sink.frames == 1
    assert sink.last.shape == (512, 3)
    assert (sink.last == 30).all()
    # stored pixels stay at full value
    assert host.frame.get(0) == (255, 255, 255)


def test_life_runs_headless():
    host, sink, clock = make_host()
    host.select("life")
    for _ in range(200):
        clock.advance(20)
        host.tick()
    anim = host.selector.active
    assert isinstance(anim, LifeAnimation)
    assert anim.generation >= 2
    assert sink.frames == 200


def test_failing_animation_is_disabled(caplog):
    host, sink, clock = make_host(animations=[Boom()])
    host.select("boom")
    clock.advance(20)
    assert not host.tick()
    assert host.selector.active is None
    assert "boom failed" in caplog.text
    # keeps flushing black frames
    clock.advance(20)
    host.tick()
    assert sink.frames == 2
    assert not sink.last.any()


def test_every_animation_survives_switching():
    host, sink, clock = make_host()
    for name in host.selector.names:
        host.select(name)
        for _ in range(30):
            clock.advance(20)
            host.tick()
        assert host.selector.active_name == name
    host.close()
    assert host.selector.active is None


def test_rotation_change_while_running():
    host, sink, clock = make_host()
    host.select("rainbow")
    clock.advance(50)
    host.tick()
    first = sink.last.copy()
    host.settings.set_rotation(0, 0)
    clock.advance(50)
    host.tick()
    assert not np.array_equal(first, sink.last)


def test_color_map_cube_key():
    cmap = ColorMap()
    cmap.cube = True
    assert cmap.key((0, 0, 0)) == 0
    assert cmap.key((255, 255, 255)) == 215
    cmap.cube = False
    assert cmap.key((250, 10, 10)) == 1


def test_cli_headless(capsys):
    assert main(["--headless", "50", "--animation", "snow", "--seed", "3"]) == 0
    out = capsys.readouterr().out
    assert "50 ticks of snow" in out


def test_cli_stats_and_config(tmp_path, capsys):
    stats = tmp_path / "stats.csv"
    cfg = tmp_path / "cfg.json"
    cfg.write_text(json.dumps({"density": 0, "brightness": 999}))
    assert main([
        "--headless", "100", "--stats", str(stats), "--config", str(cfg), "--seed", "2",
    ]) == 0
    captured = capsys.readouterr()
    assert "ignoring density" in captured.err
    assert "ignoring brightness" in captured.err
    assert "ticks of life" in captured.out
    assert stats.read_text().startswith("gen,time_s,population")
