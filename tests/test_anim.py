import pytest

from led_anim import (
    PALETTE_NAMES,
    PALETTES,
    Animation,
    AnimationSelector,
    AnimationState,
    BlinkAnimation,
    FireworkAnimation,
    Flake,
    MatrixConfig,
    MultiSpawnWaveAnimation,
    RainbowWaveAnimation,
    SnowAnimation,
    TrafficAnimation,
    hue_color,
    palette_at,
)
from led_clock import CLOCK_MASK
from led_frame import WHITE, FrameBuffer


class Recorder(Animation):
    default_interval_ms = 100

    def __init__(self, name, events):
        super().__init__(seed=0)
        self.name = name
        self.events = events
        self.draws = 0

    def start(self, now):
        self.events.append(("start", self.name))
        self.draws = 0

    def draw(self, now):
        self.draws += 1

    def stop(self):
        self.events.append(("stop", self.name))


@pytest.fixture
def env():
    config = MatrixConfig()
    return config, FrameBuffer(config.panel.led_count)


def run(anim, start, ticks, step):
    now = start
    for _ in range(ticks):
        now = (now + step) & CLOCK_MASK
        anim.update(now)
    return now


def test_palettes():
    assert len(PALETTES) == 11
    assert all(len(colors) == 5 for _, colors in PALETTES)
    assert len(set(PALETTE_NAMES)) == 11


def test_hue_color_is_saturated():
    for h in (0.0, 0.2, 0.5, 0.9):
        c = hue_color(h)
        assert max(c) == 255 and min(c) == 0


def test_palette_at_interpolates():
    colors = [(0, 0, 0), (100, 100, 100)]
    assert palette_at(colors, 0.5) == (50, 50, 50)
    assert palette_at(colors, 0.0) == (0, 0, 0)


def test_lifecycle(env):
    config, frame = env
    events = []
    a = Recorder("a", events)
    assert a.state is AnimationState.UNINITIALIZED
    assert not a.update(0)
    assert a.begin(frame, config, 0)
    assert a.running
    a.end()
    assert a.state is AnimationState.ENDED
    assert a.frame is None and a.config is None
    assert events == [("start", "a"), ("stop", "a")]
    # ending twice is harmless
    a.end()
    assert events == [("start", "a"), ("stop", "a")]


def test_begin_clears_frame(env):
    config, frame = env
    frame.fill(WHITE)
    Recorder("a", []).begin(frame, config, 0)
    assert not frame.pixels.any()


def test_update_is_rate_limited(env):
    config, frame = env
    a = Recorder("a", [])
    a.begin(frame, config, 1000)
    assert not a.update(1050)
    assert a.update(1100)
    assert not a.update(1150)
    assert a.update(1200)
    assert a.draws == 2
    a.set_interval(10)
    assert a.update(1210)


def test_update_across_clock_wrap(env):
    config, frame = env
    a = Recorder("a", [])
    a.begin(frame, config, CLOCK_MASK - 40)
    assert not a.update(20)
    assert a.update(60)


def test_selector_ends_before_beginning(env):
    config, frame = env
    events = []
    sel = AnimationSelector([Recorder("a", events), Recorder("b", events)], frame, config)
    sel.select("a", 0)
    sel.select("b", 10)
    assert events == [("start", "a"), ("stop", "a"), ("start", "b")]
    assert sel.active_name == "b"
    assert sel.get("a").state is AnimationState.ENDED


def test_selector_next_wraps(env):
    config, frame = env
    sel = AnimationSelector([Recorder("a", []), Recorder("b", [])], frame, config)
    assert sel.next(0).name == "a"
    assert sel.next(0).name == "b"
    assert sel.next(0).name == "a"


def test_selector_unknown_name(env):
    config, frame = env
    sel = AnimationSelector([Recorder("a", [])], frame, config)
    with pytest.raises(KeyError):
        sel.select("nope", 0)


def test_repeated_switching_does_not_accumulate(env):
    config, frame = env
    config.spawn_rate = 1.0
    snow = SnowAnimation(seed=1)
    fireworks = FireworkAnimation(seed=1)
    sel = AnimationSelector([snow, fireworks], frame, config)
    for i in range(20):
        sel.select("snow", i * 1000)
        run(snow, i * 1000, 30, 80)
        sel.select("fireworks", i * 1000 + 500)
    assert snow.flakes == []
    assert len(fireworks.rockets) == 3


def test_snow_draws_and_respects_max(env):
    config, frame = env
    config.spawn_rate = 1.0
    config.max_particles = 10
    snow = SnowAnimation(seed=3)
    snow.begin(frame, config, 0)
    run(snow, 0, 5, 80)
    assert frame.pixels.any()
    run(snow, 400, 200, 80)
    assert len(snow.flakes) <= 10


def test_snow_flakes_stay_on_the_matrix(env):
    config, frame = env
    config.spawn_rate = 1.0
    snow = SnowAnimation(seed=4)
    snow.begin(frame, config, 0)
    run(snow, 0, 100, 80)
    for f in snow.flakes:
        assert 0 <= f.x < config.panel.width and 0 <= f.y < config.panel.height


def test_traffic_moves_horizontally(env):
    config, frame = env
    config.spawn_rate = 1.0
    traffic = TrafficAnimation(seed=5)
    traffic.begin(frame, config, 0)
    run(traffic, 0, 20, 37)
    assert traffic.flakes
    assert all(f.dy == 0 and f.dx in (-1, 1) for f in traffic.flakes)


def test_flake_bounce_returns_to_start():
    f = Flake(0, 0, 1, 0, (0, 0, 0), (200, 0, 0), frac=1.0, bounce=True)
    assert f.color() == (0, 0, 0)
    f.frac = 0.5
    assert f.color() == (200, 0, 0)


def test_fireworks_launch_and_explode(env):
    config, frame = env
    fw = FireworkAnimation(seed=6)
    fw.begin(frame, config, 0)
    assert len(fw.rockets) == 3
    for _ in range(200):
        fw.step_physics()
    assert len(fw.rockets) <= fw.max_fireworks
    r = fw.launch()
    fw.explode(r)
    assert r.exploded and len(r.sparks) == fw.spark_count
    assert all(50 <= s.life < 100 for s in r.sparks)


def test_fireworks_draw_stays_in_bounds(env):
    config, frame = env
    fw = FireworkAnimation(seed=7)
    fw.begin(frame, config, 0)
    run(fw, 0, 300, 15)
    assert len(fw.rockets) <= fw.max_fireworks


def test_rainbow_fills_matrix(env):
    config, frame = env
    rb = RainbowWaveAnimation(seed=0)
    rb.begin(frame, config, 0)
    assert rb.update(50)
    lit = frame.pixels.any(axis=1)
    assert lit.sum() > config.panel.led_count // 2


def test_waves_sources(env):
    config, frame = env
    waves = MultiSpawnWaveAnimation(seed=8)
    waves.begin(frame, config, 0)
    assert len(waves.sources) == 4
    assert waves.update(60)
    assert frame.pixels.any()
    waves.end()
    assert waves.sources == []


def test_blink_toggles(env):
    config, frame = env
    blink = BlinkAnimation()
    blink.begin(frame, config, 0)
    blink.update(500)
    assert frame.get(0) == WHITE
    blink.update(1000)
    assert not frame.pixels.any()
