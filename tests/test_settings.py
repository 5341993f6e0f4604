import pytest

from led_anim import PALETTE_NAMES, AnimationSelector, MatrixConfig
from led_frame import FrameBuffer
from led_matrix import build_animations
from led_settings import Settings, SettingResult


@pytest.fixture
def settings():
    config = MatrixConfig()
    frame = FrameBuffer(config.panel.led_count)
    selector = AnimationSelector(build_animations(seed=1), frame, config)
    selector.select("snow", 0)
    return Settings(config, selector)


def test_accepts_in_range(settings):
    r = settings.set("brightness", "120")
    assert r == SettingResult("brightness", 120)
    assert settings.config.brightness == 120


@pytest.mark.parametrize("name,value", [
    ("brightness", 256),
    ("brightness", -1),
    ("brightness", "bright"),
    ("spawn_rate", 1.5),
    ("spawn_rate", "nan"),
    ("tail_length", 0),
    ("tail_length", 31),
    ("max_particles", 9),
    ("max_particles", 501),
    ("fade_amount", 300),
    ("interval", 5),
    ("interval", 60001),
    ("panel_order", "up"),
    ("use_palette", "maybe"),
    ("density", 0),
    ("density", 101),
    ("palette", 11),
    ("palette", "no_such_palette"),
    ("animation", "no_such_animation"),
    ("speed_multiplier", "fast"),
    ("speed_multiplier", 10**400),
    ("spawn_rate", 10**400),
    ("column_skip", "two"),
])
def test_rejects_and_keeps_previous(settings, name, value, caplog):
    before = settings.snapshot()
    r = settings.set(name, value)
    assert not r.ok and r.error
    assert settings.snapshot() == before
    assert "rejected" in caplog.text


def test_unknown_setting(settings):
    r = settings.set("volume", 3)
    assert not r.ok and r.value is None


def test_speed_multiplier_clamps(settings):
    r = settings.set("speed_multiplier", 1000)
    assert r.ok and r.clamped and r.value == 500.0
    r = settings.set("speed_multiplier", 0.01)
    assert r.ok and r.clamped and r.value == 0.1
    r = settings.set("speed_multiplier", "2.5")
    assert r.ok and not r.clamped and settings.config.speed_multiplier == 2.5


@pytest.mark.parametrize("value", [0, -4])
def test_column_skip_clamps_to_one(settings, value):
    r = settings.set("column_skip", value)
    assert r.ok and r.clamped and r.value == 1
    assert settings.config.column_skip == 1


def test_palette_by_name_or_index(settings):
    assert settings.set("palette", PALETTE_NAMES[3]).value == PALETTE_NAMES[3]
    assert settings.config.palette_index == 3
    assert settings.set("palette", "5").value == PALETTE_NAMES[5]
    assert settings.palette_names() == PALETTE_NAMES


def test_use_palette_words(settings):
    assert settings.set("use_palette", "off").value is False
    assert settings.set("use_palette", "ON").value is True
    assert settings.set("use_palette", 0).value is False


def test_panel_order_and_swap(settings):
    assert settings.set("panel_order", "right").ok
    assert settings.config.panel.reversed
    assert settings.swap_panels().value == "left"
    assert not settings.config.panel.reversed


def test_rotation(settings):
    assert settings.set_rotation(1, "180").ok
    assert settings.config.panel.rotations == [90, 180]
    assert not settings.set_rotation(1, 45).ok
    assert not settings.set_rotation(2, 90).ok
    assert settings.config.panel.rotations == [90, 180]


def test_interval_goes_to_active_animation(settings):
    assert settings.set("interval", 200).ok
    assert settings.selector.active.interval_ms == 200
    settings.set("animation", "life")
    assert settings.set("interval", 1000).ok
    assert settings.selector.active.generation_ms == 1000
    assert settings.get("interval") == 1000


def test_interval_without_selector():
    s = Settings(MatrixConfig())
    assert not s.set("interval", 100).ok
    assert not s.set("animation", "snow").ok


def test_animation_switch(settings):
    r = settings.set("animation", "fireworks", now=50)
    assert r.ok
    assert settings.selector.active_name == "fireworks"
    assert settings.get("animation") == "fireworks"


def test_apply_bulk(settings):
    results = settings.apply({
        "animation": "life",
        "brightness": 80,
        "rotation": [0, 270],
        "density": 50,
        "tail_length": 99,
    })
    assert [r.ok for r in results if r.name == "tail_length"] == [False]
    assert settings.config.brightness == 80
    assert settings.config.panel.rotations == [0, 270]
    assert settings.config.density == 50
    assert settings.selector.active_name == "life"
    # animation is applied last
    assert results[-1].name == "animation"


def test_snapshot_keys(settings):
    snap = settings.snapshot()
    assert set(snap) == set(settings.names)
    assert snap["panel_order"] == "left"
    assert snap["animation"] == "snow"
