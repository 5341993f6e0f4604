import itertools

import numpy as np
import pytest

from led_mapper import (
    VALID_ROTATIONS,
    PanelConfig,
    index_table,
    logical_view,
    map_to_physical,
    rotate,
)


def all_configs(panel_count=2, panel_size=16):
    for rots in itertools.product(VALID_ROTATIONS, repeat=panel_count):
        for rev in (False, True):
            yield PanelConfig(panel_count, panel_size, rev, list(rots))


def test_defaults():
    cfg = PanelConfig()
    assert (cfg.width, cfg.height, cfg.led_count) == (32, 16, 512)
    assert cfg.rotations == [90, 90]


@pytest.mark.parametrize("cfg", list(all_configs()), ids=lambda c: f"{c.rotations}-{c.reversed}")
def test_mapping_is_a_bijection(cfg):
    seen = set()
    for y in range(cfg.height):
        for x in range(cfg.width):
            idx = map_to_physical(x, y, cfg)
            assert idx is not None
            assert 0 <= idx < cfg.led_count
            seen.add(idx)
    assert len(seen) == cfg.led_count


def test_three_panel_chain_is_a_bijection():
    cfg = PanelConfig(3, 8, False, [0, 90, 270])
    idx = {map_to_physical(x, y, cfg) for y in range(8) for x in range(24)}
    assert idx == set(range(cfg.led_count))


def test_rotation_zero_is_identity_plus_serpentine():
    cfg = PanelConfig(2, 16, False, [0, 0])
    assert map_to_physical(0, 0, cfg) == 0
    assert map_to_physical(15, 0, cfg) == 15
    # odd row runs right to left
    assert map_to_physical(0, 1, cfg) == 31
    assert map_to_physical(15, 1, cfg) == 16
    # second panel follows the first
    assert map_to_physical(16, 0, cfg) == 256


def test_rotation_ninety_convention():
    cfg = PanelConfig(1, 16, False, [90])
    # (0, 0) -> (0, 15); row 15 is odd so x is mirrored
    assert map_to_physical(0, 0, cfg) == 15 * 16 + 15
    assert rotate(3, 5, 90, 16) == (5, 12)


def test_reversed_order_swaps_panels():
    cfg = PanelConfig(2, 16, True, [0, 0])
    assert map_to_physical(0, 0, cfg) == 256
    assert map_to_physical(16, 0, cfg) == 0


def test_four_quarter_turns_are_identity():
    for size in (4, 16):
        for x in range(size):
            for y in range(size):
                px, py = x, y
                for _ in range(4):
                    px, py = rotate(px, py, 90, size)
                assert (px, py) == (x, y)


def test_half_turn_is_two_quarter_turns():
    for x, y in [(0, 0), (3, 7), (15, 15)]:
        assert rotate(*rotate(x, y, 90, 16), 90, 16) == rotate(x, y, 180, 16)
        assert rotate(*rotate(x, y, 180, 16), 90, 16) == rotate(x, y, 270, 16)


@pytest.mark.parametrize("x,y", [(-1, 0), (0, -1), (32, 0), (0, 16), (100, 100)])
def test_out_of_range_is_none(x, y):
    assert map_to_physical(x, y, PanelConfig()) is None


def test_unknown_angle_is_none():
    cfg = PanelConfig(2, 16, False, [0, 0])
    cfg.rotations[1] = 45
    assert map_to_physical(20, 3, cfg) is None
    assert map_to_physical(3, 3, cfg) is not None
    with pytest.raises(ValueError):
        rotate(0, 0, 45, 16)


def test_set_rotation_validates():
    cfg = PanelConfig()
    cfg.set_rotation(1, 180)
    assert cfg.rotation(1) == 180
    with pytest.raises(ValueError):
        cfg.set_rotation(0, 45)
    with pytest.raises(IndexError):
        cfg.set_rotation(2, 90)


def test_config_changes_are_seen_immediately():
    cfg = PanelConfig(2, 16, False, [0, 0])
    before = map_to_physical(0, 0, cfg)
    cfg.swap()
    assert map_to_physical(0, 0, cfg) != before
    assert cfg.key() != PanelConfig(2, 16, False, [0, 0]).key()


def test_index_table_and_logical_view_round_trip():
    cfg = PanelConfig(2, 16, True, [90, 270])
    table = index_table(cfg)
    assert table.shape == (16, 32)
    assert (table >= 0).all()

    image = np.zeros((16, 32, 3), dtype=np.uint8)
    image[3, 20] = (1, 2, 3)
    pixels = np.zeros((cfg.led_count, 3), dtype=np.uint8)
    pixels[table.ravel()] = image.reshape(-1, 3)
    assert np.array_equal(logical_view(pixels, cfg), image)
