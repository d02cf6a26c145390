import itertools

import numpy as np
import pytest

from rollingball.config import MountingSettings
from rollingball.vision.mapping import CoordinateMapper


def _mapper(swap=True, flip_x=True, flip_y=False, capture=(640, 480), screen=(720, 1280)):
    return CoordinateMapper(
        capture_width=capture[0],
        capture_height=capture[1],
        screen_width=screen[0],
        screen_height=screen[1],
        mounting=MountingSettings(swap_axes=swap, flip_x=flip_x, flip_y=flip_y),
    )


def test_scale_and_letterbox_offset_for_rotated_mounting(mapper):
    # screen width / capture height
    assert mapper.screen_pixels_per_image_pixel == pytest.approx(1.5)
    # 0.5 * (1280 - 1.5 * 640)
    assert mapper.screen_pixels_y_offset == pytest.approx(160.0)


def test_default_mounting_swaps_and_flips(mapper):
    assert mapper.image_to_screen(0, 0) == pytest.approx((720.0, 160.0))
    assert mapper.image_to_screen(640, 480) == pytest.approx((0.0, 1120.0))
    # image x runs down the screen
    assert mapper.image_to_screen(100, 0) == pytest.approx((720.0, 310.0))


def test_unrotated_mounting_is_plain_scale():
    m = _mapper(swap=False, flip_x=False, flip_y=False, screen=(1280, 960))
    assert m.screen_pixels_per_image_pixel == pytest.approx(2.0)
    assert m.screen_pixels_y_offset == pytest.approx(0.0)
    assert m.image_to_screen(10, 20) == pytest.approx((20.0, 40.0))


@pytest.mark.parametrize("swap,flip_x,flip_y", list(itertools.product([True, False], repeat=3)))
def test_screen_image_round_trip(swap, flip_x, flip_y):
    m = _mapper(swap, flip_x, flip_y)
    for point in [(0.0, 0.0), (123.4, 567.8), (719.0, 1279.0), (360.0, 640.0)]:
        assert m.image_to_screen(*m.screen_to_image(*point)) == pytest.approx(point)


def test_affine_matrix_matches_point_mapping(mapper):
    matrix = mapper.affine_matrix()
    for x, y in [(0, 0), (17, 250), (639, 479)]:
        expected = mapper.image_to_screen(x, y)
        assert tuple(matrix @ np.array([x, y, 1.0])) == pytest.approx(expected)


def test_screen_to_world_uses_fixed_raycast_distance(mapper):
    assert mapper.raycast_distance == pytest.approx(320.0)
    center = mapper.screen_to_world((360.0, 640.0))
    assert center == pytest.approx((0.0, 0.0, 320.0))
    for point in [(0, 0), (720, 1280), (100, 900)]:
        assert mapper.screen_to_world(point)[2] == pytest.approx(mapper.raycast_distance)


def test_world_y_points_up(mapper):
    upper = mapper.screen_to_world((360.0, 100.0))
    lower = mapper.screen_to_world((360.0, 1000.0))
    assert upper[1] > 0 > lower[1]


def test_orthographic_camera_covers_capture_diagonal(mapper):
    camera = mapper.camera
    assert camera.orthographic_size == pytest.approx(400.0)
    assert camera.near < mapper.raycast_distance < camera.far
    # Full screen height spans the capture diagonal in world units
    top = mapper.screen_to_world((0, 0))
    bottom = mapper.screen_to_world((0, 1280))
    assert top[1] - bottom[1] == pytest.approx(800.0)


def test_world_to_screen_inverts_screen_to_world(mapper):
    for point in [(0.0, 0.0), (250.5, 999.0)]:
        assert mapper.world_to_screen(mapper.screen_to_world(point)) == pytest.approx(point)


def test_screen_length_to_world(mapper):
    k = 800.0 / 1280.0
    assert mapper.screen_length_to_world(64) == pytest.approx(64 * k)


def test_invalid_capture_size_rejected():
    with pytest.raises(ValueError):
        _mapper(capture=(0, 480))
