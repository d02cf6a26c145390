import numpy as np

from rollingball.state import SessionState
from rollingball.vision.preview import PreviewRenderer
from rollingball.vision.shapes import DetectedCircle, DetectedLine, ShapeSnapshot


def _red(pixel):
    b, g, r = (int(v) for v in pixel)
    return r > 200 and g < 50 and b < 50


def test_camera_texture_fills_screen_canvas(mapper):
    renderer = PreviewRenderer(mapper)
    image = np.full((480, 640, 3), 128, dtype=np.uint8)
    canvas = renderer.camera_texture(image)
    assert canvas.shape == (1280, 720, 3)
    # Letterbox bars above and below the 960px-tall texture
    assert not canvas[:150].any()
    assert canvas[640, 360].tolist() == [128, 128, 128]


def test_scanning_draws_shapes(mapper):
    renderer = PreviewRenderer(mapper)
    circle_pos = (200.0, 400.0)
    line = ((100.0, 900.0), (600.0, 900.0))
    snapshot = ShapeSnapshot(
        circles=(DetectedCircle(circle_pos, 40.0, mapper.screen_to_world(circle_pos)),),
        lines=(DetectedLine(line[0], line[1], mapper.screen_to_world(line[0]), mapper.screen_to_world(line[1])),),
    )
    image = np.zeros((480, 640, 3), dtype=np.uint8)
    canvas = renderer.render(image, SessionState.SCANNING, snapshot)
    assert _red(canvas[400, 200])
    # Filled square reaches its corners
    assert _red(canvas[382, 182])
    assert _red(canvas[900, 350])


def test_simulating_hides_scanned_shapes(mapper, fake_engine):
    renderer = PreviewRenderer(mapper)
    circle_pos = (200.0, 400.0)
    snapshot = ShapeSnapshot(circles=(DetectedCircle(circle_pos, 40.0, mapper.screen_to_world(circle_pos)),))
    image = np.zeros((480, 640, 3), dtype=np.uint8)
    canvas = renderer.render(image, SessionState.SIMULATING, snapshot, engine=fake_engine, bodies=())
    assert not canvas.any()


def test_simulating_draws_bodies(mapper, fake_engine):
    renderer = PreviewRenderer(mapper)
    world = mapper.screen_to_world((360.0, 640.0))
    body = fake_engine.spawn_circle(world, mapper.screen_length_to_world(30.0))
    image = np.zeros((480, 640, 3), dtype=np.uint8)
    canvas = renderer.render(image, SessionState.SIMULATING, ShapeSnapshot(), engine=fake_engine, bodies=(body,))
    assert canvas[640, 360].tolist() == list(renderer.settings.body_color)


def test_encode_jpeg(mapper):
    renderer = PreviewRenderer(mapper)
    jpeg = renderer.encode_jpeg(np.zeros((1280, 720, 3), dtype=np.uint8))
    assert jpeg.startswith(b"\xff\xd8")
