import numpy as np
import pytest

from tiled_watermark.core import FILL_COLOR, WATERMARK_ANGLE
from tiled_watermark.core.errors import FontLoadError, RenderError
from tiled_watermark.core.fonts import FontProvisioner
from tiled_watermark.core.tile import WatermarkSpec, generate_tile, tile_grid_points


def test_spec_defaults():
    spec = WatermarkSpec(text="TEST", font_size=20)

    assert spec.angle == WATERMARK_ANGLE == 45
    assert spec.color == FILL_COLOR == (169, 169, 169, 51)
    assert spec.x_pitch == 80  # 1 * 20 * len("TEST")
    assert spec.y_pitch == 80  # 4 * 20


@pytest.mark.parametrize(
    "kwargs",
    [
        {"text": "", "font_size": 20},
        {"text": "TEST", "font_size": 0},
        {"text": "TEST", "font_size": -5},
        {"text": "TEST", "font_size": 20, "x_repeat": 0},
        {"text": "TEST", "font_size": 20, "color": (169, 169, 169)},
        {"text": "TEST", "font_size": 20, "color": (169, 169, 300, 51)},
    ],
)
def test_spec_rejects_invalid_values(kwargs):
    with pytest.raises(ValueError):
        WatermarkSpec(**kwargs)


def test_spec_is_immutable():
    spec = WatermarkSpec(text="TEST", font_size=20)
    with pytest.raises(AttributeError):
        spec.text = "OTHER"


def test_grid_points_follow_margin_and_pitch():
    spec = WatermarkSpec(text="TEST", font_size=20)
    points = list(tile_grid_points(400, 400, spec))

    assert points[0] == (10, 10)
    assert len(points) == 25
    assert sorted({x for x, _ in points}) == [10, 90, 170, 250, 330]
    assert sorted({y for _, y in points}) == [10, 90, 170, 250, 330]
    # Columns are walked top to bottom
    assert points[:5] == [(10, 10), (10, 90), (10, 170), (10, 250), (10, 330)]


def test_longer_text_spreads_columns():
    short = list(tile_grid_points(1000, 100, WatermarkSpec(text="AB", font_size=10)))
    long = list(tile_grid_points(1000, 100, WatermarkSpec(text="ABCDEFGH", font_size=10)))

    assert len({x for x, _ in long}) < len({x for x, _ in short})


@pytest.mark.parametrize("width,height", [(100, 100), (64, 48), (37, 211), (640, 360)])
def test_tile_matches_target_size(fonts, width, height):
    tile = generate_tile(width, height, WatermarkSpec(text="TEST", font_size=20), fonts)

    assert tile.shape == (height, width, 4)
    assert tile.dtype == np.uint8


def test_tile_is_deterministic(fonts):
    spec = WatermarkSpec(text="Watermark", font_size=24)

    first = generate_tile(320, 180, spec, fonts)
    second = generate_tile(320, 180, spec, FontProvisioner())

    np.testing.assert_array_equal(first, second)


def test_tile_is_read_only(fonts):
    tile = generate_tile(50, 50, WatermarkSpec(text="TEST", font_size=10), fonts)

    with pytest.raises(ValueError):
        tile[0, 0, 0] = 1


def test_tile_contains_translucent_gray_text(fonts):
    tile = generate_tile(300, 300, WatermarkSpec(text="TEST", font_size=40), fonts)
    alpha = tile[:, :, 3]

    assert (alpha > 0).any()
    assert (alpha == 0).any()
    # Bicubic resampling may ring slightly above the fill alpha, never near opaque
    assert alpha.max() < 80

    covered = tile[alpha > 40]
    assert len(covered) > 0
    assert abs(covered[:, :3].astype(float).mean() - 169) < 5


def test_zero_angle_tile_has_horizontal_rows(fonts):
    spec = WatermarkSpec(text="TEST", font_size=20, angle=0)
    tile = generate_tile(100, 100, spec, fonts)
    rows_with_text = np.flatnonzero(tile[:, :, 3].any(axis=1))

    # Baselines sit on the 80px row pitch, so most rows stay empty
    assert 0 < len(rows_with_text) < 100


@pytest.mark.parametrize("width,height", [(0, 100), (100, 0), (-1, 10)])
def test_tile_rejects_empty_target(fonts, width, height):
    with pytest.raises(RenderError):
        generate_tile(width, height, WatermarkSpec(text="TEST", font_size=20), fonts)


def test_tile_reports_missing_font(tmp_path):
    missing = FontProvisioner(tmp_path / "missing.ttf")

    with pytest.raises(FontLoadError):
        generate_tile(100, 100, WatermarkSpec(text="TEST", font_size=20), missing)


@pytest.mark.parametrize("angle", [45, 30, 0])
def test_rotated_edges_keep_fill_color(fonts, angle):
    spec = WatermarkSpec(text="TEST", font_size=40, angle=angle)
    tile = generate_tile(300, 300, spec, fonts)
    covered = tile[tile[:, :, 3] > 0]

    assert len(covered) > 0
    # Antialiased edges only fade in alpha, they never pick up the background color
    assert np.all(covered[:, :3] == FILL_COLOR[:3])


def test_tile_uses_custom_color(fonts):
    spec = WatermarkSpec(text="TEST", font_size=30, color=(200, 20, 40, 128))
    tile = generate_tile(200, 200, spec, fonts)
    covered = tile[tile[:, :, 3] > 0]

    assert np.all(covered[:, :3] == (200, 20, 40))
    assert covered[:, 3].max() > 100
