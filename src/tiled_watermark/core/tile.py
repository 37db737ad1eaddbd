import logging
from collections.abc import Iterator
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from PIL import Image, ImageDraw

from . import (
    CANVAS_SCALE,
    FILL_COLOR,
    TEXT_DRAW_OFFSET,
    TEXT_X_REPEAT_FACTOR,
    TEXT_Y_REPEAT_FACTOR,
    WATERMARK_ANGLE,
)
from .errors import RenderError
from .fonts import FontProvisioner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatermarkSpec:
    """Watermark text and how it is laid out on the tile."""

    text: str
    font_size: int
    angle: float = WATERMARK_ANGLE
    color: tuple[int, int, int, int] = FILL_COLOR
    x_repeat: int = TEXT_X_REPEAT_FACTOR
    y_repeat: int = TEXT_Y_REPEAT_FACTOR

    def __post_init__(self):
        if not self.text:
            raise ValueError("Watermark text must not be empty")
        if self.font_size <= 0:
            raise ValueError(f"Font size must be positive, got {self.font_size}")
        if self.x_repeat <= 0 or self.y_repeat <= 0:
            raise ValueError("Repeat factors must be positive")
        if len(self.color) != 4 or any(not 0 <= c <= 255 for c in self.color):
            raise ValueError(f"Color must be an RGBA tuple of 0-255 values, got {self.color}")

    @property
    def x_pitch(self) -> int:
        # Character-count heuristic, not measured text width
        return self.x_repeat * self.font_size * len(self.text)

    @property
    def y_pitch(self) -> int:
        return self.y_repeat * self.font_size


def tile_grid_points(canvas_width: int, canvas_height: int, spec: WatermarkSpec) -> Iterator[tuple[int, int]]:
    """
    Yield the baseline-left anchor of every text repetition on the canvas.

    Columns start TEXT_DRAW_OFFSET px in and stop before the opposite margin;
    each column is walked top to bottom.
    """
    for x in range(TEXT_DRAW_OFFSET, canvas_width - TEXT_DRAW_OFFSET, spec.x_pitch):
        for y in range(TEXT_DRAW_OFFSET, canvas_height - TEXT_DRAW_OFFSET, spec.y_pitch):
            yield x, y


def generate_tile(
    width: int,
    height: int,
    spec: WatermarkSpec,
    fonts: FontProvisioner,
) -> NDArray[np.uint8]:
    """
    Render the watermark tile for a width x height frame.

    The text grid is drawn on a canvas CANVAS_SCALE times the target size,
    rotated about the canvas center, and the (width, height) offset region of
    size width x height is cut out. Rotating the oversized canvas keeps the
    cropped region free of the empty corners a same-size rotation leaves.

    Only the coverage (alpha) is rendered and resampled; the fill color is
    solid, so every covered pixel carries exactly spec.color's RGB.

    Args:
        width: Target frame width in pixels
        height: Target frame height in pixels
        spec: Watermark text and layout
        fonts: Font provisioner used to load spec.font_size

    Returns:
        Read-only RGBA array of shape (height, width, 4)

    Raises:
        FontLoadError: the font cannot be loaded
        RenderError: invalid dimensions or the canvas cannot be allocated
    """
    if width <= 0 or height <= 0:
        raise RenderError(f"Tile dimensions must be positive, got {width}x{height}")

    font = fonts.load(spec.font_size)

    canvas_w, canvas_h = CANVAS_SCALE * width, CANVAS_SCALE * height
    try:
        coverage = Image.new("L", (canvas_w, canvas_h), 0)
    except (MemoryError, ValueError) as e:
        raise RenderError(f"Cannot allocate {canvas_w}x{canvas_h} tile canvas: {e}") from e

    draw = ImageDraw.Draw(coverage)
    count = 0
    for x, y in tile_grid_points(canvas_w, canvas_h, spec):
        draw.text((x, y), spec.text, font=font, fill=spec.color[3], anchor="ls")
        count += 1

    # PIL rotates counter-clockwise; the watermark angle is clockwise on screen
    if spec.angle % 360 != 0:
        coverage = coverage.rotate(-spec.angle, resample=Image.BICUBIC, expand=False)

    canvas = Image.new("RGBA", (width, height), (*spec.color[:3], 0))
    canvas.putalpha(coverage.crop((width, height, 2 * width, 2 * height)))
    tile = np.array(canvas, dtype=np.uint8)
    tile.flags.writeable = False

    logger.debug("Generated %dx%d tile with %d text repetitions", width, height, count)
    return tile
