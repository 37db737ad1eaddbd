import logging
from pathlib import Path

import numpy as np
from PIL import Image

from ..core import IMAGE_FORMAT
from ..core.blend import composite
from ..core.errors import DecodeError, EncodeError, RenderError, WatermarkError, WatermarkResult
from ..core.fonts import FontProvisioner
from ..core.tile import WatermarkSpec, generate_tile

logger = logging.getLogger(__name__)

SUPPORTED_IMAGE_FORMATS = {".png", ".jpg", ".jpeg", ".webp", ".bmp", ".tiff"}


def is_supported_image(path: Path) -> bool:
    """Check if file is a supported image format."""
    return path.suffix.lower() in SUPPORTED_IMAGE_FORMATS


def load_image(input_path: Path) -> np.ndarray:
    """Decode an image file into an RGBA frame buffer."""
    try:
        with Image.open(input_path) as img:
            if img.mode != "RGBA":
                img = img.convert("RGBA")
            return np.array(img, dtype=np.uint8)
    except (OSError, Image.DecompressionBombError) as e:
        raise DecodeError(f"Cannot decode image {input_path}: {e}") from e


def save_image(image_array: np.ndarray, output_path: Path) -> None:
    """Encode a frame buffer as PNG, removing any partial file on failure."""
    try:
        Image.fromarray(image_array).save(output_path, format=IMAGE_FORMAT)
    except (OSError, ValueError) as e:
        if output_path.is_file():
            output_path.unlink()
        raise EncodeError(f"Cannot write image {output_path}: {e}") from e


def add_watermark_to_image(
    input_path: Path,
    output_path: Path,
    text: str,
    font_size: int,
    *,
    fonts: FontProvisioner | None = None,
) -> WatermarkResult:
    """
    Stamp the tiled text watermark onto a still image.

    Args:
        input_path: Path to input image
        output_path: Path of the PNG to write
        text: Watermark text
        font_size: Font size in points
        fonts: Font provisioner; Pillow's default font when omitted

    Returns:
        WatermarkResult carrying the output path, or the error that stopped it
    """
    input_path, output_path = Path(input_path), Path(output_path)
    fonts = fonts or FontProvisioner()

    try:
        try:
            spec = WatermarkSpec(text=text, font_size=font_size)
        except ValueError as e:
            raise RenderError(str(e)) from e

        image_array = load_image(input_path)
        height, width = image_array.shape[:2]
        logger.debug("Decoded %s (%dx%d)", input_path, width, height)

        tile = generate_tile(width, height, spec, fonts)
        composite(image_array, tile)

        save_image(image_array, output_path)
    except WatermarkError as e:
        logger.exception("Failed to add watermark to image %s", input_path)
        return WatermarkResult.failure(e)

    logger.info("Watermarked image saved to %s", output_path)
    return WatermarkResult.success(output_path)
