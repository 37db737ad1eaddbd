from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray


@dataclass(frozen=True)
class PreparedTile:
    """
    Tile arrays precomputed for repeated compositing.

    Everything here depends on the tile alone, so a video prepares it once and
    reuses it for every frame. Arrays cover only the tile's bounding box of
    non-transparent pixels.
    """

    height: int
    width: int
    box: tuple[int, int, int, int] | None  # (top, bottom, left, right), None if fully transparent
    mask: NDArray[np.bool_] | None = None  # (h, w, 1)
    alpha: NDArray[np.float32] | None = None  # (h, w, 1), 0.0 to 1.0
    weighted_color: NDArray[np.float32] | None = None  # (h, w, 3), color * alpha


def prepare_tile(tile: NDArray[np.uint8]) -> PreparedTile:
    """Precompute the blend inputs of an RGBA tile."""
    if tile.ndim != 3 or tile.shape[2] != 4:
        raise ValueError(f"Tile must be an RGBA array, got shape {tile.shape}")

    tile_h, tile_w = tile.shape[:2]
    covered = tile[:, :, 3] > 0
    if not covered.any():
        return PreparedTile(height=tile_h, width=tile_w, box=None)

    rows = np.flatnonzero(covered.any(axis=1))
    cols = np.flatnonzero(covered.any(axis=0))
    top, bottom, left, right = rows[0], rows[-1] + 1, cols[0], cols[-1] + 1

    cropped = tile[top:bottom, left:right]
    alpha = (cropped[:, :, 3].astype(np.float32) / 255.0)[:, :, np.newaxis]

    return PreparedTile(
        height=tile_h,
        width=tile_w,
        box=(int(top), int(bottom), int(left), int(right)),
        mask=covered[top:bottom, left:right, np.newaxis],
        alpha=alpha,
        weighted_color=cropped[:, :, :3].astype(np.float32) * alpha,
    )


def composite(
    image_array: NDArray[np.uint8],
    tile: NDArray[np.uint8] | PreparedTile,
) -> NDArray[np.uint8]:
    """
    Draw the watermark tile over an image using source-over alpha blending.

    Formula (opaque or RGB target): out = tile * alpha + image * (1 - alpha)
    General RGBA target:
        out_alpha = a_s + a_d * (1 - a_s)
        out_color = (c_s * a_s + c_d * a_d * (1 - a_s)) / out_alpha

    Args:
        image_array: Target image as numpy array (H, W, C) in RGB/RGBA format
        tile: Watermark tile (h, w, 4) RGBA no larger than the target, or the
            PreparedTile built from one

    Returns:
        The target array (in-place modification)
    """
    prepared = tile if isinstance(tile, PreparedTile) else prepare_tile(tile)
    img_h, img_w = image_array.shape[:2]

    if prepared.height > img_h or prepared.width > img_w:
        raise ValueError(f"Tile {prepared.width}x{prepared.height} exceeds target {img_w}x{img_h}")

    # Fully transparent tile pixels must leave the target untouched
    if prepared.box is None:
        return image_array

    top, bottom, left, right = prepared.box
    region = image_array[top:bottom, left:right]
    a_s = prepared.alpha
    c_d = region[:, :, :3].astype(np.float32)

    if region.shape[2] == 4:
        a_d = (region[:, :, 3].astype(np.float32) / 255.0)[:, :, np.newaxis]
        out_a = a_s + a_d * (1.0 - a_s)
        safe_a = np.where(out_a > 0, out_a, 1.0)
        out_c = (prepared.weighted_color + c_d * a_d * (1.0 - a_s)) / safe_a
        blended = np.concatenate([out_c, out_a * 255.0], axis=2)
    else:
        blended = prepared.weighted_color + c_d * (1.0 - a_s)

    blended = np.clip(np.rint(blended), 0, 255).astype(np.uint8)

    # Write back only where the tile has coverage
    region[...] = np.where(prepared.mask, blended, region)

    return image_array
