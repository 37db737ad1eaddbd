import logging
import threading
from pathlib import Path

from PIL import ImageFont

from .errors import FontLoadError

logger = logging.getLogger(__name__)


class FontProvisioner:
    """
    Resolves a font asset to loaded font handles, one per point size.

    Pass one instance into the pipelines instead of relying on process-wide
    state. Loaded fonts are cached per instance; the cache is lock-guarded so a
    single provisioner can be shared by independent invocations.
    """

    def __init__(self, font_path: Path | str | None = None):
        """
        Args:
            font_path: Path to a TrueType/OpenType font file. If None, Pillow's
                bundled scalable default font is used.
        """
        self._font_path = Path(font_path) if font_path is not None else None
        self._cache: dict[int, ImageFont.FreeTypeFont] = {}
        self._lock = threading.Lock()

    @property
    def font_path(self) -> Path | None:
        return self._font_path

    def _open(self, size: int) -> ImageFont.FreeTypeFont:
        if self._font_path is None:
            return ImageFont.load_default(size=size)

        try:
            return ImageFont.truetype(str(self._font_path), size)
        except (OSError, ValueError) as e:
            raise FontLoadError(f"Cannot load font {self._font_path}: {e}") from e

    def load(self, size: int) -> ImageFont.FreeTypeFont:
        """Get cached font for size or load it if not cached."""
        if size <= 0:
            raise FontLoadError(f"Font size must be positive, got {size}")

        with self._lock:
            if size not in self._cache:
                logger.debug("Loading font %s at %dpt", self._font_path or "<default>", size)
                self._cache[size] = self._open(size)
            return self._cache[size]
