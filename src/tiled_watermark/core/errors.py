from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


class WatermarkError(Exception):
    """Base class for every failure a watermarking operation can report."""


class FontLoadError(WatermarkError):
    """Font asset is missing, unreadable or not a usable font."""


class RenderError(WatermarkError):
    """Tile canvas could not be built (bad parameters or allocation failure)."""


class DecodeError(WatermarkError):
    """Input media is missing, unreadable or corrupt."""


class EncodeError(WatermarkError):
    """Output could not be written (bad path, codec negotiation, disk full)."""


class StreamConfigError(WatermarkError):
    """Source stream properties cannot be used to configure the encoder."""


@dataclass(frozen=True)
class WatermarkResult:
    """
    Outcome of a watermarking operation.

    Truthiness collapses the result to the plain success flag, so callers that
    only care about pass/fail can keep using ``if result:``.
    """

    output_path: Path | None = None
    error: WatermarkError | None = None

    @classmethod
    def success(cls, output_path: Path) -> WatermarkResult:
        return cls(output_path=output_path)

    @classmethod
    def failure(cls, error: WatermarkError) -> WatermarkResult:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok
