"""
Shared fixtures for the watermark tests.

Video tests build their inputs with ffmpeg's lavfi sources and are skipped
when the ffmpeg binary is not installed.
"""

import shutil
from pathlib import Path

import ffmpeg
import numpy as np
import pytest
from PIL import Image

from tiled_watermark.core.fonts import FontProvisioner

requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg/ffprobe not installed",
)


@pytest.fixture
def fonts() -> FontProvisioner:
    return FontProvisioner()


@pytest.fixture
def white_image(tmp_path) -> Path:
    """100x100 opaque white PNG."""
    path = tmp_path / "white.png"
    Image.new("RGBA", (100, 100), (255, 255, 255, 255)).save(path)
    return path


def make_video(
    path: Path,
    width: int = 640,
    height: int = 360,
    rate: int = 30,
    duration: float = 3,
    with_audio: bool = True,
) -> Path:
    """Render a solid white test clip, optionally with a sine tone track."""
    streams = [ffmpeg.input(f"color=c=white:size={width}x{height}:rate={rate}", f="lavfi", t=duration)]
    audio_kwargs = {}
    if with_audio:
        streams.append(ffmpeg.input("sine=frequency=440:sample_rate=44100", f="lavfi", t=duration))
        audio_kwargs = {"acodec": "aac", "ac": 2}

    ffmpeg.output(
        *streams,
        str(path),
        vcodec="libx264",
        pix_fmt="yuv420p",
        format="mp4",
        **audio_kwargs,
    ).overwrite_output().run(quiet=True)
    return path


@pytest.fixture
def sample_video(tmp_path) -> Path:
    """3 second, 30 fps, 640x360 white clip with a stereo AAC track."""
    return make_video(tmp_path / "input.mp4")


def read_video_frames(path: Path, width: int, height: int) -> np.ndarray:
    """Decode every video frame of path as an (N, H, W, 3) array."""
    out, _ = (
        ffmpeg.input(str(path))["v:0"]
        .output("pipe:", format="rawvideo", pix_fmt="rgb24")
        .run(capture_stdout=True, quiet=True)
    )
    return np.frombuffer(out, dtype=np.uint8).reshape((-1, height, width, 3))


def extract_audio_packets(path: Path) -> bytes:
    """Copy the first audio stream out as a raw ADTS byte stream."""
    out, _ = (
        ffmpeg.input(str(path))["a:0"]
        .output("pipe:", acodec="copy", format="adts")
        .run(capture_stdout=True, quiet=True)
    )
    return out
