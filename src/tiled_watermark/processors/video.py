import logging
import subprocess
import tempfile
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from fractions import Fraction
from pathlib import Path

import ffmpeg
import numpy as np
from numpy.typing import NDArray

from ..core import FRAME_CHANNELS, FRAME_PIX_FMT, VIDEO_BITRATE, VIDEO_CODEC, VIDEO_FORMAT, VIDEO_PIX_FMT
from ..core.blend import composite, prepare_tile
from ..core.errors import (
    DecodeError,
    EncodeError,
    RenderError,
    StreamConfigError,
    WatermarkError,
    WatermarkResult,
)
from ..core.fonts import FontProvisioner
from ..core.tile import WatermarkSpec, generate_tile

logger = logging.getLogger(__name__)

SUPPORTED_VIDEO_FORMATS = {".mp4", ".webm", ".mov", ".avi", ".mkv"}


def is_supported_video(path: Path) -> bool:
    """Check if file is a supported video format."""
    return path.suffix.lower() in SUPPORTED_VIDEO_FORMATS


@dataclass(frozen=True)
class StreamProperties:
    """Source stream properties the output stream is configured from."""

    width: int
    height: int
    frame_rate: Fraction
    total_frames: int = 0  # Estimate, 0 when unknown
    has_audio: bool = False
    audio_channels: int = 0
    audio_codec: str | None = None
    sample_rate: int = 0
    rotation: int = 0  # Display rotation in degrees; width/height are already upright

    @property
    def frame_size(self) -> int:
        """Bytes in one raw RGBA frame."""
        return self.width * self.height * FRAME_CHANNELS


def parse_frame_rate(value: str | None) -> Fraction:
    """Parse an ffprobe rate ("30/1", "30000/1001" or "29.97"), 0 if unusable."""
    if not value:
        return Fraction(0)
    try:
        return Fraction(value)
    except (ValueError, ZeroDivisionError):
        return Fraction(0)


def parse_rotation(video_stream: dict) -> int:
    """
    Read the display rotation of an ffprobe video stream entry, normalized to 0-359.

    Newer ffprobe reports it in the display matrix side data, older builds in
    the "rotate" tag.
    """
    for side_data in video_stream.get("side_data_list", []):
        if "rotation" in side_data:
            try:
                return int(round(float(side_data["rotation"]))) % 360
            except (TypeError, ValueError):
                break

    try:
        return int(round(float(video_stream.get("tags", {}).get("rotate", 0)))) % 360
    except (TypeError, ValueError):
        return 0


def get_video_info(input_path: Path) -> StreamProperties:
    """Get video metadata using ffprobe."""
    if not input_path.is_file():
        raise DecodeError(f"Input video not found: {input_path}")

    try:
        probe = ffmpeg.probe(str(input_path))
    except ffmpeg.Error as e:
        stderr = (e.stderr or b"").decode(errors="replace").strip()
        raise DecodeError(f"Cannot probe {input_path}: {stderr}") from e
    except OSError as e:
        raise DecodeError(f"Cannot run ffprobe on {input_path}: {e}") from e

    video_stream = next((s for s in probe["streams"] if s.get("codec_type") == "video"), None)
    if video_stream is None:
        raise DecodeError(f"No video stream in {input_path}")

    # Check for audio stream
    audio_stream = next(
        (s for s in probe["streams"] if s.get("codec_type") == "audio"),
        None,
    )

    width = int(video_stream.get("width", 0))
    height = int(video_stream.get("height", 0))

    # ffmpeg autorotates on decode, so quarter-turned frames come out transposed
    rotation = parse_rotation(video_stream)
    if rotation % 180 == 90:
        width, height = height, width

    fps = parse_frame_rate(video_stream.get("r_frame_rate"))
    if fps <= 0:
        fps = parse_frame_rate(video_stream.get("avg_frame_rate"))

    if width <= 0 or height <= 0:
        raise StreamConfigError(f"Invalid frame dimensions {width}x{height} in {input_path}")
    if fps <= 0:
        raise StreamConfigError(f"Cannot determine frame rate of {input_path}")

    nb_frames = video_stream.get("nb_frames")
    if nb_frames and str(nb_frames).isdigit():
        total_frames = int(nb_frames)
    else:
        duration = float(probe.get("format", {}).get("duration", 0) or 0)
        total_frames = int(duration * fps) if duration > 0 else 0

    if audio_stream is None:
        return StreamProperties(
            width=width, height=height, frame_rate=fps, total_frames=total_frames, rotation=rotation
        )

    return StreamProperties(
        width=width,
        height=height,
        frame_rate=fps,
        total_frames=total_frames,
        has_audio=True,
        audio_channels=int(audio_stream.get("channels", 0)),
        audio_codec=audio_stream.get("codec_name"),
        sample_rate=int(audio_stream.get("sample_rate", 0) or 0),
        rotation=rotation,
    )


def _read_stderr(stderr_file) -> str:
    stderr_file.seek(0)
    return stderr_file.read().decode(errors="replace").strip()


class VideoDecoder:
    """
    Decode stream yielding the source's video frames as RGBA arrays.

    Frames come out in decode order with timestamps passed through, so the
    frame count matches the source even for variable frame rate input.
    """

    def __init__(self, input_path: Path, properties: StreamProperties):
        self.input_path = input_path
        self.properties = properties
        self._process: subprocess.Popen | None = None
        self._stderr = None

    def open(self) -> "VideoDecoder":
        cmd = (
            ffmpeg.input(str(self.input_path))["v:0"]
            .output("pipe:", format="rawvideo", pix_fmt=FRAME_PIX_FMT, fps_mode="passthrough")
            .global_args("-loglevel", "error", "-nostdin")
            .compile()
        )
        self._stderr = tempfile.TemporaryFile()
        try:
            self._process = subprocess.Popen(
                cmd, stdin=subprocess.DEVNULL, stdout=subprocess.PIPE, stderr=self._stderr
            )
        except OSError as e:
            self.close()
            raise DecodeError(f"Cannot start ffmpeg decoder for {self.input_path}: {e}") from e

        logger.debug("Decoder opened for %s", self.input_path)
        return self

    def frames(self) -> Iterator[NDArray[np.uint8]]:
        """Yield writable (height, width, 4) frames until end of stream."""
        if self._process is None:
            raise RuntimeError("Decoder is not open")

        shape = (self.properties.height, self.properties.width, FRAME_CHANNELS)
        frame_size = self.properties.frame_size

        while True:
            data = self._process.stdout.read(frame_size)
            if not data:
                break
            if len(data) < frame_size:
                logger.warning(
                    "Skipping truncated frame at end of %s (%d of %d bytes)",
                    self.input_path,
                    len(data),
                    frame_size,
                )
                break
            yield np.frombuffer(data, dtype=np.uint8).reshape(shape).copy()

        returncode = self._process.wait()
        if returncode != 0:
            raise DecodeError(f"ffmpeg failed decoding {self.input_path}: {_read_stderr(self._stderr)}")

    def close(self) -> None:
        """Release the decoder process. Safe to call more than once."""
        process, self._process = self._process, None
        if process is not None:
            if process.poll() is None:
                process.kill()
            process.wait()
            if process.stdout is not None:
                process.stdout.close()
            logger.debug("Decoder closed for %s", self.input_path)

        if self._stderr is not None:
            self._stderr.close()
            self._stderr = None

    def __enter__(self) -> "VideoDecoder":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class VideoEncoder:
    """
    Encode stream writing RGBA frames to an H.264 MP4.

    When the source has audio, its first audio stream is muxed in with stream
    copy: channels, codec and sample rate are carried over unchanged and every
    audio packet is written byte-for-byte as read.
    """

    def __init__(
        self,
        output_path: Path,
        properties: StreamProperties,
        audio_source: Path | None = None,
        bitrate: int = VIDEO_BITRATE,
    ):
        self.output_path = output_path
        self.properties = properties
        self.audio_source = audio_source if properties.has_audio else None
        self.bitrate = bitrate
        self.frames_written = 0
        self._process: subprocess.Popen | None = None
        self._stderr = None

    def _compile(self) -> list[str]:
        props = self.properties
        video_input = ffmpeg.input(
            "pipe:",
            format="rawvideo",
            pix_fmt=FRAME_PIX_FMT,
            s=f"{props.width}x{props.height}",
            framerate=str(props.frame_rate),
        )

        streams = [video_input]
        audio_kwargs = {}
        if self.audio_source is not None:
            streams.append(ffmpeg.input(str(self.audio_source))["a:0"])
            audio_kwargs = {"acodec": "copy"}

        return (
            ffmpeg.output(
                *streams,
                str(self.output_path),
                format=VIDEO_FORMAT,
                vcodec=VIDEO_CODEC,
                pix_fmt=VIDEO_PIX_FMT,
                video_bitrate=self.bitrate,
                **audio_kwargs,
            )
            .overwrite_output()
            .global_args("-loglevel", "error")
            .compile()
        )

    def open(self) -> "VideoEncoder":
        props = self.properties
        # yuv420p subsamples chroma 2x2
        if props.width % 2 or props.height % 2:
            raise StreamConfigError(
                f"H.264 {VIDEO_PIX_FMT} output needs even dimensions, got {props.width}x{props.height}"
            )

        cmd = self._compile()
        self._stderr = tempfile.TemporaryFile()
        try:
            self._process = subprocess.Popen(
                cmd, stdin=subprocess.PIPE, stdout=subprocess.DEVNULL, stderr=self._stderr
            )
        except OSError as e:
            self._release()
            raise EncodeError(f"Cannot start ffmpeg encoder for {self.output_path}: {e}") from e

        logger.debug(
            "Encoder opened for %s (%dx%d @ %s fps, audio: %s)",
            self.output_path,
            props.width,
            props.height,
            props.frame_rate,
            f"{props.audio_codec} {props.audio_channels}ch {props.sample_rate}Hz" if self.audio_source else "none",
        )
        return self

    def write(self, frame: NDArray[np.uint8]) -> None:
        """Submit one RGBA frame to the encoder."""
        if self._process is None:
            raise RuntimeError("Encoder is not open")

        expected = (self.properties.height, self.properties.width, FRAME_CHANNELS)
        if frame.shape != expected:
            raise StreamConfigError(f"Frame shape {frame.shape} does not match encoder {expected}")

        try:
            self._process.stdin.write(np.ascontiguousarray(frame).tobytes())
        except OSError as e:
            raise EncodeError(f"ffmpeg encoder for {self.output_path} stopped accepting frames: {e}") from e
        self.frames_written += 1

    def close(self) -> None:
        """Finish the output file; raises EncodeError if ffmpeg did not."""
        process = self._process
        if process is None:
            return

        try:
            process.stdin.close()
        except OSError:
            # Encoder already exited, its return code tells why
            pass
        returncode = process.wait()
        stderr = _read_stderr(self._stderr)
        self._process = None
        self._release()

        if returncode != 0:
            raise EncodeError(f"ffmpeg failed encoding {self.output_path}: {stderr}")
        logger.debug("Encoder closed for %s after %d frames", self.output_path, self.frames_written)

    def abort(self) -> None:
        """Stop the encoder without finishing the output file."""
        process, self._process = self._process, None
        if process is not None:
            if process.poll() is None:
                process.kill()
            process.wait()
            if process.stdin is not None:
                try:
                    process.stdin.close()
                except OSError:
                    pass
            logger.debug("Encoder aborted for %s", self.output_path)
        self._release()

    def _release(self) -> None:
        if self._stderr is not None:
            self._stderr.close()
            self._stderr = None

    def __enter__(self) -> "VideoEncoder":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abort()


def _stream_frames(
    input_path: Path,
    output_path: Path,
    properties: StreamProperties,
    spec: WatermarkSpec,
    fonts: FontProvisioner,
    progress_callback: Callable[[int, int], None] | None,
) -> int:
    """Run decode -> composite -> encode for every frame, returning the frame count."""
    with VideoDecoder(input_path, properties) as decoder:
        # One tile for the whole video, shared read-only by every frame
        tile = prepare_tile(generate_tile(properties.width, properties.height, spec, fonts))

        with VideoEncoder(output_path, properties, audio_source=input_path) as encoder:
            for frame in decoder.frames():
                composite(frame, tile)
                encoder.write(frame)

                if progress_callback:
                    progress_callback(encoder.frames_written, properties.total_frames)

            if encoder.frames_written == 0:
                raise DecodeError(f"No video frames decoded from {input_path}")

            return encoder.frames_written


def add_watermark_to_video(
    input_path: Path,
    output_path: Path,
    text: str,
    font_size: int,
    *,
    fonts: FontProvisioner | None = None,
    progress_callback: Callable[[int, int], None] | None = None,
) -> WatermarkResult:
    """
    Stamp the tiled text watermark onto every frame of a video.

    Audio is passed through untouched. The result is written next to the
    destination under a hidden partial name and only renamed into place once
    the encoder finished cleanly, so a failed run never leaves a truncated MP4
    at output_path.

    Args:
        input_path: Path to input video
        output_path: Path of the MP4 to write (suffix forced to .mp4)
        text: Watermark text
        font_size: Font size in points
        fonts: Font provisioner; Pillow's default font when omitted
        progress_callback: Optional callback(current_frame, total_frames)

    Returns:
        WatermarkResult carrying the output path, or the error that stopped it
    """
    input_path, output_path = Path(input_path), Path(output_path)

    # Ensure output has .mp4 extension
    if output_path.suffix.lower() != ".mp4":
        output_path = output_path.with_suffix(".mp4")

    fonts = fonts or FontProvisioner()
    partial_path = output_path.with_name(f".{output_path.stem}.partial.mp4")

    try:
        try:
            spec = WatermarkSpec(text=text, font_size=font_size)
        except ValueError as e:
            raise RenderError(str(e)) from e

        properties = get_video_info(input_path)
        logger.debug("Source %s: %s", input_path, properties)

        frame_count = _stream_frames(input_path, partial_path, properties, spec, fonts, progress_callback)

        try:
            partial_path.replace(output_path)
        except OSError as e:
            raise EncodeError(f"Cannot move finished video to {output_path}: {e}") from e
    except WatermarkError as e:
        logger.exception("Failed to add watermark to video %s", input_path)
        return WatermarkResult.failure(e)
    finally:
        if partial_path.is_file():
            partial_path.unlink()

    logger.info("Watermarked video saved to %s (%d frames)", output_path, frame_count)
    return WatermarkResult.success(output_path)
