import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from .core import FILL_COLOR, TEXT_X_REPEAT_FACTOR, TEXT_Y_REPEAT_FACTOR, VIDEO_BITRATE, WATERMARK_ANGLE
from .core.fonts import FontProvisioner
from .log import configure_logging
from .processors.image import SUPPORTED_IMAGE_FORMATS, add_watermark_to_image, is_supported_image
from .processors.video import SUPPORTED_VIDEO_FORMATS, add_watermark_to_video, is_supported_video

app = typer.Typer(
    name="tiled-watermark",
    help="Stamp a tiled, rotated text watermark onto images and videos.",
    add_completion=True,
)
console = Console()

FONT_OPTION = typer.Option(
    None,
    "--font",
    "-f",
    help="TrueType/OpenType font file. Defaults to Pillow's bundled font.",
    exists=True,
    dir_okay=False,
)
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Log every pipeline step")


def _setup(font: Optional[Path], verbose: bool) -> FontProvisioner:
    configure_logging(logging.DEBUG if verbose else logging.WARNING, console=console)
    return FontProvisioner(font)


def get_files_to_process(path: Path, recursive: bool = False) -> list[Path]:
    """Get all supported files from path (file or directory)."""
    if path.is_file():
        return [path]

    files = []
    pattern = "**/*" if recursive else "*"

    for f in path.glob(pattern):
        if f.is_file() and (is_supported_image(f) or is_supported_video(f)):
            files.append(f)

    return sorted(files)


@app.command()
def image(
    input_path: Path = typer.Argument(..., help="Image to watermark", exists=True, dir_okay=False),
    output_path: Path = typer.Argument(..., help="PNG file to write"),
    text: str = typer.Argument(..., help="Watermark text"),
    font_size: int = typer.Argument(..., help="Font size in points", min=1),
    font: Optional[Path] = FONT_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Watermark a single image. The output is always written as PNG."""
    fonts = _setup(font, verbose)

    result = add_watermark_to_image(input_path, output_path, text, font_size, fonts=fonts)
    if not result:
        console.print(f"[red]Error processing {input_path}:[/red] {result.error}")
        raise typer.Exit(1)

    console.print(f"[green]Image saved:[/green] {result.output_path}")


@app.command()
def video(
    input_path: Path = typer.Argument(..., help="Video to watermark", exists=True, dir_okay=False),
    output_path: Path = typer.Argument(..., help="MP4 file to write"),
    text: str = typer.Argument(..., help="Watermark text"),
    font_size: int = typer.Argument(..., help="Font size in points", min=1),
    font: Optional[Path] = FONT_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Watermark every frame of a video. Audio is copied unchanged; output is MP4 (H.264)."""
    fonts = _setup(font, verbose)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        frame_task = progress.add_task(f"Processing {input_path.name}...", total=None)

        def video_progress(current: int, total: int):
            progress.update(frame_task, completed=current, total=total or None)

        result = add_watermark_to_video(
            input_path, output_path, text, font_size, fonts=fonts, progress_callback=video_progress
        )

    if not result:
        console.print(f"[red]Error processing {input_path}:[/red] {result.error}")
        raise typer.Exit(1)

    console.print(f"[green]Video saved:[/green] {result.output_path}")


@app.command()
def process(
    path: Path = typer.Argument(
        ...,
        help="Path to image/video file or directory for batch processing",
        exists=True,
    ),
    text: str = typer.Argument(..., help="Watermark text"),
    font_size: int = typer.Argument(..., help="Font size in points", min=1),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output directory. Defaults to the input location with '_watermarked' suffix.",
    ),
    recursive: bool = typer.Option(
        False,
        "--recursive",
        "-r",
        help="Process directories recursively",
    ),
    suffix: str = typer.Option(
        "_watermarked",
        "--suffix",
        "-s",
        help="Suffix to add to output filenames",
    ),
    font: Optional[Path] = FONT_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """
    Watermark every supported image and video under a path.

    Images are written as PNG, videos as MP4 (H.264).

    Examples:
        tiled-watermark process photo.jpg "CONFIDENTIAL" 36
        tiled-watermark process ./media/ "DRAFT" 48 -r -o ./stamped/
    """
    fonts = _setup(font, verbose)
    files = get_files_to_process(path, recursive)

    if not files:
        console.print(f"[red]No supported files found in {path}[/red]")
        console.print(f"Supported formats: {SUPPORTED_IMAGE_FORMATS | SUPPORTED_VIDEO_FORMATS}")
        raise typer.Exit(1)

    if output:
        output.mkdir(parents=True, exist_ok=True)

    console.print(
        Panel(
            f"Processing {len(files)} file(s) with watermark '{text}'",
            title="Tiled Watermark",
            border_style="blue",
        )
    )

    failures = 0
    written: set[Path] = set()
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        main_task = progress.add_task("Processing files...", total=len(files))

        for file_path in files:
            progress.update(main_task, description=f"Processing {file_path.name}...")

            is_video = is_supported_video(file_path)
            output_dir = output or file_path.parent
            file_output = output_dir / f"{file_path.stem}{suffix}{'.mp4' if is_video else '.png'}"

            # a.jpg and a.png both map to a_watermarked.png
            if file_output in written or file_output == file_path:
                console.print(f"  [yellow]Skipping {file_path}:[/yellow] would overwrite {file_output}")
                progress.advance(main_task)
                continue
            written.add(file_output)

            if is_video:
                frame_task = progress.add_task("  Frames...", total=None)

                def video_progress(current: int, total: int):
                    progress.update(frame_task, completed=current, total=total or None)

                result = add_watermark_to_video(
                    file_path, file_output, text, font_size, fonts=fonts, progress_callback=video_progress
                )
                progress.remove_task(frame_task)
            else:
                result = add_watermark_to_image(file_path, file_output, text, font_size, fonts=fonts)

            if result:
                kind = "Video" if is_video else "Image"
                console.print(f"  [green]{kind} saved:[/green] {result.output_path}")
            else:
                failures += 1
                console.print(f"  [red]Error processing {file_path}:[/red] {result.error}")

            progress.advance(main_task)

    if failures:
        console.print(f"[bold red]{failures} of {len(files)} file(s) failed[/bold red]")
        raise typer.Exit(1)

    console.print("[bold green]Done![/bold green]")


@app.command()
def info():
    """Display information about supported formats and the watermark layout."""
    r, g, b, a = FILL_COLOR
    console.print(
        Panel(
            "[bold]Tiled Watermark[/bold]\n\n"
            "Repeats the watermark text in a grid rotated by "
            f"{WATERMARK_ANGLE}° across the whole image or every video frame.\n\n"
            "[cyan]Layout:[/cyan]\n"
            f"  - Horizontal pitch: {TEXT_X_REPEAT_FACTOR} x font size x text length\n"
            f"  - Vertical pitch: {TEXT_Y_REPEAT_FACTOR} x font size\n"
            f"  - Color: rgb({r}, {g}, {b}) at alpha {a}/255\n\n"
            f"[cyan]Supported Image Formats:[/cyan] {', '.join(sorted(SUPPORTED_IMAGE_FORMATS))}\n"
            f"[cyan]Supported Video Formats:[/cyan] {', '.join(sorted(SUPPORTED_VIDEO_FORMATS))}\n"
            "[cyan]Image Output:[/cyan] PNG\n"
            f"[cyan]Video Output:[/cyan] MP4 (H.264, {VIDEO_BITRATE // 1_000_000} Mbps), audio copied\n",
            title="About",
            border_style="blue",
        )
    )


if __name__ == "__main__":
    app()
