"""Image pipeline: convert, upscale, optionally rescale and re-encode."""
import logging
import os
from pathlib import Path
from typing import List, Optional

from .config import Config
from .errors import EnhancementError, ErrorContext, PartialArtifactError, ProcessError
from .maid import Maid
from .media import ImageMedia, StageResult
from .process import execute
from .reporting import JobReporter
from .toolchain import Toolchain
from .upscaler import UPSCALER_FORMATS, upscale
from .utils.fs import get_filename

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    return int(value + 0.5)


def lanczos_filter(width: int, height: int, scale: float) -> str:
    """Rescale filter targeting the requested scale of the original dimensions."""
    return f"scale={round_half_up(width * scale)}:{round_half_up(height * scale)}:flags=lanczos"


def build_jpg_args(source: Path, destination: Path, config: Config, rescale: Optional[str]) -> List[str]:
    """Flatten transparency over a solid background and encode to jpg."""
    options = config.image.jpg
    graph = "[1:v][0:v]scale2ref[bg][img];[bg][img]overlay=shortest=1"
    if rescale:
        graph += f",{rescale}"
    return [
        "-y",
        "-i", str(source),
        "-f", "lavfi", "-i", f"color=c={options.background}",
        "-filter_complex", graph,
        "-frames:v", "1",
        "-c:v", "mjpeg",
        "-qmin", "1",
        "-q:v", str(options.quality),
        "-update", "1",
        str(destination),
    ]


def build_webp_args(source: Path, destination: Path, config: Config, rescale: Optional[str]) -> List[str]:
    options = config.image.webp
    args = ["-y", "-i", str(source)]
    if rescale:
        args += ["-vf", rescale]
    args += ["-frames:v", "1", "-c:v", "libwebp", "-quality", str(options.quality)]
    if options.preset != "none":
        args += ["-preset", options.preset]
    args.append(str(destination))
    return args


def build_png_args(source: Path, destination: Path, config: Config, rescale: Optional[str]) -> List[str]:
    args = ["-y", "-i", str(source)]
    if rescale:
        args += ["-vf", rescale]
    args += ["-frames:v", "1", "-c:v", "png", "-update", "1", str(destination)]
    return args


OUTPUT_BUILDERS = {
    "jpg": build_jpg_args,
    "webp": build_webp_args,
    "png": build_png_args,
}


def upscale_image(
    media: ImageMedia,
    config: Config,
    toolchain: Toolchain,
    job_id: str,
    reporter: JobReporter,
) -> StageResult:
    """Upscale a single image.

    Args:
        media: Probed input image
        config: Job configuration
        toolchain: Resolved binaries
        job_id: Unique id used in temporary file names
        reporter: Job reporter

    Returns:
        StageResult pointing at ``<dir>/<name>-tmp<job>.<format>``

    Raises:
        EnhancementError: Conversion or upscaling failed
        PartialArtifactError: The final transcode failed, its output was deleted
    """
    directory = media.path.parent
    name = get_filename(media.path)
    fmt = config.image.format
    output_path = directory / f"{name}-tmp{job_id}.{fmt}"
    upscaled_path = directory / f"{name}-tmp{job_id}.upscaled.png"
    source = media.path

    with Maid(on_log=reporter.log) as maid:
        if media.container not in UPSCALER_FORMATS:
            reporter.log(f'Input type "{media.container}" is not supported by the upscaler, converting to temporary png...')
            source = directory / f"{name}-tmp{job_id}.src.png"
            maid.rm(source, "converted source")
            try:
                execute(
                    toolchain.require("ffmpeg"),
                    ["-y", "-i", media.path, "-frames:v", "1", "-c:v", "png", "-update", "1", source],
                    cwd=directory,
                    on_log=reporter.log,
                )
            except ProcessError as e:
                raise EnhancementError(
                    f"Failed to convert {media.path.name} to png",
                    ErrorContext(stage="image", operation="convert", input_file=str(media.path)),
                ) from e

        reporter.stage("upscaling image")
        maid.rm(upscaled_path, "upscaled image")
        try:
            outcome = upscale(
                source,
                upscaled_path,
                "png",
                config.upscale,
                toolchain,
                on_progress=reporter.progress,
                on_log=reporter.log,
                poll_interval=config.poll_interval,
            )
        except ProcessError as e:
            raise EnhancementError(
                f"Upscaling {media.path.name} failed",
                ErrorContext(stage="image", operation="upscale", input_file=str(source)),
            ) from e
        reporter.progress(None)

        rescale = None
        if outcome.scale != config.upscale.scale:
            rescale = lanczos_filter(media.width, media.height, config.upscale.scale)
            logger.debug(f"Achieved {outcome.scale}x instead of {config.upscale.scale}x, rescaling with {rescale}")

        if fmt == "png" and rescale is None:
            reporter.log(f'Moving upscaled image to "{output_path}"')
            os.replace(upscaled_path, output_path)
            return StageResult(path=output_path, container=fmt)

        reporter.stage("encoding image")
        args = OUTPUT_BUILDERS[fmt](upscaled_path, output_path, config, rescale)

        output_maid = Maid(on_log=reporter.log)
        output_maid.rm(output_path, "partial output")
        try:
            execute(toolchain.require("ffmpeg"), args, cwd=directory, on_log=reporter.log)
        except ProcessError as e:
            output_maid.cleanup()
            raise PartialArtifactError(
                f"Encoding upscaled image to {fmt} failed",
                ErrorContext(
                    stage="image",
                    operation="encode",
                    input_file=str(upscaled_path),
                    output_file=str(output_path),
                ),
            ) from e
        output_maid.forget()

        return StageResult(path=output_path, container=fmt)
