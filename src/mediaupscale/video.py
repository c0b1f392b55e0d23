"""Video pipeline.

Stages: extract frames, upscale the frame directory, encode the upscaled
frames back into a video (optionally in two passes), clean up.

The container and codec decisions and the ffmpeg argument construction are
pure functions so they can be tested without running anything.
"""
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from .config import Config, VideoOptions
from .errors import (
    EncodingError,
    EnhancementError,
    ErrorContext,
    FrameExtractionError,
    ProcessError,
)
from .maid import Maid
from .media import StageResult, VideoMedia
from .process import execute
from .progress import ProgressTranslator
from .reporting import JobReporter
from .toolchain import Toolchain
from .upscaler import upscale
from .utils.fs import get_extension, get_filename
from .utils.logging import get_logger

logger = get_logger("video")

SUPPORTED_CONTAINERS = ("mp4", "webm", "mkv", "gif")
NULL_SINK = "NUL" if os.name == "nt" else "/dev/null"

# ffmpeg muxer name per output container
MUXERS = {"mp4": "mp4", "webm": "webm", "mkv": "matroska", "gif": "gif"}


# =============================================================================
# Container and codec decisions
# =============================================================================

def normalize_container(container: str, path: Union[str, Path], has_subtitles: bool) -> str:
    """Resolve the demuxer id ffprobe shares between mkv and webm.

    >>> normalize_container("matroska,webm", "a.webm", False)
    'webm'
    >>> normalize_container("matroska,webm", "a.webm", True)
    'mkv'
    """
    if container == "matroska,webm":
        return "mkv" if get_extension(path) == "mkv" or has_subtitles else "webm"
    return container


def resolve_output_container(
    has_subtitles: bool,
    ensure_subtitles: bool,
    inherit_container: bool,
    input_container: str,
    preferred_container: str,
) -> str:
    """Pick the output container.

    Subtitles force mkv when ``ensure_subtitles`` is set, then the input
    container is reused when allowed and supported, otherwise the preferred
    container wins.
    """
    if has_subtitles and ensure_subtitles:
        return "mkv"
    if inherit_container and input_container in SUPPORTED_CONTAINERS:
        return input_container
    return preferred_container


def select_codec(container: str, options: VideoOptions) -> str:
    return {
        "mp4": options.mp4_codec,
        "webm": options.webm_codec,
        "mkv": options.mkv_codec,
        "gif": "gif",
    }[container]


def even_dimensions(width: int, height: int, scale: float) -> Tuple[int, int]:
    """Scaled dimensions rounded to the nearest even number, at least 2.

    >>> even_dimensions(641, 361, 2)
    (1282, 722)
    >>> even_dimensions(101, 51, 1.5)
    (152, 76)
    """
    def to_even(value: float) -> int:
        return max(2, int(value / 2 + 0.5) * 2)

    return to_even(width * scale), to_even(height * scale)


def format_number(value: float) -> str:
    """Render a number for an argument vector, integers without a decimal point."""
    return str(int(value)) if float(value).is_integer() else repr(float(value))


# =============================================================================
# Codec arguments
# =============================================================================

@dataclass
class TwoPass:
    """Arguments of both passes and the log files pass 1 leaves behind."""
    pass_args: Tuple[List[str], List[str]]
    log_files: List[Path]


@dataclass
class CodecArgs:
    video_args: List[str] = field(default_factory=list)
    filters: List[str] = field(default_factory=list)
    two_pass: Optional[TwoPass] = None


def make_two_pass(job_id: str, temp_dir: Union[str, Path, None] = None) -> TwoPass:
    """Create pass arguments sharing a job-unique pass log prefix."""
    prefix = Path(temp_dir or tempfile.gettempdir()) / f"mediaupscale-passlogfile-{job_id}"
    return TwoPass(
        pass_args=(
            ["-pass", "1", "-passlogfile", str(prefix)],
            ["-pass", "2", "-passlogfile", str(prefix)],
        ),
        log_files=[Path(f"{prefix}-0.log")],
    )


def _x26x_args(encoder: str, options) -> List[str]:
    args = ["-c:v", encoder, "-preset", options.preset]
    if options.tune:
        args += ["-tune", options.tune]
    if options.profile != "auto":
        args += ["-profile", options.profile]
    args += ["-crf", str(options.crf)]
    return args


def _h264(options: VideoOptions, framerate: float, job_id: str, temp_dir) -> CodecArgs:
    return CodecArgs(video_args=_x26x_args("libx264", options.h264))


def _h265(options: VideoOptions, framerate: float, job_id: str, temp_dir) -> CodecArgs:
    return CodecArgs(video_args=_x26x_args("libx265", options.h265))


def _vp8(options: VideoOptions, framerate: float, job_id: str, temp_dir) -> CodecArgs:
    vp8 = options.vp8
    args = ["-c:v", "libvpx"]
    if vp8.speed:
        args += ["-speed", str(vp8.speed)]
    args += [
        "-crf", str(vp8.crf),
        "-qmin", str(vp8.qmin),
        "-qmax", str(vp8.qmax),
        # alt-ref frames break encoding of some inputs (gifs)
        "-auto-alt-ref", "0",
    ]
    two_pass = make_two_pass(job_id, temp_dir) if vp8.two_pass else None
    return CodecArgs(video_args=args, two_pass=two_pass)


def _vp9(options: VideoOptions, framerate: float, job_id: str, temp_dir) -> CodecArgs:
    vp9 = options.vp9
    args = [
        "-c:v", "libvpx-vp9",
        "-quality", "good",
        "-crf", str(vp9.crf), "-b:v", "0",
        "-qmin", str(vp9.qmin),
        "-qmax", str(vp9.qmax),
    ]
    if vp9.threads > 1:
        args += ["-threads", str(vp9.threads), "-tile-columns", str(vp9.threads)]

    two_pass = None
    if vp9.two_pass:
        two_pass = make_two_pass(job_id, temp_dir)
        two_pass.pass_args[0].extend(["-speed", "4"])
        two_pass.pass_args[1].extend(["-speed", str(vp9.speed)])
    else:
        args += ["-speed", str(vp9.speed)]

    return CodecArgs(video_args=args, two_pass=two_pass)


def _av1(options: VideoOptions, framerate: float, job_id: str, temp_dir) -> CodecArgs:
    av1 = options.av1
    args = [
        "-c:v", "libaom-av1",
        "-crf", str(av1.crf), "-b:v", "0",
        "-qmin", str(av1.qmin),
        "-qmax", str(av1.qmax),
    ]
    if av1.max_keyframe_interval:
        args += ["-g", str(int(framerate * av1.max_keyframe_interval + 0.5))]
    args += ["-cpu-used", str(av1.speed)]
    if av1.multithreading:
        args += ["-row-mt", "1"]
    two_pass = make_two_pass(job_id, temp_dir) if av1.two_pass else None
    return CodecArgs(video_args=args, two_pass=two_pass)


def _gif(options: VideoOptions, framerate: float, job_id: str, temp_dir) -> CodecArgs:
    gif = options.gif
    palette = ";".join([
        "split[o1][o2]",
        f"[o1]palettegen=max_colors={gif.colors}[p]",
        "[o2]fifo[o3]",
        f"[o3][p]paletteuse=dither={gif.dithering}",
    ])
    return CodecArgs(filters=[palette])


CodecBuilder = Callable[[VideoOptions, float, str, Union[str, Path, None]], CodecArgs]

CODEC_BUILDERS: Dict[str, CodecBuilder] = {
    "h264": _h264,
    "h265": _h265,
    "vp8": _vp8,
    "vp9": _vp9,
    "av1": _av1,
    "gif": _gif,
}


def build_codec_args(
    codec: str,
    options: VideoOptions,
    framerate: float,
    job_id: str,
    temp_dir: Union[str, Path, None] = None,
) -> CodecArgs:
    """Encoder arguments, extra filters and two-pass state for a codec.

    Args:
        codec: h264, h265, vp8, vp9, av1 or gif
        options: Video options
        framerate: Input frame rate, used for the av1 keyframe interval
        job_id: Job id, used for the pass log file name
        temp_dir: Directory for pass log files, system temp dir by default
    """
    return CODEC_BUILDERS[codec](options, framerate, job_id, temp_dir)


# =============================================================================
# Encode arguments
# =============================================================================

@dataclass
class EncodePlan:
    """Everything needed to run the final encode, and pass 1 if any."""
    input_args: List[str]
    video_args: List[str]
    audio_args: List[str]
    output_container: str
    two_pass: Optional[TwoPass] = None

    def first_pass_args(self) -> List[str]:
        """Pass 1: no audio, output discarded."""
        if self.two_pass is None:
            raise ValueError("Single pass encode has no first pass")
        return [
            *self.input_args,
            *self.video_args,
            *self.two_pass.pass_args[0],
            "-an", "-f", "null", NULL_SINK,
        ]

    def final_args(self, output_path: Union[str, Path]) -> List[str]:
        output_args = list(self.two_pass.pass_args[1]) if self.two_pass else []
        output_args += ["-f", MUXERS[self.output_container]]
        return [*self.input_args, *self.video_args, *self.audio_args, *output_args, str(output_path)]


def build_encode_args(
    media: VideoMedia,
    frames_pattern: Union[str, Path],
    output_container: str,
    options: VideoOptions,
    job_id: str,
    rescale: Optional[str] = None,
    temp_dir: Union[str, Path, None] = None,
) -> EncodePlan:
    """Build the ffmpeg arguments muxing upscaled frames with the original streams.

    Input 0 is the original video (audio, subtitles, attachments), input 1
    the upscaled frame sequence.

    Args:
        media: Probed input video
        frames_pattern: Upscaled frames, e.g. ``out/%08d.png``
        output_container: mp4, webm, mkv or gif
        options: Video options
        job_id: Job id
        rescale: Optional scale filter applied before anything else
        temp_dir: Directory for pass log files
    """
    fps = format_number(media.framerate)
    has_subtitles = media.has_subtitles
    input_container = normalize_container(media.container, media.path, has_subtitles)

    input_args = [
        "-r", fps, "-i", str(media.path),
        "-r", fps, "-i", str(frames_pattern),
        "-r", fps,
        "-map", "1:v:0",
        "-map", "0:a?",
    ]
    if has_subtitles and output_container == "mkv":
        input_args += ["-map", "0:s?", "-map", "0:t?"]

    codec = select_codec(output_container, options)
    codec_args = build_codec_args(codec, options, media.framerate, job_id, temp_dir)

    filters = []
    if rescale:
        filters.append(rescale)
    # gif keeps its transparency only without a pixel format conversion
    if output_container != "gif":
        filters.append(f"format={options.pixel_format}")
    filters += codec_args.filters

    video_args = list(codec_args.video_args)
    if filters:
        video_args += ["-vf", ",".join(filters)]

    audio_args: List[str] = []
    if media.audio_streams and output_container != "gif":
        if input_container == output_container:
            audio_args += ["-c:a", "copy"]
        else:
            audio_args += ["-c:a", options.audio_codec]
            for index, stream in enumerate(media.audio_streams):
                audio_args += [f"-b:a:{index}", f"{options.audio_channel_bitrate * stream.channels}k"]

    return EncodePlan(
        input_args=input_args,
        video_args=video_args,
        audio_args=audio_args,
        output_container=output_container,
        two_pass=codec_args.two_pass,
    )


def build_extract_args(media: VideoMedia, frames_dir: Path, options: VideoOptions) -> List[str]:
    """Arguments dumping every frame of the input into ``frames_dir``."""
    if options.frame_format == "jpg":
        codec_args = ["-c:v", "mjpeg", "-q:v", str(options.frame_quality)]
    else:
        codec_args = ["-c:v", "png"]
    return ["-y", "-i", str(media.path), *codec_args, str(frames_dir / f"%08d.{options.frame_format}")]


# =============================================================================
# Pipeline
# =============================================================================

def upscale_video(
    media: VideoMedia,
    config: Config,
    toolchain: Toolchain,
    job_id: str,
    reporter: JobReporter,
    temp_dir: Union[str, Path, None] = None,
) -> StageResult:
    """Upscale a video.

    Args:
        media: Probed input video
        config: Job configuration
        toolchain: Resolved binaries
        job_id: Unique id used in temporary names
        reporter: Job reporter
        temp_dir: Directory for pass log files, system temp dir by default

    Returns:
        StageResult pointing at ``<dir>/<name>.tmp<job>`` and its container

    Raises:
        FrameExtractionError: ffmpeg failed to extract frames
        EnhancementError: The upscaler failed
        EncodingError: An encode pass failed, its partial output was deleted
    """
    options = config.video
    directory = media.path.parent
    name = get_filename(media.path)
    frames_dir = directory / f"[FRAMES-{job_id}] {name}"
    in_dir = frames_dir / "in"
    out_dir = frames_dir / "out"
    ffmpeg = toolchain.require("ffmpeg")

    def ffmpeg_output() -> ProgressTranslator:
        return ProgressTranslator(on_progress=reporter.progress, on_log=reporter.log, percent=False)

    with Maid(on_log=reporter.log) as maid:
        try:
            reporter.log(f'Creating directory for storing frames at "{frames_dir}"')
            maid.rm(frames_dir, "frames directory")
            in_dir.mkdir(parents=True)
            out_dir.mkdir()

            reporter.stage("extracting frames")
            try:
                execute(
                    ffmpeg,
                    build_extract_args(media, in_dir, options),
                    cwd=directory,
                    on_output=ffmpeg_output(),
                    on_log=reporter.log,
                )
            except ProcessError as e:
                raise FrameExtractionError(
                    f"Extracting frames from {media.path.name} failed",
                    ErrorContext(stage="video", operation="extract_frames", input_file=str(media.path)),
                ) from e
            reporter.progress(None)

            reporter.stage("upscaling frames")
            try:
                outcome = upscale(
                    in_dir,
                    out_dir,
                    options.frame_format,
                    config.upscale,
                    toolchain,
                    on_progress=reporter.progress,
                    on_log=reporter.log,
                    poll_interval=config.poll_interval,
                )
            except ProcessError as e:
                raise EnhancementError(
                    f"Upscaling frames of {media.path.name} failed",
                    ErrorContext(stage="video", operation="upscale_frames", input_file=str(in_dir)),
                ) from e
            reporter.progress(None)

            rescale = None
            if outcome.scale != config.upscale.scale:
                width, height = even_dimensions(media.width, media.height, config.upscale.scale)
                rescale = f"scale={width}:{height}:flags=lanczos"
                logger.debug(f"Achieved {outcome.scale}x instead of {config.upscale.scale}x, rescaling to {width}x{height}")

            input_container = normalize_container(media.container, media.path, media.has_subtitles)
            output_container = resolve_output_container(
                has_subtitles=media.has_subtitles,
                ensure_subtitles=options.ensure_subtitles,
                inherit_container=options.inherit_container,
                input_container=input_container,
                preferred_container=options.preferred_container,
            )
            plan = build_encode_args(
                media,
                out_dir / f"%08d.{options.frame_format}",
                output_container,
                options,
                job_id,
                rescale=rescale,
                temp_dir=temp_dir,
            )
            logger.info(
                f"Encoding {media.path.name}",
                container=output_container,
                codec=select_codec(output_container, options),
                two_pass=plan.two_pass is not None,
            )

            reporter.stage("encoding video")
            if plan.two_pass:
                for log_file in plan.two_pass.log_files:
                    maid.rm(log_file, "pass log file")

                reporter.stage("pass 1")
                try:
                    execute(ffmpeg, plan.first_pass_args(), cwd=directory, on_output=ffmpeg_output(), on_log=reporter.log)
                except ProcessError as e:
                    raise EncodingError(
                        "First encoding pass failed",
                        ErrorContext(stage="video", operation="encode_pass_1", input_file=str(media.path)),
                    ) from e
                reporter.stage("pass 2")

            tmp_path = directory / f"{name}.tmp{job_id}"
            try:
                execute(ffmpeg, plan.final_args(tmp_path), cwd=directory, on_output=ffmpeg_output(), on_log=reporter.log)
            except ProcessError as e:
                maid.rm(tmp_path, "partial output")
                raise EncodingError(
                    f"Encoding {output_container} failed",
                    ErrorContext(
                        stage="video",
                        operation="encode",
                        input_file=str(media.path),
                        output_file=str(tmp_path),
                    ),
                ) from e

            return StageResult(path=tmp_path, container=output_container)
        finally:
            reporter.stage("cleaning up")
