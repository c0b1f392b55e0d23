"""
Media probing with ffprobe.
Classifies an input file as image or video and extracts the metadata the
pipelines need.
"""

import json
import logging
import subprocess
from fractions import Fraction
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import ErrorContext, ExitCodeError, SpawnError, UnsupportedInputError
from .media import AudioStream, ImageMedia, Media, SubtitleStream, VideoMedia
from .utils.fs import get_extension

logger = logging.getLogger(__name__)

# ffprobe format names of single-image demuxers, mapped to a container name
IMAGE_DEMUXERS = {
    "png_pipe": "png",
    "jpeg_pipe": "jpg",
    "webp_pipe": "webp",
    "bmp_pipe": "bmp",
    "tiff_pipe": "tiff",
    "gif_pipe": "gif",
    "dds_pipe": "dds",
    "psd_pipe": "psd",
    "qoi_pipe": "qoi",
    "pcx_pipe": "pcx",
    "sgi_pipe": "sgi",
    "xbm_pipe": "xbm",
    "ppm_pipe": "ppm",
    "pgm_pipe": "pgm",
    "pam_pipe": "pam",
    "tga": "tga",
}

IMAGE_CODECS = {
    "png", "mjpeg", "webp", "bmp", "tiff", "gif", "targa", "ppm", "pgm",
    "pam", "qoi", "jpeg2000", "dds", "psd", "pcx", "sgi", "xbm",
}


def run_ffprobe(ffprobe: Union[str, Path], path: Union[str, Path]) -> Dict[str, Any]:
    """
    Get raw stream and format information using ffprobe.

    Args:
        ffprobe: Path to the ffprobe binary
        path: File to probe

    Returns:
        Parsed ffprobe JSON output

    Raises:
        SpawnError: If ffprobe could not be started
        ExitCodeError: If ffprobe failed
        UnsupportedInputError: If the output is not valid JSON
    """
    cmd = [
        str(ffprobe),
        '-v', 'quiet',
        '-print_format', 'json',
        '-show_format',
        '-show_streams',
        str(path),
    ]
    logger.debug(f"Probing {path}")

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    except OSError as e:
        raise SpawnError(
            str(ffprobe),
            e.strerror or str(e),
            ErrorContext(stage="probe", operation="spawn", command=cmd),
        ) from e
    except subprocess.CalledProcessError as e:
        raise ExitCodeError(
            e.returncode,
            e.stderr or e.stdout or "",
            ErrorContext(stage="probe", operation="ffprobe", input_file=str(path), command=cmd),
        ) from e

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise UnsupportedInputError(f"Failed to parse ffprobe output for {path}: {e}") from e


def parse_frame_rate(value: Optional[str]) -> float:
    """
    Parse an ffprobe frame rate fraction.

    >>> parse_frame_rate("30000/1001")
    29.97002997002997
    >>> parse_frame_rate("0/0")
    0.0
    """
    if not value:
        return 0.0
    try:
        num, _, den = value.partition('/')
        return float(Fraction(int(num), int(den or 1)))
    except (ValueError, ZeroDivisionError):
        return 0.0


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _frame_count(stream: Dict[str, Any]) -> Optional[int]:
    try:
        return int(stream['nb_frames'])
    except (KeyError, TypeError, ValueError):
        return None


def _video_streams(streams: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        s for s in streams
        if s.get('codec_type') == 'video' and not s.get('disposition', {}).get('attached_pic')
    ]


def _image_container(format_name: str, path: Path, codec: str) -> str:
    if format_name in IMAGE_DEMUXERS:
        return IMAGE_DEMUXERS[format_name]
    if format_name == 'image2':
        return get_extension(path) or codec
    return format_name


def _video_container(format_name: str, path: Path) -> str:
    # The QuickTime demuxer reports every member of its family at once,
    # matroska,webm is resolved later since it depends on subtitle streams.
    if format_name.startswith('mov,'):
        extension = get_extension(path)
        return extension if extension in format_name.split(',') else 'mp4'
    return format_name


def _is_image(format_name: str, stream: Dict[str, Any], duration_s: float) -> bool:
    if format_name in IMAGE_DEMUXERS or format_name == 'image2':
        return True
    if stream.get('codec_name') in IMAGE_CODECS:
        frames = _frame_count(stream)
        if frames is not None:
            return frames <= 1
        return duration_s == 0
    return False


def media_from_probe(path: Union[str, Path], info: Dict[str, Any]) -> Media:
    """
    Build a media descriptor from ffprobe output.

    Args:
        path: The probed file
        info: ffprobe JSON (streams + format)

    Returns:
        ImageMedia or VideoMedia

    Raises:
        UnsupportedInputError: If the file has no usable video stream
    """
    path = Path(path)
    streams = info.get('streams') or []
    fmt = info.get('format') or {}
    format_name = fmt.get('format_name', '')
    duration_s = _to_float(fmt.get('duration'))

    video_streams = _video_streams(streams)
    if not video_streams:
        raise UnsupportedInputError(
            f'Unsupported input "{path.name}": no image or video stream found.',
            ErrorContext(stage="probe", operation="classify", input_file=str(path)),
        )

    stream = video_streams[0]
    codec = stream.get('codec_name', '')
    width = int(stream.get('width') or 0)
    height = int(stream.get('height') or 0)

    if width <= 0 or height <= 0:
        raise UnsupportedInputError(
            f'Unsupported input "{path.name}": unknown dimensions.',
            ErrorContext(stage="probe", operation="classify", input_file=str(path)),
        )

    if _is_image(format_name, stream, duration_s):
        return ImageMedia(
            path=path,
            container=_image_container(format_name, path, codec),
            codec=codec,
            width=width,
            height=height,
        )

    framerate = parse_frame_rate(stream.get('r_frame_rate')) or parse_frame_rate(stream.get('avg_frame_rate'))
    if framerate <= 0:
        raise UnsupportedInputError(
            f'Unsupported input "{path.name}": unknown frame rate.',
            ErrorContext(stage="probe", operation="classify", input_file=str(path)),
        )

    audio_streams = [
        AudioStream(channels=int(s.get('channels') or 2), codec=s.get('codec_name'))
        for s in streams if s.get('codec_type') == 'audio'
    ]
    subtitle_streams = [
        SubtitleStream(codec=s.get('codec_name'))
        for s in streams if s.get('codec_type') == 'subtitle'
    ]

    return VideoMedia(
        path=path,
        container=_video_container(format_name, path),
        codec=codec,
        width=width,
        height=height,
        framerate=framerate,
        duration_ms=duration_s * 1000,
        audio_streams=audio_streams,
        subtitle_streams=subtitle_streams,
    )


def probe_media(ffprobe: Union[str, Path], path: Union[str, Path]) -> Media:
    """Probe a file and classify it as image or video."""
    media = media_from_probe(path, run_ffprobe(ffprobe, path))
    logger.debug(f"Probed {Path(path).name}: {media}")
    return media
