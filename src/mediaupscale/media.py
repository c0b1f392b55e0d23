"""Media descriptors produced by the prober and consumed by the pipelines."""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union


class MediaType(Enum):
    IMAGE = "image"
    VIDEO = "video"


@dataclass(frozen=True)
class AudioStream:
    channels: int
    codec: Optional[str] = None


@dataclass(frozen=True)
class SubtitleStream:
    codec: Optional[str] = None


@dataclass(frozen=True)
class ImageMedia:
    """A still image.

    Attributes:
        path: Input file
        container: Normalized format name (png, jpg, webp, bmp...)
        codec: Image codec (png, mjpeg, webp...)
        width: Pixel width
        height: Pixel height
    """
    path: Path
    container: str
    codec: str
    width: int
    height: int

    @property
    def type(self) -> MediaType:
        return MediaType.IMAGE


@dataclass(frozen=True)
class VideoMedia:
    """A video file with its audio and subtitle streams.

    Attributes:
        path: Input file
        container: Demuxer name (mp4, matroska,webm, gif...)
        codec: Codec of the first video stream
        width: Pixel width
        height: Pixel height
        framerate: Frames per second
        duration_ms: Duration in milliseconds
        audio_streams: One entry per audio stream, in stream order
        subtitle_streams: One entry per subtitle stream
    """
    path: Path
    container: str
    codec: str
    width: int
    height: int
    framerate: float
    duration_ms: float = 0
    audio_streams: List[AudioStream] = field(default_factory=list)
    subtitle_streams: List[SubtitleStream] = field(default_factory=list)

    @property
    def type(self) -> MediaType:
        return MediaType.VIDEO

    @property
    def has_subtitles(self) -> bool:
        return len(self.subtitle_streams) > 0


Media = Union[ImageMedia, VideoMedia]


@dataclass(frozen=True)
class UpscaleOutcome:
    """Result of one upscaler invocation.

    Attributes:
        scale: Scale the binary actually applied, may differ from the request
        paths: Produced file, or the destination directory in directory mode
    """
    scale: float
    paths: List[Path]


@dataclass(frozen=True)
class StageResult:
    """Temporary artifact produced by a pipeline, not yet saved to its destination."""
    path: Path
    container: str
