"""Configuration module for the mediaupscale pipeline."""
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from typing import Any, Dict, Optional, Type, TypeVar

T = TypeVar("T")

SCALE_STEPS = (1, 2, 4, 8, 16, 32)
IMAGE_FORMATS = ("png", "jpg", "webp")
FRAME_FORMATS = ("png", "jpg")
VIDEO_CONTAINERS = ("mp4", "webm", "mkv", "gif")
PREFERRED_CONTAINERS = ("mp4", "webm", "mkv")
VIDEO_CODECS = ("h264", "h265", "vp8", "vp9", "av1")
WEBM_CODECS = ("vp8", "vp9", "av1")
X26X_PRESETS = (
    "ultrafast", "superfast", "veryfast", "faster", "fast",
    "medium", "slow", "slower", "veryslow",
)
H264_TUNES = ("", "film", "animation", "grain", "stillimage", "fastdecode", "zerolatency")
H264_PROFILES = ("auto", "baseline", "main", "high")
H265_TUNES = ("", "grain", "zerolatency", "fastdecode")
WEBP_PRESETS = ("none", "default", "picture", "photo", "drawing", "icon", "text")
GIF_DITHERING = ("none", "bayer", "sierra2", "sierra2_4a")
AUDIO_CODECS = ("libopus", "libvorbis")


def _check_choice(name: str, value: Any, choices: tuple) -> None:
    if value not in choices:
        raise ValueError(f"{name} must be one of {', '.join(map(repr, choices))}, got {value!r}")


def _check_range(name: str, value: float, low: float, high: float) -> None:
    if not low <= value <= high:
        raise ValueError(f"{name} must be between {low} and {high}")


def _from_dict(cls: Type[T], data: Optional[Dict[str, Any]]) -> T:
    """Build a (possibly nested) options dataclass, ignoring unknown keys."""
    kwargs = {}
    for f in fields(cls):
        if not f.init or f.name not in (data or {}):
            continue
        value = data[f.name]
        default = f.default_factory() if callable(f.default_factory) else None  # type: ignore[misc]
        if is_dataclass(default) and isinstance(value, dict):
            value = _from_dict(type(default), value)
        kwargs[f.name] = value
    return cls(**kwargs)


@dataclass
class UpscaleOptions:
    """Options handed to the upscaler binary.

    Attributes:
        model: Model identifier, decides which binary runs (see upscaler.MODELS)
        scale: Requested scale factor, may be fractional
        denoise: waifu2x denoise level, -1 disables
        tile_size: Tile size, "0" = auto, "0,0" for multi-gpu
        gpu_id: "auto", "-1" for CPU, or "0,1" for multi-gpu
        load_proc_save: Thread counts as load:proc:save
        tta: Test-time augmentation, 8x slower
    """
    model: str = "models-cunet"
    scale: float = 2
    denoise: int = 1
    tile_size: str = "0"
    gpu_id: str = "auto"
    load_proc_save: str = "1:2:2"
    tta: bool = False

    def __post_init__(self) -> None:
        self.tile_size = str(self.tile_size)
        self.gpu_id = str(self.gpu_id)
        self.load_proc_save = str(self.load_proc_save)
        if self.scale <= 0:
            raise ValueError("scale must be positive")
        if self.scale > SCALE_STEPS[-1]:
            raise ValueError(f"scale must not exceed {SCALE_STEPS[-1]}")
        _check_range("denoise", self.denoise, -1, 3)


@dataclass
class JpgOptions:
    quality: int = 3  # 1: best, 31: worst
    background: str = "white"

    def __post_init__(self) -> None:
        _check_range("jpg.quality", self.quality, 1, 31)


@dataclass
class WebpOptions:
    quality: int = 80  # 1: worst, 100: best
    preset: str = "picture"

    def __post_init__(self) -> None:
        _check_range("webp.quality", self.quality, 1, 100)
        _check_choice("webp.preset", self.preset, WEBP_PRESETS)


@dataclass
class ImageOptions:
    format: str = "png"
    jpg: JpgOptions = field(default_factory=JpgOptions)
    webp: WebpOptions = field(default_factory=WebpOptions)

    def __post_init__(self) -> None:
        _check_choice("image.format", self.format, IMAGE_FORMATS)


@dataclass
class H264Options:
    crf: int = 23  # 0: lossless, 51: worst
    preset: str = "medium"
    tune: str = ""
    profile: str = "auto"

    def __post_init__(self) -> None:
        _check_range("h264.crf", self.crf, 0, 51)
        _check_choice("h264.preset", self.preset, X26X_PRESETS)
        _check_choice("h264.tune", self.tune, H264_TUNES)
        _check_choice("h264.profile", self.profile, H264_PROFILES)


@dataclass
class H265Options:
    crf: int = 28  # equivalent to h264's 23
    preset: str = "medium"
    tune: str = ""
    profile: str = "auto"

    def __post_init__(self) -> None:
        _check_range("h265.crf", self.crf, 0, 51)
        _check_choice("h265.preset", self.preset, X26X_PRESETS)
        _check_choice("h265.tune", self.tune, H265_TUNES)


@dataclass
class Vp8Options:
    crf: int = 10  # 0: lossless, 63: worst
    qmin: int = 4
    qmax: int = 20
    speed: int = 1  # 0: slowest/best, 5: fastest/worst
    two_pass: bool = True

    def __post_init__(self) -> None:
        _check_range("vp8.crf", self.crf, 0, 63)
        _check_range("vp8.qmin", self.qmin, 0, 63)
        _check_range("vp8.qmax", self.qmax, self.qmin, 63)
        _check_range("vp8.speed", self.speed, 0, 5)


@dataclass
class Vp9Options:
    crf: int = 30
    qmin: int = 4
    qmax: int = 40
    speed: int = 0
    threads: int = 0  # >1 enables tiling
    two_pass: bool = True

    def __post_init__(self) -> None:
        _check_range("vp9.crf", self.crf, 0, 63)
        _check_range("vp9.qmin", self.qmin, 0, 63)
        _check_range("vp9.qmax", self.qmax, self.qmin, 63)
        _check_range("vp9.speed", self.speed, 0, 5)
        if self.threads < 0:
            raise ValueError("vp9.threads must be non-negative")


@dataclass
class Av1Options:
    crf: int = 30
    qmin: int = 0
    qmax: int = 63
    max_keyframe_interval: float = 10.0  # seconds, 0 = encoder default
    speed: int = 1  # 0: slowest/best, 8: fastest/worst
    multithreading: bool = True
    two_pass: bool = True

    def __post_init__(self) -> None:
        _check_range("av1.crf", self.crf, 0, 63)
        _check_range("av1.qmin", self.qmin, 0, 63)
        _check_range("av1.qmax", self.qmax, self.qmin, 63)
        _check_range("av1.speed", self.speed, 0, 8)
        if self.max_keyframe_interval < 0:
            raise ValueError("av1.max_keyframe_interval must be non-negative")


@dataclass
class GifOptions:
    colors: int = 256
    dithering: str = "bayer"

    def __post_init__(self) -> None:
        _check_range("gif.colors", self.colors, 4, 256)
        _check_choice("gif.dithering", self.dithering, GIF_DITHERING)


@dataclass
class VideoOptions:
    """Video encoding options.

    Attributes:
        inherit_container: Reuse the input container when it is supported
        preferred_container: Fallback output container
        ensure_subtitles: Force mkv when the input has subtitle streams
        mp4_codec / webm_codec / mkv_codec: Codec per output container
        frame_format: Intermediate frame format, png (lossless) or jpg
        frame_quality: mjpeg quality for jpg frames (1: best, 31: worst)
        audio_codec: Codec used when audio has to be re-encoded
        audio_channel_bitrate: Kb/s per audio channel when re-encoding
        pixel_format: Output pixel format, ignored for gif
    """
    inherit_container: bool = True
    preferred_container: str = "mp4"
    ensure_subtitles: bool = True

    mp4_codec: str = "h264"
    webm_codec: str = "vp8"
    mkv_codec: str = "h264"

    h264: H264Options = field(default_factory=H264Options)
    h265: H265Options = field(default_factory=H265Options)
    vp8: Vp8Options = field(default_factory=Vp8Options)
    vp9: Vp9Options = field(default_factory=Vp9Options)
    av1: Av1Options = field(default_factory=Av1Options)
    gif: GifOptions = field(default_factory=GifOptions)

    frame_format: str = "png"
    frame_quality: int = 2
    audio_codec: str = "libopus"
    audio_channel_bitrate: int = 64
    pixel_format: str = "yuv420p"

    def __post_init__(self) -> None:
        _check_choice("video.preferred_container", self.preferred_container, PREFERRED_CONTAINERS)
        _check_choice("video.mp4_codec", self.mp4_codec, VIDEO_CODECS)
        _check_choice("video.webm_codec", self.webm_codec, WEBM_CODECS)
        _check_choice("video.mkv_codec", self.mkv_codec, VIDEO_CODECS)
        _check_choice("video.frame_format", self.frame_format, FRAME_FORMATS)
        _check_range("video.frame_quality", self.frame_quality, 1, 31)
        _check_choice("video.audio_codec", self.audio_codec, AUDIO_CODECS)
        if self.audio_channel_bitrate <= 0:
            raise ValueError("video.audio_channel_bitrate must be positive")


@dataclass
class SavingOptions:
    """Where the finished file goes.

    Attributes:
        destination: Path template, tokens: {name} {ext} {container} {job} {dir}
        overwrite: Replace an existing file instead of picking a free name
        delete_original: Remove the input file after a successful job
    """
    destination: str = "{dir}/{name}-upscaled.{ext}"
    overwrite: bool = False
    delete_original: bool = False


@dataclass
class ToolPaths:
    """Explicit binary locations. None means look them up on PATH."""
    waifu2x: Optional[str] = None
    realesrgan: Optional[str] = None
    ffmpeg: Optional[str] = None
    ffprobe: Optional[str] = None


@dataclass
class Config:
    """Configuration for one upscale job.

    Attributes:
        upscale: Upscaler binary options
        image: Image output options
        video: Video output options
        saving: Destination options
        tools: External binary paths
        poll_interval: Seconds between directory-mode progress polls
    """
    upscale: UpscaleOptions = field(default_factory=UpscaleOptions)
    image: ImageOptions = field(default_factory=ImageOptions)
    video: VideoOptions = field(default_factory=VideoOptions)
    saving: SavingOptions = field(default_factory=SavingOptions)
    tools: ToolPaths = field(default_factory=ToolPaths)
    poll_interval: float = 2.0

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a nested dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create configuration from a nested dictionary.

        Unknown keys are ignored, missing keys keep their defaults.
        """
        return _from_dict(cls, data)
