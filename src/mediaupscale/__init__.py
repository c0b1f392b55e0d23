"""mediaupscale - Image and video upscaling with waifu2x and Real-ESRGAN."""
__version__ = "1.0.0"

from .config import (
    Config,
    UpscaleOptions,
    ImageOptions,
    VideoOptions,
    SavingOptions,
    ToolPaths,
)

from .errors import (
    UpscaleError,
    FatalError,
    ConfigurationError,
    UnsupportedInputError,
    DependencyError,
    ProcessError,
    SpawnError,
    ExitCodeError,
    FrameExtractionError,
    EnhancementError,
    EncodingError,
    PartialArtifactError,
    ErrorContext,
    format_error,
)

from .media import (
    MediaType,
    ImageMedia,
    VideoMedia,
    AudioStream,
    SubtitleStream,
    UpscaleOutcome,
    StageResult,
)

from .maid import Maid
from .progress import ProgressTranslator, time_to_ms
from .dirclone import DirCloneCleaner
from .process import execute
from .upscaler import MODELS, achievable_scale, upscale
from .reporting import JobReporter, LoggingReporter, RichReporter
from .toolchain import Toolchain
from .processor import process

__all__ = [
    "__version__",
    # Configuration
    "Config",
    "UpscaleOptions",
    "ImageOptions",
    "VideoOptions",
    "SavingOptions",
    "ToolPaths",
    # Errors
    "UpscaleError",
    "FatalError",
    "ConfigurationError",
    "UnsupportedInputError",
    "DependencyError",
    "ProcessError",
    "SpawnError",
    "ExitCodeError",
    "FrameExtractionError",
    "EnhancementError",
    "EncodingError",
    "PartialArtifactError",
    "ErrorContext",
    "format_error",
    # Media
    "MediaType",
    "ImageMedia",
    "VideoMedia",
    "AudioStream",
    "SubtitleStream",
    "UpscaleOutcome",
    "StageResult",
    # Pipeline building blocks
    "Maid",
    "ProgressTranslator",
    "time_to_ms",
    "DirCloneCleaner",
    "execute",
    "MODELS",
    "achievable_scale",
    "upscale",
    # Jobs
    "JobReporter",
    "LoggingReporter",
    "RichReporter",
    "Toolchain",
    "process",
]
