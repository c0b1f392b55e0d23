"""Invocation of the neural upscaler binaries.

Two binaries are supported, waifu2x-ncnn-vulkan and realesrgan-ncnn-vulkan.
The model decides which one runs and what scale it can actually produce.
Both accept either a single file or a whole directory as input.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from .config import SCALE_STEPS, UpscaleOptions
from .dirclone import DEFAULT_POLL_INTERVAL, DirCloneCleaner
from .errors import ConfigurationError, ErrorContext
from .media import UpscaleOutcome
from .process import execute
from .progress import ProgressTranslator
from .toolchain import Toolchain
from .utils.fs import prepare_empty_dir

logger = logging.getLogger(__name__)

UPSCALER_FORMATS = ("png", "jpg", "webp")


class UpscalerKind(Enum):
    WAIFU2X = "waifu2x"
    REALESRGAN = "realesrgan"


def _stepped_scale(requested: float) -> int:
    """Smallest supported scale step that is at least `requested`."""
    for step in SCALE_STEPS:
        if step >= requested:
            return step
    return SCALE_STEPS[-1]


def _animevideo_scale(requested: float) -> int:
    return 2 if requested == 2 else 4


def _fixed_4x(requested: float) -> int:
    return 4


@dataclass(frozen=True)
class ModelInfo:
    """A model and the binary that runs it.

    Attributes:
        kind: Binary that loads the model
        scale_rule: Maps a requested scale to the scale the model produces
    """
    kind: UpscalerKind
    scale_rule: Callable[[float], int]


MODELS: Dict[str, ModelInfo] = {
    "models-cunet": ModelInfo(UpscalerKind.WAIFU2X, _stepped_scale),
    "models-upconv_7_anime_style_art_rgb": ModelInfo(UpscalerKind.WAIFU2X, _stepped_scale),
    "models-upconv_7_photo": ModelInfo(UpscalerKind.WAIFU2X, _stepped_scale),
    "realesr-animevideov3": ModelInfo(UpscalerKind.REALESRGAN, _animevideo_scale),
    "realesrgan-x4plus": ModelInfo(UpscalerKind.REALESRGAN, _fixed_4x),
    "realesrgan-x4plus-anime": ModelInfo(UpscalerKind.REALESRGAN, _fixed_4x),
}


def get_model(model: str) -> ModelInfo:
    """Look up a model.

    Raises:
        ConfigurationError: If the model is unknown
    """
    try:
        return MODELS[model]
    except KeyError:
        raise ConfigurationError(
            f'Unknown model "{model}". Available: {", ".join(MODELS)}',
            ErrorContext(stage="upscale", operation="select_model"),
        ) from None


def achievable_scale(model: str, requested: float) -> int:
    """Scale the model produces when `requested` is asked for.

    >>> achievable_scale("models-cunet", 3)
    4
    >>> achievable_scale("realesrgan-x4plus", 2)
    4
    """
    return get_model(model).scale_rule(requested)


def build_upscaler_args(
    kind: UpscalerKind,
    source: Union[str, Path],
    destination: Union[str, Path],
    fmt: str,
    options: UpscaleOptions,
    scale: int,
) -> List[str]:
    """Build the argument vector for an upscaler binary.

    Args:
        kind: Which binary the arguments are for
        source: Input file or directory
        destination: Output file or directory
        fmt: Output format, png, jpg or webp
        options: Upscale options
        scale: Scale to ask the binary for, already reconciled with the model

    Returns:
        Ordered list of flags and values
    """
    if fmt not in UPSCALER_FORMATS:
        raise ConfigurationError(
            f'Invalid upscaler output format "{fmt}". Only {", ".join(UPSCALER_FORMATS)} are allowed.'
        )

    if kind is UpscalerKind.WAIFU2X:
        args = ["-n", str(options.denoise), "-s", str(scale), "-m", options.model]
    else:
        args = ["-n", options.model, "-s", str(scale)]

    args += ["-t", options.tile_size]
    if options.gpu_id and options.gpu_id != "auto":
        args += ["-g", options.gpu_id]
    if options.load_proc_save:
        args += ["-j", options.load_proc_save]
    if options.tta:
        args.append("-x")

    args += ["-f", fmt, "-i", str(source), "-o", str(destination)]
    return args


def upscale(
    source: Union[str, Path],
    destination: Union[str, Path],
    fmt: str,
    options: UpscaleOptions,
    toolchain: Toolchain,
    on_progress: Optional[Callable[[float, float], None]] = None,
    on_log: Optional[Callable[[str], None]] = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> UpscaleOutcome:
    """Run the upscaler over a file or a directory.

    In directory mode the destination directory is wiped and recreated, and
    progress comes from watching it fill up. In file mode progress is read
    from the binary's percentage output.

    Args:
        source: Input file or directory
        destination: Output file or directory
        fmt: Output format, png, jpg or webp
        options: Upscale options
        toolchain: Resolved binaries
        on_progress: Receives (current, total)
        on_log: Receives process output
        poll_interval: Seconds between directory polls

    Returns:
        UpscaleOutcome with the achieved scale

    Raises:
        ConfigurationError: Unknown model or format
        DependencyError: The binary for the model is missing
        SpawnError, ExitCodeError: The binary failed
    """
    source = Path(source)
    destination = Path(destination)
    model = get_model(options.model)
    scale = model.scale_rule(options.scale)
    args = build_upscaler_args(model.kind, source, destination, fmt, options, scale)
    binary = toolchain.require(model.kind.value)

    if scale != options.scale:
        logger.info(f"Model {options.model} can't produce {options.scale}x, upscaling {scale}x instead")

    if source.is_dir():
        prepare_empty_dir(destination)
        cleaner = DirCloneCleaner(source, destination, on_progress=on_progress, interval=poll_interval)
        cleaner.start()
        try:
            execute(binary, args, cwd=source.parent, on_log=on_log)
        finally:
            cleaner.dispose(wait=True)
    else:
        translator = ProgressTranslator(on_progress=on_progress, on_log=on_log, time=False)
        execute(binary, args, cwd=source.parent, on_output=translator, on_log=on_log)

    return UpscaleOutcome(scale=scale, paths=[destination])
