"""Job runner: probe an input, dispatch it to a pipeline, save the result."""
import time
import uuid
from pathlib import Path
from typing import Optional, Union

from . import destination
from .config import Config
from .errors import ErrorContext, StorageError, UnsupportedInputError, UpscaleError, format_error
from .image import upscale_image
from .maid import Maid
from .media import ImageMedia, VideoMedia
from .probe import probe_media
from .reporting import JobReporter, LoggingReporter
from .toolchain import Toolchain
from .utils.logging import get_logger
from .video import upscale_video

logger = get_logger("processor")


def new_job_id() -> str:
    return uuid.uuid4().hex[:8]


def process(
    input_path: Union[str, Path],
    config: Config,
    job_id: Optional[str] = None,
    reporter: Optional[JobReporter] = None,
    toolchain: Optional[Toolchain] = None,
) -> Path:
    """Upscale one file and save it to its destination.

    Args:
        input_path: Image or video to upscale
        config: Job configuration
        job_id: Unique id for temporary names, random when omitted
        reporter: Receives logs, progress and stages, logs only when omitted
        toolchain: Resolved binaries, looked up from config/PATH when omitted

    Returns:
        Path of the saved file

    Raises:
        ConfigurationError: Invalid destination template, raised before any
            subprocess runs
        UnsupportedInputError: Input is neither an image nor a video
        StorageError: A job file could not be created, moved or deleted
        UpscaleError: Any stage failure
    """
    input_path = Path(input_path)
    job_id = job_id or new_job_id()
    reporter = reporter or LoggingReporter()
    start = time.time()

    try:
        destination.check_template(config.saving)

        if not input_path.is_file():
            raise UnsupportedInputError(
                f'Input file "{input_path}" does not exist.',
                ErrorContext(stage="setup", operation="check_input", input_file=str(input_path)),
            )

        toolchain = toolchain or Toolchain.resolve(config.tools)
        media = probe_media(toolchain.require("ffprobe"), input_path)
        logger.stage_start(
            f"job {job_id}",
            input=input_path.name,
            media=media.type.value,
            size=f"{media.width}x{media.height}",
        )

        if isinstance(media, ImageMedia):
            result = upscale_image(media, config, toolchain, job_id, reporter)
        elif isinstance(media, VideoMedia):
            result = upscale_video(media, config, toolchain, job_id, reporter)
        else:
            raise UnsupportedInputError(f'Unsupported file type "{input_path.name}".')

        # The result is deleted unless it was saved
        with Maid(on_log=reporter.log) as maid:
            maid.rm(result.path, "unsaved result")
            output_path = destination.save_as_path(input_path, result.path, result.container, config.saving, job_id)
            maid.forget()
    except UpscaleError as e:
        _fail(e, job_id, reporter)
        raise
    except OSError as e:
        error = StorageError(
            f"File operation for {input_path.name} failed: {e}",
            ErrorContext(stage="job", operation="filesystem", input_file=str(input_path)),
        )
        _fail(error, job_id, reporter)
        raise error from e

    logger.stage_complete(f"job {job_id}", duration_seconds=time.time() - start, output=str(output_path))
    reporter.output_file(output_path)
    return output_path


def _fail(error: UpscaleError, job_id: str, reporter: JobReporter) -> None:
    fields = error.context.to_dict() if error.context else {}
    logger.debug(f"Job {job_id} failed", **fields)
    reporter.error(format_error(error))
