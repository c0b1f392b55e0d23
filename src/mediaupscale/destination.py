"""
Destination paths - where a finished job's file is saved.

The destination is a template with variables:
- {dir} - Directory of the input file
- {name} - Input filename without extension
- {ext} - Extension of the produced file (png, jpg, mp4, mkv...)
- {container} - Same as {ext}, kept for readability in templates
- {job} - Job id
- {date} - Current date (YYYY-MM-DD)
- {time} - Current time (HH-MM-SS)

Relative templates are resolved against the input file's directory.
"""

import logging
import shutil
import string
from datetime import datetime
from pathlib import Path
from typing import Dict, Union

from .config import SavingOptions
from .errors import ConfigurationError, ErrorContext
from .utils.fs import delete_path, get_filename

logger = logging.getLogger(__name__)

TEMPLATE_VARIABLES = ("dir", "name", "ext", "container", "job", "date", "time")
MAX_UNIQUE_ATTEMPTS = 9999


def _template_error(message: str, template: str) -> ConfigurationError:
    return ConfigurationError(
        f"Destination template error: {message}",
        ErrorContext(stage="setup", operation="check_template", additional_info={"template": template}),
    )


def check_template(saving: SavingOptions) -> None:
    """Validate the destination template before any work is done.

    Raises:
        ConfigurationError: Empty template, malformed braces, unknown or
            formatted variables
    """
    template = saving.destination
    if not template or not template.strip():
        raise _template_error("template is empty", template)

    try:
        fields = list(string.Formatter().parse(template))
    except ValueError as e:
        raise _template_error(str(e), template) from e

    for _, field_name, format_spec, conversion in fields:
        if field_name is None:
            continue
        if field_name not in TEMPLATE_VARIABLES:
            raise _template_error(
                f'unknown variable "{{{field_name}}}", available: '
                + ", ".join(f"{{{name}}}" for name in TEMPLATE_VARIABLES),
                template,
            )
        if format_spec or conversion:
            raise _template_error(f'variable "{{{field_name}}}" can\'t have a format', template)

    if template.rstrip().endswith(("/", "\\")):
        raise _template_error("template must end with a file name", template)


def _build_variables(input_path: Path, container: str, job_id: str) -> Dict[str, str]:
    now = datetime.now()
    return {
        "dir": str(input_path.parent),
        "name": get_filename(input_path),
        "ext": container,
        "container": container,
        "job": job_id,
        "date": now.strftime("%Y-%m-%d"),
        "time": now.strftime("%H-%M-%S"),
    }


def format_destination(input_path: Union[str, Path], container: str, saving: SavingOptions, job_id: str = "") -> Path:
    """Expand the template into an absolute destination path."""
    input_path = Path(input_path)
    check_template(saving)
    destination = Path(saving.destination.format(**_build_variables(input_path, container, job_id))).expanduser()
    if not destination.is_absolute():
        destination = input_path.parent / destination
    return destination


def get_unique_path(path: Path) -> Path:
    """Return `path`, or the first free ``<stem> (n)<suffix>`` sibling."""
    if not path.exists():
        return path

    for counter in range(1, MAX_UNIQUE_ATTEMPTS + 1):
        candidate = path.with_name(f"{path.stem} ({counter}){path.suffix}")
        if not candidate.exists():
            return candidate

    raise ConfigurationError(f"Could not find a free file name for {path}")


def save_as_path(
    input_path: Union[str, Path],
    tmp_path: Union[str, Path],
    container: str,
    saving: SavingOptions,
    job_id: str = "",
) -> Path:
    """Move a temporary result to its final destination.

    Args:
        input_path: Original input file
        tmp_path: Temporary result produced by a pipeline
        container: Container/format of the result, becomes {ext}
        saving: Saving options
        job_id: Job id for the {job} variable

    Returns:
        Final path of the saved file
    """
    input_path = Path(input_path)
    tmp_path = Path(tmp_path)
    destination = format_destination(input_path, container, saving, job_id)

    if not saving.overwrite:
        destination = get_unique_path(destination)

    destination.parent.mkdir(parents=True, exist_ok=True)
    if saving.overwrite and destination.exists() and destination != tmp_path:
        delete_path(destination)

    logger.debug(f'Saving "{tmp_path}" as "{destination}"')
    shutil.move(str(tmp_path), str(destination))

    if saving.delete_original and input_path.exists() and input_path.resolve() != destination.resolve():
        logger.debug(f'Deleting original "{input_path}"')
        delete_path(input_path)

    return destination
