"""
Filesystem and command-line helpers shared by the pipelines.
"""

import re
import shutil
from pathlib import Path
from typing import Iterable, Union

PathLike = Union[str, Path]

_UNSAFE_ARG = re.compile(r"[^a-zA-Z0-9\-_]")


def get_filename(path: PathLike) -> str:
    """Return the file name without its extension."""
    return Path(path).stem


def get_extension(path: PathLike) -> str:
    """Return the lowercased extension without the dot, `jpeg` folded into `jpg`."""
    extension = Path(path).suffix.strip()[1:].lower()
    return "jpg" if extension == "jpeg" else extension


def args_to_string(args: Iterable[object]) -> str:
    """Render an argument vector the way it would be typed in a console.

    Flags are kept as-is, values containing anything but letters, digits,
    dashes and underscores are double-quoted.
    """
    rendered = []
    for arg in args:
        value = str(arg)
        if value.startswith("-") or not _UNSAFE_ARG.search(value):
            rendered.append(value)
        else:
            rendered.append(f'"{value}"')
    return " ".join(rendered)


def delete_path(path: PathLike) -> None:
    """Delete a file or a directory tree. Missing paths are ignored."""
    path = Path(path)
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path, ignore_errors=True)
    else:
        path.unlink(missing_ok=True)


def prepare_empty_dir(path: PathLike) -> Path:
    """Delete anything at `path` and create an empty directory in its place."""
    path = Path(path)
    delete_path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path
