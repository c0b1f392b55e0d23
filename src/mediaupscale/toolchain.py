"""Resolution of the external binaries a job needs."""
import logging
import os
import platform
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from .config import ToolPaths
from .errors import DependencyError, ErrorContext

logger = logging.getLogger(__name__)

EXECUTABLES = {
    "waifu2x": "waifu2x-ncnn-vulkan",
    "realesrgan": "realesrgan-ncnn-vulkan",
    "ffmpeg": "ffmpeg",
    "ffprobe": "ffprobe",
}

INSTALL_HINTS = {
    "waifu2x": "Download a release from https://github.com/nihui/waifu2x-ncnn-vulkan/releases",
    "realesrgan": "Download a release from https://github.com/xinntao/Real-ESRGAN/releases",
    "ffmpeg": (
        "Please install FFmpeg:\n"
        "  Ubuntu/Debian: sudo apt-get install ffmpeg\n"
        "  macOS: brew install ffmpeg\n"
        "  Windows: Download from https://ffmpeg.org/download.html"
    ),
    "ffprobe": "Please install FFmpeg (includes ffprobe).",
}


def find_binary(name: str, configured: Optional[str] = None) -> Optional[Path]:
    """Find an executable.

    Lookup order: the configured path, PATH, then ``~/.mediaupscale/bin``.

    Args:
        name: Tool key, one of EXECUTABLES
        configured: Explicit path from configuration

    Returns:
        Path to the executable, or None when not found
    """
    if configured:
        path = Path(configured).expanduser()
        return path if path.exists() else None

    exe_name = EXECUTABLES[name]
    if platform.system() == "Windows":
        exe_name += ".exe"

    path_binary = shutil.which(exe_name)
    if path_binary:
        return Path(path_binary)

    search_paths = [
        Path.home() / ".mediaupscale" / "bin" / exe_name,
        Path.cwd() / "bin" / exe_name,
    ]
    if platform.system() == "Windows":
        search_paths.append(Path(os.environ.get("LOCALAPPDATA", "")) / "mediaupscale" / "bin" / exe_name)

    for path in search_paths:
        if path.exists():
            logger.debug(f"Found {name} at: {path}")
            return path

    return None


@dataclass
class Toolchain:
    """Paths of the external binaries. None marks a binary that wasn't found."""
    waifu2x: Optional[Path] = None
    realesrgan: Optional[Path] = None
    ffmpeg: Optional[Path] = None
    ffprobe: Optional[Path] = None

    @classmethod
    def resolve(cls, tools: Optional[ToolPaths] = None) -> "Toolchain":
        """Look up every binary, honoring explicitly configured paths."""
        tools = tools or ToolPaths()
        return cls(**{
            name: find_binary(name, getattr(tools, name))
            for name in EXECUTABLES
        })

    def require(self, name: str) -> Path:
        """Return the path of a binary the job can't run without.

        Raises:
            DependencyError: If the binary wasn't found
        """
        path = getattr(self, name)
        if path is None:
            raise DependencyError(
                f"{EXECUTABLES[name]} not found. {INSTALL_HINTS[name]}",
                ErrorContext(stage="setup", operation="resolve_binary", additional_info={"binary": name}),
            )
        return path

    def status(self) -> Dict[str, Optional[Path]]:
        return {name: getattr(self, name) for name in EXECUTABLES}
