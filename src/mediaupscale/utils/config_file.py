"""Configuration file management for mediaupscale.

Settings are read from, in increasing precedence:

1. User config: ``~/.mediaupscale/config.yaml``
2. Project config: ``.mediaupscale.yaml`` in the current directory
3. A named profile from either file
4. CLI arguments

Each file holds a ``defaults`` mapping shaped like :class:`~mediaupscale.config.Config`
and an optional ``profiles`` mapping whose entries override ``defaults``.
"""

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..config import Config
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_TEMPLATE = """\
# mediaupscale configuration
# Location: ~/.mediaupscale/config.yaml or .mediaupscale.yaml (project-local)
#
# CLI arguments take precedence over these values, the project file
# overrides the user file.

defaults:
  upscale:
    # models-cunet, models-upconv_7_anime_style_art_rgb, models-upconv_7_photo
    # (waifu2x) or realesr-animevideov3, realesrgan-x4plus,
    # realesrgan-x4plus-anime (Real-ESRGAN)
    model: models-cunet
    scale: 2
    denoise: 1
    # gpu_id: auto
    # tile_size: "0"

  image:
    # png, jpg or webp
    format: png

  video:
    inherit_container: true
    preferred_container: mp4
    ensure_subtitles: true
    # frame_format: png

  saving:
    destination: "{dir}/{name}-upscaled.{ext}"
    overwrite: false

  # tools:
  #   ffmpeg: /usr/local/bin/ffmpeg

# Named profiles, use with: mediaupscale --profile <name> FILE
profiles:
  anime:
    upscale:
      model: realesr-animevideov3
      scale: 2

  photo:
    upscale:
      model: realesrgan-x4plus
      scale: 4
    image:
      format: jpg

  archive:
    video:
      mkv_codec: h265
      preferred_container: mkv
"""


def load_yaml_file(path: Path) -> Dict[str, Any]:
    """Read a YAML mapping from disk.

    Raises:
        ConfigurationError: If the file can't be read, parsed, or isn't a mapping
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"YAML parsing error in {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries, overlay wins. Inputs are not modified."""
    result = copy.deepcopy(base)

    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)

    return result


@dataclass
class ConfigFileManager:
    """Loads, merges and resolves configuration files into a :class:`Config`.

    Attributes:
        user_config_path: User-level config file
        project_config_path: Project-local config file
        loaded_config: Merged ``{"defaults": ..., "profiles": ...}`` mapping
    """

    user_config_path: Path = field(default_factory=lambda: Path.home() / ".mediaupscale" / "config.yaml")
    project_config_path: Path = field(default_factory=lambda: Path.cwd() / ".mediaupscale.yaml")
    loaded_config: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.user_config_path = Path(self.user_config_path)
        self.project_config_path = Path(self.project_config_path)

    def load(self) -> Dict[str, Any]:
        """Load and merge the user and project files.

        Returns:
            Merged configuration mapping

        Raises:
            ConfigurationError: If a file is malformed
        """
        config: Dict[str, Any] = {"defaults": {}, "profiles": {}}

        for path in (self.user_config_path, self.project_config_path):
            if path.exists():
                logger.debug(f"Loading config file {path}")
                config = deep_merge(config, load_yaml_file(path))

        self.loaded_config = config
        return config

    def list_profiles(self) -> List[str]:
        profiles = self.loaded_config.get("profiles") or {}
        return list(profiles.keys()) if isinstance(profiles, dict) else []

    def get_profile(self, profile_name: str) -> Optional[Dict[str, Any]]:
        """Get a profile merged over ``defaults``, or None if it doesn't exist."""
        profiles = self.loaded_config.get("profiles") or {}
        if profile_name not in profiles:
            return None

        defaults = self.loaded_config.get("defaults") or {}
        profile = profiles[profile_name]
        return deep_merge(defaults, profile) if isinstance(profile, dict) else dict(defaults)

    def build_config(
        self,
        profile: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> Config:
        """Resolve the final job configuration.

        Args:
            profile: Optional profile name
            overrides: Nested mapping of CLI values, wins over everything

        Returns:
            Validated Config

        Raises:
            ConfigurationError: Unknown profile or invalid values
        """
        if profile:
            settings = self.get_profile(profile)
            if settings is None:
                available = ", ".join(self.list_profiles()) or "none"
                raise ConfigurationError(f'Unknown profile "{profile}" (available: {available})')
        else:
            settings = copy.deepcopy(self.loaded_config.get("defaults") or {})

        if overrides:
            settings = deep_merge(settings, overrides)

        try:
            return Config.from_dict(settings)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(str(e)) from e

    def init_config(self, target: str = "user") -> Path:
        """Write the default template to the user or project file.

        Args:
            target: "user" or "project"

        Returns:
            Path to the created file
        """
        config_path = self.user_config_path if target == "user" else self.project_config_path
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(DEFAULT_CONFIG_TEMPLATE, encoding="utf-8")
        return config_path

    def show_config(self) -> str:
        return yaml.safe_dump(self.loaded_config, default_flow_style=False, sort_keys=False)

    def config_exists(self) -> bool:
        return self.user_config_path.exists() or self.project_config_path.exists()
