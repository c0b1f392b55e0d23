#!/usr/bin/env python3
"""
mediaupscale CLI
Command-line interface for upscaling images and videos.
"""

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from . import __version__
from .config import (
    AUDIO_CODECS,
    FRAME_FORMATS,
    GIF_DITHERING,
    IMAGE_FORMATS,
    PREFERRED_CONTAINERS,
    VIDEO_CODECS,
    WEBM_CODECS,
    WEBP_PRESETS,
    X26X_PRESETS,
)
from .errors import UpscaleError, format_error
from .processor import process
from .reporting import RichReporter
from .toolchain import EXECUTABLES, Toolchain
from .upscaler import MODELS
from .utils.config_file import ConfigFileManager
from .utils.logging import add_logging_arguments, configure_from_cli

console = Console(stderr=True)

# CLI destination -> (config section, option name)
OPTION_MAP = {
    "model": ("upscale", "model"),
    "scale": ("upscale", "scale"),
    "denoise": ("upscale", "denoise"),
    "tile_size": ("upscale", "tile_size"),
    "gpu_id": ("upscale", "gpu_id"),
    "load_proc_save": ("upscale", "load_proc_save"),
    "tta": ("upscale", "tta"),
    "image_format": ("image", "format"),
    "jpg_quality": ("image", "jpg", "quality"),
    "jpg_background": ("image", "jpg", "background"),
    "webp_quality": ("image", "webp", "quality"),
    "webp_preset": ("image", "webp", "preset"),
    "inherit_container": ("video", "inherit_container"),
    "preferred_container": ("video", "preferred_container"),
    "ensure_subtitles": ("video", "ensure_subtitles"),
    "mp4_codec": ("video", "mp4_codec"),
    "webm_codec": ("video", "webm_codec"),
    "mkv_codec": ("video", "mkv_codec"),
    "h264_crf": ("video", "h264", "crf"),
    "h264_preset": ("video", "h264", "preset"),
    "h265_crf": ("video", "h265", "crf"),
    "h265_preset": ("video", "h265", "preset"),
    "vp8_crf": ("video", "vp8", "crf"),
    "vp9_crf": ("video", "vp9", "crf"),
    "av1_crf": ("video", "av1", "crf"),
    "two_pass": None,
    "gif_colors": ("video", "gif", "colors"),
    "gif_dithering": ("video", "gif", "dithering"),
    "frame_format": ("video", "frame_format"),
    "audio_codec": ("video", "audio_codec"),
    "audio_channel_bitrate": ("video", "audio_channel_bitrate"),
    "pixel_format": ("video", "pixel_format"),
    "destination": ("saving", "destination"),
    "overwrite": ("saving", "overwrite"),
    "delete_original": ("saving", "delete_original"),
    "waifu2x_path": ("tools", "waifu2x"),
    "realesrgan_path": ("tools", "realesrgan"),
    "ffmpeg_path": ("tools", "ffmpeg"),
    "ffprobe_path": ("tools", "ffprobe"),
}


def _set_nested(target: Dict[str, Any], keys: tuple, value: Any) -> None:
    for key in keys[:-1]:
        target = target.setdefault(key, {})
    target[keys[-1]] = value


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """Nested config mapping of every option given on the command line."""
    overrides: Dict[str, Any] = {}
    for dest, keys in OPTION_MAP.items():
        value = getattr(args, dest, None)
        if value is None:
            continue
        if dest == "two_pass":
            for codec in ("vp8", "vp9", "av1"):
                _set_nested(overrides, ("video", codec, "two_pass"), value)
            continue
        _set_nested(overrides, keys, value)
    return overrides


def cmd_upscale(args: argparse.Namespace) -> int:
    """Upscale every input file, returns the exit code."""
    manager = ConfigFileManager(
        user_config_path=Path(args.config) if args.config else ConfigFileManager().user_config_path,
    )
    try:
        manager.load()
        config = manager.build_config(profile=args.profile, overrides=overrides_from_args(args))
    except UpscaleError as e:
        console.print(f"[bold red]Error:[/bold red] {format_error(e)}")
        return 1

    toolchain = Toolchain.resolve(config.tools)
    failures = 0

    for input_file in args.inputs:
        reporter = RichReporter(input_name=Path(input_file).name, console=console)
        try:
            with reporter.live_display():
                process(input_file, config, reporter=reporter, toolchain=toolchain)
        except UpscaleError:
            failures += 1

    if len(args.inputs) > 1:
        console.print(f"{len(args.inputs) - failures}/{len(args.inputs)} files upscaled")
    return 1 if failures else 0


def cmd_config(args: argparse.Namespace) -> int:
    manager = ConfigFileManager()
    action = args.config_action

    if action == "init":
        path = manager.init_config("project" if args.project else "user")
        console.print(f"Created config file: {path}")
        return 0

    try:
        manager.load()
    except UpscaleError as e:
        console.print(f"[bold red]Error:[/bold red] {format_error(e)}")
        return 1

    if action == "profiles":
        profiles = manager.list_profiles()
        if not profiles:
            console.print("No profiles defined")
        for name in profiles:
            print(name)
        return 0

    if not manager.config_exists():
        console.print("No config file found, showing nothing. Create one with: mediaupscale config init")
    print(manager.show_config(), end="")
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Show which external binaries were found."""
    manager = ConfigFileManager()
    try:
        manager.load()
        config = manager.build_config()
    except UpscaleError as e:
        console.print(f"[bold red]Error:[/bold red] {format_error(e)}")
        return 1

    status = Toolchain.resolve(config.tools).status()

    table = Table(title="External binaries")
    table.add_column("Tool", style="bold")
    table.add_column("Executable")
    table.add_column("Path")
    for name, path in status.items():
        table.add_row(name, EXECUTABLES[name], str(path) if path else "[red]not found[/red]")
    console.print(table)

    models = Table(title="Models")
    models.add_column("Model", style="bold")
    models.add_column("Binary")
    for name, info in MODELS.items():
        models.add_row(name, info.kind.value)
    console.print(models)

    return 0 if status["ffmpeg"] and status["ffprobe"] else 1


def _add_bool(group: argparse._ArgumentGroup, name: str, help: str) -> None:
    group.add_argument(f"--{name}", dest=name.replace("-", "_"), action=argparse.BooleanOptionalAction, default=None, help=help)


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog="mediaupscale",
        description="mediaupscale - upscale images and videos with waifu2x and Real-ESRGAN",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Upscale an image 2x with the default waifu2x model
  mediaupscale upscale photo.jpg

  # Upscale a video 4x with Real-ESRGAN into an mkv
  mediaupscale upscale clip.mp4 --model realesrgan-x4plus --scale 4 --preferred-container mkv --no-inherit-container

  # Use a profile from ~/.mediaupscale/config.yaml
  mediaupscale upscale episode.mkv --profile anime

  # Save next to the input with a custom name
  mediaupscale upscale photo.png --destination "{dir}/{name}@{job}.{ext}"
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    add_logging_arguments(parser)

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # upscale
    upscale_parser = subparsers.add_parser("upscale", help="Upscale images and videos")
    upscale_parser.add_argument("inputs", nargs="+", help="Input files")
    upscale_parser.add_argument("--config", help="Config file to use instead of ~/.mediaupscale/config.yaml")
    upscale_parser.add_argument("--profile", help="Named profile from the config files")

    group = upscale_parser.add_argument_group("upscaler")
    group.add_argument("--model", choices=list(MODELS), help="Upscaling model (default: models-cunet)")
    group.add_argument("--scale", type=float, help="Scale factor (default: 2)")
    group.add_argument("--denoise", type=int, choices=[-1, 0, 1, 2, 3], help="waifu2x denoise level (default: 1)")
    group.add_argument("--tile-size", help='Tile size, "0" = auto (default: 0)')
    group.add_argument("--gpu-id", help='GPU id, "auto", "-1" for CPU, "0,1" for multi-gpu')
    group.add_argument("--load-proc-save", help="Thread counts load:proc:save (default: 1:2:2)")
    _add_bool(group, "tta", "Test-time augmentation, slower but better")

    group = upscale_parser.add_argument_group("images")
    group.add_argument("--image-format", choices=IMAGE_FORMATS, help="Output image format (default: png)")
    group.add_argument("--jpg-quality", type=int, help="jpg quality, 1 = best, 31 = worst (default: 3)")
    group.add_argument("--jpg-background", help="Background color jpg transparency is flattened on")
    group.add_argument("--webp-quality", type=int, help="webp quality, 1 = worst, 100 = best (default: 80)")
    group.add_argument("--webp-preset", choices=WEBP_PRESETS, help="libwebp preset (default: picture)")

    group = upscale_parser.add_argument_group("videos")
    _add_bool(group, "inherit-container", "Reuse the input container when supported")
    group.add_argument("--preferred-container", choices=PREFERRED_CONTAINERS, help="Fallback container (default: mp4)")
    _add_bool(group, "ensure-subtitles", "Force mkv when the input has subtitles")
    group.add_argument("--mp4-codec", choices=VIDEO_CODECS, help="Codec for mp4 (default: h264)")
    group.add_argument("--webm-codec", choices=WEBM_CODECS, help="Codec for webm (default: vp8)")
    group.add_argument("--mkv-codec", choices=VIDEO_CODECS, help="Codec for mkv (default: h264)")
    group.add_argument("--h264-crf", type=int, help="h264 CRF (default: 23)")
    group.add_argument("--h264-preset", choices=X26X_PRESETS, help="h264 preset (default: medium)")
    group.add_argument("--h265-crf", type=int, help="h265 CRF (default: 28)")
    group.add_argument("--h265-preset", choices=X26X_PRESETS, help="h265 preset (default: medium)")
    group.add_argument("--vp8-crf", type=int, help="vp8 CRF (default: 10)")
    group.add_argument("--vp9-crf", type=int, help="vp9 CRF (default: 30)")
    group.add_argument("--av1-crf", type=int, help="av1 CRF (default: 30)")
    _add_bool(group, "two-pass", "Two-pass encoding for vp8, vp9 and av1")
    group.add_argument("--gif-colors", type=int, help="Max gif palette colors (default: 256)")
    group.add_argument("--gif-dithering", choices=GIF_DITHERING, help="gif dithering (default: bayer)")
    group.add_argument("--frame-format", choices=FRAME_FORMATS, help="Intermediate frame format (default: png)")
    group.add_argument("--audio-codec", choices=AUDIO_CODECS, help="Audio codec when re-encoding (default: libopus)")
    group.add_argument("--audio-channel-bitrate", type=int, help="Kb/s per audio channel (default: 64)")
    group.add_argument("--pixel-format", help="Output pixel format (default: yuv420p)")

    group = upscale_parser.add_argument_group("saving")
    group.add_argument("--destination", help="Destination template (default: {dir}/{name}-upscaled.{ext})")
    _add_bool(group, "overwrite", "Overwrite existing files")
    _add_bool(group, "delete-original", "Delete the input after a successful upscale")

    group = upscale_parser.add_argument_group("binaries")
    group.add_argument("--waifu2x-path", help="Path to waifu2x-ncnn-vulkan")
    group.add_argument("--realesrgan-path", help="Path to realesrgan-ncnn-vulkan")
    group.add_argument("--ffmpeg-path", help="Path to ffmpeg")
    group.add_argument("--ffprobe-path", help="Path to ffprobe")
    upscale_parser.set_defaults(func=cmd_upscale)

    # config
    config_parser = subparsers.add_parser("config", help="Manage configuration files")
    config_subparsers = config_parser.add_subparsers(dest="config_action")
    config_subparsers.add_parser("show", help="Show the merged configuration")
    config_subparsers.add_parser("profiles", help="List profiles")
    init_parser = config_subparsers.add_parser("init", help="Create a config file with defaults")
    init_parser.add_argument("--project", action="store_true", help="Create .mediaupscale.yaml in the current directory")
    config_parser.set_defaults(func=cmd_config, config_action="show")

    # check
    check_parser = subparsers.add_parser("check", help="Check external binaries")
    check_parser.set_defaults(func=cmd_check)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_from_cli(
        log_level=getattr(args, "log_level", "INFO"),
        log_format=getattr(args, "log_format", "text"),
        log_file=getattr(args, "log_file", None),
    )

    if not args.command:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except KeyboardInterrupt:
        console.print("\n\nOperation cancelled by user")
        return 1


if __name__ == "__main__":
    sys.exit(main())
