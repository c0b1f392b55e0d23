"""Shared pytest fixtures for mediaupscale tests."""
import logging
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import pytest

from mediaupscale.config import Config
from mediaupscale.errors import ExitCodeError
from mediaupscale.media import AudioStream, ImageMedia, SubtitleStream, VideoMedia
from mediaupscale.reporting import JobReporter
from mediaupscale.toolchain import Toolchain
from mediaupscale.utils.logging import ROOT_LOGGER
from mediaupscale.video import NULL_SINK

FRAME_COUNT = 3


# ============================================================================
# Fakes
# ============================================================================

class FakeReporter(JobReporter):
    """Records everything a job reports."""

    def __init__(self):
        self.logs: List[str] = []
        self.progress_events: List[Tuple] = []
        self.stages: List[str] = []
        self.outputs: List[Path] = []
        self.errors: List[str] = []

    def log(self, text):
        self.logs.append(text)

    def progress(self, current, total=None):
        self.progress_events.append((current, total))

    def stage(self, name):
        self.stages.append(name)

    def output_file(self, path):
        self.outputs.append(path)

    def error(self, message):
        self.errors.append(message)


class FakeExecutor:
    """Stands in for ``process.execute``.

    Records every call as ``(binary name, args)`` and writes the files the
    real binary would have produced, so pipelines can run end to end.

    Args:
        fail_on: Predicate(binary_name, args), a True result raises ExitCodeError
    """

    def __init__(self, fail_on: Optional[Callable[[str, List[str]], bool]] = None):
        self.calls: List[Tuple[str, List[str]]] = []
        self.fail_on = fail_on

    def __call__(self, binary, args, cwd=None, on_output=None, on_log=None):
        name = Path(str(binary)).name
        args = [str(arg) for arg in args]
        self.calls.append((name, args))

        if self.fail_on and self.fail_on(name, args):
            if name == "ffmpeg":
                # A failing encode still leaves its pass log and a partial file behind
                self._write_pass_log(args)
                if args[-1] != NULL_SINK:
                    self._write(Path(args[-1]))
            raise ExitCodeError(1, f"{name} failed")

        if on_output:
            on_output("50.00%\n" if "-o" in args else "frame=1 time=00:00:00.50\n")

        if "-o" in args:
            self._upscale(Path(args[args.index("-i") + 1]), Path(args[args.index("-o") + 1]), args[args.index("-f") + 1])
        else:
            self._ffmpeg(args)

    def binaries(self) -> List[str]:
        return [name for name, _ in self.calls]

    def calls_to(self, name: str) -> List[List[str]]:
        return [args for binary, args in self.calls if binary == name]

    @staticmethod
    def _write(path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"data")

    def _upscale(self, source: Path, destination: Path, fmt: str) -> None:
        if source.is_dir():
            for item in sorted(source.iterdir()):
                self._write(destination / f"{item.stem}.{fmt}")
        else:
            self._write(destination)

    def _write_pass_log(self, args: List[str]) -> None:
        if "-passlogfile" in args and args[args.index("-pass") + 1] == "1":
            self._write(Path(f"{args[args.index('-passlogfile') + 1]}-0.log"))

    def _ffmpeg(self, args: List[str]) -> None:
        output = args[-1]
        self._write_pass_log(args)
        if output == NULL_SINK:
            return
        if "%08d" in output:
            for index in range(1, FRAME_COUNT + 1):
                self._write(Path(output.replace("%08d", f"{index:08d}")))
            return
        self._write(Path(output))


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo handler and propagation changes made by configure_logging."""
    logger = logging.getLogger(ROOT_LOGGER)
    handlers = list(logger.handlers)
    level = logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = True


@pytest.fixture
def reporter() -> FakeReporter:
    return FakeReporter()


@pytest.fixture
def toolchain() -> Toolchain:
    """Toolchain with every binary present. Paths are never executed."""
    bin_dir = Path("/opt/mediaupscale/bin")
    return Toolchain(
        waifu2x=bin_dir / "waifu2x-ncnn-vulkan",
        realesrgan=bin_dir / "realesrgan-ncnn-vulkan",
        ffmpeg=bin_dir / "ffmpeg",
        ffprobe=bin_dir / "ffprobe",
    )


@pytest.fixture
def fake_execute(monkeypatch) -> FakeExecutor:
    """Patch every module that spawns processes with one FakeExecutor."""
    executor = FakeExecutor()
    for module in ("mediaupscale.upscaler", "mediaupscale.image", "mediaupscale.video"):
        monkeypatch.setattr(f"{module}.execute", executor)
    return executor


@pytest.fixture
def config() -> Config:
    return Config(poll_interval=0.05)


@pytest.fixture
def png_image(tmp_path) -> ImageMedia:
    path = tmp_path / "photo.png"
    path.write_bytes(b"png")
    return ImageMedia(path=path, container="png", codec="png", width=640, height=480)


@pytest.fixture
def bmp_image(tmp_path) -> ImageMedia:
    path = tmp_path / "scan.bmp"
    path.write_bytes(b"bmp")
    return ImageMedia(path=path, container="bmp", codec="bmp", width=320, height=200)


@pytest.fixture
def mp4_video(tmp_path) -> VideoMedia:
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"mp4")
    return VideoMedia(
        path=path,
        container="mp4",
        codec="h264",
        width=640,
        height=360,
        framerate=30.0,
        duration_ms=1000,
        audio_streams=[AudioStream(channels=2, codec="aac")],
    )


@pytest.fixture
def mkv_video_with_subtitles(tmp_path) -> VideoMedia:
    path = tmp_path / "episode.mkv"
    path.write_bytes(b"mkv")
    return VideoMedia(
        path=path,
        container="matroska,webm",
        codec="h264",
        width=1280,
        height=720,
        framerate=23.976,
        duration_ms=1500,
        audio_streams=[AudioStream(channels=6, codec="ac3")],
        subtitle_streams=[SubtitleStream(codec="ass")],
    )
