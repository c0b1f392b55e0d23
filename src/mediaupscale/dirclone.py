"""Progress and disk reclamation for directory-mode upscales.

The upscaler binaries print no per-file progress when given a whole
directory, so progress is inferred by watching the output directory fill up.
Source files that already have a counterpart in the destination are deleted
as soon as they are noticed, which caps peak disk usage at roughly one copy
of the frame set.
"""
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Dict, Optional, Set, Union

from .utils.fs import delete_path

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0


class DirCloneCleaner:
    """Polls a destination directory against a snapshot of a source directory.

    Files are matched by name only, extensions are ignored (``0001.png`` in
    the destination clones ``0001.jpg`` in the source).

    Example:
        >>> with DirCloneCleaner(frames_in, frames_out, on_progress=report):
        ...     execute(upscaler, args)
    """

    def __init__(
        self,
        source_dir: Union[str, Path],
        destination_dir: Union[str, Path],
        on_progress: Optional[Callable[[int, int], None]] = None,
        interval: float = DEFAULT_POLL_INTERVAL,
    ):
        """Initialize the cleaner.

        Args:
            source_dir: Directory with the files being upscaled
            destination_dir: Directory the upscaler writes into
            on_progress: Callback(cloned_count, total_count) after each tick
            interval: Seconds between ticks
        """
        self.source_dir = Path(source_dir)
        self.destination_dir = Path(destination_dir)
        self.on_progress = on_progress
        self.interval = interval

        # filename -> extension (with the dot)
        self.source_files: Optional[Dict[str, str]] = None
        self.cloned: Set[str] = set()

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_disposed(self) -> bool:
        return self._stop_event.is_set()

    def __enter__(self) -> "DirCloneCleaner":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose(wait=True)

    def _snapshot(self) -> Dict[str, str]:
        files = {}
        for name in os.listdir(self.source_dir):
            stem, extension = os.path.splitext(name)
            files[stem] = extension
        return files

    def tick(self) -> None:
        """Run one polling pass."""
        if self.source_files is None:
            self.source_files = self._snapshot()

        try:
            destination_names = os.listdir(self.destination_dir)
        except FileNotFoundError:
            destination_names = []

        newly_cloned = []
        for name in destination_names:
            stem = os.path.splitext(name)[0]
            if stem in self.cloned or stem not in self.source_files:
                continue
            self.cloned.add(stem)
            newly_cloned.append(stem)

        for stem in newly_cloned:
            delete_path(self.source_dir / f"{stem}{self.source_files[stem]}")

        if self.on_progress:
            self.on_progress(len(self.cloned), len(self.source_files))

    def _loop(self) -> None:
        # Event.wait doubles as the sleep, disposal wakes it early
        while not self._stop_event.wait(self.interval):
            try:
                self.tick()
            except Exception as e:
                logger.debug(f"Directory poll failed: {e}")

    def start(self) -> None:
        """Start polling in a background thread."""
        if self._thread is not None or self.is_disposed:
            return

        self._thread = threading.Thread(
            target=self._loop,
            daemon=True,
            name="DirCloneCleaner",
        )
        self._thread.start()
        logger.debug(f"Watching {self.destination_dir} for clones of {self.source_dir}")

    def dispose(self, wait: bool = False) -> None:
        """Stop scheduling ticks. Safe to call more than once.

        A tick already in progress finishes its pass.

        Args:
            wait: Block until the polling thread has exited
        """
        self._stop_event.set()
        if wait and self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()
