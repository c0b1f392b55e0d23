"""Cleanup ledger for temporary job artifacts.

Every temporary file or directory a pipeline creates gets a cleanup task
registered right after it is created. The ledger is drained exactly once on
every exit path of the job::

    with Maid() as maid:
        frames_dir.mkdir()
        maid.rm(frames_dir)
        ...
"""
import logging
from pathlib import Path
from typing import Callable, List, Optional, Union

from .utils.fs import delete_path

logger = logging.getLogger(__name__)

CleanupTask = Callable[[], object]


class Maid:
    """Ordered list of deferred, independently fault-tolerant cleanup tasks."""

    def __init__(self, on_log: Optional[Callable[[str], None]] = None):
        self.tasks: List[CleanupTask] = []
        self._on_log = on_log

    def __enter__(self) -> "Maid":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cleanup()

    def __len__(self) -> int:
        return len(self.tasks)

    def task(self, fn: CleanupTask) -> CleanupTask:
        """Register a zero-argument cleanup task. Returns `fn` unchanged."""
        self.tasks.append(fn)
        return fn

    def rm(self, path: Union[str, Path], label: Optional[str] = None) -> CleanupTask:
        """Register deletion of a file or directory."""
        path = Path(path)

        def remove() -> None:
            if self._on_log:
                self._on_log(f'Deleting {label or "temporary file"}: "{path}"')
            delete_path(path)

        return self.task(remove)

    def run(self, fn: CleanupTask) -> None:
        """Run a single task, discarding whatever it raises."""
        try:
            fn()
        except Exception as e:
            logger.debug(f"Cleanup task {getattr(fn, '__name__', fn)!r} failed: {e}")

    def forget(self) -> None:
        """Drop all tasks without running them."""
        self.tasks = []

    def cleanup(self) -> None:
        """Run every task in registration order, then clear the ledger."""
        tasks, self.tasks = self.tasks, []
        for step in tasks:
            self.run(step)
