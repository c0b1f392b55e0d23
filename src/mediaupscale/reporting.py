"""Job progress reporting.

Pipelines talk to the outside world only through a :class:`JobReporter`:
log lines, normalized progress, stage names, the final output file and the
failure message.
"""
import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Union

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    Task,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

logger = logging.getLogger(__name__)

Number = Union[int, float]


class JobReporter(ABC):
    """Sink for everything a job reports."""

    @abstractmethod
    def log(self, text: str) -> None:
        """Raw log text, including external process output."""

    @abstractmethod
    def progress(self, current: Optional[Number], total: Optional[Number] = None) -> None:
        """Progress of the current stage. ``progress(None)`` means indeterminate."""

    @abstractmethod
    def stage(self, name: str) -> None:
        """A new stage started."""

    @abstractmethod
    def output_file(self, path: Path) -> None:
        """The job produced its final file."""

    @abstractmethod
    def error(self, message: str) -> None:
        """The job failed."""


class LoggingReporter(JobReporter):
    """Reports through the package logger. Process output goes to DEBUG."""

    def __init__(self, name: str = "mediaupscale.job"):
        self.logger = logging.getLogger(name)
        self.current_stage: Optional[str] = None

    def log(self, text: str) -> None:
        self.logger.debug(text.rstrip())

    def progress(self, current: Optional[Number], total: Optional[Number] = None) -> None:
        if current is None or not total:
            return
        self.logger.debug(f"{self.current_stage or 'progress'}: {current / total * 100:.1f}%")

    def stage(self, name: str) -> None:
        self.current_stage = name
        self.logger.info(f"Stage: {name}")

    def output_file(self, path: Path) -> None:
        self.logger.info(f"Output: {path}")

    def error(self, message: str) -> None:
        self.logger.error(message)


@dataclass
class StageInfo:
    """Timing of one reported stage."""
    name: str
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None

    @property
    def elapsed_seconds(self) -> float:
        return (self.end_time or time.time()) - self.start_time


class RichReporter(LoggingReporter):
    """Terminal progress bar on top of :class:`LoggingReporter`.

    Use inside :meth:`live_display`, outside of it only the logging half
    is active.
    """

    def __init__(self, input_name: str = "", console: Optional[Console] = None, refresh_rate: float = 10.0):
        super().__init__()
        self.input_name = input_name
        self.console = console or Console(stderr=True)
        self.refresh_rate = refresh_rate

        self._progress: Optional[Progress] = None
        self._task_id: Optional[TaskID] = None
        self.stages: List[StageInfo] = []

    def _create_progress(self) -> Progress:
        return Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=30),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
            console=self.console,
            refresh_per_second=self.refresh_rate,
            transient=False,
        )

    @contextmanager
    def live_display(self) -> Iterator["RichReporter"]:
        """Show the progress bar for the duration of the block."""
        self._progress = self._create_progress()
        with self._progress:
            try:
                yield self
            finally:
                self._finish_stage()
                self._progress = None
                self._task_id = None

    def _current_task(self) -> Task:
        return next(task for task in self._progress.tasks if task.id == self._task_id)

    def _finish_stage(self) -> None:
        if self.stages and self.stages[-1].end_time is None:
            self.stages[-1].end_time = time.time()
            if self._progress is not None and self._task_id is not None:
                task = self._current_task()
                if task.total is not None:
                    self._progress.update(self._task_id, completed=task.total)

    def stage(self, name: str) -> None:
        super().stage(name)
        self._finish_stage()
        self.stages.append(StageInfo(name=name))

        if self._progress is not None:
            label = f"{self.input_name}: {name}" if self.input_name else name
            self._task_id = self._progress.add_task(label, total=None)

    def progress(self, current: Optional[Number], total: Optional[Number] = None) -> None:
        super().progress(current, total)
        if self._progress is None or self._task_id is None:
            return
        if current is None or not total:
            # Progress.update() ignores total=None
            self._current_task().total = None
            self._progress.refresh()
        else:
            self._progress.update(self._task_id, completed=current, total=total)

    def output_file(self, path: Path) -> None:
        self.logger.debug(f"Output: {path}")
        self.console.print(f"[green]Saved[/green] {path}")

    def error(self, message: str) -> None:
        self.logger.debug(message)
        self.console.print(f"[bold red]Error:[/bold red] {message}")
