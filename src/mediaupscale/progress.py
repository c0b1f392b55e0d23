"""Progress translation for external process output.

The upscaler binaries report progress as ``12.50%`` lines, ffmpeg reports a
``Duration:`` line in its preamble followed by ``frame=... time=...`` status
lines. :class:`ProgressTranslator` turns both into ``(current, total)`` progress
events and forwards every other line to a log sink. Consumed progress lines
are still written to the module logger at DEBUG.
"""
import logging
import re
from typing import Callable, List, Optional, Union

Number = Union[int, float]
ProgressCallback = Callable[[Number, Number], None]
LogCallback = Callable[[str], None]

logger = logging.getLogger(__name__)

RECENT_OUTPUT_SIZE = 1000

_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")
_TIME_RE = re.compile(r"time=\s*([\d:.]+)")
_DURATION_RE = re.compile(r"^ *Duration: *([\d:.]+),", re.MULTILINE)
_LINE_SPLIT_RE = re.compile(r"([\r\n]+)")


def time_to_ms(text: str) -> float:
    """Convert a ``[[H:]MM:]SS[.fraction]`` timestamp to milliseconds.

    >>> time_to_ms("1:30:40.500")
    5440500.0
    >>> time_to_ms("45")
    45000.0
    """
    whole, _, fraction = text.strip().partition(".")
    time = float(f".{fraction}") * 1000 if fraction else 0.0
    parts = [int(part) for part in whole.split(":") if part]

    if parts:
        time += parts.pop() * 1000  # s
    if parts:
        time += parts.pop() * 1000 * 60  # m
    if parts:
        time += parts.pop() * 1000 * 60 * 60  # h

    return time


class ProgressTranslator:
    """Stateful filter over the streamed output of one process invocation.

    Two vocabularies are recognized, and only one is used per invocation:

    - percentage (upscaler): any line containing ``<number>%`` emits
      ``(percent, 100)``.
    - time position (ffmpeg): a total is read from the ``Duration:`` preamble
      line; every ``frame=``/``size=`` status line with a ``time=`` token emits
      ``(elapsed_ms, total_ms)`` as long as elapsed does not exceed total.

    Duration scanning stops for good the first time a status line or a
    percentage line is seen.

    Args:
        on_progress: Receives ``(current, total)``
        on_log: Receives every line not consumed as progress
        percent: Recognize the percentage vocabulary
        time: Recognize the time-position vocabulary
    """

    def __init__(
        self,
        on_progress: Optional[ProgressCallback] = None,
        on_log: Optional[LogCallback] = None,
        percent: bool = True,
        time: bool = True,
    ):
        self.on_progress = on_progress
        self.on_log = on_log
        self.percent_enabled = percent
        self.time_enabled = time

        self.recent_output = ""
        self.duration_ms: Optional[float] = None
        self.duration_abandoned = False
        self._time_engaged = False

    def __call__(self, chunk: str) -> None:
        self.feed(chunk)

    def feed(self, chunk: str) -> None:
        """Consume one chunk of raw output."""
        unmatched: List[str] = []

        # Separators are kept so the recent output buffer mirrors the raw
        # stream, a Duration line split across chunks still matches.
        for piece in _LINE_SPLIT_RE.split(chunk):
            self.recent_output = (self.recent_output + piece)[-RECENT_OUTPUT_SIZE:]
            if not piece.strip():
                continue
            if self._consume(piece):
                logger.debug(piece.strip())
                continue
            unmatched.append(piece)
            self._scan_duration()

        if self.on_log:
            for line in unmatched:
                self.on_log(line)

    def _scan_duration(self) -> None:
        if not self.time_enabled or self.duration_ms is not None or self.duration_abandoned:
            return
        match = _DURATION_RE.search(self.recent_output)
        if match:
            duration = time_to_ms(match.group(1))
            if duration > 0:
                self.duration_ms = duration
                self._time_engaged = True

    def _consume(self, line: str) -> bool:
        """Handle a single line. Returns True when it was progress output."""
        stripped = line.strip()

        if self.time_enabled and (stripped.startswith("frame=") or stripped.startswith("size=")):
            self.duration_abandoned = True
            self._time_engaged = True

            if self.duration_ms:
                match = _TIME_RE.search(stripped)
                if match:
                    elapsed = time_to_ms(match.group(1))
                    if elapsed <= self.duration_ms:
                        self._emit(elapsed, self.duration_ms)
            return True

        if self.percent_enabled and not self._time_engaged:
            match = _PERCENT_RE.search(stripped)
            if match:
                self.duration_abandoned = True
                percent = float(match.group(1))
                if percent <= 100:
                    self._emit(percent, 100)
                return True

        return False

    def _emit(self, current: Number, total: Number) -> None:
        if self.on_progress:
            self.on_progress(current, total)
