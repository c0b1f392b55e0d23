"""Error handling module for the mediaupscale pipeline.

Provides the error hierarchy raised by pipeline stages and the context
attached to them for debugging.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# How much process output is kept in error messages
OUTPUT_TAIL_CHARS = 2000


# =============================================================================
# Error Context
# =============================================================================

@dataclass
class ErrorContext:
    """Detailed context for debugging errors.

    Captures the stage and external command that caused the error.
    """
    stage: str
    operation: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    input_file: Optional[str] = None
    output_file: Optional[str] = None
    command: Optional[List[str]] = None
    output: Optional[str] = None
    return_code: Optional[int] = None
    additional_info: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "stage": self.stage,
            "operation": self.operation,
            "timestamp": self.timestamp,
            "input_file": self.input_file,
            "output_file": self.output_file,
            "command": self.command,
            "output": self.output,
            "return_code": self.return_code,
            "additional_info": self.additional_info,
        }

    def __str__(self) -> str:
        """Human-readable error context."""
        lines = [
            f"Stage: {self.stage}",
            f"Operation: {self.operation}",
            f"Timestamp: {self.timestamp}",
        ]

        if self.input_file:
            lines.append(f"Input: {self.input_file}")
        if self.output_file:
            lines.append(f"Output: {self.output_file}")
        if self.command:
            lines.append(f"Command: {' '.join(self.command)}")
        if self.return_code is not None:
            lines.append(f"Return code: {self.return_code}")
        if self.output:
            lines.append(f"Output: {self.output[:500]}")

        return "\n".join(lines)


# =============================================================================
# Error Classification
# =============================================================================

class UpscaleError(Exception):
    """Base exception for all mediaupscale errors."""

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.context = context


class FatalError(UpscaleError):
    """Non-recoverable errors that abort the job before any work is done."""
    pass


class ConfigurationError(FatalError):
    """Invalid configuration, e.g. a malformed destination template."""
    pass


class UnsupportedInputError(FatalError):
    """The prober classified the input as neither image nor video."""
    pass


class DependencyError(FatalError):
    """A required external binary could not be found."""
    pass


class ProcessError(UpscaleError):
    """Failure of an external process."""
    pass


class SpawnError(ProcessError):
    """The external binary could not be started."""

    def __init__(self, binary: str, reason: str, context: Optional[ErrorContext] = None):
        super().__init__(f'Failed to spawn "{binary}": {reason}', context)
        self.binary = binary
        self.reason = reason


class ExitCodeError(ProcessError):
    """The external binary exited with a nonzero code.

    Attributes:
        exit_code: Process exit code
        output: Captured stderr, or stdout when stderr was empty
    """

    def __init__(self, exit_code: int, output: str = "", context: Optional[ErrorContext] = None):
        message = f"Process exited with code {exit_code}."
        tail = output.strip()[-OUTPUT_TAIL_CHARS:]
        if tail:
            message = f"{message}\n\n{tail}"
        super().__init__(message, context)
        self.exit_code = exit_code
        self.output = output


# Stage-specific errors
class FrameExtractionError(UpscaleError):
    """Error during video frame extraction."""
    pass


class EnhancementError(UpscaleError):
    """Error while the upscaler binary was processing."""
    pass


class EncodingError(UpscaleError):
    """Error while encoding the upscaled frames back into a video."""
    pass


class PartialArtifactError(UpscaleError):
    """A transcode after a successful upscale failed.

    The partially written artifact has been deleted by the time this is raised.
    """
    pass


class StorageError(UpscaleError):
    """Creating, moving or deleting a job file failed."""
    pass


def format_error(error: BaseException) -> str:
    """Return the single human-readable message reported for a failed job."""
    if isinstance(error, ConfigurationError):
        return f"Configuration error: {error}"
    if isinstance(error, UpscaleError):
        cause = error.__cause__
        if isinstance(cause, ProcessError) and str(cause) not in str(error):
            return f"{error}\n{cause}"
        return str(error)
    return f"{type(error).__name__}: {error}"
