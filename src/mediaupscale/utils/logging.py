"""Structured logging for mediaupscale.

All modules log through ``logging.getLogger(__name__)`` below the
``mediaupscale`` root logger. This module configures that root logger once
per application with either a human-readable or a JSON formatter, an
optional rotating log file, and per-component levels.

Example usage:
    >>> from mediaupscale.utils.logging import LogConfig, configure_logging, get_logger
    >>>
    >>> configure_logging(LogConfig(log_level="DEBUG", component_levels={"process": "INFO"}))
    >>> logger = get_logger("video")
    >>> logger.info("Encoding", codec="libx264", passes=1)
"""

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Literal, Optional

ROOT_LOGGER = "mediaupscale"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["text", "json"]

VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class LogConfig:
    """Logging configuration.

    Attributes:
        log_level: Default level for the whole package
        log_format: 'text' for humans, 'json' for machines
        log_file: Optional rotating log file
        component_levels: Per-module levels, e.g. {"process": "DEBUG"}
        max_file_size_mb: Size at which the log file rotates
        backup_count: Rotated files to keep
        include_timestamp: Prefix text lines with a timestamp
        include_source: Add file:line to every record
    """

    log_level: LogLevel = "INFO"
    log_format: LogFormat = "text"
    log_file: Optional[str] = None
    component_levels: Dict[str, LogLevel] = field(default_factory=dict)
    max_file_size_mb: int = 10
    backup_count: int = 5
    include_timestamp: bool = True
    include_source: bool = False

    def __post_init__(self) -> None:
        self.log_level = self.log_level.upper()  # type: ignore[assignment]
        if self.log_level not in VALID_LEVELS:
            raise ValueError(
                f"Invalid log_level '{self.log_level}'. Must be one of: {', '.join(VALID_LEVELS)}"
            )
        if self.log_format not in ("text", "json"):
            raise ValueError(f"Invalid log_format '{self.log_format}'. Must be 'text' or 'json'")
        for component, level in self.component_levels.items():
            if level.upper() not in VALID_LEVELS:
                raise ValueError(f"Invalid log level '{level}' for component '{component}'")


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    {"timestamp": "...Z", "level": "INFO", "component": "video",
     "message": "Encoding", "codec": "libx264"}
    """

    def __init__(self, include_source: bool = False) -> None:
        super().__init__()
        self.include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "component": record.name.split(".")[-1],
            "message": record.getMessage(),
        }

        if self.include_source:
            entry["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            entry.update(extra_fields)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Human-readable lines.

    2026-01-02 10:30:45 | INFO     | video        | Encoding [codec=libx264]
    """

    def __init__(self, include_timestamp: bool = True, include_source: bool = False) -> None:
        self.include_timestamp = include_timestamp
        self.include_source = include_source

        if include_timestamp:
            fmt = "%(asctime)s | %(levelname)-8s | %(component)-12s | %(message)s"
        else:
            fmt = "%(levelname)-8s | %(component)-12s | %(message)s"

        super().__init__(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        # Work on a copy, other handlers share the record
        record = logging.makeLogRecord(record.__dict__)
        record.component = record.name.split(".")[-1]
        message = record.getMessage()

        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            message = f"{message} [{', '.join(f'{k}={v}' for k, v in extra_fields.items())}]"
        if self.include_source:
            message = f"{message} ({record.filename}:{record.lineno})"

        record.msg = message
        record.args = None
        return super().format(record)


class UpscaleLogger(logging.LoggerAdapter):
    """Logger adapter that turns keyword arguments into structured fields.

    >>> logger.info("Upscaled", scale=4, files=120)
    """

    def __init__(self, logger: logging.Logger, component: str, extra: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(logger, extra or {})
        self.component = component

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra_fields = {}
        for key in list(kwargs.keys()):
            if key not in ("exc_info", "stack_info", "stacklevel", "extra"):
                extra_fields[key] = kwargs.pop(key)

        if self.extra:
            extra_fields.update(self.extra)

        kwargs.setdefault("extra", {})
        kwargs["extra"]["extra_fields"] = extra_fields
        return msg, kwargs

    def stage_start(self, stage: str, **kwargs: Any) -> None:
        self.info(f"Starting {stage}", stage=stage, **kwargs)

    def stage_complete(self, stage: str, duration_seconds: Optional[float] = None, **kwargs: Any) -> None:
        if duration_seconds is not None:
            kwargs["duration_seconds"] = round(duration_seconds, 2)
        self.info(f"Completed {stage}", stage=stage, **kwargs)


_log_config: Optional[LogConfig] = None
_configured_loggers: Dict[str, UpscaleLogger] = {}


def _make_formatter(config: LogConfig, log_format: Optional[str] = None) -> logging.Formatter:
    if (log_format or config.log_format) == "json":
        return JSONFormatter(include_source=config.include_source)
    return TextFormatter(
        include_timestamp=config.include_timestamp,
        include_source=config.include_source,
    )


def configure_logging(config: Optional[LogConfig] = None) -> None:
    """Configure the package root logger.

    Call once at application startup. Calling again replaces the handlers.

    Args:
        config: Logging configuration, defaults when None
    """
    global _log_config

    if config is None:
        config = LogConfig()
    _log_config = config

    level = getattr(logging, config.log_level)
    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    formatter = _make_formatter(config)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    if config.log_file:
        add_file_handler(config.log_file)

    for component, component_level in config.component_levels.items():
        logging.getLogger(f"{ROOT_LOGGER}.{component}").setLevel(
            getattr(logging, component_level.upper())
        )

    root_logger.propagate = False


def get_logger(component: str) -> UpscaleLogger:
    """Get a structured logger for a package component.

    Records propagate to the package root logger, configure_logging decides
    where they end up.

    Args:
        component: Module name below the package, e.g. 'video'

    Returns:
        Cached UpscaleLogger instance
    """
    if component in _configured_loggers:
        return _configured_loggers[component]

    logger = UpscaleLogger(logging.getLogger(f"{ROOT_LOGGER}.{component}"), component)
    _configured_loggers[component] = logger
    return logger


def add_file_handler(log_file: str, level: Optional[LogLevel] = None, log_format: Optional[LogFormat] = None) -> None:
    """Attach a rotating file handler to the root logger."""
    config = _log_config or LogConfig()

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        log_path,
        maxBytes=config.max_file_size_mb * 1024 * 1024,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(_make_formatter(config, log_format))
    handler.setLevel(getattr(logging, (level or config.log_level).upper()))
    logging.getLogger(ROOT_LOGGER).addHandler(handler)


def configure_from_cli(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
) -> LogConfig:
    """Configure logging from parsed CLI arguments.

    Returns:
        The LogConfig that was applied
    """
    config = LogConfig(
        log_level=log_level.upper() if log_level else "INFO",  # type: ignore[arg-type]
        log_format=log_format if log_format in ("text", "json") else "text",  # type: ignore[arg-type]
        log_file=log_file,
    )
    configure_logging(config)
    return config


def add_logging_arguments(parser: argparse.ArgumentParser) -> None:
    """Add --log-level, --log-format and --log-file to a parser."""
    group = parser.add_argument_group("logging")
    group.add_argument(
        "--log-level",
        type=str.upper,
        choices=VALID_LEVELS,
        default="INFO",
        help="Set logging level (default: INFO)",
    )
    group.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Set logging format (default: text)",
    )
    group.add_argument(
        "--log-file",
        default=None,
        help="Also write logs to this file (rotated at 10MB)",
    )
