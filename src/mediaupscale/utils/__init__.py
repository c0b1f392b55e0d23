"""
mediaupscale utilities package.
Filesystem helpers, logging and configuration file support.
"""

from .fs import (
    get_filename,
    get_extension,
    args_to_string,
    delete_path,
    prepare_empty_dir,
)

from .logging import (
    LogConfig,
    UpscaleLogger,
    configure_logging,
    configure_from_cli,
    get_logger,
)

__all__ = [
    # Filesystem
    'get_filename',
    'get_extension',
    'args_to_string',
    'delete_path',
    'prepare_empty_dir',
    # Logging
    'LogConfig',
    'UpscaleLogger',
    'configure_logging',
    'configure_from_cli',
    'get_logger',
]
