"""Logging configuration for the fsdelta CLI.

Console records go through Rich on stderr; an optional log file gets
plain, timestamped lines.
"""

import logging
from pathlib import Path

from rich.logging import RichHandler

from fsdelta.utils.formatting import err_console

LOGGER_NAME = "fsdelta"
FILE_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def _console_level(verbose: bool, quiet: bool) -> int:
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def setup_logging(
    log_file: Path | None = None,
    *,
    verbose: bool = False,
    quiet: bool = False,
) -> logging.Logger:
    """Configure the package logger.

    Replaces handlers installed by a previous call, so it is safe to
    invoke once per CLI run.

    Args:
        log_file: Optional file receiving every record at DEBUG level
            (INFO unless verbose).
        verbose: Log DEBUG records to the console.
        quiet: Only log warnings and errors to the console.

    Returns:
        The configured package logger.

    Raises:
        OSError: If the log file cannot be opened.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_level = _console_level(verbose, quiet)
    console_handler = RichHandler(
        console=err_console,
        level=console_level,
        show_path=False,
        rich_tracebacks=verbose,
        markup=False,
    )
    logger.addHandler(console_handler)

    file_level = logging.DEBUG if verbose else logging.INFO
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    logger.setLevel(min(console_level, file_level) if log_file is not None else console_level)
    return logger
