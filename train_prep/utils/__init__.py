"""
Utility functions for Train Prep

Logging setup, transfer reporting helpers and blob reference handling.
"""

import logging
import time
from typing import Optional

from .references import (
    CBFS_URI_PREFIX,
    BlobReferenceResolver,
    to_reference,
    to_relative_path,
)


def setup_logging(
    log_level: str = "INFO", log_file: Optional[str] = None
) -> logging.Logger:
    """
    Setup logging configuration

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path

    Returns:
        Configured logger
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Convert string level to logging constant
    numeric_level = getattr(logging, str(log_level).upper(), logging.INFO)

    logger = logging.getLogger("train_prep")
    logger.setLevel(numeric_level)
    logger.propagate = False

    # Clear existing handlers
    logger.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(logging.Formatter(log_format))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        logger.addHandler(file_handler)

    return logger


def format_time(seconds: float) -> str:
    """Duration for log lines: 850ms, 12.5s, 3.2m, 1.1h"""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    if seconds < 3600:
        return f"{seconds / 60:.1f}m"
    return f"{seconds / 3600:.1f}h"


def format_size(num_bytes: int) -> str:
    """
    Byte count for log lines

    Whole bytes below 1KB, one decimal above: 512B, 2.0KB, 1.5MB
    """
    if num_bytes < 1024:
        return f"{num_bytes}B"

    size = num_bytes / 1024
    for unit in ("KB", "MB", "GB"):
        if size < 1024:
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}TB"


class Timer:
    """
    Measures one preparation stage

        with Timer() as timer:
            unpack_and_index(stream, dest)
        logger.info(f"Unpacked in {timer}")

    str() gives the elapsed time through format_time; while the block is
    still running it reports the time so far.
    """

    def __init__(self):
        self.started = None
        self.stopped = None

    def __enter__(self):
        self.started = time.perf_counter()
        self.stopped = None
        return self

    def __exit__(self, *exc_info):
        self.stopped = time.perf_counter()

    @property
    def elapsed(self) -> float:
        if self.started is None:
            return 0.0
        return (self.stopped or time.perf_counter()) - self.started

    def __str__(self) -> str:
        return format_time(self.elapsed)


__all__ = [
    "setup_logging",
    "format_time",
    "format_size",
    "Timer",
    "BlobReferenceResolver",
    "CBFS_URI_PREFIX",
    "to_reference",
    "to_relative_path",
]
