"""Foundation utilities for the ephys-nwb pipeline.

Provides reusable primitives for logging setup, stage timing, file
discovery, JSON output and MATLAB-compatible rounding. As a foundation module, this
package must not import any other project packages.
"""

from __future__ import annotations

from contextlib import contextmanager
import json
import logging
import math
from pathlib import Path
import time
from typing import Any, Iterator

__all__ = [
    "configure_logging",
    "time_block",
    "discover_files",
    "round_half_away",
    "write_json",
]


# ============================================================================
# Rounding
# ============================================================================


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero.

    Python's built-in round() uses banker's rounding (round(2.5) == 2);
    sample counts are computed with MATLAB semantics instead.

    Args:
        value: Number to round

    Returns:
        Rounded integer

    Example:
        >>> round_half_away(2.5), round_half_away(-2.5), round_half_away(0.49)
        (3, -3, 0)
    """
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


# ============================================================================
# File Discovery
# ============================================================================


def discover_files(root: Path | str, pattern: str) -> list[Path]:
    """Discover files matching a glob pattern below root.

    Args:
        root: Directory to search
        pattern: Glob pattern relative to root (``**`` recurses)

    Returns:
        Sorted list of absolute file paths (directories are skipped)

    Raises:
        FileNotFoundError: If root does not exist
    """
    root = Path(root)

    if not root.exists():
        raise FileNotFoundError(f"Directory not found: {root}")

    return sorted(p.absolute() for p in root.glob(pattern) if p.is_file())


# ============================================================================
# JSON Output
# ============================================================================


def write_json(data: dict[str, Any], path: Path | str, indent: int = 2) -> None:
    """Write data to a JSON file, creating parent directories.

    Args:
        data: Dictionary to write
        path: Output file path
        indent: JSON indentation (default: 2 spaces)
    """

    class PathEncoder(json.JSONEncoder):
        def default(self, obj):
            if isinstance(obj, Path):
                return str(obj)
            return super().default(obj)

    path_obj = Path(path)
    path_obj.parent.mkdir(parents=True, exist_ok=True)

    with open(path_obj, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, cls=PathEncoder)


# ============================================================================
# Timing Utilities
# ============================================================================


@contextmanager
def time_block(label: str, logger: logging.Logger | None = None) -> Iterator[None]:
    """Context manager for timing code blocks with optional logging.

    Args:
        label: Descriptive label for timed block
        logger: Optional logger instance (if None, prints to stdout)

    Example:
        with time_block("Drift correction"):
            samplealign(ns6_a, ns6_b)
        # Output: "Drift correction completed in 12.34s"
    """
    start_time = time.time()

    try:
        yield
    finally:
        elapsed = time.time() - start_time
        message = f"{label} completed in {elapsed:.2f}s"

        if logger is not None:
            logger.info(message)
        else:
            print(message)


# ============================================================================
# Logging Configuration
# ============================================================================


def configure_logging(level: str = "INFO", structured: bool = False) -> None:
    """Configure root logger with standardized format.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        structured: Enable JSON structured logging (default: False)

    Raises:
        ValueError: If level is not a valid logging level name
    """
    numeric_level = getattr(logging, level.upper(), None)

    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setLevel(numeric_level)

    if structured:
        formatter = logging.Formatter(
            '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
            '"name": "%(name)s", "message": "%(message)s"}'
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
