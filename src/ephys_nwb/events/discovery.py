"""Discover raw event files and key them by (block, instance).

Blackrock recordings name files after the recording block and the device
instance that produced them, e.g.::

    Hub1-instance1_b3.nev
    block_3/NSP-instance2_raw.nev
    sub-N_b3_info.mat

The block index comes from a ``_b<N>.`` or ``_b<N>_`` token in the file
name or a ``block_<N>`` token anywhere in the path; the instance index from an
``instance<N>_`` token.
"""

import logging
from pathlib import Path
import re
from typing import Dict, List, Tuple, Union

from ..exceptions import UnparseableFilenameError
from ..utils import discover_files

__all__ = ["parse_block_index", "parse_instance_index", "discover_event_files", "sorted_keys"]

logger = logging.getLogger(__name__)

FILE_BLOCK_PATTERN = re.compile(r"_b(\d+)[._]", re.IGNORECASE)
PATH_BLOCK_PATTERN = re.compile(r"block_(\d+)", re.IGNORECASE)
INSTANCE_PATTERN = re.compile(r"instance(\d+)_", re.IGNORECASE)


def parse_block_index(path: Union[str, Path]) -> int:
    """Extract the recording block index from a file path.

    The file-name token wins over a directory token; among directory
    tokens the one closest to the file is used.

    Raises:
        UnparseableFilenameError: No block token present
    """
    path = Path(path)

    match = FILE_BLOCK_PATTERN.search(path.name)
    if match:
        return int(match.group(1))

    matches = PATH_BLOCK_PATTERN.findall(path.as_posix())
    if matches:
        return int(matches[-1])

    raise UnparseableFilenameError(f"Cannot determine block index of {path}", {"path": str(path)})


def parse_instance_index(path: Union[str, Path]) -> int:
    """Extract the device instance index from a file path.

    Raises:
        UnparseableFilenameError: No instance token present
    """
    path = Path(path)

    matches = INSTANCE_PATTERN.findall(path.as_posix())
    if matches:
        return int(matches[-1])

    raise UnparseableFilenameError(f"Cannot determine instance index of {path}", {"path": str(path)})


def discover_event_files(dir_in: Union[str, Path], pattern: str = "**/*.nev") -> Dict[Tuple[int, int], Path]:
    """Map every raw event file below dir_in to its (block, instance) key.

    Args:
        dir_in: Directory to search recursively
        pattern: Glob pattern for raw event files

    Returns:
        Dict keyed by (block, instance), in sorted path order

    Raises:
        FileNotFoundError: dir_in does not exist
        UnparseableFilenameError: A file lacks a block or instance token
    """
    files: Dict[Tuple[int, int], Path] = {}

    for path in discover_files(dir_in, pattern):
        key = (parse_block_index(path), parse_instance_index(path))
        if key in files:
            logger.warning(f"Duplicate event file for block {key[0]} instance {key[1]}: keeping {files[key].name}, ignoring {path}")
            continue
        files[key] = path

    logger.debug(f"Discovered {len(files)} event file(s) in {dir_in}")
    return files


def sorted_keys(files: Dict[Tuple[int, int], Path]) -> Tuple[List[int], List[int]]:
    """Sorted unique block and instance indices of a discovery map."""
    blocks = sorted({block for block, _ in files})
    instances = sorted({instance for _, instance in files})
    return blocks, instances
