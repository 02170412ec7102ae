"""Reconcile event codes across recording blocks and device instances.

Event codes are the only signal sent to every Hub/NSP at once, so they are
what the downstream alignment uses to pad each device's data. This module
gathers them into [block][instance] tables.

Flow:
-----
1. discover_event_files: (block, instance) -> .nev path, built once
2. _load_infos: attach info tables keyed by block (.mat, else text logs)
3. Parse every (block, instance) cell; missing files become empty records
4. Drop blocks whose median per-instance event count is below threshold
5. Report empty cells of the remaining blocks

A dropped device or a short block never aborts reconciliation; parser and
discovery errors do.

Example:
    >>> events = compile_event_data(Path("data/raw/sub-N_ses-20220308"))
    >>> events.blocks, events.bad_blocks, events.missing_cells
    ([1, 2, 4], [3], [(4, 2)])
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..config import EventsConfig
from ..exceptions import EventsError, InfoBlockCountMismatchError, UnparseableFilenameError
from ..utils import discover_files
from .discovery import discover_event_files, parse_block_index, sorted_keys
from .info import load_info_mat, parse_text_log
from .models import EventRecord, InfoTable, ReconciledEvents, validate_event_record, validate_info_table
from .nev import read_nev_events
from .protocols import EventFileParser, InfoFileParser

__all__ = ["compile_event_data", "block_medians", "find_bad_blocks"]

logger = logging.getLogger(__name__)

Cell = Tuple[int, int]


# =============================================================================
# Info Matching
# =============================================================================


def _match_to_blocks(paths: Sequence[Path], blocks: Sequence[int]) -> Optional[Dict[int, Path]]:
    """Pair info sources with blocks.

    Sources whose names all carry a block token are keyed by that token and
    must cover exactly the given blocks. Sources without block tokens are
    paired with the sorted blocks in path order when the counts agree.

    Returns:
        {block: path}, or None when the sources do not match the blocks
    """
    try:
        parsed = [parse_block_index(path) for path in paths]
    except UnparseableFilenameError:
        if len(paths) != len(blocks):
            return None
        logger.warning(f"Info files carry no block token; pairing {len(paths)} file(s) with blocks in path order")
        return dict(zip(blocks, paths))

    if len(set(parsed)) != len(parsed) or sorted(parsed) != sorted(blocks):
        return None
    return dict(zip(parsed, paths))


def _load_infos(
    dir_in: Path,
    blocks: Sequence[int],
    config: EventsConfig,
    info_parser: InfoFileParser,
    log_parser: InfoFileParser,
) -> Optional[Dict[int, InfoTable]]:
    """Match one info table to each unique block.

    Returns:
        {block: InfoTable}, or None when no info files exist

    Raises:
        InfoBlockCountMismatchError: Neither .mat files nor text logs match the blocks
    """
    info_files = discover_files(dir_in, config.info_pattern)
    if not info_files:
        logger.debug(f"No event-info files in {dir_in}")
        return None

    matched = _match_to_blocks(info_files, blocks)
    parser = info_parser

    if matched is None:
        log_files = discover_files(dir_in, config.log_pattern)
        logger.warning(f"{len(info_files)} info file(s) do not match {len(blocks)} block(s); " f"falling back to {len(log_files)} text log(s)")
        matched = _match_to_blocks(log_files, blocks)
        parser = log_parser
        if matched is None:
            raise InfoBlockCountMismatchError(
                f"Cannot match event info to blocks {list(blocks)}: {len(info_files)} info file(s), " f"{len(log_files)} text log(s)",
                {"n_info_files": len(info_files), "n_logs": len(log_files), "n_blocks": len(blocks)},
            )

    return {block: validate_info_table(parser(matched[block]), str(matched[block])) for block in blocks}


# =============================================================================
# Quality Filtering
# =============================================================================


def block_medians(counts: Dict[Cell, int], blocks: Sequence[int], instances: Sequence[int]) -> Dict[int, float]:
    """Median per-instance event count of each block (missing cells count 0)."""
    return {block: float(np.median([counts.get((block, instance), 0) for instance in instances])) for block in blocks}


def find_bad_blocks(medians: Dict[int, float], min_event_count: int) -> List[int]:
    """Blocks whose median event count is below min_event_count."""
    return [block for block, median in sorted(medians.items()) if median < min_event_count]


# =============================================================================
# Reconciliation
# =============================================================================


def compile_event_data(
    dir_in: Union[str, Path],
    settings: Optional[EventsConfig] = None,
    parser: EventFileParser = read_nev_events,
    info_parser: InfoFileParser = load_info_mat,
    log_parser: InfoFileParser = parse_text_log,
) -> ReconciledEvents:
    """Compile [block][instance] event tables for a session directory.

    Args:
        dir_in: Directory holding one raw event file per (block, instance)
        settings: Events configuration (defaults: **/*.nev, threshold 25)
        parser: Raw event file parser
        info_parser: Info .mat parser
        log_parser: Text log parser used when .mat files do not match blocks

    Returns:
        ReconciledEvents for blocks passing the event-count threshold

    Raises:
        FileNotFoundError: dir_in does not exist
        EventsError: No raw event files found
        UnparseableFilenameError: A file lacks a block or instance token
        InfoBlockCountMismatchError: Info sources cannot be matched to blocks
    """
    config = settings or EventsConfig()
    dir_in = Path(dir_in)

    files = discover_event_files(dir_in, config.nev_pattern)
    if not files:
        raise EventsError(f"No raw event files matching '{config.nev_pattern}' in {dir_in}", {"dir_in": str(dir_in)})

    blocks, instances = sorted_keys(files)
    logger.info(f"Found {len(files)} event file(s): {len(blocks)} block(s) x {len(instances)} instance(s)")

    infos = _load_infos(dir_in, blocks, config, info_parser, log_parser)

    cells: Dict[Cell, EventRecord] = {}
    for block in blocks:
        for instance in instances:
            path = files.get((block, instance))
            if path is None:
                logger.warning(f"No event file for block {block} instance {instance}; using empty placeholder")
                cells[(block, instance)] = EventRecord.empty()
                continue
            cells[(block, instance)] = validate_event_record(parser(path), str(path))

    counts = {key: record.count for key, record in cells.items()}
    medians = block_medians(counts, blocks, instances)
    bad_blocks = find_bad_blocks(medians, config.min_event_count)
    for block in bad_blocks:
        logger.warning(f"Block {block} excluded: median event count {medians[block]:g} < {config.min_event_count}")

    kept = [block for block in blocks if block not in bad_blocks]
    missing_cells = [(block, instance) for block in kept for instance in instances if cells[(block, instance)].is_empty]
    for block, instance in missing_cells:
        logger.warning(f"Block {block} instance {instance} has no events")

    return ReconciledEvents(
        blocks=kept,
        instances=list(instances),
        codes=[[cells[(block, instance)].codes for instance in instances] for block in kept],
        times=[[cells[(block, instance)].timestamps for instance in instances] for block in kept],
        infos=[infos[block].data for block in kept] if infos is not None else None,
        info_header=next(iter(infos.values())).header if infos else None,
        bad_blocks=bad_blocks,
        missing_cells=missing_cells,
        event_counts=counts,
        block_medians=medians,
    )
