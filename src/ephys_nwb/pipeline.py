"""Pipeline orchestration for one recording session.

This module owns Settings and coordinates the stages. Low-level tools
(compile_event_data, correct_drift, the NWB helpers) receive primitives and
module configs only.

Stages:
-------
1. Reconcile event codes across blocks and device instances
2. Read every device's continuous NSx stream
3. Correct clock drift across the streams of each block in one call
4. Build the in-memory NWB file; add streams and event codes

Event and drift errors are fatal for the session. Packaging a single device
may fail without aborting the run; the failure is logged and reported in
the result's warnings.

Example:
--------
>>> from ephys_nwb.config import load_settings
>>> from ephys_nwb.pipeline import run_session
>>>
>>> settings = load_settings("config.toml")
>>> result = run_session(settings, "data/raw/sub-N_ses-20220308")
>>> print(f"Bad blocks: {result['events'].bad_blocks}")
>>> for message in result["warnings"]:
...     print(message)
"""

from collections import Counter
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple, TypedDict, Union

from pynwb import NWBFile

from .config import Settings
from .events import ReconciledEvents, compile_event_data, create_event_summary, read_nev_events
from .events.discovery import parse_block_index
from .events.protocols import EventFileParser
from .exceptions import NWBBuildError, UnparseableFilenameError
from .nwb import add_corrected_stream, add_event_codes, create_nwbfile
from .sync import CorrectedStream, SegmentCorrection, correct_drift, read_nsx_stream
from .sync.protocols import RawStreamReader
from .utils import discover_files, time_block

logger = logging.getLogger(__name__)


# =============================================================================
# Result Models
# =============================================================================


class RunResult(TypedDict):
    """Result of run_session execution.

    Attributes:
        events: Reconciled event tables
        corrections: Per-segment drift diagnostics
        streams: Drift-corrected streams, in block then discovery order
        nwbfile: In-memory NWB file
        warnings: Data-quality and packaging warnings
    """

    events: ReconciledEvents
    corrections: List[SegmentCorrection]
    streams: List[CorrectedStream]
    nwbfile: NWBFile
    warnings: List[str]


# =============================================================================
# Orchestration
# =============================================================================


def _group_by_block(paths: List[Path]) -> List[Tuple[Optional[int], List[Path]]]:
    """Group continuous files by recording block, in block order.

    Files without a block token form a single group.
    """
    groups: Dict[Optional[int], List[Path]] = {}
    for path in paths:
        try:
            block = parse_block_index(path)
        except UnparseableFilenameError:
            block = None
        groups.setdefault(block, []).append(path)
    return sorted(groups.items(), key=lambda item: (item[0] is not None, item[0] or 0))


def run_session(
    settings: Settings,
    session_dir: Union[str, Path],
    stream_reader: Optional[RawStreamReader] = None,
    event_parser: Optional[EventFileParser] = None,
) -> RunResult:
    """Run the full processing workflow for one session directory.

    Args:
        settings: Pipeline settings
        session_dir: Directory holding the session's NSx/NEV files
        stream_reader: Continuous-data reader (default: read_nsx_stream)
        event_parser: Raw event file parser (default: read_nev_events)

    Returns:
        RunResult with events, corrections, streams, nwbfile and warnings

    Raises:
        FileNotFoundError: session_dir does not exist
        EventsError: Event discovery or info matching failed
        SyncError: Drift correction preconditions violated
        NWBBuildError: NWB file could not be created
    """
    session_dir = Path(session_dir)
    stream_reader = stream_reader or read_nsx_stream
    event_parser = event_parser or read_nev_events
    warnings: List[str] = []

    logger.info("=" * 70)
    logger.info(f"{settings.project.name} - Session Processing")
    logger.info(f"Session directory: {session_dir}")
    logger.info("=" * 70)

    # Phase 1: events
    with time_block("Event reconciliation", logger):
        events = compile_event_data(session_dir, settings.events, parser=event_parser)
    summary = create_event_summary(events, session_dir)
    warnings.extend(f"Block {block} excluded: median event count {summary.block_medians[block]:g}" for block in summary.bad_blocks)
    warnings.extend(f"Block {block} instance {instance} has no events" for block, instance in summary.missing_cells)

    # Phase 2: continuous data, one drift correction per block
    nsx_paths = discover_files(session_dir, settings.sync.nsx_pattern)
    streams: List[CorrectedStream] = []
    stream_blocks: List[Optional[int]] = []
    corrections: List[SegmentCorrection] = []

    if nsx_paths:
        with time_block("Drift correction", logger):
            for block, paths in _group_by_block(nsx_paths):
                raw_streams = [stream_reader(path) for path in paths]
                result = correct_drift(raw_streams, time_resolution=settings.sync.time_resolution, gap_factor=settings.sync.gap_factor)
                streams.extend(result.streams)
                stream_blocks.extend([block] * len(result.streams))
                corrections.extend(result.corrections)
                warnings.extend(result.warnings)
    else:
        message = f"No continuous files matching '{settings.sync.nsx_pattern}' in {session_dir}"
        logger.warning(message)
        warnings.append(message)

    # Phase 3: NWB
    nwbfile = create_nwbfile(settings.session)

    # A device keeps its file name across blocks; series then carry the block
    stems = Counter(stream.filename for stream in streams)
    for stream, block in zip(streams, stream_blocks):
        series_name = stream.filename if stems[stream.filename] == 1 else f"{stream.filename}_block{block}"
        try:
            add_corrected_stream(nwbfile, stream, stream.filename, series_name=series_name)
        except NWBBuildError as e:
            logger.warning(f"Packaging {series_name} failed: {e.message}")
            warnings.append(e.message)

    try:
        add_event_codes(nwbfile, events, settings.sync.time_resolution)
    except NWBBuildError as e:
        logger.warning(f"Packaging event codes failed: {e.message}")
        warnings.append(e.message)

    logger.info(f"Session complete: {len(streams)} stream(s), {len(events.blocks)} block(s), {len(warnings)} warning(s)")

    return RunResult(
        events=events,
        corrections=corrections,
        streams=streams,
        nwbfile=nwbfile,
        warnings=warnings,
    )
