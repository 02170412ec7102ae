"""Package corrected streams and reconciled events into an NWB file.

Builds the NWBFile in memory only; writing to disk is left to the caller
(e.g. pynwb.NWBHDF5IO).

Layout:
-------
- One Device per recording Hub/NSP
- acquisition/<series>_segment<k>: TimeSeries of one corrected segment,
  samples x channels, starting at the segment's first timestamp
- acquisition/EventCodes_block<b>_instance<i>: event codes with timestamps
  in seconds, one per non-empty reconciled cell

Example:
    >>> nwbfile = create_nwbfile(settings.session)
    >>> add_corrected_stream(nwbfile, result.streams[0], "Hub1")
    >>> add_event_codes(nwbfile, events, time_resolution=1e9)
"""

from __future__ import annotations

from datetime import datetime
import logging
from uuid import uuid4

import numpy as np
from pynwb import NWBFile
from pynwb.base import TimeSeries
from pynwb.device import Device

from ..config import SessionConfig
from ..events.models import ReconciledEvents
from ..exceptions import NWBBuildError
from ..sync.models import CorrectedStream

__all__ = ["create_nwbfile", "add_corrected_stream", "add_event_codes"]

logger = logging.getLogger(__name__)


# ============================================================================
# File
# ============================================================================


def _session_start(value: str) -> datetime:
    if not value:
        return datetime.now().astimezone()
    try:
        start = datetime.fromisoformat(value)
    except ValueError as e:
        raise NWBBuildError(f"Invalid session_start '{value}': expected an ISO date") from e
    return start if start.tzinfo else start.astimezone()


def create_nwbfile(session: SessionConfig) -> NWBFile:
    """Create an empty NWBFile from session metadata.

    Args:
        session: Session metadata (identifier, experimenter, lab, ...)

    Returns:
        In-memory NWBFile

    Raises:
        NWBBuildError: Metadata rejected by pynwb
    """
    try:
        return NWBFile(
            session_description=session.description or "No description",
            experiment_description=session.experiment_description or None,
            identifier=session.identifier or str(uuid4()),
            session_start_time=_session_start(session.session_start),
            session_id=session.identifier or None,
            lab=session.lab or None,
            institution=session.institution or None,
            experimenter=[session.experimenter] if session.experimenter else None,
        )
    except NWBBuildError:
        raise
    except Exception as e:
        raise NWBBuildError(f"Failed to create NWB file: {e}") from e


# ============================================================================
# Continuous Data
# ============================================================================


def add_corrected_stream(
    nwbfile: NWBFile,
    stream: CorrectedStream,
    device_name: str,
    series_name: str | None = None,
) -> list[TimeSeries]:
    """Add one drift-corrected stream as per-segment TimeSeries.

    Args:
        nwbfile: Target file
        stream: Output of the drift corrector for one Hub/NSP
        device_name: Device name, shared by every block the device recorded
        series_name: Acquisition prefix (default: device_name)

    Returns:
        The TimeSeries added, in segment order

    Raises:
        NWBBuildError: Device or series rejected by pynwb
    """
    prefix = series_name or device_name
    try:
        device = nwbfile.devices.get(device_name)
        if device is None:
            device = Device(name=device_name, description=f"Blackrock recording {stream.filename}{stream.file_ext}")
            nwbfile.add_device(device)

        series = []
        for segment in stream.segments:
            ts = TimeSeries(
                name=f"{prefix}_segment{segment.index}",
                description=f"Drift-corrected {stream.filename}{stream.file_ext} segment {segment.index}",
                data=np.asarray(segment.frames).T,
                unit="raw",
                starting_time=segment.timestamp / stream.time_resolution,
                rate=float(stream.sampling_frequency),
            )
            nwbfile.add_acquisition(ts)
            series.append(ts)
    except Exception as e:
        raise NWBBuildError(f"Failed to add stream {stream.filename} as {device_name}: {e}") from e

    logger.info(f"Added {len(series)} segment(s) of {stream.filename}{stream.file_ext} to NWB file")
    return series


# ============================================================================
# Events
# ============================================================================


def add_event_codes(nwbfile: NWBFile, events: ReconciledEvents, time_resolution: float) -> list[TimeSeries]:
    """Add reconciled event codes of every kept, non-empty cell.

    Args:
        nwbfile: Target file
        events: Output of compile_event_data
        time_resolution: Event timestamp ticks per second

    Returns:
        The TimeSeries added

    Raises:
        NWBBuildError: Series rejected by pynwb
    """
    series = []
    try:
        for k, block in enumerate(events.blocks):
            for j, instance in enumerate(events.instances):
                codes = events.codes[k][j]
                if codes.size == 0:
                    continue
                ts = TimeSeries(
                    name=f"EventCodes_block{block}_instance{instance}",
                    description=f"Digital event codes of block {block} on instance {instance}",
                    data=codes,
                    unit="n.a.",
                    timestamps=events.times[k][j].astype(np.float64) / time_resolution,
                )
                nwbfile.add_acquisition(ts)
                series.append(ts)
    except Exception as e:
        raise NWBBuildError(f"Failed to add event codes: {e}") from e

    logger.info(f"Added {len(series)} event code series to NWB file")
    return series
