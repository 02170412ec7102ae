"""Parse digital event codes from Blackrock NEV files.

Events are read with neo's BlackrockRawIO. Digital-port and serial-port
events of every segment are merged into a single record ordered by
timestamp; timestamps stay in the file's native ticks.

Example:
    >>> record = read_nev_events(Path("Hub1-instance1_b1.nev"))
    >>> record.count, record.codes[:3]
    (412, array([65280, 65281, 65282]))
"""

import logging
from pathlib import Path
from typing import Union

from neo.rawio import BlackrockRawIO
import numpy as np

from ..exceptions import EventsError
from .models import EventRecord

__all__ = ["EVENT_CHANNELS", "read_nev_events"]

logger = logging.getLogger(__name__)

EVENT_CHANNELS = ("digital_input_port", "serial_input_port")


def read_nev_events(path: Union[str, Path]) -> EventRecord:
    """Read digital and serial input events of one NEV file.

    Args:
        path: Path to .nev file

    Returns:
        EventRecord sorted by timestamp (empty when the file holds no events)

    Raises:
        FileNotFoundError: File does not exist
        EventsError: neo cannot parse the file
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"NEV file not found: {path}")

    reader = BlackrockRawIO(filename=str(path), nsx_to_load=[])
    try:
        reader.parse_header()
    except (OSError, ValueError, KeyError) as e:
        raise EventsError(f"Failed to parse NEV file {path.name}: {e}", {"path": str(path)}) from e

    names = [str(name) for name in reader.header["event_channels"]["name"]]

    codes = []
    stamps = []
    for channel in EVENT_CHANNELS:
        if channel not in names:
            continue
        channel_index = names.index(channel)
        for seg_index in range(reader.segment_count(0)):
            timestamps, _, labels = reader.get_event_timestamps(block_index=0, seg_index=seg_index, event_channel_index=channel_index)
            stamps.append(np.asarray(timestamps, dtype=np.uint64))
            codes.append(np.asarray(labels).astype(np.int64))

    if not stamps:
        logger.debug(f"{path.name}: no digital or serial events")
        return EventRecord.empty()

    stamps = np.concatenate(stamps)
    codes = np.concatenate(codes)
    order = np.argsort(stamps, kind="stable")

    logger.debug(f"{path.name}: {stamps.size} events")
    return EventRecord(codes=codes[order], timestamps=stamps[order])
