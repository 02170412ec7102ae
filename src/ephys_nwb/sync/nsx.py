"""Read Blackrock NSx continuous files recorded with PTP timestamps.

Central v7.6+ with Gemini Hubs/NSPs writes file specification 3.0 with a
nanosecond timestamp on every sample ("3.0-ptp"). Each data packet holds a
single frame:

    reserved (uint8) | timestamp (uint64) | num_data_points (uint32) | samples (int16 x channels)

Only this variant carries the per-sample timing the drift corrector needs;
other NSx variants are rejected.

Example:
    >>> from pathlib import Path
    >>> stream = read_nsx_stream(Path("data/raw/Hub1-instance1_b1.ns6"))
    >>> stream.sampling_frequency, stream.frames.shape
    (30000.0, (128, 1800000))
"""

import logging
from pathlib import Path
from typing import Dict

import numpy as np

from ..exceptions import InvalidInputError
from .models import RecordingStream

__all__ = ["NSX_BASIC_HEADER", "NSX_EXT_HEADER", "ptp_packet_dtype", "read_nsx_header", "read_nsx_stream"]

logger = logging.getLogger(__name__)

PTP_TIME_RESOLUTION = 1_000_000_000
BASE_SAMPLING_RATE = 30_000.0

NSX_BASIC_HEADER = np.dtype(
    [
        ("file_id", "S8"),
        ("ver_major", "uint8"),
        ("ver_minor", "uint8"),
        ("bytes_in_headers", "uint32"),
        ("label", "S16"),
        ("comment", "S256"),
        ("period", "uint32"),
        ("timestamp_resolution", "uint32"),
        ("year", "uint16"),
        ("month", "uint16"),
        ("weekday", "uint16"),
        ("day", "uint16"),
        ("hour", "uint16"),
        ("minute", "uint16"),
        ("second", "uint16"),
        ("millisecond", "uint16"),
        ("channel_count", "uint32"),
    ]
)

NSX_EXT_HEADER = np.dtype(
    [
        ("type", "S2"),
        ("electrode_id", "uint16"),
        ("electrode_label", "S16"),
        ("physical_connector", "uint8"),
        ("connector_pin", "uint8"),
        ("min_digital_val", "int16"),
        ("max_digital_val", "int16"),
        ("min_analog_val", "int16"),
        ("max_analog_val", "int16"),
        ("units", "S16"),
        ("hi_freq_corner", "uint32"),
        ("hi_freq_order", "uint32"),
        ("hi_freq_type", "uint16"),
        ("lo_freq_corner", "uint32"),
        ("lo_freq_order", "uint32"),
        ("lo_freq_type", "uint16"),
    ]
)


def ptp_packet_dtype(channel_count: int) -> np.dtype:
    """Packet layout of a PTP data section with `channel_count` channels."""
    return np.dtype(
        [
            ("reserved", "uint8"),
            ("timestamp", "uint64"),
            ("num_data_points", "uint32"),
            ("samples", "int16", (channel_count,)),
        ]
    )


def read_nsx_header(path: Path) -> Dict:
    """Read the basic and extended headers of an NSx 2.2+ file.

    Args:
        path: Path to .ns1-.ns6 file

    Returns:
        Dict with spec, bytes_in_headers, channel_count, period,
        sampling_frequency, time_resolution, electrode_ids, electrode_labels

    Raises:
        FileNotFoundError: File does not exist
        InvalidInputError: Not a NEURALCD/BRSMPGRP file
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"NSx file not found: {path}")

    basic = np.fromfile(path, count=1, dtype=NSX_BASIC_HEADER)
    if basic.size == 0:
        raise InvalidInputError(f"NSx file too short for a basic header: {path}", {"path": str(path)})
    basic = basic[0]

    file_id = basic["file_id"].decode(errors="replace")
    if file_id not in ("NEURALCD", "BRSMPGRP"):
        raise InvalidInputError(f"Unsupported NSx file type '{file_id}': {path}", {"path": str(path)})

    channel_count = int(basic["channel_count"])
    ext = np.fromfile(path, count=channel_count, dtype=NSX_EXT_HEADER, offset=NSX_BASIC_HEADER.itemsize)

    return {
        "spec": f"{basic['ver_major']}.{basic['ver_minor']}",
        "bytes_in_headers": int(basic["bytes_in_headers"]),
        "channel_count": channel_count,
        "period": int(basic["period"]),
        "sampling_frequency": BASE_SAMPLING_RATE / int(basic["period"]),
        "time_resolution": int(basic["timestamp_resolution"]),
        "label": basic["label"].decode(errors="replace").rstrip("\x00"),
        "electrode_ids": [int(e) for e in ext["electrode_id"]],
        "electrode_labels": [label.decode(errors="replace").rstrip("\x00") for label in ext["electrode_label"]],
    }


def read_nsx_stream(path: Path) -> RecordingStream:
    """Load a PTP-timestamped NSx file as a RecordingStream.

    Samples are memory-mapped; frames are channels x samples.

    Args:
        path: Path to .ns1-.ns6 file

    Returns:
        RecordingStream with one timestamp per sample

    Raises:
        FileNotFoundError: File does not exist
        InvalidInputError: File is not a 3.0 PTP recording
    """
    path = Path(path)
    header = read_nsx_header(path)

    if header["time_resolution"] != PTP_TIME_RESOLUTION:
        raise InvalidInputError(
            f"{path.name}: timestamp resolution {header['time_resolution']} is not PTP; " "only Central v7.6+ recordings with one timestamp per sample are supported",
            {"path": str(path), "spec": header["spec"]},
        )

    packet = ptp_packet_dtype(header["channel_count"])
    data_bytes = path.stat().st_size - header["bytes_in_headers"]
    n_packets = data_bytes // packet.itemsize

    if n_packets == 0:
        packets = np.zeros(0, dtype=packet)
    else:
        packets = np.memmap(path, dtype=packet, mode="r", offset=header["bytes_in_headers"], shape=(n_packets,))

    if not np.all(packets["num_data_points"] == 1):
        raise InvalidInputError(f"{path.name}: packets hold more than one sample; not a PTP recording", {"path": str(path)})

    logger.debug(f"Read {n_packets} samples x {header['channel_count']} channels from {path.name}")

    return RecordingStream(
        filename=path.stem,
        file_ext=path.suffix,
        time_resolution=float(header["time_resolution"]),
        sampling_frequency=header["sampling_frequency"],
        frames=packets["samples"].T,
        timestamps=np.asarray(packets["timestamp"]),
        metadata={
            "spec": header["spec"],
            "label": header["label"],
            "electrode_ids": header["electrode_ids"],
            "electrode_labels": header["electrode_labels"],
        },
    )
