"""Pytest configuration and shared fixtures for ephys-nwb tests.

Provides:
- Synthetic PTP-timestamped recording streams with a chosen drift
- Event records and session directory layouts for reconciliation
- Configuration builders
"""

from pathlib import Path
from typing import Callable, Dict, Optional, Sequence

import numpy as np
import pytest

from ephys_nwb.config import Settings
from ephys_nwb.events.models import EventRecord
from ephys_nwb.sync.models import RecordingStream
from ephys_nwb.sync.nsx import NSX_BASIC_HEADER, NSX_EXT_HEADER, ptp_packet_dtype

SAMPLING_FREQUENCY = 30000.0
TIME_RESOLUTION = 1e9
SAMPLE_INTERVAL = TIME_RESOLUTION / SAMPLING_FREQUENCY


# ============================================================================
# Stream Builders
# ============================================================================


def ptp_timestamps(n_samples: int, rate_ratio: float = 1.0, start: int = 1_000_000) -> np.ndarray:
    """Per-sample timestamps whose measured rate ratio equals rate_ratio.

    The ratio is duration / n_samples in units of the nominal interval, so
    the last timestamp sits at start + rate_ratio * n_samples * interval.
    """
    stop = start + rate_ratio * n_samples * SAMPLE_INTERVAL
    return np.linspace(start, stop, n_samples).astype(np.uint64)


def segmented_timestamps(lengths: Sequence[int], ratios: Sequence[float], pause_s: float = 1.0) -> np.ndarray:
    """Concatenate drifting runs separated by pauses of pause_s seconds."""
    runs = []
    start = 1_000_000
    for length, ratio in zip(lengths, ratios):
        run = ptp_timestamps(length, ratio, start)
        runs.append(run)
        start = int(run[-1]) + int(pause_s * TIME_RESOLUTION)
    return np.concatenate(runs)


def ramp_frames(n_channels: int, n_samples: int) -> np.ndarray:
    """Frames whose value encodes (channel, sample) so edits are traceable."""
    return (np.arange(n_channels)[:, None] * 10_000 + np.arange(n_samples)[None, :]).astype(np.int16)


def write_ptp_nsx(
    path: Path,
    samples: np.ndarray,
    timestamps: np.ndarray,
    resolution: int = 1_000_000_000,
    file_id: bytes = b"BRSMPGRP",
    points_per_packet: int = 1,
) -> Path:
    """Write a minimal 3.0 NSx file, one (channels,) sample per packet."""
    n_channels = samples.shape[0]

    basic = np.zeros(1, dtype=NSX_BASIC_HEADER)
    basic["file_id"] = file_id
    basic["ver_major"] = 3
    basic["ver_minor"] = 0
    basic["bytes_in_headers"] = NSX_BASIC_HEADER.itemsize + n_channels * NSX_EXT_HEADER.itemsize
    basic["label"] = b"30 kS/s"
    basic["period"] = 1
    basic["timestamp_resolution"] = resolution
    basic["channel_count"] = n_channels

    ext = np.zeros(n_channels, dtype=NSX_EXT_HEADER)
    ext["type"] = b"CC"
    ext["electrode_id"] = np.arange(1, n_channels + 1)
    ext["electrode_label"] = [f"chan{i}".encode() for i in range(1, n_channels + 1)]

    packets = np.zeros(samples.shape[1], dtype=ptp_packet_dtype(n_channels))
    packets["reserved"] = 1
    packets["timestamp"] = timestamps
    packets["num_data_points"] = points_per_packet
    packets["samples"] = samples.T

    with open(path, "wb") as f:
        f.write(basic.tobytes())
        f.write(ext.tobytes())
        f.write(packets.tobytes())
    return path


@pytest.fixture
def make_stream() -> Callable[..., RecordingStream]:
    """Builder for synthetic RecordingStreams.

    Example:
        stream = make_stream("Hub1-instance1_b1", lengths=[100, 100], ratios=[1.0, 1.02])
    """

    def _make(
        filename: str = "Hub1-instance1_b1",
        lengths: Sequence[int] = (300,),
        ratios: Sequence[float] = (1.0,),
        n_channels: int = 2,
        **overrides,
    ) -> RecordingStream:
        timestamps = segmented_timestamps(lengths, ratios)
        fields = dict(
            filename=filename,
            file_ext=".ns6",
            time_resolution=TIME_RESOLUTION,
            sampling_frequency=SAMPLING_FREQUENCY,
            frames=ramp_frames(n_channels, timestamps.size),
            timestamps=timestamps,
        )
        fields.update(overrides)
        return RecordingStream(**fields)

    return _make


# ============================================================================
# Event Builders
# ============================================================================


def event_record(n_events: int, start: int = 0) -> EventRecord:
    """EventRecord with n_events sequential codes one millisecond apart."""
    return EventRecord(
        codes=np.arange(n_events) + 100,
        timestamps=start + np.arange(n_events, dtype=np.uint64) * 1_000_000,
    )


@pytest.fixture
def session_layout(tmp_path: Path) -> Callable[..., Path]:
    """Create empty .nev files for the given (block, instance) pairs.

    Files follow the Hub<i>-instance<i>_b<b>.nev naming convention. Content
    is irrelevant; tests inject a parser keyed on the file name.
    """

    def _layout(cells: Sequence[tuple], root: Optional[Path] = None) -> Path:
        root = root or tmp_path / "session"
        root.mkdir(parents=True, exist_ok=True)
        for block, instance in cells:
            (root / f"Hub{instance}-instance{instance}_b{block}.nev").touch()
        return root

    return _layout


@pytest.fixture
def fake_parser() -> Callable[[Dict[tuple, int]], Callable[[Path], EventRecord]]:
    """Build an event parser returning a given event count per (block, instance)."""
    from ephys_nwb.events.discovery import parse_block_index, parse_instance_index

    def _build(counts: Dict[tuple, int]) -> Callable[[Path], EventRecord]:
        def _parse(path: Path) -> EventRecord:
            key = (parse_block_index(path), parse_instance_index(path))
            return event_record(counts.get(key, 0))

        return _parse

    return _build


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary directory."""
    return Settings(
        project={"name": "test-ephys-nwb"},
        paths={"raw_root": str(tmp_path / "raw"), "output_root": str(tmp_path / "nwb")},
        session={
            "identifier": "sub-N_ses-20220308",
            "experimenter": "Tester",
            "institution": "Test Institution",
            "lab": "Test Lab",
            "description": "Synthetic two-hub session",
            "experiment_description": "Drift correction of paired Blackrock hubs",
            "session_start": "2022-03-08T10:00:00",
        },
    )


@pytest.fixture
def settings_toml(tmp_path: Path) -> Path:
    """Minimal valid pipeline.toml file."""
    path = tmp_path / "pipeline.toml"
    path.write_text(
        """
[project]
name = "test-ephys-nwb"

[paths]
raw_root = "data/raw"
output_root = "data/nwb"

[sync]
gap_factor = 3.0

[events]
min_event_count = 10

[logging]
level = "debug"
"""
    )
    return path

