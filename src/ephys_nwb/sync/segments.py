"""Pause detection for per-sample timestamped recordings.

Clock-drift patched recordings carry one timestamp per sample, so pauses
are no longer marked by data headers. They are recovered here from jumps in
the timestamp sequence.

Example:
    >>> segments = split_segments(stream)
    >>> [seg.length for seg in segments]
    [30000, 45000]
"""

import logging
from typing import List

import numpy as np

from .models import RecordingStream, Segment

__all__ = ["find_gaps", "split_segments"]

logger = logging.getLogger(__name__)

DEFAULT_GAP_FACTOR = 2.0


def find_gaps(timestamps: np.ndarray, sample_interval: float, gap_factor: float = DEFAULT_GAP_FACTOR) -> np.ndarray:
    """Locate the first sample of every run that follows a pause.

    Args:
        timestamps: Per-sample timestamps (ticks)
        sample_interval: Expected ticks between samples
        gap_factor: Multiple of sample_interval above which a jump is a pause

    Returns:
        Sorted sample indices where a new segment starts (never 0)
    """
    if timestamps.size < 2:
        return np.array([], dtype=np.intp)

    diffs = np.diff(timestamps.astype(np.float64))
    return np.flatnonzero(diffs > gap_factor * sample_interval) + 1


def split_segments(stream: RecordingStream, gap_factor: float = DEFAULT_GAP_FACTOR) -> List[Segment]:
    """Split a stream into timing-contiguous segments.

    A stream without pauses yields a single segment spanning all samples.

    Args:
        stream: Validated recording stream
        gap_factor: Multiple of the nominal sample interval that marks a pause

    Returns:
        Segments in recording order
    """
    starts = find_gaps(stream.timestamps, stream.sample_interval, gap_factor)
    bounds = [0, *starts.tolist(), stream.n_samples]

    segments = [
        Segment(index=i, frames=stream.frames[:, lo:hi], timestamps=stream.timestamps[lo:hi])
        for i, (lo, hi) in enumerate(zip(bounds[:-1], bounds[1:]))
    ]

    if len(segments) > 1:
        logger.info(f"{stream.filename}{stream.file_ext}: {len(segments) - 1} pause(s) detected, " f"{len(segments)} segments")

    return segments
