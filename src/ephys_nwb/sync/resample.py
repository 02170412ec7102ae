"""Frame duplication/removal for drift correction.

A segment whose true sampling rate (measured against PTP time) differs from
its claimed rate is stretched or shrunk to the claimed rate by duplicating
or dropping whole frames, evenly spread over the segment.

Edit points:
------------
- Adding k frames: the frames at ``gap, 2*gap, ...`` are duplicated.
- Removing k frames: the frames at ``gap, gap + (gap + 1), ...`` are dropped.

where ``gap = round(length / (|k| + 1))``. The stride for removal is one
longer than for addition because each removal consumes the frame at the
edit point. When the walk would run past the end of the segment, the edit
points are instead spread evenly between ``gap`` and the second-to-last
frame.

Example:
    >>> added, gap = plan_correction(length=100, rate_ratio=1.02)
    >>> added, gap
    (2, 33)
    >>> duplicate_frames(frames, added, gap).shape[1]
    102
"""

from typing import Tuple

import numpy as np

from ..utils import round_half_away

__all__ = [
    "plan_correction",
    "edit_positions",
    "duplicate_frames",
    "drop_frames",
    "resample_frames",
]


def plan_correction(length: int, rate_ratio: float) -> Tuple[int, int]:
    """Compute how many frames to add and how far apart to place them.

    Args:
        length: Number of frames in the segment
        rate_ratio: Measured/claimed sampling interval ratio

    Returns:
        (added_samples, gap) where added_samples is signed (negative means
        frames are removed) and gap is the spacing between edit points
    """
    added = round_half_away((rate_ratio - 1.0) * length)
    gap = max(1, round_half_away(length / (abs(added) + 1)))
    return added, gap


def edit_positions(length: int, n_edits: int, gap: int, stride: int, allow_repeat: bool) -> np.ndarray:
    """Frame indices to edit, one per stride.

    Edit points start at gap and advance by stride. If the last of them
    would fall past the second-to-last frame, all n_edits points are spread
    evenly over [gap, length - 2] instead, so edits never pile up at the
    end of the segment.

    Args:
        length: Number of frames in the segment
        n_edits: Number of edit points required
        gap: Index of the first edit point
        stride: Distance between successive edit points
        allow_repeat: Whether an index may be edited more than once
            (duplication may, removal may not)

    Returns:
        Sorted array of n_edits frame indices (fewer only when removal asks
        for more frames than the segment holds)
    """
    if length == 0 or n_edits <= 0:
        return np.array([], dtype=np.intp)

    # The last frame is never an interior stride boundary
    last = max(length - 2, 0)
    if gap + stride * (n_edits - 1) <= last:
        return gap + stride * np.arange(n_edits, dtype=np.intp)

    first = min(gap, last)
    if not allow_repeat and last - first + 1 < n_edits:
        n_edits = min(n_edits, length)
        if n_edits > last + 1:
            last = length - 1
        first = last - n_edits + 1

    # Round half up; a step of at least one keeps removal indices distinct
    return np.floor(np.linspace(first, last, n_edits) + 0.5).astype(np.intp)


def duplicate_frames(frames: np.ndarray, added: int, gap: int) -> np.ndarray:
    """Duplicate `added` frames, one every `gap` frames."""
    length = frames.shape[1]
    positions = edit_positions(length, added, gap, stride=gap, allow_repeat=True)

    counts = np.ones(length, dtype=np.intp)
    np.add.at(counts, positions, 1)
    return np.repeat(frames, counts, axis=1)


def drop_frames(frames: np.ndarray, removed: int, gap: int) -> np.ndarray:
    """Drop `removed` frames, one every `gap + 1` frames."""
    length = frames.shape[1]
    positions = edit_positions(length, removed, gap, stride=gap + 1, allow_repeat=False)

    keep = np.ones(length, dtype=bool)
    keep[positions] = False
    return frames[:, keep]


def resample_frames(frames: np.ndarray, added: int, gap: int) -> np.ndarray:
    """Apply a planned correction to a (channels x samples) frame array.

    A zero correction returns the input array unchanged.
    """
    if added > 0:
        return duplicate_frames(frames, added, gap)
    if added < 0:
        return drop_frames(frames, -added, gap)
    return frames
