"""Clock-drift correction for multi-device Blackrock recordings.

Provides the Recording Stream schema, pause segmentation, frame
duplication/removal and the samplealign entry point, plus a reader for
PTP-timestamped NSx files.

Example:
    >>> from ephys_nwb.sync import read_nsx_stream, correct_drift
    >>> streams = [read_nsx_stream(p) for p in ns6_paths]
    >>> result = correct_drift(streams)
    >>> for msg in result.warnings:
    ...     print(msg)
"""

# Exceptions
from ..exceptions import ArityMismatchError, DuplicateSourceError, InvalidInputError, SyncError

# Drift correction
from .align import REFERENCE_TIME_RESOLUTION, correct_drift, correct_stream, samplealign, validate_recording_stream

# Module-local models
from .models import CorrectedSegment, CorrectedStream, DriftCorrectionResult, RecordingStream, Segment, SegmentCorrection

# NSx reader
from .nsx import read_nsx_header, read_nsx_stream

# Collaborator protocols
from .protocols import RawStreamReader

# Resampling primitives
from .resample import drop_frames, duplicate_frames, edit_positions, plan_correction, resample_frames

# Segmentation
from .segments import find_gaps, split_segments

__all__ = [
    # Exceptions
    "SyncError",
    "ArityMismatchError",
    "InvalidInputError",
    "DuplicateSourceError",
    # Models
    "RecordingStream",
    "Segment",
    "CorrectedSegment",
    "CorrectedStream",
    "SegmentCorrection",
    "DriftCorrectionResult",
    # Protocols
    "RawStreamReader",
    # Segmentation
    "find_gaps",
    "split_segments",
    # Resampling
    "plan_correction",
    "edit_positions",
    "duplicate_frames",
    "drop_frames",
    "resample_frames",
    # Alignment
    "REFERENCE_TIME_RESOLUTION",
    "validate_recording_stream",
    "correct_stream",
    "correct_drift",
    "samplealign",
    # Reader
    "read_nsx_header",
    "read_nsx_stream",
]
