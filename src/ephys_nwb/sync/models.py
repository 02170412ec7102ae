"""Drift correction models.

Defines the schema of a raw Recording Stream as produced by a reader, the
timing-contiguous Segment it is split into, and the corrected output.

Model Hierarchy:
---------------
- RecordingStream: one device's raw acquisition (input, validated)
- Segment: gap-free run of a RecordingStream
- CorrectedSegment: resampled Segment with rebuilt metadata
- CorrectedStream: RecordingStream metadata + list of CorrectedSegments
- SegmentCorrection: per-segment diagnostic record
- DriftCorrectionResult: corrected streams + diagnostics

An unpaused recording is simply a CorrectedStream with one segment.
"""

from dataclasses import dataclass, field
import math
from typing import Any, Dict, List

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

__all__ = [
    "RecordingStream",
    "Segment",
    "CorrectedSegment",
    "CorrectedStream",
    "SegmentCorrection",
    "DriftCorrectionResult",
]


class RecordingStream(BaseModel):
    """One device's continuous acquisition session.

    Attributes:
        filename: Source identifier (file name without extension); unique per
            Hub/NSP and recording
        file_ext: File extension, e.g. ".ns6"
        time_resolution: Timestamp ticks per second (1e9 for PTP recordings)
        sampling_frequency: Nominal sampling frequency in Hz
        frames: Raw samples, shape (n_channels, n_samples); each column is a frame
        timestamps: One uint64 timestamp per frame
        legacy: Legacy low-resolution format; skips the resolution check
        metadata: Reader metadata passed through correction untouched
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    filename: str = Field(..., min_length=1, description="Source identifier (file name without extension)")
    file_ext: str = Field(default="", description="File extension including the dot")
    time_resolution: float = Field(..., gt=0, description="Timestamp ticks per second")
    sampling_frequency: float = Field(..., gt=0, description="Nominal sampling frequency (Hz)")
    frames: np.ndarray = Field(..., description="Samples, shape (n_channels, n_samples)")
    timestamps: np.ndarray = Field(..., description="Per-sample timestamps in ticks")
    legacy: bool = Field(default=False, description="Legacy low-resolution file format")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Pass-through reader metadata")

    @field_validator("frames", mode="before")
    @classmethod
    def _as_2d(cls, v: Any) -> np.ndarray:
        arr = np.asarray(v)
        if arr.ndim == 1:
            arr = arr[np.newaxis, :]
        if arr.ndim != 2:
            raise ValueError(f"frames must be 2-D (channels x samples), got {arr.ndim}-D")
        return arr

    @field_validator("timestamps", mode="before")
    @classmethod
    def _as_uint64(cls, v: Any) -> np.ndarray:
        arr = np.asarray(v).ravel()
        if arr.size and np.any(arr < 0):
            raise ValueError("timestamps must be non-negative")
        return arr.astype(np.uint64)

    @model_validator(mode="after")
    def _check_timestamps(self) -> "RecordingStream":
        if self.timestamps.size != self.frames.shape[1]:
            raise ValueError(f"expected one timestamp per sample: {self.timestamps.size} timestamps " f"for {self.frames.shape[1]} samples")
        if self.timestamps.size > 1 and np.any(np.diff(self.timestamps.astype(np.float64)) < 0):
            raise ValueError("timestamps must be non-decreasing")
        return self

    @property
    def n_samples(self) -> int:
        return int(self.frames.shape[1])

    @property
    def sample_interval(self) -> float:
        """Expected ticks between consecutive samples."""
        return self.time_resolution / self.sampling_frequency


@dataclass(frozen=True)
class Segment:
    """Timing-contiguous run of a RecordingStream.

    Attributes:
        index: Position of the segment within its stream (0-based)
        frames: Samples of the run, shape (n_channels, length)
        timestamps: Timestamps of the run
    """

    index: int
    frames: np.ndarray
    timestamps: np.ndarray

    @property
    def length(self) -> int:
        return int(self.frames.shape[1])

    @property
    def duration(self) -> float:
        """Ticks between the first and last sample."""
        if self.length == 0:
            return 0.0
        return float(self.timestamps[-1]) - float(self.timestamps[0])

    def rate_ratio(self, time_resolution: float, sampling_frequency: float) -> float:
        """Ratio of true to claimed sampling interval.

        The first-to-last duration spans length - 1 intervals but is divided
        by length, so perfectly uniform timestamps measure
        (length - 1) / length and lose one frame on correction. Segments
        shorter than two samples carry no rate information and report 1.0.
        """
        if self.length < 2:
            return 1.0
        return self.duration / self.length / time_resolution * sampling_frequency


@dataclass(frozen=True)
class CorrectedSegment:
    """Segment after drift correction.

    Attributes:
        index: Position of the segment within its stream (0-based)
        timestamp: First original timestamp of the segment
        frames: Resampled frames
        sampling_frequency: Nominal sampling frequency (Hz)
    """

    index: int
    timestamp: int
    frames: np.ndarray
    sampling_frequency: float

    @property
    def data_points(self) -> int:
        return int(self.frames.shape[1])

    @property
    def duration_s(self) -> int:
        """Whole seconds of data at the nominal sampling frequency."""
        return math.floor(self.data_points / self.sampling_frequency)


@dataclass(frozen=True)
class CorrectedStream:
    """Drift-corrected Recording Stream.

    Raw per-sample timestamps are replaced by one timestamp per segment.
    """

    filename: str
    file_ext: str
    time_resolution: float
    sampling_frequency: float
    segments: List[CorrectedSegment]
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def timestamps(self) -> List[int]:
        return [seg.timestamp for seg in self.segments]

    @property
    def data_points(self) -> List[int]:
        return [seg.data_points for seg in self.segments]

    @property
    def data_duration_s(self) -> List[int]:
        return [seg.duration_s for seg in self.segments]

    @property
    def is_paused(self) -> bool:
        return len(self.segments) > 1


@dataclass(frozen=True)
class SegmentCorrection:
    """Diagnostic record for one segment's correction.

    Attributes:
        source: Stream file name and extension
        segment: Segment index (0-based)
        original_length: Samples before correction
        rate_ratio: Measured/claimed sampling interval ratio
        added_samples: Signed frame count added (negative = removed)
        gap: Spacing between edit points
        corrected_length: Samples after correction
    """

    source: str
    segment: int
    original_length: int
    rate_ratio: float
    added_samples: int
    gap: int
    corrected_length: int

    @property
    def corrected(self) -> bool:
        return self.added_samples != 0


@dataclass(frozen=True)
class DriftCorrectionResult:
    """Corrected streams in input order plus per-segment diagnostics."""

    streams: List[CorrectedStream]
    corrections: List[SegmentCorrection] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        """Human-readable messages for every segment that was resampled."""
        messages = []
        for c in self.corrections:
            if c.added_samples > 0:
                messages.append(f"{c.added_samples} samples added to {c.source} segment {c.segment}")
            elif c.added_samples < 0:
                messages.append(f"{-c.added_samples} samples removed from {c.source} segment {c.segment}")
        return messages
