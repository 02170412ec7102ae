"""Sample-rate drift correction across independently clocked devices.

Gemini Hubs and NSPs each run their own sampling clock. When recordings are
timestamped against a shared PTP reference (nanosecond resolution, one
timestamp per sample), the true sampling rate of every segment can be
measured and the data aligned back to its claimed rate: frames are removed
where a device sampled too fast and duplicated where it sampled too slow,
evenly dispersed through each segment.

Flow per stream:
----------------
1. split_segments: detect pauses (timestamp jumps > 2x the sample interval)
2. Segment.rate_ratio: measured/claimed interval per segment
3. plan_correction + resample_frames: add/remove frames
4. CorrectedSegment: one start timestamp, data points and duration per segment

All inputs are validated before any stream is touched; a failing
precondition raises and no partial result is returned.

Example:
    >>> from ephys_nwb.sync import read_nsx_stream, samplealign
    >>> hub1 = read_nsx_stream(Path("Hub1-instance1_b1.ns6"))
    >>> hub2 = read_nsx_stream(Path("Hub2-instance2_b1.ns6"))
    >>> hub1_aligned, hub2_aligned = samplealign(hub1, hub2, n_outputs=2)
"""

import logging
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from ..exceptions import ArityMismatchError, DuplicateSourceError, InvalidInputError
from .models import CorrectedSegment, CorrectedStream, DriftCorrectionResult, RecordingStream, SegmentCorrection
from .resample import plan_correction, resample_frames
from .segments import DEFAULT_GAP_FACTOR, split_segments

__all__ = [
    "REFERENCE_TIME_RESOLUTION",
    "REQUIRED_STREAM_FIELDS",
    "validate_recording_stream",
    "correct_stream",
    "correct_drift",
    "samplealign",
]

logger = logging.getLogger(__name__)

REFERENCE_TIME_RESOLUTION = 1e9
REQUIRED_STREAM_FIELDS = ("filename", "time_resolution", "sampling_frequency", "frames", "timestamps")

StreamInput = Union[RecordingStream, Mapping[str, Any]]


# =============================================================================
# Input Validation
# =============================================================================


def validate_recording_stream(record: StreamInput) -> RecordingStream:
    """Validate a reader record at the ingestion boundary.

    Args:
        record: RecordingStream or mapping with the reader fields

    Returns:
        Validated RecordingStream

    Raises:
        InvalidInputError: Required fields missing or values malformed
    """
    if isinstance(record, RecordingStream):
        return record

    if not isinstance(record, Mapping):
        raise InvalidInputError(f"Expected a RecordingStream or mapping, got {type(record).__name__}")

    missing = [name for name in REQUIRED_STREAM_FIELDS if name not in record]
    if missing:
        raise InvalidInputError(
            f"Stream record is missing required fields: {', '.join(missing)}",
            {"missing": missing, "filename": record.get("filename")},
        )

    try:
        return RecordingStream(**record)
    except ValidationError as e:
        raise InvalidInputError(f"Malformed stream record '{record.get('filename')}': {e}", {"filename": record.get("filename")}) from e


def _check_timing(stream: RecordingStream, time_resolution: float) -> None:
    """Require nanosecond PTP timing unless the stream is a legacy format."""
    if stream.legacy:
        return

    if stream.time_resolution != time_resolution:
        raise InvalidInputError(
            f"{stream.filename}{stream.file_ext}: time resolution {stream.time_resolution:g} is not supported; "
            f"streams must be timestamped at {time_resolution:g} ticks/s with one timestamp per sample",
            {"filename": stream.filename, "time_resolution": stream.time_resolution},
        )


def _check_distinct_sources(streams: Sequence[RecordingStream]) -> None:
    seen = set()
    for stream in streams:
        if stream.filename in seen:
            raise DuplicateSourceError(
                f"Do not align data collected from the same Hub or NSP during the same recording " f"('{stream.filename}' given more than once). Clock drift only occurs between unique units.",
                {"filename": stream.filename},
            )
        seen.add(stream.filename)


# =============================================================================
# Correction
# =============================================================================


def correct_stream(stream: RecordingStream, gap_factor: float = DEFAULT_GAP_FACTOR) -> Tuple[CorrectedStream, List[SegmentCorrection]]:
    """Align one stream to its nominal sampling rate.

    Args:
        stream: Validated recording stream
        gap_factor: Pause threshold as a multiple of the sample interval

    Returns:
        (corrected stream, per-segment diagnostics)
    """
    source = f"{stream.filename}{stream.file_ext}"
    corrected_segments = []
    corrections = []

    for segment in split_segments(stream, gap_factor):
        ratio = segment.rate_ratio(stream.time_resolution, stream.sampling_frequency)
        added, gap = plan_correction(segment.length, ratio)
        frames = resample_frames(segment.frames, added, gap)

        if added > 0:
            logger.warning(f"{added} samples added to {source} segment {segment.index}")
        elif added < 0:
            logger.warning(f"{-added} samples removed from {source} segment {segment.index}")

        start = int(segment.timestamps[0]) if segment.length else 0
        corrected_segments.append(
            CorrectedSegment(
                index=segment.index,
                timestamp=start,
                frames=frames,
                sampling_frequency=stream.sampling_frequency,
            )
        )
        corrections.append(
            SegmentCorrection(
                source=source,
                segment=segment.index,
                original_length=segment.length,
                rate_ratio=ratio,
                added_samples=added,
                gap=gap,
                corrected_length=int(frames.shape[1]),
            )
        )

    corrected = CorrectedStream(
        filename=stream.filename,
        file_ext=stream.file_ext,
        time_resolution=stream.time_resolution,
        sampling_frequency=stream.sampling_frequency,
        segments=corrected_segments,
        metadata=dict(stream.metadata),
    )
    return corrected, corrections


def correct_drift(
    streams: Sequence[StreamInput],
    n_outputs: Optional[int] = None,
    time_resolution: float = REFERENCE_TIME_RESOLUTION,
    gap_factor: float = DEFAULT_GAP_FACTOR,
) -> DriftCorrectionResult:
    """Align every stream to its nominal sampling rate.

    Args:
        streams: Reader records, one per Hub/NSP
        n_outputs: Number of outputs the caller expects (defaults to len(streams))
        time_resolution: Required timestamp resolution for non-legacy streams
        gap_factor: Pause threshold as a multiple of the sample interval

    Returns:
        DriftCorrectionResult with streams in input order and diagnostics

    Raises:
        ArityMismatchError: No streams, or n_outputs != len(streams)
        InvalidInputError: A record is malformed or not PTP-timestamped
        DuplicateSourceError: Two records share a source identifier
    """
    streams = list(streams)

    if not streams:
        raise ArityMismatchError("At least one stream is required for alignment")
    if n_outputs is not None and n_outputs != len(streams):
        raise ArityMismatchError(
            f"There must be the same number of input and output arguments: " f"{len(streams)} streams, {n_outputs} outputs requested",
            {"n_inputs": len(streams), "n_outputs": n_outputs},
        )

    validated = [validate_recording_stream(s) for s in streams]
    for stream in validated:
        _check_timing(stream, time_resolution)
    _check_distinct_sources(validated)

    corrected_streams = []
    corrections: List[SegmentCorrection] = []
    for stream in validated:
        corrected, stream_corrections = correct_stream(stream, gap_factor)
        corrected_streams.append(corrected)
        corrections.extend(stream_corrections)

    n_corrected = sum(1 for c in corrections if c.corrected)
    logger.info(f"Drift correction complete: {len(corrected_streams)} stream(s), " f"{len(corrections)} segment(s), {n_corrected} resampled")

    return DriftCorrectionResult(streams=corrected_streams, corrections=corrections)


def samplealign(*streams: StreamInput, n_outputs: Optional[int] = None, **kwargs: Any) -> List[CorrectedStream]:
    """Align one or more NSx recordings to their expected sampling rates.

    Thin positional wrapper around correct_drift returning only the
    corrected streams, in the order given.

    Example:
        >>> a, b = samplealign(ns6_hub1, ns6_hub2, n_outputs=2)
    """
    return correct_drift(streams, n_outputs=n_outputs, **kwargs).streams
