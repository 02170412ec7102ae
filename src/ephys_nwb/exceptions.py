"""Exception hierarchy for the ephys-nwb pipeline.

All errors raised by the package derive from EphysNWBError so callers can
catch pipeline failures with a single clause while still distinguishing
configuration, synchronization, event and NWB packaging problems.

Hierarchy:
----------
- EphysNWBError
  ├── ConfigError
  ├── SyncError
  │   ├── ArityMismatchError
  │   ├── InvalidInputError
  │   └── DuplicateSourceError
  ├── EventsError
  │   ├── UnparseableFilenameError
  │   └── InfoBlockCountMismatchError
  └── NWBBuildError

Example:
--------
>>> from ephys_nwb.exceptions import SyncError
>>> try:
...     samplealign(stream_a, stream_a)
... except SyncError as e:
...     print(f"Alignment refused: {e.message}")
"""

from typing import Any, Dict, Optional

__all__ = [
    "EphysNWBError",
    "ConfigError",
    "SyncError",
    "ArityMismatchError",
    "InvalidInputError",
    "DuplicateSourceError",
    "EventsError",
    "UnparseableFilenameError",
    "InfoBlockCountMismatchError",
    "NWBBuildError",
]


class EphysNWBError(Exception):
    """Base exception for all pipeline errors.

    Attributes:
        message: Human-readable description of the violated invariant
        context: Optional structured details (file names, counts, indices)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ConfigError(EphysNWBError):
    """Configuration file missing or invalid."""

    pass


# =============================================================================
# Synchronization
# =============================================================================


class SyncError(EphysNWBError):
    """Error during drift correction."""

    pass


class ArityMismatchError(SyncError):
    """Requested number of outputs differs from number of input streams."""

    pass


class InvalidInputError(SyncError):
    """Stream record is missing required fields or has unsupported timing."""

    pass


class DuplicateSourceError(SyncError):
    """Two streams from the same Hub/NSP were passed for alignment."""

    pass


# =============================================================================
# Events
# =============================================================================


class EventsError(EphysNWBError):
    """Error during event reconciliation."""

    pass


class UnparseableFilenameError(EventsError):
    """Block or instance index could not be recovered from a file name."""

    pass


class InfoBlockCountMismatchError(EventsError):
    """Number of event-info sources does not match the number of blocks."""

    pass


# =============================================================================
# NWB
# =============================================================================


class NWBBuildError(EphysNWBError):
    """Raised when NWB container construction fails."""

    pass
