"""Protocol definitions for sync module collaborators.

Protocols provide structural subtyping so readers for other acquisition
systems can feed the drift corrector without importing concrete types.
"""

from pathlib import Path
from typing import Protocol

from .models import RecordingStream


class RawStreamReader(Protocol):
    """Reads one device's continuous recording from disk.

    Implementations must return timestamps that are non-decreasing and
    one-to-one with frames.
    """

    def __call__(self, path: Path) -> RecordingStream: ...
