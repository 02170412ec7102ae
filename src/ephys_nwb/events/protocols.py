"""Protocol definitions for events module collaborators.

The reconciler only needs callables with these shapes, so tests and other
acquisition systems can supply their own parsers.
"""

from pathlib import Path
from typing import Protocol

from .models import EventRecord, InfoTable


class EventFileParser(Protocol):
    """Parses one raw event file into codes and timestamps."""

    def __call__(self, path: Path) -> EventRecord: ...


class InfoFileParser(Protocol):
    """Parses one block's info source into an oriented, padded table."""

    def __call__(self, path: Path) -> InfoTable: ...
