"""Cross-block, cross-instance event code reconciliation.

Locates one raw event file per (block, device instance), attaches optional
ground-truth event info per block, excludes blocks with too few events and
reports cells left empty by dropped devices.

Example:
    >>> from ephys_nwb.events import compile_event_data, create_event_summary
    >>> events = compile_event_data("data/raw/sub-N_ses-20220308")
    >>> summary = create_event_summary(events, "data/raw/sub-N_ses-20220308")
    >>> summary.bad_blocks
    [3]
"""

# Exceptions
from ..exceptions import EventsError, InfoBlockCountMismatchError, UnparseableFilenameError

# Discovery
from .discovery import discover_event_files, parse_block_index, parse_instance_index, sorted_keys

# Info sources
from .info import load_info_mat, orient_info_table, parse_text_log

# Module-local models
from .models import EventRecord, EventSummary, InfoTable, ReconciledEvents, validate_event_record, validate_info_table

# NEV reader
from .nev import read_nev_events

# Collaborator protocols
from .protocols import EventFileParser, InfoFileParser

# Reconciliation
from .reconcile import block_medians, compile_event_data, find_bad_blocks

# QC summary
from .summary import create_event_summary, write_event_summary

__all__ = [
    # Exceptions
    "EventsError",
    "UnparseableFilenameError",
    "InfoBlockCountMismatchError",
    # Models
    "EventRecord",
    "InfoTable",
    "ReconciledEvents",
    "EventSummary",
    "validate_event_record",
    "validate_info_table",
    # Protocols
    "EventFileParser",
    "InfoFileParser",
    # Discovery
    "parse_block_index",
    "parse_instance_index",
    "discover_event_files",
    "sorted_keys",
    # Parsers
    "read_nev_events",
    "load_info_mat",
    "parse_text_log",
    "orient_info_table",
    # Reconciliation
    "compile_event_data",
    "block_medians",
    "find_bad_blocks",
    # Summary
    "create_event_summary",
    "write_event_summary",
]
