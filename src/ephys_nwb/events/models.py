"""Events domain models.

This module defines the models owned by the events module:

- EventRecord: codes and timestamps parsed from one raw event (.nev) file.
  An empty record is the placeholder for a (block, instance) cell whose
  file is missing.
- InfoTable: ground-truth trial metadata for one block.
- ReconciledEvents: the [block][instance] tables produced by
  compile_event_data, with exclusion and missing-cell reports.
- EventSummary: QC summary derived from ReconciledEvents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..exceptions import EventsError

__all__ = ["EventRecord", "InfoTable", "ReconciledEvents", "EventSummary", "validate_event_record", "validate_info_table"]


class EventRecord(BaseModel):
    """Digital event codes of one block recorded by one device instance.

    Attributes:
        codes: Event code values (unsigned digital/serial port words)
        timestamps: Event times in the file's native ticks
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    codes: np.ndarray = Field(..., description="Event code values")
    timestamps: np.ndarray = Field(..., description="Event timestamps (ticks)")

    @field_validator("codes", mode="before")
    @classmethod
    def _as_int(cls, v: Any) -> np.ndarray:
        return np.asarray(v).ravel().astype(np.int64)

    @field_validator("timestamps", mode="before")
    @classmethod
    def _as_uint64(cls, v: Any) -> np.ndarray:
        return np.asarray(v).ravel().astype(np.uint64)

    @model_validator(mode="after")
    def _check_lengths(self) -> "EventRecord":
        if self.codes.size != self.timestamps.size:
            raise ValueError(f"codes and timestamps differ in length: {self.codes.size} != {self.timestamps.size}")
        return self

    @classmethod
    def empty(cls) -> "EventRecord":
        """Placeholder for a cell without a source file."""
        return cls(codes=np.zeros(0, dtype=np.int64), timestamps=np.zeros(0, dtype=np.uint64))

    @property
    def count(self) -> int:
        return int(self.codes.size)

    @property
    def is_empty(self) -> bool:
        return self.count == 0


class InfoTable(BaseModel):
    """Ground-truth event info for one block.

    Rows are trials/time samples, columns follow header.

    Attributes:
        data: 2-D numeric table
        expected_rows: Declared number of rows
        header: Column labels
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    data: np.ndarray = Field(..., description="Info table, rows are samples")
    expected_rows: int = Field(..., ge=0, description="Declared row count")
    header: List[str] = Field(default_factory=list, description="Column labels")

    @field_validator("data", mode="before")
    @classmethod
    def _as_2d_float(cls, v: Any) -> np.ndarray:
        arr = np.asarray(v, dtype=np.float64)
        if arr.ndim > 2:
            raise ValueError(f"info table must be at most 2-D, got {arr.ndim}-D")
        if arr.ndim == 2:
            return arr
        return np.atleast_2d(arr) if arr.size else arr.reshape(0, 0)

    @property
    def n_rows(self) -> int:
        return int(self.data.shape[0])


@dataclass(frozen=True)
class ReconciledEvents:
    """Event tables compiled across blocks and device instances.

    Only blocks that passed quality filtering appear in codes, times and
    infos; row k of each table belongs to blocks[k], column j to
    instances[j].

    Attributes:
        blocks: Kept block indices (sorted)
        instances: Device instance indices (sorted)
        codes: codes[k][j] event codes of blocks[k] on instances[j]
        times: times[k][j] event timestamps, parallel to codes
        infos: Per-block info tables for kept blocks, or None without info sources
        info_header: Info column labels, or None without info sources
        bad_blocks: Blocks excluded for a low median event count
        missing_cells: (block, instance) pairs of kept blocks with no events
        event_counts: Event count of every discovered (block, instance) cell
        block_medians: Median per-instance event count of every block
    """

    blocks: List[int]
    instances: List[int]
    codes: List[List[np.ndarray]]
    times: List[List[np.ndarray]]
    infos: Optional[List[np.ndarray]] = None
    info_header: Optional[List[str]] = None
    bad_blocks: List[int] = field(default_factory=list)
    missing_cells: List[Tuple[int, int]] = field(default_factory=list)
    event_counts: Dict[Tuple[int, int], int] = field(default_factory=dict)
    block_medians: Dict[int, float] = field(default_factory=dict)

    def cell(self, block: int, instance: int) -> Tuple[np.ndarray, np.ndarray]:
        """Codes and times of one kept (block, instance) cell.

        Raises:
            KeyError: Block was excluded/unknown or instance unknown
        """
        if block not in self.blocks:
            raise KeyError(f"Block {block} not in reconciled events (bad blocks: {self.bad_blocks})")
        if instance not in self.instances:
            raise KeyError(f"Instance {instance} not in reconciled events")
        k = self.blocks.index(block)
        j = self.instances.index(instance)
        return self.codes[k][j], self.times[k][j]


class EventSummary(BaseModel):
    """QC summary of an event reconciliation run."""

    model_config = {"frozen": True, "extra": "forbid"}

    source_dir: str = Field(..., description="Directory the raw event files were discovered in")
    n_blocks: int = Field(..., ge=0, description="Blocks discovered")
    n_instances: int = Field(..., ge=0, description="Device instances discovered")
    kept_blocks: List[int] = Field(default_factory=list)
    bad_blocks: List[int] = Field(default_factory=list)
    missing_cells: List[Tuple[int, int]] = Field(default_factory=list)
    block_medians: Dict[int, float] = Field(default_factory=dict)
    total_events: int = Field(..., ge=0, description="Events across kept blocks")
    has_info: bool = Field(..., description="Whether event-info tables were attached")
    generated_at: str = Field(..., description="ISO timestamp")


# =============================================================================
# Boundary Validation
# =============================================================================


def validate_event_record(record: Any, source: Optional[str] = None) -> EventRecord:
    """Validate a parser result at the ingestion boundary.

    Args:
        record: EventRecord or mapping with codes and timestamps
        source: File the record was parsed from (for error context)

    Returns:
        Validated EventRecord

    Raises:
        EventsError: Record is malformed
    """
    if isinstance(record, EventRecord):
        return record
    if not isinstance(record, Mapping):
        raise EventsError(f"Event parser returned {type(record).__name__} for {source}", {"source": source})

    try:
        return EventRecord(**record)
    except (TypeError, ValidationError) as e:
        raise EventsError(f"Malformed event record from {source}: {e}", {"source": source}) from e


def validate_info_table(table: Any, source: Optional[str] = None) -> InfoTable:
    """Validate an info parser result at the ingestion boundary.

    Raises:
        EventsError: Table is malformed
    """
    if isinstance(table, InfoTable):
        return table
    if not isinstance(table, Mapping):
        raise EventsError(f"Info parser returned {type(table).__name__} for {source}", {"source": source})

    try:
        return InfoTable(**table)
    except (TypeError, ValidationError) as e:
        raise EventsError(f"Malformed info table from {source}: {e}", {"source": source}) from e
