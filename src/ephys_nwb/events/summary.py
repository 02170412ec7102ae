"""QC summary creation and persistence.

Generates EventSummary objects for quality control reporting: block and
instance counts, excluded blocks, missing cells and per-block medians.
"""

from datetime import datetime
import logging
from pathlib import Path
from typing import Union

from ..utils import write_json
from .models import EventSummary, ReconciledEvents

logger = logging.getLogger(__name__)


def create_event_summary(events: ReconciledEvents, source_dir: Union[str, Path]) -> EventSummary:
    """Create event summary for QC report from reconciled events.

    Args:
        events: Output of compile_event_data
        source_dir: Directory the events were compiled from

    Returns:
        EventSummary object for QC reporting
    """
    total_events = sum(int(codes.size) for row in events.codes for codes in row)

    summary = EventSummary(
        source_dir=str(source_dir),
        n_blocks=len(events.blocks) + len(events.bad_blocks),
        n_instances=len(events.instances),
        kept_blocks=list(events.blocks),
        bad_blocks=list(events.bad_blocks),
        missing_cells=list(events.missing_cells),
        block_medians=dict(events.block_medians),
        total_events=total_events,
        has_info=events.infos is not None,
        generated_at=datetime.now().isoformat(),
    )

    logger.info(f"Created event summary: {len(events.blocks)} kept block(s), " f"{len(events.bad_blocks)} bad, {len(events.missing_cells)} missing cell(s)")
    return summary


def write_event_summary(summary: EventSummary, output_path: Path) -> None:
    """Write event summary to JSON file.

    Args:
        summary: EventSummary object to write
        output_path: Destination path for JSON file
    """
    write_json(summary.model_dump(), output_path)
    logger.info(f"Wrote event summary to {Path(output_path).name}")
