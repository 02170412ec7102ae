"""Load ground-truth event-info tables.

Each recording block may come with a MATLAB file describing the trials that
were presented (one row per trial, columns named by a header). When the
number of .mat files does not line up with the recorded blocks, the
per-block text logs written by the stimulus computer are parsed instead.

MAT layout:
-----------
- event_info: numeric matrix (either orientation)
- n_expected: declared number of rows
- header: cell array of column labels

Text log layout:
----------------
Tab-separated; first line holds the column labels, remaining lines numbers.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

import numpy as np
from scipy.io import loadmat

from ..exceptions import EventsError
from .models import InfoTable

__all__ = ["orient_info_table", "load_info_mat", "parse_text_log"]

logger = logging.getLogger(__name__)


def orient_info_table(data: np.ndarray, expected_rows: Optional[int] = None, header: Optional[Sequence[str]] = None) -> np.ndarray:
    """Orient an info matrix so rows are samples, then zero-pad.

    With a header, the axis whose length matches the header becomes the
    columns. Without one, the longer axis becomes the rows.

    Args:
        data: Numeric matrix in either orientation
        expected_rows: Declared row count; shorter tables are zero-padded
        header: Column labels

    Returns:
        2-D float array with at least expected_rows rows

    Example:
        >>> orient_info_table(np.ones((3, 5)), expected_rows=7, header=["a", "b", "c"]).shape
        (7, 3)
    """
    table = np.atleast_2d(np.asarray(data, dtype=np.float64))
    n_cols = len(header) if header else 0

    if n_cols:
        if table.shape[1] != n_cols and table.shape[0] == n_cols:
            table = table.T
    elif table.shape[0] < table.shape[1]:
        table = table.T

    if expected_rows is not None and table.shape[0] < expected_rows:
        pad = np.zeros((expected_rows - table.shape[0], table.shape[1]), dtype=table.dtype)
        logger.debug(f"Padding info table from {table.shape[0]} to {expected_rows} rows")
        table = np.vstack([table, pad])

    return table


def _as_labels(raw) -> List[str]:
    if raw is None:
        return []
    return [str(label).strip() for label in np.atleast_1d(raw).ravel()]


def load_info_mat(path: Union[str, Path]) -> InfoTable:
    """Load one block's event info from a MATLAB file.

    Raises:
        FileNotFoundError: File does not exist
        EventsError: event_info variable missing
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Info file not found: {path}")

    mat = loadmat(str(path), squeeze_me=True)
    if "event_info" not in mat:
        raise EventsError(f"{path.name} has no 'event_info' variable", {"path": str(path)})

    header = _as_labels(mat.get("header"))
    data = orient_info_table(mat["event_info"], header=header)

    expected_rows = int(mat["n_expected"]) if "n_expected" in mat else data.shape[0]
    data = orient_info_table(data, expected_rows=expected_rows, header=header)

    return InfoTable(data=data, expected_rows=expected_rows, header=header)


def parse_text_log(path: Union[str, Path]) -> InfoTable:
    """Parse a tab-separated per-block text log into an info table.

    Raises:
        FileNotFoundError: File does not exist
        EventsError: Log is empty or rows are not numeric
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Text log not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        lines = [line.rstrip("\r\n") for line in f if line.strip()]

    if not lines:
        raise EventsError(f"Text log is empty: {path.name}", {"path": str(path)})

    header = [label.strip() for label in lines[0].split("\t")]
    rows = lines[1:]

    if rows:
        try:
            data = np.loadtxt(rows, delimiter="\t", ndmin=2, dtype=np.float64)
        except ValueError as e:
            raise EventsError(f"Non-numeric row in text log {path.name}: {e}", {"path": str(path)}) from e
    else:
        data = np.zeros((0, len(header)))

    data = orient_info_table(data, header=header)
    return InfoTable(data=data, expected_rows=data.shape[0], header=header)
