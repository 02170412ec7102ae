"""Unit tests for cross-block, cross-instance event reconciliation.

Raw event parsing is injected so tests control event counts per
(block, instance) cell without real NEV files.
"""

import logging
from pathlib import Path

import numpy as np
import pytest

from ephys_nwb.config import EventsConfig
from ephys_nwb.events import InfoTable, block_medians, compile_event_data, find_bad_blocks
from ephys_nwb.exceptions import EventsError, InfoBlockCountMismatchError

GRID_2x2 = [(1, 1), (1, 2), (2, 1), (2, 2)]
GRID_2x3 = [(b, i) for b in (1, 2) for i in (1, 2, 3)]


def numbered_info_parser(path: Path) -> InfoTable:
    """Info table whose single value is the digit in the file name."""
    number = float("".join(c for c in path.stem if c.isdigit()))
    return InfoTable(data=[[number, number]], expected_rows=1, header=["trial", "stim"])


class TestCellPopulation:
    def test_Should_BuildBlockByInstanceTables_When_AllFilesPresent(self, session_layout, fake_parser):
        root = session_layout(GRID_2x2)

        events = compile_event_data(root, parser=fake_parser({key: 30 for key in GRID_2x2}))

        assert events.blocks == [1, 2]
        assert events.instances == [1, 2]
        assert [[c.size for c in row] for row in events.codes] == [[30, 30], [30, 30]]
        assert [[t.size for t in row] for row in events.times] == [[30, 30], [30, 30]]
        assert events.bad_blocks == []
        assert events.missing_cells == []
        assert events.infos is None
        assert events.info_header is None

    def test_Should_KeepCodesAndTimesParallel_When_Parsed(self, session_layout, fake_parser):
        root = session_layout(GRID_2x2)

        events = compile_event_data(root, parser=fake_parser({key: 30 for key in GRID_2x2}))

        codes, times = events.cell(2, 1)
        assert codes[0] == 100
        assert times.dtype == np.uint64
        assert codes.size == times.size

    def test_Should_Raise_When_NoEventFiles(self, tmp_path: Path):
        with pytest.raises(EventsError, match="No raw event files"):
            compile_event_data(tmp_path)

    def test_Should_PropagateParserErrors_When_FileUnreadable(self, session_layout):
        root = session_layout(GRID_2x2)

        def broken(path):
            raise OSError(f"cannot read {path}")

        with pytest.raises(OSError, match="cannot read"):
            compile_event_data(root, parser=broken)

    def test_Should_Raise_When_ParserReturnsMalformedRecord(self, session_layout):
        root = session_layout([(1, 1)])

        with pytest.raises(EventsError, match="Malformed event record"):
            compile_event_data(root, parser=lambda path: {"codes": [1, 2], "timestamps": [1]})


class TestMissingCells:
    def test_Should_FillPlaceholderAndReport_When_InstanceFileMissing(self, session_layout, fake_parser, caplog):
        present = [key for key in GRID_2x3 if key != (2, 3)]
        root = session_layout(present)

        with caplog.at_level(logging.WARNING, logger="ephys_nwb.events.reconcile"):
            events = compile_event_data(root, parser=fake_parser({key: 30 for key in present}))

        assert events.blocks == [1, 2]
        assert events.missing_cells == [(2, 3)]
        codes, times = events.cell(2, 3)
        assert codes.size == 0 and times.size == 0
        assert "No event file for block 2 instance 3" in caplog.text

    def test_Should_ReportEmptyCell_When_FileHasNoEvents(self, session_layout, fake_parser):
        root = session_layout(GRID_2x3)
        counts = {key: 30 for key in GRID_2x3}
        counts[(1, 2)] = 0

        events = compile_event_data(root, parser=fake_parser(counts))

        assert events.missing_cells == [(1, 2)]


class TestQualityFiltering:
    def test_Should_ExcludeBlock_When_MedianCountIs24(self, session_layout, fake_parser, caplog):
        root = session_layout(GRID_2x3)
        counts = {(1, 1): 30, (1, 2): 30, (1, 3): 30, (2, 1): 24, (2, 2): 24, (2, 3): 100}

        with caplog.at_level(logging.WARNING, logger="ephys_nwb.events.reconcile"):
            events = compile_event_data(root, parser=fake_parser(counts))

        assert events.bad_blocks == [2]
        assert events.blocks == [1]
        assert len(events.codes) == 1
        assert len(events.times) == 1
        assert events.block_medians[2] == 24.0
        assert "Block 2 excluded" in caplog.text
        with pytest.raises(KeyError):
            events.cell(2, 1)

    def test_Should_ExcludeBlockFromInfos_When_Bad(self, session_layout, fake_parser):
        root = session_layout(GRID_2x2)
        (root / "blk1_info.mat").touch()
        (root / "blk2_info.mat").touch()
        counts = {(1, 1): 5, (1, 2): 5, (2, 1): 40, (2, 2): 40}

        events = compile_event_data(root, parser=fake_parser(counts), info_parser=numbered_info_parser)

        assert events.blocks == [2]
        assert len(events.infos) == 1
        assert events.infos[0][0, 0] == 2.0

    def test_Should_KeepBlock_When_MedianEqualsThreshold(self, session_layout, fake_parser):
        root = session_layout(GRID_2x2)

        events = compile_event_data(root, parser=fake_parser({key: 25 for key in GRID_2x2}))

        assert events.bad_blocks == []

    def test_Should_UseConfiguredThreshold_When_SettingsGiven(self, session_layout, fake_parser):
        root = session_layout(GRID_2x2)

        events = compile_event_data(root, EventsConfig(min_event_count=10), parser=fake_parser({key: 12 for key in GRID_2x2}))

        assert events.blocks == [1, 2]

    def test_Should_RecordEveryCellCount_When_Reconciled(self, session_layout, fake_parser):
        root = session_layout([(1, 1), (1, 2), (2, 1)])

        events = compile_event_data(root, parser=fake_parser({(1, 1): 30, (1, 2): 40, (2, 1): 50}))

        assert events.event_counts == {(1, 1): 30, (1, 2): 40, (2, 1): 50, (2, 2): 0}


class TestMedianHelpers:
    def test_Should_CountMissingCellsAsZero_When_ComputingMedians(self):
        medians = block_medians({(1, 1): 30, (1, 2): 40}, blocks=[1], instances=[1, 2, 3])

        assert medians == {1: 30.0}

    def test_Should_ListBlocksBelowThreshold_When_Filtering(self):
        assert find_bad_blocks({3: 24.0, 1: 10.0, 2: 25.0}, 25) == [1, 3]


class TestInfoMatching:
    def test_Should_AttachInfoPerBlock_When_CountsMatch(self, session_layout, fake_parser):
        root = session_layout(GRID_2x2)
        (root / "blk1_info.mat").touch()
        (root / "blk2_info.mat").touch()

        events = compile_event_data(root, parser=fake_parser({key: 30 for key in GRID_2x2}), info_parser=numbered_info_parser)

        assert [info[0, 0] for info in events.infos] == [1.0, 2.0]
        assert events.info_header == ["trial", "stim"]

    def test_Should_OrderInfoByBlockToken_When_PathsCarryBlocks(self, session_layout, fake_parser):
        cells = [(2, 1), (2, 2), (10, 1), (10, 2)]
        root = session_layout(cells)
        for block in (2, 10):
            (root / f"block_{block}").mkdir()
            (root / f"block_{block}" / f"{block}_info.mat").touch()

        events = compile_event_data(root, parser=fake_parser({key: 30 for key in cells}), info_parser=numbered_info_parser)

        assert events.blocks == [2, 10]
        assert [info[0, 0] for info in events.infos] == [2.0, 10.0]

    def test_Should_KeyInfoByFileToken_When_BlocksPassNine(self, session_layout, fake_parser):
        cells = [(2, 1), (2, 2), (10, 1), (10, 2)]
        root = session_layout(cells)
        (root / "sess_b2_info.mat").touch()
        (root / "sess_b10_info.mat").touch()

        events = compile_event_data(root, parser=fake_parser({key: 30 for key in cells}), info_parser=numbered_info_parser)

        assert events.blocks == [2, 10]
        assert [info[0, 0] for info in events.infos] == [2.0, 10.0]

    def test_Should_Raise_When_InfoBlocksDifferFromEventBlocks(self, session_layout, fake_parser):
        cells = [(2, 1), (10, 1)]
        root = session_layout(cells)
        (root / "sess_b2_info.mat").touch()
        (root / "sess_b3_info.mat").touch()

        with pytest.raises(InfoBlockCountMismatchError, match=r"blocks \[2, 10\]"):
            compile_event_data(root, parser=fake_parser({key: 30 for key in cells}), info_parser=numbered_info_parser)

    def test_Should_FallBack_When_TokenizedInfoMissesBlockButLogsMatch(self, session_layout, fake_parser):
        cells = [(2, 1), (10, 1)]
        root = session_layout(cells)
        (root / "sess_b2_info.mat").touch()
        (root / "sess_b3_info.mat").touch()
        (root / "sess_b2_log.txt").touch()
        (root / "sess_b10_log.txt").touch()

        events = compile_event_data(root, parser=fake_parser({key: 30 for key in cells}), info_parser=numbered_info_parser, log_parser=numbered_info_parser)

        assert [info[0, 0] for info in events.infos] == [2.0, 10.0]

    def test_Should_FallBackToTextLogs_When_InfoCountMismatch(self, session_layout, fake_parser, caplog):
        root = session_layout(GRID_2x2)
        (root / "blk1_info.mat").touch()
        (root / "log1.txt").touch()
        (root / "log2.txt").touch()

        def info_parser(path):
            raise AssertionError("mat files must not be parsed on count mismatch")

        with caplog.at_level(logging.WARNING, logger="ephys_nwb.events.reconcile"):
            events = compile_event_data(
                root,
                parser=fake_parser({key: 30 for key in GRID_2x2}),
                info_parser=info_parser,
                log_parser=numbered_info_parser,
            )

        assert [info[0, 0] for info in events.infos] == [1.0, 2.0]
        assert "falling back" in caplog.text

    def test_Should_Raise_When_TextLogCountAlsoMismatches(self, session_layout, fake_parser):
        root = session_layout(GRID_2x2)
        (root / "blk1_info.mat").touch()
        (root / "log1.txt").touch()

        with pytest.raises(InfoBlockCountMismatchError) as exc_info:
            compile_event_data(root, parser=fake_parser({key: 30 for key in GRID_2x2}), info_parser=numbered_info_parser)

        assert exc_info.value.context == {"n_info_files": 1, "n_logs": 1, "n_blocks": 2}
