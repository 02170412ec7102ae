"""Unit tests for NEV event reading and event record validation.

neo's BlackrockRawIO is replaced with an in-memory reader exposing the same
header and event accessors.
"""

from pathlib import Path

import numpy as np
import pytest

from ephys_nwb.events import EventRecord, read_nev_events, validate_event_record
from ephys_nwb.exceptions import EventsError


class FakeBlackrockRawIO:
    """Stand-in for BlackrockRawIO serving per-channel, per-segment events."""

    channels = {}
    n_segments = 1
    parse_error = None

    def __init__(self, filename, nsx_to_load):
        self.filename = filename
        self.nsx_to_load = nsx_to_load

    def parse_header(self):
        if self.parse_error is not None:
            raise self.parse_error
        names = np.array([(name,) for name in self.channels], dtype=[("name", "U64")])
        self.header = {"event_channels": names}

    def segment_count(self, block_index):
        return self.n_segments

    def get_event_timestamps(self, block_index=0, seg_index=0, event_channel_index=0):
        name = list(self.channels)[event_channel_index]
        timestamps, labels = self.channels[name][seg_index]
        return np.asarray(timestamps, dtype=np.int64), None, np.asarray([str(label) for label in labels])


@pytest.fixture
def fake_rawio(monkeypatch):
    """Install FakeBlackrockRawIO configured with the given channel events."""

    def _install(channels, n_segments=1, parse_error=None):
        reader = type(
            "ConfiguredRawIO",
            (FakeBlackrockRawIO,),
            {"channels": channels, "n_segments": n_segments, "parse_error": parse_error},
        )
        monkeypatch.setattr("ephys_nwb.events.nev.BlackrockRawIO", reader)
        return reader

    return _install


@pytest.fixture
def nev_file(tmp_path: Path) -> Path:
    path = tmp_path / "Hub1-instance1_b1.nev"
    path.touch()
    return path


class TestReadNevEvents:
    def test_Should_MergeDigitalAndSerial_When_BothPresent(self, fake_rawio, nev_file: Path):
        fake_rawio(
            {
                "digital_input_port": [([10, 30], [65280, 65282])],
                "serial_input_port": [([20], [7])],
                "comments": [([15], [999])],
            }
        )

        record = read_nev_events(nev_file)

        np.testing.assert_array_equal(record.timestamps, [10, 20, 30])
        np.testing.assert_array_equal(record.codes, [65280, 7, 65282])
        assert record.codes.dtype == np.int64
        assert record.timestamps.dtype == np.uint64

    def test_Should_ConcatenateSegments_When_RecordingPaused(self, fake_rawio, nev_file: Path):
        fake_rawio({"digital_input_port": [([5, 6], [1, 2]), ([900], [3])]}, n_segments=2)

        record = read_nev_events(nev_file)

        np.testing.assert_array_equal(record.codes, [1, 2, 3])

    def test_Should_KeepFileOrder_When_TimestampsTie(self, fake_rawio, nev_file: Path):
        fake_rawio(
            {
                "digital_input_port": [([10], [1])],
                "serial_input_port": [([10], [2])],
            }
        )

        record = read_nev_events(nev_file)

        np.testing.assert_array_equal(record.codes, [1, 2])

    def test_Should_ReturnEmptyRecord_When_NoEventChannels(self, fake_rawio, nev_file: Path):
        fake_rawio({"comments": [([15], [999])]})

        record = read_nev_events(nev_file)

        assert record.is_empty

    def test_Should_Raise_When_FileMissing(self, fake_rawio, tmp_path: Path):
        fake_rawio({})

        with pytest.raises(FileNotFoundError):
            read_nev_events(tmp_path / "missing.nev")

    def test_Should_WrapError_When_HeaderUnparseable(self, fake_rawio, nev_file: Path):
        fake_rawio({}, parse_error=ValueError("bad basic header"))

        with pytest.raises(EventsError, match="Failed to parse NEV file Hub1-instance1_b1.nev"):
            read_nev_events(nev_file)

    def test_Should_PassFullFilename_When_OpeningReader(self, monkeypatch, nev_file: Path):
        opened = {}

        class RecordingRawIO(FakeBlackrockRawIO):
            def __init__(self, filename, nsx_to_load):
                opened.update(filename=filename, nsx_to_load=nsx_to_load)
                super().__init__(filename, nsx_to_load)

        monkeypatch.setattr("ephys_nwb.events.nev.BlackrockRawIO", RecordingRawIO)

        read_nev_events(nev_file)

        assert opened == {"filename": str(nev_file), "nsx_to_load": []}


class TestValidateEventRecord:
    def test_Should_ReturnRecord_When_AlreadyValidated(self):
        record = EventRecord(codes=[1, 2], timestamps=[10, 20])

        assert validate_event_record(record) is record

    def test_Should_BuildRecord_When_MappingGiven(self):
        record = validate_event_record({"codes": [3, 4], "timestamps": [1, 2]})

        np.testing.assert_array_equal(record.codes, [3, 4])
        assert record.count == 2

    def test_Should_Raise_When_LengthsDiffer(self):
        with pytest.raises(EventsError, match="Malformed event record from a.nev"):
            validate_event_record({"codes": [1, 2, 3], "timestamps": [1, 2]}, source="a.nev")

    def test_Should_Raise_When_FieldUnknown(self):
        with pytest.raises(EventsError, match="Malformed event record"):
            validate_event_record({"codes": [1], "timestamps": [1], "durations": [0]})

    def test_Should_Raise_When_NotAMapping(self):
        with pytest.raises(EventsError, match="returned list"):
            validate_event_record([1, 2, 3], source="a.nev")
