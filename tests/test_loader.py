"""Tests for the SVM-Light loader."""

import io
import shutil
import tempfile
from pathlib import Path

import pytest

from adarank.loaders.svmlight import load, loads, parse_line
from adarank.utils.error_handling import FormatError


SAMPLE = """\
# LETOR style sample
2 qid:10 1:0.5 2:0.25 # doc-a
0 qid:10 1:0.1 3:1.0

1 qid:11 2:0.75 # doc-c
0 qid:10 2:0.2
"""


class TestParseLine:
    """Test cases for parse_line."""

    def test_full_line(self):
        """Test a line with label, qid, features and description."""
        dp = parse_line("2 qid:10 1:0.5 3:-1.25 # GX000-00-0000000")

        assert dp.label == 2
        assert dp.query_id == 10
        assert dp.features == {1: 0.5, 3: -1.25}
        assert dp.description == "GX000-00-0000000"

    def test_string_query_id(self):
        """Test that non-numeric query ids are kept as strings."""
        assert parse_line("0 qid:abc 1:1").query_id == "abc"

    def test_no_features(self):
        """Test a line without feature pairs."""
        dp = parse_line("1 qid:3")

        assert dp.features == {}
        assert dp.description is None

    @pytest.mark.parametrize("line, message", [
        ("x qid:1 1:0.5", "label must be an integer"),
        ("-1 qid:1 1:0.5", "non-negative"),
        ("1.5 qid:1 1:0.5", "label must be an integer"),
        ("1", "missing qid"),
        ("1 1:0.5", "qid"),
        ("1 qid: 1:0.5", "qid"),
        ("1 qid:1 1-0.5", "malformed feature pair"),
        ("1 qid:1 a:0.5", "malformed feature pair"),
        ("1 qid:1 1:abc", "malformed feature pair"),
        ("1 qid:1 0:0.5", "positive"),
        ("1 qid:1 1:0.5 1:0.7", "duplicate feature index 1"),
        ("1 qid:1 1:nan", "non-finite"),
    ])
    def test_malformed_lines(self, line, message):
        """Test that malformed lines raise FormatError."""
        with pytest.raises(FormatError, match=message):
            parse_line(line)

    def test_line_number_in_error(self):
        """Test that errors carry the line number."""
        with pytest.raises(FormatError, match="line 7") as exc_info:
            parse_line("bad qid:1", line_number=7)

        assert exc_info.value.line_number == 7
        assert exc_info.value.details["line"] == "bad qid:1"


class TestLoad:
    """Test cases for load and loads."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test fixtures."""
        if Path(self.temp_dir).exists():
            shutil.rmtree(self.temp_dir)

    def test_loads_groups_queries(self):
        """Test grouping, comments and blank lines."""
        dataset = loads(SAMPLE)

        assert dataset.query_ids == [10, 11]
        assert [dp.label for dp in dataset.get_query(10)] == [2, 0, 0]
        assert dataset.get_query(10).documents[0].description == "doc-a"
        assert dataset.feature_indices() == [1, 2, 3]

    def test_load_path(self):
        """Test loading from a file path."""
        path = Path(self.temp_dir) / "train.txt"
        path.write_text(SAMPLE)

        dataset = load(path)
        assert len(dataset) == 2
        assert dataset.num_documents == 4
        assert load(str(path)).query_ids == dataset.query_ids

    def test_load_stream(self):
        """Test loading from an open text stream."""
        dataset = load(io.StringIO(SAMPLE))

        assert dataset.num_documents == 4

    def test_error_reports_file_line(self):
        """Test that the line number refers to the source line."""
        with pytest.raises(FormatError, match="line 3"):
            loads("1 qid:1 1:0.5\n\n1 qid:1 1:0.5 1:0.2\n")

    def test_invalid_utf8(self):
        """Test that undecodable bytes are reported with their line number."""
        path = Path(self.temp_dir) / "broken.txt"
        path.write_bytes(b"0 qid:1 1:0.1\n1 qid:1 1:0.5 # doc\xff\xfe\n")

        with pytest.raises(FormatError, match="line 2: invalid utf-8") as excinfo:
            load(path)
        assert excinfo.value.line_number == 2

    def test_load_binary_stream(self):
        """Test loading from a binary stream."""
        dataset = load(io.BytesIO(SAMPLE.encode("utf-8")))

        assert dataset.query_ids == [10, 11]
        with pytest.raises(FormatError, match="line 1"):
            load(io.BytesIO(b"\xff qid:1 1:0.5\n"))

    def test_missing_file(self):
        """Test that unreadable sources raise OSError."""
        with pytest.raises(OSError):
            load(Path(self.temp_dir) / "missing.txt")

    def test_empty_text(self):
        """Test that an empty file yields an empty dataset."""
        assert loads("").is_empty
