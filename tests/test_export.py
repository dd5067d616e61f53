"""
Tests for tab-delimited table export.
"""

import csv
from io import StringIO

import pytest

from deedlink.core.errors import StorageError
from deedlink.core.export import (
    GEO_HEADER,
    KML_FLAT_HEADER,
    find_terms,
    flat_rows,
    geo_records,
    output_paths,
    write_flat_table,
    write_geo_table,
    write_kml_flat_table,
    write_table_file,
)
from deedlink.core.join import join_tables
from deedlink.core.parsers import parse_kml_lines, parse_mbl_lines


def _read_tsv(text):
    return list(csv.reader(StringIO(text), delimiter="\t"))


class TestFindTerms:
    """Tests for keyword search in course comments."""

    def test_terms_in_search_order(self):
        """Test matching several terms in a comment."""
        assert find_terms("large red oak tree near fence", ["oak", "tree"]) == "oak, tree"

    def test_case_insensitive(self):
        """Test that matching ignores case."""
        assert find_terms("Bounded WHITE Oak", ["oak", "ash"]) == "oak"

    def test_substring_match(self):
        """Test that terms match inside longer words."""
        assert find_terms("a hickory sapling", ["cherry", "hick"]) == "hick"

    def test_no_comment(self):
        """Test an empty comment finds nothing."""
        assert find_terms("", ["oak"]) == ""


class TestOutputPaths:
    """Tests for output file naming."""

    def test_suffixes_replace_extension(self, tmp_path):
        """Test that the base's extension is dropped before suffixing."""
        paths = output_paths(tmp_path / "tract.txt")
        assert paths.geo == tmp_path / "tract_geo.txt"
        assert paths.flat == tmp_path / "tract_flat.txt"
        assert paths.kml_duplicates == tmp_path / "tract_kmlDup.txt"
        assert paths.mbl_duplicates == tmp_path / "tract_mblDup.txt"

    def test_custom_extension(self, tmp_path):
        """Test a non-default extension."""
        assert output_paths(tmp_path / "out", ".tsv").geo == tmp_path / "out_geo.tsv"

    def test_directory_base(self, tmp_path):
        """Test that a directory base gives bare suffix names inside it."""
        assert output_paths(tmp_path).flat == tmp_path / "_flat.txt"


class TestGeoTable:
    """Tests for the per-course geo table."""

    @pytest.fixture
    def joined(self, placemark, kml_document):
        mbl = parse_mbl_lines(["id 3", "lm N1E;10;big oak", "lm S1E;20;", "end", "id 4", "ln W;5;", "end"])
        kml = parse_kml_lines(
            kml_document(placemark("3", [("-1", "1"), ("-2", "2")], name="Three"))
        )
        return join_tables(mbl, kml).table

    def test_header_and_rows(self, joined):
        """Test the header and one row per course."""
        out = StringIO()
        assert write_geo_table(out, joined, ["oak"]) == 3

        rows = _read_tsv(out.getvalue())
        assert rows[0] == GEO_HEADER
        assert rows[1] == [
            "1", "1", "1", "3    [1]", "lm", "N1E", "10", "big oak", "oak",
            "1", "1", "LineString", "Three", "3    [1]", "-1", "1",
        ]
        assert [row[0] for row in rows[1:]] == ["1", "2", "3"]

    def test_mbl_only_row(self, joined):
        """Test that an unmatched course has blank KML columns."""
        record = geo_records(joined, [])[2]
        assert record["id"] == "4    [1]"
        assert record["GType"] == "ln"
        assert record["KML_id"] == ""
        assert record["FoundTerms"] == ""


class TestFlatTables:
    """Tests for the per-parcel flat tables."""

    def test_flat_rows(self):
        """Test sorted field columns, values and point counts."""
        table = parse_mbl_lines(
            ["id 1", "name Smith", "! old line", "lm N1E;1;", "end", "id 2", "date 1750", "end"]
        )
        rows = flat_rows(table)
        assert rows[0] == ["PID", "date", "id", "name", "z_cmnt1", "PointCount"]
        assert rows[1] == ["1", "", "1", "Smith", "old line", "1"]
        assert rows[2] == ["2", "1750", "2", "", "", "0"]

    def test_write_flat_table(self):
        """Test that the writer returns the parcel row count."""
        table = parse_mbl_lines(["id 1", "end", "id 2", "end"])
        out = StringIO()
        assert write_flat_table(out, table) == 2
        assert out.getvalue().splitlines()[0] == "PID\tid\tPointCount"

    def test_write_kml_flat_table(self, placemark, kml_document):
        """Test one row per placemark."""
        table = parse_kml_lines(kml_document(placemark("9", [("1", "2")], name="Nine")))
        out = StringIO()
        assert write_kml_flat_table(out, table) == 1
        rows = _read_tsv(out.getvalue())
        assert rows == [KML_FLAT_HEADER, ["1", "Nine", "9", "2"]]


class TestWriteTableFile:
    """Tests for writing tables to disk."""

    def test_writes_file(self, tmp_path):
        """Test that the table lands at the given path."""
        path = tmp_path / "flat.txt"
        table = parse_mbl_lines(["id 1", "end"])
        assert write_table_file(path, write_flat_table, table) == 1
        assert path.read_text(encoding="utf-8").startswith("PID\tid\tPointCount\n")

    def test_unwritable_path(self, tmp_path):
        """Test that a missing directory raises StorageError with the path."""
        path = tmp_path / "missing" / "flat.txt"
        table = parse_mbl_lines(["id 1", "end"])
        with pytest.raises(StorageError) as exc_info:
            write_table_file(path, write_flat_table, table)
        assert exc_info.value.details["operation"] == "write"
        assert exc_info.value.file_path == str(path)
