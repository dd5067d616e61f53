"""
Tests for MBL tract description parsing.

Tests cover:
- Plain fields, courses and the derived loc record
- Anonymous, single-line and multi-line comment blocks
- Parcel recovery after format failures
- Line reading helpers
"""

from pathlib import Path

import pytest

from deedlink.core.errors import StorageError
from deedlink.core.parsers import (
    LineCursor,
    MblParser,
    decode_entities,
    is_terminator,
    parse_mbl_file,
    parse_mbl_lines,
    parse_mbl_string,
    read_lines,
)
from deedlink.models.records import DiagnosticCode, MblCell, Severity

FIXTURES_DIR = Path(__file__).parent / "fixtures"
TRACTS_MBL = FIXTURES_DIR / "tracts.mbl"


class TestLineHelpers:
    """Tests for line reading and the line cursor."""

    def test_decode_entities(self):
        """Test decoding of the two escapes Deed Mapper writes."""
        assert decode_entities("Smith &#60;201&#62;") == "Smith <201>"

    def test_read_missing_file(self, tmp_path):
        """Test that an unreadable input raises StorageError with its path."""
        missing = tmp_path / "missing.mbl"
        with pytest.raises(StorageError) as exc_info:
            read_lines(missing)
        assert exc_info.value.file_path == str(missing)
        assert exc_info.value.details["operation"] == "read"

    def test_cursor_skip_past(self):
        """Test skipping to just after a matching line."""
        cursor = LineCursor(["a", "end", "b"])
        assert cursor.skip_past(is_terminator)
        assert cursor.peek() == "b"
        assert cursor.line_number == 2

    def test_cursor_skip_past_exhausts(self):
        """Test that skip_past reports running out of input."""
        cursor = LineCursor(["a", "b"])
        assert not cursor.skip_past(is_terminator)
        assert cursor.exhausted
        assert cursor.peek() is None

    def test_cursor_next_past_end(self):
        """Test reading beyond the last line."""
        cursor = LineCursor([])
        with pytest.raises(IndexError):
            cursor.next()

    def test_is_terminator(self):
        """Test that only a leading 'end' token closes a parcel."""
        assert is_terminator("end")
        assert is_terminator("end of tract 12")
        assert not is_terminator("endpoint 4")
        assert not is_terminator("")


class TestMblFixture:
    """Tests against the two-parcel fixture file."""

    @pytest.fixture
    def table(self):
        return parse_mbl_file(TRACTS_MBL)

    def test_parcels(self, table):
        """Test parcel keys, ordinals and course counts."""
        assert table.keys == ["201", "202"]
        assert [p.ordinal for p in table] == [1, 2]
        assert [p.geometry_count for p in table] == [4, 2]
        assert table.diagnostics == []

    def test_geometry_count_matches_geometry_records(self, table):
        """Test that every parcel counts exactly its geometry records."""
        for parcel in table:
            assert parcel.geometry_count == len(parcel.geometry_records())

    def test_plain_field_cells(self, table):
        """Test the running counters on plain fields."""
        name = table[0].find("name")
        assert name.cells == ["name", "1", "2", "0", "2", "0", "Benjamin Smith survey"]

    def test_anonymous_comment_block(self, table):
        """Test that unprefixed comment lines join into one numbered block."""
        block = table[0].find("z_cmnt1")
        assert block.cell(MblCell.VALUE) == "Patented land on the east side of Sugar Run"
        assert block.cell(MblCell.COMMENT_COUNT) == "1"
        assert block.cell(MblCell.ALL_COUNT) == "4"

    def test_courses(self, table):
        """Test course cells and composite ids."""
        courses = table[0].geometry_records()
        assert [c.name for c in courses] == ["pt", "lm", "lm", "lm"]
        assert courses[1].cells == [
            "lm", "1", "6", "0", "0", "2", "N45E", "120", "bounded red oak", "201    [2]",
        ]
        assert courses[2].cell(MblCell.COMMENT) == ""
        assert courses[3].cell(MblCell.COMPOSITE_ID) == "201    [4]"

    def test_multi_line_block(self, table):
        """Test a labelled block continued by an unprefixed comment line."""
        block = table[0].find("RR:")
        assert block.cell(MblCell.VALUE) == "recorded in Liber 4 folio 112"
        assert block.cell(MblCell.COMMENT_COUNT) == "2"

    def test_loc_is_split(self, table):
        """Test that loc gets a derived record of its tokens."""
        parcel = table[0]
        assert parcel.find("loc").cell(MblCell.VALUE) == "39.2 -76.8 approx"
        assert parcel.find("loc_tay").cells[MblCell.VALUE:] == ["39.2", "-76.8", "approx"]
        assert "loc" in table.field_names
        assert "loc_tay" not in table.field_names

    def test_single_line_prefix(self, table):
        """Test that a single-line prefix reads the comment as a field."""
        note = table[1].find("NOTE=")
        assert note.cell(MblCell.VALUE) == "transferred 1750"
        assert note.cell(MblCell.FIELD_COUNT) == "2"

    def test_tallies(self, table):
        """Test the field-name and comment multisets."""
        assert table.field_names.count("id") == 2
        assert table.field_names.count("RR:") == 1
        assert "lm" not in table.field_names
        assert table.comments.count("") == 2
        assert table.comments.count("pine") == 1


class TestMblParser:
    """Tests for MblParser edge cases."""

    def test_whitespace_only_multi_line_block_is_discarded(self):
        """Test that a labelled block with only whitespace emits nothing."""
        parser = MblParser(single_line_prefixes=(), multi_line_prefixes=("! NOTE=",))
        table = parser.parse(["id 101", "! NOTE=", "!   ", "name Smith", "end"])

        parcel = table[0]
        assert parcel.find("NOTE=") is None
        assert "NOTE=" not in table.field_names
        assert parcel.find("name").cell(MblCell.COMMENT_COUNT) == "0"
        assert parcel.find("name").cell(MblCell.ALL_COUNT) == "2"

    def test_whitespace_only_anonymous_block_releases_number(self):
        """Test that a dropped anonymous block does not use up a label."""
        table = parse_mbl_lines(["id 1", "!  ", "name x", "! hello", "end"])
        parcel = table[0]
        assert parcel.find("z_cmnt1").cell(MblCell.VALUE) == "hello"
        assert parcel.find("z_cmnt2") is None

    def test_block_closed_by_end(self):
        """Test that the terminator closes an open block."""
        table = parse_mbl_lines(["id 1", "! RR: deed book 7", "end"])
        assert table[0].find("RR:").cell(MblCell.VALUE) == "deed book 7"

    def test_course_value_shapes(self):
        """Test direction only, direction with distance, and extra separators."""
        table = parse_mbl_lines(
            ["id 7", "lm N45E", "ln S10W;33", "lc N1E;2;corner; by the run", "end"]
        )
        cells = [r.cells[MblCell.VALUE:MblCell.COMPOSITE_ID] for r in table[0].geometry_records()]
        assert cells == [
            ["N45E", "", ""],
            ["S10W", "33", ""],
            ["N1E", "2", "corner; by the run"],
        ]

    def test_field_without_value_is_skipped(self):
        """Test that a bare field name produces no record."""
        table = parse_mbl_lines(["id 5", "name", "end"])
        assert len(table[0]) == 1

    def test_blank_lines_between_parcels(self):
        """Test that blank lines do not start parcels."""
        table = parse_mbl_lines(["", "id 1", "end", "", "  ", "id 2", "end", ""])
        assert table.keys == ["1", "2"]
        assert [p.ordinal for p in table] == [1, 2]

    def test_missing_terminator_recovers_at_next_end(self):
        """Test that a second id discards the region up to the next 'end'."""
        lines = [
            "id 101", "lm N1E;1;",
            "id 102", "lm N2E;2;", "end",
            "id 103", "lm N3E;3;", "end",
        ]
        table = parse_mbl_lines(lines)

        assert table.keys == ["103"]
        assert table[0].ordinal == 2
        (diagnostic,) = table.diagnostics
        assert diagnostic.code == DiagnosticCode.FORMAT_FAILURE
        assert diagnostic.severity == Severity.ERROR
        assert diagnostic.line_number == 3
        assert diagnostic.key == "101"

    def test_discarded_parcel_leaves_no_tallies(self):
        """Test that a failed parcel's field names are not committed."""
        table = parse_mbl_lines(["id 1", "owner Smith", "id 2", "end"])
        assert len(table) == 0
        assert "owner" not in table.field_names

    def test_repeated_identical_id_is_accepted(self):
        """Test that restating the same id is not a format failure."""
        table = parse_mbl_lines(["id 9", "id 9", "end"])
        assert table.keys == ["9"]
        assert table.diagnostics == []

    def test_unterminated_parcel(self):
        """Test that input ending inside a parcel keeps it with a warning."""
        table = parse_mbl_lines(["id 1", "end", "id 2", "lm N1E;1;"])
        assert table.keys == ["1", "2"]
        (diagnostic,) = table.diagnostics
        assert diagnostic.code == DiagnosticCode.UNTERMINATED_PARCEL
        assert diagnostic.severity == Severity.WARNING
        assert diagnostic.parcel_ordinal == 2

    def test_trailing_comment_is_not_a_parcel(self):
        """Test that a comment after the last end is reported but not kept."""
        table = parse_mbl_lines(["id 1", "lm N1E;1;", "end", "! trailing"])

        assert table.keys == ["1"]
        assert "z_cmnt1" not in table.field_names
        (diagnostic,) = table.diagnostics
        assert diagnostic.code == DiagnosticCode.UNTERMINATED_PARCEL
        assert diagnostic.parcel_ordinal == 2
        assert "discarded" in diagnostic.message

    def test_parcel_without_id(self):
        """Test that a parcel with no id has no key."""
        table = parse_mbl_lines(["lm N1E;1;", "end"])
        assert table.keys == [None]
        assert table[0].geometry_records()[0].cell(MblCell.COMPOSITE_ID) == "    [1]"

    def test_entities_decoded(self):
        """Test entity decoding on string input."""
        table = parse_mbl_string("id 1\nname A &#60;B&#62;\nend\n")
        assert table[0].find("name").cell(MblCell.VALUE) == "A <B>"

    def test_tabs_in_comments(self):
        """Test that tabs inside comment text become spaces."""
        table = parse_mbl_lines(["id 1", "!a\tb", "end"])
        assert table[0].find("z_cmnt1").cell(MblCell.VALUE) == "a b"

    def test_default_prefixes_from_settings(self):
        """Test that the parser defaults to the configured prefixes."""
        parser = MblParser()
        assert "! NOTE=" in parser.single_line_prefixes
        assert parser.multi_line_prefixes == ("! RR:",)
