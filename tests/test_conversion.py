"""
Integration tests for the file-to-file conversion pipeline.
"""

import csv
import logging
import shutil
from pathlib import Path

import pytest

from deedlink.core.config import Settings
from deedlink.core.conversion import ConversionService
from deedlink.core.errors import StorageError
from deedlink.core.export import GEO_HEADER
from deedlink.models.records import DiagnosticCode

FIXTURES_DIR = Path(__file__).parent / "fixtures"
TRACTS_MBL = FIXTURES_DIR / "tracts.mbl"
TRACTS_KML = FIXTURES_DIR / "tracts.kml"


def _read_tsv(path):
    with open(path, encoding="utf-8", newline="") as f:
        return list(csv.reader(f, delimiter="\t"))


@pytest.mark.integration
class TestConvert:
    """Tests for ConversionService.convert."""

    def test_fixture_pair(self, tmp_path):
        """Test counts and output files for the fixture pair."""
        service = ConversionService()
        result = service.convert(TRACTS_MBL, TRACTS_KML, tmp_path / "tracts.txt")

        assert result.counts.as_tuple() == (1, 0, 1, 1)
        assert result.course_counts.to_dict() == {
            "joined": 4,
            "kml_failed": 0,
            "kml_no_match": 1,
            "mbl_failed": 0,
            "mbl_no_match": 2,
        }
        assert (result.mbl_parcels, result.kml_parcels) == (2, 2)
        assert result.diagnostics == []
        assert result.paths.geo == tmp_path / "tracts_geo.txt"

    def test_geo_file(self, tmp_path):
        """Test the written geo table."""
        service = ConversionService(Settings(geo_comment_terms=("oak", "locust")))
        result = service.convert(TRACTS_MBL, TRACTS_KML, tmp_path / "tracts.txt")

        rows = _read_tsv(result.paths.geo)
        assert rows[0] == GEO_HEADER
        assert len(rows) == 1 + 7
        first = dict(zip(GEO_HEADER, rows[1]))
        assert first["id"] == first["KML_id"] == "201    [1]"
        assert first["GType"] == "pt"
        assert first["FoundTerms"] == "oak"
        assert first["KML_name"] == "Smith <201>"
        assert dict(zip(GEO_HEADER, rows[4]))["FoundTerms"] == "locust"

    def test_flat_file(self, tmp_path):
        """Test the written flat table."""
        result = ConversionService().convert(TRACTS_MBL, TRACTS_KML, tmp_path / "tracts.txt")

        rows = _read_tsv(result.paths.flat)
        assert rows[0] == [
            "PID", "NOTE=", "RR:", "date", "id", "loc", "name", "z_cmnt1", "PointCount",
        ]
        assert rows[1][2] == "recorded in Liber 4 folio 112"
        assert rows[1][-1] == "4"
        assert rows[2][:2] == ["2", "transferred 1750"]
        assert len(rows) == 3

    def test_diagnostics_are_collected(self, tmp_path):
        """Test that parse problems come back as diagnostics, not errors."""
        mbl = tmp_path / "bad.mbl"
        mbl.write_text("id 1\nlm N1E;1;\nid 2\nend\nid 3\nlm N2E;2;\n", encoding="utf-8")
        result = ConversionService().convert(mbl, TRACTS_KML, tmp_path / "bad.txt")

        codes = [d.code for d in result.diagnostics]
        assert codes == [DiagnosticCode.FORMAT_FAILURE, DiagnosticCode.UNTERMINATED_PARCEL]
        assert result.mbl_parcels == 1
        assert result.paths.geo.exists()

    def test_missing_input(self, tmp_path):
        """Test that an unreadable input raises StorageError."""
        with pytest.raises(StorageError) as exc_info:
            ConversionService().convert(tmp_path / "none.mbl", TRACTS_KML, tmp_path / "x.txt")
        assert exc_info.value.file_path == str(tmp_path / "none.mbl")

    def test_unwritable_output(self, tmp_path):
        """Test that an unwritable output raises StorageError."""
        with pytest.raises(StorageError):
            ConversionService().convert(TRACTS_MBL, TRACTS_KML, tmp_path / "no" / "x.txt")

    def test_log_context(self, tmp_path, caplog):
        """Test that conversion logs carry the input file names."""
        with caplog.at_level(logging.INFO, logger="deedlink"):
            ConversionService().convert(TRACTS_MBL, TRACTS_KML, tmp_path / "tracts.txt")

        records = [r for r in caplog.records if r.name == "deedlink.core.conversion"]
        assert records
        assert all(r.mbl_file == str(TRACTS_MBL) for r in records)


@pytest.mark.integration
class TestFindDuplicates:
    """Tests for ConversionService.find_duplicates."""

    def test_no_duplicates(self, tmp_path):
        """Test that clean inputs write no reports."""
        report = ConversionService().find_duplicates(TRACTS_MBL, TRACTS_KML, tmp_path / "t.txt")
        assert not report.has_duplicates
        assert report.mbl_path is None and report.kml_path is None
        assert list(tmp_path.iterdir()) == []

    def test_mbl_duplicates(self, tmp_path):
        """Test that repeated MBL ids are reported sorted by id."""
        mbl = tmp_path / "dups.mbl"
        shutil.copy(TRACTS_MBL, mbl)
        with open(mbl, "a", encoding="utf-8") as f:
            f.write("\nid 201\nname Second Smith\nend\n")

        report = ConversionService().find_duplicates(mbl, TRACTS_KML, tmp_path / "dups.txt")

        assert report.mbl_keys == ["201"]
        assert report.kml_keys == []
        assert report.mbl_path == tmp_path / "dups_mblDup.txt"
        assert report.kml_path is None
        rows = _read_tsv(report.mbl_path)
        assert [row[0] for row in rows[1:]] == ["1", "3"]


class TestConvertText:
    """Tests for the in-memory pipeline."""

    def test_scenario(self, scenario_mbl_lines, scenario_kml_lines):
        """Test the in-memory conversion of the three-parcel scenario."""
        service = ConversionService()
        result = service.convert_text("\n".join(scenario_mbl_lines), "\n".join(scenario_kml_lines))

        assert result.counts.as_tuple() == (0, 1, 1, 1)
        assert result.paths is None
        records = service.geo_records(result)
        assert len(records) == 5
        assert records[0]["GCmnt"] == "old oak"

    def test_to_dict(self, scenario_mbl_lines, scenario_kml_lines):
        """Test the dictionary summary of a result."""
        result = ConversionService().convert_text(
            "\n".join(scenario_mbl_lines), "\n".join(scenario_kml_lines)
        )
        data = result.to_dict()
        assert data["counts"]["failed"] == 1
        assert data["geo_file"] is None
        assert data["diagnostics"] == []
