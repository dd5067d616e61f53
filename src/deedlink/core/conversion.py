"""
End-to-end conversion of an MBL/KML file pair.

Reads both inputs, parses them, joins them and writes the output tables.
Only I/O problems raise; everything else is reported through diagnostics
and outcome counts on the returned result.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from deedlink.core.config import Settings, settings as default_settings
from deedlink.core.duplicates import DuplicateIdentifier
from deedlink.core.export.tabular import (
    OutputPaths,
    geo_records,
    output_paths,
    write_flat_table,
    write_geo_table,
    write_kml_flat_table,
    write_table_file,
)
from deedlink.core.join import CourseCounts, JoinCounts, JoinResult, RecordJoiner
from deedlink.core.logging_config import LogContext
from deedlink.core.parsers.kml_parser import KmlParser
from deedlink.core.parsers.lines import read_lines, split_lines
from deedlink.core.parsers.mbl_parser import MblParser
from deedlink.models.records import Diagnostic, ParcelTable
from deedlink.utils.logging import PerformanceTimer, log_performance

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class ConversionResult:
    """
    Outcome of converting one MBL/KML pair.

    Attributes:
        counts: Parcel-level join outcome
        course_counts: Course-level join outcome
        mbl_parcels: Number of parcels parsed from the MBL input
        kml_parcels: Number of placemarks parsed from the KML input
        diagnostics: Parse and join diagnostics in input order
        paths: Output files, when written
        join: Full join result, for callers that need the rows
    """

    counts: JoinCounts
    course_counts: CourseCounts
    mbl_parcels: int
    kml_parcels: int
    diagnostics: List[Diagnostic] = field(default_factory=list)
    paths: Optional[OutputPaths] = None
    join: Optional[JoinResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "counts": self.counts.to_dict(),
            "course_counts": self.course_counts.to_dict(),
            "mbl_parcels": self.mbl_parcels,
            "kml_parcels": self.kml_parcels,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "geo_file": str(self.paths.geo) if self.paths else None,
            "flat_file": str(self.paths.flat) if self.paths else None,
        }


@dataclass
class DuplicateReport:
    """Ids that are not unique within each input."""

    mbl_keys: List[Optional[str]] = field(default_factory=list)
    kml_keys: List[Optional[str]] = field(default_factory=list)
    mbl_path: Optional[Path] = None
    kml_path: Optional[Path] = None

    @property
    def has_duplicates(self) -> bool:
        return bool(self.mbl_keys or self.kml_keys)


class ConversionService:
    """
    Runs the parse, join and export pipeline with one set of settings.

    Usage:
        service = ConversionService()
        result = service.convert("tract.mbl", "tract.kml", "out/tract.txt")
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.mbl_parser = MblParser(
            self.settings.single_line_prefixes, self.settings.multi_line_prefixes
        )
        self.kml_parser = KmlParser()
        self.joiner = RecordJoiner(
            kml_has_centroid=self.settings.kml_has_centroid,
            duplicate_policy=self.settings.duplicate_policy,
        )
        self.identifier = DuplicateIdentifier()

    def parse(
        self, mbl_lines: List[str], kml_lines: List[str]
    ) -> Tuple[ParcelTable, ParcelTable]:
        with PerformanceTimer("parse", log_level=logging.DEBUG):
            mbl = self.mbl_parser.parse(mbl_lines)
            kml = self.kml_parser.parse(kml_lines)
        return mbl, kml

    def join(self, mbl: ParcelTable, kml: ParcelTable) -> ConversionResult:
        """Join parsed tables and gather every diagnostic."""
        with PerformanceTimer("join", log_level=logging.DEBUG):
            joined = self.joiner.join_tables(mbl, kml)
        return ConversionResult(
            counts=joined.counts,
            course_counts=joined.course_counts,
            mbl_parcels=len(mbl),
            kml_parcels=len(kml),
            diagnostics=mbl.diagnostics + kml.diagnostics + joined.diagnostics,
            join=joined,
        )

    def _read(self, mbl_path: PathLike, kml_path: PathLike) -> Tuple[ParcelTable, ParcelTable]:
        mbl_lines = read_lines(mbl_path, self.settings.encoding)
        kml_lines = read_lines(kml_path, self.settings.encoding)
        return self.parse(mbl_lines, kml_lines)

    def convert(
        self, mbl_path: PathLike, kml_path: PathLike, output_path: PathLike
    ) -> ConversionResult:
        """
        Convert a file pair and write the geo and flat tables.

        Args:
            mbl_path: MBL tract description file
            kml_path: KML placemark file
            output_path: Base path the output file names are derived from

        Returns:
            ConversionResult with counts, diagnostics and output paths

        Raises:
            StorageError: If an input cannot be read or an output cannot be written
        """
        with LogContext(mbl_file=str(mbl_path), kml_file=str(kml_path)):
            logger.info(f"Converting {mbl_path} with {kml_path}")
            mbl, kml = self._read(mbl_path, kml_path)
            result = self.join(mbl, kml)

            paths = output_paths(output_path, self.settings.output_extension)
            encoding = self.settings.encoding
            with PerformanceTimer("write", log_level=logging.DEBUG):
                write_table_file(
                    paths.geo,
                    write_geo_table,
                    result.join.table,
                    self.settings.geo_comment_terms,
                    encoding=encoding,
                )
                write_table_file(paths.flat, write_flat_table, mbl, encoding=encoding)
            result.paths = paths

            logger.info(
                f"Conversion finished: {result.course_counts.joined} courses joined, "
                f"{len(result.diagnostics)} diagnostics"
            )
            return result

    def duplicates(self, mbl: ParcelTable, kml: ParcelTable) -> Tuple[ParcelTable, ParcelTable]:
        """Repeated-id parcels of both tables, ordered by id."""
        mbl_dups = self.identifier.partition(mbl, want_duplicates=True).sorted_by_key()
        kml_dups = self.identifier.partition(kml, want_duplicates=True).sorted_by_key()
        return mbl_dups, kml_dups

    def find_duplicates(
        self, mbl_path: PathLike, kml_path: PathLike, output_path: PathLike
    ) -> DuplicateReport:
        """
        Report ids repeated within either input.

        A report file is written only for an input that has repeated ids.

        Raises:
            StorageError: If an input cannot be read or a report cannot be written
        """
        with LogContext(mbl_file=str(mbl_path), kml_file=str(kml_path)):
            mbl, kml = self._read(mbl_path, kml_path)
            mbl_dups, kml_dups = self.duplicates(mbl, kml)
            report = DuplicateReport(
                mbl_keys=self.identifier.find_key_collisions(mbl),
                kml_keys=self.identifier.find_key_collisions(kml),
            )

            paths = output_paths(output_path, self.settings.output_extension)
            encoding = self.settings.encoding
            if len(mbl_dups) > 0:
                write_table_file(paths.mbl_duplicates, write_flat_table, mbl_dups, encoding=encoding)
                report.mbl_path = paths.mbl_duplicates
            if len(kml_dups) > 0:
                write_table_file(
                    paths.kml_duplicates, write_kml_flat_table, kml_dups, encoding=encoding
                )
                report.kml_path = paths.kml_duplicates

            if not report.has_duplicates:
                logger.info("No repeated ids found")
            return report

    @log_performance(log_level=logging.DEBUG)
    def convert_text(self, mbl_text: str, kml_text: str) -> ConversionResult:
        """Run the pipeline in memory; nothing is written."""
        mbl, kml = self.parse(split_lines(mbl_text), split_lines(kml_text))
        return self.join(mbl, kml)

    def geo_records(self, result: ConversionResult) -> List[Dict[str, str]]:
        """Geo table rows of a result keyed by column name."""
        if result.join is None:
            return []
        return geo_records(result.join.table, self.settings.geo_comment_terms)
