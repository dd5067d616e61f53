"""
KML parsing module.

Reads the placemark subset of KML that Deed Mapper exports: one placemark
per parcel with a display name, an ``id`` SimpleData value, a centroid
Point and the boundary LineString(s). The file is scanned line by line
rather than parsed as XML, so a truncated or slightly malformed export still
yields every placemark that can be read.
"""

import logging
import re
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Union

from deedlink.core.config import settings
from deedlink.core.errors import ParseError
from deedlink.core.parsers.lines import LineCursor, decode_entities, read_lines, split_lines
from deedlink.models.records import (
    NOT_GEOMETRY,
    Diagnostic,
    DiagnosticCode,
    FieldRecord,
    Parcel,
    ParcelSource,
    ParcelTable,
    Severity,
    composite_id,
)

logger = logging.getLogger(__name__)

PLACEMARK_OPEN = "<Placemark"
PLACEMARK_CLOSE = "</Placemark>"
DOCUMENT_CLOSE = "</kml>"
COORDINATES_OPEN = "<coordinates>"
COORDINATES_CLOSE = "</coordinates>"

NAME_PATTERN = re.compile(r"^<name>(.*)</name>$")
ID_PATTERN = re.compile(
    r'^<SimpleData\s+name\s*=\s*"id"\s*>(.*)</SimpleData>$', re.IGNORECASE
)
GEOMETRY_PATTERN = re.compile(r"^<(Point|LineString)\b")

POINT = "Point"
LINE_STRING = "LineString"
CENTROID_ORDINAL = 0


class _BlockEnd(Enum):
    CLOSED = "closed"
    DOCUMENT_END = "document_end"
    NEXT_PLACEMARK = "next_placemark"
    EXHAUSTED = "exhausted"


def _ends_document(line: str) -> bool:
    return line.lower().startswith(DOCUMENT_CLOSE)


def _ends_placemark(line: str) -> bool:
    return (
        line.startswith(PLACEMARK_CLOSE)
        or line.startswith(PLACEMARK_OPEN)
        or _ends_document(line)
    )


class _PlacemarkBuilder:
    """Reads the lines of one placemark into a parcel."""

    def __init__(self, ordinal: int) -> None:
        self.parcel = Parcel(source=ParcelSource.KML, ordinal=ordinal)
        self.next_vertex = 1

    def read(self, cursor: LineCursor) -> _BlockEnd:
        """
        Consume lines up to and including ``</Placemark>``.

        ``</kml>`` and the opening line of a following placemark are left
        unconsumed so the caller sees them too.

        Raises:
            ParseError: If a geometry block has no usable coordinates
        """
        while not cursor.exhausted:
            following = cursor.peek()
            if _ends_document(following):
                return _BlockEnd.DOCUMENT_END
            if following.startswith(PLACEMARK_OPEN):
                return _BlockEnd.NEXT_PLACEMARK
            line = cursor.next()
            if line.startswith(PLACEMARK_CLOSE):
                return _BlockEnd.CLOSED

            name_match = NAME_PATTERN.match(line)
            if name_match:
                self._add_name(name_match.group(1))
                continue

            id_match = ID_PATTERN.match(line)
            if id_match:
                self._add_id(id_match.group(1))
                continue

            geometry_match = GEOMETRY_PATTERN.match(line)
            if geometry_match:
                coordinates = self._scan_coordinates(line, cursor)
                if geometry_match.group(1) == POINT:
                    self._add_point(coordinates, cursor.line_number)
                else:
                    self._add_line_string(coordinates, cursor.line_number)
        return _BlockEnd.EXHAUSTED

    def _ident_record(self, gtype: str, value: str) -> FieldRecord:
        return FieldRecord(cells=[str(self.parcel.ordinal), NOT_GEOMETRY, gtype, value])

    def _add_name(self, name: str) -> None:
        self.parcel.kml_name = name
        self.parcel.append(self._ident_record("name", name))

    def _add_id(self, key: str) -> None:
        self.parcel.key = key
        self.parcel.append(self._ident_record("id", key))

    def _scan_coordinates(self, line: str, cursor: LineCursor) -> str:
        """
        Collect the text between ``<coordinates>`` and ``</coordinates>``.

        The scan starts on the geometry's opening line and may span lines.
        """
        collected: Optional[List[str]] = None
        current = line
        while True:
            if collected is None:
                start = current.find(COORDINATES_OPEN)
                if start >= 0:
                    collected = [current[start + len(COORDINATES_OPEN):]]
            else:
                collected.append(current)

            if collected is not None:
                text = " ".join(collected)
                end = text.find(COORDINATES_CLOSE)
                if end >= 0:
                    return text[:end].strip()

            following = cursor.peek()
            if following is None or _ends_placemark(following):
                raise ParseError(
                    "Geometry has no coordinates before the end of the placemark",
                    file_type="KML",
                    line_number=cursor.line_number,
                    details={"diagnostic_code": DiagnosticCode.MISSING_COORDINATES.value},
                )
            current = cursor.next()

    def _split_vertex(self, vertex: str, line_number: int) -> List[str]:
        parts = vertex.split(",")
        if len(parts) < 2:
            raise ParseError(
                f"Coordinate {vertex!r} has fewer than two components",
                file_type="KML",
                line_number=line_number,
            )
        return parts

    def _add_vertex(self, gtype: str, ordinal: int, x: str, y: str) -> None:
        cells = [
            str(self.parcel.ordinal),
            str(ordinal),
            gtype,
            composite_id(self.parcel.key, ordinal),
            x,
            y,
        ]
        self.parcel.append(FieldRecord(cells=cells, is_geometry=True))

    def _add_point(self, coordinates: str, line_number: int) -> None:
        vertices = coordinates.split()
        if not vertices:
            raise ParseError(
                "Point has empty coordinates",
                file_type="KML",
                line_number=line_number,
                details={"diagnostic_code": DiagnosticCode.MISSING_COORDINATES.value},
            )
        x, y = self._split_vertex(vertices[0], line_number)[:2]
        self._add_vertex(POINT, CENTROID_ORDINAL, x, y)

    def _add_line_string(self, coordinates: str, line_number: int) -> None:
        vertices = coordinates.split()
        if not vertices:
            raise ParseError(
                "LineString has empty coordinates",
                file_type="KML",
                line_number=line_number,
                details={"diagnostic_code": DiagnosticCode.MISSING_COORDINATES.value},
            )
        # validate the whole string before emitting any vertex
        split = [self._split_vertex(vertex, line_number) for vertex in vertices]
        for parts in split:
            self._add_vertex(LINE_STRING, self.next_vertex, parts[0], parts[1])
            self.next_vertex += 1


class KmlParser:
    """
    Parser for Deed Mapper KML exports.

    Each placemark becomes one parcel. Name and id lines become four-cell
    records; every Point and LineString vertex becomes a geometry record.
    """

    def parse(self, lines: Sequence[str]) -> ParcelTable:
        """
        Parse KML lines into a parcel table.

        Args:
            lines: KML lines without line terminators

        Returns:
            ParcelTable with one parcel per readable placemark
        """
        table = ParcelTable(source=ParcelSource.KML)
        cursor = LineCursor([decode_entities(line).strip() for line in lines])
        ordinal = 0

        while not cursor.exhausted:
            line = cursor.next()
            if _ends_document(line):
                break
            if not line.startswith(PLACEMARK_OPEN):
                continue

            ordinal += 1
            builder = _PlacemarkBuilder(ordinal)
            try:
                end = builder.read(cursor)
            except ParseError as e:
                code = DiagnosticCode(
                    e.details.get("diagnostic_code", DiagnosticCode.FORMAT_FAILURE.value)
                )
                logger.warning(f"Discarding KML placemark {ordinal}: {e.message}")
                table.diagnostics.append(
                    Diagnostic(
                        severity=Severity.ERROR,
                        code=code,
                        message=e.message,
                        line_number=e.line_number,
                        parcel_ordinal=ordinal,
                        key=builder.parcel.key,
                    )
                )
                self._skip_placemark(cursor)
                continue

            if end is not _BlockEnd.CLOSED:
                logger.warning(f"KML placemark {ordinal} is not closed")
                table.diagnostics.append(
                    Diagnostic(
                        severity=Severity.WARNING,
                        code=DiagnosticCode.UNTERMINATED_PLACEMARK,
                        message=f"Placemark {ordinal} ended without {PLACEMARK_CLOSE}",
                        line_number=cursor.line_number,
                        parcel_ordinal=ordinal,
                        key=builder.parcel.key,
                    )
                )
            table.append(builder.parcel)

        logger.info(
            f"Parsed {len(table)} KML placemarks ({len(table.diagnostics)} diagnostics)"
        )
        return table

    @staticmethod
    def _skip_placemark(cursor: LineCursor) -> None:
        # stop in front of </kml> or the next placemark
        while not cursor.exhausted:
            following = cursor.peek()
            if _ends_document(following) or following.startswith(PLACEMARK_OPEN):
                return
            if cursor.next().startswith(PLACEMARK_CLOSE):
                return


def parse_kml_lines(lines: Sequence[str]) -> ParcelTable:
    """Convenience function to parse KML lines."""
    return KmlParser().parse(lines)


def parse_kml_string(kml_content: str) -> ParcelTable:
    """Convenience function to parse KML from string."""
    return KmlParser().parse(split_lines(kml_content))


def parse_kml_file(
    file_path: Union[str, Path], encoding: Optional[str] = None
) -> ParcelTable:
    """
    Convenience function to parse a KML file.

    Raises:
        StorageError: If the file cannot be read
    """
    return KmlParser().parse(read_lines(file_path, encoding or settings.encoding))
