"""
Tab-delimited export of joined and parsed tables.

Writes the geo table (one row per boundary course), the flat table (one row
per MBL parcel) and the duplicate reports.
"""

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Sequence, TextIO, Union

from deedlink.core.errors import StorageError
from deedlink.models.records import GEOMETRY_FIELDS, MblCell, ParcelTable

logger = logging.getLogger(__name__)

GEO_SUFFIX = "_geo"
FLAT_SUFFIX = "_flat"
KML_DUPLICATES_SUFFIX = "_kmlDup"
MBL_DUPLICATES_SUFFIX = "_mblDup"

GEO_HEADER = [
    "UID", "PID", "GID", "id", "GType", "Dir", "Dist", "GCmnt", "FoundTerms",
    "KML_pid", "KML_gid", "KML_gtype", "KML_name", "KML_id", "KML_x", "KML_y",
]
KML_FLAT_HEADER = ["pid", "name", "id", "PointCount"]

# Joined row positions feeding each geo column after UID and FoundTerms
_MBL_COLUMNS = (1, 5, 9, 0, 6, 7, 8)
_KML_COLUMNS = (10, 11, 12, 16, 13, 14, 15)
_COMMENT_CELL = 8


@dataclass
class OutputPaths:
    """File names derived from one output base path."""

    geo: Path
    flat: Path
    kml_duplicates: Path
    mbl_duplicates: Path


def output_paths(base: Union[str, Path], extension: str = ".txt") -> OutputPaths:
    """
    Derive the output file names from a base path.

    The base's own extension is dropped, so ``out/tract.txt`` gives
    ``out/tract_geo.txt``, ``out/tract_flat.txt`` and so on. A directory
    base gives bare suffix names inside it.
    """
    base = Path(base)
    if base.is_dir():
        directory, stub = base, ""
    else:
        directory, stub = base.parent, base.stem
    return OutputPaths(
        geo=directory / f"{stub}{GEO_SUFFIX}{extension}",
        flat=directory / f"{stub}{FLAT_SUFFIX}{extension}",
        kml_duplicates=directory / f"{stub}{KML_DUPLICATES_SUFFIX}{extension}",
        mbl_duplicates=directory / f"{stub}{MBL_DUPLICATES_SUFFIX}{extension}",
    )


def find_terms(comment: str, search_terms: Iterable[str]) -> str:
    """
    Search terms found in a course comment.

    Matching is case-insensitive substring search; terms are reported in
    search-term order joined by ``", "``.
    """
    lowered = (comment or "").lower()
    return ", ".join(term for term in search_terms if term and term.lower() in lowered)


def _cell(cells: Sequence[str], index: int) -> str:
    return cells[index] if index < len(cells) else ""


def geo_rows(joined: ParcelTable, search_terms: Sequence[str]) -> List[List[str]]:
    """Geo table rows, without header, for a joined table."""
    rows = []
    uid = 0
    for parcel in joined:
        for record in parcel:
            uid += 1
            cells = record.cells
            row = [str(uid)]
            row += [_cell(cells, i) for i in _MBL_COLUMNS]
            row.append(find_terms(_cell(cells, _COMMENT_CELL), search_terms))
            row += [_cell(cells, i) for i in _KML_COLUMNS]
            rows.append(row)
    return rows


def geo_records(joined: ParcelTable, search_terms: Sequence[str]) -> List[Dict[str, str]]:
    """Geo table rows keyed by column name."""
    return [dict(zip(GEO_HEADER, row)) for row in geo_rows(joined, search_terms)]


def flat_columns(table: ParcelTable) -> List[str]:
    return [
        name for name in table.field_names
        if name is not None and name not in GEOMETRY_FIELDS
    ]


def flat_rows(table: ParcelTable) -> List[List[str]]:
    """Flat table rows including the header."""
    columns = flat_columns(table)
    rows = [["PID"] + columns + ["PointCount"]]
    for parcel in table:
        row = [str(parcel.ordinal)]
        for name in columns:
            record = parcel.find(name)
            row.append(record.cell(MblCell.VALUE) if record is not None else "")
        row.append(str(parcel.geometry_count))
        rows.append(row)
    return rows


def _writer(out: TextIO) -> Any:
    return csv.writer(out, delimiter="\t", lineterminator="\n")


def write_geo_table(out: TextIO, joined: ParcelTable, search_terms: Sequence[str]) -> int:
    """
    Write the geo table.

    Returns:
        Number of course rows written
    """
    rows = geo_rows(joined, search_terms)
    writer = _writer(out)
    writer.writerow(GEO_HEADER)
    writer.writerows(rows)
    return len(rows)


def write_flat_table(out: TextIO, table: ParcelTable) -> int:
    """
    Write one row per parcel with one column per field name.

    Returns:
        Number of parcel rows written
    """
    rows = flat_rows(table)
    _writer(out).writerows(rows)
    return len(rows) - 1


def write_kml_flat_table(out: TextIO, table: ParcelTable) -> int:
    """Write one row per placemark with its name, id and point count."""
    writer = _writer(out)
    writer.writerow(KML_FLAT_HEADER)
    for placemark in table:
        writer.writerow(
            [
                str(placemark.ordinal),
                placemark.kml_name,
                placemark.key or "",
                str(placemark.geometry_count),
            ]
        )
    return len(table)


def write_table_file(
    path: Union[str, Path],
    write: Callable[..., int],
    *args: object,
    encoding: str = "utf-8",
) -> int:
    """
    Open ``path`` and run one of the table writers on it.

    Raises:
        StorageError: If the file cannot be written
    """
    path = Path(path)
    try:
        with open(path, "w", encoding=encoding, newline="") as out:
            count = write(out, *args)
    except OSError as e:
        logger.error(f"Failed to write {path}: {e}")
        raise StorageError(
            f"Cannot write output file: {path}",
            operation="write",
            file_path=str(path),
            details={"reason": str(e)},
        ) from e

    logger.info(f"Wrote {count} rows to {path}")
    return count
