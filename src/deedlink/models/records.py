"""
In-memory records produced by the MBL and KML parsers.

A ``FieldRecord`` is one parsed line, a ``Parcel`` groups the records of one
land unit under its survey id, and a ``ParcelTable`` is the result of parsing
one file.
"""

from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Deque, Dict, Iterator, List, Optional, Tuple

from deedlink.core.multiset import CountingSet

# Field names that describe a boundary course in an MBL tract description
GEOMETRY_FIELDS = frozenset({"lm", "ln", "lc", "pt"})

# Sentinel geometry ordinal for KML name and id records
NOT_GEOMETRY = "-1"

COMPOSITE_ID_SEPARATOR = "    "


class MblCell(IntEnum):
    """Cell positions of an MBL record."""

    NAME = 0
    PARCEL = 1
    ALL_COUNT = 2
    COMMENT_COUNT = 3
    FIELD_COUNT = 4
    GEOMETRY_COUNT = 5
    VALUE = 6
    DISTANCE = 7
    COMMENT = 8
    COMPOSITE_ID = 9


class KmlCell(IntEnum):
    """Cell positions of a KML record."""

    PARCEL = 0
    GEOMETRY = 1
    GTYPE = 2
    IDENT = 3
    X = 4
    Y = 5


MBL_WIDTH = MblCell.COMPOSITE_ID + 1
KML_WIDTH = KmlCell.Y + 1
# MBL course cells, KML geometry cells and the placemark name
JOINED_WIDTH = MBL_WIDTH + KML_WIDTH + 1


class ParcelSource(str, Enum):
    """Input format a parcel was parsed from."""

    MBL = "mbl"
    KML = "kml"


class DuplicatePolicy(str, Enum):
    """How the join treats parcel ids that occur more than once."""

    REJECT = "reject"
    FIRST_MATCH = "first_match"


class Severity(str, Enum):
    """Diagnostic severity."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class DiagnosticCode(str, Enum):
    """Machine-readable diagnostic identifiers."""

    FORMAT_FAILURE = "FORMAT_FAILURE"
    UNTERMINATED_PARCEL = "UNTERMINATED_PARCEL"
    UNTERMINATED_PLACEMARK = "UNTERMINATED_PLACEMARK"
    MISSING_COORDINATES = "MISSING_COORDINATES"
    KEY_COLLISION = "KEY_COLLISION"
    UNMATCHED_COURSE = "UNMATCHED_COURSE"


KML_GEOMETRY_TYPES = frozenset({"Point", "LineString"})
CENTROID_TYPE = "Point"


def composite_id(key: Optional[str], ordinal: int) -> str:
    """Build the course identifier shared by MBL and KML geometry records."""
    return f"{key or ''}{COMPOSITE_ID_SEPARATOR}[{ordinal}]"


def is_mbl_course(record: "FieldRecord") -> bool:
    return record.is_geometry and record.name in GEOMETRY_FIELDS


def is_kml_vertex(record: "FieldRecord") -> bool:
    return record.is_geometry and record.cell(KmlCell.GTYPE) in KML_GEOMETRY_TYPES


@dataclass
class Diagnostic:
    """
    A recoverable problem found while parsing or joining.

    Attributes:
        severity: How serious the problem is
        code: Diagnostic identifier
        message: Human-readable description
        line_number: 1-based input line the problem was found on
        parcel_ordinal: Ordinal of the parcel involved
        key: Parcel id involved
    """

    severity: Severity
    code: DiagnosticCode
    message: str
    line_number: Optional[int] = None
    parcel_ordinal: Optional[int] = None
    key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert Diagnostic to dictionary representation."""
        return {
            "severity": self.severity.value,
            "code": self.code.value,
            "message": self.message,
            "line_number": self.line_number,
            "parcel_ordinal": self.parcel_ordinal,
            "key": self.key,
        }


@dataclass
class FieldRecord:
    """
    One parsed line: an ordered list of text cells.

    Attributes:
        cells: Text cells, laid out per ``MblCell`` or ``KmlCell``
        is_geometry: Whether the record is a boundary course or vertex
    """

    cells: List[str]
    is_geometry: bool = False

    @property
    def name(self) -> str:
        return self.cells[0] if self.cells else ""

    def cell(self, index: int) -> str:
        """Cell at ``index``, or an empty string past the end of the record."""
        return self.cells[index] if index < len(self.cells) else ""

    def clone(self) -> "FieldRecord":
        return FieldRecord(cells=list(self.cells), is_geometry=self.is_geometry)

    def __len__(self) -> int:
        return len(self.cells)


@dataclass(eq=False)
class Parcel:
    """
    The records of one legal land unit.

    Two parcels are equal when their keys are equal, whatever their content.

    Attributes:
        source: Input format the parcel came from
        ordinal: 1-based position of the parcel in its input
        key: Survey id used to match parcels across tables
        kml_name: Placemark display name
        records: Field records in input order
        geometry_count: Number of geometry records added as the parcel's own
        combined: KML geometry was merged onto this MBL parcel
        failed: Ids matched but course counts differed
        no_match_kml: KML parcel with no MBL counterpart
        no_match_mbl: MBL parcel with no KML counterpart
        joined: Courses of the parcel have been joined
    """

    source: ParcelSource
    ordinal: int = 0
    key: Optional[str] = None
    kml_name: str = ""
    records: Deque[FieldRecord] = field(default_factory=deque)
    geometry_count: int = 0
    combined: bool = False
    failed: bool = False
    no_match_kml: bool = False
    no_match_mbl: bool = False
    joined: bool = False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Parcel):
            return NotImplemented
        return self.key == other.key

    __hash__ = None  # type: ignore[assignment]

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[FieldRecord]:
        return iter(self.records)

    def __getitem__(self, index: int) -> FieldRecord:
        return self.records[index]

    def append(self, record: FieldRecord) -> None:
        """Append a record, counting it when it is geometry."""
        self.records.append(record)
        if record.is_geometry:
            self.geometry_count += 1

    def popleft(self) -> FieldRecord:
        record = self.records.popleft()
        if record.is_geometry:
            self.geometry_count -= 1
        return record

    def remove_at(self, index: int) -> FieldRecord:
        record = self.records[index]
        del self.records[index]
        if record.is_geometry:
            self.geometry_count -= 1
        return record

    def merge(self, other: "Parcel") -> None:
        """
        Append copies of every record of ``other``.

        Merged records are carried along but are not counted as this parcel's
        own geometry.
        """
        for record in other.records:
            self.records.append(record.clone())
        self.kml_name = other.kml_name

    def find(self, name: str) -> Optional[FieldRecord]:
        """First record with field name ``name``."""
        for record in self.records:
            if record.name == name:
                return record
        return None

    def geometry_records(self) -> List[FieldRecord]:
        return [record for record in self.records if record.is_geometry]

    def reset_outcome(self) -> None:
        self.combined = self.failed = self.no_match_kml = self.no_match_mbl = False
        self.joined = False

    @property
    def outcome(self) -> Optional[str]:
        """Join classification, or None before a join."""
        for flag in ("combined", "failed", "no_match_kml", "no_match_mbl"):
            if getattr(self, flag):
                return flag
        return None

    def clone(self) -> "Parcel":
        """Deep copy of the parcel and its records."""
        return Parcel(
            source=self.source,
            ordinal=self.ordinal,
            key=self.key,
            kml_name=self.kml_name,
            records=deque(record.clone() for record in self.records),
            geometry_count=self.geometry_count,
            combined=self.combined,
            failed=self.failed,
            no_match_kml=self.no_match_kml,
            no_match_mbl=self.no_match_mbl,
            joined=self.joined,
        )


@dataclass
class ParcelTable:
    """
    Parsed content of one input file.

    Attributes:
        source: Input format
        parcels: Parcels in input order
        field_names: Every non-geometry field name seen, with counts
        comments: Every course comment seen, with counts
        diagnostics: Problems recovered from while parsing
    """

    source: ParcelSource
    parcels: List[Parcel] = field(default_factory=list)
    field_names: CountingSet = field(default_factory=CountingSet)
    comments: CountingSet = field(default_factory=CountingSet)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.parcels)

    def __iter__(self) -> Iterator[Parcel]:
        return iter(self.parcels)

    def __getitem__(self, index: int) -> Parcel:
        return self.parcels[index]

    def append(self, parcel: Parcel) -> None:
        self.parcels.append(parcel)

    @property
    def keys(self) -> List[Optional[str]]:
        return [parcel.key for parcel in self.parcels]

    def index_by_key(self) -> Dict[Optional[str], int]:
        """Map every key to the position of its first parcel."""
        index: Dict[Optional[str], int] = {}
        for position, parcel in enumerate(self.parcels):
            index.setdefault(parcel.key, position)
        return index

    def sorted_by_key(self) -> "ParcelTable":
        """Copy of the table with parcels ordered by key, missing keys first."""
        table = self.clone()
        table.parcels.sort(key=lambda p: (p.key is not None, p.key or ""))
        return table

    def clone(self) -> "ParcelTable":
        """Deep copy of every parcel and both multisets."""
        return ParcelTable(
            source=self.source,
            parcels=[parcel.clone() for parcel in self.parcels],
            field_names=self.field_names.copy(),
            comments=self.comments.copy(),
            diagnostics=list(self.diagnostics),
        )


@dataclass(frozen=True)
class ComparisonPolicy:
    """
    Which record cells two records are compared on.

    ``compare_on`` 0 compares every key cell in priority order; ``n`` compares
    only the n-th key cell.
    """

    key_indices: Tuple[int, ...]
    compare_on: int = 0

    def values(self, record: FieldRecord) -> Tuple[Optional[str], ...]:
        if self.compare_on == 0:
            indices = self.key_indices
        else:
            indices = (self.key_indices[self.compare_on - 1],)
        return tuple(
            record.cells[i] if i < len(record.cells) else None for i in indices
        )

    def compare(self, a: FieldRecord, b: FieldRecord) -> int:
        """Three-way comparison, missing cells ordering first."""
        for left, right in zip(self.values(a), self.values(b)):
            if left == right:
                continue
            if left is None:
                return -1
            if right is None:
                return 1
            return -1 if left < right else 1
        return 0

    def matches(self, a: FieldRecord, b: FieldRecord) -> bool:
        return self.compare(a, b) == 0


DEFAULT_POLICY = ComparisonPolicy(key_indices=(0,))
MBL_COURSE_POLICY = ComparisonPolicy(key_indices=(MblCell.COMPOSITE_ID,))
KML_COURSE_POLICY = ComparisonPolicy(key_indices=(KmlCell.IDENT,))


class ComparisonContext:
    """
    Carries the active comparison policy for a sequence of record comparisons.

    Usage:
        with context.borrow(KML_COURSE_POLICY):
            context.values(record)
        # previous policy is back in force here
    """

    def __init__(self, policy: ComparisonPolicy = DEFAULT_POLICY) -> None:
        self.policy = policy

    def values(self, record: FieldRecord) -> Tuple[Optional[str], ...]:
        return self.policy.values(record)

    def compare(self, a: FieldRecord, b: FieldRecord) -> int:
        return self.policy.compare(a, b)

    @contextmanager
    def borrow(self, policy: ComparisonPolicy) -> Iterator["ComparisonContext"]:
        """Swap in ``policy`` for the duration of the block."""
        previous = self.policy
        self.policy = policy
        try:
            yield self
        finally:
            self.policy = previous
