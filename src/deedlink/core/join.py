"""
Reconciliation of MBL parcels with KML placemarks.

Parcels are matched by id. A match is only trusted when the MBL description
has as many courses as the placemark has boundary vertices; the courses of a
trusted match are then paired one to one by their composite course id.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Set, Tuple

from deedlink.core.config import settings
from deedlink.core.duplicates import DuplicateIdentifier
from deedlink.models.records import (
    CENTROID_TYPE,
    JOINED_WIDTH,
    KML_COURSE_POLICY,
    KML_WIDTH,
    MBL_COURSE_POLICY,
    MBL_WIDTH,
    ComparisonContext,
    Diagnostic,
    DiagnosticCode,
    DuplicatePolicy,
    FieldRecord,
    KmlCell,
    MblCell,
    Parcel,
    ParcelSource,
    ParcelTable,
    Severity,
    is_kml_vertex,
    is_mbl_course,
)

logger = logging.getLogger(__name__)


@dataclass
class JoinCounts:
    """Parcel-level outcome of combining the two tables."""

    combined: int = 0
    failed: int = 0
    no_match_kml: int = 0
    no_match_mbl: int = 0

    @property
    def total(self) -> int:
        return self.combined + self.failed + self.no_match_kml + self.no_match_mbl

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.combined, self.failed, self.no_match_kml, self.no_match_mbl)

    def to_dict(self) -> Dict[str, int]:
        return {
            "combined": self.combined,
            "failed": self.failed,
            "no_match_kml": self.no_match_kml,
            "no_match_mbl": self.no_match_mbl,
        }


@dataclass
class CourseCounts:
    """Course-level outcome of joining the two tables."""

    joined: int = 0
    kml_failed: int = 0
    kml_no_match: int = 0
    mbl_failed: int = 0
    mbl_no_match: int = 0

    @property
    def total(self) -> int:
        return (
            self.joined
            + self.kml_failed
            + self.kml_no_match
            + self.mbl_failed
            + self.mbl_no_match
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "joined": self.joined,
            "kml_failed": self.kml_failed,
            "kml_no_match": self.kml_no_match,
            "mbl_failed": self.mbl_failed,
            "mbl_no_match": self.mbl_no_match,
        }


@dataclass
class CombineResult:
    table: ParcelTable
    counts: JoinCounts
    diagnostics: List[Diagnostic] = field(default_factory=list)


@dataclass
class JoinResult:
    """
    Joined courses plus the classification that produced them.

    Attributes:
        table: One parcel per input parcel with at least one emitted course
        counts: Parcel-level outcome counts
        course_counts: Course-level outcome counts
        diagnostics: Key collisions and unmatched courses
    """

    table: ParcelTable
    counts: JoinCounts
    course_counts: CourseCounts
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def rows(self) -> List[List[str]]:
        return [list(record.cells) for parcel in self.table for record in parcel]


def _fit(cells: List[str], width: int) -> List[str]:
    return (list(cells) + [""] * width)[:width]


class RecordJoiner:
    """
    Joins an MBL table with a KML table.

    Both operations leave their inputs untouched and return newly built
    tables.
    """

    def __init__(
        self,
        kml_has_centroid: Optional[bool] = None,
        duplicate_policy: Optional[DuplicatePolicy] = None,
        context: Optional[ComparisonContext] = None,
    ):
        """
        Initialize RecordJoiner.

        Args:
            kml_has_centroid: Each placemark carries one extra centroid Point
            duplicate_policy: Treatment of ids repeated within either table
            context: Comparison context the course join borrows from
        """
        self.kml_has_centroid = (
            settings.kml_has_centroid if kml_has_centroid is None else kml_has_centroid
        )
        self.duplicate_policy = duplicate_policy or settings.duplicate_policy
        self.context = context or ComparisonContext()

    def _collisions(
        self, mbl: ParcelTable, kml: ParcelTable
    ) -> Tuple[Set[str], List[Diagnostic]]:
        identifier = DuplicateIdentifier()
        keys: Set[str] = set()
        diagnostics: List[Diagnostic] = []
        for table in (mbl, kml):
            for key in identifier.find_key_collisions(table):
                if key is None:
                    continue
                occurrences = table.keys.count(key)
                message = (
                    f"{table.source.value.upper()} id {key!r} occurs {occurrences} times"
                )
                logger.warning(message)
                diagnostics.append(
                    Diagnostic(
                        severity=Severity.WARNING,
                        code=DiagnosticCode.KEY_COLLISION,
                        message=message,
                        key=key,
                    )
                )
                keys.add(key)
        if self.duplicate_policy is DuplicatePolicy.FIRST_MATCH:
            return set(), diagnostics
        return keys, diagnostics

    def combine_tables(self, mbl: ParcelTable, kml: ParcelTable) -> CombineResult:
        """
        Classify every parcel of both tables.

        A KML parcel whose id matches an MBL parcel with the same number of
        courses is merged onto it (``combined``); a matching id with a
        different course count marks both parcels ``failed``; otherwise the
        KML parcel is ``no_match_kml``. MBL parcels left over are
        ``no_match_mbl``.

        Args:
            mbl: Parsed MBL table
            kml: Parsed KML table

        Returns:
            CombineResult holding the MBL parcels followed by the unmerged KML parcels
        """
        excluded, diagnostics = self._collisions(mbl, kml)
        table = mbl.clone()
        table.diagnostics = []
        for parcel in table:
            parcel.reset_outcome()
        index = table.index_by_key()
        mbl_count = len(table)
        counts = JoinCounts()

        for kml_parcel in kml:
            parcel = kml_parcel.clone()
            parcel.reset_outcome()
            comparable = parcel.geometry_count - 1 if self.kml_has_centroid else parcel.geometry_count

            position: Optional[int] = None
            if len(parcel) > 0 and parcel.key is not None and parcel.key not in excluded:
                position = index.get(parcel.key)

            if position is None:
                parcel.no_match_kml = True
                counts.no_match_kml += 1
                table.append(parcel)
                continue

            match = table[position]
            if match.combined or match.failed:
                # only reachable with FIRST_MATCH and a repeated KML id
                parcel.failed = True
                counts.failed += 1
                table.append(parcel)
            elif match.geometry_count == comparable:
                match.merge(parcel)
                match.combined = True
                counts.combined += 1
            else:
                logger.debug(
                    f"Parcel {parcel.key!r}: {match.geometry_count} MBL courses, "
                    f"{comparable} KML vertices"
                )
                parcel.failed = True
                match.failed = True
                counts.failed += 1
                table.append(parcel)

        for parcel in table.parcels[:mbl_count]:
            if not parcel.combined and not parcel.failed:
                parcel.no_match_mbl = True
                counts.no_match_mbl += 1

        logger.info(
            f"Parcels combined: {counts.combined}, failed: {counts.failed}, "
            f"KML not matching: {counts.no_match_kml}, MBL not matching: {counts.no_match_mbl}"
        )
        return CombineResult(table=table, counts=counts, diagnostics=diagnostics)

    def join_tables(self, mbl: ParcelTable, kml: ParcelTable) -> JoinResult:
        """
        Join MBL courses to KML vertices.

        Every emitted row has MBL course cells, KML vertex cells and the
        placemark name, with blanks on whichever side is missing.

        Args:
            mbl: Parsed MBL table
            kml: Parsed KML table

        Returns:
            JoinResult with one row per course
        """
        combined = self.combine_tables(mbl, kml)
        diagnostics = list(combined.diagnostics)
        courses = CourseCounts()
        joined = ParcelTable(
            source=ParcelSource.MBL,
            field_names=combined.table.field_names.copy(),
            comments=combined.table.comments.copy(),
        )

        for parcel in combined.table:
            out = Parcel(
                source=parcel.source,
                ordinal=parcel.ordinal,
                key=parcel.key,
                kml_name=parcel.kml_name,
                combined=parcel.combined,
                failed=parcel.failed,
                no_match_kml=parcel.no_match_kml,
                no_match_mbl=parcel.no_match_mbl,
                joined=True,
            )
            if parcel.combined:
                self._join_courses(parcel, out, courses, diagnostics)
            elif parcel.source is ParcelSource.KML:
                self._pad_kml(parcel, out, courses)
            else:
                self._pad_mbl(parcel, out, courses)

            parcel.joined = True
            if len(out) > 0:
                joined.append(out)

        joined.diagnostics = diagnostics
        logger.info(
            f"Tract courses joined: {courses.joined}, "
            f"KML failed: {courses.kml_failed}, KML not matching: {courses.kml_no_match}, "
            f"MBL failed: {courses.mbl_failed}, MBL not matching: {courses.mbl_no_match}"
        )
        return JoinResult(
            table=joined,
            counts=combined.counts,
            course_counts=courses,
            diagnostics=diagnostics,
        )

    def _join_courses(
        self,
        parcel: Parcel,
        out: Parcel,
        courses: CourseCounts,
        diagnostics: List[Diagnostic],
    ) -> None:
        with self.context.borrow(KML_COURSE_POLICY):
            vertices: Dict[Tuple[Optional[str], ...], Deque[FieldRecord]] = {}
            for record in parcel:
                if is_kml_vertex(record):
                    vertices.setdefault(self.context.values(record), deque()).append(record)

            for record in parcel:
                if not is_mbl_course(record):
                    continue
                candidates = vertices.get(MBL_COURSE_POLICY.values(record))
                if candidates:
                    vertex = candidates.popleft()
                    cells = _fit(record.cells, MBL_WIDTH) + list(vertex.cells) + [parcel.kml_name]
                    courses.joined += 1
                else:
                    course_id = record.cell(MblCell.COMPOSITE_ID)
                    message = f"No KML vertex for course {course_id!r}"
                    logger.warning(message)
                    diagnostics.append(
                        Diagnostic(
                            severity=Severity.WARNING,
                            code=DiagnosticCode.UNMATCHED_COURSE,
                            message=message,
                            parcel_ordinal=parcel.ordinal,
                            key=parcel.key,
                        )
                    )
                    cells = _fit(record.cells, MBL_WIDTH) + [""] * (KML_WIDTH + 1)
                    courses.mbl_no_match += 1
                out.append(FieldRecord(cells=_fit(cells, JOINED_WIDTH), is_geometry=True))

            for remaining in vertices.values():
                for vertex in remaining:
                    if vertex.cell(KmlCell.GTYPE) == CENTROID_TYPE:
                        continue
                    cells = [""] * MBL_WIDTH + list(vertex.cells) + [parcel.kml_name]
                    out.append(FieldRecord(cells=_fit(cells, JOINED_WIDTH), is_geometry=True))
                    courses.kml_no_match += 1

    def _pad_kml(self, parcel: Parcel, out: Parcel, courses: CourseCounts) -> None:
        for record in parcel:
            if not is_kml_vertex(record) or record.cell(KmlCell.GTYPE) == CENTROID_TYPE:
                continue
            cells = [""] * MBL_WIDTH + _fit(record.cells, KML_WIDTH) + [parcel.kml_name]
            out.append(FieldRecord(cells=cells, is_geometry=True))
            if parcel.failed:
                courses.kml_failed += 1
            else:
                courses.kml_no_match += 1

    def _pad_mbl(self, parcel: Parcel, out: Parcel, courses: CourseCounts) -> None:
        for record in parcel:
            if not is_mbl_course(record):
                continue
            cells = _fit(record.cells, MBL_WIDTH) + [""] * (KML_WIDTH + 1)
            out.append(FieldRecord(cells=cells, is_geometry=True))
            if parcel.failed:
                courses.mbl_failed += 1
            else:
                courses.mbl_no_match += 1


def join_tables(mbl: ParcelTable, kml: ParcelTable, **kwargs: Any) -> JoinResult:
    """Convenience function to join two parsed tables."""
    return RecordJoiner(**kwargs).join_tables(mbl, kml)
