"""
MBL tract description parsing module.

Parses the line-oriented Deed Mapper description format into a table of
parcels. Each parcel is a run of lines closed by an ``end`` line; inside a
parcel, lines are ``<name> <value>`` fields, boundary courses, or ``!``
comment blocks.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from deedlink.core.config import settings
from deedlink.core.errors import ParseError
from deedlink.core.parsers.lines import LineCursor, read_lines, split_lines
from deedlink.models.records import (
    GEOMETRY_FIELDS,
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

COMMENT_MARKER = "!"
TERMINATOR = "end"
ANONYMOUS_LABEL = "z_cmnt"
LOC_FIELD = "loc"
LOC_TOKENS_FIELD = "loc_tay"


def is_terminator(line: str) -> bool:
    """A parcel ends on a line whose first token is ``end``."""
    tokens = line.split(None, 1)
    return bool(tokens) and tokens[0] == TERMINATOR


@dataclass
class _CommentBlock:
    label: str
    anonymous: bool
    parts: List[str] = field(default_factory=list)

    def add(self, text: str) -> None:
        self.parts.append(text.replace("\t", " "))

    @property
    def text(self) -> str:
        return "".join(self.parts).strip()


class _ParcelBuilder:
    """
    Reads the lines of one parcel.

    Field-name and comment tallies are staged here and only committed to the
    table once the parcel has parsed cleanly.
    """

    def __init__(self, parser: "MblParser", ordinal: int) -> None:
        self.parser = parser
        self.parcel = Parcel(source=ParcelSource.MBL, ordinal=ordinal)
        self.field_names: List[str] = []
        self.comments: List[str] = []
        self.comment_count = 0
        self.field_count = 0
        self.geometry_count = 0
        self.anonymous_count = 0
        self._block: Optional[_CommentBlock] = None

    @property
    def all_count(self) -> int:
        return self.comment_count + self.field_count + self.geometry_count

    def _leading_cells(
        self, name: str, comment: int = 0, plain: int = 0, geometry: int = 0
    ) -> List[str]:
        return [
            name,
            str(self.parcel.ordinal),
            str(self.all_count),
            str(comment),
            str(plain),
            str(geometry),
        ]

    def read(self, cursor: LineCursor) -> bool:
        """
        Consume lines up to and including the terminator.

        Returns False when input ran out before a terminator was seen.

        Raises:
            ParseError: If a line cannot be interpreted
        """
        while not cursor.exhausted:
            line = cursor.next()
            if is_terminator(line):
                self._close_block()
                return True
            try:
                self._interpret(line, cursor.line_number)
            except (ValueError, IndexError) as e:
                raise ParseError(
                    f"Cannot interpret line: {line!r}",
                    file_type="MBL",
                    line_number=cursor.line_number,
                    details={"reason": str(e)},
                ) from e
        self._close_block()
        return False

    def _interpret(self, line: str, line_number: int) -> None:
        single = self.parser.match_single_line(line)
        if single is not None:
            self._close_block()
            self._read_field(line[1:].strip(), line_number)
            return

        multi = self.parser.match_multi_line(line)
        if multi is not None:
            self._close_block()
            self._block = _CommentBlock(label=multi[1:].strip(), anonymous=False)
            self._block.add(line[len(multi):])
            return

        if line.startswith(COMMENT_MARKER):
            if self._block is None:
                self.anonymous_count += 1
                self._block = _CommentBlock(
                    label=f"{ANONYMOUS_LABEL}{self.anonymous_count}", anonymous=True
                )
            self._block.add(line[1:])
            return

        self._close_block()
        self._read_field(line, line_number)

    def _close_block(self) -> None:
        block, self._block = self._block, None
        if block is None:
            return
        text = block.text
        if not text:
            # whitespace-only blocks are dropped and give back their number
            if block.anonymous:
                self.anonymous_count -= 1
            return
        self.comment_count += 1
        cells = self._leading_cells(block.label, comment=self.comment_count) + [text]
        self.parcel.append(FieldRecord(cells=cells))
        self.field_names.append(block.label)

    def _read_field(self, text: str, line_number: int) -> None:
        name, _, value = text.partition(" ")
        if not value:
            return

        if name == "id":
            if self.parcel.key is not None and self.parcel.key != value:
                raise ParseError(
                    f"Parcel {self.parcel.key!r} has a second id {value!r}; "
                    f"an '{TERMINATOR}' line is probably missing",
                    file_type="MBL",
                    line_number=line_number,
                )
            self.parcel.key = value

        if name in GEOMETRY_FIELDS:
            self._add_course(name, value)
        elif name == LOC_FIELD:
            self._add_plain(name, value)
            self._add_loc_tokens(value)
            self.field_names.append(name)
        else:
            self._add_plain(name, value)
            self.field_names.append(name)

    def _add_plain(self, name: str, value: str) -> None:
        self.field_count += 1
        cells = self._leading_cells(name, plain=self.field_count) + [value]
        self.parcel.append(FieldRecord(cells=cells))

    def _add_loc_tokens(self, value: str) -> None:
        self.field_count += 1
        tokens = value.split(" ")
        while tokens and not tokens[-1]:
            tokens.pop()
        cells = self._leading_cells(LOC_TOKENS_FIELD, plain=self.field_count) + tokens
        self.parcel.append(FieldRecord(cells=cells))

    def _add_course(self, name: str, value: str) -> None:
        # direction[;distance[;comment]], the comment keeps any further ';'
        parts = value.split(";", 2)
        direction = parts[0]
        distance = parts[1] if len(parts) > 1 else ""
        comment = parts[2] if len(parts) > 2 else ""

        self.geometry_count += 1
        cells = self._leading_cells(name, geometry=self.geometry_count) + [
            direction,
            distance,
            comment,
            composite_id(self.parcel.key, self.geometry_count),
        ]
        self.parcel.append(FieldRecord(cells=cells, is_geometry=True))
        self.comments.append(comment)

    def commit(self, table: ParcelTable) -> None:
        if len(self.parcel) == 0:
            return
        table.append(self.parcel)
        for name in self.field_names:
            table.field_names.add(name)
        for comment in self.comments:
            table.comments.add(comment)


class MblParser:
    """
    Parser for MBL tract description files.

    Comment lines starting with a single-line prefix become ordinary fields.
    Comment lines starting with a multi-line prefix open a block labelled
    with the prefix text.
    """

    def __init__(
        self,
        single_line_prefixes: Optional[Iterable[str]] = None,
        multi_line_prefixes: Optional[Iterable[str]] = None,
    ):
        """
        Initialize MBL parser.

        Args:
            single_line_prefixes: Prefixes of comment lines read as fields
            multi_line_prefixes: Prefixes of comment lines that open a labelled block
        """
        if single_line_prefixes is None:
            single_line_prefixes = settings.single_line_prefixes
        if multi_line_prefixes is None:
            multi_line_prefixes = settings.multi_line_prefixes
        self.single_line_prefixes: Tuple[str, ...] = tuple(single_line_prefixes)
        self.multi_line_prefixes: Tuple[str, ...] = tuple(multi_line_prefixes)

    def match_single_line(self, line: str) -> Optional[str]:
        for prefix in self.single_line_prefixes:
            if line.startswith(prefix):
                return prefix
        return None

    def match_multi_line(self, line: str) -> Optional[str]:
        for prefix in self.multi_line_prefixes:
            if line.startswith(prefix):
                return prefix
        return None

    def parse(self, lines: Sequence[str]) -> ParcelTable:
        """
        Parse MBL lines into a parcel table.

        A parcel that cannot be interpreted is dropped with a diagnostic and
        parsing resumes after its ``end`` line.

        Args:
            lines: MBL lines without line terminators

        Returns:
            ParcelTable of the parcels that parsed cleanly
        """
        table = ParcelTable(source=ParcelSource.MBL)
        cursor = LineCursor(lines)
        ordinal = 0

        while not cursor.exhausted:
            if not cursor.peek().strip():
                cursor.next()
                continue

            ordinal += 1
            builder = _ParcelBuilder(self, ordinal)
            try:
                terminated = builder.read(cursor)
            except ParseError as e:
                logger.warning(f"Discarding MBL parcel {ordinal}: {e.message}")
                table.diagnostics.append(
                    Diagnostic(
                        severity=Severity.ERROR,
                        code=DiagnosticCode.FORMAT_FAILURE,
                        message=e.message,
                        line_number=e.line_number,
                        parcel_ordinal=ordinal,
                        key=builder.parcel.key,
                    )
                )
                cursor.skip_past(is_terminator)
                continue

            if not terminated:
                # a trailing fragment with no id and no courses is not a parcel
                fragment = builder.parcel.key is None and builder.geometry_count == 0
                message = f"Input ended before parcel {ordinal} was terminated"
                if fragment:
                    message += "; the trailing fragment was discarded"
                logger.warning(f"MBL parcel {ordinal} is not closed by an '{TERMINATOR}' line")
                table.diagnostics.append(
                    Diagnostic(
                        severity=Severity.WARNING,
                        code=DiagnosticCode.UNTERMINATED_PARCEL,
                        message=message,
                        line_number=cursor.line_number,
                        parcel_ordinal=ordinal,
                        key=builder.parcel.key,
                    )
                )
                if fragment:
                    continue
            builder.commit(table)

        logger.info(
            f"Parsed {len(table)} MBL parcels "
            f"({len(table.field_names)} field names, {len(table.diagnostics)} diagnostics)"
        )
        return table


def parse_mbl_lines(
    lines: Sequence[str],
    single_line_prefixes: Optional[Iterable[str]] = None,
    multi_line_prefixes: Optional[Iterable[str]] = None,
) -> ParcelTable:
    """Convenience function to parse MBL lines."""
    return MblParser(single_line_prefixes, multi_line_prefixes).parse(lines)


def parse_mbl_string(
    text: str,
    single_line_prefixes: Optional[Iterable[str]] = None,
    multi_line_prefixes: Optional[Iterable[str]] = None,
) -> ParcelTable:
    """Convenience function to parse MBL text."""
    return parse_mbl_lines(split_lines(text), single_line_prefixes, multi_line_prefixes)


def parse_mbl_file(
    file_path: Union[str, Path],
    single_line_prefixes: Optional[Iterable[str]] = None,
    multi_line_prefixes: Optional[Iterable[str]] = None,
    encoding: Optional[str] = None,
) -> ParcelTable:
    """
    Convenience function to parse an MBL file.

    Raises:
        StorageError: If the file cannot be read
    """
    lines = read_lines(file_path, encoding or settings.encoding)
    return parse_mbl_lines(lines, single_line_prefixes, multi_line_prefixes)
