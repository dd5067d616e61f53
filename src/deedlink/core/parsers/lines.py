"""
Line reading shared by the MBL and KML parsers.
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from deedlink.core.errors import StorageError

logger = logging.getLogger(__name__)

# Entity escapes Deed Mapper writes into both of its output formats
ENTITY_REPLACEMENTS = (("&#62;", ">"), ("&#60;", "<"))


def decode_entities(line: str) -> str:
    for escaped, plain in ENTITY_REPLACEMENTS:
        line = line.replace(escaped, plain)
    return line


def split_lines(text: str) -> List[str]:
    """Split text into lines with entity escapes decoded."""
    return [decode_entities(line) for line in text.splitlines()]


def read_lines(file_path: Union[str, Path], encoding: str = "utf-8") -> List[str]:
    """
    Read a text file into decoded lines.

    Args:
        file_path: Path to the MBL or KML file
        encoding: Text encoding of the file

    Returns:
        The file's lines without line terminators

    Raises:
        StorageError: If the file cannot be read or decoded
    """
    path = Path(file_path)
    try:
        text = path.read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Failed to read {path}: {e}")
        raise StorageError(
            f"Cannot read input file: {path}",
            operation="read",
            file_path=str(path),
            details={"reason": str(e)},
        ) from e

    lines = split_lines(text)
    logger.debug(f"Read {len(lines)} lines from {path}")
    return lines


class LineCursor:
    """
    Forward read position over an immutable sequence of lines.

    Line numbers are 1-based and refer to the most recently consumed line.
    """

    def __init__(self, lines: Sequence[str], position: int = 0) -> None:
        self._lines = tuple(lines)
        self.position = position

    @property
    def exhausted(self) -> bool:
        return self.position >= len(self._lines)

    @property
    def line_number(self) -> int:
        return self.position

    def peek(self) -> Optional[str]:
        """Next line without consuming it, or None at the end of input."""
        if self.exhausted:
            return None
        return self._lines[self.position]

    def next(self) -> str:
        """Consume and return the next line."""
        if self.exhausted:
            raise IndexError("read past end of input")
        line = self._lines[self.position]
        self.position += 1
        return line

    def skip_past(self, predicate: Callable[[str], bool]) -> bool:
        """
        Consume lines up to and including the first one matching ``predicate``.

        Returns False when input ran out first.
        """
        while not self.exhausted:
            if predicate(self.next()):
                return True
        return False

    def __len__(self) -> int:
        return len(self._lines)
