"""
MBL/KML parsing module for Deedlink.

This module turns Deed Mapper tract descriptions (MBL) and their placemark
exports (KML) into parcel tables ready to be joined.
"""

from .kml_parser import KmlParser, parse_kml_file, parse_kml_lines, parse_kml_string
from .lines import LineCursor, decode_entities, read_lines, split_lines
from .mbl_parser import (
    MblParser,
    is_terminator,
    parse_mbl_file,
    parse_mbl_lines,
    parse_mbl_string,
)

__all__ = [
    # Lines
    "LineCursor",
    "decode_entities",
    "read_lines",
    "split_lines",
    # MBL
    "MblParser",
    "is_terminator",
    "parse_mbl_file",
    "parse_mbl_lines",
    "parse_mbl_string",
    # KML
    "KmlParser",
    "parse_kml_file",
    "parse_kml_lines",
    "parse_kml_string",
]
