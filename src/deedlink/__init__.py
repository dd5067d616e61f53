"""
Deedlink - reconciles Deed Mapper tract descriptions with their KML geometry.

This package parses MBL tract-description files and the companion KML
placemark files, joins parcel courses to their vertices and writes the
results as tab-delimited tables.
"""

__version__ = "0.1.0"
