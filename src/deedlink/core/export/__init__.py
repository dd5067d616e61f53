"""
Tabular export for joined survey tables.

This module writes the tab-delimited geo, flat and duplicate-report tables.
"""

from deedlink.core.export.tabular import (
    GEO_HEADER,
    KML_FLAT_HEADER,
    OutputPaths,
    find_terms,
    flat_rows,
    geo_records,
    geo_rows,
    output_paths,
    write_flat_table,
    write_geo_table,
    write_kml_flat_table,
    write_table_file,
)

__all__ = [
    "GEO_HEADER",
    "KML_FLAT_HEADER",
    "OutputPaths",
    "find_terms",
    "flat_rows",
    "geo_records",
    "geo_rows",
    "output_paths",
    "write_flat_table",
    "write_geo_table",
    "write_kml_flat_table",
    "write_table_file",
]
