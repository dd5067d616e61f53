"""
Command line front end.

    deedlink convert tract.mbl tract.kml -o out/tract.txt
    deedlink duplicates tract.mbl tract.kml -o out/tract.txt
    deedlink serve --port 8000
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import uvicorn

from deedlink import __version__
from deedlink.core.config import Settings, settings
from deedlink.core.conversion import ConversionResult, ConversionService, DuplicateReport
from deedlink.core.errors import ConfigurationError, DeedlinkException, StorageError
from deedlink.core.logging_config import setup_logging
from deedlink.models.records import DuplicatePolicy

logger = logging.getLogger(__name__)


def _add_input_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("mbl", help="Deed Mapper .mbl tract description file")
    parser.add_argument("kml", help="Deed Mapper .kml placemark file")
    parser.add_argument(
        "-o", "--output", required=True, help="Base output path; suffixes are added to its stem"
    )
    parser.add_argument(
        "--single-prefix",
        action="append",
        default=None,
        help="Comment prefix read as a single-line field (repeatable, replaces defaults)",
    )
    parser.add_argument(
        "--multi-prefix",
        action="append",
        default=None,
        help="Comment prefix that opens a labelled block (repeatable, replaces defaults)",
    )
    parser.add_argument("--extension", default=None, help="Output file extension")
    parser.add_argument("--encoding", default=None, help="Input and output text encoding")


def _settings_from_args(args: argparse.Namespace) -> Settings:
    update: Dict[str, Any] = {}
    if getattr(args, "single_prefix", None):
        update["single_line_prefixes"] = tuple(args.single_prefix)
    if getattr(args, "multi_prefix", None):
        update["multi_line_prefixes"] = tuple(args.multi_prefix)
    if getattr(args, "terms", None):
        update["geo_comment_terms"] = tuple(
            t.strip() for t in str(args.terms).split(",") if t.strip()
        )
    if getattr(args, "no_centroid", False):
        update["kml_has_centroid"] = False
    if getattr(args, "duplicate_policy", None):
        update["duplicate_policy"] = DuplicatePolicy(args.duplicate_policy)
    if getattr(args, "extension", None):
        update["output_extension"] = args.extension
    if getattr(args, "encoding", None):
        update["encoding"] = args.encoding
    if not update:
        return settings
    # re-validate so overrides go through the same checks as the environment
    try:
        return Settings.model_validate({**settings.model_dump(), **update})
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid option: {e}", config_key=", ".join(sorted(update))
        ) from e


def _print_conversion(result: ConversionResult) -> None:
    counts, courses = result.counts, result.course_counts
    print(f"KML & MBL parcels combined: {counts.combined}")
    print(f"KML parcels failed:         {counts.failed}")
    print(f"KML parcels not matching:   {counts.no_match_kml}")
    print(f"MBL parcels not matching:   {counts.no_match_mbl}")
    print(f"Tract courses joined:       {courses.joined}")
    print(f"KML courses failed:         {courses.kml_failed}")
    print(f"KML courses not matching:   {courses.kml_no_match}")
    print(f"MBL courses failed:         {courses.mbl_failed}")
    print(f"MBL courses not matching:   {courses.mbl_no_match}")
    for diagnostic in result.diagnostics:
        location = f" (line {diagnostic.line_number})" if diagnostic.line_number else ""
        print(f"{diagnostic.severity.value}: {diagnostic.code.value}{location}: {diagnostic.message}")
    if result.paths is not None:
        print(f"Wrote {result.paths.geo}")
        print(f"Wrote {result.paths.flat}")


def _print_duplicates(report: DuplicateReport) -> None:
    if not report.has_duplicates:
        print("No repeated ids found")
        return
    for label, keys, path in (
        ("MBL", report.mbl_keys, report.mbl_path),
        ("KML", report.kml_keys, report.kml_path),
    ):
        if keys:
            print(f"{label} repeated ids: {', '.join(str(k) for k in keys)}")
        if path is not None:
            print(f"Wrote {path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deedlink",
        description="Reconcile Deed Mapper tract descriptions with their KML placemarks",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default="WARNING", help="Console log level")
    parser.add_argument("--log-file", default=None, help="Also log to this file")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_convert = sub.add_parser("convert", help="Join an MBL/KML pair into geo and flat tables")
    _add_input_arguments(p_convert)
    p_convert.add_argument(
        "--terms", default=None, help="Comma-separated keywords searched for in course comments"
    )
    p_convert.add_argument(
        "--no-centroid",
        action="store_true",
        help="Placemarks carry no centroid Point",
    )
    p_convert.add_argument(
        "--duplicate-policy",
        choices=[p.value for p in DuplicatePolicy],
        default=None,
        help="How repeated ids are matched (default: reject)",
    )

    p_dups = sub.add_parser("duplicates", help="Write reports of repeated parcel ids")
    _add_input_arguments(p_dups)

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=settings.port)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_file = args.log_file or settings.log_file
    setup_logging(log_level=args.log_level, log_file=Path(log_file) if log_file else None)

    if args.cmd == "serve":
        uvicorn.run("deedlink.api.main:app", host=args.host, port=args.port)
        return 0

    try:
        service = ConversionService(_settings_from_args(args))
        if args.cmd == "convert":
            _print_conversion(service.convert(args.mbl, args.kml, args.output))
            return 0
        if args.cmd == "duplicates":
            _print_duplicates(service.find_duplicates(args.mbl, args.kml, args.output))
            return 0
    except StorageError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 1
    except DeedlinkException as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    return 2


if __name__ == "__main__":
    sys.exit(main())
