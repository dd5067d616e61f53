"""
Conversion API endpoints.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, File, UploadFile, status

from deedlink.core.config import settings
from deedlink.core.conversion import ConversionService
from deedlink.core.errors import ValidationError
from deedlink.core.parsers.lines import split_lines
from deedlink.models.conversion import (
    ConversionResponse,
    CourseCountsModel,
    DiagnosticModel,
    DuplicateResponse,
    JoinCountsModel,
)
from deedlink.models.errors import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversions", tags=["conversions"])

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing, empty or undecodable upload"},
    413: {"model": ErrorResponse, "description": "Upload too large"},
    500: {"model": ErrorResponse, "description": "Internal server error"},
}


async def read_upload(upload: UploadFile, field: str) -> str:
    """
    Read an uploaded text file.

    Raises:
        ValidationError: If the upload is empty, too large or not decodable
    """
    content = await upload.read()
    if not content:
        raise ValidationError(
            f"{field} upload is empty",
            field=field,
            suggestions=["Upload a non-empty file"],
        )
    if len(content) > settings.max_upload_size_bytes:
        error = ValidationError(
            f"{field} upload exceeds {settings.max_upload_size_mb}MB",
            field=field,
            details={"file_size": len(content), "max_size": settings.max_upload_size_bytes},
        )
        error.status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
        raise error
    try:
        return content.decode(settings.encoding)
    except UnicodeDecodeError as e:
        raise ValidationError(
            f"{field} upload is not valid {settings.encoding} text",
            field=field,
            details={"reason": str(e)},
        ) from e


@router.post(
    "",
    response_model=ConversionResponse,
    responses=_ERROR_RESPONSES,
    summary="Convert an MBL/KML pair",
    description=(
        "Parse a Deed Mapper tract description and its KML export, join "
        "their boundary courses and return the geo table rows."
    ),
)
async def create_conversion(
    mbl_file: Annotated[UploadFile, File(description="Deed Mapper .mbl tract descriptions")],
    kml_file: Annotated[UploadFile, File(description="Deed Mapper .kml placemark export")],
) -> ConversionResponse:
    """
    Convert an uploaded MBL/KML pair.

    Parse problems do not fail the request; they are listed in
    ``diagnostics`` and the parcels involved are classified in ``counts``.
    """
    logger.info(f"Conversion requested: {mbl_file.filename} + {kml_file.filename}")
    mbl_text = await read_upload(mbl_file, "mbl_file")
    kml_text = await read_upload(kml_file, "kml_file")

    service = ConversionService(settings)
    result = service.convert_text(mbl_text, kml_text)

    return ConversionResponse(
        mbl_parcels=result.mbl_parcels,
        kml_parcels=result.kml_parcels,
        counts=JoinCountsModel(**result.counts.to_dict()),
        course_counts=CourseCountsModel(**result.course_counts.to_dict()),
        diagnostics=[DiagnosticModel.from_diagnostic(d) for d in result.diagnostics],
        rows=service.geo_records(result),
    )


@router.post(
    "/duplicates",
    response_model=DuplicateResponse,
    responses=_ERROR_RESPONSES,
    summary="Find repeated parcel ids",
    description="List the ids that occur more than once in either upload.",
)
async def find_duplicates(
    mbl_file: Annotated[UploadFile, File(description="Deed Mapper .mbl tract descriptions")],
    kml_file: Annotated[UploadFile, File(description="Deed Mapper .kml placemark export")],
) -> DuplicateResponse:
    mbl_text = await read_upload(mbl_file, "mbl_file")
    kml_text = await read_upload(kml_file, "kml_file")

    service = ConversionService(settings)
    mbl, kml = service.parse(split_lines(mbl_text), split_lines(kml_text))
    mbl_keys = service.identifier.find_key_collisions(mbl)
    kml_keys = service.identifier.find_key_collisions(kml)

    return DuplicateResponse(
        mbl_keys=mbl_keys,
        kml_keys=kml_keys,
        has_duplicates=bool(mbl_keys or kml_keys),
    )
