"""
Pydantic models for conversion API responses.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from deedlink.models.records import Diagnostic


class DiagnosticModel(BaseModel):
    """A recoverable problem found while parsing or joining."""

    severity: str = Field(..., description="info, warning or error")
    code: str = Field(..., description="Diagnostic code", examples=["FORMAT_FAILURE"])
    message: str
    line_number: Optional[int] = Field(None, description="1-based input line")
    parcel_ordinal: Optional[int] = None
    key: Optional[str] = Field(None, description="Parcel id involved")

    @classmethod
    def from_diagnostic(cls, diagnostic: Diagnostic) -> "DiagnosticModel":
        return cls(**diagnostic.to_dict())


class JoinCountsModel(BaseModel):
    """Parcel-level join outcome."""

    combined: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    no_match_kml: int = Field(..., ge=0)
    no_match_mbl: int = Field(..., ge=0)


class CourseCountsModel(BaseModel):
    """Course-level join outcome."""

    joined: int = Field(..., ge=0)
    kml_failed: int = Field(..., ge=0)
    kml_no_match: int = Field(..., ge=0)
    mbl_failed: int = Field(..., ge=0)
    mbl_no_match: int = Field(..., ge=0)


class ConversionResponse(BaseModel):
    """
    Response for a converted MBL/KML pair.

    Attributes:
        mbl_parcels: Parcels parsed from the MBL upload
        kml_parcels: Placemarks parsed from the KML upload
        counts: Parcel-level join outcome
        course_counts: Course-level join outcome
        diagnostics: Parse and join diagnostics
        rows: Geo table rows keyed by column name
    """

    mbl_parcels: int = Field(..., ge=0)
    kml_parcels: int = Field(..., ge=0)
    counts: JoinCountsModel
    course_counts: CourseCountsModel
    diagnostics: List[DiagnosticModel] = Field(default_factory=list)
    rows: List[Dict[str, str]] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "mbl_parcels": 2,
                "kml_parcels": 2,
                "counts": {"combined": 0, "failed": 1, "no_match_kml": 1, "no_match_mbl": 1},
                "course_counts": {
                    "joined": 0,
                    "kml_failed": 2,
                    "kml_no_match": 1,
                    "mbl_failed": 1,
                    "mbl_no_match": 1,
                },
                "diagnostics": [],
                "rows": [],
            }
        }
    )


class DuplicateResponse(BaseModel):
    """Ids that are not unique within each upload."""

    mbl_keys: List[Optional[str]] = Field(default_factory=list)
    kml_keys: List[Optional[str]] = Field(default_factory=list)
    has_duplicates: bool = False
