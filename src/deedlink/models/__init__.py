"""
Data models and schemas.
"""

from .conversion import (
    ConversionResponse,
    CourseCountsModel,
    DiagnosticModel,
    DuplicateResponse,
    JoinCountsModel,
)
from .errors import ErrorDetail, ErrorResponse
from .records import (
    ComparisonContext,
    ComparisonPolicy,
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
)

__all__ = [
    # Records
    "ComparisonContext",
    "ComparisonPolicy",
    "Diagnostic",
    "DiagnosticCode",
    "DuplicatePolicy",
    "FieldRecord",
    "KmlCell",
    "MblCell",
    "Parcel",
    "ParcelSource",
    "ParcelTable",
    "Severity",
    # API
    "ConversionResponse",
    "CourseCountsModel",
    "DiagnosticModel",
    "DuplicateResponse",
    "JoinCountsModel",
    "ErrorDetail",
    "ErrorResponse",
]
