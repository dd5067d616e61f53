"""
Custom exception hierarchy for Deedlink.

This module defines the exceptions raised across the parsing, joining and
export layers. Only failures that make an operation impossible are raised;
recoverable format problems are reported as diagnostics on the parsed tables.
"""

from typing import Any, Dict, List, Optional


class DeedlinkException(Exception):
    """
    Base exception for all Deedlink-specific errors.

    All custom exceptions should inherit from this base class to allow
    for unified exception handling throughout the application.

    Attributes:
        error_code: String identifier for the error type
        message: User-friendly error message
        details: Technical details for logging/debugging
        status_code: HTTP status code for API responses
        suggestions: Optional list of resolution suggestions
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize DeedlinkException.

        Args:
            message: User-friendly error message
            error_code: String identifier for the error type
            status_code: HTTP status code (default: 500)
            details: Technical details for logging
            suggestions: List of suggestions for resolution
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for API responses.

        Returns:
            Dictionary representation of the error
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "suggestions": self.suggestions,
        }

    def __str__(self) -> str:
        """String representation of the exception."""
        return f"{self.error_code}: {self.message}"

    def __repr__(self) -> str:
        """Detailed string representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"error_code='{self.error_code}', "
            f"message='{self.message}', "
            f"status_code={self.status_code})"
        )


class ValidationError(DeedlinkException):
    """
    Raised when input validation fails.

    Used for missing uploads, empty files or invalid option values.
    Maps to HTTP 400 Bad Request.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize ValidationError.

        Args:
            message: User-friendly error message
            field: Name of the field that failed validation
            details: Technical details about the validation failure
            suggestions: List of suggestions for fixing the validation error
        """
        error_details = details or {}
        if field:
            error_details["field"] = field

        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=400,
            details=error_details,
            suggestions=suggestions or ["Check the input format and try again"],
        )


class ParseError(DeedlinkException):
    """
    Raised when a line or block does not match the MBL or KML grammar.

    Parsers catch this per parcel, discard the parcel in progress and record a
    diagnostic, so it only escapes to callers that parse single blocks.

    Maps to HTTP 422 Unprocessable Entity.
    """

    def __init__(
        self,
        message: str,
        file_type: Optional[str] = None,
        line_number: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize ParseError.

        Args:
            message: User-friendly error message
            file_type: Type of file being parsed (e.g., 'MBL', 'KML')
            line_number: Line number where parsing failed (if applicable)
            details: Technical details about the parsing failure
            suggestions: List of suggestions for fixing the file
        """
        error_details = details or {}
        if file_type:
            error_details["file_type"] = file_type
        if line_number:
            error_details["line_number"] = line_number

        default_suggestions = [
            "Check that every parcel ends with an 'end' line",
            "Verify each KML placemark has coordinates for its geometry",
        ]

        super().__init__(
            message=message,
            error_code="PARSE_ERROR",
            status_code=422,
            details=error_details,
            suggestions=suggestions or default_suggestions,
        )
        self.line_number = line_number


class StorageError(DeedlinkException):
    """
    Raised when an input file cannot be read or an output file cannot be written.

    Fatal to the operation that hit it; the offending path is carried in
    ``details["file_path"]``.

    Maps to HTTP 500 Internal Server Error.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        file_path: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize StorageError.

        Args:
            message: User-friendly error message
            operation: Storage operation that failed (e.g., 'read', 'write')
            file_path: Path to the file involved in the error
            details: Technical details about the storage error
            suggestions: List of suggestions for resolution
        """
        error_details = details or {}
        if operation:
            error_details["operation"] = operation
        if file_path:
            error_details["file_path"] = file_path

        default_suggestions = [
            "Check that the file exists and is readable",
            "Check that the output directory exists and is writable",
        ]

        super().__init__(
            message=message,
            error_code="STORAGE_ERROR",
            status_code=500,
            details=error_details,
            suggestions=suggestions or default_suggestions,
        )
        self.file_path = file_path


class ConfigurationError(DeedlinkException):
    """
    Raised when application configuration is invalid.

    Used for malformed prefix lists or unsupported policy names.

    Maps to HTTP 500 Internal Server Error.
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize ConfigurationError.

        Args:
            message: User-friendly error message
            config_key: Configuration key that is invalid
            details: Technical details about the configuration error
            suggestions: List of suggestions for resolution
        """
        error_details = details or {}
        if config_key:
            error_details["config_key"] = config_key

        default_suggestions = [
            "Check DEEDLINK_ environment variables are set correctly",
            "Verify .env file syntax",
        ]

        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            status_code=500,
            details=error_details,
            suggestions=suggestions or default_suggestions,
        )
