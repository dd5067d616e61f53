"""
Configuration settings for the Deedlink application.
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from deedlink.models.records import DuplicatePolicy

DEFAULT_SINGLE_LINE_PREFIXES = (
    "! NOTE=",
    "! ANNR=",
    "! ANNS=",
    "! ASG=",
    "! resurvey",
    "! improvements",
)

DEFAULT_MULTI_LINE_PREFIXES = ("! RR:",)

DEFAULT_GEO_COMMENT_TERMS = (
    "ash", "bark", "bay", "beech", "birch", "bush", "cedar", "cherry",
    "chestnut", "currant", "cypress", "dogwood", "elm", "gum", "haw",
    "hickory", "holly", "laurel", "locust", "maple", "mulberry", "myrtle",
    "oak", "peach", "persimmon", "pignut", "pine", "poplar", "sassafras",
    "scrub", "spice", "tree", "walnut", "willow", "wood",
)


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    Attributes:
        single_line_prefixes: Comment prefixes converted into ordinary fields
        multi_line_prefixes: Comment prefixes that open a labelled text block
        geo_comment_terms: Keywords searched for in course comments
        kml_has_centroid: Whether each KML placemark carries a centroid Point
        duplicate_policy: How the join treats parcel ids that are not unique
        output_extension: Extension appended to every output table
        encoding: Text encoding for input and output files
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="DEEDLINK_",
    )

    # Parser settings
    single_line_prefixes: tuple[str, ...] = DEFAULT_SINGLE_LINE_PREFIXES
    multi_line_prefixes: tuple[str, ...] = DEFAULT_MULTI_LINE_PREFIXES
    geo_comment_terms: tuple[str, ...] = DEFAULT_GEO_COMMENT_TERMS

    # Join settings
    kml_has_centroid: bool = True
    duplicate_policy: DuplicatePolicy = DuplicatePolicy.REJECT

    # Output settings
    output_extension: str = ".txt"
    encoding: str = "utf-8"

    # API settings
    api_v1_prefix: str = "/api/v1"
    port: int = 8000
    max_upload_size_mb: int = 50

    # Logging
    log_file: Optional[Path] = None

    # Environment
    environment: Literal["development", "staging", "production"] = "development"

    @field_validator("single_line_prefixes", "multi_line_prefixes")
    @classmethod
    def validate_prefixes(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Custom field prefixes are comment lines, so they must start with '!'."""
        for prefix in v:
            if not prefix.startswith("!"):
                raise ValueError(f"Custom field prefix must start with '!': {prefix!r}")
        return v

    @field_validator("output_extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        """Normalize the output extension to start with a dot."""
        if v and not v.startswith("."):
            return f".{v}"
        return v

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


# Global settings instance
settings = Settings()
