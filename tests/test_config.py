"""
Tests for configuration module.
"""

import pytest
from pydantic import ValidationError

from deedlink.core.config import (
    DEFAULT_GEO_COMMENT_TERMS,
    DEFAULT_SINGLE_LINE_PREFIXES,
    Settings,
)
from deedlink.models.records import DuplicatePolicy


class TestSettings:
    """Tests for Settings class."""

    def test_default_values(self) -> None:
        """Test that default values are set correctly."""
        settings = Settings()
        assert settings.single_line_prefixes == DEFAULT_SINGLE_LINE_PREFIXES
        assert settings.multi_line_prefixes == ("! RR:",)
        assert settings.geo_comment_terms == DEFAULT_GEO_COMMENT_TERMS
        assert settings.kml_has_centroid is True
        assert settings.duplicate_policy is DuplicatePolicy.REJECT
        assert settings.output_extension == ".txt"
        assert settings.api_v1_prefix == "/api/v1"
        assert settings.environment == "development"

    def test_max_upload_size_bytes(self) -> None:
        """Test max_upload_size_bytes property."""
        settings = Settings(max_upload_size_mb=10)
        assert settings.max_upload_size_bytes == 10 * 1024 * 1024

    def test_prefix_must_be_comment(self) -> None:
        """Test that prefixes not starting with '!' are rejected."""
        with pytest.raises(ValidationError):
            Settings(single_line_prefixes=("NOTE=",))
        with pytest.raises(ValidationError):
            Settings(multi_line_prefixes=("RR:",))

    def test_extension_gets_dot(self) -> None:
        """Test that the output extension is normalized."""
        assert Settings(output_extension="tsv").output_extension == ".tsv"
        assert Settings(output_extension=".csv").output_extension == ".csv"

    def test_environment_variables(self, monkeypatch) -> None:
        """Test reading settings from DEEDLINK_ variables."""
        monkeypatch.setenv("DEEDLINK_KML_HAS_CENTROID", "false")
        monkeypatch.setenv("DEEDLINK_DUPLICATE_POLICY", "first_match")
        monkeypatch.setenv("DEEDLINK_GEO_COMMENT_TERMS", '["oak", "pine"]')

        settings = Settings()

        assert settings.kml_has_centroid is False
        assert settings.duplicate_policy is DuplicatePolicy.FIRST_MATCH
        assert settings.geo_comment_terms == ("oak", "pine")

    def test_invalid_environment(self) -> None:
        """Test that unknown environments are rejected."""
        with pytest.raises(ValidationError):
            Settings(environment="qa")
