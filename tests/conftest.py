"""
Shared fixtures for Deedlink tests.
"""

from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures"

Vertex = Tuple[str, str]


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def mbl_path() -> Path:
    return FIXTURES_DIR / "tracts.mbl"


@pytest.fixture
def kml_path() -> Path:
    return FIXTURES_DIR / "tracts.kml"


@pytest.fixture
def placemark() -> Callable[..., List[str]]:
    """Factory for the lines of one Deed Mapper style placemark."""

    def build(
        key: Optional[str],
        vertices: Sequence[Vertex],
        name: Optional[str] = None,
        centroid: Optional[Vertex] = ("-76.0", "39.0"),
    ) -> List[str]:
        lines = ["<Placemark>"]
        if name is not None:
            lines.append(f"    <name>{name}</name>")
        if key is not None:
            lines += [
                "    <ExtendedData>",
                f'        <SimpleData name="id">{key}</SimpleData>',
                "    </ExtendedData>",
            ]
        lines.append("    <MultiGeometry>")
        if centroid is not None:
            lines.append(f"        <Point><coordinates>{centroid[0]},{centroid[1]},0</coordinates></Point>")
        if vertices:
            coords = " ".join(f"{x},{y},0" for x, y in vertices)
            lines += [
                "        <LineString>",
                f"            <coordinates>{coords}</coordinates>",
                "        </LineString>",
            ]
        lines += ["    </MultiGeometry>", "</Placemark>"]
        return lines

    return build


@pytest.fixture
def kml_document() -> Callable[..., List[str]]:
    """Wrap placemark line lists into a KML document."""

    def build(*placemarks: List[str]) -> List[str]:
        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<kml xmlns="http://www.opengis.net/kml/2.2">',
            "<Document>",
        ]
        for lines_of_placemark in placemarks:
            lines += lines_of_placemark
        lines += ["</Document>", "</kml>"]
        return lines

    return build


@pytest.fixture
def scenario_mbl_lines() -> List[str]:
    """Parcel 101 with one course and parcel 102 with one course."""
    return ["id 101", "lm N45E;120;old oak", "end", "id 102", "lm N10W;80;", "end"]


@pytest.fixture
def scenario_kml_lines(placemark, kml_document) -> List[str]:
    """Placemark 101 with two vertices and placemark 103 with one, each with a centroid."""
    return kml_document(
        placemark("101", [("-76.1", "39.1"), ("-76.2", "39.2")], name="Tract 101"),
        placemark("103", [("-76.3", "39.3")], name="Tract 103"),
    )
