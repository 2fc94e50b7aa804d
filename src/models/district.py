from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator

_WHITESPACE_RE = re.compile(r"\s+")


def make_slug(state: str, district: str) -> str:
    """Derive the stable ``<state>-<district>`` identifier for a district.

    Both names are trimmed and lowercased, and internal whitespace runs
    collapse to a single hyphen, so ``("Uttar Pradesh", "Lucknow")`` and
    ``("UTTAR PRADESH", "  Lucknow ")`` both give ``uttar-pradesh-lucknow``.
    """
    state_part = _WHITESPACE_RE.sub("-", state.strip().lower())
    district_part = _WHITESPACE_RE.sub("-", district.strip().lower())
    return f"{state_part}-{district_part}"


class SeriesPoint(BaseModel):
    month: str
    metric: float


class DistrictSummary(BaseModel):
    """Projection served by the district listing endpoint."""

    state: str
    district: str
    slug: str
    bbox: list[float] = Field(default_factory=list)


class District(BaseModel):
    state: str = Field(min_length=1)
    district: str = Field(min_length=1)
    slug: str = Field(min_length=1)
    bbox: list[float] = Field(default_factory=list)  # [west, south, east, north]
    series: list[SeriesPoint] = Field(default_factory=list)

    @field_validator("bbox")
    @classmethod
    def _check_bbox(cls, value: list[float]) -> list[float]:
        if not value:
            return []
        if len(value) != 4:
            raise ValueError("bbox must be empty or [west, south, east, north]")
        west, south, east, north = value
        if west > east or south > north:
            raise ValueError("bbox requires west <= east and south <= north")
        return value

    def summary(self) -> DistrictSummary:
        return DistrictSummary(
            state=self.state,
            district=self.district,
            slug=self.slug,
            bbox=list(self.bbox),
        )

    def contains(self, lat: float, lon: float) -> bool:
        """Return ``True`` if the point lies inside (or on the edge of) the bbox."""
        if len(self.bbox) != 4:
            return False
        west, south, east, north = self.bbox
        return west <= lon <= east and south <= lat <= north

    @property
    def bbox_area(self) -> float:
        if len(self.bbox) != 4:
            return 0.0
        west, south, east, north = self.bbox
        return (east - west) * (north - south)
