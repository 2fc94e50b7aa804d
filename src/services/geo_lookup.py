"""Point-in-district lookup over stored bounding boxes.

Districts without a bbox are ignored.  Bounding boxes can overlap, so
when several contain the point the smallest box wins, with the slug as
a final deterministic tie-break.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from src.models.district import District

logger = structlog.get_logger(__name__)


def find_district(districts: Iterable[District], lat: float, lon: float) -> District | None:
    """Return the district whose bbox contains ``(lat, lon)``, or ``None``."""
    matches = [d for d in districts if d.contains(lat, lon)]
    if not matches:
        return None

    if len(matches) > 1:
        logger.info(
            "geo_lookup.overlapping_matches",
            lat=lat,
            lon=lon,
            slugs=[d.slug for d in matches],
        )

    return min(matches, key=lambda d: (d.bbox_area, d.slug))
