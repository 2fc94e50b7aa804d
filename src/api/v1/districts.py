"""District read endpoints.

- ``GET /api/v1/districts``            -- list (state/district/slug/bbox only).
- ``GET /api/v1/districts/compare``    -- full documents for several slugs.
- ``GET /api/v1/districts/{slug}``     -- one full document, 404 if absent.
- ``GET /api/v1/lookup?lat=..&lon=..`` -- district whose bbox contains the point.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from src.models.district import District, DistrictSummary
from src.services.district_store import DistrictStore, StoreUnavailableError
from src.services.geo_lookup import find_district

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(tags=["districts"])

_MAX_COMPARE = 10


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class CompareResponse(BaseModel):
    """Districts found for a comparison request, plus unknown slugs."""

    districts: list[District]
    missing: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Helper
# ---------------------------------------------------------------------------


def _get_store(request: Request) -> DistrictStore:
    """Retrieve the district store from app state, or raise 503."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="District store not initialised.")
    return store


@contextmanager
def _store_errors() -> Iterator[None]:
    """Translate a store outage into 503 instead of an empty or stale answer."""
    try:
        yield
    except StoreUnavailableError as exc:
        logger.warning("api.districts.store_unavailable", error=str(exc))
        raise HTTPException(status_code=503, detail="District store unavailable.") from exc


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/districts", response_model=list[DistrictSummary])
async def list_districts(
    request: Request,
    state: str | None = Query(default=None, description="Filter by state name (case-insensitive)"),
) -> list[DistrictSummary]:
    with _store_errors():
        summaries = await _get_store(request).list_summaries()
    if state is not None:
        wanted = state.strip().lower()
        summaries = [s for s in summaries if s.state.lower() == wanted]
    return summaries


@router.get("/districts/compare", response_model=CompareResponse)
async def compare_districts(
    request: Request,
    slugs: str = Query(..., min_length=1, description="Comma-separated district slugs"),
) -> CompareResponse:
    """Fetch several districts at once for side-by-side comparison."""
    requested = list(dict.fromkeys(s.strip() for s in slugs.split(",") if s.strip()))
    if not requested:
        raise HTTPException(status_code=400, detail="At least one slug is required.")
    if len(requested) > _MAX_COMPARE:
        raise HTTPException(
            status_code=400,
            detail=f"At most {_MAX_COMPARE} districts can be compared.",
        )

    store = _get_store(request)
    found: list[District] = []
    missing: list[str] = []
    with _store_errors():
        for slug in requested:
            district = await store.get(slug)
            if district is None:
                missing.append(slug)
            else:
                found.append(district)

    return CompareResponse(districts=found, missing=missing)


@router.get("/districts/{slug}", response_model=District)
async def get_district(request: Request, slug: str) -> District:
    with _store_errors():
        district = await _get_store(request).get(slug)
    if district is None:
        raise HTTPException(status_code=404, detail="Not found")
    return district


@router.get("/lookup", response_model=District)
async def lookup_district(
    request: Request,
    lat: float = Query(..., ge=-90, le=90, description="Latitude"),
    lon: float = Query(..., ge=-180, le=180, description="Longitude"),
) -> District:
    """Resolve a coordinate to the district whose bounding box contains it."""
    with _store_errors():
        districts = await _get_store(request).list_districts()
    match = find_district(districts, lat=lat, lon=lon)
    if match is None:
        logger.info("api.lookup.no_match", lat=lat, lon=lon)
        raise HTTPException(status_code=404, detail="No district found")
    return match
