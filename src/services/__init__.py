"""Service layer -- district store, geo lookup, and the ingestion pipeline."""

from __future__ import annotations

from src.services.district_store import (
    DistrictStore,
    InMemoryDistrictBackend,
    RedisDistrictBackend,
    StoreUnavailableError,
)
from src.services.geo_lookup import find_district

__all__ = [
    "DistrictStore",
    "InMemoryDistrictBackend",
    "RedisDistrictBackend",
    "StoreUnavailableError",
    "find_district",
]
