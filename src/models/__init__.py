from src.models.district import District, DistrictSummary, SeriesPoint, make_slug

__all__ = [
    "District",
    "DistrictSummary",
    "SeriesPoint",
    "make_slug",
]
