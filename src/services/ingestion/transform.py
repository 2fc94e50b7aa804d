"""Reduce raw MGNREGA records into per-district monthly series.

Records are grouped by district (identified by slug, so names differing
only in case or whitespace land in the same group).  For every record a
single metric is picked from a fallback chain of numeric fields, and a
month key is built from ``fin_year`` and ``month``.  When several records
report the same month the largest metric is kept, since later government
updates report equal-or-higher running totals.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

from src.models.district import District, SeriesPoint, make_slug

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Candidate metric fields, highest priority first.
METRIC_FIELDS: tuple[str, ...] = (
    "Total_Households_Worked",
    "Total_Individuals_Worked",
    "Total_No_of_Active_Workers",
    "Persondays_of_Central_Liability_so_far",
)

MONTH_PLACEHOLDER = "current"

# [west, south, east, north], keyed by district slug.
KNOWN_BBOXES: dict[str, tuple[float, float, float, float]] = {
    "uttar-pradesh-lucknow": (80.8, 26.7, 81.2, 27.1),
    "uttar-pradesh-kanpur-nagar": (80.2, 26.3, 80.7, 26.6),
    "uttar-pradesh-varanasi": (82.9, 25.2, 83.1, 25.4),
    "uttar-pradesh-agra": (77.9, 27.1, 78.2, 27.3),
    "uttar-pradesh-allahabad": (81.7, 25.3, 82.0, 25.5),
    "uttar-pradesh-gorakhpur": (83.2, 26.7, 83.5, 26.9),
    "uttar-pradesh-meerut": (77.6, 28.9, 77.9, 29.1),
}


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _clean_name(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = " ".join(value.split())
    return cleaned or None


def _to_number(value: Any) -> float:
    """Coerce an OGD field to a number; anything unparseable is zero."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.replace(",", "").strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    # NaN and infinities are noise, not data
    if number != number or number in (float("inf"), float("-inf")):
        return 0.0
    return number


def extract_metric(record: dict[str, Any]) -> float:
    """Return the first non-zero value among :data:`METRIC_FIELDS`, else 0."""
    for field_name in METRIC_FIELDS:
        number = _to_number(record.get(field_name))
        if number != 0:
            return number
    return 0.0


def month_key(record: dict[str, Any]) -> str:
    """Build ``<fin_year>-<month>``, falling back to whichever is present."""
    fin_year = str(record.get("fin_year") or "").strip()
    month = str(record.get("month") or "").strip()
    if fin_year and month:
        return f"{fin_year}-{month}"
    return fin_year or month or MONTH_PLACEHOLDER


def lookup_bbox(slug: str) -> list[float]:
    bbox = KNOWN_BBOXES.get(slug)
    return list(bbox) if bbox is not None else []


# ---------------------------------------------------------------------------
# Transform
# ---------------------------------------------------------------------------


def transform_records(records: Iterable[dict[str, Any]] | None) -> list[District]:
    """Group, deduplicate, and sort raw records into :class:`District` entities.

    Records without a usable ``state_name`` or ``district_name`` are
    dropped, as are records whose metric resolves to zero (or less).
    Districts left with no series points are not emitted.
    """
    if not records:
        logger.info("transform.no_records")
        return []

    groups: dict[str, dict[str, Any]] = {}
    seen = 0
    skipped = 0

    for record in records:
        seen += 1
        state = _clean_name(record.get("state_name"))
        district = _clean_name(record.get("district_name"))
        if state is None or district is None:
            skipped += 1
            continue

        metric = extract_metric(record)
        if metric <= 0:
            skipped += 1
            continue

        slug = make_slug(state, district)
        group = groups.get(slug)
        if group is None:
            group = {"state": state, "district": district, "months": {}}
            groups[slug] = group

        months: dict[str, float] = group["months"]
        key = month_key(record)
        if metric > months.get(key, 0.0):
            months[key] = metric

    districts = [
        District(
            state=group["state"],
            district=group["district"],
            slug=slug,
            bbox=lookup_bbox(slug),
            series=[
                SeriesPoint(month=month, metric=metric)
                for month, metric in sorted(group["months"].items())
            ],
        )
        for slug, group in groups.items()
    ]

    logger.info(
        "transform.complete",
        records=seen,
        districts=len(districts),
        skipped=skipped,
    )
    return districts
