"""Paginated collection of MGNREGA records for one state.

The source dataset covers every state, so fetching all of it would take
thousands of requests.  The collector pages forward, keeps only records
for the target state, and stops as soon as it has seen enough records
spread over enough (district, financial year, month) combinations.

Stop conditions, checked after each page in this order:

1. the page came back empty (source exhausted);
2. both coverage thresholds are met;
3. the page budget is spent.

Any failed request aborts the whole collection.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from config.settings import Settings
    from src.services.ingestion.data_gov_client import DataGovPage

logger = structlog.get_logger(__name__)

RawRecord = dict[str, Any]


class PageSource(Protocol):
    async def fetch_page(self, offset: int, limit: int) -> DataGovPage | None: ...


@dataclass(frozen=True)
class CollectionLimits:
    """Static knobs for one collection run."""

    target_state: str = "UTTAR PRADESH"
    page_size: int = 10
    max_pages: int = 1500
    min_records: int = 300
    min_combinations: int = 200
    page_delay_seconds: float = 0.1

    @classmethod
    def from_settings(cls, settings: Settings) -> CollectionLimits:
        return cls(
            target_state=settings.target_state,
            page_size=settings.page_size,
            max_pages=settings.max_pages,
            min_records=settings.min_records,
            min_combinations=settings.min_combinations,
            page_delay_seconds=settings.page_delay_seconds,
        )


def matches_state(record: RawRecord, target_state: str) -> bool:
    """Case-insensitive substring match of ``state_name`` against the target."""
    state = record.get("state_name")
    if not isinstance(state, str) or not state:
        return False
    return target_state.upper() in state.upper()


def _combination(record: RawRecord) -> tuple[Any, Any, Any]:
    return (record.get("district_name"), record.get("fin_year"), record.get("month"))


class RecordCollector:
    """Pages through a :class:`PageSource` until coverage is sufficient.

    Parameters
    ----------
    source:
        Anything with an async ``fetch_page(offset, limit)``; normally a
        :class:`DataGovClient`.
    limits:
        Page size, page budget, state filter, and coverage thresholds.
    """

    def __init__(self, source: PageSource, limits: CollectionLimits | None = None) -> None:
        self._source = source
        self._limits = limits or CollectionLimits()

    @property
    def limits(self) -> CollectionLimits:
        return self._limits

    async def collect(self) -> list[RawRecord] | None:
        """Collect matching records.

        Returns
        -------
        list[dict] | None
            The accumulated records for the target state, or ``None`` when
            nothing matched or a request failed.
        """
        limits = self._limits
        matched: list[RawRecord] = []
        combinations: set[tuple[Any, Any, Any]] = set()
        stop_reason = "max_pages"

        logger.info(
            "collector.start",
            target_state=limits.target_state,
            page_size=limits.page_size,
            max_pages=limits.max_pages,
        )

        for page_index in range(limits.max_pages):
            offset = page_index * limits.page_size
            page = await self._source.fetch_page(offset=offset, limit=limits.page_size)

            if page is None:
                logger.warning("collector.aborted", page=page_index + 1, offset=offset)
                return None

            if not page.records:
                stop_reason = "exhausted"
                break

            page_matches = [r for r in page.records if matches_state(r, limits.target_state)]
            matched.extend(page_matches)
            combinations.update(_combination(r) for r in page_matches)

            logger.debug(
                "collector.page_fetched",
                page=page_index + 1,
                offset=offset,
                page_matches=len(page_matches),
                total_matches=len(matched),
                combinations=len(combinations),
                available=page.total,
            )

            if len(matched) >= limits.min_records and len(combinations) >= limits.min_combinations:
                stop_reason = "coverage_reached"
                break

            if page_index + 1 < limits.max_pages and limits.page_delay_seconds > 0:
                await asyncio.sleep(limits.page_delay_seconds)

        logger.info(
            "collector.finished",
            reason=stop_reason,
            records=len(matched),
            combinations=len(combinations),
        )
        return matched or None
