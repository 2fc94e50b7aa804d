"""District sync pipeline -- collect, transform, and upsert.

One :meth:`DistrictSyncPipeline.sync` run executes three strictly
sequential stages:

1. **Collect** -- page through data.gov.in for the target state
   (:class:`RecordCollector`).
2. **Transform** -- reduce records into deduplicated, sorted per-district
   series (:func:`transform_records`).
3. **Upsert** -- write each district into the store one at a time, in
   list order.  A failed write is logged and counted; the batch goes on.

Single-flight
-------------
The startup check, the periodic timer, and the admin endpoint all call
the same ``sync()``.  Only one run is ever in flight: a caller arriving
while a run is active awaits that run and receives its result instead of
starting a second, interleaving one.

Idempotency
-----------
Upserts replace whole documents keyed by slug, so repeating a sync over
the same upstream data leaves the store unchanged.  Districts missing
from a later fetch are never removed.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from src.services.ingestion.transform import transform_records

if TYPE_CHECKING:
    from src.models.district import District
    from src.services.district_store import DistrictStore
    from src.services.ingestion.collector import RecordCollector

logger = structlog.get_logger(__name__)

SOURCE_NAME = "data.gov.in"
NO_SOURCE = "none"


# ---------------------------------------------------------------------------
# SyncResult dataclass
# ---------------------------------------------------------------------------


@dataclass
class SyncResult:
    """Summary produced by one sync run."""

    source: str = NO_SOURCE
    count: int = 0
    upserted: int = 0
    failed: int = 0
    records_fetched: int = 0
    duration_seconds: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        """Serialise to a JSON-compatible dictionary."""
        return {
            "source": self.source,
            "count": self.count,
            "upserted": self.upserted,
            "failed": self.failed,
            "records_fetched": self.records_fetched,
            "duration_seconds": round(self.duration_seconds, 2),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class UpsertSummary:
    attempted: int = 0
    upserted: int = 0

    @property
    def failed(self) -> int:
        return self.attempted - self.upserted


# ---------------------------------------------------------------------------
# Upsert stage
# ---------------------------------------------------------------------------


async def upsert_districts(store: DistrictStore, districts: list[District]) -> UpsertSummary:
    """Write ``districts`` sequentially; per-entity failures are counted, not raised."""
    summary = UpsertSummary()
    for district in districts:
        summary.attempted += 1
        try:
            ok = await store.upsert(district)
        except Exception as exc:
            logger.error("sync.upsert_failed", slug=district.slug, error=str(exc))
            continue
        if ok:
            summary.upserted += 1
        else:
            logger.error("sync.upsert_rejected", slug=district.slug)
    return summary


# ---------------------------------------------------------------------------
# DistrictSyncPipeline
# ---------------------------------------------------------------------------


class DistrictSyncPipeline:
    """Composes collector, transformer, and store into a single ``sync()``.

    Parameters
    ----------
    collector:
        Source of raw records for the target state.
    store:
        District document store receiving the upserts.
    """

    def __init__(self, collector: RecordCollector, store: DistrictStore) -> None:
        self._collector = collector
        self._store = store
        self._inflight: asyncio.Task[SyncResult] | None = None
        self._last_result: SyncResult | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def last_result(self) -> SyncResult | None:
        """The result of the most recent completed sync."""
        return self._last_result

    @property
    def is_running(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def sync(self) -> SyncResult:
        """Run collect -> transform -> upsert, or join the run already in flight."""
        if self._closed:
            raise RuntimeError("sync pipeline is shut down")

        task = self._inflight
        if task is None or task.done():
            task = asyncio.create_task(self._run())
            self._inflight = task
            task.add_done_callback(self._clear_inflight)
        else:
            logger.info("sync.joining_inflight_run")

        # Shield so a cancelled caller does not cancel the shared run.
        return await asyncio.shield(task)

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Refuse new syncs and wait for the in-flight run to finish.

        A run still going after ``timeout`` seconds is cancelled, so the
        caller can safely close the store and HTTP client afterwards.
        """
        self._closed = True
        task = self._inflight
        if task is None or task.done():
            return

        logger.info("sync.shutdown_waiting", timeout_s=timeout)
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("sync.shutdown_cancelling")
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        except Exception:
            logger.error("sync.shutdown_run_failed", exc_info=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _clear_inflight(self, task: asyncio.Task[SyncResult]) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _run(self) -> SyncResult:
        start = time.monotonic()
        result = SyncResult()

        logger.info("sync.start")

        records = await self._collector.collect()
        result.records_fetched = len(records) if records else 0

        districts = transform_records(records)
        result.count = len(districts)

        if not districts:
            # Records that yield no district are reported like no fetch at all.
            logger.warning("sync.no_districts", records=result.records_fetched)
        else:
            result.source = SOURCE_NAME
            summary = await upsert_districts(self._store, districts)
            result.upserted = summary.upserted
            result.failed = summary.failed

        result.duration_seconds = time.monotonic() - start
        self._last_result = result

        logger.info(
            "sync.complete",
            source=result.source,
            count=result.count,
            upserted=result.upserted,
            failed=result.failed,
            records=result.records_fetched,
            duration_s=round(result.duration_seconds, 2),
        )
        return result
