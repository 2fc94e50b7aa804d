"""Tests for the sync pipeline: summary counts, upsert failures, single-flight."""

from __future__ import annotations

import asyncio

import pytest

from src.services.district_store import DistrictStore
from src.services.ingestion.pipeline import (
    DistrictSyncPipeline,
    SyncResult,
    upsert_districts,
)
from src.services.ingestion.transform import transform_records


class FakeCollector:
    """Returns canned records; optionally blocks until released."""

    def __init__(self, records, gate: asyncio.Event | None = None):
        self._records = records
        self._gate = gate
        self.calls = 0

    async def collect(self):
        self.calls += 1
        if self._gate is not None:
            await self._gate.wait()
        return self._records


class FlakyStore(DistrictStore):
    """In-memory store whose upsert fails for selected slugs."""

    __slots__ = ("failing", "written")

    def __init__(self, failing: set[str] | None = None):
        super().__init__(redis_url=None)
        self.failing = failing or set()
        self.written: list[str] = []

    async def upsert(self, district):
        if district.slug in self.failing:
            raise ConnectionError(f"write failed for {district.slug}")
        self.written.append(district.slug)
        return await super().upsert(district)


class RejectingStore(DistrictStore):
    """In-memory store that declines (returns False) for selected slugs."""

    __slots__ = ("rejecting",)

    def __init__(self, rejecting: set[str]):
        super().__init__(redis_url=None)
        self.rejecting = rejecting

    async def upsert(self, district):
        if district.slug in self.rejecting:
            return False
        return await super().upsert(district)


def _record(district: str, month: str = "April", metric: int = 100) -> dict:
    return {
        "state_name": "Uttar Pradesh",
        "district_name": district,
        "fin_year": "2023-2024",
        "month": month,
        "Total_Households_Worked": metric,
    }


SCENARIO = [
    _record("Lucknow", "April", 5000),
    _record("Lucknow", "April", 5200),
    _record("Lucknow", "May", 6000),
]


# ---------------------------------------------------------------------------
# SyncResult
# ---------------------------------------------------------------------------


class TestSyncResult:
    def test_defaults(self):
        r = SyncResult()
        assert r.source == "none"
        assert r.count == 0
        assert r.upserted == 0
        assert r.failed == 0

    def test_to_dict(self):
        r = SyncResult(source="data.gov.in", count=3, upserted=2, failed=1, duration_seconds=1.234)
        d = r.to_dict()
        assert d["source"] == "data.gov.in"
        assert d["count"] == 3
        assert d["upserted"] == 2
        assert d["failed"] == 1
        assert d["duration_seconds"] == 1.23
        assert "timestamp" in d


# ---------------------------------------------------------------------------
# upsert_districts
# ---------------------------------------------------------------------------


class TestUpsertDistricts:
    async def test_failures_counted_and_batch_continues(self):
        districts = transform_records([_record("Agra"), _record("Lucknow"), _record("Meerut")])
        store = FlakyStore(failing={"uttar-pradesh-lucknow"})

        summary = await upsert_districts(store, districts)

        assert summary.attempted == 3
        assert summary.upserted == 2
        assert summary.failed == 1
        assert store.written == ["uttar-pradesh-agra", "uttar-pradesh-meerut"]

    async def test_writes_in_list_order(self):
        districts = transform_records([_record("Meerut"), _record("Agra")])
        store = FlakyStore()
        await upsert_districts(store, districts)
        assert store.written == ["uttar-pradesh-meerut", "uttar-pradesh-agra"]

    async def test_rejected_upsert_counted_as_failed(self):
        districts = transform_records([_record("Agra"), _record("Lucknow")])
        store = RejectingStore(rejecting={"uttar-pradesh-agra"})

        summary = await upsert_districts(store, districts)

        assert summary.upserted == 1
        assert summary.failed == 1
        assert await store.get("uttar-pradesh-agra") is None
        assert await store.get("uttar-pradesh-lucknow") is not None


# ---------------------------------------------------------------------------
# DistrictSyncPipeline
# ---------------------------------------------------------------------------


class TestDistrictSyncPipeline:
    async def test_scenario_end_to_end(self):
        store = DistrictStore(redis_url=None)
        pipeline = DistrictSyncPipeline(collector=FakeCollector(SCENARIO), store=store)

        result = await pipeline.sync()

        assert result.source == "data.gov.in"
        assert result.count == 1
        assert result.upserted == 1
        assert result.records_fetched == 3
        stored = await store.get("uttar-pradesh-lucknow")
        assert [(p.month, p.metric) for p in stored.series] == [
            ("2023-2024-April", 5200),
            ("2023-2024-May", 6000),
        ]
        assert pipeline.last_result is result

    async def test_no_data(self):
        store = DistrictStore(redis_url=None)
        pipeline = DistrictSyncPipeline(collector=FakeCollector(None), store=store)

        result = await pipeline.sync()

        assert result.source == "none"
        assert result.count == 0
        assert result.upserted == 0
        assert await store.count() == 0

    async def test_empty_record_list(self):
        pipeline = DistrictSyncPipeline(
            collector=FakeCollector([]), store=DistrictStore(redis_url=None)
        )
        result = await pipeline.sync()
        assert result.count == 0
        assert result.source == "none"

    async def test_records_without_districts_report_no_source(self):
        records = [_record("Agra", metric=0), {"state_name": "Uttar Pradesh", "month": "May"}]
        pipeline = DistrictSyncPipeline(
            collector=FakeCollector(records), store=DistrictStore(redis_url=None)
        )

        result = await pipeline.sync()

        assert result.source == "none"
        assert result.count == 0
        assert result.records_fetched == 2

    async def test_partial_upsert_failure_reported(self):
        store = FlakyStore(failing={"uttar-pradesh-agra"})
        records = [_record("Agra"), _record("Lucknow")]
        pipeline = DistrictSyncPipeline(collector=FakeCollector(records), store=store)

        result = await pipeline.sync()

        assert result.count == 2
        assert result.upserted == 1
        assert result.failed == 1

    async def test_sync_is_idempotent(self):
        store = DistrictStore(redis_url=None)
        pipeline = DistrictSyncPipeline(collector=FakeCollector(SCENARIO), store=store)

        await pipeline.sync()
        first = await store.list_districts()
        await pipeline.sync()
        second = await store.list_districts()

        assert first == second

    async def test_disappeared_districts_are_kept(self):
        store = DistrictStore(redis_url=None)
        await DistrictSyncPipeline(
            collector=FakeCollector([_record("Agra")]), store=store
        ).sync()
        await DistrictSyncPipeline(
            collector=FakeCollector([_record("Lucknow")]), store=store
        ).sync()

        assert [d.slug for d in await store.list_districts()] == [
            "uttar-pradesh-agra",
            "uttar-pradesh-lucknow",
        ]

    async def test_concurrent_calls_share_one_run(self):
        gate = asyncio.Event()
        collector = FakeCollector(SCENARIO, gate=gate)
        pipeline = DistrictSyncPipeline(collector=collector, store=DistrictStore(redis_url=None))

        first = asyncio.create_task(pipeline.sync())
        second = asyncio.create_task(pipeline.sync())
        await asyncio.sleep(0)
        assert pipeline.is_running is True

        gate.set()
        results = await asyncio.gather(first, second)

        assert collector.calls == 1
        assert results[0] is results[1]
        assert pipeline.is_running is False

    async def test_sequential_calls_run_again(self):
        collector = FakeCollector(SCENARIO)
        pipeline = DistrictSyncPipeline(collector=collector, store=DistrictStore(redis_url=None))

        await pipeline.sync()
        await pipeline.sync()

        assert collector.calls == 2


# ---------------------------------------------------------------------------
# Shutdown
# ---------------------------------------------------------------------------


class TestPipelineShutdown:
    async def test_shutdown_waits_for_inflight_run(self):
        gate = asyncio.Event()
        store = DistrictStore(redis_url=None)
        pipeline = DistrictSyncPipeline(collector=FakeCollector(SCENARIO, gate=gate), store=store)

        caller = asyncio.create_task(pipeline.sync())
        await asyncio.sleep(0)
        assert pipeline.is_running is True

        stopping = asyncio.create_task(pipeline.shutdown(timeout=5))
        await asyncio.sleep(0)
        assert not stopping.done()

        gate.set()
        await stopping

        assert pipeline.is_running is False
        assert pipeline.last_result is not None
        assert pipeline.last_result.upserted == 1
        assert (await caller).upserted == 1
        assert await store.count() == 1

    async def test_shutdown_cancels_run_after_timeout(self):
        gate = asyncio.Event()
        store = DistrictStore(redis_url=None)
        pipeline = DistrictSyncPipeline(collector=FakeCollector(SCENARIO, gate=gate), store=store)

        caller = asyncio.create_task(pipeline.sync())
        await asyncio.sleep(0)

        await pipeline.shutdown(timeout=0.01)

        assert pipeline.is_running is False
        assert pipeline.last_result is None
        assert await store.count() == 0
        with pytest.raises(asyncio.CancelledError):
            await caller

    async def test_sync_refused_after_shutdown(self):
        collector = FakeCollector(SCENARIO)
        pipeline = DistrictSyncPipeline(collector=collector, store=DistrictStore(redis_url=None))

        await pipeline.shutdown()

        with pytest.raises(RuntimeError):
            await pipeline.sync()
        assert collector.calls == 0
