"""Tests for the district store (in-memory backend + Redis facade with re-probe)."""

from __future__ import annotations

from unittest.mock import AsyncMock

import orjson
import pytest

from src.models.district import District, SeriesPoint
from src.services.district_store import (
    DistrictStore,
    InMemoryDistrictBackend,
    StoreUnavailableError,
)


def _district(slug_suffix: str = "lucknow", series=None, bbox=None) -> District:
    return District(
        state="Uttar Pradesh",
        district=slug_suffix.replace("-", " ").title(),
        slug=f"uttar-pradesh-{slug_suffix}",
        bbox=bbox if bbox is not None else [],
        series=(
            series if series is not None else [SeriesPoint(month="2023-2024-April", metric=5200)]
        ),
    )


class FakeRedis:
    """Stands in for RedisDistrictBackend with a plain dict."""

    def __init__(self, reachable: bool = True):
        self.data: dict[str, bytes] = {}
        self.reachable = reachable
        self.closed = False

    async def ping(self) -> bool:
        return self.reachable

    async def put(self, slug, document):
        self.data[slug] = document

    async def get(self, slug):
        return self.data.get(slug)

    async def all(self):
        return list(self.data.values())

    async def count(self):
        return len(self.data)

    async def close(self):
        self.closed = True


def _store_with(fake: FakeRedis) -> DistrictStore:
    store = DistrictStore(redis_url=None)
    store._redis = fake
    return store


# -----------------------------------------------------------------------
# InMemoryDistrictBackend
# -----------------------------------------------------------------------


class TestInMemoryDistrictBackend:
    async def test_put_get(self):
        backend = InMemoryDistrictBackend()
        await backend.put("a", b"1")
        assert await backend.get("a") == b"1"
        assert await backend.get("missing") is None

    async def test_put_replaces(self):
        backend = InMemoryDistrictBackend()
        await backend.put("a", b"1")
        await backend.put("a", b"2")
        assert await backend.all() == [b"2"]
        assert await backend.count() == 1


# -----------------------------------------------------------------------
# DistrictStore
# -----------------------------------------------------------------------


class TestDistrictStore:
    async def test_upsert_then_get(self):
        store = DistrictStore(redis_url=None)
        district = _district(bbox=[80.8, 26.7, 81.2, 27.1])

        assert await store.upsert(district) is True
        loaded = await store.get(district.slug)

        assert loaded == district
        assert store.backend_name == "memory"

    async def test_get_missing(self):
        store = DistrictStore(redis_url=None)
        assert await store.get("nope") is None

    async def test_upsert_replaces_whole_document(self):
        store = DistrictStore(redis_url=None)
        await store.upsert(
            _district(
                bbox=[80.8, 26.7, 81.2, 27.1],
                series=[
                    SeriesPoint(month="2023-2024-April", metric=1),
                    SeriesPoint(month="2023-2024-May", metric=2),
                ],
            )
        )
        await store.upsert(_district(series=[SeriesPoint(month="2024-2025-April", metric=9)]))

        loaded = await store.get("uttar-pradesh-lucknow")
        assert loaded.bbox == []
        assert [p.month for p in loaded.series] == ["2024-2025-April"]
        assert await store.count() == 1

    async def test_list_sorted_by_slug_and_summaries(self):
        store = DistrictStore(redis_url=None)
        for name in ("varanasi", "agra", "lucknow"):
            await store.upsert(_district(name))

        assert [d.slug for d in await store.list_districts()] == [
            "uttar-pradesh-agra",
            "uttar-pradesh-lucknow",
            "uttar-pradesh-varanasi",
        ]
        summaries = await store.list_summaries()
        assert set(summaries[0].model_dump()) == {"state", "district", "slug", "bbox"}

    async def test_uses_redis_when_reachable(self):
        fake = FakeRedis()
        store = _store_with(fake)

        await store.upsert(_district())

        assert store.backend_name == "redis"
        assert "uttar-pradesh-lucknow" in fake.data
        assert orjson.loads(fake.data["uttar-pradesh-lucknow"])["state"] == "Uttar Pradesh"
        assert await store.count() == 1

    async def test_unreachable_redis_raises_and_writes_nowhere(self):
        fake = FakeRedis(reachable=False)
        store = _store_with(fake)

        with pytest.raises(StoreUnavailableError):
            await store.upsert(_district())

        assert store.backend_name == "redis (unavailable)"
        assert fake.data == {}
        assert await store._memory.count() == 0

    async def test_no_reping_before_interval(self):
        fake = FakeRedis(reachable=False)
        store = _store_with(fake)
        store._reprobe_seconds = 3600

        with pytest.raises(StoreUnavailableError):
            await store.count()
        fake.reachable = True
        with pytest.raises(StoreUnavailableError):
            await store.count()

    async def test_recovers_after_read_failure(self):
        fake = FakeRedis()
        store = _store_with(fake)
        store._reprobe_seconds = 0
        await store.upsert(_district())

        original_get = fake.get
        fake.get = AsyncMock(side_effect=ConnectionError("redis gone"))
        with pytest.raises(StoreUnavailableError):
            await store.get("uttar-pradesh-lucknow")
        assert store.backend_name == "redis (unavailable)"

        fake.get = original_get
        assert [d.slug for d in await store.list_districts()] == ["uttar-pradesh-lucknow"]
        assert store.backend_name == "redis"

        await store.upsert(_district("agra"))
        assert set(fake.data) == {"uttar-pradesh-lucknow", "uttar-pradesh-agra"}
        assert await store._memory.count() == 0

    async def test_write_failure_raises_unavailable(self):
        fake = FakeRedis()
        fake.put = AsyncMock(side_effect=ConnectionError("redis gone"))
        store = _store_with(fake)

        with pytest.raises(StoreUnavailableError):
            await store.upsert(_district())
        assert await store._memory.count() == 0

    async def test_ping(self):
        store = DistrictStore(redis_url=None)
        assert await store.ping() is True

    async def test_ping_false_while_redis_down(self):
        store = _store_with(FakeRedis(reachable=False))
        assert await store.ping() is False

    async def test_close_closes_redis(self):
        fake = FakeRedis()
        store = _store_with(fake)
        await store.close()
        assert fake.closed is True
