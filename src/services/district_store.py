"""District document store backed by Redis.

Each district is one orjson-encoded document keyed by its slug.  Writes
replace the whole document, so an upsert fully overwrites ``state``,
``district``, ``bbox`` and ``series`` for that slug.

Redis is the system of record.  While it is unreachable every operation
raises :class:`StoreUnavailableError` (reads are never answered from a
stale or empty local copy, writes are never diverted), and Redis is
re-probed after ``reprobe_seconds`` so the store heals on its own.  The
in-memory backend is used only when no Redis URL is configured
(development and tests).
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import Any, Protocol, runtime_checkable

import orjson
import structlog

from src.models.district import District, DistrictSummary

logger = structlog.get_logger(__name__)


class StoreUnavailableError(Exception):
    """Raised when the configured Redis backend cannot serve a request."""


# ---------------------------------------------------------------------------
# Backend protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class DistrictBackend(Protocol):
    """Async key -> document backend interface."""

    async def put(self, slug: str, document: bytes) -> None: ...

    async def get(self, slug: str) -> bytes | None: ...

    async def all(self) -> list[bytes]: ...

    async def count(self) -> int: ...


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


class RedisDistrictBackend:
    """Stores every district in a single Redis hash (slug -> document)."""

    __slots__ = ("_hash_key", "_pool", "_redis")

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        namespace: str = "",
        max_connections: int = 20,
    ) -> None:
        import redis.asyncio as aioredis

        self._pool = aioredis.ConnectionPool.from_url(
            url,
            max_connections=max_connections,
            decode_responses=False,
        )
        self._redis = aioredis.Redis(connection_pool=self._pool)
        self._hash_key = f"{namespace}districts"

    async def put(self, slug: str, document: bytes) -> None:
        await self._redis.hset(self._hash_key, slug, document)

    async def get(self, slug: str) -> bytes | None:
        return await self._redis.hget(self._hash_key, slug)

    async def all(self) -> list[bytes]:
        return list(await self._redis.hvals(self._hash_key))

    async def count(self) -> int:
        return int(await self._redis.hlen(self._hash_key))

    async def close(self) -> None:
        await self._redis.aclose()
        await self._pool.aclose()

    async def ping(self) -> bool:
        """Return *True* if the Redis server is reachable."""
        try:
            return bool(await self._redis.ping())
        except Exception:
            return False


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class InMemoryDistrictBackend:
    """Dict-backed store used when no Redis URL is configured."""

    __slots__ = ("_data", "_lock")

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._lock = asyncio.Lock()

    async def put(self, slug: str, document: bytes) -> None:
        async with self._lock:
            self._data[slug] = document

    async def get(self, slug: str) -> bytes | None:
        async with self._lock:
            return self._data.get(slug)

    async def all(self) -> list[bytes]:
        async with self._lock:
            return list(self._data.values())

    async def count(self) -> int:
        async with self._lock:
            return len(self._data)


# ---------------------------------------------------------------------------
# DistrictStore -- public API
# ---------------------------------------------------------------------------


class DistrictStore:
    """Upsert-by-slug facade over Redis (or memory when Redis is not configured).

    Parameters
    ----------
    redis_url:
        Redis connection string.  Pass *None* to use the in-memory backend.
    namespace:
        Prefix for the Redis hash key (e.g. ``"mgnrega:"``).
    reprobe_seconds:
        Minimum delay before pinging Redis again after it failed.
    """

    __slots__ = (
        "_memory",
        "_next_probe_at",
        "_redis",
        "_redis_available",
        "_reprobe_seconds",
    )

    def __init__(
        self,
        *,
        redis_url: str | None = "redis://localhost:6379/0",
        namespace: str = "",
        reprobe_seconds: float = 5.0,
    ) -> None:
        self._memory = InMemoryDistrictBackend()
        self._redis: RedisDistrictBackend | None = None
        self._redis_available: bool = False
        self._next_probe_at: float = 0.0
        self._reprobe_seconds = reprobe_seconds

        if redis_url is not None:
            self._redis = RedisDistrictBackend(url=redis_url, namespace=namespace)

    # -- Internal helpers ------------------------------------------------------

    def _mark_unavailable(self) -> None:
        self._redis_available = False
        self._next_probe_at = time.monotonic() + self._reprobe_seconds

    async def _active_backend(self) -> DistrictBackend:
        """Return the backend to use, re-pinging Redis when a probe is due."""
        if self._redis is None:
            return self._memory

        if not self._redis_available:
            if time.monotonic() < self._next_probe_at:
                raise StoreUnavailableError("redis unavailable")
            if await self._redis.ping():
                self._redis_available = True
                logger.info("store.redis_connected")
            else:
                self._mark_unavailable()
                logger.warning("store.redis_unreachable", retry_in_s=self._reprobe_seconds)
                raise StoreUnavailableError("redis unreachable")

        return self._redis

    async def _call(self, method: str, *args: Any) -> Any:
        backend = await self._active_backend()
        try:
            return await getattr(backend, method)(*args)
        except Exception as exc:
            if backend is not self._redis:
                raise
            logger.warning("store.redis_op_failed", method=method, error=str(exc))
            self._mark_unavailable()
            raise StoreUnavailableError(f"redis {method} failed: {exc}") from exc

    @property
    def backend_name(self) -> str:
        if self._redis is None:
            return "memory"
        return "redis" if self._redis_available else "redis (unavailable)"

    # -- Public API ------------------------------------------------------------

    async def upsert(self, district: District) -> bool:
        """Replace-or-insert the full document for ``district.slug``.

        Raises :class:`StoreUnavailableError` so callers can count the failure.
        """
        document = orjson.dumps(district.model_dump())
        await self._call("put", district.slug, document)
        return True

    async def get(self, slug: str) -> District | None:
        raw: bytes | None = await self._call("get", slug)
        if raw is None:
            return None
        return District.model_validate(orjson.loads(raw))

    async def list_districts(self) -> list[District]:
        """Return every stored district, ordered by slug."""
        raws: list[bytes] = await self._call("all")
        districts = [District.model_validate(orjson.loads(raw)) for raw in raws]
        districts.sort(key=lambda d: d.slug)
        return districts

    async def list_summaries(self) -> list[DistrictSummary]:
        return [d.summary() for d in await self.list_districts()]

    async def count(self) -> int:
        return int(await self._call("count"))

    async def ping(self) -> bool:
        """Return *True* if the active backend answers a read."""
        try:
            await self.count()
        except StoreUnavailableError:
            return False
        return True

    # -- Lifecycle -------------------------------------------------------------

    async def close(self) -> None:
        """Cleanly shut down the Redis connection pool (if any)."""
        if self._redis is not None:
            with contextlib.suppress(Exception):
                await self._redis.close()
