"""Background trigger for the district sync pipeline.

Runs in the same event loop as the FastAPI application:

- at start-up, syncs once if the store holds no districts;
- afterwards, syncs every ``sync_interval_hours``.

The admin endpoint triggers the same ``sync()`` on demand; overlapping
triggers share one run through the pipeline's single-flight guard.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from src.services.district_store import DistrictStore
    from src.services.ingestion.pipeline import DistrictSyncPipeline, SyncResult

logger = structlog.get_logger(__name__)


class SyncScheduler:
    """Startup check plus fixed-interval timer around ``pipeline.sync()``.

    Parameters
    ----------
    pipeline:
        The :class:`DistrictSyncPipeline` to execute.
    store:
        Store consulted by the startup emptiness check.
    interval_hours:
        Delay between scheduled runs.
    """

    def __init__(
        self,
        pipeline: DistrictSyncPipeline,
        store: DistrictStore,
        interval_hours: float = 6,
    ) -> None:
        self._pipeline = pipeline
        self._store = store
        self._interval_seconds = interval_hours * 3600
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._running = False
        self._last_run: datetime | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        """Whether the background scheduler loop is currently active."""
        return self._running

    @property
    def last_run(self) -> datetime | None:
        return self._last_run

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Spawn the background loop as an ``asyncio.Task``."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.start_background_scheduler())

    async def start_background_scheduler(self) -> None:
        """Run the startup check, then sync forever at the configured interval."""
        self._running = True
        logger.info("scheduler.background_started", interval_s=self._interval_seconds)

        try:
            await self._initial_sync_if_empty()

            while self._running:
                await asyncio.sleep(self._interval_seconds)
                if not self._running:
                    break
                logger.info("scheduler.triggering_sync")
                await self._safe_run()

        except asyncio.CancelledError:
            logger.info("scheduler.background_cancelled")
        except Exception:
            logger.error("scheduler.background_error", exc_info=True)
        finally:
            self._running = False
            logger.info("scheduler.background_stopped")

    async def _initial_sync_if_empty(self) -> None:
        try:
            count = await self._store.count()
        except Exception:
            logger.error("scheduler.store_unreachable", exc_info=True)
            return

        if count == 0:
            logger.info("scheduler.store_empty_initial_sync")
            await self._safe_run()
        else:
            logger.info(
                "scheduler.store_populated",
                districts=count,
                next_sync_in_s=self._interval_seconds,
            )

    async def _safe_run(self) -> SyncResult | None:
        """Execute one sync, logging instead of raising on failure."""
        try:
            result = await self._pipeline.sync()
        except Exception:
            logger.error("scheduler.run_failed", exc_info=True)
            return None

        self._last_run = datetime.now(timezone.utc)
        return result

    # ------------------------------------------------------------------
    # On-demand execution
    # ------------------------------------------------------------------

    async def run_now(self) -> SyncResult | None:
        """Trigger a sync outside the timer (same code path as scheduled runs)."""
        logger.info("scheduler.manual_trigger")
        return await self._safe_run()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Stop the loop and wait (briefly) for the task to finish."""
        logger.info("scheduler.stopping")
        self._running = False

        if self._task is not None:
            self._task.cancel()
            try:
                await asyncio.wait_for(self._task, timeout=10.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass
            self._task = None

        logger.info("scheduler.stopped")
