"""
Expiry reaper: periodic sweeps that reclaim lapsed holds and pending bookings.

Two independent jobs run on the same interval:
  release_expired_holds     HELD seats past held_until -> AVAILABLE
  expire_pending_bookings   PENDING bookings past expires_at -> EXPIRED

They are not linked transactionally. Within one interval a booking may
already be EXPIRED while its seats are still HELD, or the other way around.
Both sweeps are idempotent and every write they make is status-guarded, so
the window closes on the next tick.

Each job has an in-process reentrancy flag: if a tick is still running when
the next one fires, the new one is skipped. This is not a distributed lock.
Running several app instances just means several sweeps racing on guarded
UPDATEs, which is safe.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from boxoffice.core.config import get_settings
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_sweep
from boxoffice.services import booking_service, cache_service, hold_service

logger = get_logger(__name__)
settings = get_settings()

SweepFn = Callable[[AsyncSession], Awaitable[int]]

HOLD_SWEEP = "release_expired_holds"
BOOKING_SWEEP = "expire_pending_bookings"


class ExpiryReaper:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        interval_seconds: Optional[float] = None,
    ):
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.REAPER_INTERVAL_SECONDS
        self._jobs: dict[str, SweepFn] = {
            HOLD_SWEEP: hold_service.release_expired_holds,
            BOOKING_SWEEP: booking_service.expire_pending_bookings,
        }
        self._running: dict[str, bool] = {name: False for name in self._jobs}
        self._tasks: list[asyncio.Task] = []

    @property
    def jobs(self) -> list[str]:
        return list(self._jobs)

    def is_running(self, job: str) -> bool:
        return self._running[job]

    async def run_job(self, job: str) -> Optional[int]:
        """
        Run one sweep now. Returns the number of rows reclaimed, or None if a
        previous run of the same job is still in progress.
        """
        if job not in self._jobs:
            raise ValueError(f"Unknown sweep job: {job}")

        with structlog.contextvars.bound_contextvars(job=job):
            if self._running[job]:
                record_sweep(job, "skipped")
                logger.info("sweep_skipped", reason="previous_run_in_progress")
                return None

            self._running[job] = True
            try:
                async with self._session_factory() as db:
                    count = await self._jobs[job](db)
            finally:
                self._running[job] = False

            record_sweep(job, "ran")
            if count:
                logger.info("sweep_completed", reclaimed=count)
                if job == HOLD_SWEEP:
                    await cache_service.invalidate_all_seat_maps()
            return count

    async def run_all(self) -> dict[str, Optional[int]]:
        return {job: await self.run_job(job) for job in self._jobs}

    async def _loop(self, job: str) -> None:
        while True:
            try:
                await self.run_job(job)
            except Exception:
                # Keep the loop alive; the next tick retries
                record_sweep(job, "failed")
                logger.exception("sweep_failed", job=job)
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._loop(job), name=f"reaper:{job}") for job in self._jobs
        ]
        logger.info("reaper_started", jobs=self.jobs, interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("reaper_stopped")
