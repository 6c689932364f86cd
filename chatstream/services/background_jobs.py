"""
Background job runner.

One-off jobs (attachment extraction) are scheduled on an in-process
APScheduler with a `date` trigger so request handlers can return
immediately. When the scheduler is not running (test environment) jobs
are awaited inline.
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Any, Awaitable, Callable, Optional
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from chatstream.core.config import get_settings
from chatstream.core.logger import logger
from chatstream.utils.datetime_utils import now_utc


class BackgroundJobRunner:
    """In-process runner for fire-and-forget jobs."""

    def __init__(self):
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def start(self):
        """Start the scheduler."""
        settings = get_settings()

        # Jobs run inline under test
        if settings.is_test:
            logger.info("Background job runner disabled in test environment")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.start()
        logger.info("Background job runner started")

    async def stop(self):
        """Stop the scheduler."""
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Background job runner stopped")

    async def submit(
        self,
        name: str,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> str:
        """Schedule `func(*args)` to run once, as soon as possible."""
        job_id = f"{name}-{uuid4().hex[:12]}"
        if not self.running:
            await self._run(job_id, func, *args)
            return job_id

        self._scheduler.add_job(
            self._run,
            DateTrigger(run_date=now_utc() + timedelta(milliseconds=10)),
            args=[job_id, func, *args],
            id=job_id,
            name=name,
            misfire_grace_time=None,
        )
        logger.info(f"Scheduled background job {job_id}")
        return job_id

    async def _run(self, job_id: str, func: Callable[..., Awaitable[Any]], *args: Any) -> None:
        try:
            await func(*args)
            logger.info(f"Background job {job_id} completed")
        except Exception as e:
            logger.error(f"Background job {job_id} failed: {e}")


@lru_cache()
def get_background_job_runner() -> BackgroundJobRunner:
    return BackgroundJobRunner()
