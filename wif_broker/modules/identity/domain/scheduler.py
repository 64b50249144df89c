from datetime import datetime, timezone
from typing import Awaitable, Callable

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = structlog.get_logger()

JOB_ID = "refresh-credentials"


class RefreshScheduler:
    """Runs the periodic expiry check on a fixed interval via APScheduler."""

    def __init__(self, job: Callable[[], Awaitable[bool]], interval_minutes: int = 10):
        self.scheduler = AsyncIOScheduler()
        self.job = job
        self.interval_minutes = interval_minutes
        self._last_run_time: str | None = None
        self._last_run_resynced: bool | None = None

    async def run_once(self) -> bool:
        resynced = await self.job()
        self._last_run_time = datetime.now(timezone.utc).isoformat()
        self._last_run_resynced = resynced
        return resynced

    def start(self) -> None:
        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info("scheduler_started", job=JOB_ID, interval_minutes=self.interval_minutes)

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("scheduler_stopped")

    def get_status(self) -> dict:
        return {
            "running": self.scheduler.running,
            "interval_minutes": self.interval_minutes,
            "last_run_time": self._last_run_time,
            "last_run_resynced": self._last_run_resynced,
        }
