from apscheduler.schedulers.asyncio import AsyncIOScheduler
import structlog

from classifieds.application.use_cases.expiration_sweeper import ExpirationSweeper, SweepReport
from classifieds.config import settings

logger = structlog.get_logger(__name__)

JOB_ID = "listing-expiration-sweep"


class SweepScheduler:
    """
    Runs the expiration sweep on a fixed interval.

    APScheduler's ``max_instances=1`` keeps timer-driven runs from stacking;
    the in-flight flag extends that to manual ``run_once()`` calls.
    """

    def __init__(
        self,
        sweeper: ExpirationSweeper,
        *,
        interval_minutes: int = settings.sweep_interval_minutes,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._sweeper = sweeper
        self._interval_minutes = interval_minutes
        self._scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self._in_flight = False

    @property
    def running(self) -> bool:
        return self._scheduler.running

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def start(self) -> None:
        if self._scheduler.running:
            return
        self._scheduler.add_job(
            self.run_once,
            "interval",
            minutes=self._interval_minutes,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("sweep_scheduler_started", interval_minutes=self._interval_minutes)

    def stop(self) -> None:
        if not self._scheduler.running:
            return
        self._scheduler.shutdown(wait=False)
        logger.info("sweep_scheduler_stopped")

    async def run_once(self) -> SweepReport | None:
        """Run one sweep now. Returns None if a sweep is already running."""
        if self._in_flight:
            logger.warning("expiration_sweep_skipped", reason="already_running")
            return None
        self._in_flight = True
        try:
            return await self._sweeper.sweep()
        finally:
            self._in_flight = False
