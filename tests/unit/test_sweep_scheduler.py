"""Unit tests for the periodic sweep scheduler."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from classifieds.application.use_cases.expiration_sweeper import SweepReport
from classifieds.infrastructure.scheduling.sweep_scheduler import JOB_ID, SweepScheduler


def _make_sweeper(report: SweepReport | None = None) -> MagicMock:
    sweeper = MagicMock()
    sweeper.sweep = AsyncMock(return_value=report or SweepReport(processed=2))
    return sweeper


def _make_scheduler(running: bool = False) -> MagicMock:
    scheduler = MagicMock()
    scheduler.running = running
    return scheduler


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_returns_sweep_report(self) -> None:
        sweeper = _make_sweeper()
        report = await SweepScheduler(sweeper, scheduler=_make_scheduler()).run_once()
        assert report.processed == 2
        sweeper.sweep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_overlapping_run_is_skipped(self) -> None:
        release = asyncio.Event()

        async def slow_sweep() -> SweepReport:
            await release.wait()
            return SweepReport(processed=1)

        sweeper = MagicMock()
        sweeper.sweep = AsyncMock(side_effect=slow_sweep)
        runner = SweepScheduler(sweeper, scheduler=_make_scheduler())

        first = asyncio.create_task(runner.run_once())
        await asyncio.sleep(0)
        assert runner.in_flight is True

        second = await runner.run_once()
        release.set()
        report = await first

        assert second is None
        assert report.processed == 1
        assert runner.in_flight is False
        assert sweeper.sweep.await_count == 1

    @pytest.mark.asyncio
    async def test_flag_cleared_after_failure(self) -> None:
        sweeper = MagicMock()
        sweeper.sweep = AsyncMock(side_effect=RuntimeError("boom"))
        runner = SweepScheduler(sweeper, scheduler=_make_scheduler())

        with pytest.raises(RuntimeError):
            await runner.run_once()

        assert runner.in_flight is False


class TestStartStop:
    def test_start_registers_single_instance_job(self) -> None:
        scheduler = _make_scheduler()
        runner = SweepScheduler(_make_sweeper(), interval_minutes=15, scheduler=scheduler)

        runner.start()

        scheduler.add_job.assert_called_once()
        args, kwargs = scheduler.add_job.call_args
        assert args == (runner.run_once, "interval")
        assert kwargs["minutes"] == 15
        assert kwargs["id"] == JOB_ID
        assert kwargs["max_instances"] == 1
        assert kwargs["coalesce"] is True
        scheduler.start.assert_called_once()

    def test_start_is_idempotent(self) -> None:
        scheduler = _make_scheduler(running=True)
        SweepScheduler(_make_sweeper(), scheduler=scheduler).start()
        scheduler.add_job.assert_not_called()

    def test_stop_shuts_down_without_waiting(self) -> None:
        scheduler = _make_scheduler(running=True)
        SweepScheduler(_make_sweeper(), scheduler=scheduler).stop()
        scheduler.shutdown.assert_called_once_with(wait=False)

    def test_stop_when_not_running(self) -> None:
        scheduler = _make_scheduler()
        SweepScheduler(_make_sweeper(), scheduler=scheduler).stop()
        scheduler.shutdown.assert_not_called()
