"""
Tests for the day-rollover scheduler (focusflow/services/scheduler.py).
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from focusflow.services.scheduler import ROLLOVER_JOB_ID, DayRolloverScheduler


@pytest.fixture
def controller():
    return SimpleNamespace(refresh=AsyncMock())


class TestDayRolloverScheduler:

    @pytest.mark.asyncio
    async def test_registers_job_after_midnight(self, controller):
        scheduler = DayRolloverScheduler(controller, timezone="Europe/Moscow", minute=5)
        scheduler.start()
        try:
            job = scheduler.scheduler.get_job(ROLLOVER_JOB_ID)
            assert job is not None
            assert job.next_run_time.hour == 0
            assert job.next_run_time.minute == 5
            assert scheduler.running
        finally:
            scheduler.shutdown()
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_rollover_refreshes_controller(self, controller):
        await DayRolloverScheduler(controller).rollover()
        controller.refresh.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rollover_errors_are_logged(self, controller):
        controller.refresh.side_effect = RuntimeError("boom")
        await DayRolloverScheduler(controller).rollover()

    def test_from_config(self, controller):
        app_config = SimpleNamespace(scheduler=SimpleNamespace(timezone=None, rollover_minute=3))
        scheduler = DayRolloverScheduler.from_config(controller, app_config)

        assert scheduler.timezone is None
        assert scheduler.minute == 3
