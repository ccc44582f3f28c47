"""
Tests for the focus timer (focusflow/services/timer_service.py).
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from focusflow.services.timer_service import FocusTimer


class ManualClock:
    """Wall clock in milliseconds that only moves when told to."""

    def __init__(self, value):
        self.value = value

    def __call__(self):
        return self.value

    def jump(self, ms):
        self.value += ms


@pytest.fixture
def wall(now_ms):
    return ManualClock(now_ms)


class TestFocusTimer:

    def test_rejects_non_positive_duration(self, onboarded):
        with pytest.raises(ValueError):
            FocusTimer(onboarded, 0)

    @pytest.mark.asyncio
    async def test_natural_end_after_suspension(self, onboarded, wall):
        on_finish = AsyncMock()
        timer = FocusTimer(onboarded, 25, on_finish=on_finish, clock=wall, tick=0.01)

        timer.start()
        assert timer.remaining_seconds() == 25 * 60

        # The host slept through the whole session
        wall.jump(25 * 60000)
        session = await asyncio.wait_for(timer.wait(), timeout=2)

        assert session.completed is True
        assert session.duration == 25
        assert timer.remaining_seconds() == 0
        assert onboarded.state.focus_sessions == [session]
        on_finish.assert_awaited_once_with(session)

    @pytest.mark.asyncio
    async def test_remaining_time_follows_wall_clock(self, onboarded, wall):
        timer = FocusTimer(onboarded, 10, clock=wall, tick=0.01)
        timer.start()

        wall.jump(4 * 60000 + 500)

        assert timer.remaining_seconds() == 5 * 60 + 59
        assert timer.is_running()
        await timer.stop()

    @pytest.mark.asyncio
    async def test_stop_saves_incomplete_session(self, onboarded, wall):
        timer = FocusTimer(onboarded, 25, clock=wall, tick=0.01)
        timer.start()

        wall.jump(2 * 60000 + 10000)
        session = await timer.stop()

        assert session.completed is False
        assert session.duration == 2
        assert not timer.is_running()
        assert onboarded.state.focus_sessions[0].id == session.id

    @pytest.mark.asyncio
    async def test_stop_before_one_minute_saves_nothing(self, onboarded, wall):
        timer = FocusTimer(onboarded, 25, clock=wall, tick=0.01)
        timer.start()

        wall.jump(30000)

        assert await timer.stop() is None
        assert onboarded.state.focus_sessions == []

    @pytest.mark.asyncio
    async def test_cannot_start_twice(self, onboarded, wall):
        timer = FocusTimer(onboarded, 5, clock=wall, tick=0.01)
        timer.start()

        with pytest.raises(RuntimeError):
            timer.start()
        await timer.stop()
