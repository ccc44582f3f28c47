"""
Pytest configuration and shared fixtures for FocusFlow tests.
"""

from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from focusflow.core.controller import FocusFlowController
from focusflow.core.database import KeyValueStore
from focusflow.services.ai_service import ContentGenerator
from focusflow.services.data_export import BackupManager, SnapshotService
from focusflow.services.schemas import TaskDescriptor
from focusflow.utils.datetime_utils import to_millis

from tests.helpers import FixedClock, chunks


@pytest.fixture
def clock():
    """Fixed clock at 2024-03-15 09:00 local time."""
    return FixedClock(datetime(2024, 3, 15, 9, 0))


@pytest.fixture
def now_ms(clock):
    return to_millis(clock.now)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "focusflow.db"


@pytest.fixture
async def store(db_path):
    kv_store = KeyValueStore(db_path)
    yield kv_store
    await kv_store.close()


@pytest.fixture
def backup_manager(tmp_path):
    return BackupManager(tmp_path / "backups", max_backups=3)


@pytest.fixture
def generated_tasks():
    return [
        TaskDescriptor(text="Outline chapter one", priority="High", category="Writing"),
        TaskDescriptor(text="Read two articles", priority="Medium"),
        TaskDescriptor(text="Tidy desk", priority="Low"),
    ]


@pytest.fixture
def generator(generated_tasks):
    """ContentGenerator double with deterministic answers."""
    mock = AsyncMock(spec=ContentGenerator)
    mock.generate_daily_tasks.return_value = generated_tasks
    mock.generate_goal_strategy.return_value = "Small steps every day."
    mock.generate_daily_summary.return_value = "Great work today!"
    mock.generate_psycho_profile.return_value = None
    mock.suggest_rest.return_value = "Stretch your arms."
    mock.stream_coach_response.side_effect = lambda history, context: chunks("You ", "got ", "this!")
    return mock


@pytest.fixture
def controller(store, generator, clock, backup_manager):
    return FocusFlowController(
        store=store,
        generator=generator,
        snapshots=SnapshotService(store, backup_manager),
        clock=clock,
    )


@pytest.fixture
async def onboarded(controller):
    """Loaded controller with a user and no goal."""
    await controller.load()
    await controller.onboard("Alex")
    return controller
