"""
Builders shared by FocusFlow tests.
"""

from datetime import datetime, timedelta

from focusflow.core.models import DailyPlan, Task


class FixedClock:
    """Controllable local clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


async def chunks(*parts):
    for part in parts:
        yield part


def make_task(text, completed=False, priority=None, task_id=None, created_at=1710000000000):
    return Task(
        id=task_id or f"task-{text.lower().replace(' ', '-')}",
        text=text,
        completed=completed,
        created_at=created_at,
        completed_at=created_at + 1000 if completed else None,
        priority=priority,
    )


def make_plan(date_str, *tasks):
    return DailyPlan(date=date_str, tasks=list(tasks))


async def seed(store, **slots):
    """Write raw slot values straight into the store."""
    for key, value in slots.items():
        await store.set(key, value)
