# services/progress.py

"""
Показатели дневного прогресса для дашборда
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from focusflow.core.models import AppState, DailyPlan
from focusflow.utils.datetime_utils import from_millis, local_date_str

DAILY_POINTS_GOAL = 30
POINT_VALUES = {'High': 10, 'Medium': 5, 'Low': 2}

def progress_bar(percent: int, length: int = 12):
    """Генерирует текстовый progress bar (emoji/блоки)"""
    done = int(length * percent // 100)
    todo = length - done
    return "🟩" * done + "⬜️" * todo + f" {percent}%"

def tasks_progress_bar(done: int, total: int):
    percent = int((done / total) * 100) if total else 0
    return progress_bar(percent)

def streak_emoji(streak: int):
    if streak >= 30:
        return "🏆"
    elif streak >= 7:
        return "🔥"
    elif streak >= 3:
        return "✨"
    elif streak > 0:
        return "🔹"
    else:
        return "▫️"

def points_for(plan: Optional[DailyPlan]) -> int:
    if plan is None:
        return 0
    return sum(POINT_VALUES.get(task.effective_priority, 5) for task in plan.tasks if task.completed)

def progress_percent(points: int, goal: int = DAILY_POINTS_GOAL) -> float:
    return min(points / goal * 100, 100)

def motivational_message(points: int, goal: int = DAILY_POINTS_GOAL) -> str:
    if progress_percent(points, goal) >= 100:
        return "Goal achieved! Amazing work!"
    if points > 0:
        return f"You're {goal - points} points away from your goal. Keep going!"
    return "Complete your first task to earn points!"

@dataclass
class DailyProgress:
    """Сводка за день"""
    date: str
    points: int
    tasks_completed: int
    tasks_total: int
    focus_minutes: int
    streak: int
    goal_day: int

    @property
    def percent(self) -> float:
        return progress_percent(self.points)

    @property
    def message(self) -> str:
        return motivational_message(self.points)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date,
            'points': self.points,
            'points_goal': DAILY_POINTS_GOAL,
            'percent': round(self.percent, 1),
            'tasks_completed': self.tasks_completed,
            'tasks_total': self.tasks_total,
            'focus_minutes': self.focus_minutes,
            'streak': self.streak,
            'goal_day': self.goal_day,
            'message': self.message
        }

def daily_progress(state: AppState, now: datetime, tz_name: Optional[str] = None) -> DailyProgress:
    """Показатели на текущий локальный день"""
    today = local_date_str(now)
    plan = state.plan_for(today)
    focus_minutes = sum(
        session.duration for session in state.focus_sessions
        if local_date_str(from_millis(session.start_time, tz_name)) == today
    )
    return DailyProgress(
        date=today,
        points=points_for(plan),
        tasks_completed=plan.completed_count if plan else 0,
        tasks_total=len(plan.tasks) if plan else 0,
        focus_minutes=focus_minutes,
        streak=state.streak,
        goal_day=len(state.daily_plans)
    )
