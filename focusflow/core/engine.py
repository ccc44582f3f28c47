#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
FocusFlow - Derived State Engine
Пересчет серии (streak) и решение о генерации плана на сегодня

Все функции чистые: принимают модели и текущую дату, возвращают новые
значения и ничего не мутируют. Даты сравниваются только как строки
YYYY-MM-DD: лексикографический порядок совпадает с хронологическим.
"""

from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional
import logging

from focusflow.core.models import AppState, DailyPlan, Task, TaskPriority

logger = logging.getLogger(__name__)

RECENT_PLANS_WINDOW = 3

@dataclass
class ProgressContext:
    """Контекст прогресса для генерации задач"""
    day_number: int
    recent_completed_tasks: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'dayNumber': self.day_number,
            'recentCompletedTasks': list(self.recent_completed_tasks)
        }

@dataclass
class GenerationRequest:
    """Запрос на генерацию плана для конкретной даты"""
    date: str
    context: ProgressContext

@dataclass
class Transition:
    """Результат одного шага пересчета производного состояния"""
    state: AppState
    streak_changed: bool = False
    login_changed: bool = False
    generation: Optional[GenerationRequest] = None

# ===== STREAK =====

def last_completed_plan(plans: Iterable[DailyPlan]) -> Optional[DailyPlan]:
    """План с наибольшей датой, в котором выполнена хотя бы одна задача"""
    latest = None
    for plan in plans:
        if plan.has_completed and (latest is None or plan.date > latest.date):
            latest = plan
    return latest

def recompute_streak(plans: List[DailyPlan], streak: int, yesterday: str) -> int:
    """Детектор сброса серии; никогда не увеличивает значение"""
    latest = last_completed_plan(plans)
    if latest is not None:
        if latest.date < yesterday:
            return 0
        return streak
    if streak != 0:
        return 0
    return streak

def streak_after_toggle(plans: List[DailyPlan], today: str, yesterday: str,
                        task_id: str, streak: int) -> int:
    """Новое значение серии при переключении задачи сегодняшнего плана.

    Меняется только при первом выполнении задачи за день: если вчера была
    выполнена хотя бы одна задача, серия продолжается (+1), иначе начинается
    заново с 1.
    """
    todays_plan = find_plan(plans, today)
    if todays_plan is None:
        return streak

    task = todays_plan.find_task(task_id)
    if task is None or task.completed:
        return streak

    if todays_plan.has_completed:
        return streak

    yesterdays_plan = find_plan(plans, yesterday)
    if yesterdays_plan is not None and yesterdays_plan.has_completed:
        return streak + 1
    return 1

# ===== PLANS =====

def find_plan(plans: Iterable[DailyPlan], date_str: str) -> Optional[DailyPlan]:
    for plan in plans:
        if plan.date == date_str:
            return plan
    return None

def build_progress_context(plans: List[DailyPlan]) -> ProgressContext:
    """Номер дня и выполненные задачи трех последних добавленных планов"""
    recent = plans[-RECENT_PLANS_WINDOW:]
    recent_completed = [text for plan in recent for text in plan.completed_texts]
    return ProgressContext(day_number=len(plans) + 1, recent_completed_tasks=recent_completed)

def build_plan(date_str: str, descriptors: Iterable, now_ms: int) -> DailyPlan:
    """Новый план из описаний задач (text, priority, category)"""
    tasks = [
        Task.create(
            text=descriptor.text,
            priority=descriptor.priority,
            category=descriptor.category,
            created_at=now_ms
        )
        for descriptor in descriptors
    ]
    return DailyPlan(date=date_str, tasks=tasks)

def upsert_plan(plans: List[DailyPlan], plan: DailyPlan) -> List[DailyPlan]:
    """Добавление плана с предварительным удалением плана на ту же дату"""
    return [p for p in plans if p.date != plan.date] + [plan]

def replace_plan_tasks(plans: List[DailyPlan], date_str: str, tasks: List[Task]) -> List[DailyPlan]:
    return [replace(p, tasks=tasks) if p.date == date_str else p for p in plans]

def toggle_task(plans: List[DailyPlan], date_str: str, task_id: str, now_ms: int) -> List[DailyPlan]:
    plan = find_plan(plans, date_str)
    if plan is None:
        return plans
    tasks = [task.toggled(now_ms) if task.id == task_id else task for task in plan.tasks]
    return replace_plan_tasks(plans, date_str, tasks)

def add_task(plans: List[DailyPlan], date_str: str, task: Task) -> List[DailyPlan]:
    """Добавление задачи; план на дату создается, если его еще нет"""
    plan = find_plan(plans, date_str)
    if plan is None:
        return plans + [DailyPlan(date=date_str, tasks=[task])]
    return replace_plan_tasks(plans, date_str, plan.tasks + [task])

def delete_task(plans: List[DailyPlan], date_str: str, task_id: str) -> List[DailyPlan]:
    plan = find_plan(plans, date_str)
    if plan is None:
        return plans
    return replace_plan_tasks(plans, date_str, [task for task in plan.tasks if task.id != task_id])

def group_by_priority(plan: Optional[DailyPlan]) -> dict:
    """Задачи плана по приоритетам; без приоритета считаются Medium"""
    groups = {priority.value: [] for priority in TaskPriority}
    if plan is None:
        return groups
    for task in plan.tasks:
        if task.is_deleting:
            continue
        groups[task.effective_priority].append(task)
    return groups

# ===== GENERATION GATE =====

def plan_generation(state: AppState, today: str) -> Optional[GenerationRequest]:
    """Нужна ли генерация плана на сегодня (без учета гейта lastLogin)"""
    if state.goal is None:
        return None
    if find_plan(state.daily_plans, today) is not None:
        return None
    return GenerationRequest(date=today, context=build_progress_context(state.daily_plans))

# ===== TRANSITION =====

def transition(state: AppState, today: str, yesterday: str) -> Transition:
    """Один шаг пересчета после принятой мутации.

    1. Пересчет сброса серии по истории планов.
    2. Гейт генерации: не чаще раза в день. Если гейт открыт, он
       потребляется (lastLogin = today) независимо от того, будет ли
       запрошена генерация и чем она закончится.
    """
    next_state = state
    streak = recompute_streak(state.daily_plans, state.streak, yesterday)
    streak_changed = streak != state.streak
    if streak_changed:
        logger.info(f"Streak reset from {state.streak} to {streak}")
        next_state = replace(next_state, streak=streak)

    if state.last_login == today:
        return Transition(state=next_state, streak_changed=streak_changed)

    generation = plan_generation(next_state, today)
    next_state = replace(next_state, last_login=today)
    return Transition(
        state=next_state,
        streak_changed=streak_changed,
        login_changed=True,
        generation=generation
    )
