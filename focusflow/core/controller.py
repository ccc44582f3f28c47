#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
FocusFlow - Application Controller
Единственный владелец состояния приложения

Каждая мутация проходит через одну точку: обновление агрегата в памяти,
запись затронутых слотов в хранилище, уведомление подписчиков, затем
пересчет производного состояния. После каждого await состояние
перечитывается из self.state: значения, захваченные до приостановки,
могли устареть.
"""

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import AsyncIterator, Callable, List, Optional
import logging

from focusflow.core import engine
from focusflow.core.database import KeyValueStore, StorageError
from focusflow.core.hydration import StateHydrator
from focusflow.core.models import (
    AppState, ChatMessage, FocusSession, Goal, PsychoProfile, Task, TaskPriority, User,
    validate_text,
    SLOT_USER, SLOT_GOAL, SLOT_DAILY_PLANS, SLOT_STREAK, SLOT_LAST_LOGIN,
    SLOT_FOCUS_SESSIONS, SLOT_COACH_HISTORY, SLOT_PSYCHO_PROFILE,
)
from focusflow.services.ai_service import (
    FALLBACK_STRATEGY, FALLBACK_SUMMARY, CoachContext, ContentGenerator, GenerationFailure,
)
from focusflow.services.data_export import SnapshotService
from focusflow.services.schemas import TaskDescriptor, parse_task_descriptors
from focusflow.utils.datetime_utils import to_millis, today_str, yesterday_str

logger = logging.getLogger(__name__)

COACH_ERROR_MESSAGE = "Sorry, I'm having trouble connecting. Please try again."
SUMMARY_NO_GOAL = "Set a goal first to get a personalized summary!"
SUMMARY_NO_PLAN = "No tasks were planned for today, so there's no summary to generate. Let's get a plan for tomorrow!"
MIN_FOCUS_SESSION_MS = 60000

class StateNotReady(Exception):
    """Состояние еще не загружено"""
    pass

class FocusFlowController:
    """Контроллер состояния: гидратация, мутации, пересчет серии и планов"""

    def __init__(self, store: KeyValueStore, generator: ContentGenerator,
                 snapshots: Optional[SnapshotService] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.generator = generator
        self.snapshots = snapshots or SnapshotService(store)
        self.clock = clock or datetime.now
        self.hydrator = StateHydrator(store)

        self.state = AppState()
        self.is_loading = True
        self._listeners: List[Callable[[AppState], None]] = []
        self._generating_for: Optional[str] = None

    # ===== ДАТЫ =====

    def now(self) -> datetime:
        return self.clock()

    def now_ms(self) -> int:
        return to_millis(self.now())

    def today(self) -> str:
        return today_str(self.now())

    def yesterday(self) -> str:
        return yesterday_str(self.now())

    # ===== ПОДПИСКИ =====

    def add_listener(self, callback: Callable[[AppState], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self.state)
            except Exception as e:
                logger.error(f"State listener failed: {e}")

    # ===== ЗАГРУЗКА =====

    async def load(self) -> AppState:
        """Гидратация и первый пересчет производного состояния"""
        self.is_loading = True
        self.state = await self.hydrator.hydrate()
        self.is_loading = False
        self._notify()
        await self.reconcile()
        return self.state

    async def reload(self) -> AppState:
        """Полная перезагрузка: состояние в памяти отбрасывается"""
        logger.info("Reloading state from store")
        self.state = AppState()
        self._generating_for = None
        return await self.load()

    async def refresh(self) -> None:
        """Пересчет без изменений (смена календарного дня)"""
        await self.reconcile()

    def _require_ready(self) -> None:
        if self.is_loading:
            raise StateNotReady("State is still loading")

    # ===== ЗАПИСЬ =====

    async def _commit(self, state: AppState, *slots: str) -> None:
        """Применить новое состояние, сохранить слоты, уведомить подписчиков.

        Ошибка записи логируется: состояние в памяти остается, но
        сохранность не гарантируется.
        """
        self.state = state
        for slot in slots:
            try:
                await self.store.set(slot, state.slot_value(slot))
            except StorageError as e:
                logger.error(f"Failed to persist slot {slot!r}: {e}")
        self._notify()

    # ===== ПРОИЗВОДНОЕ СОСТОЯНИЕ =====

    async def reconcile(self) -> None:
        """Пересчет серии и гейт ежедневной генерации плана"""
        if self.is_loading or self.state.user is None:
            return

        today = self.today()
        result = engine.transition(self.state, today, self.yesterday())

        slots = []
        if result.streak_changed:
            slots.append(SLOT_STREAK)
        if result.login_changed:
            slots.append(SLOT_LAST_LOGIN)
        if slots:
            await self._commit(result.state, *slots)

        request = result.generation
        if request is None or self._generating_for == request.date:
            return

        await self._generate_plan(request)

    async def _fetch_daily_tasks(self, goal: Goal, context: engine.ProgressContext) -> List[TaskDescriptor]:
        """Задачи от генератора, проверенные на входе; любая ошибка -> пустой список"""
        try:
            result = await self.generator.generate_daily_tasks(goal, context)
        except GenerationFailure as e:
            logger.error(f"Failed to generate daily tasks for day {context.day_number}: {e}")
            return []
        except Exception as e:
            logger.error(f"Unexpected error from task generator: {e!r}")
            return []
        return parse_task_descriptors(result or [])

    async def _generate_plan(self, request: engine.GenerationRequest) -> None:
        goal = self.state.goal
        self._generating_for = request.date
        try:
            descriptors = await self._fetch_daily_tasks(goal, request.context)
        finally:
            self._generating_for = None

        if not descriptors:
            logger.warning(f"No tasks generated for {request.date}")
            return

        # Цель могла смениться, а план на дату - появиться, пока шла генерация
        if self.state.goal is not goal:
            logger.info("Goal changed during generation, discarding generated tasks")
            return
        if engine.find_plan(self.state.daily_plans, request.date) is not None:
            logger.info(f"Plan for {request.date} appeared during generation, keeping it")
            return

        plan = engine.build_plan(request.date, descriptors, self.now_ms())
        plans = engine.upsert_plan(self.state.daily_plans, plan)
        await self._commit(replace(self.state, daily_plans=plans), SLOT_DAILY_PLANS)
        logger.info(f"Created plan for {request.date} with {len(plan.tasks)} tasks")
        await self.reconcile()

    # ===== ПОЛЬЗОВАТЕЛЬ =====

    async def onboard(self, name: str) -> User:
        self._require_ready()
        user = User.create(name, created_at=self.now_ms())
        await self._commit(replace(self.state, user=user), SLOT_USER)
        logger.info("User onboarded")
        await self.reconcile()
        return user

    async def rename_user(self, name: str) -> User:
        self._require_ready()
        if self.state.user is None:
            raise StateNotReady("No user to rename")
        user = replace(self.state.user, name=name)
        await self._commit(replace(self.state, user=user), SLOT_USER)
        return user

    # ===== ЦЕЛЬ =====

    async def set_goal(self, text: str) -> Goal:
        """Новая цель: стратегия и план первого дня; все прежние планы удаляются"""
        self._require_ready()
        text = validate_text(text, min_length=1, max_length=500, field_name="goal text")

        try:
            strategy = await self.generator.generate_goal_strategy(text)
        except Exception as e:
            logger.error(f"Failed to generate goal strategy: {e!r}")
            strategy = FALLBACK_STRATEGY
        if not isinstance(strategy, str) or not strategy.strip():
            strategy = FALLBACK_STRATEGY
        goal = Goal(
            text=text,
            strategy=strategy,
            created_at=self.now_ms()
        )

        descriptors = await self._fetch_daily_tasks(goal, engine.ProgressContext(day_number=1))

        plans = []
        if descriptors:
            plans = [engine.build_plan(self.today(), descriptors, self.now_ms())]

        await self._commit(replace(self.state, goal=goal, daily_plans=plans), SLOT_GOAL, SLOT_DAILY_PLANS)
        logger.info(f"Goal set with {len(plans)} initial plan(s)")
        await self.reconcile()
        return goal

    async def clear_goal(self) -> None:
        self._require_ready()
        await self._commit(replace(self.state, goal=None, daily_plans=[]), SLOT_GOAL, SLOT_DAILY_PLANS)
        logger.info("Goal cleared")
        await self.reconcile()

    # ===== ЗАДАЧИ =====

    async def toggle_task(self, task_id: str) -> Optional[Task]:
        """Переключение задачи сегодняшнего плана с учетом серии"""
        self._require_ready()
        today = self.today()
        plan = engine.find_plan(self.state.daily_plans, today)
        if plan is None or plan.find_task(task_id) is None:
            return None

        streak = engine.streak_after_toggle(
            self.state.daily_plans, today, self.yesterday(), task_id, self.state.streak
        )
        plans = engine.toggle_task(self.state.daily_plans, today, task_id, self.now_ms())

        slots = [SLOT_DAILY_PLANS]
        if streak != self.state.streak:
            slots.append(SLOT_STREAK)
            logger.info(f"Streak {self.state.streak} -> {streak}")

        await self._commit(replace(self.state, daily_plans=plans, streak=streak), *slots)
        await self.reconcile()
        plan = engine.find_plan(self.state.daily_plans, today)
        return plan.find_task(task_id) if plan else None

    async def add_task(self, text: str, priority: str = TaskPriority.MEDIUM.value,
                       category: Optional[str] = None) -> Task:
        self._require_ready()
        task = Task.create(text, priority=priority, category=category, created_at=self.now_ms())
        plans = engine.add_task(self.state.daily_plans, self.today(), task)
        await self._commit(replace(self.state, daily_plans=plans), SLOT_DAILY_PLANS)
        await self.reconcile()
        return task

    async def delete_task(self, task_id: str) -> bool:
        self._require_ready()
        today = self.today()
        plan = engine.find_plan(self.state.daily_plans, today)
        if plan is None or plan.find_task(task_id) is None:
            return False
        plans = engine.delete_task(self.state.daily_plans, today, task_id)
        await self._commit(replace(self.state, daily_plans=plans), SLOT_DAILY_PLANS)
        await self.reconcile()
        return True

    # ===== ФОКУС-СЕССИИ =====

    async def record_focus_session(self, start_ms: int, end_ms: int, completed: bool) -> Optional[FocusSession]:
        """Запись сессии; короче минуты не сохраняются"""
        self._require_ready()
        if end_ms - start_ms < MIN_FOCUS_SESSION_MS:
            logger.info("Focus session shorter than a minute, not saved")
            return None
        session = FocusSession.from_interval(start_ms, end_ms, completed)
        sessions = [session] + self.state.focus_sessions
        await self._commit(replace(self.state, focus_sessions=sessions), SLOT_FOCUS_SESSIONS)
        logger.info(f"Focus session saved: {session.duration} min, completed={completed}")
        return session

    # ===== КОУЧ =====

    def coach_context(self) -> CoachContext:
        plan = engine.find_plan(self.state.daily_plans, self.today())
        return CoachContext(
            tasks_total=len(plan.tasks) if plan else 0,
            tasks_completed=plan.completed_count if plan else 0,
            last_session=self.state.focus_sessions[0] if self.state.focus_sessions else None
        )

    async def _set_last_model_message(self, text: str) -> None:
        history = list(self.state.coach_history)
        if history and history[-1].role == "model":
            history[-1] = history[-1].with_text(text)
        else:
            history.append(ChatMessage.model(text))
        await self._commit(replace(self.state, coach_history=history), SLOT_COACH_HISTORY)

    async def stream_coach_reply(self, text: str) -> AsyncIterator[str]:
        """Отправка сообщения коучу; отдает накопленный текст ответа.

        Последнее сообщение истории дописывается по мере прихода фрагментов.
        Если потребитель закрыл генератор, состояние больше не меняется.
        """
        self._require_ready()
        text = validate_text(text, min_length=1, max_length=4000, field_name="message")
        history = self.state.coach_history + [ChatMessage.user(text)]
        await self._commit(replace(self.state, coach_history=history), SLOT_COACH_HISTORY)

        response = ""
        started = False
        stream = self.generator.stream_coach_response(history, self.coach_context())
        try:
            async for chunk in stream:
                if not started:
                    started = True
                    history = self.state.coach_history + [ChatMessage.model("")]
                    await self._commit(replace(self.state, coach_history=history), SLOT_COACH_HISTORY)
                response += chunk
                await self._set_last_model_message(response)
                yield response
        except Exception as e:
            logger.error(f"Coach response failed: {e!r}")
            if started:
                await self._set_last_model_message(COACH_ERROR_MESSAGE)
            else:
                history = self.state.coach_history + [ChatMessage.model(COACH_ERROR_MESSAGE)]
                await self._commit(replace(self.state, coach_history=history), SLOT_COACH_HISTORY)
            yield COACH_ERROR_MESSAGE
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    # ===== ПРОФИЛЬ И СВОДКА =====

    def profile_is_stale(self) -> bool:
        profile = self.state.psycho_profile
        return profile is None or profile.is_stale(self.now())

    async def generate_psycho_profile(self):
        """Психопрофиль по планам текущего месяца"""
        self._require_ready()
        month_prefix = self.today()[:7]
        plans = [plan.to_dict() for plan in self.state.daily_plans if plan.date.startswith(month_prefix)]
        try:
            profile = await self.generator.generate_psycho_profile({'dailyPlans': plans}, now=self.now())
        except Exception as e:
            logger.error(f"Failed to generate psycho profile: {e!r}")
            return None
        if not isinstance(profile, PsychoProfile):
            return None
        await self._commit(replace(self.state, psycho_profile=profile), SLOT_PSYCHO_PROFILE)
        return profile

    async def daily_summary(self) -> str:
        self._require_ready()
        goal = self.state.goal
        if goal is None:
            return SUMMARY_NO_GOAL
        plan = engine.find_plan(self.state.daily_plans, self.today())
        if plan is None:
            return SUMMARY_NO_PLAN
        try:
            summary = await self.generator.generate_daily_summary(plan, goal)
        except Exception as e:
            logger.error(f"Failed to generate daily summary: {e!r}")
            return FALLBACK_SUMMARY
        return summary if isinstance(summary, str) and summary.strip() else FALLBACK_SUMMARY

    # ===== СНИМКИ =====

    async def export_snapshot(self, export_dir):
        return await self.snapshots.export_to_file(export_dir, now=self.now())

    async def import_snapshot(self, text) -> AppState:
        """Импорт заменяет хранилище целиком; затем состояние грузится заново"""
        await self.snapshots.import_document(text)
        return await self.reload()
