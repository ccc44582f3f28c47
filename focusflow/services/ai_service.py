#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
FocusFlow - AI Content Generator
Генерация задач, стратегий, сводок, психопрофиля и ответов коуча

Контракт ContentGenerator: каждый вызов может быть медленным и может
упасть; автоматических повторов нет. Текстовые методы возвращают
запасную строку, структурные - бросают GenerationFailure.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional
import logging

from openai import AsyncOpenAI, OpenAIError

from focusflow.core.engine import ProgressContext
from focusflow.core.models import ChatMessage, ChatRole, DailyPlan, FocusSession, Goal, PsychoProfile
from focusflow.services.schemas import (
    TaskDescriptor, load_json, parse_psycho_profile, parse_task_descriptors
)
from focusflow.utils.datetime_utils import from_millis, month_name

logger = logging.getLogger(__name__)

# ===== EXCEPTIONS =====

class GenerationFailure(Exception):
    """Генерация контента не удалась"""
    pass

# ===== FALLBACKS =====

FALLBACK_STRATEGY = "Let's break this down into small, manageable steps, celebrate every win, and stay consistent!"
FALLBACK_SUMMARY = "Could not generate summary at this time."
FALLBACK_REST = "Take a moment to stretch and breathe deeply."

# ===== PROMPTS =====

COACH_SYSTEM_PROMPT = """You are FocusFlow, a highly intelligent and empathetic AI coach specializing in ADHD. Your purpose is to provide personalized, actionable support.

**Your Personality:**
- Empathetic & Supportive: Acknowledge user's struggles and celebrate their wins.
- Action-Oriented: Provide concrete strategies, not just vague advice.
- Concise: Keep responses short and scannable (under 75 words). Use markdown (bolding, lists) for clarity.
- Positive & Empowering: Focus on strengths and progress.

**Core Directives:**
1. **NEVER Give Medical Advice:** Do not diagnose, treat, or offer medical opinions. Defer to healthcare professionals.
2. **Stay Focused on Your Role:** Your expertise is limited to ADHD, productivity, and task management. Politely decline and redirect questions outside of this scope.
3. **Leverage User Context:** Use the user's current tasks and recent focus session data to make your advice specific and relevant.
4. **Use ADHD-Friendly Techniques:** Task chunking, Pomodoro intervals, "Eat the Frog", positive reinforcement."""

DAILY_TASKS_PROMPT = """Act as an expert ADHD coach and curriculum designer. The user's primary goal is: "{goal}".

This is Day {day_number} of their learning journey.

{recent_summary}

Generate a focused, actionable list of 3 to 5 tasks for them to complete **today**. The tasks must follow a **progressive difficulty** curve, building logically on what they have already done; each day should be slightly more advanced than the last (about 5-10% more complex).

The tasks must be ADHD-friendly: small, specific, clear, and directly contributing to the main goal. Avoid vague meta-tasks like 'plan your day'.

Respond with a JSON object of the form {{"tasks": [{{"text": string, "priority": "High" | "Medium" | "Low", "category": string}}]}}."""

STRATEGY_PROMPT = 'Generate a brief, motivating, high-level strategy (2-3 sentences) for a user with ADHD to achieve this goal: "{goal}"'

SUMMARY_PROMPT = """Act as a super encouraging ADHD coach, like a friend cheering the user on.
The user's main goal is: "{goal}".
Today, they completed {completed} out of {total} tasks.

Write a short, punchy, and highly motivational summary (like a quick chat message, under 50 words).
- Acknowledge their effort for today, adapting the tone based on completion rate.
- Connect their progress directly to their main goal.
- End with a super encouraging boost for tomorrow."""

PROFILE_PROMPT = """Analyze the following monthly user data (a series of daily plans with tasks) to create a 'psychoprofile' for an individual with ADHD. Based on task completion rates across daily plans, identify patterns in productivity, common challenges, and areas of strength. Provide a supportive, non-clinical summary and actionable insights for the upcoming month.

Respond with a JSON object with keys "strengths" (array of strings), "growthAreas" (array of strings), "productivityPatterns" (string) and "overallSummary" (string).

Data: {data}"""

REST_PROMPT = 'I\'ve just completed a focused work session. Suggest a very short, simple, and refreshing activity for a 5-minute break. The goal is a quick mental reset, not another task. Examples: "Stretch your arms and back," or "Get a glass of water." Keep the response under 20 words.'

# ===== DATA CLASSES =====

@dataclass
class CoachContext:
    """Контекст пользователя для ответа коуча"""
    tasks_total: int = 0
    tasks_completed: int = 0
    last_session: Optional[FocusSession] = None

    def describe(self, tz_name: Optional[str] = None) -> str:
        lines = [
            "This is the user's current status for today:",
            f"- Tasks in Plan: {self.tasks_total} total, with {self.tasks_completed} completed so far."
        ]
        if self.last_session:
            started = from_millis(self.last_session.start_time, tz_name).strftime('%H:%M')
            lines.append(
                f"- Last Focus Session: {self.last_session.duration} minutes, started at {started}."
            )
        else:
            lines.append("- No recent focus sessions.")
        lines.append("Use this information to tailor your response.")
        return "\n".join(lines)

@dataclass
class AIStats:
    """Статистика AI сервиса"""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    requests_by_type: Dict[str, int] = field(default_factory=dict)

    def record(self, request_type: str, success: bool) -> None:
        self.total_requests += 1
        self.requests_by_type[request_type] = self.requests_by_type.get(request_type, 0) + 1
        if success:
            self.successful_requests += 1
        else:
            self.failed_requests += 1

# ===== CONTRACT =====

class ContentGenerator(ABC):
    """Внешняя возможность генерации контента"""

    @abstractmethod
    async def generate_daily_tasks(self, goal: Goal, context: ProgressContext) -> List[TaskDescriptor]:
        """3-5 задач на день; GenerationFailure при ошибке"""

    @abstractmethod
    async def generate_goal_strategy(self, goal_text: str) -> str:
        """Краткая стратегия достижения цели"""

    @abstractmethod
    async def generate_daily_summary(self, plan: DailyPlan, goal: Goal) -> str:
        """Мотивирующая сводка по итогам дня"""

    @abstractmethod
    async def generate_psycho_profile(self, monthly_data: Dict[str, Any],
                                      now: Optional[datetime] = None) -> Optional[PsychoProfile]:
        """Психопрофиль за месяц или None"""

    @abstractmethod
    def stream_coach_response(self, history: List[ChatMessage], context: CoachContext) -> AsyncIterator[str]:
        """Поток фрагментов ответа коуча; GenerationFailure при ошибке"""

    @abstractmethod
    async def suggest_rest(self) -> str:
        """Короткое предложение для перерыва"""

# ===== OPENAI IMPLEMENTATION =====

class OpenAIContentGenerator(ContentGenerator):
    """Генератор контента на OpenAI API"""

    def __init__(self, api_key: Optional[str] = None, model: str = "gpt-4o-mini",
                 analysis_model: str = "gpt-4o", max_tokens: int = 1000,
                 timeout: int = 60, client: Optional[AsyncOpenAI] = None,
                 tz_name: Optional[str] = None):
        self.model = model
        self.analysis_model = analysis_model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.tz_name = tz_name
        self.stats = AIStats()
        self.client = client

        if self.client is None and api_key:
            try:
                self.client = AsyncOpenAI(api_key=api_key, timeout=timeout)
                logger.info("🤖 AI сервис инициализирован")
            except OpenAIError as e:
                logger.error(f"❌ Ошибка инициализации AI: {e}")
                self.client = None

        if self.client is None:
            logger.warning("⚠️ AI сервис отключен (нет OPENAI_API_KEY)")

    @classmethod
    def from_config(cls, app_config) -> "OpenAIContentGenerator":
        return cls(
            api_key=app_config.ai.openai_api_key,
            model=app_config.ai.openai_model,
            analysis_model=app_config.ai.openai_analysis_model,
            max_tokens=app_config.ai.openai_max_tokens,
            timeout=app_config.ai.request_timeout,
            tz_name=app_config.scheduler.timezone
        )

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def _complete(self, prompt: str, model: str, request_type: str,
                        json_mode: bool = False, system: Optional[str] = None) -> str:
        """Один запрос к chat completions; любые ошибки -> GenerationFailure"""
        if not self.enabled:
            raise GenerationFailure("AI service is disabled")

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs = {
            "model": model,
            "messages": messages,
            "max_tokens": self.max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(**kwargs),
                timeout=self.timeout
            )
            content = response.choices[0].message.content or ""
        except (OpenAIError, asyncio.TimeoutError, IndexError, AttributeError) as e:
            self.stats.record(request_type, success=False)
            logger.error(f"❌ AI запрос {request_type} не удался: {e}")
            raise GenerationFailure(f"{request_type} failed: {e}") from e

        self.stats.record(request_type, success=True)
        return content.strip()

    async def generate_daily_tasks(self, goal: Goal, context: ProgressContext) -> List[TaskDescriptor]:
        if context.recent_completed_tasks:
            recent_summary = "They have recently completed the following tasks:\n" + "\n".join(
                f"- {task}" for task in context.recent_completed_tasks
            )
        else:
            recent_summary = "They are just getting started on this goal."

        prompt = DAILY_TASKS_PROMPT.format(
            goal=goal.text,
            day_number=context.day_number,
            recent_summary=recent_summary
        )
        text = await self._complete(prompt, self.analysis_model, "daily_tasks", json_mode=True)

        try:
            payload = load_json(text)
        except json.JSONDecodeError as e:
            logger.error(f"❌ AI вернул некорректный JSON задач: {e}")
            raise GenerationFailure(f"Malformed task JSON: {e}") from e

        descriptors = parse_task_descriptors(payload)
        logger.info(f"📝 Сгенерировано задач на день {context.day_number}: {len(descriptors)}")
        return descriptors

    async def generate_goal_strategy(self, goal_text: str) -> str:
        try:
            strategy = await self._complete(STRATEGY_PROMPT.format(goal=goal_text), self.model, "strategy")
        except GenerationFailure:
            return FALLBACK_STRATEGY
        return strategy or FALLBACK_STRATEGY

    async def generate_daily_summary(self, plan: DailyPlan, goal: Goal) -> str:
        prompt = SUMMARY_PROMPT.format(
            goal=goal.text,
            completed=plan.completed_count,
            total=len(plan.tasks)
        )
        try:
            summary = await self._complete(prompt, self.model, "summary")
        except GenerationFailure:
            return FALLBACK_SUMMARY
        return summary or FALLBACK_SUMMARY

    async def generate_psycho_profile(self, monthly_data: Dict[str, Any],
                                      now: Optional[datetime] = None) -> Optional[PsychoProfile]:
        now = now or datetime.now()
        prompt = PROFILE_PROMPT.format(data=json.dumps(monthly_data, ensure_ascii=False))
        try:
            text = await self._complete(prompt, self.analysis_model, "psycho_profile", json_mode=True)
            payload = load_json(text)
        except (GenerationFailure, json.JSONDecodeError) as e:
            logger.error(f"❌ Ошибка генерации психопрофиля: {e}")
            return None

        parsed = parse_psycho_profile(payload)
        if parsed is None:
            return None

        return PsychoProfile(
            month=month_name(now),
            year=now.year,
            strengths=parsed.strengths,
            growth_areas=parsed.growth_areas,
            productivity_patterns=parsed.productivity_patterns,
            overall_summary=parsed.overall_summary
        )

    async def stream_coach_response(self, history: List[ChatMessage], context: CoachContext) -> AsyncIterator[str]:
        if not self.enabled:
            raise GenerationFailure("AI service is disabled")

        system = f"{COACH_SYSTEM_PROMPT}\n\n## Current User Context\n{context.describe(self.tz_name)}"
        messages = [{"role": "system", "content": system}]
        for message in history:
            role = "assistant" if message.role == ChatRole.MODEL.value else "user"
            messages.append({"role": role, "content": message.text})

        stream = None
        try:
            stream = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    max_tokens=self.max_tokens,
                    stream=True
                ),
                timeout=self.timeout
            )
            chunks = stream.__aiter__()
            while True:
                # Таймаут на каждый фрагмент
                try:
                    chunk = await asyncio.wait_for(chunks.__anext__(), timeout=self.timeout)
                except StopAsyncIteration:
                    break
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except (OpenAIError, asyncio.TimeoutError) as e:
            self.stats.record("coach", success=False)
            logger.error(f"❌ Ошибка потока коуча: {e}")
            raise GenerationFailure(f"Coach stream failed: {e}") from e
        finally:
            if stream is not None:
                await stream.close()

        self.stats.record("coach", success=True)

    async def suggest_rest(self) -> str:
        try:
            suggestion = await self._complete(REST_PROMPT, self.model, "rest")
        except GenerationFailure:
            return FALLBACK_REST
        return suggestion or FALLBACK_REST
