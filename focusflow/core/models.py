#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
FocusFlow - Core Data Models
Модели данных с валидацией и типизацией

Все модели сериализуются в camelCase-словари: в таком виде они лежат
в хранилище и в файлах экспорта. Временные метки - миллисекунды Unix epoch.
"""

import uuid
from datetime import datetime
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Any
import logging

from focusflow.utils.datetime_utils import is_valid_date, month_name

logger = logging.getLogger(__name__)

# ===== ENUMS =====

class TaskPriority(Enum):
    """Приоритеты задач"""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

class ChatRole(Enum):
    """Роли сообщений в диалоге с коучем"""
    USER = "user"
    MODEL = "model"

# ===== SLOT NAMES =====

SLOT_USER = "user"
SLOT_GOAL = "goal"
SLOT_DAILY_PLANS = "dailyPlans"
SLOT_STREAK = "streak"
SLOT_LAST_LOGIN = "lastLogin"
SLOT_FOCUS_SESSIONS = "focusSessions"
SLOT_COACH_HISTORY = "coachHistory"
SLOT_PSYCHO_PROFILE = "psychoProfile"

STATE_SLOTS = (
    SLOT_USER,
    SLOT_GOAL,
    SLOT_DAILY_PLANS,
    SLOT_STREAK,
    SLOT_LAST_LOGIN,
    SLOT_FOCUS_SESSIONS,
    SLOT_COACH_HISTORY,
    SLOT_PSYCHO_PROFILE,
)

# ===== VALIDATION HELPERS =====

class ValidationError(Exception):
    """Ошибка валидации данных"""
    pass

def validate_text(text: str, min_length: int = 1, max_length: int = 1000, field_name: str = "text") -> str:
    """Валидация текстовых полей"""
    if not isinstance(text, str):
        raise ValidationError(f"{field_name} must be a string")

    text = text.strip()
    if len(text) < min_length:
        raise ValidationError(f"{field_name} must contain at least {min_length} characters")

    if len(text) > max_length:
        raise ValidationError(f"{field_name} must contain at most {max_length} characters")

    return text

def validate_enum_value(value: str, enum_class: type, field_name: str = "value") -> str:
    """Валидация значений enum"""
    try:
        enum_class(value)
        return value
    except ValueError:
        valid_values = [e.value for e in enum_class]
        raise ValidationError(f"{field_name} must be one of: {valid_values}")

def validate_int(value: Any, field_name: str, minimum: Optional[int] = 0) -> int:
    """Целое число без bool; float с нулевой дробной частью допускается"""
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field_name} must be >= {minimum}")
    return value

def validate_bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a boolean")
    return value

def _require_mapping(data: Any, model_name: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError(f"{model_name} must be an object, got {type(data).__name__}")
    return data

def _require_key(data: Dict[str, Any], key: str, model_name: str) -> Any:
    if key not in data:
        raise ValidationError(f"{model_name} is missing '{key}'")
    return data[key]

def now_millis() -> int:
    return int(datetime.now().timestamp() * 1000)

# ===== CORE MODELS =====

@dataclass
class User:
    """Пользователь, создается один раз при онбординге"""
    name: str
    created_at: int

    def __post_init__(self):
        self.name = validate_text(self.name, min_length=1, max_length=100, field_name="name")
        self.created_at = validate_int(self.created_at, "createdAt")

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'createdAt': self.created_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        data = _require_mapping(data, "user")
        return cls(
            name=_require_key(data, 'name', "user"),
            created_at=_require_key(data, 'createdAt', "user")
        )

    @classmethod
    def create(cls, name: str, created_at: Optional[int] = None) -> "User":
        return cls(name=name, created_at=created_at if created_at is not None else now_millis())

@dataclass
class Goal:
    """Главная цель пользователя; планы дней привязаны к ней"""
    text: str
    strategy: str
    created_at: int

    def __post_init__(self):
        self.text = validate_text(self.text, min_length=1, max_length=500, field_name="goal text")
        self.strategy = validate_text(self.strategy, min_length=0, max_length=5000, field_name="strategy")
        self.created_at = validate_int(self.created_at, "createdAt")

    def to_dict(self) -> Dict[str, Any]:
        return {'text': self.text, 'strategy': self.strategy, 'createdAt': self.created_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Goal":
        data = _require_mapping(data, "goal")
        return cls(
            text=_require_key(data, 'text', "goal"),
            strategy=data.get('strategy', ""),
            created_at=_require_key(data, 'createdAt', "goal")
        )

@dataclass
class Task:
    """Задача дневного плана"""
    id: str
    text: str
    completed: bool = False
    created_at: int = field(default_factory=now_millis)
    completed_at: Optional[int] = None
    priority: Optional[str] = None
    category: Optional[str] = None
    is_deleting: bool = False  # только для UI, не сохраняется

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id:
            raise ValidationError("task id must be a non-empty string")
        self.text = validate_text(self.text, min_length=1, max_length=1000, field_name="task text")
        self.completed = validate_bool(self.completed, "completed")
        self.created_at = validate_int(self.created_at, "createdAt")

        if self.priority is not None:
            self.priority = validate_enum_value(self.priority, TaskPriority, "priority")

        if self.category is not None:
            self.category = validate_text(self.category, min_length=0, max_length=100, field_name="category") or None

        # completedAt задан тогда и только тогда, когда задача выполнена
        if not self.completed:
            self.completed_at = None
        elif self.completed_at is None:
            self.completed_at = self.created_at
        else:
            self.completed_at = validate_int(self.completed_at, "completedAt")

    @property
    def effective_priority(self) -> str:
        return self.priority or TaskPriority.MEDIUM.value

    def toggled(self, now_ms: int) -> "Task":
        """Копия задачи с переключенным статусом выполнения"""
        if self.completed:
            return replace(self, completed=False, completed_at=None)
        return replace(self, completed=True, completed_at=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'text': self.text,
            'completed': self.completed,
            'createdAt': self.created_at,
        }
        if self.completed_at is not None:
            data['completedAt'] = self.completed_at
        if self.priority is not None:
            data['priority'] = self.priority
        if self.category is not None:
            data['category'] = self.category
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        data = _require_mapping(data, "task")
        return cls(
            id=_require_key(data, 'id', "task"),
            text=_require_key(data, 'text', "task"),
            completed=data.get('completed', False),
            created_at=_require_key(data, 'createdAt', "task"),
            completed_at=data.get('completedAt'),
            priority=data.get('priority'),
            category=data.get('category'),
            is_deleting=bool(data.get('isDeleting', False))
        )

    @classmethod
    def create(cls, text: str, priority: Optional[str] = None, category: Optional[str] = None,
               created_at: Optional[int] = None) -> "Task":
        """Создание новой невыполненной задачи"""
        return cls(
            id=str(uuid.uuid4()),
            text=text,
            completed=False,
            created_at=created_at if created_at is not None else now_millis(),
            priority=priority,
            category=category
        )

@dataclass
class DailyPlan:
    """План на один календарный день; дата - ключ коллекции"""
    date: str
    tasks: List[Task] = field(default_factory=list)

    def __post_init__(self):
        if not is_valid_date(self.date):
            raise ValidationError(f"Invalid plan date: {self.date!r}")

    @property
    def has_completed(self) -> bool:
        return any(task.completed for task in self.tasks)

    @property
    def completed_count(self) -> int:
        return sum(1 for task in self.tasks if task.completed)

    @property
    def completed_texts(self) -> List[str]:
        return [task.text for task in self.tasks if task.completed]

    def find_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {'date': self.date, 'tasks': [task.to_dict() for task in self.tasks]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DailyPlan":
        data = _require_mapping(data, "daily plan")
        tasks = _require_key(data, 'tasks', "daily plan")
        if not isinstance(tasks, list):
            raise ValidationError("daily plan tasks must be a list")
        return cls(
            date=_require_key(data, 'date', "daily plan"),
            tasks=[Task.from_dict(task) for task in tasks]
        )

@dataclass
class FocusSession:
    """Завершенная (или прерванная) фокус-сессия"""
    id: str
    start_time: int
    duration: int  # в минутах
    completed: bool

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id:
            raise ValidationError("session id must be a non-empty string")
        self.start_time = validate_int(self.start_time, "startTime")
        self.duration = validate_int(self.duration, "duration")
        self.completed = validate_bool(self.completed, "completed")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'startTime': self.start_time,
            'duration': self.duration,
            'completed': self.completed
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FocusSession":
        data = _require_mapping(data, "focus session")
        return cls(
            id=_require_key(data, 'id', "focus session"),
            start_time=_require_key(data, 'startTime', "focus session"),
            duration=_require_key(data, 'duration', "focus session"),
            completed=_require_key(data, 'completed', "focus session")
        )

    @classmethod
    def from_interval(cls, start_ms: int, end_ms: int, completed: bool) -> "FocusSession":
        """Длительность считается по разнице настенных часов, с округлением до минуты"""
        elapsed_ms = max(0, end_ms - start_ms)
        return cls(
            id=str(uuid.uuid4()),
            start_time=start_ms,
            duration=int((elapsed_ms + 30000) // 60000),
            completed=completed
        )

@dataclass
class ChatMessage:
    """Сообщение в истории диалога с коучем"""
    role: str
    parts: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.role = validate_enum_value(self.role, ChatRole, "role")
        for part in self.parts:
            if not isinstance(part, str):
                raise ValidationError("chat message parts must be text")

    @property
    def text(self) -> str:
        return self.parts[0] if self.parts else ""

    def with_text(self, text: str) -> "ChatMessage":
        return ChatMessage(role=self.role, parts=[text] + self.parts[1:])

    def to_dict(self) -> Dict[str, Any]:
        return {'role': self.role, 'parts': [{'text': part} for part in self.parts]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        data = _require_mapping(data, "chat message")
        parts = _require_key(data, 'parts', "chat message")
        if not isinstance(parts, list):
            raise ValidationError("chat message parts must be a list")
        texts = []
        for part in parts:
            part = _require_mapping(part, "chat message part")
            texts.append(_require_key(part, 'text', "chat message part"))
        return cls(role=_require_key(data, 'role', "chat message"), parts=texts)

    @classmethod
    def user(cls, text: str) -> "ChatMessage":
        return cls(role=ChatRole.USER.value, parts=[text])

    @classmethod
    def model(cls, text: str = "") -> "ChatMessage":
        return cls(role=ChatRole.MODEL.value, parts=[text])

@dataclass
class PsychoProfile:
    """Месячный психопрофиль продуктивности"""
    month: str
    year: int
    strengths: List[str] = field(default_factory=list)
    growth_areas: List[str] = field(default_factory=list)
    productivity_patterns: str = ""
    overall_summary: str = ""

    def __post_init__(self):
        self.month = validate_text(self.month, min_length=1, max_length=20, field_name="month")
        self.year = validate_int(self.year, "year", minimum=1970)
        for name in ('strengths', 'growth_areas'):
            values = getattr(self, name)
            if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
                raise ValidationError(f"{name} must be a list of strings")
        if not isinstance(self.productivity_patterns, str) or not isinstance(self.overall_summary, str):
            raise ValidationError("profile texts must be strings")

    def is_stale(self, now: datetime) -> bool:
        """Профиль устарел, как только сменился календарный месяц"""
        return self.month != month_name(now) or self.year != now.year

    def to_dict(self) -> Dict[str, Any]:
        return {
            'month': self.month,
            'year': self.year,
            'strengths': list(self.strengths),
            'growthAreas': list(self.growth_areas),
            'productivityPatterns': self.productivity_patterns,
            'overallSummary': self.overall_summary
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PsychoProfile":
        data = _require_mapping(data, "psycho profile")
        return cls(
            month=_require_key(data, 'month', "psycho profile"),
            year=_require_key(data, 'year', "psycho profile"),
            strengths=data.get('strengths', []),
            growth_areas=data.get('growthAreas', []),
            productivity_patterns=data.get('productivityPatterns', ""),
            overall_summary=data.get('overallSummary', "")
        )

# ===== APPLICATION STATE =====

@dataclass
class AppState:
    """Агрегат восьми слотов состояния приложения"""
    user: Optional[User] = None
    goal: Optional[Goal] = None
    daily_plans: List[DailyPlan] = field(default_factory=list)
    streak: int = 0
    last_login: str = ""
    focus_sessions: List[FocusSession] = field(default_factory=list)
    coach_history: List[ChatMessage] = field(default_factory=list)
    psycho_profile: Optional[PsychoProfile] = None

    def plan_for(self, date_str: str) -> Optional[DailyPlan]:
        for plan in self.daily_plans:
            if plan.date == date_str:
                return plan
        return None

    def slot_value(self, slot: str) -> Any:
        """JSON-значение одного слота"""
        if slot == SLOT_USER:
            return self.user.to_dict() if self.user else None
        if slot == SLOT_GOAL:
            return self.goal.to_dict() if self.goal else None
        if slot == SLOT_DAILY_PLANS:
            return [plan.to_dict() for plan in self.daily_plans]
        if slot == SLOT_STREAK:
            return self.streak
        if slot == SLOT_LAST_LOGIN:
            return self.last_login
        if slot == SLOT_FOCUS_SESSIONS:
            return [session.to_dict() for session in self.focus_sessions]
        if slot == SLOT_COACH_HISTORY:
            return [message.to_dict() for message in self.coach_history]
        if slot == SLOT_PSYCHO_PROFILE:
            return self.psycho_profile.to_dict() if self.psycho_profile else None
        raise KeyError(slot)

    def to_slots(self) -> Dict[str, Any]:
        return {slot: self.slot_value(slot) for slot in STATE_SLOTS}
