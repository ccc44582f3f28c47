"""
Схемы ответов AI: проверка внешнего JSON до того, как он попадет в модель данных
"""

import json
import logging
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from focusflow.core.models import TaskPriority

logger = logging.getLogger(__name__)

_PRIORITIES = {priority.value.lower(): priority.value for priority in TaskPriority}

class TaskDescriptor(BaseModel):
    """Описание задачи, предложенной AI"""
    text: str = Field(..., min_length=1, max_length=1000)
    priority: str = TaskPriority.MEDIUM.value
    category: Optional[str] = Field(None, max_length=100)

    @field_validator('text', mode='before')
    @classmethod
    def strip_text(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator('priority', mode='before')
    @classmethod
    def normalize_priority(cls, v):
        # Неизвестный приоритет приводится к Medium, а не ломает весь план
        if isinstance(v, str) and v.strip().lower() in _PRIORITIES:
            return _PRIORITIES[v.strip().lower()]
        return TaskPriority.MEDIUM.value

    @field_validator('category', mode='before')
    @classmethod
    def blank_category(cls, v):
        if isinstance(v, str):
            return v.strip() or None
        return None

class PsychoProfileResponse(BaseModel):
    """Психопрофиль в ответе AI (месяц и год добавляет вызывающий код)"""
    model_config = ConfigDict(populate_by_name=True)

    strengths: List[str] = Field(default_factory=list)
    growth_areas: List[str] = Field(default_factory=list, alias='growthAreas')
    productivity_patterns: str = Field("", alias='productivityPatterns')
    overall_summary: str = Field("", alias='overallSummary')

def strip_code_fences(text: str) -> str:
    """Удаление markdown-ограждения ```json ... ``` вокруг JSON"""
    text = text.strip()
    if text.startswith('```json'):
        text = text[7:]
    elif text.startswith('```'):
        text = text[3:]
    else:
        return text
    if text.endswith('```'):
        text = text[:-3]
    return text.strip()

def load_json(text: str) -> Any:
    return json.loads(strip_code_fences(text))

def parse_task_descriptors(payload: Any) -> List[TaskDescriptor]:
    """Список задач из ответа AI; битые элементы отбрасываются.

    Принимается как голый массив, так и объект с ключом "tasks"
    (JSON-режим модели всегда возвращает объект).
    """
    if isinstance(payload, dict):
        payload = payload.get('tasks', [])
    if not isinstance(payload, list):
        logger.warning(f"Unexpected task payload type: {type(payload).__name__}")
        return []

    descriptors = []
    for index, item in enumerate(payload):
        try:
            descriptors.append(TaskDescriptor.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Dropping malformed task #{index} from AI response: {e.errors()[0]['msg']}")
    return descriptors

def parse_psycho_profile(payload: Any) -> Optional[PsychoProfileResponse]:
    try:
        return PsychoProfileResponse.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Malformed psycho profile from AI: {e}")
        return None
