#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
FocusFlow - State Hydration
Загрузка восьми слотов состояния при старте с типизированными значениями по умолчанию
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, TypeVar
import logging

from focusflow.core.database import KeyValueStore, MISSING
from focusflow.core.models import (
    AppState, ChatMessage, DailyPlan, FocusSession, Goal, PsychoProfile, User,
    ValidationError, validate_int, STATE_SLOTS,
    SLOT_USER, SLOT_GOAL, SLOT_DAILY_PLANS, SLOT_STREAK, SLOT_LAST_LOGIN,
    SLOT_FOCUS_SESSIONS, SLOT_COACH_HISTORY, SLOT_PSYCHO_PROFILE,
)
from focusflow.utils.datetime_utils import is_valid_date

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ===== TYPED SLOT PARSERS =====

def parse_entity(value: Any, factory: Callable[[Any], T]) -> Optional[T]:
    """Одиночная сущность или None"""
    if value is None:
        return None
    return factory(value)

def parse_collection(value: Any, factory: Callable[[Any], T], slot: str, strict: bool = True) -> List[T]:
    """Коллекция сущностей; в нестрогом режиме битые элементы пропускаются"""
    if not isinstance(value, list):
        raise ValidationError(f"{slot} must be a list")

    items = []
    for index, raw in enumerate(value):
        try:
            items.append(factory(raw))
        except ValidationError as e:
            if strict:
                raise ValidationError(f"{slot}[{index}]: {e}") from e
            logger.warning(f"Dropping malformed {slot}[{index}]: {e}")
    return items

def parse_daily_plans(value: Any, strict: bool = True) -> List[DailyPlan]:
    """Планы дней; дата уникальна в коллекции"""
    plans = parse_collection(value, DailyPlan.from_dict, SLOT_DAILY_PLANS, strict=strict)

    seen = {}
    for index, plan in enumerate(plans):
        if plan.date in seen:
            if strict:
                raise ValidationError(f"{SLOT_DAILY_PLANS}: duplicate plan date {plan.date}")
            logger.warning(f"Duplicate plan for {plan.date}, keeping the last one")
        seen[plan.date] = index

    if len(seen) == len(plans):
        return plans
    keep = set(seen.values())
    return [plan for index, plan in enumerate(plans) if index in keep]

def parse_last_login(value: Any) -> str:
    if value == "":
        return ""
    if not isinstance(value, str) or not is_valid_date(value):
        raise ValidationError(f"{SLOT_LAST_LOGIN} must be a YYYY-MM-DD date or empty string")
    return value

def parse_slot(slot: str, value: Any, strict: bool = True) -> Any:
    """Преобразование сырого JSON-значения слота в типизированное"""
    if slot == SLOT_USER:
        return parse_entity(value, User.from_dict)
    if slot == SLOT_GOAL:
        return parse_entity(value, Goal.from_dict)
    if slot == SLOT_DAILY_PLANS:
        return parse_daily_plans(value, strict=strict)
    if slot == SLOT_STREAK:
        return validate_int(value, slot)
    if slot == SLOT_LAST_LOGIN:
        return parse_last_login(value)
    if slot == SLOT_FOCUS_SESSIONS:
        return parse_collection(value, FocusSession.from_dict, slot, strict=strict)
    if slot == SLOT_COACH_HISTORY:
        return parse_collection(value, ChatMessage.from_dict, slot, strict=strict)
    if slot == SLOT_PSYCHO_PROFILE:
        return parse_entity(value, PsychoProfile.from_dict)
    raise KeyError(slot)

SLOT_DEFAULTS = {
    SLOT_USER: lambda: None,
    SLOT_GOAL: lambda: None,
    SLOT_DAILY_PLANS: list,
    SLOT_STREAK: lambda: 0,
    SLOT_LAST_LOGIN: lambda: "",
    SLOT_FOCUS_SESSIONS: list,
    SLOT_COACH_HISTORY: list,
    SLOT_PSYCHO_PROFILE: lambda: None,
}

SLOT_FIELDS = {
    SLOT_USER: 'user',
    SLOT_GOAL: 'goal',
    SLOT_DAILY_PLANS: 'daily_plans',
    SLOT_STREAK: 'streak',
    SLOT_LAST_LOGIN: 'last_login',
    SLOT_FOCUS_SESSIONS: 'focus_sessions',
    SLOT_COACH_HISTORY: 'coach_history',
    SLOT_PSYCHO_PROFILE: 'psycho_profile',
}

def state_from_slots(raw: Dict[str, Any]) -> AppState:
    """Нестрогая сборка AppState: битый слот заменяется значением по умолчанию"""
    values = {}
    for slot in STATE_SLOTS:
        value = raw.get(slot, MISSING)
        if value is MISSING:
            values[SLOT_FIELDS[slot]] = SLOT_DEFAULTS[slot]()
            continue
        try:
            values[SLOT_FIELDS[slot]] = parse_slot(slot, value, strict=False)
        except ValidationError as e:
            logger.error(f"Stored slot {slot!r} is malformed, using default: {e}")
            values[SLOT_FIELDS[slot]] = SLOT_DEFAULTS[slot]()
    return AppState(**values)

# ===== HYDRATOR =====

class StateHydrator:
    """Загрузка всех известных слотов из хранилища"""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def hydrate(self) -> AppState:
        """Восемь независимых чтений выполняются конкурентно; ошибка одного
        чтения логируется и трактуется как отсутствие значения."""
        results = await asyncio.gather(
            *(self.store.get(slot) for slot in STATE_SLOTS),
            return_exceptions=True
        )

        raw = {}
        for slot, result in zip(STATE_SLOTS, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                logger.error(f"Failed to load slot {slot!r}: {result}")
                continue
            if result is not MISSING:
                raw[slot] = result

        state = state_from_slots(raw)
        logger.info(
            f"State hydrated: user={'yes' if state.user else 'no'}, "
            f"goal={'yes' if state.goal else 'no'}, plans={len(state.daily_plans)}, "
            f"streak={state.streak}"
        )
        return state
