#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
FocusFlow - Command Line Interface
Использование: python -m focusflow <команда> [аргументы]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from focusflow.config import config
from focusflow.core.controller import FocusFlowController
from focusflow.core.database import KeyValueStore, StorageError, StorageUnavailable
from focusflow.core.engine import group_by_priority
from focusflow.core.models import TaskPriority, ValidationError
from focusflow.services.ai_service import OpenAIContentGenerator
from focusflow.services.data_export import BackupManager, SnapshotError, SnapshotService
from focusflow.services.progress import daily_progress, progress_bar, streak_emoji, tasks_progress_bar
from focusflow.services.scheduler import DayRolloverScheduler
from focusflow.services.timer_service import FocusTimer
from focusflow.utils.datetime_utils import now_local
from focusflow.utils.logger import setup_logging

logger = logging.getLogger(__name__)

PRIORITY_ICONS = {'High': '🔴', 'Medium': '🟡', 'Low': '🟢'}

# ===== СБОРКА =====

def build_controller(app_config=config) -> FocusFlowController:
    """Контроллер со всеми зависимостями из конфигурации"""
    store = KeyValueStore(app_config.database.path)
    backups = None
    if app_config.database.backup_before_import:
        backups = BackupManager(app_config.backup_dir, app_config.database.max_backups)
    return FocusFlowController(
        store=store,
        generator=OpenAIContentGenerator.from_config(app_config),
        snapshots=SnapshotService(store, backups),
        clock=lambda: now_local(app_config.scheduler.timezone)
    )

def resolve_task_id(controller: FocusFlowController, prefix: str) -> Optional[str]:
    """Полный id задачи сегодняшнего плана по уникальному префиксу"""
    plan = controller.state.plan_for(controller.today())
    if plan is None:
        return None
    matches = [task.id for task in plan.tasks if task.id.startswith(prefix)]
    return matches[0] if len(matches) == 1 else None

# ===== ВЫВОД =====

def print_status(controller: FocusFlowController) -> None:
    state = controller.state
    if state.user is None:
        print("👋 Добро пожаловать в FocusFlow! Начните с: focusflow onboard ИМЯ")
        return

    stats = daily_progress(state, controller.now(), config.scheduler.timezone)
    print(f"👤 {state.user.name}")
    print(f"🎯 Цель: {state.goal.text if state.goal else 'не задана'}")
    if state.goal:
        print(f"   День {stats.goal_day}")
    print(f"{streak_emoji(state.streak)} Серия: {state.streak} дн.")
    print(f"✅ Выполнено сегодня: {stats.tasks_completed}/{stats.tasks_total}")
    print(f"⏱️ Фокус сегодня: {stats.focus_minutes} мин")
    print(f"💰 Очки: {stats.points}/30")
    print(progress_bar(int(stats.percent)))
    print(stats.message)

def print_plan(controller: FocusFlowController) -> None:
    plan = controller.state.plan_for(controller.today())
    if plan is None or not plan.tasks:
        print("📭 На сегодня задач нет")
        return

    print(f"📋 План на {plan.date}")
    for priority, tasks in group_by_priority(plan).items():
        if not tasks:
            continue
        print(f"\n{PRIORITY_ICONS[priority]} {priority}")
        for task in tasks:
            mark = "☑️" if task.completed else "⬜️"
            category = f" [{task.category}]" if task.category else ""
            print(f"  {mark} {task.text}{category}  ({task.id[:8]})")
    print()
    print(tasks_progress_bar(plan.completed_count, len(plan.tasks)))

# ===== КОМАНДЫ =====

async def run_focus(controller: FocusFlowController, minutes: float) -> None:
    timer = FocusTimer(controller, minutes)
    timer.start()
    print(f"⏰ Фокус на {minutes:g} мин. Ctrl+C - остановить досрочно")
    try:
        session = await timer.wait()
    except asyncio.CancelledError:
        session = await timer.stop()
        if session is None:
            print("\n⏹️ Остановлено. Сессии короче минуты не сохраняются")
        else:
            print(f"\n⏹️ Остановлено, сохранено {session.duration} мин")
        raise

    if session is not None:
        print(f"✅ Сессия завершена: {session.duration} мин")
    print(f"☕ {await controller.generator.suggest_rest()}")

async def run_coach(controller: FocusFlowController, message: str) -> None:
    shown = ""
    async for text in controller.stream_coach_reply(message):
        # Ответ растет по фрагментам; при ошибке приходит текст извинения
        if text.startswith(shown):
            sys.stdout.write(text[len(shown):])
        else:
            sys.stdout.write("\n" + text)
        sys.stdout.flush()
        shown = text
    print()

async def run_forever(controller: FocusFlowController) -> None:
    """Фоновый режим: пересчет состояния после каждой полуночи"""
    scheduler = DayRolloverScheduler.from_config(controller, config)
    controller.add_listener(lambda state: logger.debug(f"State changed: streak={state.streak}"))
    scheduler.start()
    print("🚀 FocusFlow работает. Ctrl+C - выход")
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown()

async def dispatch(args, controller: FocusFlowController) -> int:
    command = args.command

    if command == 'import':
        if not args.yes:
            answer = input("⚠️ Импорт заменит все текущие данные. Продолжить? [y/N] ")
            if answer.strip().lower() not in ('y', 'yes', 'д', 'да'):
                print("Отменено")
                return 0
        try:
            await controller.import_snapshot(Path(args.file).read_bytes())
        except SnapshotError as e:
            print(f"❌ Ошибка импорта: {e}")
            return 1
        print("📥 Данные импортированы")
        print_status(controller)
        return 0

    if command == 'export':
        path = await controller.export_snapshot(Path(args.dir) if args.dir else config.export_dir)
        print(f"📤 Экспорт сохранен: {path}")
        return 0

    if command == 'onboard':
        if controller.state.user is not None:
            print(f"Профиль уже создан: {controller.state.user.name}")
            return 1
        user = await controller.onboard(args.name)
        print(f"👋 Привет, {user.name}! Теперь задайте цель: focusflow goal \"...\"")
        return 0

    if command == 'status':
        print_status(controller)
        return 0

    if controller.state.user is None:
        print("❌ Сначала создайте профиль: focusflow onboard ИМЯ")
        return 1

    if command == 'rename':
        user = await controller.rename_user(args.name)
        print(f"✏️ Имя обновлено: {user.name}")
    elif command == 'goal':
        print("🧠 Составляю стратегию и план первого дня...")
        goal = await controller.set_goal(args.text)
        print(f"🎯 {goal.text}\n\n{goal.strategy}\n")
        print_plan(controller)
    elif command == 'clear-goal':
        await controller.clear_goal()
        print("🗑️ Цель и все планы удалены")
    elif command == 'plan':
        print_plan(controller)
    elif command == 'add':
        task = await controller.add_task(args.text, priority=args.priority, category=args.category)
        print(f"➕ Добавлено: {task.text} ({task.id[:8]})")
    elif command in ('toggle', 'delete'):
        task_id = resolve_task_id(controller, args.id)
        if task_id is None:
            print(f"❌ Задача {args.id} не найдена в сегодняшнем плане")
            return 1
        if command == 'toggle':
            task = await controller.toggle_task(task_id)
            print(f"{'☑️' if task and task.completed else '⬜️'} {task.text if task else task_id}")
            print(f"{streak_emoji(controller.state.streak)} Серия: {controller.state.streak}")
        else:
            await controller.delete_task(task_id)
            print("🗑️ Задача удалена")
    elif command == 'focus':
        await run_focus(controller, args.minutes)
    elif command == 'coach':
        await run_coach(controller, args.message)
    elif command == 'summary':
        print(await controller.daily_summary())
    elif command == 'profile':
        if controller.profile_is_stale() or args.refresh:
            print("🔍 Анализирую планы за месяц...")
            if await controller.generate_psycho_profile() is None:
                print("❌ Не удалось составить профиль")
                return 1
        profile = controller.state.psycho_profile
        print(f"🧩 Профиль: {profile.month} {profile.year}\n")
        print("Сильные стороны:\n" + "\n".join(f"  • {s}" for s in profile.strengths))
        print("Зоны роста:\n" + "\n".join(f"  • {s}" for s in profile.growth_areas))
        print(f"\n{profile.productivity_patterns}\n\n{profile.overall_summary}")
    elif command == 'run':
        await run_forever(controller)
    return 0

async def run(args, controller: Optional[FocusFlowController] = None) -> int:
    controller = controller or build_controller()
    try:
        try:
            await controller.store.open()
        except StorageUnavailable as e:
            # Работаем с состоянием по умолчанию только в памяти
            logger.error(f"💥 Хранилище недоступно: {e}")
            print(f"⚠️ Хранилище недоступно ({e}). Данные не будут сохранены.")
        await controller.load()
        return await dispatch(args, controller)
    finally:
        await controller.store.close()

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='focusflow', description='FocusFlow - цели, планы дня и фокус')
    parser.add_argument('--dev', action='store_true', help='Режим разработки (DEBUG логи)')
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('status', help='Прогресс за сегодня')
    sub.add_parser('plan', help='План на сегодня')
    sub.add_parser('clear-goal', help='Удалить цель и все планы')
    sub.add_parser('summary', help='Итоги дня от коуча')
    sub.add_parser('run', help='Работать в фоне с пересчетом после полуночи')

    p = sub.add_parser('onboard', help='Создать профиль')
    p.add_argument('name')
    p = sub.add_parser('rename', help='Изменить имя')
    p.add_argument('name')
    p = sub.add_parser('goal', help='Задать новую цель')
    p.add_argument('text')
    p = sub.add_parser('add', help='Добавить задачу в сегодняшний план')
    p.add_argument('text')
    p.add_argument('--priority', default=TaskPriority.MEDIUM.value,
                   choices=[priority.value for priority in TaskPriority])
    p.add_argument('--category')
    p = sub.add_parser('toggle', help='Отметить задачу (id или префикс id)')
    p.add_argument('id')
    p = sub.add_parser('delete', help='Удалить задачу (id или префикс id)')
    p.add_argument('id')
    p = sub.add_parser('focus', help='Фокус-сессия')
    p.add_argument('minutes', type=float, nargs='?', default=25)
    p = sub.add_parser('coach', help='Написать AI коучу')
    p.add_argument('message')
    p = sub.add_parser('profile', help='Психопрофиль за месяц')
    p.add_argument('--refresh', action='store_true', help='Пересоставить профиль')
    p = sub.add_parser('export', help='Выгрузить все данные в JSON')
    p.add_argument('--dir', help='Папка для файла (по умолчанию EXPORT_DIR)')
    p = sub.add_parser('import', help='Загрузить данные из JSON (заменяет текущие)')
    p.add_argument('file')
    p.add_argument('--yes', action='store_true', help='Не спрашивать подтверждение')
    return parser

def main(argv=None) -> int:
    """Главная функция запуска"""
    args = build_parser().parse_args(argv)

    config.ensure_directories()
    setup_logging(config)
    if args.dev:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\n👋 Пока!")
        return 0
    except (StorageError, ValidationError) as e:
        logger.error(f"💥 Ошибка: {e}")
        print(f"❌ {e}")
        return 1

if __name__ == "__main__":
    sys.exit(main())
