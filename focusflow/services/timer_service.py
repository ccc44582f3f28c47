"""
Сервис фокус-таймера
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from focusflow.core.models import FocusSession

logger = logging.getLogger(__name__)

def wall_clock_ms() -> int:
    return int(time.time() * 1000)

class FocusTimer:
    """Таймер фокус-сессии.

    Оставшееся время и итоговая длительность считаются по настенным часам:
    если процесс был приостановлен, сессия все равно завершается в срок.
    """

    def __init__(self, controller, duration_minutes: float,
                 on_finish: Optional[Callable[[Optional[FocusSession]], Awaitable[None]]] = None,
                 clock: Callable[[], int] = wall_clock_ms, tick: float = 1.0):
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        self.controller = controller
        self.duration_ms = int(duration_minutes * 60000)
        self.on_finish = on_finish
        self.clock = clock
        self.tick = tick

        self.start_ms: Optional[int] = None
        self.session: Optional[FocusSession] = None
        self._task: Optional[asyncio.Task] = None
        self._finished = False

    @property
    def deadline_ms(self) -> Optional[int]:
        if self.start_ms is None:
            return None
        return self.start_ms + self.duration_ms

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def remaining_seconds(self) -> int:
        if self.start_ms is None:
            return self.duration_ms // 1000
        if self._finished:
            return 0
        return max(0, (self.deadline_ms - self.clock()) // 1000)

    def start(self) -> None:
        """Запуск таймера"""
        if self.is_running():
            raise RuntimeError("Timer is already running")
        self.start_ms = self.clock()
        self._finished = False
        self.session = None
        self._task = asyncio.create_task(self._worker())
        logger.info(f"⏰ Запущена фокус-сессия на {self.duration_ms // 60000} мин")

    async def stop(self) -> Optional[FocusSession]:
        """Досрочная остановка: сессия сохраняется как незавершенная"""
        if self.start_ms is None or self._finished:
            return self.session
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("⏹️ Фокус-сессия остановлена")
        return await self._finish(completed=False)

    async def wait(self) -> Optional[FocusSession]:
        """Дождаться естественного завершения (отмена ожидания не отменяет таймер)"""
        if self._task is not None:
            await asyncio.shield(self._task)
        return self.session

    async def _worker(self) -> None:
        while True:
            remaining_ms = self.deadline_ms - self.clock()
            if remaining_ms <= 0:
                break
            await asyncio.sleep(min(remaining_ms / 1000, self.tick))
        await self._finish(completed=True)

    async def _finish(self, completed: bool) -> Optional[FocusSession]:
        if self._finished:
            return self.session
        self._finished = True

        self.session = await self.controller.record_focus_session(self.start_ms, self.clock(), completed)
        if completed:
            logger.info("✅ Фокус-сессия завершена")

        if self.on_finish is not None:
            try:
                await self.on_finish(self.session)
            except Exception as e:
                logger.error(f"❌ Ошибка обработчика завершения таймера: {e}")
        return self.session
