# services/scheduler.py

"""
Планировщик смены дня: после локальной полуночи пересчитывает серию и план
"""

import logging
from typing import Optional

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

ROLLOVER_JOB_ID = 'day_rollover'

class DayRolloverScheduler:
    """Ежедневный пересчет производного состояния после смены даты"""

    def __init__(self, controller, timezone: Optional[str] = None, minute: int = 1):
        self.controller = controller
        self.timezone = pytz.timezone(timezone) if timezone else None
        self.minute = minute
        self.scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def start(self) -> None:
        """Запуск; требует работающего event loop"""
        if self.running:
            return
        if self.timezone is not None:
            self.scheduler = AsyncIOScheduler(timezone=self.timezone)
        else:
            self.scheduler = AsyncIOScheduler()

        self.scheduler.add_job(
            self.rollover,
            CronTrigger(hour=0, minute=self.minute, timezone=self.timezone),
            id=ROLLOVER_JOB_ID,
            replace_existing=True,
            coalesce=True,
            misfire_grace_time=3600
        )
        self.scheduler.start()
        logger.info(f"📅 Планировщик смены дня запущен (00:{self.minute:02d})")

    async def rollover(self) -> None:
        try:
            await self.controller.refresh()
            logger.info("🌅 Новый день: состояние пересчитано")
        except Exception as e:
            logger.error(f"❌ Ошибка пересчета при смене дня: {e}")

    def shutdown(self) -> None:
        if self.running:
            self.scheduler.shutdown(wait=False)
            logger.info("📅 Планировщик остановлен")
        self.scheduler = None

    @classmethod
    def from_config(cls, controller, app_config) -> "DayRolloverScheduler":
        return cls(
            controller,
            timezone=app_config.scheduler.timezone,
            minute=app_config.scheduler.rollover_minute
        )
