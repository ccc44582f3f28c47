#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
FocusFlow - Configuration
Централизованная конфигурация с валидацией

Версия: 1.0.0
"""

import os
import sys
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass
from enum import Enum

import pytz

class Environment(Enum):
    """Среды выполнения"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"

class LogLevel(Enum):
    """Уровни логирования"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

@dataclass
class DatabaseConfig:
    """Конфигурация локального хранилища"""
    path: Path
    backup_dir: Path
    max_backups: int = 10
    backup_before_import: bool = True

@dataclass
class AIConfig:
    """Конфигурация AI сервисов"""
    openai_api_key: Optional[str]
    openai_model: str = "gpt-4o-mini"
    openai_analysis_model: str = "gpt-4o"
    openai_max_tokens: int = 1000
    request_timeout: int = 60

@dataclass
class LoggingConfig:
    """Конфигурация логирования"""
    level: LogLevel = LogLevel.INFO
    to_file: bool = True
    format: str = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    max_bytes: int = 10485760  # 10MB
    backup_count: int = 5

@dataclass
class SchedulerConfig:
    """Конфигурация планировщика смены дня"""
    timezone: Optional[str] = None
    rollover_minute: int = 1

def _env_bool(key: str, default: str) -> bool:
    return os.getenv(key, default).lower() == 'true'

class AppConfig:
    """Главный класс конфигурации"""

    def __init__(self):
        self.environment = Environment(os.getenv('ENVIRONMENT', 'development'))
        self._load_config()
        self._validate_config()

    def _load_config(self):
        """Загрузка конфигурации из переменных окружения"""

        # Директории
        self.data_dir = Path(os.getenv('DATA_DIR', 'data'))
        self.export_dir = Path(os.getenv('EXPORT_DIR', 'exports'))
        self.backup_dir = Path(os.getenv('BACKUP_DIR', 'backups'))
        self.log_dir = Path(os.getenv('LOG_DIR', 'logs'))

        # Хранилище
        self.database = DatabaseConfig(
            path=self.data_dir / os.getenv('FOCUSFLOW_DB_FILE', 'focusflow.db'),
            backup_dir=self.backup_dir,
            max_backups=int(os.getenv('MAX_BACKUPS', 10)),
            backup_before_import=_env_bool('BACKUP_BEFORE_IMPORT', 'true')
        )

        # AI конфигурация
        self.ai = AIConfig(
            openai_api_key=os.getenv('OPENAI_API_KEY') or None,
            openai_model=os.getenv('OPENAI_MODEL', 'gpt-4o-mini'),
            openai_analysis_model=os.getenv('OPENAI_ANALYSIS_MODEL', 'gpt-4o'),
            openai_max_tokens=int(os.getenv('OPENAI_MAX_TOKENS', 1000)),
            request_timeout=int(os.getenv('AI_TIMEOUT', 60))
        )

        # Логирование
        self.logging = LoggingConfig(
            level=LogLevel(os.getenv('LOG_LEVEL', 'INFO').upper()),
            to_file=_env_bool('LOG_TO_FILE', 'true'),
            format=os.getenv('LOG_FORMAT', '%(asctime)s [%(levelname)s] %(name)s: %(message)s')
        )

        # Смена дня
        self.scheduler = SchedulerConfig(
            timezone=os.getenv('FOCUSFLOW_TIMEZONE') or None,
            rollover_minute=int(os.getenv('ROLLOVER_MINUTE', 1))
        )

    def _validate_config(self):
        """Валидация конфигурации"""
        errors = []

        if self.database.max_backups < 1:
            errors.append("MAX_BACKUPS должен быть положительным числом")

        if self.ai.openai_max_tokens <= 0:
            errors.append("OPENAI_MAX_TOKENS должен быть положительным числом")

        if self.ai.request_timeout <= 0:
            errors.append("AI_TIMEOUT должен быть положительным числом")

        if not 0 <= self.scheduler.rollover_minute <= 59:
            errors.append("ROLLOVER_MINUTE должен быть от 0 до 59")

        if self.scheduler.timezone:
            try:
                pytz.timezone(self.scheduler.timezone)
            except pytz.UnknownTimeZoneError:
                errors.append(f"Неизвестная временная зона: {self.scheduler.timezone}")

        if errors:
            raise ValueError("Ошибки конфигурации:\n" + "\n".join(f"• {error}" for error in errors))

    def ensure_directories(self):
        """Создание необходимых директорий"""
        directories = [
            self.data_dir,
            self.export_dir,
            self.backup_dir,
            self.log_dir
        ]

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)

    def get_logging_config(self) -> Dict[str, Any]:
        """Получение конфигурации логирования"""
        level = self.logging.level.value

        handler_configs = {
            'console': {
                'class': 'logging.StreamHandler',
                'level': level,
                'formatter': 'default',
                'stream': sys.stderr
            }
        }
        if self.logging.to_file:
            handler_configs['file'] = {
                'class': 'logging.handlers.RotatingFileHandler',
                'level': level,
                'formatter': 'default',
                'filename': str(self.log_dir / f"focusflow_{self.environment.value}.log"),
                'maxBytes': self.logging.max_bytes,
                'backupCount': self.logging.backup_count,
                'encoding': 'utf-8'
            }
        handlers = list(handler_configs)

        return {
            'version': 1,
            'disable_existing_loggers': False,
            'formatters': {
                'default': {
                    'format': self.logging.format,
                    'datefmt': '%Y-%m-%d %H:%M:%S'
                }
            },
            'handlers': handler_configs,
            'loggers': {
                '': {
                    'level': level,
                    'handlers': handlers,
                    'propagate': False
                },
                'httpx': {
                    'level': 'WARNING',
                    'handlers': handlers,
                    'propagate': False
                },
                'openai': {
                    'level': 'WARNING',
                    'handlers': handlers,
                    'propagate': False
                },
                'apscheduler': {
                    'level': 'WARNING',
                    'handlers': handlers,
                    'propagate': False
                }
            }
        }

    @property
    def ai_enabled(self) -> bool:
        return bool(self.ai.openai_api_key)

# Глобальный экземпляр конфигурации
config = AppConfig()

__all__ = [
    'config',
    'AppConfig',
    'Environment',
    'LogLevel',
    'DatabaseConfig',
    'AIConfig',
    'LoggingConfig',
    'SchedulerConfig'
]
