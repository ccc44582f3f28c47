#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
FocusFlow - Local Key-Value Store
Версионированное локальное хранилище (SQLite, одна таблица записей)

Все блокирующие вызовы SQLite выполняются в пуле из одного потока:
операции сериализуются, а event loop не блокируется.
"""

import json
import asyncio
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union
import logging

logger = logging.getLogger(__name__)

# ===== EXCEPTIONS =====

class StorageError(Exception):
    """Базовое исключение для ошибок хранилища"""
    pass

class StorageUnavailable(StorageError):
    """Хранилище не удалось открыть"""
    pass

class StorageIOError(StorageError):
    """Ошибка отдельной операции чтения/записи"""
    pass

class _Missing:
    """Маркер отсутствующего ключа"""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False

MISSING = _Missing()

# ===== MIGRATIONS =====

class StoreMigration:
    """Система миграций схемы хранилища (PRAGMA user_version)"""

    CURRENT_VERSION = 1

    @classmethod
    def get_version(cls, connection: sqlite3.Connection) -> int:
        return connection.execute("PRAGMA user_version").fetchone()[0]

    @classmethod
    def migrate(cls, connection: sqlite3.Connection) -> None:
        """Довести схему до текущей версии"""
        version = cls.get_version(connection)

        if version > cls.CURRENT_VERSION:
            raise StorageUnavailable(
                f"Store version {version} is newer than supported {cls.CURRENT_VERSION}"
            )

        if version == cls.CURRENT_VERSION:
            return

        logger.info(f"Migrating store from version {version} to {cls.CURRENT_VERSION}")

        with connection:
            if version < 1:
                cls._migrate_to_1(connection)

            # Добавить другие миграции здесь при необходимости

            connection.execute(f"PRAGMA user_version = {cls.CURRENT_VERSION}")

        logger.info("Store migration completed successfully")

    @classmethod
    def _migrate_to_1(cls, connection: sqlite3.Connection) -> None:
        connection.execute(
            "CREATE TABLE IF NOT EXISTS app_data ("
            "key TEXT PRIMARY KEY, "
            "value TEXT NOT NULL)"
        )

# ===== STORE =====

class KeyValueStore:
    """Долговременное отображение строковый ключ -> JSON-значение"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._connection: Optional[sqlite3.Connection] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._opening: Optional[asyncio.Task] = None
        self._failure: Optional[StorageUnavailable] = None

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    async def open(self) -> None:
        """Ленивая идемпотентная инициализация.

        Конкурентные вызовы ждут одну и ту же инициализацию. Неудачная
        попытка запоминается: операции с записями сразу получают
        StorageUnavailable, повторить открытие можно только явным open().
        """
        if self._connection is not None:
            return

        if self._opening is None:
            self._failure = None
            self._opening = asyncio.ensure_future(self._open())

        opening = self._opening
        try:
            await asyncio.shield(opening)
        except StorageUnavailable as e:
            if self._opening is opening:
                self._opening = None
                self._failure = e
            raise

    async def _ensure_open(self) -> None:
        if self._connection is None and self._failure is not None:
            raise StorageUnavailable(f"Store is unavailable: {self._failure}")
        await self.open()

    async def _open(self) -> None:
        logger.info(f"Opening store at {self.path}")
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="focusflow-store")
        loop = asyncio.get_running_loop()
        try:
            connection = await loop.run_in_executor(executor, self._connect_sync)
        except StorageUnavailable:
            executor.shutdown(wait=False)
            raise
        except Exception as e:
            executor.shutdown(wait=False)
            logger.error(f"Failed to open store: {e}")
            raise StorageUnavailable(f"Store initialization failed: {e}") from e

        self._executor = executor
        self._connection = connection
        logger.info("Store opened")

    def _connect_sync(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(str(self.path), check_same_thread=False, isolation_level=None)
        try:
            StoreMigration.migrate(connection)
        except Exception:
            connection.close()
            raise
        return connection

    async def _run(self, operation: Callable[[sqlite3.Connection], Any], name: str) -> Any:
        await self._ensure_open()
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, operation, self._connection)
        except StorageError:
            raise
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error(f"Store {name} failed: {e}")
            raise StorageIOError(f"{name} failed: {e}") from e

    # ===== ОСНОВНЫЕ ОПЕРАЦИИ =====

    async def get(self, key: str) -> Any:
        """Значение по ключу или MISSING, если ключ никогда не записывался"""
        def operation(connection: sqlite3.Connection) -> Any:
            row = connection.execute("SELECT value FROM app_data WHERE key = ?", (key,)).fetchone()
            if row is None:
                return MISSING
            return json.loads(row[0])

        return await self._run(operation, f"get({key!r})")

    async def set(self, key: str, value: Any) -> None:
        """Upsert записи; возвращается после фиксации транзакции"""
        payload = self._encode(key, value)

        def operation(connection: sqlite3.Connection) -> None:
            connection.execute(
                "INSERT INTO app_data (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, payload)
            )

        await self._run(operation, f"set({key!r})")
        logger.debug(f"Stored key {key!r}")

    async def delete(self, key: str) -> None:
        def operation(connection: sqlite3.Connection) -> None:
            connection.execute("DELETE FROM app_data WHERE key = ?", (key,))

        await self._run(operation, f"delete({key!r})")

    async def get_all(self) -> Dict[str, Any]:
        """Все записи в виде плоского словаря"""
        def operation(connection: sqlite3.Connection) -> Dict[str, Any]:
            rows = connection.execute("SELECT key, value FROM app_data ORDER BY key").fetchall()
            return {key: json.loads(value) for key, value in rows}

        return await self._run(operation, "get_all")

    async def replace_all(self, data: Dict[str, Any]) -> None:
        """Атомарная замена всего содержимого одной транзакцией"""
        if not isinstance(data, dict):
            raise StorageIOError("replace_all expects a mapping")
        rows = [(str(key), self._encode(key, value)) for key, value in data.items()]

        def operation(connection: sqlite3.Connection) -> None:
            connection.execute("BEGIN IMMEDIATE")
            try:
                connection.execute("DELETE FROM app_data")
                connection.executemany("INSERT INTO app_data (key, value) VALUES (?, ?)", rows)
            except Exception:
                connection.execute("ROLLBACK")
                raise
            connection.execute("COMMIT")

        await self._run(operation, "replace_all")
        logger.info(f"Store contents replaced with {len(rows)} records")

    async def close(self) -> None:
        """Закрытие соединения и пула потоков"""
        if self._opening is not None and not self._opening.done():
            try:
                await self._opening
            except StorageUnavailable:
                pass

        if self._connection is not None:
            connection = self._connection
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(self._executor, connection.close)
            self._connection = None

        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

        self._opening = None
        logger.info("Store closed")

    @staticmethod
    def _encode(key: str, value: Any) -> str:
        try:
            return json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageIOError(f"Value for key {key!r} is not JSON-serializable: {e}") from e
