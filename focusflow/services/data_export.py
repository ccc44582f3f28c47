# services/data_export.py

"""
Экспорт и импорт полного снимка хранилища
"""

import gzip
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from focusflow.core.database import KeyValueStore
from focusflow.core.hydration import parse_slot
from focusflow.core.models import ValidationError, STATE_SLOTS
from focusflow.utils.datetime_utils import local_date_str

logger = logging.getLogger(__name__)

EXPORT_PREFIX = "focusflow-backup"

# ===== EXCEPTIONS =====

class SnapshotError(Exception):
    """Базовое исключение для экспорта/импорта"""
    pass

class ImportParseError(SnapshotError):
    """Документ не является корректным JSON"""
    pass

class ImportSchemaError(SnapshotError):
    """В документе нет нужной структуры"""
    pass

# ===== VALIDATION =====

def validate_document(document: Any) -> Dict[str, Any]:
    """Проверка структуры импортируемого документа.

    Документ должен быть объектом и содержать хотя бы один из восьми слотов;
    каждый присутствующий слот обязан пройти типизированную проверку.
    Посторонние ключи (например, theme) принимаются как есть.
    """
    if not isinstance(document, dict):
        raise ImportSchemaError("Backup must be a JSON object")

    present = [slot for slot in STATE_SLOTS if slot in document]
    if not present:
        raise ImportSchemaError("Backup does not contain any FocusFlow data")

    for slot in present:
        try:
            parse_slot(slot, document[slot], strict=True)
        except ValidationError as e:
            raise ImportSchemaError(f"Invalid '{slot}': {e}") from e

    return document

def parse_document(text: Union[str, bytes]) -> Dict[str, Any]:
    try:
        document = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ImportParseError(f"Backup is not valid JSON: {e}") from e
    return validate_document(document)

# ===== BACKUPS =====

class BackupManager:
    """Менеджер резервных копий (gzip JSON)"""

    def __init__(self, backup_dir: Path, max_backups: int = 10):
        self.backup_dir = Path(backup_dir)
        self.max_backups = max_backups

    def create_backup(self, document: Dict[str, Any], label: str = "backup") -> Optional[Path]:
        """Создать резервную копию документа"""
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime('%Y%m%d_%H%M%S_%f')
            backup_path = self.backup_dir / f"{label}_{timestamp}.json.gz"

            with gzip.open(backup_path, 'wt', encoding='utf-8') as f:
                json.dump(document, f, ensure_ascii=False, indent=2)

            logger.info(f"Backup created: {backup_path}")
            self._cleanup_old_backups()
            return backup_path

        except OSError as e:
            logger.error(f"Failed to create backup: {e}")
            return None

    def load_backup(self, backup_path: Path) -> Dict[str, Any]:
        with gzip.open(backup_path, 'rt', encoding='utf-8') as f:
            return json.load(f)

    def list_backups(self) -> List[Dict[str, Any]]:
        """Получить список всех резервных копий, новые первыми"""
        backups = []

        for backup_file in self.backup_dir.glob("*.json.gz"):
            try:
                stat = backup_file.stat()
                backups.append({
                    'name': backup_file.name,
                    'path': str(backup_file),
                    'size_kb': round(stat.st_size / 1024, 2),
                    'modified': datetime.fromtimestamp(stat.st_mtime).isoformat()
                })
            except OSError as e:
                logger.warning(f"Failed to get info for backup {backup_file}: {e}")

        return sorted(backups, key=lambda x: x['name'], reverse=True)

    def _cleanup_old_backups(self) -> None:
        """Удалить старые резервные копии сверх лимита"""
        backups = sorted(self.backup_dir.glob("*.json.gz"), key=lambda p: p.name, reverse=True)
        for backup in backups[self.max_backups:]:
            try:
                backup.unlink()
                logger.info(f"Removed old backup: {backup}")
            except OSError as e:
                logger.error(f"Failed to remove old backup {backup}: {e}")

# ===== EXPORT / IMPORT =====

class SnapshotService:
    """Выгрузка всего хранилища в один документ и атомарное восстановление"""

    def __init__(self, store: KeyValueStore, backup_manager: Optional[BackupManager] = None):
        self.store = store
        self.backup_manager = backup_manager

    async def export_document(self) -> Dict[str, Any]:
        return await self.store.get_all()

    async def export_to_file(self, export_dir: Path, now: Optional[datetime] = None) -> Path:
        """Запись снимка в focusflow-backup-YYYY-MM-DD.json"""
        document = await self.export_document()
        export_dir = Path(export_dir)
        export_dir.mkdir(parents=True, exist_ok=True)

        filename = export_dir / f"{EXPORT_PREFIX}-{local_date_str(now or datetime.now())}.json"
        with open(filename, "w", encoding="utf-8") as f:
            json.dump(document, f, ensure_ascii=False, indent=2)

        logger.info(f"📤 Экспорт сохранен: {filename}")
        return filename

    async def import_document(self, text: Union[str, bytes]) -> Dict[str, Any]:
        """Разбор, проверка и полная замена содержимого хранилища.

        При любой ошибке разбора или структуры в хранилище ничего не пишется.
        """
        document = parse_document(text)

        if self.backup_manager is not None:
            current = await self.store.get_all()
            if current:
                self.backup_manager.create_backup(current, label="pre_import")

        await self.store.replace_all(document)
        logger.info(f"📥 Импортировано записей: {len(document)}")
        return document

    async def import_file(self, path: Path) -> Dict[str, Any]:
        with open(path, "rb") as f:
            return await self.import_document(f.read())
