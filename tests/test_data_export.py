"""
Tests for snapshot export/import and backups (focusflow/services/data_export.py).
"""

import json
from datetime import datetime

import pytest

from focusflow.core.hydration import StateHydrator
from focusflow.services.data_export import (
    BackupManager, ImportParseError, ImportSchemaError, SnapshotService, parse_document,
)

from tests.helpers import make_plan, make_task, seed

FULL_DOCUMENT = {
    "user": {"name": "Alex", "createdAt": 1710000000000},
    "goal": {"text": "Run a marathon", "strategy": "Build slowly.", "createdAt": 1710000000000},
    "dailyPlans": [
        make_plan("2024-03-14", make_task("Run 5k", completed=True, priority="High")).to_dict(),
        make_plan("2024-03-15", make_task("Stretch")).to_dict(),
    ],
    "streak": 3,
    "lastLogin": "2024-03-15",
    "focusSessions": [{"id": "s1", "startTime": 1710000000000, "duration": 25, "completed": True}],
    "coachHistory": [{"role": "user", "parts": [{"text": "Hi"}]}],
    "psychoProfile": None,
    "theme": "dark",
}


class TestParseDocument:

    def test_invalid_json(self):
        with pytest.raises(ImportParseError):
            parse_document("{oops")

    def test_not_an_object(self):
        with pytest.raises(ImportSchemaError):
            parse_document("[1, 2, 3]")

    def test_no_known_slots(self):
        with pytest.raises(ImportSchemaError):
            parse_document(json.dumps({"theme": "dark"}))

    def test_missing_daily_plans_is_allowed(self):
        document = parse_document(json.dumps({"user": {"name": "Alex", "createdAt": 1}}))
        assert "dailyPlans" not in document

    def test_extra_keys_are_kept(self):
        document = parse_document(json.dumps(FULL_DOCUMENT))
        assert document["theme"] == "dark"

    @pytest.mark.parametrize("slot, value", [
        ("dailyPlans", {"date": "2024-03-15"}),
        ("dailyPlans", [{"date": "15/03/2024", "tasks": []}]),
        ("dailyPlans", [{"date": "2024-03-15", "tasks": [{"id": "a", "text": "x", "createdAt": 1, "priority": "Urgent"}]}]),
        ("streak", -1),
        ("lastLogin", 20240315),
        ("coachHistory", [{"role": "assistant", "parts": [{"text": "Hi"}]}]),
    ])
    def test_bad_slot_is_rejected(self, slot, value):
        with pytest.raises(ImportSchemaError):
            parse_document(json.dumps({slot: value}))

    def test_accepts_bytes(self):
        assert parse_document(json.dumps(FULL_DOCUMENT).encode("utf-8"))["streak"] == 3


class TestSnapshotService:

    @pytest.mark.asyncio
    async def test_export_import_round_trip(self, store, tmp_path):
        await seed(store, **FULL_DOCUMENT)
        service = SnapshotService(store)

        path = await service.export_to_file(tmp_path / "exports", now=datetime(2024, 3, 15, 20, 0))
        assert path.name == "focusflow-backup-2024-03-15.json"
        before = await StateHydrator(store).hydrate()

        await store.replace_all({"streak": 99})
        await service.import_file(path)

        assert await store.get_all() == FULL_DOCUMENT
        assert await StateHydrator(store).hydrate() == before

    @pytest.mark.asyncio
    async def test_failed_import_writes_nothing(self, store, backup_manager):
        await seed(store, streak=2)
        service = SnapshotService(store, backup_manager)

        with pytest.raises(ImportSchemaError):
            await service.import_document(json.dumps({"streak": "two"}))

        assert await store.get_all() == {"streak": 2}
        assert backup_manager.list_backups() == []

    @pytest.mark.asyncio
    async def test_import_makes_safety_backup(self, store, backup_manager):
        await seed(store, streak=7)
        service = SnapshotService(store, backup_manager)

        await service.import_document(json.dumps({"streak": 1}))

        backups = backup_manager.list_backups()
        assert len(backups) == 1
        assert backups[0]["name"].startswith("pre_import_")
        assert backup_manager.load_backup(backups[0]["path"]) == {"streak": 7}

    @pytest.mark.asyncio
    async def test_import_into_empty_store_skips_backup(self, store, backup_manager):
        await SnapshotService(store, backup_manager).import_document(json.dumps({"streak": 1}))
        assert backup_manager.list_backups() == []


class TestBackupManager:

    def test_keeps_at_most_max_backups(self, tmp_path):
        manager = BackupManager(tmp_path / "backups", max_backups=2)
        for index in range(4):
            manager.create_backup({"streak": index})

        backups = manager.list_backups()
        assert len(backups) == 2
        assert manager.load_backup(backups[0]["path"]) == {"streak": 3}

    def test_list_without_directory(self, tmp_path):
        assert BackupManager(tmp_path / "missing").list_backups() == []
