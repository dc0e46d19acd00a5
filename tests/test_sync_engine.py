"""Tests for the user sync engine."""

from typing import Dict, List, Optional, Sequence, Tuple
from unittest.mock import AsyncMock

import pytest

from glpi_bridge.core.mapper import SyncUserPayload
from glpi_bridge.core.sync_engine import SyncAction, SyncReport, UserSyncEngine
from glpi_bridge.exceptions import SyncEngineError, ValidationError


class InMemoryUserStore:
    """Dictionary-backed store that records every write."""

    def __init__(self, fail_on: Optional[str] = None):
        self.users: Dict[str, SyncUserPayload] = {}
        self.writes: List[str] = []
        self.fail_on = fail_on

    def find_by_glpi_id(self, glpi_id: str) -> Optional[SyncUserPayload]:
        return self.users.get(glpi_id)

    def upsert_by_glpi_id(self, glpi_id: str, payload: SyncUserPayload) -> SyncUserPayload:
        if glpi_id == self.fail_on:
            raise RuntimeError(f"write failed for {glpi_id}")
        self.writes.append(glpi_id)
        self.users[glpi_id] = payload
        return payload

    def bulk_upsert_by_glpi(self, items: Sequence[Tuple[str, SyncUserPayload]]) -> List[SyncUserPayload]:
        staged = dict(self.users)
        for glpi_id, payload in items:
            if glpi_id == self.fail_on:
                raise RuntimeError(f"write failed for {glpi_id}")
            staged[glpi_id] = payload
        self.users = staged
        self.writes.extend(glpi_id for glpi_id, _ in items)
        return [payload for _, payload in items]


REMOTE_USERS = [
    {"id": 1, "name": "john", "email": "", "is_active": 1},
    {"id": 2, "name": "jane", "email": "jane@x.com", "is_active": 0},
]


class TestUserSyncEngine:
    """Sync classification, persistence and failure handling."""

    def setup_method(self):
        """Set up test fixtures."""
        self.client = AsyncMock()
        self.client.list_users.return_value = list(REMOTE_USERS)
        self.store = InMemoryUserStore()
        self.engine = UserSyncEngine(self.client, self.store, fallback_domain="local.sync")

    @pytest.mark.asyncio
    async def test_initial_sync_imports_everything(self):
        """Test syncing two new users into an empty store."""
        report = await self.engine.run()

        assert report.to_dict() == {
            "dryRun": False,
            "total": 2,
            "imported": 2,
            "updated": 0,
            "touched": [
                {"glpiId": "1", "action": "created"},
                {"glpiId": "2", "action": "created"},
            ],
        }
        assert self.store.users["1"].email == "john@local.sync"
        assert self.store.users["1"].is_active is True
        assert self.store.users["2"].email == "jane@x.com"
        assert self.store.users["2"].is_active is False
        assert self.store.users["1"].created_by == "glpi-sync"

    @pytest.mark.asyncio
    async def test_second_sync_updates_everything(self):
        """Test that re-running over unchanged data only updates."""
        await self.engine.run()
        report = await self.engine.run()

        assert report.imported == 0
        assert report.updated == 2
        assert len(self.store.users) == 2
        assert [t.action for t in report.touched] == [SyncAction.UPDATED, SyncAction.UPDATED]

    @pytest.mark.asyncio
    async def test_dry_run_does_not_write(self):
        """Test that a dry run classifies without touching the store."""
        report = await self.engine.run(dry_run=True)

        assert report.dry_run is True
        assert report.imported == 2
        assert self.store.writes == []
        assert self.store.users == {}

    @pytest.mark.asyncio
    async def test_dry_run_predicts_real_run(self):
        """Test that dry-run classifications match a subsequent real run."""
        await self.engine.run()
        self.client.list_users.return_value = list(REMOTE_USERS) + [
            {"id": 3, "name": "new", "email": "new@x.com", "is_active": 1}
        ]

        preview = await self.engine.run(dry_run=True)
        actual = await self.engine.run()

        assert [t.to_dict() for t in preview.touched] == [t.to_dict() for t in actual.touched]
        assert (preview.imported, preview.updated) == (1, 2)

    @pytest.mark.asyncio
    async def test_duplicate_remote_id_last_value_wins(self):
        """Test that a repeated id in one batch creates then updates."""
        self.client.list_users.return_value = [
            {"id": 5, "name": "first", "email": "a@x.com", "is_active": 1},
            {"id": 5, "name": "second", "email": "b@x.com", "is_active": 1},
        ]

        preview = await self.engine.run(dry_run=True)
        report = await self.engine.run()

        assert [t.action for t in report.touched] == [SyncAction.CREATED, SyncAction.UPDATED]
        assert [t.to_dict() for t in preview.touched] == [t.to_dict() for t in report.touched]
        assert self.store.users["5"].name == "second"
        assert len(self.store.users) == 1

    @pytest.mark.asyncio
    async def test_touched_follows_remote_order(self):
        self.client.list_users.return_value = list(reversed(REMOTE_USERS))

        report = await self.engine.run()

        assert [t.glpi_id for t in report.touched] == ["2", "1"]
        assert self.store.writes == ["2", "1"]

    @pytest.mark.asyncio
    async def test_write_failure_aborts_batch(self):
        """Test that a failing write stops the sync and keeps earlier writes."""
        self.store.fail_on = "1"
        self.client.list_users.return_value = [
            {"id": 9, "name": "before", "is_active": 1},
            {"id": 1, "name": "john", "is_active": 1},
            {"id": 2, "name": "jane", "is_active": 1},
        ]

        with pytest.raises(RuntimeError):
            await self.engine.run()

        assert self.store.writes == ["9"]
        assert "2" not in self.store.users

    @pytest.mark.asyncio
    async def test_malformed_record_aborts_batch(self):
        self.client.list_users.return_value = [{"name": "missing-id"}]

        with pytest.raises(ValidationError):
            await self.engine.run()

    @pytest.mark.asyncio
    async def test_atomic_failure_writes_nothing(self):
        """Test that atomic mode is all-or-nothing."""
        self.store.fail_on = "2"

        with pytest.raises(RuntimeError):
            await self.engine.run(atomic=True)

        assert self.store.users == {}

    @pytest.mark.asyncio
    async def test_atomic_success_reports_like_sequential(self):
        report = await self.engine.run(atomic=True)

        assert report.imported == 2
        assert set(self.store.users) == {"1", "2"}

    @pytest.mark.asyncio
    async def test_limit_and_offset_forwarded(self):
        await self.engine.run(limit=20, offset=40)

        self.client.list_users.assert_awaited_once_with(limit=20, offset=40)

    @pytest.mark.asyncio
    async def test_non_list_payload_rejected(self):
        self.client.list_users.return_value = {"error": "unexpected"}

        with pytest.raises(SyncEngineError):
            await self.engine.run()

    @pytest.mark.asyncio
    async def test_remote_failure_propagates(self):
        self.client.list_users.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await self.engine.run()

        assert self.store.writes == []


class TestSyncReport:
    """Report accounting."""

    def test_record_counts(self):
        report = SyncReport(dry_run=False, total=3)
        report.record("1", SyncAction.CREATED)
        report.record("2", SyncAction.UPDATED)
        report.record("3", SyncAction.CREATED)

        assert report.imported == 2
        assert report.updated == 1
        assert report.imported + report.updated == len(report.touched)
