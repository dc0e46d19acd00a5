"""Tests for the local user store."""

from datetime import datetime, timedelta, timezone

import pytest

from glpi_bridge.core.mapper import SyncUserPayload, map_glpi_user
from glpi_bridge.core.sync_engine import UserSyncEngine
from glpi_bridge.database import DatabaseManager, DatabaseService, UserSearch
from glpi_bridge.exceptions import NotFoundError


SYNC_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_payload(name: str, email: str = "", is_active: int = 1, now: datetime = SYNC_TIME) -> SyncUserPayload:
    return map_glpi_user({"id": 0, "name": name, "email": email, "is_active": is_active}, now=now)


class TestDatabaseService:
    """DatabaseService against in-memory SQLite."""

    def setup_method(self):
        """Set up test fixtures."""
        self.db_manager = DatabaseManager("sqlite:///:memory:")
        self.db_manager.create_tables()
        self.service = DatabaseService(self.db_manager)

    def teardown_method(self):
        self.db_manager.close()

    def test_upsert_creates_then_updates(self):
        """Test that the unique glpi_id drives create vs update."""
        created = self.service.upsert_by_glpi_id("1", make_payload("john"))
        updated = self.service.upsert_by_glpi_id("1", make_payload("john", "john@corp.com"))

        assert created.id == updated.id
        assert updated.email == "john@corp.com"
        assert updated.glpi_id == "1"

    def test_update_keeps_original_created_by(self):
        payload = make_payload("john")
        self.service.upsert_by_glpi_id("1", payload.model_copy(update={"created_by": "admin"}))

        updated = self.service.upsert_by_glpi_id("1", make_payload("john"))

        assert updated.created_by == "admin"
        assert updated.updated_by == "glpi-sync"

    def test_date_sync_stored_as_utc(self):
        local = datetime(2024, 5, 1, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        user = self.service.upsert_by_glpi_id("1", make_payload("john", now=local))

        assert user.date_sync == datetime(2024, 5, 1, 12, 0, 0)

    def test_find_by_glpi_id_returns_none_on_miss(self):
        assert self.service.find_by_glpi_id("404") is None

    def test_get_user_raises_not_found(self):
        with pytest.raises(NotFoundError):
            self.service.get_user(12345)

        with pytest.raises(NotFoundError):
            self.service.get_user_by_glpi_id("nope")

    def test_bulk_upsert_is_all_or_nothing(self):
        """Test that a failing item rolls back the whole batch."""
        good = make_payload("ok")
        bad = good.model_copy(update={"name": None})

        with pytest.raises(Exception):
            self.service.bulk_upsert_by_glpi([("1", good), ("2", bad)])

        assert self.service.find_by_glpi_id("1") is None

    def test_bulk_upsert_commits(self):
        results = self.service.bulk_upsert_by_glpi([("1", make_payload("a")), ("2", make_payload("b"))])

        assert [r.glpi_id for r in results] == ["1", "2"]
        assert self.service.get_user_by_glpi_id("2").name == "b"

    def test_response_serializes_camel_case(self):
        user = self.service.upsert_by_glpi_id("1", make_payload("john"))
        data = user.to_api_dict()

        assert data["glpiId"] == "1"
        assert data["isActive"] is True
        assert data["email"] == "john@local.sync"
        assert "created_at" not in data


class TestUserSearch:
    """Local criteria search."""

    def setup_method(self):
        """Set up test fixtures."""
        self.db_manager = DatabaseManager("sqlite:///:memory:")
        self.db_manager.create_tables()
        self.service = DatabaseService(self.db_manager)

        self.service.upsert_by_glpi_id("1", make_payload("John", "john@corp.com", 1))
        self.service.upsert_by_glpi_id("2", make_payload("Johanna", "jo@corp.com", 0))
        self.service.upsert_by_glpi_id(
            "3",
            make_payload("bob", "bob@other.com", 1, now=SYNC_TIME + timedelta(days=2))
        )

    def teardown_method(self):
        self.db_manager.close()

    def test_partial_match_is_case_insensitive(self):
        result = self.service.search_users(UserSearch(name="joh"))

        assert result["total"] == 2

    def test_exact_match(self):
        result = self.service.search_users(UserSearch(name="John", search_type="exact"))

        assert [u.glpi_id for u in result["users"]] == ["1"]

    def test_is_active_filter(self):
        result = self.service.search_users(UserSearch(is_active=False))

        assert [u.glpi_id for u in result["users"]] == ["2"]

    def test_date_sync_range(self):
        result = self.service.search_users(UserSearch(date_sync_from=SYNC_TIME + timedelta(days=1)))

        assert [u.glpi_id for u in result["users"]] == ["3"]

    def test_paging_reports_full_total(self):
        result = self.service.search_users(UserSearch(limit=1, offset=1, sort_by="name", sort_order="ASC"))

        assert result["total"] == 3
        assert [u.name for u in result["users"]] == ["John"]

    def test_unknown_sort_column_falls_back(self):
        result = self.service.search_users(UserSearch(sort_by="password"))

        assert result["total"] == 3

    def test_camel_case_query_keys(self):
        criteria = UserSearch.model_validate({"isActive": "true", "sortBy": "name", "sortOrder": "ASC"})

        assert criteria.is_active is True
        assert criteria.sort_by == "name"


class TestSyncIntoDatabase:
    """Sync engine writing through the real store."""

    def setup_method(self):
        """Set up test fixtures."""
        self.db_manager = DatabaseManager("sqlite:///:memory:")
        self.db_manager.create_tables()
        self.service = DatabaseService(self.db_manager)

    def teardown_method(self):
        self.db_manager.close()

    @pytest.mark.asyncio
    async def test_end_to_end_sync(self):
        """Test two remote users landing in the mirror."""

        class RemoteUsers:
            async def list_users(self, limit=None, offset=None):
                return [
                    {"id": 1, "name": "john", "email": "", "is_active": 1},
                    {"id": 2, "name": "jane", "email": "jane@x.com", "is_active": 0},
                ]

        engine = UserSyncEngine(RemoteUsers(), self.service, fallback_domain="local.sync")

        first = await engine.run()
        second = await engine.run()

        assert (first.imported, first.updated) == (2, 0)
        assert (second.imported, second.updated) == (0, 2)

        john = self.service.get_user_by_glpi_id("1")
        jane = self.service.get_user_by_glpi_id("2")
        assert john.email == "john@local.sync"
        assert john.is_active is True
        assert jane.email == "jane@x.com"
        assert jane.is_active is False
        assert self.service.search_users(UserSearch(limit=50))["total"] == 2
