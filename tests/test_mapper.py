"""Tests for mapping remote GLPI users onto local records."""

from datetime import datetime, timezone

import pytest

from glpi_bridge.core.mapper import (
    RemoteUserRecord,
    ensure_email,
    is_active_flag,
    map_glpi_user,
    parse_remote_user
)
from glpi_bridge.exceptions import ValidationError


SYNC_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestEnsureEmail:
    """Email fallback synthesis."""

    def test_blank_email_uses_fallback_domain(self):
        assert ensure_email("john", "", "local.sync") == "john@local.sync"
        assert ensure_email("john", None, "local.sync") == "john@local.sync"
        assert ensure_email("john", "   ", "corp.example") == "john@corp.example"

    def test_present_email_is_trimmed(self):
        assert ensure_email("jane", "  jane@x.com ") == "jane@x.com"


class TestIsActiveFlag:
    """Strict activity flag conversion."""

    @pytest.mark.parametrize("value", [1, True, 1.0])
    def test_active_values(self, value):
        assert is_active_flag(value) is True

    @pytest.mark.parametrize("value", [0, False, None, "1", "true", 2, 0.5, 1.5])
    def test_everything_else_is_inactive(self, value):
        assert is_active_flag(value) is False


class TestMapGlpiUser:
    """Remote record to local payload mapping."""

    def test_maps_all_fields(self):
        """Test a fully populated record."""
        payload = map_glpi_user(
            {
                "id": 7,
                "name": "jdoe",
                "email": "jdoe@example.com",
                "phone": "123",
                "phone2": "456",
                "mobile": "789",
                "realname": "Doe",
                "firstname": "John",
                "picture": "pic.png",
                "nickname": "JD",
                "is_active": 1,
                "entities_id": 0,
            },
            fallback_domain="local.sync",
            provenance_tag="glpi-sync",
            now=SYNC_TIME
        )

        assert payload.name == "jdoe"
        assert payload.email == "jdoe@example.com"
        assert payload.phone == "123"
        assert payload.phone2 == "456"
        assert payload.mobile == "789"
        assert payload.realname == "Doe"
        assert payload.firstname == "John"
        assert payload.picture == "pic.png"
        assert payload.nickname == "JD"
        assert payload.is_active is True
        assert payload.date_sync == SYNC_TIME
        assert payload.created_by == "glpi-sync"
        assert payload.updated_by == "glpi-sync"

    def test_missing_optional_fields_are_absent(self):
        """Test that absent remote fields map to None."""
        payload = map_glpi_user({"id": 1, "name": "john", "email": "", "is_active": 1}, now=SYNC_TIME)

        assert payload.email == "john@local.sync"
        assert payload.phone is None
        assert payload.realname is None
        assert payload.is_active is True

    def test_mapping_is_pure(self):
        """Test that identical input yields identical output."""
        raw = {"id": 2, "name": "jane", "email": "jane@x.com", "is_active": 0}

        assert map_glpi_user(raw, now=SYNC_TIME) == map_glpi_user(raw, now=SYNC_TIME)
        assert map_glpi_user(raw, now=SYNC_TIME).is_active is False

    def test_float_one_is_active(self):
        payload = map_glpi_user({"id": 5, "name": "eve", "is_active": 1.0}, now=SYNC_TIME)

        assert payload.is_active is True

    def test_numeric_phone_is_stringified(self):
        payload = map_glpi_user({"id": 3, "name": "bob", "phone": 5551234}, now=SYNC_TIME)

        assert payload.phone == "5551234"

    def test_defaults_to_current_time(self):
        before = datetime.now(timezone.utc)
        payload = map_glpi_user({"id": 4, "name": "amy"})

        assert payload.date_sync >= before


class TestParseRemoteUser:
    """Ingestion-time validation of remote payloads."""

    def test_glpi_id_is_string(self):
        assert parse_remote_user({"id": 42, "name": "x"}).glpi_id == "42"

    def test_extra_fields_kept(self):
        record = parse_remote_user({"id": 1, "name": "x", "entities_id": 3})

        assert record.model_extra["entities_id"] == 3

    def test_typed_record_passes_through(self):
        record = RemoteUserRecord(id=1, name="x")

        assert parse_remote_user(record) is record

    def test_missing_id_rejected(self):
        with pytest.raises(ValidationError):
            parse_remote_user({"name": "no-id"})

    def test_non_mapping_rejected(self):
        with pytest.raises(ValidationError):
            parse_remote_user("not a user")
