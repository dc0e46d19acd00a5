"""Core bridge logic package."""

from .mapper import (
    RemoteUserRecord,
    SyncUserPayload,
    map_glpi_user,
    parse_remote_user,
    ensure_email
)
from .sync_engine import UserSyncEngine, SyncReport, SyncAction, TouchedRecord, UserStore
from .glpi_service import GlpiService, TicketScope, TicketCreate, TicketUpdate

__all__ = [
    "RemoteUserRecord",
    "SyncUserPayload",
    "map_glpi_user",
    "parse_remote_user",
    "ensure_email",
    "UserSyncEngine",
    "SyncReport",
    "SyncAction",
    "TouchedRecord",
    "UserStore",
    "GlpiService",
    "TicketScope",
    "TicketCreate",
    "TicketUpdate"
]
