"""Core sync engine for mirroring GLPI users into the local store."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, Set, Tuple

from .mapper import (
    DEFAULT_FALLBACK_DOMAIN,
    SYNC_PROVENANCE_TAG,
    SyncUserPayload,
    map_glpi_user,
    parse_remote_user
)
from ..exceptions import SyncEngineError
from ..utils.logging import get_logger, log_async_execution_time


class SyncAction(str, Enum):
    """Classification of one synced record."""
    CREATED = "created"
    UPDATED = "updated"


@dataclass
class TouchedRecord:
    """One remote user seen by a sync run."""

    glpi_id: str
    action: SyncAction

    def to_dict(self) -> Dict[str, str]:
        return {"glpiId": self.glpi_id, "action": self.action.value}


@dataclass
class SyncReport:
    """Result of a user sync run."""

    dry_run: bool
    total: int = 0
    imported: int = 0
    updated: int = 0
    touched: List[TouchedRecord] = field(default_factory=list)

    def record(self, glpi_id: str, action: SyncAction) -> None:
        """Count one classification and append it to the touched list."""
        if action is SyncAction.CREATED:
            self.imported += 1
        else:
            self.updated += 1
        self.touched.append(TouchedRecord(glpi_id=glpi_id, action=action))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON shape returned by the sync entry points."""
        return {
            "dryRun": self.dry_run,
            "total": self.total,
            "imported": self.imported,
            "updated": self.updated,
            "touched": [t.to_dict() for t in self.touched]
        }


class UserStore(Protocol):
    """Persistence port the sync engine writes through."""

    def find_by_glpi_id(self, glpi_id: str) -> Optional[Any]:
        ...

    def upsert_by_glpi_id(self, glpi_id: str, payload: SyncUserPayload) -> Any:
        ...

    def bulk_upsert_by_glpi(self, items: Sequence[Tuple[str, SyncUserPayload]]) -> List[Any]:
        ...


class RemoteUserSource(Protocol):
    """The remote side of a sync; satisfied by ``GlpiClient``."""

    async def list_users(self, limit: Optional[int] = None, offset: Optional[int] = None) -> Any:
        ...


class UserSyncEngine:
    """Pulls GLPI users and reconciles them into the local store.

    Records are processed strictly in remote order, one lookup-then-write at
    a time, so a remote id appearing twice in one batch ends with the last
    value seen. A failure on any record aborts the rest of the batch.
    """

    def __init__(
        self,
        client: RemoteUserSource,
        store: UserStore,
        fallback_domain: str = DEFAULT_FALLBACK_DOMAIN,
        provenance_tag: str = SYNC_PROVENANCE_TAG
    ):
        """Initialize sync engine.

        Args:
            client: Source of remote user records
            store: Local store to reconcile into
            fallback_domain: Domain for synthesized emails
            provenance_tag: Marker written to created_by/updated_by
        """
        self.client = client
        self.store = store
        self.fallback_domain = fallback_domain
        self.provenance_tag = provenance_tag
        self.logger = get_logger(self.__class__.__name__)

    @log_async_execution_time
    async def run(
        self,
        dry_run: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        atomic: bool = False
    ) -> SyncReport:
        """Synchronize remote users into the local store.

        Args:
            dry_run: Classify only; never call the store's write path
            limit: Optional page size forwarded to the remote list call. Without
                it GLPI applies its own default window (the first 50 users,
                answered with 206), so large directories need explicit pages
            offset: Optional start index forwarded with ``limit``
            atomic: Commit the whole batch in one transaction

        Returns:
            SyncReport for the run
        """
        self.logger.info(
            "Starting user sync",
            dry_run=dry_run,
            limit=limit,
            offset=offset,
            atomic=atomic
        )

        remote_users = await self.client.list_users(limit=limit, offset=offset)
        if not isinstance(remote_users, list):
            raise SyncEngineError(
                f"Expected a list of users from GLPI, got {type(remote_users).__name__}"
            )

        report = SyncReport(dry_run=dry_run, total=len(remote_users))
        now = datetime.now(timezone.utc)

        if dry_run:
            self._classify(remote_users, report, now)
        elif atomic:
            self._sync_atomic(remote_users, report, now)
        else:
            self._sync_sequential(remote_users, report, now)

        self.logger.info(
            "User sync completed",
            dry_run=dry_run,
            total=report.total,
            imported=report.imported,
            updated=report.updated
        )

        return report

    def _prepare(self, raw: Any, now: datetime) -> Tuple[str, SyncUserPayload]:
        record = parse_remote_user(raw)
        payload = map_glpi_user(
            record,
            fallback_domain=self.fallback_domain,
            provenance_tag=self.provenance_tag,
            now=now
        )
        return record.glpi_id, payload

    def _action_for(self, glpi_id: str, seen: Set[str]) -> SyncAction:
        # A repeat within the batch would already exist by the time it is written
        if glpi_id in seen or self.store.find_by_glpi_id(glpi_id) is not None:
            return SyncAction.UPDATED
        return SyncAction.CREATED

    def _classify(self, remote_users: List[Any], report: SyncReport, now: datetime) -> None:
        seen: Set[str] = set()
        for raw in remote_users:
            glpi_id, _ = self._prepare(raw, now)
            report.record(glpi_id, self._action_for(glpi_id, seen))
            seen.add(glpi_id)

    def _sync_sequential(self, remote_users: List[Any], report: SyncReport, now: datetime) -> None:
        seen: Set[str] = set()
        for raw in remote_users:
            glpi_id = None
            try:
                glpi_id, payload = self._prepare(raw, now)
                action = self._action_for(glpi_id, seen)
                self.store.upsert_by_glpi_id(glpi_id, payload)
            except Exception as e:
                self.logger.error(
                    "User sync aborted",
                    glpi_id=glpi_id,
                    processed=len(report.touched),
                    total=report.total,
                    error=str(e)
                )
                raise

            report.record(glpi_id, action)
            seen.add(glpi_id)

            self.logger.debug("User synced", glpi_id=glpi_id, action=action.value)

    def _sync_atomic(self, remote_users: List[Any], report: SyncReport, now: datetime) -> None:
        seen: Set[str] = set()
        items: List[Tuple[str, SyncUserPayload]] = []
        actions: List[Tuple[str, SyncAction]] = []

        for raw in remote_users:
            glpi_id, payload = self._prepare(raw, now)
            actions.append((glpi_id, self._action_for(glpi_id, seen)))
            items.append((glpi_id, payload))
            seen.add(glpi_id)

        self.store.bulk_upsert_by_glpi(items)

        for glpi_id, action in actions:
            report.record(glpi_id, action)
