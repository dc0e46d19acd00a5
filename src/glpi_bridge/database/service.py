"""High-level database service layer."""

from typing import Any, Dict, List, Optional, Sequence, Tuple
from contextlib import contextmanager

from .database import DatabaseManager, get_db_manager
from .operations import get_user_repository
from .models import UserResponse, UserSearch
from ..core.mapper import SyncUserPayload
from ..exceptions import NotFoundError
from ..utils.logging import get_logger, log_execution_time


logger = get_logger("database.service")


class DatabaseService:
    """High-level database service; the local store for user sync."""

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db_manager = db_manager or get_db_manager()

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        with self.db_manager.session_scope() as session:
            yield session

    # Sync store operations

    def find_by_glpi_id(self, glpi_id: str) -> Optional[UserResponse]:
        """Get user by GLPI ID, or None."""
        with self.transaction() as session:
            user = get_user_repository(session).get_by_glpi_id(glpi_id)
            return UserResponse.model_validate(user) if user else None

    @log_execution_time
    def upsert_by_glpi_id(self, glpi_id: str, payload: SyncUserPayload) -> UserResponse:
        """Create or update the user keyed on ``glpi_id`` in one transaction."""
        with self.transaction() as session:
            user, created = get_user_repository(session).upsert_by_glpi_id(glpi_id, payload)
            logger.info("User synced", glpi_id=glpi_id, user_id=user.id, created=created)
            return UserResponse.model_validate(user)

    @log_execution_time
    def bulk_upsert_by_glpi(self, items: Sequence[Tuple[str, SyncUserPayload]]) -> List[UserResponse]:
        """Upsert many users in a single all-or-nothing transaction."""
        with self.transaction() as session:
            repo = get_user_repository(session)
            results = []
            for glpi_id, payload in items:
                user, _ = repo.upsert_by_glpi_id(glpi_id, payload)
                results.append(UserResponse.model_validate(user))

        logger.info("Bulk user sync committed", count=len(results))
        return results

    # Lookups

    def get_user(self, user_id: int) -> UserResponse:
        """Get user by local ID.

        Raises:
            NotFoundError: If no such user exists
        """
        with self.transaction() as session:
            user = get_user_repository(session).get_by_id(user_id)
            if not user:
                raise NotFoundError(f"User with ID {user_id} not found")
            return UserResponse.model_validate(user)

    def get_user_by_glpi_id(self, glpi_id: str) -> UserResponse:
        """Get user by GLPI ID.

        Raises:
            NotFoundError: If no such user exists
        """
        user = self.find_by_glpi_id(glpi_id)
        if not user:
            raise NotFoundError(f"User with GLPI ID {glpi_id} not found")
        return user

    @log_execution_time
    def search_users(self, criteria: UserSearch) -> Dict[str, Any]:
        """Search the local mirror. Returns ``{"users": [...], "total": n}``."""
        with self.transaction() as session:
            users, total = get_user_repository(session).search(criteria)
            return {
                "users": [UserResponse.model_validate(u) for u in users],
                "total": total
            }

