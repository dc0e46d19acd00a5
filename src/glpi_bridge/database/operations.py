"""Database operations and repository classes."""

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from .models import UserModel, UserSearch
from ..core.mapper import SyncUserPayload
from ..utils.logging import get_logger, log_execution_time


logger = get_logger("database.operations")

SORTABLE_COLUMNS = {"created_at", "updated_at", "name", "email", "is_active", "date_sync"}
TEXT_FILTERS = ("name", "email", "phone", "phone2", "mobile", "realname", "firstname", "nickname", "glpi_id")
CASE_INSENSITIVE_FILTERS = {"name", "email", "realname", "firstname", "nickname"}


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Strip tzinfo after converting to UTC; the columns store naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class UserRepository:
    """Repository for local user operations."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, user_id: int) -> Optional[UserModel]:
        """Get user by local ID."""
        return self.session.query(UserModel).filter(UserModel.id == user_id).first()

    def get_by_glpi_id(self, glpi_id: str) -> Optional[UserModel]:
        """Get user by GLPI ID."""
        return self.session.query(UserModel).filter(UserModel.glpi_id == glpi_id).first()

    @log_execution_time
    def upsert_by_glpi_id(self, glpi_id: str, payload: SyncUserPayload) -> Tuple[UserModel, bool]:
        """Update the user keyed on ``glpi_id`` or create it. Returns (user, created)."""
        values = payload.model_dump()
        values["date_sync"] = _naive_utc(values["date_sync"])

        user = self.get_by_glpi_id(glpi_id)

        if user:
            # created_by keeps the original provenance
            values.pop("created_by", None)
            for field, value in values.items():
                setattr(user, field, value)
            user.updated_at = datetime.utcnow()
            self.session.flush()

            logger.debug("User updated from sync", user_id=user.id, glpi_id=glpi_id)
            return user, False

        user = UserModel(glpi_id=glpi_id, **values)
        self.session.add(user)
        self.session.flush()

        logger.debug("User created from sync", user_id=user.id, glpi_id=glpi_id)
        return user, True

    @log_execution_time
    def search(self, criteria: UserSearch) -> Tuple[List[UserModel], int]:
        """Search local users. Returns (page, total matching)."""
        query = self.session.query(UserModel)
        exact = criteria.search_type == "exact"

        for field in TEXT_FILTERS:
            value = getattr(criteria, field)
            if not value:
                continue
            column = getattr(UserModel, field)
            if exact:
                query = query.filter(column == value)
            elif field in CASE_INSENSITIVE_FILTERS:
                query = query.filter(column.ilike(f"%{value}%"))
            else:
                query = query.filter(column.contains(value))

        if criteria.is_active is not None:
            query = query.filter(UserModel.is_active == criteria.is_active)

        if criteria.date_sync_from:
            query = query.filter(UserModel.date_sync >= _naive_utc(criteria.date_sync_from))
        if criteria.date_sync_to:
            query = query.filter(UserModel.date_sync <= _naive_utc(criteria.date_sync_to))

        total = query.count()

        sort_by = criteria.sort_by if criteria.sort_by in SORTABLE_COLUMNS else "created_at"
        column = getattr(UserModel, sort_by)
        ordering = column.asc() if criteria.sort_order.upper() == "ASC" else column.desc()

        users = query.order_by(ordering, UserModel.id).offset(criteria.offset).limit(criteria.limit).all()
        return users, total


# Repository factory functions

def get_user_repository(session: Session) -> UserRepository:
    """Get user repository instance."""
    return UserRepository(session)
