"""Database models for the GLPI bridge."""

from datetime import datetime
from typing import Optional

from pydantic import AliasGenerator, BaseModel, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text
from sqlalchemy.orm import declarative_base


Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.utcnow()


# SQLAlchemy Models (Database Tables)

class UserModel(Base):
    """Local mirror of a GLPI user."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    glpi_id = Column(String(64), unique=True, nullable=True, index=True)  # Stringified remote id

    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(64), nullable=True)
    phone2 = Column(String(64), nullable=True)
    mobile = Column(String(64), nullable=True)
    realname = Column(String(255), nullable=True)
    firstname = Column(String(255), nullable=True)
    picture = Column(Text, nullable=True)
    nickname = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Sync tracking
    date_sync = Column(DateTime, nullable=True)
    created_by = Column(String(100), nullable=True)
    updated_by = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<UserModel(id={self.id}, glpi_id='{self.glpi_id}', name='{self.name}')>"


# Pydantic Models (API/Transfer Objects)

class UserResponse(BaseModel):
    """Pydantic model for user response."""
    id: int
    glpi_id: Optional[str] = None
    name: str
    email: str
    phone: Optional[str] = None
    phone2: Optional[str] = None
    mobile: Optional[str] = None
    realname: Optional[str] = None
    firstname: Optional[str] = None
    picture: Optional[str] = None
    nickname: Optional[str] = None
    is_active: bool
    date_sync: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        alias_generator = AliasGenerator(serialization_alias=to_camel)

    def to_api_dict(self) -> dict:
        """Serialize with camelCase keys for the HTTP surface."""
        return self.model_dump(mode="json", by_alias=True)


class UserSearch(BaseModel):
    """Filters for searching the local user mirror."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    phone2: Optional[str] = None
    mobile: Optional[str] = None
    realname: Optional[str] = None
    firstname: Optional[str] = None
    nickname: Optional[str] = None
    glpi_id: Optional[str] = None
    is_active: Optional[bool] = None
    date_sync_from: Optional[datetime] = None
    date_sync_to: Optional[datetime] = None

    limit: int = Field(default=10, ge=1)
    offset: int = Field(default=0, ge=0)
    sort_by: str = "created_at"
    sort_order: str = "DESC"
    search_type: str = "partial"  # "exact" or "partial"

    class Config:
        alias_generator = to_camel
        populate_by_name = True
