"""Mapping of remote GLPI user records onto the local user schema."""

from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError, field_validator

from ..exceptions import ValidationError


DEFAULT_FALLBACK_DOMAIN = "local.sync"
SYNC_PROVENANCE_TAG = "glpi-sync"


class RemoteUserRecord(BaseModel):
    """A GLPI ``User`` payload, validated once at ingestion.

    Only the fields the mirror cares about are typed; anything else the
    remote sends is kept as extra data.
    """
    id: Union[int, str]
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    phone2: Optional[str] = None
    mobile: Optional[str] = None
    realname: Optional[str] = None
    firstname: Optional[str] = None
    picture: Optional[str] = None
    nickname: Optional[str] = None
    is_active: Any = None

    class Config:
        extra = "allow"

    @field_validator("name", "phone", "phone2", "mobile", mode="before")
    @classmethod
    def _stringify_numbers(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def glpi_id(self) -> str:
        """Local lookup key for this record."""
        return str(self.id)


class SyncUserPayload(BaseModel):
    """Local user fields produced by a sync, minus store-owned columns."""
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
    date_sync: datetime
    created_by: str
    updated_by: str


def parse_remote_user(raw: Union[RemoteUserRecord, Mapping[str, Any]]) -> RemoteUserRecord:
    """Validate an untyped remote payload into a ``RemoteUserRecord``."""
    if isinstance(raw, RemoteUserRecord):
        return raw
    try:
        return RemoteUserRecord.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(f"Malformed GLPI user record: {e}") from e


def ensure_email(name: str, email: Optional[str], fallback_domain: str = DEFAULT_FALLBACK_DOMAIN) -> str:
    """Return the trimmed email, or ``<name>@<fallback_domain>`` when it is blank."""
    if email and email.strip():
        return email.strip()
    return f"{name}@{fallback_domain}"


def is_active_flag(value: Any) -> bool:
    """True only for the number ``1`` (int or float) or the boolean ``True``."""
    if isinstance(value, bool):
        return value
    return isinstance(value, (int, float)) and value == 1


def map_glpi_user(
    record: Union[RemoteUserRecord, Mapping[str, Any]],
    fallback_domain: str = DEFAULT_FALLBACK_DOMAIN,
    provenance_tag: str = SYNC_PROVENANCE_TAG,
    now: Optional[datetime] = None
) -> SyncUserPayload:
    """Convert one remote user record into the local persistence payload.

    Args:
        record: Remote record, typed or raw
        fallback_domain: Domain used to synthesize a missing email
        provenance_tag: Value written to ``created_by``/``updated_by``
        now: Sync timestamp; defaults to the current UTC time

    Returns:
        SyncUserPayload ready for an upsert keyed on ``record.glpi_id``
    """
    user = parse_remote_user(record)

    return SyncUserPayload(
        name=user.name,
        email=ensure_email(user.name, user.email, fallback_domain),
        phone=user.phone,
        phone2=user.phone2,
        mobile=user.mobile,
        realname=user.realname,
        firstname=user.firstname,
        picture=user.picture,
        nickname=user.nickname,
        is_active=is_active_flag(user.is_active),
        date_sync=now or datetime.now(timezone.utc),
        created_by=provenance_tag,
        updated_by=provenance_tag
    )
