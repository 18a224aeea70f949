"""
Pydantic schemas for the storage connector.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProviderType(str, Enum):
    GOOGLE = "google"
    MICROSOFT = "microsoft"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken to be UTC; aware ones are converted to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class _ApiModel(BaseModel):
    """Serialised with camelCase keys on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=_camel, populate_by_name=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Tokens & linked accounts
# ═══════════════════════════════════════════════════════════════════════════════


class TokenSet(BaseModel):
    """Transient result of a code exchange or refresh.  Never persisted as-is."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    expires_at_utc: datetime
    scopes: List[str] = Field(default_factory=list)


class ProviderAccount(BaseModel):
    """
    One linked (user, provider) pair.

    Immutable: every change produces a new value through ``update_from``.
    Only the refresh token is kept, encrypted; access tokens are never stored.
    """

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    user_id: str
    provider: ProviderType
    encrypted_refresh_token: str = ""
    expires_at_utc: datetime
    scope_csv: str = ""
    created_at_utc: datetime = Field(default_factory=utcnow)
    updated_at_utc: datetime = Field(default_factory=utcnow)

    @classmethod
    def new(cls, user_id: str, provider: ProviderType) -> "ProviderAccount":
        now = utcnow()
        return cls(
            id=uuid.uuid4(),
            user_id=user_id,
            provider=provider,
            expires_at_utc=now,
            created_at_utc=now,
            updated_at_utc=now,
        )

    @property
    def scopes(self) -> List[str]:
        return self.scope_csv.split()

    def update_from(
        self, tokens: TokenSet, encrypt: Callable[[str], str]
    ) -> "ProviderAccount":
        """Return a copy carrying the encrypted refresh token, expiry and scopes of ``tokens``."""
        return self.model_copy(
            update={
                "encrypted_refresh_token": encrypt(tokens.refresh_token),
                "expires_at_utc": tokens.expires_at_utc,
                # a response without ``scope`` means the grant did not change
                "scope_csv": " ".join(tokens.scopes) if tokens.scopes else self.scope_csv,
                "updated_at_utc": utcnow(),
            }
        )


class LinkState(BaseModel):
    """Pending linking attempt, keyed by the opaque ``state`` value."""

    model_config = ConfigDict(frozen=True)

    state: str
    user_id: str
    code_verifier: str
    provider: ProviderType
    expires_at_utc: datetime


# ═══════════════════════════════════════════════════════════════════════════════
# Files
# ═══════════════════════════════════════════════════════════════════════════════


class FileItem(_ApiModel):
    id: str
    name: str
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    modified_utc: datetime

    @field_validator("modified_utc")
    @classmethod
    def modified_as_utc(cls, value):
        return as_aware_utc(value)


class ProviderFileItem(FileItem):
    """File item tagged with its provider, used in the aggregated view."""

    provider: ProviderType


class FileListPage(_ApiModel):
    items: List[FileItem] = Field(default_factory=list)
    next_page_token: Optional[str] = None


class FileMetadata(_ApiModel):
    id: str
    name: str
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    modified_utc: Optional[datetime] = None
    web_view_url: Optional[str] = None
    provider_specific: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("modified_utc")
    @classmethod
    def modified_as_utc(cls, value):
        return as_aware_utc(value)


# ═══════════════════════════════════════════════════════════════════════════════
# API responses
# ═══════════════════════════════════════════════════════════════════════════════


class StartLinkResponse(_ApiModel):
    redirect_url: str


class ConnectionStatus(_ApiModel):
    provider: ProviderType
    connected: bool
    scopes: List[str] = Field(default_factory=list)
    expires_at_utc: Optional[datetime] = None


class FileViewUrlResponse(_ApiModel):
    url: str

