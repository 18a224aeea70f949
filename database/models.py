"""
SQLAlchemy ORM models for linked provider accounts and pending OAuth states.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class ProviderAccountRow(Base):
    __tablename__ = "provider_accounts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False, index=True)
    provider = Column(String(32), nullable=False)
    encrypted_refresh_token = Column(Text, nullable=False)
    expires_at_utc = Column(DateTime(timezone=True), nullable=False)
    scope_csv = Column(Text, nullable=False, default="")
    created_at_utc = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at_utc = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    # One linked account per provider per user
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_provider_accounts_user_provider"),
    )


class OAuthStateRow(Base):
    """Short-lived PKCE state, deleted on first use."""

    __tablename__ = "oauth_states"

    state = Column(String(128), primary_key=True)
    user_id = Column(String(255), nullable=False)
    code_verifier = Column(String(128), nullable=False)
    provider = Column(String(32), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (Index("ix_oauth_states_expires_at", "expires_at"),)
