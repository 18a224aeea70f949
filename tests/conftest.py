"""
Shared fixtures.
"""

import pytest
from cryptography.fernet import Fernet
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from config.settings import config
from connectors.encryption import TokenCipher


@pytest.fixture(autouse=True)
def no_retry_backoff(monkeypatch):
    """Retries still happen, without sleeping between attempts."""
    monkeypatch.setattr(config, "http_backoff_seconds", 0.0)


@pytest.fixture
def cipher() -> TokenCipher:
    return TokenCipher([Fernet.generate_key()])


@pytest.fixture
def sqlite_engine():
    """In-memory SQLite shared across sessions; tables are created by the test."""
    return create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


@pytest.fixture
def session_factory(sqlite_engine):
    return async_sessionmaker(sqlite_engine, expire_on_commit=False)


@pytest.fixture
def sqlite_file_engine(tmp_path):
    """SQLite file with a connection per session, so concurrent writers really race."""
    return create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'connector.db'}")
