"""
Token store — durable (user, provider) → ``ProviderAccount`` mapping.

The refresh token is only ever held encrypted; ``encrypt`` / ``decrypt`` are
delegated to the injected ``TokenCipher``.  ``upsert`` never creates a second
row for the same (user, provider): the in-memory backend holds a lock, the
SQL backend relies on the ``uq_provider_accounts_user_provider`` constraint
through ``INSERT … ON CONFLICT DO UPDATE``.  ``update_tokens`` is the
write-back used after a refresh and only ever touches an existing row.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from connectors.encryption import TokenCipher
from database.helpers import as_utc, dialect_insert
from database.models import ProviderAccountRow
from utils.schemas import ProviderAccount, ProviderType

logger = logging.getLogger(__name__)


class BaseTokenStore(ABC):
    def __init__(self, cipher: TokenCipher):
        self._cipher = cipher

    @abstractmethod
    async def get(self, user_id: str, provider: ProviderType) -> Optional[ProviderAccount]:
        ...

    @abstractmethod
    async def get_all_by_user(self, user_id: str) -> List[ProviderAccount]:
        ...

    @abstractmethod
    async def upsert(self, account: ProviderAccount) -> ProviderAccount:
        """
        Insert ``account`` or overwrite token, expiry and scopes of the
        existing row for its (user, provider).  The stored value, with the
        original ``id``, is returned.
        """
        ...

    @abstractmethod
    async def update_tokens(self, account: ProviderAccount) -> Optional[ProviderAccount]:
        """
        Overwrite token, expiry and scopes of an existing (user, provider) row.
        Never inserts: returns ``None`` if the account is gone (disconnected).
        """
        ...

    @abstractmethod
    async def delete(self, user_id: str, provider: ProviderType) -> None:
        """Idempotent."""
        ...

    def encrypt(self, plaintext: str) -> str:
        return self._cipher.encrypt(plaintext)

    def decrypt(self, ciphertext: str) -> str:
        return self._cipher.decrypt(ciphertext)


def _mutable_fields(account: ProviderAccount) -> Dict[str, Any]:
    return {
        "encrypted_refresh_token": account.encrypted_refresh_token,
        "expires_at_utc": account.expires_at_utc,
        "scope_csv": account.scope_csv,
        "updated_at_utc": account.updated_at_utc,
    }


def _merge(existing: ProviderAccount, incoming: ProviderAccount) -> ProviderAccount:
    """``existing`` keeps its identity; token fields come from ``incoming``."""
    return existing.model_copy(update=_mutable_fields(incoming))


class InMemoryTokenStore(BaseTokenStore):
    def __init__(self, cipher: TokenCipher):
        super().__init__(cipher)
        self._lock = asyncio.Lock()
        self._accounts: Dict[Tuple[str, ProviderType], ProviderAccount] = {}

    async def get(self, user_id, provider):
        return self._accounts.get((user_id, ProviderType(provider)))

    async def get_all_by_user(self, user_id):
        return [a for (uid, _), a in self._accounts.items() if uid == user_id]

    async def upsert(self, account):
        key = (account.user_id, account.provider)
        async with self._lock:
            existing = self._accounts.get(key)
            if existing is not None:
                account = _merge(existing, account)
            self._accounts[key] = account
        return account

    async def update_tokens(self, account):
        key = (account.user_id, account.provider)
        async with self._lock:
            existing = self._accounts.get(key)
            if existing is None:
                return None
            updated = self._accounts[key] = _merge(existing, account)
        return updated

    async def delete(self, user_id, provider):
        async with self._lock:
            self._accounts.pop((user_id, ProviderType(provider)), None)


def _to_account(row) -> ProviderAccount:
    return ProviderAccount(
        id=row.id,
        user_id=row.user_id,
        provider=ProviderType(row.provider),
        encrypted_refresh_token=row.encrypted_refresh_token,
        expires_at_utc=as_utc(row.expires_at_utc),
        scope_csv=row.scope_csv or "",
        created_at_utc=as_utc(row.created_at_utc),
        updated_at_utc=as_utc(row.updated_at_utc),
    )


class SqlTokenStore(BaseTokenStore):
    def __init__(
        self,
        cipher: TokenCipher,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        super().__init__(cipher)
        self._session_factory = session_factory

    async def get(self, user_id, provider):
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProviderAccountRow).where(
                    ProviderAccountRow.user_id == user_id,
                    ProviderAccountRow.provider == ProviderType(provider).value,
                )
            )
            row = result.scalar_one_or_none()
        return _to_account(row) if row else None

    async def get_all_by_user(self, user_id):
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProviderAccountRow).where(ProviderAccountRow.user_id == user_id)
            )
            rows = result.scalars().all()
        return [_to_account(r) for r in rows]

    async def upsert(self, account):
        mutable = _mutable_fields(account)
        async with self._session_factory() as session:
            stmt = dialect_insert(session, ProviderAccountRow.__table__).values(
                id=account.id,
                user_id=account.user_id,
                provider=account.provider.value,
                created_at_utc=account.created_at_utc,
                **mutable,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "provider"],
                set_=mutable,
            ).returning(*ProviderAccountRow.__table__.c)
            result = await session.execute(stmt)
            row = result.one()
            await session.commit()

        stored = _to_account(row)
        logger.info(
            "Upserted %s account for user %s (id=%s)",
            stored.provider.value, stored.user_id, stored.id,
        )
        return stored

    async def update_tokens(self, account):
        table = ProviderAccountRow.__table__
        async with self._session_factory() as session:
            result = await session.execute(
                update(table)
                .where(
                    table.c.user_id == account.user_id,
                    table.c.provider == account.provider.value,
                )
                .values(**_mutable_fields(account))
                .returning(*table.c)
            )
            row = result.first()
            await session.commit()
        return _to_account(row) if row else None

    async def delete(self, user_id, provider):
        async with self._session_factory() as session:
            await session.execute(
                delete(ProviderAccountRow).where(
                    ProviderAccountRow.user_id == user_id,
                    ProviderAccountRow.provider == ProviderType(provider).value,
                ),
                execution_options={"synchronize_session": False},
            )
            await session.commit()
