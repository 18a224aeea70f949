"""
State store — one-time PKCE state for in-flight linking attempts.

``take`` is get-and-delete: of any number of concurrent callers presenting
the same ``state``, exactly one receives the ``LinkState``.

Backends:
  • ``InMemoryStateStore`` — lock-guarded dict, single process only.
  • ``SqlStateStore``      — ``oauth_states`` table, safe across instances.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.helpers import as_utc, dialect_insert
from database.models import OAuthStateRow
from utils.schemas import LinkState, ProviderType

logger = logging.getLogger(__name__)


class BaseStateStore(ABC):
    """Abstract TTL-bound, single-consumption store for ``LinkState``."""

    @abstractmethod
    async def save(
        self,
        state: str,
        user_id: str,
        code_verifier: str,
        provider: ProviderType,
        ttl: timedelta,
    ) -> None:
        """Store the tuple under ``state``, replacing any previous entry."""
        ...

    @abstractmethod
    async def take(self, state: str) -> Optional[LinkState]:
        """Atomically read and remove.  ``None`` if absent or expired."""
        ...

    @abstractmethod
    async def purge_expired(self) -> int:
        """Drop expired entries; return how many were removed."""
        ...


class InMemoryStateStore(BaseStateStore):
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = asyncio.Lock()
        # state -> (expires_at monotonic, LinkState)
        self._entries: Dict[str, Tuple[float, LinkState]] = {}

    async def save(self, state, user_id, code_verifier, provider, ttl) -> None:
        expires_at = self._clock() + ttl.total_seconds()
        entry = LinkState(
            state=state,
            user_id=user_id,
            code_verifier=code_verifier,
            provider=provider,
            expires_at_utc=datetime.now(timezone.utc) + ttl,
        )
        async with self._lock:
            self._entries[state] = (expires_at, entry)

    async def take(self, state: str) -> Optional[LinkState]:
        async with self._lock:
            found = self._entries.pop(state, None)
        if found is None:
            return None
        expires_at, entry = found
        if expires_at <= self._clock():
            logger.debug("State %s… expired before use", state[:8])
            return None
        return entry

    async def purge_expired(self) -> int:
        now = self._clock()
        async with self._lock:
            stale = [k for k, (exp, _) in self._entries.items() if exp <= now]
            for key in stale:
                del self._entries[key]
        return len(stale)


class SqlStateStore(BaseStateStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def save(self, state, user_id, code_verifier, provider, ttl) -> None:
        now = datetime.now(timezone.utc)
        values = {
            "state": state,
            "user_id": user_id,
            "code_verifier": code_verifier,
            "provider": ProviderType(provider).value,
            "expires_at": now + ttl,
            "created_at": now,
        }
        async with self._session_factory() as session:
            stmt = dialect_insert(session, OAuthStateRow.__table__).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["state"],
                set_={k: v for k, v in values.items() if k != "state"},
            )
            await session.execute(stmt)
            await session.commit()

    async def take(self, state: str) -> Optional[LinkState]:
        now = datetime.now(timezone.utc)
        async with self._session_factory() as session:
            # Single DELETE … RETURNING: the database serialises concurrent takers.
            result = await session.execute(
                delete(OAuthStateRow)
                .where(OAuthStateRow.state == state, OAuthStateRow.expires_at > now)
                .returning(
                    OAuthStateRow.user_id,
                    OAuthStateRow.code_verifier,
                    OAuthStateRow.provider,
                    OAuthStateRow.expires_at,
                ),
                execution_options={"synchronize_session": False},
            )
            row = result.first()
            await session.commit()

        if row is None:
            return None
        return LinkState(
            state=state,
            user_id=row.user_id,
            code_verifier=row.code_verifier,
            provider=ProviderType(row.provider),
            expires_at_utc=as_utc(row.expires_at),
        )

    async def purge_expired(self) -> int:
        now = datetime.now(timezone.utc)
        async with self._session_factory() as session:
            result = await session.execute(
                delete(OAuthStateRow).where(OAuthStateRow.expires_at <= now),
                execution_options={"synchronize_session": False},
            )
            removed = result.rowcount or 0
            await session.commit()
        if removed:
            logger.info("Purged %d expired OAuth states", removed)
        return removed
