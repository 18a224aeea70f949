"""
ProviderRegistry — maps ``ProviderType`` to the implementation serving it.

Built once at startup (see ``build_oauth_registry``) and looked up by key.
Used for both OAuth clients and file providers.
"""

from __future__ import annotations

import logging
from typing import Dict, Generic, Iterable, List, Optional, TypeVar

from connectors.base import BaseOAuthClient
from connectors.errors import ProviderNotRegistered
from connectors.google import GoogleOAuthClient
from connectors.microsoft import MicrosoftOAuthClient
from utils.schemas import ProviderType

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProviderRegistry(Generic[T]):
    def __init__(self, kind: str, entries: Optional[Dict[ProviderType, T]] = None):
        self.kind = kind
        self._entries: Dict[ProviderType, T] = dict(entries or {})

    def register(self, provider: ProviderType, impl: T) -> None:
        self._entries[ProviderType(provider)] = impl
        logger.info("%s registered: %s", self.kind, ProviderType(provider).value)

    def get(self, provider: ProviderType | str) -> T:
        """Return the implementation for ``provider`` or raise ``ProviderNotRegistered``."""
        try:
            key = ProviderType(provider)
        except ValueError:
            raise ProviderNotRegistered(f"unknown provider '{provider}'") from None
        impl = self._entries.get(key)
        if impl is None:
            raise ProviderNotRegistered(f"provider '{key.value}' is not available")
        return impl

    def try_get(self, provider: ProviderType | str) -> Optional[T]:
        try:
            return self.get(provider)
        except ProviderNotRegistered:
            return None

    def providers(self) -> List[ProviderType]:
        return list(self._entries.keys())


def build_oauth_registry(
    clients: Optional[Iterable[BaseOAuthClient]] = None,
) -> ProviderRegistry[BaseOAuthClient]:
    """Register every configured OAuth client (defaults: Google, Microsoft)."""
    registry: ProviderRegistry[BaseOAuthClient] = ProviderRegistry("OAuth client")
    candidates = list(clients) if clients is not None else [
        GoogleOAuthClient(),
        MicrosoftOAuthClient(),
    ]
    for client in candidates:
        if client.is_configured():
            registry.register(client.provider, client)
        else:
            logger.warning(
                "OAuth client %s skipped — not configured (missing client_id/secret)",
                client.provider.value,
            )
    return registry
