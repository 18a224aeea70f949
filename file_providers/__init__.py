"""
file_providers — per-provider file APIs (Google Drive, OneDrive).

Every provider resolves its bearer token through the AccessTokenManager and
exposes the same three calls: list, get_metadata, get_view_url.
"""

from __future__ import annotations

from typing import Iterable, Optional

from connectors.registry import ProviderRegistry
from connectors.token_manager import AccessTokenManager
from file_providers.base import BaseFileProvider
from file_providers.google_drive import GoogleDriveProvider
from file_providers.onedrive import OneDriveProvider


def build_file_provider_registry(
    token_manager: AccessTokenManager,
    providers: Optional[Iterable[BaseFileProvider]] = None,
) -> ProviderRegistry[BaseFileProvider]:
    registry: ProviderRegistry[BaseFileProvider] = ProviderRegistry("File provider")
    candidates = list(providers) if providers is not None else [
        GoogleDriveProvider(token_manager),
        OneDriveProvider(token_manager),
    ]
    for provider in candidates:
        registry.register(provider.provider, provider)
    return registry
