"""
FastAPI dependencies (shared across routes).

Services are built once at startup and hung off ``app.state``.
"""

from __future__ import annotations

from fastapi import Request

from connectors.errors import ProviderNotRegistered
from core.file_service import FileService
from core.link_service import LinkProviderService
from utils.schemas import ProviderType


def get_link_service(request: Request) -> LinkProviderService:
    return request.app.state.link_service


def get_file_service(request: Request) -> FileService:
    return request.app.state.file_service


def provider_path(provider: str) -> ProviderType:
    """Resolve the ``{provider}`` path segment; unknown names are a 404."""
    try:
        return ProviderType(provider.lower())
    except ValueError:
        raise ProviderNotRegistered(f"unknown provider '{provider}'") from None
