"""
File routes — aggregated listing, per-provider listing, metadata, view links.

Route prefix: /api/v1
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse

from api.dependencies import get_file_service, provider_path
from auth.dependencies import get_current_user_id
from config.settings import config
from core.file_service import FileService
from utils.schemas import (
    FileListPage,
    FileMetadata,
    FileViewUrlResponse,
    ProviderFileItem,
    ProviderType,
)

router = APIRouter(tags=["files"])

_MAX_PAGE_SIZE = 1000


def _page_size(page_size: Optional[int] = Query(None, alias="pageSize", ge=1, le=_MAX_PAGE_SIZE)) -> int:
    return page_size or config.default_page_size


@router.get("/files", response_model=List[ProviderFileItem], response_model_by_alias=True)
async def list_all_files(
    page_size: int = Depends(_page_size),
    user_id: str = Depends(get_current_user_id),
    service: FileService = Depends(get_file_service),
) -> List[ProviderFileItem]:
    """Newest-first listing merged across every linked provider."""
    return await service.get_files_from_all_providers(user_id, page_size)


@router.get("/files/{provider}", response_model=FileListPage, response_model_by_alias=True)
async def list_provider_files(
    provider: ProviderType = Depends(provider_path),
    folder_id: Optional[str] = Query(None, alias="folderId"),
    page_token: Optional[str] = Query(None, alias="pageToken"),
    page_size: int = Depends(_page_size),
    user_id: str = Depends(get_current_user_id),
    service: FileService = Depends(get_file_service),
) -> FileListPage:
    return await service.get_files_by_provider(user_id, provider, folder_id, page_size, page_token)


@router.get(
    "/files/{provider}/{file_id}/metadata",
    response_model=FileMetadata,
    response_model_by_alias=True,
)
async def file_metadata(
    file_id: str,
    provider: ProviderType = Depends(provider_path),
    user_id: str = Depends(get_current_user_id),
    service: FileService = Depends(get_file_service),
) -> FileMetadata:
    return await service.get_file_metadata(user_id, provider, file_id)


@router.get("/files/{provider}/{file_id}/view")
async def view_file(
    file_id: str,
    provider: ProviderType = Depends(provider_path),
    user_id: str = Depends(get_current_user_id),
    service: FileService = Depends(get_file_service),
) -> RedirectResponse:
    """Redirect the browser to the provider's own viewer."""
    url = await service.get_file_view_url(user_id, provider, file_id)
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get(
    "/files/{provider}/{file_id}/view-url",
    response_model=FileViewUrlResponse,
    response_model_by_alias=True,
)
async def view_file_url(
    file_id: str,
    provider: ProviderType = Depends(provider_path),
    user_id: str = Depends(get_current_user_id),
    service: FileService = Depends(get_file_service),
) -> FileViewUrlResponse:
    """Same as ``/view`` for clients that cannot follow a redirect."""
    url = await service.get_file_view_url(user_id, provider, file_id)
    return FileViewUrlResponse(url=url)
