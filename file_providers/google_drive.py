"""
Google Drive v3 file provider.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import quote

from file_providers.base import EPOCH, BaseFileProvider, parse_size
from connectors.errors import ProviderApiError
from utils.schemas import FileItem, FileListPage, FileMetadata, ProviderType

_DRIVE_API = "https://www.googleapis.com/drive/v3"
_LIST_FIELDS = "nextPageToken,files(id,name,mimeType,size,modifiedTime)"
_METADATA_FIELDS = "id,name,mimeType,size,modifiedTime,webViewLink"


def _folder_query(folder_id: Optional[str]) -> str:
    if not folder_id:
        return "trashed = false"
    escaped = folder_id.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}' in parents and trashed = false"


def _to_item(f: Dict[str, Any]) -> FileItem:
    return FileItem(
        id=f["id"],
        name=f.get("name", ""),
        mime_type=f.get("mimeType"),
        size_bytes=parse_size(f.get("size")),
        modified_utc=f.get("modifiedTime") or EPOCH,
    )


class GoogleDriveProvider(BaseFileProvider):
    @property
    def provider(self) -> ProviderType:
        return ProviderType.GOOGLE

    @property
    def display_name(self) -> str:
        return "Google Drive"

    async def list(self, user_id, folder_id=None, page_size=50, page_token=None):
        params = {
            "q": _folder_query(folder_id),
            "fields": _LIST_FIELDS,
            "pageSize": page_size,
            "orderBy": "modifiedTime desc",
        }
        if page_token:
            params["pageToken"] = page_token

        data = await self._get_json(user_id, f"{_DRIVE_API}/files", params)
        return FileListPage(
            items=[_to_item(f) for f in data.get("files") or []],
            next_page_token=data.get("nextPageToken"),
        )

    async def get_metadata(self, user_id, file_id):
        data = await self._get_json(
            user_id,
            f"{_DRIVE_API}/files/{quote(file_id, safe='')}",
            {"fields": _METADATA_FIELDS},
        )
        return FileMetadata(
            id=data["id"],
            name=data.get("name", ""),
            mime_type=data.get("mimeType"),
            size_bytes=parse_size(data.get("size")),
            modified_utc=data.get("modifiedTime"),
            web_view_url=data.get("webViewLink"),
            provider_specific=data,
        )

    async def get_view_url(self, user_id, file_id):
        data = await self._get_json(
            user_id,
            f"{_DRIVE_API}/files/{quote(file_id, safe='')}",
            {"fields": "webViewLink"},
        )
        link = data.get("webViewLink")
        if not link:
            raise ProviderApiError(self.provider.value, 200, "file has no web view link")
        return link
