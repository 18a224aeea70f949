"""
OneDrive file provider (Microsoft Graph v1.0).

Graph paginates with ``@odata.nextLink``, a full URL; that URL is handed out
as the page token and followed verbatim on the next call.  Only URLs under
the Graph base are accepted back, so a client cannot make us send the bearer
token elsewhere.
"""

from __future__ import annotations

from typing import Any, Dict
from urllib.parse import quote

from connectors.errors import InvalidPageToken, ProviderApiError
from file_providers.base import EPOCH, BaseFileProvider, parse_size
from utils.schemas import FileItem, FileListPage, FileMetadata, ProviderType

_GRAPH_API = "https://graph.microsoft.com/v1.0"


def _to_item(item: Dict[str, Any]) -> FileItem:
    return FileItem(
        id=item["id"],
        name=item.get("name", ""),
        mime_type=(item.get("file") or {}).get("mimeType"),  # folders have no "file" facet
        size_bytes=parse_size(item.get("size")),
        modified_utc=item.get("lastModifiedDateTime") or EPOCH,
    )


class OneDriveProvider(BaseFileProvider):
    @property
    def provider(self) -> ProviderType:
        return ProviderType.MICROSOFT

    @property
    def display_name(self) -> str:
        return "OneDrive"

    async def list(self, user_id, folder_id=None, page_size=50, page_token=None):
        if page_token:
            if not page_token.startswith(f"{_GRAPH_API}/"):
                raise InvalidPageToken()
            data = await self._get_json(user_id, page_token)
        else:
            if folder_id:
                url = f"{_GRAPH_API}/me/drive/items/{quote(folder_id, safe='')}/children"
            else:
                url = f"{_GRAPH_API}/me/drive/root/children"
            data = await self._get_json(
                user_id,
                url,
                {"$top": page_size, "$orderby": "lastModifiedDateTime desc"},
            )

        return FileListPage(
            items=[_to_item(i) for i in data.get("value") or []],
            next_page_token=data.get("@odata.nextLink"),
        )

    async def get_metadata(self, user_id, file_id):
        data = await self._get_json(
            user_id, f"{_GRAPH_API}/me/drive/items/{quote(file_id, safe='')}"
        )
        return FileMetadata(
            id=data["id"],
            name=data.get("name", ""),
            mime_type=(data.get("file") or {}).get("mimeType"),
            size_bytes=parse_size(data.get("size")),
            modified_utc=data.get("lastModifiedDateTime"),
            web_view_url=data.get("webUrl"),
            provider_specific=data,
        )

    async def get_view_url(self, user_id, file_id):
        data = await self._get_json(
            user_id, f"{_GRAPH_API}/me/drive/items/{quote(file_id, safe='')}"
        )
        link = data.get("webUrl")
        if not link:
            raise ProviderApiError(self.provider.value, 200, "item has no web URL")
        return link
