"""
Provider linking routes — start, callback, disconnect, status.

Route prefix: /api/v1
"""

from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import RedirectResponse

from api.dependencies import get_link_service, provider_path
from auth.dependencies import get_current_user_id
from config.settings import config
from connectors.errors import (
    ProviderExchangeFailed,
    ProviderNotRegistered,
    StateExpiredOrReused,
)
from core.link_service import LinkProviderService
from utils.schemas import ConnectionStatus, ProviderType, StartLinkResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["connect"])


def callback_uri(provider: ProviderType) -> str:
    """Redirect URI registered with the provider for ``provider``."""
    return f"{config.oauth_redirect_base.rstrip('/')}/api/v1/connect/{provider.value}/callback"


def _frontend_redirect(outcome: str, provider: str, error: Optional[str] = None) -> RedirectResponse:
    params = {"provider": provider}
    if error:
        params["error"] = error
    url = f"{config.frontend_base_url.rstrip('/')}/connections/{outcome}?{urlencode(params)}"
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


def _error_kind(exc: Exception) -> str:
    if isinstance(exc, StateExpiredOrReused):
        return "state_expired"
    if isinstance(exc, ProviderExchangeFailed):
        return "exchange_failed"
    if isinstance(exc, ProviderNotRegistered):
        return "provider_unavailable"
    return "internal"


# ── Routes ─────────────────────────────────────────────────────────────


@router.get("/connect/{provider}/start", response_model=StartLinkResponse, response_model_by_alias=True)
async def start_link(
    provider: ProviderType = Depends(provider_path),
    user_id: str = Depends(get_current_user_id),
    service: LinkProviderService = Depends(get_link_service),
) -> StartLinkResponse:
    """
    Begin linking ``provider`` for the authenticated user.

    The frontend navigates the browser to the returned URL.
    """
    url = await service.start(
        user_id, provider, callback_uri(provider), config.scopes_for(provider)
    )
    return StartLinkResponse(redirect_url=url)


@router.get("/connect/{provider}/callback")
async def link_callback(
    provider: str,
    state: Optional[str] = Query(None),
    code: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    service: LinkProviderService = Depends(get_link_service),
) -> RedirectResponse:
    """
    Provider redirects the browser here after consent.

    Anonymous: the user is recovered from the stored state.  Every outcome
    ends in a redirect to the frontend's success or error page.
    """
    provider_name = provider.lower()

    if error:
        logger.warning("Provider %s returned error on callback: %s", provider_name, error)
        if state:
            # Burn the state so the attempt cannot be resumed.
            await service.discard_state(state)
        return _frontend_redirect("error", provider_name, "access_denied")

    if not state or not code:
        return _frontend_redirect("error", provider_name, "invalid_request")

    try:
        route_provider = ProviderType(provider_name)
    except ValueError:
        await service.discard_state(state)
        return _frontend_redirect("error", provider_name, "provider_unavailable")

    try:
        # redirect_uri must match the one sent with the authorize request,
        # i.e. the one for the provider recorded in the state
        account = await service.callback(state, code, callback_uri, provider=route_provider)
    except Exception as exc:
        if isinstance(exc, (StateExpiredOrReused, ProviderExchangeFailed, ProviderNotRegistered)):
            logger.warning("Link callback for %s failed: %s", provider_name, type(exc).__name__)
        else:
            logger.exception("Link callback for %s failed unexpectedly", provider_name)
        return _frontend_redirect("error", provider_name, _error_kind(exc))

    return _frontend_redirect("success", account.provider.value)


@router.post("/connect/{provider}/disconnect", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_provider(
    provider: ProviderType = Depends(provider_path),
    user_id: str = Depends(get_current_user_id),
    service: LinkProviderService = Depends(get_link_service),
) -> Response:
    """Revoke and remove the linked account.  204 even if nothing was linked."""
    await service.disconnect(user_id, provider)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/connections/status", response_model=List[ConnectionStatus], response_model_by_alias=True)
async def connection_status(
    user_id: str = Depends(get_current_user_id),
    service: LinkProviderService = Depends(get_link_service),
) -> List[ConnectionStatus]:
    return await service.connection_status(user_id)
