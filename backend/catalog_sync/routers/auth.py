"""
Shopify OAuth install routes.
"""
from typing import Annotated, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse

from catalog_sync.core.config import settings
from catalog_sync.core.database import DbSession
from catalog_sync.core.logging import get_logger
from catalog_sync.core.security import CurrentOwner
from catalog_sync.services.oauth import STATE_TTL_SECONDS, OAuthError, ShopifyOAuth

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

STATE_COOKIE = "shopify_oauth_state"


def get_oauth() -> ShopifyOAuth:
    """Dependency to get the OAuth helper."""
    try:
        return ShopifyOAuth()
    except OAuthError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e


OAuth = Annotated[ShopifyOAuth, Depends(get_oauth)]


def _dashboard_redirect(**params: str) -> RedirectResponse:
    url = f"{settings.frontend_url.rstrip('/')}/dashboard/connections?{urlencode(params)}"
    response = RedirectResponse(url, status_code=status.HTTP_302_FOUND)
    response.delete_cookie(STATE_COOKIE)
    return response


@router.get("/shopify")
async def start_shopify_oauth(
    owner_id: CurrentOwner,
    oauth: OAuth,
    shop: Annotated[Optional[str], Query()] = None,
) -> RedirectResponse:
    """Redirect the merchant to Shopify's install screen."""
    if not shop:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Shop parameter is required")
    try:
        url, state = oauth.generate_auth_url(shop, owner_id)
    except OAuthError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    response = RedirectResponse(url, status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        STATE_COOKIE,
        state,
        max_age=STATE_TTL_SECONDS,
        httponly=True,
        secure=settings.environment == "production",
        samesite="lax",
    )
    logger.info("Shopify OAuth started", shop=shop, owner_id=owner_id)
    return response


@router.get("/shopify/callback")
async def shopify_oauth_callback(request: Request, oauth: OAuth, session: DbSession) -> RedirectResponse:
    """
    Finish the install: validate the callback, exchange the code and store
    the connection for the owner carried in the state.
    """
    params = dict(request.query_params)
    if params.get("error"):
        return _dashboard_redirect(error=params["error"])
    if not params.get("code") or not params.get("state") or not params.get("shop"):
        return _dashboard_redirect(error="missing_parameters")

    try:
        state, credentials = await oauth.handle_callback(params, request.cookies.get(STATE_COOKIE))
    except OAuthError as e:
        logger.warning("Shopify OAuth callback rejected", shop=params.get("shop"), reason=e.reason, error=str(e))
        return _dashboard_redirect(error=e.reason)

    await oauth.store_connection(session, state.owner_id, credentials)
    return _dashboard_redirect(success="shopify_connected", shop=credentials["shop_domain"])
