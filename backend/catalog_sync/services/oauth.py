"""
Shopify OAuth install flow: authorize URL, callback validation, token exchange.
"""
import base64
import json
import re
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.config import settings
from catalog_sync.core.logging import get_logger
from catalog_sync.core.security import verify_oauth_hmac
from catalog_sync.models.platform_connection import Platform, PlatformConnection
from catalog_sync.repositories.platform_connection import PlatformConnectionRepository
from catalog_sync.services.shopify_client import ShopifyAPIError, ShopifyGraphQLClient

logger = get_logger(__name__)

SHOP_DOMAIN_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9\-]*\.myshopify\.com$")
STATE_TTL_SECONDS = 30 * 60
CALLBACK_MAX_SKEW_SECONDS = 300


class OAuthError(Exception):
    """Raised for any invalid OAuth request or failed exchange.

    ``reason`` is a short machine-readable code passed back to the dashboard.
    """

    def __init__(self, message: str, reason: str = "callback_error") -> None:
        super().__init__(message)
        self.reason = reason


@dataclass
class OAuthState:
    nonce: str
    owner_id: str
    timestamp: float


def is_valid_shop_domain(shop: Optional[str]) -> bool:
    return bool(shop) and SHOP_DOMAIN_PATTERN.match(shop) is not None


def encode_state(owner_id: str, now: Optional[float] = None) -> str:
    payload = {
        "nonce": secrets.token_hex(16),
        "userId": owner_id,
        "timestamp": int((now if now is not None else time.time()) * 1000),
    }
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()


def decode_state(state: str, now: Optional[float] = None) -> OAuthState:
    """Decode a state value and check it has not expired."""
    try:
        data = json.loads(base64.urlsafe_b64decode(state.encode()).decode())
        parsed = OAuthState(
            nonce=data["nonce"],
            owner_id=data["userId"],
            timestamp=float(data["timestamp"]) / 1000,
        )
    except (ValueError, KeyError, TypeError) as e:
        raise OAuthError("Invalid state parameter format", "invalid_state") from e

    if not parsed.nonce or not parsed.owner_id:
        raise OAuthError("Invalid state structure", "invalid_state")
    current = now if now is not None else time.time()
    if current - parsed.timestamp > STATE_TTL_SECONDS:
        raise OAuthError("State parameter expired", "invalid_state")
    return parsed


class ShopifyOAuth:
    """OAuth helper bound to the app's API key and secret."""

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        scopes: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.client_id = client_id or settings.shopify_api_key
        self.client_secret = client_secret or settings.shopify_api_secret
        self.scopes = scopes or settings.shopify_scopes
        self.redirect_uri = redirect_uri or f"{settings.app_url.rstrip('/')}/api/auth/shopify/callback"
        self._transport = transport
        if not self.client_id or not self.client_secret:
            raise OAuthError("Shopify API credentials are not configured", "not_configured")

    def generate_auth_url(self, shop: str, owner_id: str) -> tuple[str, str]:
        """Return (authorize URL, state)."""
        if not is_valid_shop_domain(shop):
            raise OAuthError("Invalid shop domain", "invalid_shop")
        state = encode_state(owner_id)
        params = urlencode({
            "client_id": self.client_id,
            "scope": self.scopes,
            "redirect_uri": self.redirect_uri,
            "state": state,
            "response_type": "code",
        })
        return f"https://{shop}/admin/oauth/authorize?{params}", state

    def validate_callback(
        self,
        params: Mapping[str, str],
        stored_state: Optional[str],
        now: Optional[float] = None,
    ) -> OAuthState:
        shop = params.get("shop")
        code = params.get("code") or ""
        state = params.get("state") or ""

        if not is_valid_shop_domain(shop):
            raise OAuthError("Invalid shop domain", "invalid_shop")
        if not stored_state or state != stored_state:
            raise OAuthError("Invalid state parameter", "invalid_state")
        parsed = decode_state(state, now)
        if len(code) < 10:
            raise OAuthError("Invalid authorization code", "invalid_code")

        if params.get("hmac"):
            try:
                timestamp = int(params.get("timestamp") or "")
            except ValueError as e:
                raise OAuthError("Invalid request timestamp", "invalid_hmac") from e
            current = now if now is not None else time.time()
            if abs(current - timestamp) > CALLBACK_MAX_SKEW_SECONDS:
                raise OAuthError("Request timestamp too old", "invalid_hmac")
            if not verify_oauth_hmac(params, self.client_secret):
                raise OAuthError("Invalid HMAC signature", "invalid_hmac")
        return parsed

    async def exchange_code_for_token(self, shop: str, code: str) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
            response = await client.post(
                f"https://{shop}/admin/oauth/access_token",
                json={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "code": code,
                },
            )
        if response.status_code >= 400:
            raise OAuthError(
                f"Token exchange failed: {response.status_code} {response.text}",
                "token_exchange_failed",
            )

        token_data = response.json()
        credentials: dict[str, Any] = {
            "shop_domain": shop,
            "access_token": token_data["access_token"],
            "scope": token_data.get("scope"),
        }
        if token_data.get("expires_in"):
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(token_data["expires_in"]))
            credentials["expires_at"] = expires_at.isoformat()
        return credentials

    async def verify_access_token(self, credentials: dict[str, Any]) -> dict[str, Any]:
        client = ShopifyGraphQLClient.from_credentials(credentials, transport=self._transport)
        try:
            shop = await client.get_shop_info()
        except ShopifyAPIError as e:
            raise OAuthError(f"Access token verification failed: {e}", "connection_test_failed") from e
        if not shop:
            raise OAuthError("Invalid response from Shopify API", "connection_test_failed")
        return shop

    async def handle_callback(
        self,
        params: Mapping[str, str],
        stored_state: Optional[str],
    ) -> tuple[OAuthState, dict[str, Any]]:
        """Validate the callback, exchange the code and verify the token."""
        state = self.validate_callback(params, stored_state)
        credentials = await self.exchange_code_for_token(params["shop"], params["code"])
        shop = await self.verify_access_token(credentials)
        if (shop.get("plan") or {}).get("shopifyPlus"):
            credentials["plan"] = "plus"
        logger.info("Shopify OAuth completed", shop=params["shop"], owner_id=state.owner_id)
        return state, credentials

    @staticmethod
    async def store_connection(
        session: AsyncSession,
        owner_id: str,
        credentials: dict[str, Any],
        connection_name: Optional[str] = None,
        configuration: Optional[dict[str, Any]] = None,
    ) -> PlatformConnection:
        """Create or refresh the connection for this shop."""
        repo = PlatformConnectionRepository(session)
        name = connection_name or credentials["shop_domain"]
        existing = await repo.get_by_name(owner_id, Platform.SHOPIFY, name)
        if existing is not None:
            connection = await repo.update_connection(
                existing,
                credentials=credentials,
                configuration=configuration,
                is_active=True,
            )
            return await repo.touch_last_connected(connection)
        return await repo.create_connection(
            owner_id,
            Platform.SHOPIFY,
            name,
            credentials,
            configuration,
        )
