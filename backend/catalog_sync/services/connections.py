"""
Platform connection checks.
"""
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional

from catalog_sync.core.logging import get_logger
from catalog_sync.core.security import decrypt_credentials
from catalog_sync.models.platform_connection import Platform, PlatformConnection
from catalog_sync.services.shopify_client import ShopifyAPIError, ShopifyGraphQLClient

logger = get_logger(__name__)

AMAZON_REQUIRED_FIELDS = ("seller_id", "marketplace_id", "refresh_token")


@dataclass
class ConnectionTestResult:
    success: bool
    message: str
    data: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


async def check_platform_connection(
    connection: PlatformConnection,
    client_factory: Callable[[dict[str, Any]], ShopifyGraphQLClient] = ShopifyGraphQLClient.from_credentials,
) -> ConnectionTestResult:
    """Check that stored credentials still work."""
    try:
        credentials = decrypt_credentials(connection.credentials_encrypted)
    except ValueError as e:
        return ConnectionTestResult(False, str(e))

    if connection.platform == Platform.SHOPIFY.value:
        try:
            shop = await client_factory(credentials).get_shop_info()
        except ShopifyAPIError as e:
            logger.warning("Shopify connection test failed", connection_id=str(connection.id), error=str(e))
            return ConnectionTestResult(
                False,
                f"Shopify connection failed: {e}",
                {"platform": "shopify", "shop_domain": credentials.get("shop_domain")},
            )
        return ConnectionTestResult(
            True,
            "Shopify connection is working",
            {"platform": "shopify", "shop_domain": credentials.get("shop_domain"), "shop": shop},
        )

    if connection.platform == Platform.AMAZON.value:
        # Amazon SP-API is not integrated; only the credential shape is checked
        missing = [name for name in AMAZON_REQUIRED_FIELDS if not credentials.get(name)]
        if missing:
            return ConnectionTestResult(
                False,
                f"Amazon connection failed: missing {', '.join(missing)}",
                {"platform": "amazon"},
            )
        return ConnectionTestResult(True, "Amazon connection is working", {"platform": "amazon"})

    return ConnectionTestResult(False, "Unsupported platform")
