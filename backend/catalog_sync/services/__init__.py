"""
Services package for business logic layer.
"""
from catalog_sync.services.bulk_sync import BulkSyncResult, ShopifyBulkSync
from catalog_sync.services.connections import ConnectionTestResult, check_platform_connection
from catalog_sync.services.oauth import OAuthError, ShopifyOAuth
from catalog_sync.services.product_sync import ShopifyProductSync, SyncResult
from catalog_sync.services.shopify_client import (
    ShopifyAPIError,
    ShopifyGraphQLClient,
    ShopifyRateLimiter,
)
from catalog_sync.services.sync_manager import ShopifySyncManager, SyncManagerError
from catalog_sync.services.webhooks import ShopifyWebhook, ShopifyWebhookProcessor

__all__ = [
    "ShopifyGraphQLClient",
    "ShopifyRateLimiter",
    "ShopifyAPIError",
    "ShopifyBulkSync",
    "BulkSyncResult",
    "ShopifyProductSync",
    "SyncResult",
    "ShopifyWebhook",
    "ShopifyWebhookProcessor",
    "ShopifySyncManager",
    "SyncManagerError",
    "ShopifyOAuth",
    "OAuthError",
    "ConnectionTestResult",
    "check_platform_connection",
]
