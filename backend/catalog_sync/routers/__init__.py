"""
API routers package.
"""
from catalog_sync.routers.auth import router as auth_router
from catalog_sync.routers.health import router as health_router
from catalog_sync.routers.imports import router as imports_router
from catalog_sync.routers.platform_connections import router as platform_connections_router
from catalog_sync.routers.sync import router as sync_router
from catalog_sync.routers.webhooks import router as webhooks_router

__all__ = [
    "health_router",
    "auth_router",
    "imports_router",
    "platform_connections_router",
    "sync_router",
    "webhooks_router",
]
