"""
SQLAlchemy models package.
All models are imported here for easy access and Alembic discovery.
"""
from catalog_sync.models.channel_mapping import (
    ALLOWED_TRANSITIONS,
    ChannelMapping,
    InvalidTransitionError,
    SyncStatus,
    ensure_transition,
)
from catalog_sync.models.platform_connection import (
    DEFAULT_CONNECTION_CONFIGURATION,
    Platform,
    PlatformConnection,
)
from catalog_sync.models.product import Product, ProductStatus
from catalog_sync.models.sync_log import LogScope, LogStatus, SyncLog, SyncOperation

__all__ = [
    "Product",
    "ProductStatus",
    "PlatformConnection",
    "Platform",
    "DEFAULT_CONNECTION_CONFIGURATION",
    "ChannelMapping",
    "SyncStatus",
    "InvalidTransitionError",
    "ALLOWED_TRANSITIONS",
    "ensure_transition",
    "SyncLog",
    "SyncOperation",
    "LogStatus",
    "LogScope",
]
