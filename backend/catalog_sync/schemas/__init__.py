"""
Pydantic schemas package.
"""
from catalog_sync.schemas.common import ErrorEnvelope, fail, ok
from catalog_sync.schemas.connection import (
    ConnectionConfiguration,
    PlatformConnectionCreate,
    PlatformConnectionResponse,
    PlatformConnectionUpdate,
)
from catalog_sync.schemas.sync import (
    BatchSyncRequest,
    BulkSyncRequest,
    ImportProductRequest,
    ImportRequest,
    PendingSyncRequest,
    ProductOperation,
    BatchSyncResponse,
    BulkSyncResponse,
    PendingMappingResponse,
    ProductSyncRequest,
    ProductSyncResponse,
    SyncHealthResponse,
    SyncLogResponse,
    SyncRunResponse,
    SyncStatsResponse,
    SyncType,
)

__all__ = [
    # Envelope
    "ErrorEnvelope",
    "ok",
    "fail",
    # Connections
    "ConnectionConfiguration",
    "PlatformConnectionCreate",
    "PlatformConnectionUpdate",
    "PlatformConnectionResponse",
    # Sync
    "BulkSyncRequest",
    "ProductSyncRequest",
    "BatchSyncRequest",
    "PendingSyncRequest",
    "ImportRequest",
    "ImportProductRequest",
    "ProductOperation",
    "SyncLogResponse",
    "SyncType",
    "SyncRunResponse",
    "BatchSyncResponse",
    "BulkSyncResponse",
    "ProductSyncResponse",
    "PendingMappingResponse",
    "SyncStatsResponse",
    "SyncHealthResponse",
]
