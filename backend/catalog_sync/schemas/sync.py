"""
Sync Pydantic schemas for request/response validation.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from catalog_sync.models.sync_log import SyncOperation


class SyncType(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class ProductOperation(str, Enum):
    CREATE = SyncOperation.CREATE.value
    UPDATE = SyncOperation.UPDATE.value
    DELETE = SyncOperation.DELETE.value


class BulkSyncRequest(BaseModel):
    """Schema for starting a bulk sync."""

    connection_id: Optional[UUID] = Field(None, alias="connectionId")
    sync_type: SyncType = Field(SyncType.INCREMENTAL, alias="syncType")
    since: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True)


class ProductSyncRequest(BaseModel):
    """Schema for pushing one product to Shopify."""

    product_id: UUID = Field(..., alias="productId")
    operation: ProductOperation = ProductOperation.CREATE
    connection_id: Optional[UUID] = Field(None, alias="connectionId")

    model_config = ConfigDict(populate_by_name=True)


class BatchSyncRequest(BaseModel):
    """Schema for pushing several products to Shopify."""

    product_ids: list[UUID] = Field(..., min_length=1, max_length=50, alias="productIds")
    operation: ProductOperation = ProductOperation.UPDATE
    connection_id: Optional[UUID] = Field(None, alias="connectionId")
    batch_size: int = Field(5, ge=1, le=10, alias="batchSize")

    model_config = ConfigDict(populate_by_name=True)


class PendingSyncRequest(BaseModel):
    connection_id: Optional[UUID] = Field(None, alias="connectionId")

    model_config = ConfigDict(populate_by_name=True)


class ImportRequest(BaseModel):
    """Schema for starting a background full import."""

    connection_id: Optional[UUID] = Field(None, alias="connectionId")

    model_config = ConfigDict(populate_by_name=True)


class ImportProductRequest(BaseModel):
    """Schema for importing a single Shopify product."""

    external_id: str = Field(..., min_length=1, alias="externalId")
    connection_id: Optional[UUID] = Field(None, alias="connectionId")

    model_config = ConfigDict(populate_by_name=True)


class SyncLogResponse(BaseModel):
    """Schema for a sync log entry."""

    id: UUID
    product_id: Optional[UUID] = Field(None, alias="productId")
    scope: str
    platform: str
    operation: str
    status: str
    message: Optional[str] = None
    execution_time: Optional[float] = Field(None, alias="executionTime")
    response_data: Optional[dict[str, Any]] = Field(None, alias="responseData")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class SyncRunResponse(BaseModel):
    """Outcome of a bulk or batched sync run."""

    success: bool
    total_processed: int = Field(alias="totalProcessed")
    successful: int
    failed: int
    errors: list[str] = Field(default_factory=list)
    processing_time: float = Field(0.0, alias="processingTime")

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BatchSyncResponse(SyncRunResponse):
    operation: str
    success_rate: int = Field(0, alias="successRate")


class BulkSyncResponse(SyncRunResponse):
    """Bulk sync outcome with the connection it ran against."""

    sync_type: SyncType = Field(alias="syncType")
    connection_id: UUID = Field(alias="connectionId")
    simulated: bool = False
    note: Optional[str] = None


class ProductSyncResponse(BaseModel):
    product_id: Optional[str] = Field(None, alias="productId")
    platform: str = "shopify"
    operation: str
    external_id: Optional[str] = Field(None, alias="externalId")
    sync_status: str = Field(alias="syncStatus")
    data: Optional[dict[str, Any]] = None

    model_config = ConfigDict(populate_by_name=True)


class PendingMappingResponse(BaseModel):
    product_id: str = Field(alias="productId")
    external_id: Optional[str] = Field(None, alias="externalId")
    sync_status: str = Field(alias="syncStatus")
    error_count: int = Field(0, alias="errorCount")
    error_message: Optional[str] = Field(None, alias="errorMessage")

    model_config = ConfigDict(populate_by_name=True)


class SyncStatsResponse(BaseModel):
    total_products: int = Field(alias="totalProducts")
    synced_products: int = Field(alias="syncedProducts")
    pending_products: int = Field(alias="pendingProducts")
    error_products: int = Field(alias="errorProducts")
    last_sync_time: Optional[datetime] = Field(None, alias="lastSyncTime")

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class SyncHealthResponse(BaseModel):
    status: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)
