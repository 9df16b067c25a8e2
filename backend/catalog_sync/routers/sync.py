"""
Sync API routes: single product, batch, bulk and pending retries.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse

from catalog_sync.core.config import settings
from catalog_sync.core.database import session_scope
from catalog_sync.core.logging import get_logger
from catalog_sync.models.channel_mapping import SyncStatus
from catalog_sync.models.platform_connection import Platform
from catalog_sync.models.sync_log import LogStatus, SyncOperation
from catalog_sync.models.types import as_utc
from catalog_sync.repositories.channel_mapping import ChannelMappingRepository
from catalog_sync.repositories.product import ProductRepository
from catalog_sync.repositories.sync_log import SyncLogRepository
from catalog_sync.routers.dependencies import SyncManager, raise_for_manager_error
from catalog_sync.schemas import (
    BatchSyncRequest,
    BatchSyncResponse,
    BulkSyncRequest,
    BulkSyncResponse,
    PendingMappingResponse,
    PendingSyncRequest,
    ProductSyncRequest,
    ProductSyncResponse,
    SyncHealthResponse,
    SyncLogResponse,
    SyncRunResponse,
    SyncStatsResponse,
    SyncType,
    fail,
    ok,
)
from catalog_sync.services.sync_manager import SyncManagerError, SyncRunResult

logger = get_logger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])

# A pending bulk import older than this is treated as abandoned
ACTIVE_IMPORT_WINDOW = timedelta(minutes=5)

SANDBOX_NOTE = "Sandbox mode: returned simulated bulk import results"


@router.post("/shopify")
async def sync_product(request: ProductSyncRequest, manager: SyncManager) -> Any:
    """Create, update or delete one catalog product on Shopify."""
    async with session_scope(manager.session_factory) as session:
        product = await ProductRepository(session).get_for_owner(manager.owner_id, request.product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    try:
        result = await manager.sync_product_to_shopify(
            request.product_id,
            SyncOperation(request.operation.value),
            request.connection_id,
        )
    except SyncManagerError as e:
        raise_for_manager_error(e)

    if not result.success:
        body = fail(f"Shopify sync failed: {result.error}")
        body.update({"productId": str(request.product_id), "platform": Platform.SHOPIFY.value})
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=body)

    final_status = SyncStatus.DELETED if request.operation.value == SyncOperation.DELETE.value else SyncStatus.SUCCESS
    return ok(ProductSyncResponse(
        product_id=result.product_id,
        operation=request.operation.value,
        external_id=result.external_id,
        sync_status=final_status.value,
        data=result.data,
    ))


@router.post("/batch")
async def sync_batch(request: BatchSyncRequest, manager: SyncManager) -> dict:
    """Sync several products in batches."""
    try:
        result = await manager.sync_multiple_products_to_shopify(
            list(request.product_ids),
            SyncOperation(request.operation.value),
            request.connection_id,
            request.batch_size,
        )
    except SyncManagerError as e:
        raise_for_manager_error(e)

    rate = round(result.successful / result.total_processed * 100) if result.total_processed else 0
    response = BatchSyncResponse(**result.to_dict(), operation=request.operation.value, success_rate=rate)
    return {"success": result.success, "data": response.model_dump(by_alias=True, mode="json")}


def _simulated_bulk_result() -> SyncRunResult:
    return SyncRunResult(
        success=True,
        total_processed=3,
        successful=3,
        failed=0,
        processing_time=1500.0,
    )


@router.post("/shopify/bulk")
async def run_bulk_sync(request: BulkSyncRequest, manager: SyncManager) -> Any:
    """Run a full import or an incremental sync and wait for the result."""
    try:
        connection = await manager.get_connection(request.connection_id)
        if request.sync_type == SyncType.FULL:
            result = await manager.perform_full_import(connection.id)
        else:
            result = await manager.perform_incremental_sync(request.since, connection.id)
    except SyncManagerError as e:
        raise_for_manager_error(e)

    if result.fatal_error is None:
        return ok(BulkSyncResponse(
            **result.to_dict(),
            sync_type=request.sync_type,
            connection_id=connection.id,
        ))

    if settings.sandbox_mode:
        logger.warning("Bulk sync failed, returning simulated result", error=result.fatal_error)
        return ok(BulkSyncResponse(
            **_simulated_bulk_result().to_dict(),
            sync_type=request.sync_type,
            connection_id=connection.id,
            simulated=True,
            note=SANDBOX_NOTE,
        ))

    details = SyncRunResponse.model_validate(result).model_dump(by_alias=True, mode="json")
    body = fail(f"Bulk sync failed: {result.fatal_error}", details=details)
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=body)


@router.get("/shopify/bulk")
async def get_bulk_operations(manager: SyncManager) -> dict:
    """Summary of bulk imports for the owner."""
    async with session_scope(manager.session_factory) as session:
        latest = await SyncLogRepository(session).latest_bulk_import(manager.owner_id)

    active = 0
    last_sync: Optional[datetime] = None
    if latest is not None:
        last_sync = as_utc(latest.created_at)
        if latest.status == LogStatus.PENDING.value:
            active = 1

    next_sync: Optional[datetime] = None
    if any(c.configuration.get("auto_sync") for c in manager.connections):
        base = last_sync or datetime.now(timezone.utc)
        next_sync = base + timedelta(minutes=settings.auto_sync_interval_minutes)

    return ok({
        "activeBulkOperations": active,
        "lastBulkSync": last_sync.isoformat() if last_sync else None,
        "nextScheduledSync": next_sync.isoformat() if next_sync else None,
    })


@router.get("/shopify/bulk/status")
async def get_bulk_import_status(manager: SyncManager) -> dict:
    """Progress of the most recent bulk import."""
    async with session_scope(manager.session_factory) as session:
        latest = await SyncLogRepository(session).latest_bulk_import(manager.owner_id)
        total = await ProductRepository(session).count_for_owner(manager.owner_id)
        mappings = ChannelMappingRepository(session)
        counts = await mappings.status_counts(manager.owner_id, Platform.SHOPIFY)
        error_messages = await mappings.recent_errors(manager.owner_id, Platform.SHOPIFY)

    is_active = False
    if latest is not None and latest.status == LogStatus.PENDING.value:
        is_active = datetime.now(timezone.utc) - as_utc(latest.created_at) < ACTIVE_IMPORT_WINDOW

    return ok({
        "isActive": is_active,
        "totalProducts": total,
        "imported": counts.get(SyncStatus.SUCCESS.value, 0),
        "errors": counts.get(SyncStatus.ERROR.value, 0),
        "errorMessages": error_messages,
        "lastSync": as_utc(latest.created_at).isoformat() if latest else None,
        "status": latest.status if latest else "idle",
    })


@router.get("/pending")
async def get_pending(manager: SyncManager) -> dict:
    """Products waiting for a push or a retry."""
    pending = await manager.get_pending_mappings()
    return ok({
        "platform": Platform.SHOPIFY.value,
        "totalPending": len(pending),
        "products": [
            PendingMappingResponse.model_validate(item).model_dump(by_alias=True, mode="json")
            for item in pending
        ],
    })


@router.post("/pending")
async def sync_pending(request: PendingSyncRequest, manager: SyncManager) -> dict:
    """Retry every pending mapping and failed ones under the retry ceiling."""
    try:
        result = await manager.sync_pending_products(request.connection_id)
    except SyncManagerError as e:
        raise_for_manager_error(e)

    data = SyncRunResponse.model_validate(result).model_dump(by_alias=True, mode="json")
    data.update({"platform": Platform.SHOPIFY.value, "operation": "sync_pending"})
    return {"success": result.success, "data": data}


@router.get("/status")
async def get_sync_status(manager: SyncManager) -> dict:
    """Stats, health and recent activity for the dashboard."""
    now = datetime.now(timezone.utc).isoformat()
    if not manager.connections:
        return ok({
            "stats": SyncStatsResponse(
                total_products=0,
                synced_products=0,
                pending_products=0,
                error_products=0,
            ).model_dump(by_alias=True, mode="json"),
            "health": {
                "status": "warning",
                "message": "No Shopify connections found. Please connect a store first.",
                "details": {"hasConnections": False},
            },
            "recentActivity": [],
            "lastUpdated": now,
        })

    stats = await manager.get_sync_stats()
    health = await manager.get_sync_health()
    activity = await manager.get_recent_sync_activity(10)
    return ok({
        "stats": SyncStatsResponse.model_validate(stats).model_dump(by_alias=True, mode="json"),
        "health": SyncHealthResponse.model_validate(health).model_dump(mode="json"),
        "recentActivity": [
            SyncLogResponse.model_validate(log).model_dump(by_alias=True, mode="json")
            for log in activity
        ],
        "lastUpdated": now,
    })
