"""
Import API routes: pull products from Shopify into the catalog.
"""
import uuid
from typing import Any

from fastapi import APIRouter, BackgroundTasks, status
from fastapi.responses import JSONResponse

from catalog_sync.core.config import settings
from catalog_sync.core.logging import get_logger
from catalog_sync.routers.dependencies import SyncManager, raise_for_manager_error
from catalog_sync.schemas import ImportProductRequest, ImportRequest, fail, ok
from catalog_sync.services.sync_manager import ShopifySyncManager, SyncManagerError

logger = get_logger(__name__)

router = APIRouter(prefix="/import", tags=["import"])


async def run_full_import(manager: ShopifySyncManager, connection_id: str, import_id: str) -> None:
    """Background task wrapper; failures end up in the sync log."""
    result = await manager.perform_full_import(connection_id)
    logger.info("Background import finished", import_id=import_id, **result.to_dict())


@router.post("/shopify")
async def start_shopify_import(
    request: ImportRequest,
    background_tasks: BackgroundTasks,
    manager: SyncManager,
) -> dict:
    """Start a full import in the background."""
    try:
        connection = await manager.get_connection(request.connection_id)
    except SyncManagerError as e:
        raise_for_manager_error(e)

    if settings.redis_url:
        from catalog_sync.services.job_queue import enqueue_job

        import_id = await enqueue_job("full_import_job", manager.owner_id, str(connection.id))
    else:
        import_id = uuid.uuid4().hex
        background_tasks.add_task(run_full_import, manager, str(connection.id), import_id)

    logger.info("Import started", owner_id=manager.owner_id, import_id=import_id)
    return {"success": True, "importId": import_id, "message": "Import started successfully"}


@router.post("/shopify/product")
async def import_shopify_product(request: ImportProductRequest, manager: SyncManager) -> Any:
    """Import one Shopify product by id or GID."""
    try:
        result = await manager.import_product_from_shopify(request.external_id, request.connection_id)
    except SyncManagerError as e:
        raise_for_manager_error(e)

    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=fail(f"Shopify import failed: {result.error}"),
        )
    return ok({"productId": result.product_id, "externalId": result.external_id})
