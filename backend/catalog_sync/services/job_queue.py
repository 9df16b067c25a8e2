"""
ARQ Job Queue Service - Async Redis-based job queue for background sync.

Provides:
- Full import, incremental sync and pending-retry jobs per owner
- Periodic incremental sync for connections with auto_sync enabled
"""
from datetime import datetime
from typing import Any, Optional

from arq import create_pool, cron
from arq.connections import ArqRedis, RedisSettings

from catalog_sync.core.config import settings
from catalog_sync.core.database import get_db_context, get_session_factory
from catalog_sync.core.logging import configure_logging, get_logger
from catalog_sync.models.platform_connection import Platform
from catalog_sync.repositories.platform_connection import PlatformConnectionRepository
from catalog_sync.services.sync_manager import ShopifySyncManager, SyncManagerError

logger = get_logger(__name__)


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from config."""
    return RedisSettings.from_dsn(settings.redis_url or "redis://localhost:6379")


def _manager(owner_id: str) -> ShopifySyncManager:
    return ShopifySyncManager(owner_id, get_session_factory())


# ============================================
# JOB FUNCTIONS
# ============================================

async def full_import_job(
    ctx: dict,
    owner_id: str,
    connection_id: Optional[str] = None,
) -> dict[str, Any]:
    """Background full import for one owner."""
    logger.info("Full import job started", owner_id=owner_id, connection_id=connection_id)
    try:
        result = await _manager(owner_id).perform_full_import(connection_id)
    except SyncManagerError as e:
        logger.warning("Full import job skipped", owner_id=owner_id, error=str(e))
        return {"success": False, "error": str(e)}
    return result.to_dict()


async def incremental_sync_job(
    ctx: dict,
    owner_id: str,
    connection_id: Optional[str] = None,
    since: Optional[str] = None,
) -> dict[str, Any]:
    """Background incremental sync; ``since`` is an ISO-8601 timestamp."""
    since_dt = datetime.fromisoformat(since) if since else None
    try:
        result = await _manager(owner_id).perform_incremental_sync(since_dt, connection_id)
    except SyncManagerError as e:
        logger.warning("Incremental sync job skipped", owner_id=owner_id, error=str(e))
        return {"success": False, "error": str(e)}
    return result.to_dict()


async def sync_pending_job(
    ctx: dict,
    owner_id: str,
    connection_id: Optional[str] = None,
) -> dict[str, Any]:
    try:
        result = await _manager(owner_id).sync_pending_products(connection_id)
    except SyncManagerError as e:
        logger.warning("Pending sync job skipped", owner_id=owner_id, error=str(e))
        return {"success": False, "error": str(e)}
    return result.to_dict()


async def scheduled_incremental_sync(ctx: dict) -> dict[str, Any]:
    """Queue an incremental sync for every connection with auto_sync on."""
    async with get_db_context() as session:
        connections = await PlatformConnectionRepository(session).list_auto_sync(Platform.SHOPIFY)
        targets = [(connection.owner_id, str(connection.id)) for connection in connections]

    if not targets:
        logger.info("No connections with automatic sync enabled")
        return {"queued": 0}

    redis: ArqRedis = ctx["redis"]
    for owner_id, connection_id in targets:
        await redis.enqueue_job("incremental_sync_job", owner_id, connection_id)

    logger.info("Scheduled incremental syncs queued", count=len(targets))
    return {"queued": len(targets)}


def _cron_minutes() -> set[int]:
    interval = settings.auto_sync_interval_minutes
    if interval <= 0 or interval >= 60:
        return {0}
    return set(range(0, 60, interval))


async def startup(ctx: dict) -> None:
    configure_logging()


# ============================================
# WORKER SETTINGS
# ============================================

class WorkerSettings:
    """ARQ worker configuration."""

    functions = [
        full_import_job,
        incremental_sync_job,
        sync_pending_job,
        scheduled_incremental_sync,
    ]

    cron_jobs = [
        cron(scheduled_incremental_sync, minute=_cron_minutes(), run_at_startup=False),
    ]

    on_startup = startup
    redis_settings = get_redis_settings()

    # Worker settings
    max_jobs = 10
    job_timeout = 3600  # bulk imports can take a while
    keep_result = 3600  # 1 hour
    retry_jobs = True
    max_tries = 3


async def create_queue_pool() -> ArqRedis:
    """Create ARQ Redis connection pool."""
    return await create_pool(get_redis_settings())


async def enqueue_job(function: str, *args: Any) -> Optional[str]:
    """Enqueue a job and return its id."""
    pool = await create_queue_pool()
    try:
        job = await pool.enqueue_job(function, *args)
        return job.job_id if job else None
    finally:
        await pool.aclose()
