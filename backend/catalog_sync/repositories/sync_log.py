"""
Sync log repository - append and query the audit trail.
"""
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, select

from catalog_sync.models.platform_connection import Platform
from catalog_sync.models.sync_log import LogScope, LogStatus, SyncLog, SyncOperation
from catalog_sync.repositories.base import BaseRepository


class SyncLogRepository(BaseRepository[SyncLog]):
    """Repository for SyncLog model operations."""

    model = SyncLog

    async def append(
        self,
        *,
        operation: SyncOperation,
        status: LogStatus,
        owner_id: Optional[str] = None,
        product_id: Optional[UUID] = None,
        scope: LogScope = LogScope.PRODUCT,
        platform: Platform | str = Platform.SHOPIFY,
        message: Optional[str] = None,
        request_data: Optional[dict[str, Any]] = None,
        response_data: Optional[dict[str, Any]] = None,
        execution_time: Optional[float] = None,
        webhook_id: Optional[str] = None,
    ) -> SyncLog:
        log = SyncLog(
            owner_id=owner_id,
            product_id=product_id,
            scope=scope.value,
            platform=Platform(platform).value,
            operation=operation.value,
            status=status.value,
            message=message,
            request_data=request_data,
            response_data=response_data,
            execution_time=execution_time,
            webhook_id=webhook_id,
        )
        self.session.add(log)
        await self.session.flush()
        return log

    async def complete(
        self,
        log: SyncLog,
        status: LogStatus,
        message: Optional[str] = None,
        response_data: Optional[dict[str, Any]] = None,
        execution_time: Optional[float] = None,
    ) -> SyncLog:
        """Finish an in-flight row. Only rows still pending may be completed."""
        if log.status != LogStatus.PENDING.value:
            raise ValueError(f"Sync log {log.id} is already {log.status}")
        log.status = status.value
        log.message = message
        log.response_data = response_data
        log.execution_time = execution_time
        log.updated_at = datetime.now(timezone.utc)
        await self.session.flush()
        return log

    async def has_webhook(self, webhook_id: str) -> bool:
        stmt = select(SyncLog.id).where(SyncLog.webhook_id == webhook_id).limit(1)
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def recent_for_owner(self, owner_id: str, limit: int = 50) -> list[SyncLog]:
        stmt = (
            select(SyncLog)
            .where(SyncLog.owner_id == owner_id)
            .order_by(SyncLog.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def latest_bulk_import(
        self,
        owner_id: str,
        platform: Platform | str = Platform.SHOPIFY,
    ) -> Optional[SyncLog]:
        stmt = (
            select(SyncLog)
            .where(
                SyncLog.owner_id == owner_id,
                SyncLog.platform == Platform(platform).value,
                SyncLog.operation == SyncOperation.BULK_IMPORT.value,
            )
            .order_by(SyncLog.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def status_counts_since(self, owner_id: str, since: datetime) -> dict[str, int]:
        """Log count per status since a point in time."""
        stmt = (
            select(SyncLog.status, func.count())
            .where(SyncLog.owner_id == owner_id, SyncLog.created_at >= since)
            .group_by(SyncLog.status)
        )
        result = await self.session.execute(stmt)
        return {status: count for status, count in result.all()}
