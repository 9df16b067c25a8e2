"""
Channel mapping repository.

Every status change goes through the transition table and keeps the
error counter rules: +1 on each move into ``error``, reset on ``success``.
"""
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, or_, select

from catalog_sync.models.channel_mapping import ChannelMapping, SyncStatus, ensure_transition
from catalog_sync.models.platform_connection import Platform
from catalog_sync.models.product import Product
from catalog_sync.repositories.base import BaseRepository


class ChannelMappingRepository(BaseRepository[ChannelMapping]):
    """Repository for ChannelMapping model operations."""

    model = ChannelMapping

    async def get_for_product(
        self,
        product_id: UUID,
        platform: Platform | str = Platform.SHOPIFY,
    ) -> Optional[ChannelMapping]:
        stmt = select(ChannelMapping).where(
            ChannelMapping.product_id == product_id,
            ChannelMapping.platform == Platform(platform).value,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_external_id(
        self,
        external_id: str,
        platform: Platform | str = Platform.SHOPIFY,
        owner_id: Optional[str] = None,
    ) -> Optional[ChannelMapping]:
        """Find the mapping for an external id, optionally limited to one owner's products."""
        stmt = select(ChannelMapping).where(
            ChannelMapping.platform == Platform(platform).value,
            ChannelMapping.external_id == external_id,
        )
        if owner_id is not None:
            stmt = stmt.join(Product, Product.id == ChannelMapping.product_id).where(
                Product.owner_id == owner_id
            )
        result = await self.session.execute(stmt.limit(1))
        return result.scalar_one_or_none()

    @staticmethod
    def _apply_status(
        mapping: ChannelMapping,
        current: Optional[str],
        status: SyncStatus,
        error_message: Optional[str],
    ) -> None:
        new_status = ensure_transition(current, status)
        mapping.sync_status = new_status.value
        if new_status == SyncStatus.SUCCESS:
            mapping.error_count = 0
            mapping.error_message = None
            mapping.last_synced = datetime.now(timezone.utc)
        elif new_status == SyncStatus.ERROR:
            mapping.error_count = (mapping.error_count or 0) + 1
            mapping.error_message = error_message
        elif error_message is not None:
            mapping.error_message = error_message

    async def upsert(
        self,
        product_id: UUID,
        platform: Platform | str,
        *,
        status: SyncStatus,
        external_id: Optional[str] = None,
        external_variant_id: Optional[str] = None,
        sync_data: Optional[dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> ChannelMapping:
        """Create or update the (product, platform) mapping."""
        mapping = await self.get_for_product(product_id, platform)
        current = mapping.sync_status if mapping else None
        if mapping is None:
            mapping = ChannelMapping(
                product_id=product_id,
                platform=Platform(platform).value,
                error_count=0,
                sync_data={},
            )
            self.session.add(mapping)

        self._apply_status(mapping, current, status, error_message)
        if external_id is not None:
            mapping.external_id = external_id
        if external_variant_id is not None:
            mapping.external_variant_id = external_variant_id
        if sync_data is not None:
            mapping.sync_data = sync_data

        await self.session.flush()
        await self.session.refresh(mapping)
        return mapping

    async def set_status(
        self,
        mapping: ChannelMapping,
        status: SyncStatus,
        error_message: Optional[str] = None,
    ) -> ChannelMapping:
        self._apply_status(mapping, mapping.sync_status, status, error_message)
        await self.session.flush()
        await self.session.refresh(mapping)
        return mapping

    async def mark_deleted(self, mapping: ChannelMapping, reason: str) -> ChannelMapping:
        """Soft-delete: the mapping row and the local product are kept."""
        return await self.set_status(mapping, SyncStatus.DELETED, error_message=reason)

    async def get_needing_sync(
        self,
        owner_id: str,
        platform: Platform | str = Platform.SHOPIFY,
        max_retries: int = 3,
    ) -> list[ChannelMapping]:
        """Pending mappings plus failed ones still under the retry ceiling."""
        stmt = (
            select(ChannelMapping)
            .join(Product, Product.id == ChannelMapping.product_id)
            .where(
                Product.owner_id == owner_id,
                ChannelMapping.platform == Platform(platform).value,
                or_(
                    ChannelMapping.sync_status == SyncStatus.PENDING.value,
                    (ChannelMapping.sync_status == SyncStatus.ERROR.value)
                    & (ChannelMapping.error_count < max_retries),
                ),
            )
            .order_by(ChannelMapping.updated_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def status_counts(
        self,
        owner_id: str,
        platform: Platform | str = Platform.SHOPIFY,
    ) -> dict[str, int]:
        """Mapping count per sync status, aggregated in the database."""
        stmt = (
            select(ChannelMapping.sync_status, func.count())
            .join(Product, Product.id == ChannelMapping.product_id)
            .where(
                Product.owner_id == owner_id,
                ChannelMapping.platform == Platform(platform).value,
            )
            .group_by(ChannelMapping.sync_status)
        )
        result = await self.session.execute(stmt)
        return {status: count for status, count in result.all()}

    async def last_synced_at(
        self,
        owner_id: str,
        platform: Platform | str = Platform.SHOPIFY,
    ) -> Optional[datetime]:
        stmt = (
            select(func.max(ChannelMapping.last_synced))
            .join(Product, Product.id == ChannelMapping.product_id)
            .where(
                Product.owner_id == owner_id,
                ChannelMapping.platform == Platform(platform).value,
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar()

    async def recent_errors(
        self,
        owner_id: str,
        platform: Platform | str = Platform.SHOPIFY,
        limit: int = 5,
    ) -> list[str]:
        """Latest error messages of mappings currently in error."""
        stmt = (
            select(ChannelMapping.error_message)
            .join(Product, Product.id == ChannelMapping.product_id)
            .where(
                Product.owner_id == owner_id,
                ChannelMapping.platform == Platform(platform).value,
                ChannelMapping.sync_status == SyncStatus.ERROR.value,
                ChannelMapping.error_message.is_not(None),
            )
            .order_by(ChannelMapping.updated_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
