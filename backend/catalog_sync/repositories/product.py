"""
Product repository - owner-scoped catalog access.
"""
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, select

from catalog_sync.models.product import Product
from catalog_sync.repositories.base import BaseRepository


class ProductRepository(BaseRepository[Product]):
    """Repository for Product model operations."""

    model = Product

    async def get_for_owner(self, owner_id: str, product_id: UUID | str) -> Optional[Product]:
        """Get a product only if it belongs to the owner."""
        product = await self.get_by_id(product_id)
        if product is None or product.owner_id != owner_id:
            return None
        return product

    async def list_for_owner(
        self,
        owner_id: str,
        *,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Product]:
        stmt = (
            select(Product)
            .where(Product.owner_id == owner_id)
            .order_by(Product.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create_for_owner(self, owner_id: str, data: dict[str, Any]) -> Product:
        return await self.create({**data, "owner_id": owner_id})

    async def update_product(self, product: Product, data: dict[str, Any]) -> Product:
        """Apply synced fields. Explicit None clears optional columns."""
        data = {key: value for key, value in data.items() if key not in ("id", "owner_id")}
        return await self.update(product, data, skip_none=False)

    async def count_for_owner(self, owner_id: str) -> int:
        stmt = select(func.count()).select_from(Product).where(Product.owner_id == owner_id)
        result = await self.session.execute(stmt)
        return result.scalar() or 0
