"""
Product model - the canonical catalog item owned by one user.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from catalog_sync.core.database import Base
from catalog_sync.models.types import JSONType, utcnow

if TYPE_CHECKING:
    from catalog_sync.models.channel_mapping import ChannelMapping


class ProductStatus(str, Enum):
    """Local product lifecycle status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    DRAFT = "draft"


class Product(Base):
    """Catalog product with the fields mirrored to sales channels."""

    __tablename__ = "products"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    owner_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    inventory: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(255))
    brand: Mapped[Optional[str]] = mapped_column(String(255))
    category: Mapped[Optional[str]] = mapped_column(String(255))
    # Kilograms
    weight: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3))
    tags: Mapped[list[str]] = mapped_column(JSONType, default=list)
    images: Mapped[list[str]] = mapped_column(JSONType, default=list)
    status: Mapped[str] = mapped_column(String(20), default=ProductStatus.DRAFT.value)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    mappings: Mapped[list["ChannelMapping"]] = relationship(
        "ChannelMapping",
        back_populates="product",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Product {self.title[:30]}>"
