"""
ChannelMapping model - links a catalog product to its id on an external platform.

Status changes go through ``ensure_transition`` so illegal moves such as
``deleted -> pending`` are rejected before they reach the database.
"""
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from catalog_sync.core.database import Base
from catalog_sync.models.types import JSONType, utcnow

if TYPE_CHECKING:
    from catalog_sync.models.product import Product


class SyncStatus(str, Enum):
    """Per-product sync state on one platform."""

    PENDING = "pending"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"
    DELETED = "deleted"


class InvalidTransitionError(ValueError):
    """Raised for a sync status change the state table does not allow."""

    def __init__(self, current: Optional[SyncStatus], new: SyncStatus):
        self.current = current
        self.new = new
        label = current.value if current else "<new>"
        super().__init__(f"Illegal sync status transition {label} -> {new.value}")


_ANY_LIVE = frozenset(
    {SyncStatus.PENDING, SyncStatus.SYNCING, SyncStatus.SUCCESS, SyncStatus.ERROR, SyncStatus.DELETED}
)

# None is a mapping row that does not exist yet
ALLOWED_TRANSITIONS: dict[Optional[SyncStatus], frozenset[SyncStatus]] = {
    None: frozenset({SyncStatus.PENDING, SyncStatus.SYNCING, SyncStatus.SUCCESS, SyncStatus.ERROR}),
    SyncStatus.PENDING: _ANY_LIVE,
    SyncStatus.SYNCING: _ANY_LIVE,
    SyncStatus.SUCCESS: _ANY_LIVE,
    SyncStatus.ERROR: _ANY_LIVE,
    # A deleted product can only come back through an explicit sync or re-import
    SyncStatus.DELETED: frozenset({SyncStatus.SYNCING, SyncStatus.SUCCESS, SyncStatus.DELETED}),
}


def ensure_transition(current: Optional[SyncStatus | str], new: SyncStatus | str) -> SyncStatus:
    """Validate a status change and return the new status as an enum."""
    current_status = SyncStatus(current) if current is not None else None
    new_status = SyncStatus(new)
    if new_status not in ALLOWED_TRANSITIONS[current_status]:
        raise InvalidTransitionError(current_status, new_status)
    return new_status


class ChannelMapping(Base):
    """Join between a product and its external platform record."""

    __tablename__ = "channel_mappings"
    __table_args__ = (
        UniqueConstraint("product_id", "platform", name="uq_channel_mappings_product_platform"),
        Index("ix_channel_mappings_platform_external_id", "platform", "external_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    product_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("products.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    external_id: Mapped[Optional[str]] = mapped_column(String(255))
    external_variant_id: Mapped[Optional[str]] = mapped_column(String(255))

    sync_status: Mapped[str] = mapped_column(
        String(20),
        default=SyncStatus.PENDING.value,
        index=True,
    )
    last_synced: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    error_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sync_data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    product: Mapped["Product"] = relationship("Product", back_populates="mappings")

    @property
    def status(self) -> SyncStatus:
        return SyncStatus(self.sync_status)

    def __repr__(self) -> str:
        return f"<ChannelMapping {self.platform}:{self.external_id} {self.sync_status}>"
