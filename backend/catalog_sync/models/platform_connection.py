"""
PlatformConnection model - credentials and sync settings for one sales channel.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.core.database import Base
from catalog_sync.models.types import JSONType, utcnow


class Platform(str, Enum):
    """External sales platforms."""

    SHOPIFY = "shopify"
    AMAZON = "amazon"


DEFAULT_CONNECTION_CONFIGURATION: dict[str, Any] = {
    "auto_sync": False,
    "sync_inventory": True,
    "sync_prices": True,
    "sync_images": True,
}


class PlatformConnection(Base):
    """Connection with Fernet-encrypted credentials."""

    __tablename__ = "platform_connections"
    __table_args__ = (
        UniqueConstraint(
            "owner_id", "platform", "connection_name",
            name="uq_platform_connections_owner_platform_name",
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    owner_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    connection_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Plain copy of the shop domain so webhooks can be attributed without decrypting
    shop_domain: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    credentials_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    configuration: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        default=lambda: dict(DEFAULT_CONNECTION_CONFIGURATION),
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_connected: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    def __repr__(self) -> str:
        return f"<PlatformConnection {self.platform}:{self.connection_name}>"
