"""
SyncLog model - append-only audit trail of sync attempts and webhooks.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Float, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.core.database import Base
from catalog_sync.models.types import JSONType, utcnow


class SyncOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    BULK_IMPORT = "bulk_import"
    WEBHOOK = "webhook"


class LogStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    PENDING = "pending"


class LogScope(str, Enum):
    """What a log row is about when it is not tied to a single product."""

    PRODUCT = "product"
    BULK_IMPORT = "bulk-import"
    WEBHOOK = "webhook"
    EXTERNAL = "external"
    INVENTORY = "inventory"


class SyncLog(Base):
    """One sync attempt or inbound webhook."""

    __tablename__ = "sync_logs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    # Null for webhooks from shops without a known connection
    owner_id: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    product_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("products.id", ondelete="SET NULL"),
        index=True,
    )
    scope: Mapped[str] = mapped_column(String(20), default=LogScope.PRODUCT.value)
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    operation: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text)
    request_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType)
    response_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType)
    # Milliseconds
    execution_time: Mapped[Optional[float]] = mapped_column(Float)
    webhook_id: Mapped[Optional[str]] = mapped_column(String(255), index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    def __repr__(self) -> str:
        return f"<SyncLog {self.operation} {self.status}>"
