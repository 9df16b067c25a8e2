"""
Platform connection Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from catalog_sync.models.platform_connection import Platform

_REQUIRED_CREDENTIALS = {
    Platform.SHOPIFY: ("shop_domain", "access_token"),
    Platform.AMAZON: ("seller_id", "marketplace_id", "refresh_token"),
}


class ConnectionConfiguration(BaseModel):
    """Sync switches stored with a connection."""

    auto_sync: bool = False
    sync_inventory: bool = True
    sync_prices: bool = True
    sync_images: bool = True

    model_config = ConfigDict(extra="allow")


class PlatformConnectionCreate(BaseModel):
    """Schema for creating a platform connection."""

    platform: Platform
    connection_name: str = Field(..., min_length=1, max_length=100, alias="connectionName")
    credentials: dict[str, Any]
    configuration: Optional[ConnectionConfiguration] = None

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def check_credentials(self) -> "PlatformConnectionCreate":
        missing = [key for key in _REQUIRED_CREDENTIALS[self.platform] if not self.credentials.get(key)]
        if missing:
            raise ValueError(f"credentials missing: {', '.join(missing)}")
        return self


class PlatformConnectionUpdate(BaseModel):
    """Schema for updating a platform connection."""

    connection_name: Optional[str] = Field(None, min_length=1, max_length=100, alias="connectionName")
    credentials: Optional[dict[str, Any]] = None
    configuration: Optional[dict[str, Any]] = None
    is_active: Optional[bool] = Field(None, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)


class PlatformConnectionResponse(BaseModel):
    """Connection as returned to the dashboard. Credentials are never included."""

    id: UUID
    platform: str
    connection_name: str = Field(alias="connectionName")
    shop_domain: Optional[str] = Field(None, alias="shopDomain")
    configuration: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = Field(alias="isActive")
    last_connected: Optional[datetime] = Field(None, alias="lastConnected")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )
