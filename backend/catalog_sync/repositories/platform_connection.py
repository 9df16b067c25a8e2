"""
Platform connection repository.

Credentials are encrypted on the way in and decrypted only on request.
"""
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select

from catalog_sync.core.security import decrypt_credentials, encrypt_credentials
from catalog_sync.models.platform_connection import (
    DEFAULT_CONNECTION_CONFIGURATION,
    Platform,
    PlatformConnection,
)
from catalog_sync.repositories.base import BaseRepository


class PlatformConnectionRepository(BaseRepository[PlatformConnection]):
    """Repository for PlatformConnection model operations."""

    model = PlatformConnection

    async def list_for_owner(self, owner_id: str) -> list[PlatformConnection]:
        stmt = (
            select(PlatformConnection)
            .where(PlatformConnection.owner_id == owner_id)
            .order_by(PlatformConnection.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_active(
        self,
        owner_id: str,
        platform: Platform | str = Platform.SHOPIFY,
    ) -> list[PlatformConnection]:
        """Active connections for one platform, oldest first."""
        stmt = (
            select(PlatformConnection)
            .where(
                PlatformConnection.owner_id == owner_id,
                PlatformConnection.platform == Platform(platform).value,
                PlatformConnection.is_active.is_(True),
            )
            .order_by(PlatformConnection.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_for_owner(
        self,
        owner_id: str,
        connection_id: UUID | str,
    ) -> Optional[PlatformConnection]:
        connection = await self.get_by_id(connection_id)
        if connection is None or connection.owner_id != owner_id:
            return None
        return connection

    async def get_by_name(
        self,
        owner_id: str,
        platform: Platform | str,
        connection_name: str,
    ) -> Optional[PlatformConnection]:
        stmt = select(PlatformConnection).where(
            PlatformConnection.owner_id == owner_id,
            PlatformConnection.platform == Platform(platform).value,
            PlatformConnection.connection_name == connection_name,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_shop_domain(
        self,
        shop_domain: str,
        platform: Platform | str = Platform.SHOPIFY,
    ) -> Optional[PlatformConnection]:
        """First active connection for a shop domain, used to attribute webhooks."""
        stmt = (
            select(PlatformConnection)
            .where(
                PlatformConnection.platform == Platform(platform).value,
                PlatformConnection.shop_domain == shop_domain.lower(),
                PlatformConnection.is_active.is_(True),
            )
            .order_by(PlatformConnection.created_at)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_connection(
        self,
        owner_id: str,
        platform: Platform | str,
        connection_name: str,
        credentials: dict[str, Any],
        configuration: Optional[dict[str, Any]] = None,
    ) -> PlatformConnection:
        shop_domain = credentials.get("shop_domain")
        return await self.create({
            "owner_id": owner_id,
            "platform": Platform(platform).value,
            "connection_name": connection_name,
            "shop_domain": shop_domain.lower() if shop_domain else None,
            "credentials_encrypted": encrypt_credentials(credentials),
            "configuration": {**DEFAULT_CONNECTION_CONFIGURATION, **(configuration or {})},
            "is_active": True,
            "last_connected": datetime.now(timezone.utc),
        })

    async def update_connection(
        self,
        connection: PlatformConnection,
        *,
        connection_name: Optional[str] = None,
        credentials: Optional[dict[str, Any]] = None,
        configuration: Optional[dict[str, Any]] = None,
        is_active: Optional[bool] = None,
    ) -> PlatformConnection:
        changes: dict[str, Any] = {
            "connection_name": connection_name,
            "is_active": is_active,
        }
        if credentials is not None:
            changes["credentials_encrypted"] = encrypt_credentials(credentials)
            if credentials.get("shop_domain"):
                changes["shop_domain"] = credentials["shop_domain"].lower()
        if configuration is not None:
            changes["configuration"] = {**(connection.configuration or {}), **configuration}
        return await self.update(connection, changes)

    async def touch_last_connected(self, connection: PlatformConnection) -> PlatformConnection:
        return await self.update(connection, {"last_connected": datetime.now(timezone.utc)})

    @staticmethod
    def credentials_of(connection: PlatformConnection) -> dict[str, Any]:
        return decrypt_credentials(connection.credentials_encrypted)

    async def list_auto_sync(
        self,
        platform: Platform | str = Platform.SHOPIFY,
    ) -> list[PlatformConnection]:
        """Active connections of every owner with auto_sync switched on."""
        stmt = select(PlatformConnection).where(
            PlatformConnection.platform == Platform(platform).value,
            PlatformConnection.is_active.is_(True),
        )
        result = await self.session.execute(stmt)
        # configuration is JSON on SQLite and JSONB on Postgres, so filter here
        return [
            connection
            for connection in result.scalars().all()
            if (connection.configuration or {}).get("auto_sync")
        ]
