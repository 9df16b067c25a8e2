"""
Shared router dependencies.
"""
from typing import Annotated, NoReturn

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.core.database import get_session_factory
from catalog_sync.core.security import CurrentOwner
from catalog_sync.services.sync_manager import (
    ClientFactory,
    ConnectionNotFoundError,
    ShopifySyncManager,
    SyncManagerError,
    default_client_factory,
)

SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


def get_client_factory() -> ClientFactory:
    """Factory used to build Shopify clients from stored credentials."""
    return default_client_factory


async def get_sync_manager(
    owner_id: CurrentOwner,
    session_factory: SessionFactory,
    client_factory: Annotated[ClientFactory, Depends(get_client_factory)],
) -> ShopifySyncManager:
    """Dependency to get a sync manager for the authenticated owner."""
    manager = ShopifySyncManager(owner_id, session_factory, client_factory=client_factory)
    await manager.initialize()
    return manager


SyncManager = Annotated[ShopifySyncManager, Depends(get_sync_manager)]


def raise_for_manager_error(error: SyncManagerError) -> NoReturn:
    """Translate connection lookup failures into HTTP errors."""
    if isinstance(error, ConnectionNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error)) from error
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error)) from error
