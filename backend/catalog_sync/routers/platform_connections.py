"""
Platform connection API routes.
"""
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from catalog_sync.core.database import DbSession
from catalog_sync.core.logging import get_logger
from catalog_sync.core.security import CurrentOwner
from catalog_sync.models.platform_connection import PlatformConnection
from catalog_sync.repositories.platform_connection import PlatformConnectionRepository
from catalog_sync.routers.dependencies import get_client_factory
from catalog_sync.schemas import (
    PlatformConnectionCreate,
    PlatformConnectionResponse,
    PlatformConnectionUpdate,
    ok,
)
from catalog_sync.services.connections import check_platform_connection
from catalog_sync.services.sync_manager import ClientFactory

logger = get_logger(__name__)

router = APIRouter(prefix="/platform-connections", tags=["platform-connections"])


async def get_connection_repository(session: DbSession) -> PlatformConnectionRepository:
    """Dependency to get platform connection repository."""
    return PlatformConnectionRepository(session)


ConnectionRepo = Annotated[PlatformConnectionRepository, Depends(get_connection_repository)]


async def _get_owned(
    repo: PlatformConnectionRepository,
    owner_id: str,
    connection_id: UUID,
) -> PlatformConnection:
    connection = await repo.get_for_owner(owner_id, connection_id)
    if connection is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Connection not found")
    return connection


def _serialize(connection: PlatformConnection) -> dict:
    return PlatformConnectionResponse.model_validate(connection).model_dump(by_alias=True, mode="json")


@router.get("")
async def list_connections(owner_id: CurrentOwner, repo: ConnectionRepo) -> dict:
    connections = await repo.list_for_owner(owner_id)
    return ok([_serialize(connection) for connection in connections])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_connection(
    data: PlatformConnectionCreate,
    owner_id: CurrentOwner,
    repo: ConnectionRepo,
) -> dict:
    """Store a new connection. Credentials are encrypted before they reach the database."""
    if await repo.get_by_name(owner_id, data.platform, data.connection_name):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A connection with this name already exists",
        )

    connection = await repo.create_connection(
        owner_id,
        data.platform,
        data.connection_name,
        data.credentials,
        data.configuration.model_dump() if data.configuration else None,
    )
    logger.info("Created platform connection", platform=connection.platform, connection_id=str(connection.id))
    return ok(_serialize(connection))


@router.get("/{connection_id}")
async def get_connection(connection_id: UUID, owner_id: CurrentOwner, repo: ConnectionRepo) -> dict:
    connection = await _get_owned(repo, owner_id, connection_id)
    return ok(_serialize(connection))


@router.patch("/{connection_id}")
async def update_connection(
    connection_id: UUID,
    data: PlatformConnectionUpdate,
    owner_id: CurrentOwner,
    repo: ConnectionRepo,
) -> dict:
    connection = await _get_owned(repo, owner_id, connection_id)
    connection = await repo.update_connection(
        connection,
        connection_name=data.connection_name,
        credentials=data.credentials,
        configuration=data.configuration,
        is_active=data.is_active,
    )
    logger.info("Updated platform connection", connection_id=str(connection_id))
    return ok(_serialize(connection))


@router.delete("/{connection_id}")
async def delete_connection(connection_id: UUID, owner_id: CurrentOwner, repo: ConnectionRepo) -> dict:
    connection = await _get_owned(repo, owner_id, connection_id)
    await repo.delete(connection)
    logger.info("Deleted platform connection", connection_id=str(connection_id))
    return {"success": True, "message": "Connection deleted successfully"}


@router.get("/{connection_id}/test")
async def check_connection(
    connection_id: UUID,
    owner_id: CurrentOwner,
    repo: ConnectionRepo,
    client_factory: Annotated[ClientFactory, Depends(get_client_factory)],
) -> dict:
    """Check the stored credentials against the platform."""
    connection = await _get_owned(repo, owner_id, connection_id)
    result = await check_platform_connection(connection, client_factory)
    if result.success:
        await repo.touch_last_connected(connection)
    return result.to_dict()
