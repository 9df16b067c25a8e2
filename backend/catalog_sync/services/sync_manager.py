"""
Sync manager - one entry point for an owner's Shopify sync work.

Constructed per caller with its owner id and a session factory. Connections
are loaded once by ``initialize``; call it again to pick up new ones. The
optional periodic incremental sync runs as a task owned by the manager and
is stopped with ``stop``.
"""
import asyncio
import time
from contextlib import suppress
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.core.config import Settings, settings as default_settings
from catalog_sync.core.database import session_scope
from catalog_sync.core.logging import get_logger
from catalog_sync.models.channel_mapping import SyncStatus
from catalog_sync.models.platform_connection import Platform
from catalog_sync.models.sync_log import SyncLog, SyncOperation
from catalog_sync.repositories.channel_mapping import ChannelMappingRepository
from catalog_sync.repositories.platform_connection import PlatformConnectionRepository
from catalog_sync.repositories.product import ProductRepository
from catalog_sync.repositories.sync_log import SyncLogRepository
from catalog_sync.services.bulk_sync import BulkSyncResult, ShopifyBulkSync
from catalog_sync.services.product_sync import ShopifyProductSync, SyncResult
from catalog_sync.services.shopify_client import ShopifyAPIError, ShopifyGraphQLClient

logger = get_logger(__name__)

ClientFactory = Callable[[dict[str, Any]], ShopifyGraphQLClient]


class SyncManagerError(Exception):
    pass


class NoActiveConnectionError(SyncManagerError):
    def __init__(self) -> None:
        super().__init__("No active Shopify connections found")


class ConnectionNotFoundError(SyncManagerError):
    def __init__(self, connection_id: str) -> None:
        super().__init__(f"Shopify connection not found: {connection_id}")
        self.connection_id = connection_id


@dataclass
class ShopifyConnection:
    """An active connection with its credentials decrypted."""

    id: UUID
    connection_name: str
    shop_domain: Optional[str]
    credentials: dict[str, Any]
    configuration: dict[str, Any]


@dataclass
class SyncStats:
    total_products: int
    synced_products: int
    pending_products: int
    error_products: int
    last_sync_time: Optional[datetime]

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["last_sync_time"] = self.last_sync_time.isoformat() if self.last_sync_time else None
        return data


@dataclass
class SyncRunResult:
    success: bool
    total_processed: int
    successful: int
    failed: int
    errors: list[str] = field(default_factory=list)
    processing_time: float = 0.0
    fatal_error: Optional[str] = None

    @classmethod
    def from_bulk(cls, result: BulkSyncResult) -> "SyncRunResult":
        return cls(
            success=result.failed_imports == 0 and result.fatal_error is None,
            total_processed=result.total_products,
            successful=result.successful_imports,
            failed=result.failed_imports,
            errors=list(result.errors),
            processing_time=result.processing_time,
            fatal_error=result.fatal_error,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SyncHealth:
    status: str
    message: str
    details: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def default_client_factory(credentials: dict[str, Any]) -> ShopifyGraphQLClient:
    return ShopifyGraphQLClient.from_credentials(credentials)


class ShopifySyncManager:
    """Facade over bulk sync, product sync and connection checks for one owner."""

    def __init__(
        self,
        owner_id: str,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        client_factory: ClientFactory = default_client_factory,
        config: Optional[Settings] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ) -> None:
        self.owner_id = owner_id
        self.session_factory = session_factory
        self.client_factory = client_factory
        self.config = config or default_settings
        self._sleep = sleep
        self.connections: list[ShopifyConnection] = []
        self.initialized = False
        self._clients: dict[UUID, ShopifyGraphQLClient] = {}
        self._task: Optional[asyncio.Task] = None

    async def initialize(self) -> None:
        """Load the owner's active Shopify connections."""
        async with session_scope(self.session_factory) as session:
            repo = PlatformConnectionRepository(session)
            rows = await repo.get_active(self.owner_id, Platform.SHOPIFY)
            connections = []
            for row in rows:
                try:
                    credentials = repo.credentials_of(row)
                except ValueError:
                    logger.error("Skipping connection with unreadable credentials", connection_id=str(row.id))
                    continue
                connections.append(ShopifyConnection(
                    id=row.id,
                    connection_name=row.connection_name,
                    shop_domain=row.shop_domain,
                    credentials=credentials,
                    configuration=dict(row.configuration or {}),
                ))

        self.connections = connections
        self._clients.clear()
        self.initialized = True
        logger.info("Sync manager initialized", owner_id=self.owner_id, connections=len(connections))

    async def _ensure_initialized(self) -> None:
        if not self.initialized:
            await self.initialize()

    async def get_connection(self, connection_id: Optional[UUID | str] = None) -> ShopifyConnection:
        """The requested connection, or the first active one."""
        await self._ensure_initialized()
        if not self.connections:
            raise NoActiveConnectionError()
        if connection_id is None:
            return self.connections[0]
        for connection in self.connections:
            if str(connection.id) == str(connection_id):
                return connection
        raise ConnectionNotFoundError(str(connection_id))

    def _client_for(self, connection: ShopifyConnection) -> ShopifyGraphQLClient:
        # One client per connection so its calls share a single token bucket
        client = self._clients.get(connection.id)
        if client is None:
            client = self.client_factory(connection.credentials)
            self._clients[connection.id] = client
        return client

    def _product_sync(self, connection: ShopifyConnection) -> ShopifyProductSync:
        return ShopifyProductSync(self._client_for(connection), self.owner_id, self.session_factory)

    def _bulk_sync(self, connection: ShopifyConnection) -> ShopifyBulkSync:
        return ShopifyBulkSync(
            self._client_for(connection),
            self.owner_id,
            self.session_factory,
            batch_size=self.config.bulk_import_batch_size,
        )

    async def get_sync_stats(self) -> SyncStats:
        """Product and mapping counts, aggregated by the database."""
        async with session_scope(self.session_factory) as session:
            total = await ProductRepository(session).count_for_owner(self.owner_id)
            mappings = ChannelMappingRepository(session)
            counts = await mappings.status_counts(self.owner_id, Platform.SHOPIFY)
            last_sync = await mappings.last_synced_at(self.owner_id, Platform.SHOPIFY)

        return SyncStats(
            total_products=total,
            synced_products=counts.get(SyncStatus.SUCCESS.value, 0),
            pending_products=counts.get(SyncStatus.PENDING.value, 0) + counts.get(SyncStatus.SYNCING.value, 0),
            error_products=counts.get(SyncStatus.ERROR.value, 0),
            last_sync_time=last_sync,
        )

    async def perform_full_import(self, connection_id: Optional[UUID | str] = None) -> SyncRunResult:
        connection = await self.get_connection(connection_id)
        result = await self._bulk_sync(connection).perform_full_import()
        return SyncRunResult.from_bulk(result)

    async def perform_incremental_sync(
        self,
        since: Optional[datetime] = None,
        connection_id: Optional[UUID | str] = None,
    ) -> SyncRunResult:
        connection = await self.get_connection(connection_id)
        result = await self._bulk_sync(connection).perform_incremental_sync(since)
        return SyncRunResult.from_bulk(result)

    async def sync_product_to_shopify(
        self,
        product_id: UUID | str,
        operation: SyncOperation = SyncOperation.CREATE,
        connection_id: Optional[UUID | str] = None,
    ) -> SyncResult:
        connection = await self.get_connection(connection_id)
        return await self._product_sync(connection).sync_product_to_shopify(product_id, operation)

    async def sync_multiple_products_to_shopify(
        self,
        product_ids: list[UUID | str],
        operation: SyncOperation = SyncOperation.CREATE,
        connection_id: Optional[UUID | str] = None,
        batch_size: Optional[int] = None,
    ) -> SyncRunResult:
        """Sync products in batches; concurrent within a batch, paused between batches."""
        connection = await self.get_connection(connection_id)
        batch_size = batch_size or self.config.sync_batch_size
        return await self._sync_batches(
            connection,
            [(product_id, SyncOperation(operation)) for product_id in product_ids],
            batch_size,
        )

    async def _sync_batches(
        self,
        connection: ShopifyConnection,
        jobs: list[tuple[UUID | str, SyncOperation]],
        batch_size: int,
    ) -> SyncRunResult:
        started = time.perf_counter()
        product_sync = self._product_sync(connection)
        result = SyncRunResult(success=True, total_processed=len(jobs), successful=0, failed=0)

        for start in range(0, len(jobs), batch_size):
            batch = jobs[start:start + batch_size]
            outcomes = await asyncio.gather(
                *(product_sync.sync_product_to_shopify(pid, op) for pid, op in batch),
                return_exceptions=True,
            )
            for (product_id, _), outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    result.failed += 1
                    result.errors.append(f"{product_id}: {outcome}")
                elif outcome.success:
                    result.successful += 1
                else:
                    result.failed += 1
                    result.errors.append(f"{product_id}: {outcome.error}")

            if start + batch_size < len(jobs):
                await self._sleep(self.config.sync_batch_delay)

        result.success = result.failed == 0
        result.processing_time = round((time.perf_counter() - started) * 1000, 1)
        return result

    async def get_pending_mappings(self) -> list[dict[str, Any]]:
        async with session_scope(self.session_factory) as session:
            mappings = await ChannelMappingRepository(session).get_needing_sync(
                self.owner_id, Platform.SHOPIFY, self.config.max_sync_retries
            )
        return [
            {
                "product_id": str(mapping.product_id),
                "external_id": mapping.external_id,
                "sync_status": mapping.sync_status,
                "error_count": mapping.error_count,
                "error_message": mapping.error_message,
            }
            for mapping in mappings
        ]

    async def sync_pending_products(self, connection_id: Optional[UUID | str] = None) -> SyncRunResult:
        """Retry pending mappings and failed ones below the retry ceiling."""
        connection = await self.get_connection(connection_id)
        pending = await self.get_pending_mappings()
        jobs = [
            (
                item["product_id"],
                # Never pushed to Shopify yet, so there is nothing to update
                SyncOperation.UPDATE if item["external_id"] else SyncOperation.CREATE,
            )
            for item in pending
        ]
        logger.info("Syncing pending products", owner_id=self.owner_id, count=len(jobs))
        return await self._sync_batches(connection, jobs, self.config.sync_batch_size)

    async def import_product_from_shopify(
        self,
        external_id: str,
        connection_id: Optional[UUID | str] = None,
    ) -> SyncResult:
        connection = await self.get_connection(connection_id)
        return await self._product_sync(connection).import_product_from_shopify(external_id)

    async def get_recent_sync_activity(self, limit: int = 50) -> list[SyncLog]:
        async with session_scope(self.session_factory) as session:
            return await SyncLogRepository(session).recent_for_owner(self.owner_id, limit)

    async def test_connection(self, connection_id: Optional[UUID | str] = None) -> dict[str, Any]:
        try:
            connection = await self.get_connection(connection_id)
        except SyncManagerError as e:
            return {"success": False, "error": str(e)}

        try:
            shop_info = await self._client_for(connection).get_shop_info()
        except ShopifyAPIError as e:
            logger.warning("Shopify connection test failed", connection_id=str(connection.id), error=str(e))
            return {"success": False, "error": str(e)}
        return {"success": True, "shop_info": shop_info}

    async def get_sync_health(self) -> SyncHealth:
        try:
            stats = await self.get_sync_stats()
        except Exception as e:
            logger.exception("Unable to compute sync health", owner_id=self.owner_id)
            return SyncHealth("error", "Unable to determine sync health", {"error": str(e)})

        error_rate = stats.error_products / stats.total_products if stats.total_products else 0.0
        details = stats.to_dict()
        percent = round(error_rate * 100)
        if error_rate > self.config.health_error_threshold:
            return SyncHealth("error", f"High error rate: {percent}% of products have sync errors", details)
        if error_rate > self.config.health_warning_threshold:
            return SyncHealth("warning", f"Some sync errors detected: {percent}% of products have issues", details)
        return SyncHealth("healthy", "All syncs are working properly", details)

    async def schedule_automatic_sync(self, connection_id: Optional[UUID | str] = None) -> SyncRunResult:
        """Run one incremental sync over the configured look-back window."""
        since = datetime.now(timezone.utc) - timedelta(hours=self.config.incremental_sync_window_hours)
        return await self.perform_incremental_sync(since=since, connection_id=connection_id)

    def start(self, interval_seconds: Optional[float] = None) -> asyncio.Task:
        """Start the periodic incremental sync task if it is not running."""
        if self._task is not None and not self._task.done():
            return self._task
        interval = interval_seconds or self.config.auto_sync_interval_minutes * 60
        self._task = asyncio.create_task(self._auto_sync_loop(interval))
        logger.info("Automatic sync started", owner_id=self.owner_id, interval_seconds=interval)
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Automatic sync stopped", owner_id=self.owner_id)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _auto_sync_loop(self, interval: float) -> None:
        while True:
            try:
                await self.initialize()
                result = await self.schedule_automatic_sync()
                logger.info("Automatic sync run finished", owner_id=self.owner_id, **result.to_dict())
            except NoActiveConnectionError:
                logger.info("Automatic sync skipped, no active connection", owner_id=self.owner_id)
            except Exception:
                logger.exception("Automatic sync run failed", owner_id=self.owner_id)
            await self._sleep(interval)
