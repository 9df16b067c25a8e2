"""
Bulk import of Shopify products into the catalog.

Runs a Shopify bulk operation, rebuilds products from the JSONL export and
applies them in fixed-size batches. Batches run one after another; products
inside a batch run concurrently, each in its own transaction, so one failure
never aborts the rest.
"""
import asyncio
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.core.config import settings
from catalog_sync.core.database import session_scope
from catalog_sync.core.logging import get_logger
from catalog_sync.models.channel_mapping import SyncStatus
from catalog_sync.models.platform_connection import Platform
from catalog_sync.models.sync_log import LogScope, LogStatus, SyncOperation
from catalog_sync.repositories.channel_mapping import ChannelMappingRepository
from catalog_sync.repositories.product import ProductRepository
from catalog_sync.repositories.sync_log import SyncLogRepository
from catalog_sync.services.bulk_reconstruct import BulkProduct, BulkResultAssembler
from catalog_sync.services.queries import bulk_products_query
from catalog_sync.services.shopify_client import ShopifyGraphQLClient
from catalog_sync.services.transform import bulk_product_to_fields, parse_shopify_datetime

logger = get_logger(__name__)


@dataclass
class BulkSyncResult:
    total_products: int = 0
    successful_imports: int = 0
    failed_imports: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    processing_time: float = 0.0
    bulk_operation_id: Optional[str] = None
    # Set when the run stopped before all products could be applied
    fatal_error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ShopifyBulkSync:
    """Bulk import and incremental sync for one owner and one shop."""

    def __init__(
        self,
        client: ShopifyGraphQLClient,
        owner_id: str,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        batch_size: Optional[int] = None,
    ) -> None:
        self.client = client
        self.owner_id = owner_id
        self.session_factory = session_factory
        self.batch_size = batch_size or settings.bulk_import_batch_size

    async def perform_full_import(self) -> BulkSyncResult:
        """Import every product. Products that already have a mapping are left alone."""
        logger.info("Starting bulk import", owner_id=self.owner_id, shop=self.client.shop_domain)
        return await self._run(
            bulk_products_query(),
            allow_updates=False,
            request_data={"sync_type": "full"},
        )

    async def perform_incremental_sync(self, since: Optional[datetime] = None) -> BulkSyncResult:
        """Import products updated since ``since`` (default: the last 24 hours), overwriting local copies."""
        if since is None:
            since = datetime.now(timezone.utc) - timedelta(hours=settings.incremental_sync_window_hours)
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        since_iso = since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

        logger.info("Starting incremental sync", owner_id=self.owner_id, since=since_iso)
        return await self._run(
            bulk_products_query(f"updated_at:>='{since_iso}'"),
            allow_updates=True,
            request_data={"sync_type": "incremental", "since": since_iso},
        )

    async def download_bulk_results(self, url: Optional[str]) -> list[BulkProduct]:
        """Stream a bulk export and rebuild its products."""
        if not url:
            # Shopify returns no URL for an export with zero objects
            return []

        assembler = BulkResultAssembler()
        async for line in self.client.stream_bulk_results(url):
            assembler.feed(line)

        products = assembler.products()
        logger.info(
            "Bulk results downloaded",
            lines=assembler.line_count,
            skipped_lines=assembler.skipped_lines,
            products=len(products),
        )
        return products

    async def _run(
        self,
        query: str,
        *,
        allow_updates: bool,
        request_data: dict[str, Any],
    ) -> BulkSyncResult:
        started = time.perf_counter()
        result = BulkSyncResult()
        log_id = await self._open_log(request_data)
        fatal: Optional[str] = None

        try:
            operation = await self.client.execute_bulk_operation(query)
            result.bulk_operation_id = operation.id
            products = await self.download_bulk_results(operation.url)
            result.total_products = len(products)
            await self.apply_products(products, allow_updates=allow_updates, result=result)
        except Exception as e:
            logger.exception("Bulk sync failed", owner_id=self.owner_id, error=str(e))
            fatal = str(e) or type(e).__name__
            result.fatal_error = fatal
            result.errors.append(fatal)

        result.processing_time = round((time.perf_counter() - started) * 1000, 1)
        await self._close_log(log_id, result, fatal)

        logger.info(
            "Bulk sync finished",
            owner_id=self.owner_id,
            total=result.total_products,
            successful=result.successful_imports,
            failed=result.failed_imports,
            processing_ms=result.processing_time,
        )
        return result

    async def apply_products(
        self,
        products: list[BulkProduct],
        *,
        allow_updates: bool,
        result: Optional[BulkSyncResult] = None,
    ) -> BulkSyncResult:
        """Write reconstructed products to the catalog in batches."""
        if result is None:
            result = BulkSyncResult(total_products=len(products))

        for start in range(0, len(products), self.batch_size):
            batch = products[start:start + self.batch_size]
            outcomes = await asyncio.gather(
                *(self._import_product(product, allow_updates) for product in batch),
                return_exceptions=True,
            )
            for product, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    result.failed_imports += 1
                    result.errors.append(f"{product.title or product.id}: {outcome}")
                    logger.warning("Product import failed", external_id=product.id, error=str(outcome))
                else:
                    result.successful_imports += 1
                    if outcome == "skipped":
                        result.skipped += 1

            logger.info(
                "Bulk batch processed",
                processed=min(start + self.batch_size, len(products)),
                total=len(products),
            )
        return result

    async def _import_product(self, bulk_product: BulkProduct, allow_updates: bool) -> str:
        async with session_scope(self.session_factory) as session:
            mappings = ChannelMappingRepository(session)
            catalog = ProductRepository(session)

            mapping = await mappings.get_by_external_id(
                bulk_product.id, Platform.SHOPIFY, owner_id=self.owner_id
            )
            if mapping is not None and not allow_updates:
                return "skipped"

            fields = bulk_product_to_fields(bulk_product)
            updated_at = parse_shopify_datetime(bulk_product.updated_at)
            if updated_at is not None:
                # Keep the local clock aligned with Shopify's for webhook ordering
                fields["updated_at"] = updated_at

            product = None
            if mapping is not None:
                product = await catalog.get_for_owner(self.owner_id, mapping.product_id)

            if product is not None:
                await catalog.update_product(product, fields)
                outcome = "updated"
            else:
                product = await catalog.create_for_owner(self.owner_id, fields)
                outcome = "created"

            first_variant = bulk_product.variants[0].id if bulk_product.variants else None
            await mappings.upsert(
                product.id,
                Platform.SHOPIFY,
                status=SyncStatus.SUCCESS,
                external_id=bulk_product.id,
                external_variant_id=first_variant,
                sync_data=bulk_product.sync_data(),
            )
            return outcome

    async def _open_log(self, request_data: dict[str, Any]):
        async with session_scope(self.session_factory) as session:
            log = await SyncLogRepository(session).append(
                owner_id=self.owner_id,
                scope=LogScope.BULK_IMPORT,
                operation=SyncOperation.BULK_IMPORT,
                status=LogStatus.PENDING,
                message="Bulk import started",
                request_data={**request_data, "shop": self.client.shop_domain},
            )
            return log.id

    async def _close_log(self, log_id, result: BulkSyncResult, fatal: Optional[str]) -> None:
        if fatal:
            status, message = LogStatus.ERROR, f"Bulk import failed: {fatal}"
        elif result.failed_imports:
            status = LogStatus.WARNING
            message = (
                f"Imported {result.successful_imports} of {result.total_products} products, "
                f"{result.failed_imports} failed"
            )
        else:
            status = LogStatus.SUCCESS
            message = f"Imported {result.successful_imports} products"

        async with session_scope(self.session_factory) as session:
            repo = SyncLogRepository(session)
            log = await repo.get_by_id(log_id)
            if log is None:
                return
            await repo.complete(
                log,
                status,
                message=message,
                response_data={**result.to_dict(), "errors": result.errors[:50]},
                execution_time=result.processing_time,
            )
