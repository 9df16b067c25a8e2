"""
Single-product sync between the catalog and Shopify.

Outbound create/update/delete and inbound import. Every attempt leaves a
channel mapping status and a sync log row behind; failures come back as a
``SyncResult`` instead of an exception.
"""
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.core.database import session_scope
from catalog_sync.core.logging import get_logger
from catalog_sync.models.channel_mapping import SyncStatus
from catalog_sync.models.platform_connection import Platform
from catalog_sync.models.product import Product
from catalog_sync.models.sync_log import LogScope, LogStatus, SyncOperation
from catalog_sync.repositories.channel_mapping import ChannelMappingRepository
from catalog_sync.repositories.product import ProductRepository
from catalog_sync.repositories.sync_log import SyncLogRepository
from catalog_sync.services.queries import (
    INVENTORY_SET_QUANTITIES_MUTATION,
    METAFIELDS_SET_MUTATION,
    PRIMARY_LOCATION_QUERY,
    PRODUCT_CREATE_MUTATION,
    PRODUCT_DELETE_MUTATION,
    PRODUCT_UPDATE_MUTATION,
    PRODUCT_VARIANTS_BULK_UPDATE_MUTATION,
)
from catalog_sync.services.shopify_client import ShopifyAPIError, ShopifyGraphQLClient
from catalog_sync.services.transform import (
    inventory_set_input,
    parse_shopify_datetime,
    product_gid,
    product_to_shopify_input,
    shopify_to_product_fields,
    variant_to_shopify_input,
)

logger = get_logger(__name__)

METAFIELD_NAMESPACE = "$app:sync"
SYNC_SOURCE = "catalog-sync"

_NOT_FOUND_MARKERS = ("not found", "does not exist")


@dataclass
class SyncResult:
    success: bool
    external_id: Optional[str] = None
    error: Optional[str] = None
    data: Optional[dict[str, Any]] = None
    product_id: Optional[str] = None
    external_variant_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ProductSyncError(Exception):
    """A sync step failed before or after talking to Shopify.

    ``external_id`` is set when the product already exists upstream.
    """

    def __init__(self, message: str, external_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.external_id = external_id


def _first_user_error(payload: dict[str, Any]) -> Optional[dict[str, Any]]:
    errors = payload.get("userErrors") or []
    return errors[0] if errors else None


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 1)


class ShopifyProductSync:
    """Product-level sync for one owner against one shop."""

    def __init__(
        self,
        client: ShopifyGraphQLClient,
        owner_id: str,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self.client = client
        self.owner_id = owner_id
        self.session_factory = session_factory
        self._location_id: Optional[str] = None

    async def sync_product_to_shopify(
        self,
        product_id: UUID | str,
        operation: SyncOperation = SyncOperation.CREATE,
    ) -> SyncResult:
        """Push one catalog product to Shopify."""
        started = time.perf_counter()
        operation = SyncOperation(operation)
        if operation not in (SyncOperation.CREATE, SyncOperation.UPDATE, SyncOperation.DELETE):
            return SyncResult(success=False, error=f"Unsupported operation: {operation.value}")

        try:
            product, external_id = await self._begin(product_id)
        except Exception as e:
            logger.warning("Product sync could not start", product_id=str(product_id), error=str(e))
            await self._log_unattached_failure(product_id, operation, str(e), _elapsed_ms(started))
            return SyncResult(success=False, error=str(e), product_id=str(product_id))

        try:
            if operation == SyncOperation.CREATE:
                result = await self._create(product)
            elif operation == SyncOperation.UPDATE:
                result = await self._update(product, external_id)
            else:
                result = await self._delete(external_id)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(
                "Product sync failed",
                product_id=str(product.id),
                operation=operation.value,
                error=message,
            )
            await self._record_failure(
                product.id,
                operation,
                message,
                _elapsed_ms(started),
                external_id=getattr(e, "external_id", None),
            )
            return SyncResult(success=False, error=message, product_id=str(product.id))

        result.product_id = str(product.id)
        await self._record_success(product.id, operation, result, _elapsed_ms(started))
        logger.info(
            "Product synced to Shopify",
            product_id=str(product.id),
            operation=operation.value,
            external_id=result.external_id,
        )
        return result

    async def import_product_from_shopify(self, external_id: str) -> SyncResult:
        """Fetch a Shopify product and create it in the catalog."""
        started = time.perf_counter()
        gid = product_gid(external_id)
        try:
            node = await self.client.get_product(gid)
            if not node:
                raise ProductSyncError(f"Shopify product {gid} not found")

            fields = shopify_to_product_fields(node)
            updated_at = parse_shopify_datetime(node.get("updatedAt"))
            if updated_at is not None:
                fields["updated_at"] = updated_at

            async with session_scope(self.session_factory) as session:
                product = await ProductRepository(session).create_for_owner(self.owner_id, fields)
                variants = (node.get("variants") or {}).get("edges") or []
                await ChannelMappingRepository(session).upsert(
                    product.id,
                    Platform.SHOPIFY,
                    status=SyncStatus.SUCCESS,
                    external_id=node.get("id", gid),
                    external_variant_id=variants[0]["node"].get("id") if variants else None,
                    sync_data={"shopify_product": node},
                )
                await SyncLogRepository(session).append(
                    owner_id=self.owner_id,
                    product_id=product.id,
                    operation=SyncOperation.CREATE,
                    status=LogStatus.SUCCESS,
                    message="Product imported from Shopify",
                    request_data={"external_id": gid},
                    execution_time=_elapsed_ms(started),
                )
                product_id = str(product.id)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error("Product import failed", external_id=gid, error=message)
            await self._log_unattached_failure(
                None, SyncOperation.CREATE, message, _elapsed_ms(started), {"external_id": gid}
            )
            return SyncResult(success=False, external_id=gid, error=message)

        logger.info("Product imported from Shopify", external_id=gid, product_id=product_id)
        return SyncResult(success=True, external_id=gid, product_id=product_id, data={"imported": True})

    async def _begin(self, product_id: UUID | str) -> tuple[Product, Optional[str]]:
        """Load the product and move its mapping to syncing."""
        async with session_scope(self.session_factory) as session:
            product = await ProductRepository(session).get_for_owner(self.owner_id, product_id)
            if product is None:
                raise ProductSyncError("Product not found")
            mapping = await ChannelMappingRepository(session).upsert(
                product.id,
                Platform.SHOPIFY,
                status=SyncStatus.SYNCING,
            )
            return product, mapping.external_id

    async def _create(self, product: Product) -> SyncResult:
        product_input, media = product_to_shopify_input(product)
        variables: dict[str, Any] = {"input": product_input}
        if media:
            variables["media"] = media

        data = await self.client.execute_query(PRODUCT_CREATE_MUTATION, variables)
        payload = data.get("productCreate") or {}
        error = _first_user_error(payload)
        if error:
            raise ProductSyncError(f"Shopify API error: {error.get('message')}")

        created = payload.get("product") or {}
        external_id = created.get("id")
        if not external_id:
            raise ProductSyncError("Shopify did not return a product id")

        try:
            variant_id = await self._push_variant(product, external_id, created)
        except (ProductSyncError, ShopifyAPIError) as e:
            # The product exists upstream now, so a retry has to update it
            raise ProductSyncError(str(e), external_id=external_id) from e
        await self._set_metafields(external_id, {
            "sync_source": SYNC_SOURCE,
            "original_id": str(product.id),
            "last_sync": datetime.now(timezone.utc).isoformat(),
        })
        return SyncResult(success=True, external_id=external_id, data=created, external_variant_id=variant_id)

    async def _update(self, product: Product, external_id: Optional[str]) -> SyncResult:
        if not external_id:
            raise ProductSyncError("No external ID found for product, cannot update")

        product_input, _ = product_to_shopify_input(product, external_id)
        data = await self.client.execute_query(PRODUCT_UPDATE_MUTATION, {"input": product_input})
        payload = data.get("productUpdate") or {}
        error = _first_user_error(payload)
        if error:
            raise ProductSyncError(f"Shopify API error: {error.get('message')}")

        updated = payload.get("product") or {}
        variant_id = await self._push_variant(product, external_id, updated)
        await self._set_metafields(external_id, {
            "last_sync": datetime.now(timezone.utc).isoformat(),
        })
        return SyncResult(
            success=True,
            external_id=updated.get("id", external_id),
            data=updated,
            external_variant_id=variant_id,
        )

    async def _delete(self, external_id: Optional[str]) -> SyncResult:
        if not external_id:
            raise ProductSyncError("No external ID found for product, cannot delete")

        data = await self.client.execute_query(
            PRODUCT_DELETE_MUTATION, {"input": {"id": product_gid(external_id)}}
        )
        payload = data.get("productDelete") or {}
        error = _first_user_error(payload)
        if error:
            message = (error.get("message") or "").lower()
            if any(marker in message for marker in _NOT_FOUND_MARKERS):
                # Already gone upstream, which is what we wanted
                logger.info("Shopify product already deleted", external_id=external_id)
                return SyncResult(success=True, external_id=external_id, data={"deleted": True, "already_absent": True})
            raise ProductSyncError(f"Shopify API error: {error.get('message')}")

        return SyncResult(
            success=True,
            external_id=payload.get("deletedProductId") or external_id,
            data={"deleted": True},
        )

    async def _push_variant(
        self,
        product: Product,
        external_id: str,
        shopify_product: dict[str, Any],
    ) -> str:
        """Write price, SKU, weight and inventory onto the product's first variant."""
        variants = (shopify_product.get("variants") or {}).get("edges") or []
        if not variants:
            raise ProductSyncError("Shopify product has no variant to update")
        variant = variants[0]["node"]

        data = await self.client.execute_query(
            PRODUCT_VARIANTS_BULK_UPDATE_MUTATION,
            {
                "productId": product_gid(external_id),
                "variants": [variant_to_shopify_input(product, variant["id"])],
            },
        )
        error = _first_user_error(data.get("productVariantsBulkUpdate") or {})
        if error:
            raise ProductSyncError(f"Shopify API error: {error.get('message')}")

        inventory_item_id = (variant.get("inventoryItem") or {}).get("id")
        if inventory_item_id:
            await self._set_inventory(inventory_item_id, product.inventory or 0)
        return variant["id"]

    async def _set_inventory(self, inventory_item_id: str, quantity: int) -> None:
        if self._location_id is None:
            data = await self.client.execute_query(PRIMARY_LOCATION_QUERY)
            self._location_id = (data.get("location") or {}).get("id")
            if not self._location_id:
                raise ProductSyncError("Shop has no location to hold inventory")

        data = await self.client.execute_query(
            INVENTORY_SET_QUANTITIES_MUTATION,
            {"input": inventory_set_input(inventory_item_id, self._location_id, quantity)},
        )
        error = _first_user_error(data.get("inventorySetQuantities") or {})
        if error:
            raise ProductSyncError(f"Shopify API error: {error.get('message')}")

    async def _set_metafields(self, owner_gid: str, values: dict[str, str]) -> None:
        """Write app-owned metafields. Failures are logged, not raised."""
        metafields = [
            {
                "ownerId": owner_gid,
                "namespace": METAFIELD_NAMESPACE,
                "key": key,
                "value": value,
                "type": "single_line_text_field",
            }
            for key, value in values.items()
        ]
        try:
            data = await self.client.execute_query(METAFIELDS_SET_MUTATION, {"metafields": metafields})
        except ShopifyAPIError as e:
            logger.warning("Failed to set sync metafields", external_id=owner_gid, error=str(e))
            return
        error = _first_user_error(data.get("metafieldsSet") or {})
        if error:
            logger.warning("Failed to set sync metafields", external_id=owner_gid, error=error.get("message"))

    async def _record_success(
        self,
        product_id: UUID,
        operation: SyncOperation,
        result: SyncResult,
        elapsed_ms: float,
    ) -> None:
        end_state = SyncStatus.DELETED if operation == SyncOperation.DELETE else SyncStatus.SUCCESS
        async with session_scope(self.session_factory) as session:
            mappings = ChannelMappingRepository(session)
            if end_state == SyncStatus.DELETED:
                mapping = await mappings.get_for_product(product_id, Platform.SHOPIFY)
                await mappings.mark_deleted(mapping, "Product deleted from Shopify")
            else:
                await mappings.upsert(
                    product_id,
                    Platform.SHOPIFY,
                    status=SyncStatus.SUCCESS,
                    external_id=result.external_id,
                    external_variant_id=result.external_variant_id,
                    sync_data=result.data,
                )
            await SyncLogRepository(session).append(
                owner_id=self.owner_id,
                product_id=product_id,
                operation=operation,
                status=LogStatus.SUCCESS,
                message=f"Product {operation.value}d successfully on Shopify",
                response_data=result.data,
                execution_time=elapsed_ms,
            )

    async def _record_failure(
        self,
        product_id: UUID,
        operation: SyncOperation,
        message: str,
        elapsed_ms: float,
        external_id: Optional[str] = None,
    ) -> None:
        async with session_scope(self.session_factory) as session:
            await ChannelMappingRepository(session).upsert(
                product_id,
                Platform.SHOPIFY,
                status=SyncStatus.ERROR,
                external_id=external_id,
                error_message=message,
            )
            await SyncLogRepository(session).append(
                owner_id=self.owner_id,
                product_id=product_id,
                operation=operation,
                status=LogStatus.ERROR,
                message=message,
                execution_time=elapsed_ms,
            )

    async def _log_unattached_failure(
        self,
        product_id: Optional[UUID | str],
        operation: SyncOperation,
        message: str,
        elapsed_ms: float,
        request_data: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log a failure that has no catalog product to hang a mapping on."""
        data = dict(request_data or {})
        if product_id is not None:
            data["product_id"] = str(product_id)
        async with session_scope(self.session_factory) as session:
            await SyncLogRepository(session).append(
                owner_id=self.owner_id,
                scope=LogScope.EXTERNAL if product_id is None else LogScope.PRODUCT,
                operation=operation,
                status=LogStatus.ERROR,
                message=message,
                request_data=data,
                execution_time=elapsed_ms,
            )
