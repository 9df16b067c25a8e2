"""
Shopify webhook processing.

Each delivery walks an explicit state machine:

    received -> verified -> parsed -> dispatched -> applied | failed
                   \\           \\         \\
        rejected_signature  rejected_payload  duplicate

Handler failures are recorded as error sync logs and still answered with 200
so Shopify does not keep redelivering a payload we cannot apply.
"""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.core.config import settings
from catalog_sync.core.database import session_scope
from catalog_sync.core.logging import get_logger
from catalog_sync.core.security import verify_shopify_hmac
from catalog_sync.models.channel_mapping import ChannelMapping, SyncStatus
from catalog_sync.models.platform_connection import Platform
from catalog_sync.models.sync_log import LogScope, LogStatus, SyncOperation
from catalog_sync.models.types import as_utc
from catalog_sync.repositories.channel_mapping import ChannelMappingRepository
from catalog_sync.repositories.platform_connection import PlatformConnectionRepository
from catalog_sync.repositories.product import ProductRepository
from catalog_sync.repositories.sync_log import SyncLogRepository
from catalog_sync.services.transform import (
    external_id_from_payload,
    parse_shopify_datetime,
    shopify_to_product_fields,
)

logger = get_logger(__name__)


class WebhookState(str, Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    REJECTED_SIGNATURE = "rejected_signature"
    PARSED = "parsed"
    REJECTED_PAYLOAD = "rejected_payload"
    DUPLICATE = "duplicate"
    DISPATCHED = "dispatched"
    APPLIED = "applied"
    FAILED = "failed"


WEBHOOK_TRANSITIONS: dict[WebhookState, frozenset[WebhookState]] = {
    WebhookState.RECEIVED: frozenset({
        WebhookState.VERIFIED,
        WebhookState.REJECTED_SIGNATURE,
        WebhookState.REJECTED_PAYLOAD,
    }),
    WebhookState.VERIFIED: frozenset({WebhookState.PARSED, WebhookState.REJECTED_PAYLOAD}),
    WebhookState.PARSED: frozenset({WebhookState.DUPLICATE, WebhookState.DISPATCHED}),
    WebhookState.DISPATCHED: frozenset({WebhookState.APPLIED, WebhookState.FAILED}),
    WebhookState.REJECTED_SIGNATURE: frozenset(),
    WebhookState.REJECTED_PAYLOAD: frozenset(),
    WebhookState.DUPLICATE: frozenset(),
    WebhookState.APPLIED: frozenset(),
    WebhookState.FAILED: frozenset(),
}


class InvalidWebhookTransition(RuntimeError):
    pass


@dataclass
class ShopifyWebhook:
    """One inbound delivery as received over HTTP."""

    topic: Optional[str]
    shop_domain: Optional[str]
    hmac_header: Optional[str]
    webhook_id: Optional[str]
    body: bytes


@dataclass
class WebhookOutcome:
    state: WebhookState
    status_code: int
    body: dict[str, Any]
    history: list[WebhookState] = field(default_factory=list)


class _Delivery:
    """Tracks the state of one delivery and refuses illegal moves."""

    def __init__(self) -> None:
        self.state = WebhookState.RECEIVED
        self.history = [WebhookState.RECEIVED]

    def advance(self, new_state: WebhookState) -> None:
        if new_state not in WEBHOOK_TRANSITIONS[self.state]:
            raise InvalidWebhookTransition(f"{self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def finish(self, new_state: WebhookState, status_code: int, body: dict[str, Any]) -> WebhookOutcome:
        self.advance(new_state)
        return WebhookOutcome(new_state, status_code, body, list(self.history))


@dataclass
class _Context:
    session: AsyncSession
    topic: str
    shop_domain: str
    webhook_id: Optional[str]
    owner_id: Optional[str]
    payload: dict[str, Any]

    @property
    def request_data(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "shop": self.shop_domain,
            "webhook_id": self.webhook_id,
            "external_id": external_id_from_payload(self.payload),
        }


Handler = Callable[[_Context], Awaitable[None]]


class ShopifyWebhookProcessor:
    """Verifies, deduplicates and applies Shopify webhooks to the catalog."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        secret: Optional[str] = None,
    ) -> None:
        self.session_factory = session_factory
        self.secret = secret if secret is not None else settings.shopify_webhook_secret
        self._handlers: dict[str, Handler] = {
            "products/create": self._handle_product_create,
            "products/update": self._handle_product_update,
            "products/delete": self._handle_product_delete,
            "inventory_levels/update": self._handle_inventory_update,
        }

    async def process(self, webhook: ShopifyWebhook) -> WebhookOutcome:
        delivery = _Delivery()

        if not webhook.topic or not webhook.shop_domain:
            return delivery.finish(WebhookState.REJECTED_PAYLOAD, 400, {"error": "Missing required headers"})

        if self.secret:
            if not verify_shopify_hmac(webhook.body, webhook.hmac_header, self.secret):
                logger.warning("Rejected webhook with invalid signature", shop=webhook.shop_domain, topic=webhook.topic)
                return delivery.finish(WebhookState.REJECTED_SIGNATURE, 401, {"error": "Invalid webhook signature"})
        else:
            logger.warning("Shopify webhook secret not configured, signature not verified", shop=webhook.shop_domain)
        delivery.advance(WebhookState.VERIFIED)

        try:
            payload = json.loads(webhook.body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            payload = None
        if not isinstance(payload, dict):
            return delivery.finish(WebhookState.REJECTED_PAYLOAD, 400, {"error": "Invalid JSON payload"})
        delivery.advance(WebhookState.PARSED)

        if webhook.webhook_id:
            async with session_scope(self.session_factory) as session:
                if await SyncLogRepository(session).has_webhook(webhook.webhook_id):
                    logger.info("Duplicate webhook ignored", webhook_id=webhook.webhook_id, topic=webhook.topic)
                    return delivery.finish(WebhookState.DUPLICATE, 200, {"status": "duplicate processed"})

        delivery.advance(WebhookState.DISPATCHED)
        logger.info("Processing Shopify webhook", topic=webhook.topic, shop=webhook.shop_domain)

        try:
            async with session_scope(self.session_factory) as session:
                connection = await PlatformConnectionRepository(session).find_by_shop_domain(webhook.shop_domain)
                context = _Context(
                    session=session,
                    topic=webhook.topic,
                    shop_domain=webhook.shop_domain,
                    webhook_id=webhook.webhook_id,
                    owner_id=connection.owner_id if connection else None,
                    payload=payload,
                )
                handler = self._handlers.get(webhook.topic, self._handle_unknown_topic)
                await handler(context)
        except Exception as e:
            logger.exception("Webhook processing failed", topic=webhook.topic, error=str(e))
            await self._log_failure(webhook, payload, str(e))
            return delivery.finish(WebhookState.FAILED, 200, {"status": "processed"})

        return delivery.finish(WebhookState.APPLIED, 200, {"status": "processed"})

    async def _find_mapping(self, context: _Context) -> Optional[ChannelMapping]:
        """Mapped product for the payload, tried by GID then by numeric id."""
        if context.owner_id is None:
            return None
        mappings = ChannelMappingRepository(context.session)
        candidates = [external_id_from_payload(context.payload)]
        if context.payload.get("id") is not None:
            candidates.append(str(context.payload["id"]))
        for external_id in candidates:
            if not external_id:
                continue
            mapping = await mappings.get_by_external_id(external_id, Platform.SHOPIFY, owner_id=context.owner_id)
            if mapping is not None:
                return mapping
        return None

    async def _log(
        self,
        context: _Context,
        status: LogStatus,
        message: str,
        *,
        scope: LogScope = LogScope.WEBHOOK,
        product_id=None,
        response_data: Optional[dict[str, Any]] = None,
    ) -> None:
        await SyncLogRepository(context.session).append(
            owner_id=context.owner_id,
            product_id=product_id,
            scope=scope,
            operation=SyncOperation.WEBHOOK,
            status=status,
            message=message,
            request_data=context.request_data,
            response_data=response_data,
            webhook_id=context.webhook_id,
        )

    async def _handle_product_create(self, context: _Context) -> None:
        if await self._find_mapping(context) is not None:
            # Known product, same handling as an update
            await self._handle_product_update(context)
            return
        await self._log(
            context,
            LogStatus.SUCCESS,
            f"Product created externally in Shopify: {context.payload.get('title', '')}",
            scope=LogScope.EXTERNAL,
        )

    async def _handle_product_update(self, context: _Context) -> None:
        mapping = await self._find_mapping(context)
        if mapping is None:
            await self._log(context, LogStatus.WARNING, "Updated product is not mapped locally")
            return

        catalog = ProductRepository(context.session)
        product = await catalog.get_for_owner(context.owner_id, mapping.product_id)
        if product is None:
            raise LookupError(f"Mapped product {mapping.product_id} is missing")

        inbound_updated = parse_shopify_datetime(context.payload.get("updated_at"))
        local_updated = as_utc(product.updated_at)
        if inbound_updated is None or (local_updated is not None and inbound_updated <= local_updated):
            await self._log(
                context,
                LogStatus.WARNING,
                "Ignored webhook update that is not newer than the local product",
                scope=LogScope.PRODUCT,
                product_id=product.id,
            )
            return

        fields = shopify_to_product_fields(context.payload)
        fields["updated_at"] = inbound_updated
        await catalog.update_product(product, fields)
        await ChannelMappingRepository(context.session).set_status(mapping, SyncStatus.SUCCESS)
        await self._log(
            context,
            LogStatus.SUCCESS,
            "Product updated from Shopify webhook",
            scope=LogScope.PRODUCT,
            product_id=product.id,
        )

    async def _handle_product_delete(self, context: _Context) -> None:
        mapping = await self._find_mapping(context)
        if mapping is None:
            await self._log(context, LogStatus.WARNING, "Deleted product is not mapped locally")
            return

        await ChannelMappingRepository(context.session).mark_deleted(mapping, "Product deleted in Shopify")
        await self._log(
            context,
            LogStatus.SUCCESS,
            "Product marked as deleted from Shopify webhook",
            scope=LogScope.PRODUCT,
            product_id=mapping.product_id,
        )

    async def _handle_inventory_update(self, context: _Context) -> None:
        # Inventory item ids are not mapped to catalog products yet
        await self._log(
            context,
            LogStatus.WARNING,
            "Inventory level update received, not applied",
            scope=LogScope.INVENTORY,
            response_data={
                "inventory_item_id": context.payload.get("inventory_item_id"),
                "location_id": context.payload.get("location_id"),
                "available": context.payload.get("available"),
            },
        )

    async def _handle_unknown_topic(self, context: _Context) -> None:
        logger.info("Unhandled webhook topic", topic=context.topic)
        await self._log(context, LogStatus.WARNING, f"Unhandled webhook topic: {context.topic}")

    async def _log_failure(self, webhook: ShopifyWebhook, payload: dict[str, Any], error: str) -> None:
        async with session_scope(self.session_factory) as session:
            connection = await PlatformConnectionRepository(session).find_by_shop_domain(webhook.shop_domain)
            await SyncLogRepository(session).append(
                owner_id=connection.owner_id if connection else None,
                scope=LogScope.WEBHOOK,
                operation=SyncOperation.WEBHOOK,
                status=LogStatus.ERROR,
                message=f"Webhook processing failed: {error}",
                request_data={
                    "topic": webhook.topic,
                    "shop": webhook.shop_domain,
                    "webhook_id": webhook.webhook_id,
                    "payload": payload,
                },
                webhook_id=webhook.webhook_id,
            )
