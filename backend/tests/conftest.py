"""
Shared fixtures: in-memory database, authenticated API client and a fake
Shopify Admin API served through httpx.MockTransport.
"""
import json
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-at-least-32-chars")
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key-at-least-32-chars")
os.environ.setdefault("SHOPIFY_API_KEY", "test-api-key")
os.environ.setdefault("SHOPIFY_API_SECRET", "test-api-secret")
os.environ.setdefault("BULK_POLL_INTERVAL", "0")
os.environ.setdefault("BULK_IMPORT_BATCH_SIZE", "1")
os.environ.setdefault("SYNC_BATCH_SIZE", "1")
os.environ.setdefault("SYNC_BATCH_DELAY", "0")

from typing import Any, Callable, Optional  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402

from catalog_sync.core import database  # noqa: E402
from catalog_sync.core.config import settings  # noqa: E402
from catalog_sync.core.database import session_scope  # noqa: E402
from catalog_sync.core.security import create_access_token  # noqa: E402
from catalog_sync.main import app  # noqa: E402
from catalog_sync.models import Platform  # noqa: E402
from catalog_sync.repositories import (  # noqa: E402
    ChannelMappingRepository,
    PlatformConnectionRepository,
    ProductRepository,
)
from catalog_sync.routers.dependencies import get_client_factory  # noqa: E402
from catalog_sync.services.shopify_client import ShopifyGraphQLClient  # noqa: E402

OWNER_ID = "user_test_owner"
SHOP_DOMAIN = "test-store.myshopify.com"
BULK_URL = "https://storage.example.com/bulk-export.jsonl"


class FakeShopify:
    """
    Minimal Shopify Admin API double.

    GraphQL requests are routed on the operation they contain; the bulk
    export URL serves ``bulk_lines`` as JSONL.
    """

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self.bulk_lines: list[dict[str, Any]] = []
        self.bulk_status = "COMPLETED"
        self.bulk_error_code: Optional[str] = None
        self.create_errors: list[dict[str, Any]] = []
        self.delete_errors: list[dict[str, Any]] = []
        self.variant_errors: list[dict[str, Any]] = []
        self.inventory: dict[str, int] = {}
        self.products: dict[str, dict[str, Any]] = {}
        self.fail_all_with: Optional[int] = None
        self._next_id = 1000

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET" and str(request.url) == BULK_URL:
            body = "\n".join(json.dumps(line) for line in self.bulk_lines)
            return httpx.Response(200, text=body)

        if self.fail_all_with is not None:
            return httpx.Response(self.fail_all_with, json={"errors": "failure"})

        payload = json.loads(request.content)
        self.requests.append(payload)
        query = payload["query"]
        variables = payload.get("variables") or {}
        if "variants" in (variables.get("input") or {}):
            # ProductInput lost its variants field in API version 2024-04
            return httpx.Response(200, json={"errors": [{
                "message": "Variable $input of type ProductInput! was provided invalid value for variants",
                "extensions": {"code": "INVALID_VARIABLE"},
            }]})
        return httpx.Response(200, json={"data": self._route(query, variables), "extensions": self._cost()})

    def _cost(self) -> dict[str, Any]:
        return {
            "cost": {
                "requestedQueryCost": 10,
                "actualQueryCost": 10,
                "throttleStatus": {
                    "maximumAvailable": 1000.0,
                    "currentlyAvailable": 990,
                    "restoreRate": 50.0,
                },
            }
        }

    def _route(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        if "bulkOperationRunQuery" in query:
            return {
                "bulkOperationRunQuery": {
                    "bulkOperation": {"id": "gid://shopify/BulkOperation/1", "status": "CREATED"},
                    "userErrors": [],
                }
            }
        if "BulkOperationStatus" in query:
            return {
                "node": {
                    "id": variables["id"],
                    "status": self.bulk_status,
                    "errorCode": self.bulk_error_code,
                    "objectCount": str(len(self.bulk_lines)),
                    "fileSize": "1024",
                    "url": BULK_URL if self.bulk_lines else None,
                }
            }
        if "productCreate" in query:
            if self.create_errors:
                return {"productCreate": {"product": None, "userErrors": self.create_errors}}
            self._next_id += 1
            gid = f"gid://shopify/Product/{self._next_id}"
            product = {
                "id": gid,
                "title": variables["input"]["title"],
                "status": variables["input"]["status"],
                "variants": self._default_variant(self._next_id),
            }
            self.products[gid] = product
            return {"productCreate": {"product": product, "userErrors": []}}
        if "productUpdate" in query:
            gid = variables["input"]["id"]
            number = gid.rsplit("/", 1)[-1]
            product = {"id": gid, "title": variables["input"]["title"], "variants": self._default_variant(number)}
            return {"productUpdate": {"product": product, "userErrors": []}}
        if "productVariantsBulkUpdate" in query:
            if self.variant_errors:
                return {"productVariantsBulkUpdate": {"productVariants": None, "userErrors": self.variant_errors}}
            return {"productVariantsBulkUpdate": {"productVariants": variables["variants"], "userErrors": []}}
        if "PrimaryLocation" in query:
            return {"location": {"id": "gid://shopify/Location/1", "name": "Main warehouse"}}
        if "inventorySetQuantities" in query:
            for item in variables["input"]["quantities"]:
                self.inventory[item["inventoryItemId"]] = item["quantity"]
            return {"inventorySetQuantities": {"inventoryAdjustmentGroup": {"reason": "correction"}, "userErrors": []}}
        if "productDelete" in query:
            if self.delete_errors:
                return {"productDelete": {"deletedProductId": None, "userErrors": self.delete_errors}}
            return {"productDelete": {"deletedProductId": variables["input"]["id"], "userErrors": []}}
        if "metafieldsSet" in query:
            return {"metafieldsSet": {"metafields": [], "userErrors": []}}
        if "GetShop" in query:
            return {
                "shop": {
                    "id": "gid://shopify/Shop/1",
                    "name": "Test Store",
                    "myshopifyDomain": SHOP_DOMAIN,
                    "plan": {"displayName": "Basic", "shopifyPlus": False},
                }
            }
        if "GetProduct" in query:
            return {"product": self.products.get(variables["id"])}
        raise AssertionError(f"Unexpected query: {query[:60]}")

    @staticmethod
    def _default_variant(number: Any) -> dict[str, Any]:
        return {"edges": [{"node": {
            "id": f"gid://shopify/ProductVariant/{number}",
            "inventoryItem": {"id": f"gid://shopify/InventoryItem/{number}"},
        }}]}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def operations(self) -> list[str]:
        """Names of the GraphQL operations received, in order."""
        names = []
        for payload in self.requests:
            for name in (
                "bulkOperationRunQuery", "BulkOperationStatus", "productCreate", "productUpdate",
                "productVariantsBulkUpdate", "PrimaryLocation", "inventorySetQuantities",
                "productDelete", "metafieldsSet", "GetShop", "GetProduct",
            ):
                if name in payload["query"]:
                    names.append(name)
                    break
        return names


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
async def db_engine():
    """Fresh schema per test on the in-memory engine."""
    async with database.engine.begin() as conn:
        await conn.run_sync(database.Base.metadata.create_all)
    yield database.engine
    async with database.engine.begin() as conn:
        await conn.run_sync(database.Base.metadata.drop_all)
    await database.engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return database.async_session_factory


@pytest.fixture
def fake_shopify() -> FakeShopify:
    return FakeShopify()


@pytest.fixture
def client_factory(fake_shopify: FakeShopify) -> Callable[[dict[str, Any]], ShopifyGraphQLClient]:
    def factory(credentials: dict[str, Any]) -> ShopifyGraphQLClient:
        return ShopifyGraphQLClient.from_credentials(
            credentials,
            transport=fake_shopify.transport,
            sleep=no_sleep,
            poll_interval=0,
        )

    return factory


@pytest.fixture
def shopify_client(fake_shopify: FakeShopify) -> ShopifyGraphQLClient:
    return ShopifyGraphQLClient(
        SHOP_DOMAIN,
        "shpat_test_token",
        transport=fake_shopify.transport,
        sleep=no_sleep,
        poll_interval=0,
    )


@pytest.fixture
async def async_client(session_factory, client_factory):
    """Async test client against the app, with Shopify calls faked."""
    app.dependency_overrides[get_client_factory] = lambda: client_factory
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    token = create_access_token({"sub": OWNER_ID})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def sandbox_mode():
    previous = settings.sandbox_mode
    settings.sandbox_mode = True
    yield
    settings.sandbox_mode = previous


@pytest.fixture
def webhook_secret():
    previous = settings.shopify_webhook_secret
    settings.shopify_webhook_secret = "whsec_test_secret"
    yield settings.shopify_webhook_secret
    settings.shopify_webhook_secret = previous


async def create_connection(
    session_factory,
    owner_id: str = OWNER_ID,
    shop_domain: str = SHOP_DOMAIN,
    name: str = "Main store",
    configuration: Optional[dict[str, Any]] = None,
):
    async with session_scope(session_factory) as session:
        return await PlatformConnectionRepository(session).create_connection(
            owner_id,
            Platform.SHOPIFY,
            name,
            {"shop_domain": shop_domain, "access_token": "shpat_test_token"},
            configuration,
        )


async def create_product(session_factory, owner_id: str = OWNER_ID, **fields):
    data = {"title": "Test Product", "inventory": 5, "tags": [], "images": [], "status": "active"}
    data.update(fields)
    async with session_scope(session_factory) as session:
        return await ProductRepository(session).create_for_owner(owner_id, data)


async def create_mapping(session_factory, product_id, status, **kwargs):
    async with session_scope(session_factory) as session:
        return await ChannelMappingRepository(session).upsert(
            product_id, Platform.SHOPIFY, status=status, **kwargs
        )
