"""
Tests for the Shopify GraphQL client: retries, typed errors and bulk operations.
"""
import httpx
import pytest

from catalog_sync.services.shopify_client import (
    BulkOperationError,
    ShopifyAPIError,
    ShopifyAuthError,
    ShopifyCostError,
    ShopifyGraphQLClient,
    ShopifyGraphQLError,
    ShopifyThrottleError,
)

from conftest import BULK_URL, SHOP_DOMAIN


def make_client(handler, sleeps=None) -> ShopifyGraphQLClient:
    async def sleep(seconds: float) -> None:
        if sleeps is not None:
            sleeps.append(seconds)

    return ShopifyGraphQLClient(
        SHOP_DOMAIN,
        "shpat_test_token",
        transport=httpx.MockTransport(handler),
        sleep=sleep,
        poll_interval=0,
    )


class TestExecuteQuery:
    """Tests for ShopifyGraphQLClient.execute_query."""

    async def test_returns_data_and_sends_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["token"] = request.headers["X-Shopify-Access-Token"]
            return httpx.Response(200, json={"data": {"shop": {"name": "Test Store"}}})

        client = make_client(handler)
        data = await client.execute_query("{ shop { name } }")

        assert data == {"shop": {"name": "Test Store"}}
        assert seen["url"] == f"https://{SHOP_DOMAIN}/admin/api/2025-01/graphql.json"
        assert seen["token"] == "shpat_test_token"

    async def test_retries_on_429(self):
        sleeps = []
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            if calls["count"] < 3:
                return httpx.Response(429)
            return httpx.Response(200, json={"data": {"ok": True}})

        client = make_client(handler, sleeps)
        data = await client.execute_query("{ ok }")

        assert data == {"ok": True}
        assert calls["count"] == 3
        assert sleeps == [1, 2]

    async def test_gives_up_after_max_retries(self):
        client = make_client(lambda request: httpx.Response(429))

        with pytest.raises(ShopifyAPIError) as exc_info:
            await client.execute_query("{ ok }")
        assert exc_info.value.code == "429"

    async def test_http_401_is_auth_error(self):
        client = make_client(lambda request: httpx.Response(401))

        with pytest.raises(ShopifyAuthError):
            await client.execute_query("{ shop { name } }")

    async def test_transport_error_retried_then_raised(self):
        sleeps = []

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler, sleeps)
        with pytest.raises(ShopifyAPIError):
            await client.execute_query("{ shop { name } }")
        assert sleeps == [1, 2]

    async def test_throttled_waits_then_raises(self):
        sleeps = []

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={
                "errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED", "cost": 100}}],
            })

        client = make_client(handler, sleeps)
        with pytest.raises(ShopifyThrottleError) as exc_info:
            await client.execute_query("{ shop { name } }")

        assert exc_info.value.cost == 100
        # 100 points at the standard restore rate of 50/sec
        assert sleeps == [2]

    async def test_unauthenticated_code_is_auth_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={
                "errors": [{"message": "Bad token", "extensions": {"code": "UNAUTHENTICATED"}}],
            })

        with pytest.raises(ShopifyAuthError):
            await make_client(handler).execute_query("{ shop { name } }")

    async def test_max_cost_exceeded(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={
                "errors": [{
                    "message": "Query cost is too high",
                    "extensions": {"code": "MAX_COST_EXCEEDED", "cost": 1500, "maxCost": 1000},
                }],
            })

        with pytest.raises(ShopifyCostError) as exc_info:
            await make_client(handler).execute_query("{ shop { name } }")
        assert exc_info.value.max_cost == 1000

    async def test_other_graphql_errors(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"errors": [{"message": "Field 'nope' doesn't exist"}]})

        with pytest.raises(ShopifyGraphQLError, match="nope"):
            await make_client(handler).execute_query("{ nope }")

    async def test_reported_cost_reconciles_bucket(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={
                "data": {"shop": {"name": "x"}},
                "extensions": {"cost": {
                    "actualQueryCost": 3,
                    "throttleStatus": {
                        "maximumAvailable": 1000.0,
                        "currentlyAvailable": 700,
                        "restoreRate": 50.0,
                    },
                }},
            })

        client = make_client(handler)
        await client.execute_query("{ shop { name } }")

        assert client.rate_limiter.used == 300


class TestFromCredentials:
    def test_builds_client(self):
        client = ShopifyGraphQLClient.from_credentials(
            {"shop_domain": SHOP_DOMAIN, "access_token": "token", "plan": "plus"}
        )

        assert client.shop_domain == SHOP_DOMAIN
        assert client.rate_limiter.capacity == 2000.0

    def test_missing_token(self):
        with pytest.raises(ShopifyAuthError, match="access_token"):
            ShopifyGraphQLClient.from_credentials({"shop_domain": SHOP_DOMAIN})


class TestBulkOperations:
    """Tests for bulk operation submit, poll and download."""

    async def test_polls_until_completed(self, fake_shopify, shopify_client):
        fake_shopify.bulk_lines = [{"id": "gid://shopify/Product/1", "title": "A"}]

        result = await shopify_client.execute_bulk_operation("{ products { edges { node { id } } } }")

        assert result.status == "COMPLETED"
        assert result.url == BULK_URL
        assert result.object_count == 1
        assert fake_shopify.operations() == ["bulkOperationRunQuery", "BulkOperationStatus"]

    async def test_failed_operation_raises(self, fake_shopify, shopify_client):
        fake_shopify.bulk_status = "FAILED"
        fake_shopify.bulk_error_code = "INTERNAL_SERVER_ERROR"

        with pytest.raises(BulkOperationError, match="INTERNAL_SERVER_ERROR"):
            await shopify_client.execute_bulk_operation("{ products { edges { node { id } } } }")

    async def test_user_errors_raise(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {"bulkOperationRunQuery": {
                "bulkOperation": None,
                "userErrors": [{"field": ["query"], "message": "A bulk query operation is already in progress"}],
            }}})

        with pytest.raises(BulkOperationError, match="already in progress"):
            await make_client(handler).execute_bulk_operation("{ products { edges { node { id } } } }")

    async def test_stream_skips_blank_lines(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text='{"id": "a"}\n\n{"id": "b"}\n')

        client = make_client(handler)
        lines = [line async for line in client.stream_bulk_results(BULK_URL)]

        assert lines == ['{"id": "a"}', '{"id": "b"}']
