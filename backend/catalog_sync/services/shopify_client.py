"""
Shopify GraphQL client for Admin API interactions.
Handles cost-based rate limiting, retries, error classification and bulk operations.
"""
import asyncio
import math
import re
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from catalog_sync.core.config import settings
from catalog_sync.core.logging import get_logger
from catalog_sync.services.queries import (
    BULK_OPERATION_RUN_MUTATION,
    BULK_OPERATION_STATUS_QUERY,
    PRODUCT_BY_ID_QUERY,
    SHOP_QUERY,
)

logger = get_logger(__name__)

CostEstimator = Callable[[str, Optional[dict[str, Any]]], int]
SleepFunc = Callable[[float], Awaitable[Any]]

_WORD_TOKEN = re.compile(r"\w+")
_CONNECTION_ARG = re.compile(r"\bfirst\s*:")


def estimate_query_cost(query: str, variables: Optional[dict[str, Any]] = None) -> int:
    """
    Rough query cost: one point per word token, ten per paginated connection.

    Shopify reports the real cost after the fact; ``reconcile`` corrects the
    bucket with it. Pass a different estimator to the client to replace this.
    """
    tokens = len(_WORD_TOKEN.findall(query))
    connections = len(_CONNECTION_ARG.findall(query))
    return max(1, tokens + connections * 10)


class ShopifyAPIError(Exception):
    """Base exception for Shopify API errors."""

    def __init__(self, message: str | list, code: Optional[str] = None) -> None:
        if isinstance(message, list):
            message = "; ".join(str(e.get("message", e)) for e in message)
        super().__init__(message)
        self.message = message
        self.code = code


class ShopifyGraphQLError(ShopifyAPIError):
    """GraphQL error with an unrecognised or missing code."""


class ShopifyAuthError(ShopifyAPIError):
    """Access token rejected. Not retryable."""

    def __init__(self, message: str = "Invalid access token") -> None:
        super().__init__(message, "UNAUTHENTICATED")


class ShopifyThrottleError(ShopifyAPIError):
    """Request throttled. The client already waited; the caller should retry."""

    def __init__(self, message: str, cost: float) -> None:
        super().__init__(message, "THROTTLED")
        self.cost = cost


class ShopifyCostError(ShopifyAPIError):
    """Query exceeds the maximum single-query cost. Not retryable."""

    def __init__(self, message: str, cost: Optional[float], max_cost: Optional[float]) -> None:
        super().__init__(message, "MAX_COST_EXCEEDED")
        self.cost = cost
        self.max_cost = max_cost


class BulkOperationError(ShopifyAPIError):
    """Bulk operation could not be started or ended FAILED/CANCELED."""


class ShopifyRateLimiter:
    """
    Client-side token bucket over Shopify's query cost points.

    ``used`` is the number of points currently consumed; it drains at
    ``restore_rate`` points per second. Reservations are serialised, so
    concurrent calls on one client cannot both see the same free capacity.
    """

    PLANS: dict[str, tuple[float, float]] = {
        # plan: (restore rate points/sec, burst capacity)
        "standard": (50.0, 1000.0),
        "plus": (100.0, 2000.0),
    }

    def __init__(
        self,
        plan: str = "standard",
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        if plan not in self.PLANS:
            raise ValueError(f"Unknown Shopify plan: {plan}")
        self.restore_rate, self.capacity = self.PLANS[plan]
        self.used = 0.0
        self._clock = clock
        self._sleep = sleep
        self._last_refill = clock()
        self._lock = asyncio.Lock()

    @property
    def available(self) -> float:
        return self.capacity - self.used

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self.used = max(0.0, self.used - elapsed * self.restore_rate)
        self._last_refill = now

    async def wait_for_capacity(self, cost: float) -> float:
        """Reserve ``cost`` points, sleeping once if the bucket would overflow.

        Returns the number of seconds waited.
        """
        async with self._lock:
            self._refill()
            waited = 0.0
            overflow = self.used + cost - self.capacity
            if overflow > 0:
                waited = float(math.ceil(overflow / self.restore_rate))
                logger.info(
                    "Rate limit reached, waiting",
                    wait_seconds=waited,
                    cost=cost,
                    used=round(self.used, 1),
                )
                await self._sleep(waited)
                self._refill()
            self.used += cost
            return waited

    def reconcile(self, cost_extension: Optional[dict[str, Any]], estimated: float) -> None:
        """Correct the bucket with the cost Shopify reported."""
        if not cost_extension:
            return

        throttle = cost_extension.get("throttleStatus")
        if throttle:
            self.capacity = float(throttle.get("maximumAvailable", self.capacity))
            self.restore_rate = float(throttle.get("restoreRate", self.restore_rate))
            available = throttle.get("currentlyAvailable")
            if available is not None:
                self.used = max(0.0, self.capacity - float(available))
                self._last_refill = self._clock()
            return

        actual = cost_extension.get("actualQueryCost")
        if actual is None:
            actual = cost_extension.get("requestedQueryCost")
        if actual is not None:
            self.used = max(0.0, self.used + float(actual) - estimated)


@dataclass
class BulkOperationResult:
    id: str
    status: str
    url: Optional[str]
    object_count: int
    file_size: int


class ShopifyGraphQLClient:
    """
    Async Shopify GraphQL API client for one shop.

    Features:
    - Cost-estimated token bucket per client instance
    - Retry with exponential backoff on HTTP 429 and transport errors
    - Typed errors by GraphQL extension code
    - Bulk operation submit and poll
    """

    GRAPHQL_ENDPOINT = "https://{domain}/admin/api/{version}/graphql.json"
    MAX_RETRIES = 3

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        *,
        api_version: Optional[str] = None,
        plan: Optional[str] = None,
        cost_estimator: CostEstimator = estimate_query_cost,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: SleepFunc = asyncio.sleep,
        rate_limiter: Optional[ShopifyRateLimiter] = None,
        poll_interval: Optional[float] = None,
    ) -> None:
        self.shop_domain = shop_domain
        self.access_token = access_token
        self.api_version = api_version or settings.shopify_api_version
        self.endpoint = self.GRAPHQL_ENDPOINT.format(domain=shop_domain, version=self.api_version)
        self.cost_estimator = cost_estimator
        self.rate_limiter = rate_limiter or ShopifyRateLimiter(
            plan or settings.shopify_plan, sleep=sleep
        )
        self.poll_interval = (
            settings.bulk_poll_interval if poll_interval is None else poll_interval
        )
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_credentials(cls, credentials: dict[str, Any], **kwargs: Any) -> "ShopifyGraphQLClient":
        """Build a client from a decrypted connection credentials blob."""
        try:
            shop_domain = credentials["shop_domain"]
            access_token = credentials["access_token"]
        except KeyError as e:
            raise ShopifyAuthError(f"Connection credentials missing {e.args[0]}") from e
        kwargs.setdefault("plan", credentials.get("plan"))
        return cls(shop_domain, access_token, **kwargs)

    def _http_client(self, timeout: float = 30.0) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": self.access_token,
        }

        async with self._http_client() as client:
            for attempt in range(self.MAX_RETRIES):
                try:
                    response = await client.post(self.endpoint, json=payload, headers=headers)
                    response.raise_for_status()
                    return response.json()

                except httpx.HTTPStatusError as e:
                    status_code = e.response.status_code
                    if status_code == 429 and attempt < self.MAX_RETRIES - 1:
                        await self._sleep(2 ** attempt)
                        continue
                    if status_code == 401:
                        raise ShopifyAuthError() from e
                    raise ShopifyAPIError(f"HTTP error: {status_code}", str(status_code)) from e

                except httpx.RequestError as e:
                    if attempt < self.MAX_RETRIES - 1:
                        await self._sleep(2 ** attempt)
                        continue
                    raise ShopifyAPIError(f"Request failed: {e}") from e

        raise ShopifyAPIError("Max retries exceeded")

    async def execute_query(
        self,
        query: str,
        variables: Optional[dict[str, Any]] = None,
        operation_name: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Execute a GraphQL query against the shop.

        Returns the ``data`` member of the response.

        Raises:
            ShopifyThrottleError: after waiting out a THROTTLED response
            ShopifyAuthError: token rejected
            ShopifyCostError: query too expensive
            ShopifyGraphQLError: any other GraphQL error
            ShopifyAPIError: transport/HTTP failures
        """
        estimated = self.cost_estimator(query, variables)
        await self.rate_limiter.wait_for_capacity(estimated)

        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables
        if operation_name:
            payload["operationName"] = operation_name

        started = time.perf_counter()
        body = await self._post(payload)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)

        cost = (body.get("extensions") or {}).get("cost")
        self.rate_limiter.reconcile(cost, estimated)

        errors = body.get("errors")
        if errors:
            logger.error(
                "Shopify GraphQL errors",
                errors=errors,
                shop=self.shop_domain,
                elapsed_ms=elapsed_ms,
            )
            await self._raise_for_errors(errors, cost, estimated)

        logger.debug(
            "Shopify query executed",
            shop=self.shop_domain,
            estimated_cost=estimated,
            actual_cost=(cost or {}).get("actualQueryCost"),
            elapsed_ms=elapsed_ms,
        )
        return body.get("data") or {}

    async def _raise_for_errors(
        self,
        errors: list[dict[str, Any]],
        cost: Optional[dict[str, Any]],
        estimated: float,
    ) -> None:
        for error in errors:
            extensions = error.get("extensions") or {}
            code = extensions.get("code")
            message = error.get("message", "Unknown GraphQL error")

            if code == "THROTTLED":
                requested = extensions.get("cost")
                if requested is None:
                    requested = (cost or {}).get("requestedQueryCost", estimated)
                wait = math.ceil(float(requested) / self.rate_limiter.restore_rate)
                logger.warning("Shopify throttled request", wait_seconds=wait, shop=self.shop_domain)
                await self._sleep(wait)
                raise ShopifyThrottleError(message, float(requested))
            if code == "UNAUTHENTICATED":
                raise ShopifyAuthError()
            if code == "MAX_COST_EXCEEDED":
                raise ShopifyCostError(message, extensions.get("cost"), extensions.get("maxCost"))

        first = errors[0]
        raise ShopifyGraphQLError(
            first.get("message", "Unknown GraphQL error"),
            (first.get("extensions") or {}).get("code"),
        )

    async def execute_bulk_operation(self, query: str) -> BulkOperationResult:
        """Submit a bulk query and poll until it completes."""
        data = await self.execute_query(BULK_OPERATION_RUN_MUTATION, {"query": query})
        run = data.get("bulkOperationRunQuery") or {}

        user_errors = run.get("userErrors") or []
        if user_errors:
            raise BulkOperationError(user_errors)

        operation = run.get("bulkOperation") or {}
        operation_id = operation.get("id")
        if not operation_id:
            raise BulkOperationError("Bulk operation was not created")

        logger.info("Bulk operation started", operation_id=operation_id, shop=self.shop_domain)

        while True:
            await self._sleep(self.poll_interval)
            status_data = await self.execute_query(BULK_OPERATION_STATUS_QUERY, {"id": operation_id})
            node = status_data.get("node") or {}
            status = node.get("status")

            if status == "COMPLETED":
                logger.info(
                    "Bulk operation completed",
                    operation_id=operation_id,
                    object_count=node.get("objectCount"),
                )
                return BulkOperationResult(
                    id=operation_id,
                    status=status,
                    url=node.get("url"),
                    object_count=int(node.get("objectCount") or 0),
                    file_size=int(node.get("fileSize") or 0),
                )
            if status in ("FAILED", "CANCELED"):
                error_code = node.get("errorCode") or "UNKNOWN"
                raise BulkOperationError(
                    f"Bulk operation {status.lower()}: {error_code}", error_code
                )

    async def stream_bulk_results(self, url: str) -> AsyncIterator[str]:
        """Stream a bulk export line by line."""
        async with self._http_client(timeout=300.0) as client:
            async with client.stream("GET", url) as response:
                if response.status_code >= 400:
                    raise BulkOperationError(
                        f"Failed to download bulk results: {response.status_code}"
                    )
                async for line in response.aiter_lines():
                    if line.strip():
                        yield line

    async def get_shop_info(self) -> dict[str, Any]:
        """Get basic shop information."""
        data = await self.execute_query(SHOP_QUERY)
        return data.get("shop") or {}

    async def get_product(self, product_gid: str) -> Optional[dict[str, Any]]:
        data = await self.execute_query(PRODUCT_BY_ID_QUERY, {"id": product_gid})
        return data.get("product")
