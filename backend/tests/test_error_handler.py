"""
Tests for the error envelope returned for unhandled exceptions.
"""
import httpx
from fastapi import FastAPI

from catalog_sync.middleware import ErrorHandlerMiddleware
from catalog_sync.services.shopify_client import ShopifyAuthError


def make_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(ErrorHandlerMiddleware)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    @app.get("/upstream")
    async def upstream():
        raise ShopifyAuthError()

    return app


async def request(path: str) -> httpx.Response:
    transport = httpx.ASGITransport(app=make_app(), raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.get(path)


async def test_unhandled_exception_is_enveloped():
    response = await request("/boom")

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error", "type": "RuntimeError"}


async def test_shopify_failure_is_bad_gateway():
    response = await request("/upstream")

    assert response.status_code == 502
    assert response.json() == {
        "success": False,
        "error": "Shopify API error: Invalid access token",
        "code": "UNAUTHENTICATED",
    }
