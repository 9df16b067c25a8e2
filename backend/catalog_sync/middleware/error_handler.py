"""
Global error handling middleware.

Uses pure ASGI middleware (not BaseHTTPMiddleware) to avoid breaking
async generator dependencies like get_db_session().
"""
import json

from fastapi import HTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from catalog_sync.core.logging import get_logger
from catalog_sync.services.shopify_client import ShopifyAPIError

logger = get_logger(__name__)


def error_body(exc: Exception) -> tuple[int, dict]:
    """Status code and envelope for an exception no route handled."""
    if isinstance(exc, ShopifyAPIError):
        # Upstream failure, not ours
        return 502, {
            "success": False,
            "error": f"Shopify API error: {exc.message}",
            "code": exc.code,
        }
    return 500, {
        "success": False,
        "error": "Internal server error",
        "type": type(exc).__name__,
    }


class ErrorHandlerMiddleware:
    """
    Turns exceptions that escape the routes into the dashboard's
    ``{"success": false, "error": ...}`` envelope.

    HTTPException passes through to FastAPI's exception handlers.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except HTTPException:
            raise
        except Exception as e:
            path = scope.get("path", "unknown")
            if response_started:
                # Headers already sent, can't change the response
                logger.exception("Unhandled exception after response started", error=str(e), path=path)
                raise

            status_code, payload = error_body(e)
            logger.exception("Unhandled exception", error=str(e), path=path, status_code=status_code)

            body = json.dumps(payload).encode("utf-8")
            await send({
                "type": "http.response.start",
                "status": status_code,
                "headers": [
                    [b"content-type", b"application/json"],
                    [b"content-length", str(len(body)).encode()],
                ],
            })
            await send({"type": "http.response.body", "body": body})
