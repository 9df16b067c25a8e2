"""
Request context middleware.

Pure ASGI (not BaseHTTPMiddleware) so async generator dependencies such as
get_db_session() keep working.
"""
import re
import time
import uuid
from typing import Optional

import structlog
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from catalog_sync.core.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = b"x-request-id"
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:\-]{1,128}$")

# Shopify delivery headers worth carrying on every log line of a webhook
_SHOPIFY_CONTEXT_HEADERS = {
    b"x-shopify-shop-domain": "shop",
    b"x-shopify-topic": "topic",
    b"x-shopify-webhook-id": "webhook_id",
}


def accepted_request_id(value: Optional[str]) -> str:
    """Reuse a caller's request id when it is sane, otherwise mint one."""
    if value and _REQUEST_ID_PATTERN.match(value):
        return value
    return str(uuid.uuid4())


class RequestContextMiddleware:
    """
    Gives each HTTP request an id, binds it to the structlog context along
    with method, path and any Shopify delivery headers, echoes it in
    ``X-Request-ID`` and logs the finished request.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        incoming = None
        context = {}
        for name, value in scope.get("headers", []):
            if name == REQUEST_ID_HEADER:
                incoming = value.decode("latin-1")
            elif name in _SHOPIFY_CONTEXT_HEADERS:
                context[_SHOPIFY_CONTEXT_HEADERS[name]] = value.decode("latin-1")[:255]

        request_id = accepted_request_id(incoming)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=scope.get("method"),
            path=scope.get("path"),
            **context,
        )
        scope.setdefault("state", {})["request_id"] = request_id

        started = time.perf_counter()
        status_code = 500

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                headers = list(message.get("headers", []))
                headers.append((REQUEST_ID_HEADER, request_id.encode("latin-1")))
                message = {**message, "headers": headers}
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            logger.info(
                "Request finished",
                status_code=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
