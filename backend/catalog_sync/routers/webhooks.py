"""
Shopify webhook receiver.
"""
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from catalog_sync.routers.dependencies import SessionFactory
from catalog_sync.services.webhooks import ShopifyWebhook, ShopifyWebhookProcessor

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/shopify")
async def receive_shopify_webhook(request: Request, session_factory: SessionFactory) -> JSONResponse:
    """
    Receive a Shopify webhook.

    The raw body is read before parsing so the HMAC is computed over the
    exact bytes Shopify signed.
    """
    body = await request.body()
    webhook = ShopifyWebhook(
        topic=request.headers.get("x-shopify-topic"),
        shop_domain=request.headers.get("x-shopify-shop-domain"),
        hmac_header=request.headers.get("x-shopify-hmac-sha256"),
        webhook_id=request.headers.get("x-shopify-webhook-id"),
        body=body,
    )
    outcome = await ShopifyWebhookProcessor(session_factory).process(webhook)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
