"""
Shopify webhook receiver.

Verifies the X-Shopify-Hmac-Sha256 signature against the raw body before
parsing anything, then hands products/* topics to the publisher.
"""

import json

from fastapi import APIRouter, HTTPException, Request, status

from intake.infrastructure.observability.logging import get_logger
from intake.models.api.task_response import WebhookAckResponse
from intake.services.publishing import shopify_publisher, verify_webhook_signature

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SHOPIFY_HMAC_HEADER = "x-shopify-hmac-sha256"
SHOPIFY_TOPIC_HEADER = "x-shopify-topic"
SHOPIFY_DOMAIN_HEADER = "x-shopify-shop-domain"


@router.post("/shopify", response_model=WebhookAckResponse)
async def shopify_webhook(request: Request):
    store = shopify_publisher.store
    if store is None or not store.webhook_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Shopify webhooks not configured",
        )

    raw = await request.body()
    signature = request.headers.get(SHOPIFY_HMAC_HEADER)
    if not verify_webhook_signature(raw, signature, store.webhook_secret):
        logger.warning("Rejected Shopify webhook with bad signature")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        body = json.loads(raw or b"{}")
    except json.JSONDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")

    topic = request.headers.get(SHOPIFY_TOPIC_HEADER, "")
    shop = request.headers.get(SHOPIFY_DOMAIN_HEADER, store.shop_domain)

    try:
        await shopify_publisher.handle_webhook(topic, shop, body)
    except Exception as e:
        logger.error("Error processing Shopify webhook", topic=topic, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process webhook",
        )

    return WebhookAckResponse(received=True, topic=topic or None)
