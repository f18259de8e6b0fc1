"""
Shopify publishing collaborator.

Invoked after a task enters PUBLISHED. Publishing is best effort: every
failure is logged and reported as None so it can never block or reverse the
workflow transition that triggered it.
"""

import asyncio
import base64
import hashlib
import hmac
import json
from datetime import UTC, datetime
from typing import Any

import httpx

from intake.config import settings
from intake.db.helpers import DatabaseError
from intake.infrastructure.observability.logging import get_logger
from intake.models.domain.publishing_domain import PublishResult, ShopifyStoreConfig
from intake.models.domain.task_domain import Product
from intake.services.publishing.mapping_repository import (
    ShopifyMappingRepository,
    shopify_mapping_repository,
)

logger = get_logger(__name__)

REQUEST_TIMEOUT = 30  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 2
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

PRODUCT_CREATE_MUTATION = """
mutation productCreate($input: ProductInput!) {
  productCreate(input: $input) {
    product {
      id
      handle
      title
      status
    }
    userErrors {
      field
      message
    }
  }
}
"""


class ShopifyPublishError(Exception):
    """Raised internally when the Admin API rejects or fails a request."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        user_errors: list[dict] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.user_errors = user_errors or []


def verify_webhook_signature(raw_body: bytes, signature: str | None, secret: str | None) -> bool:
    """Shopify signs webhook bodies with a base64 HMAC-SHA256 digest."""
    if not signature or not secret:
        return False
    digest = hmac.new(secret.encode(), raw_body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode()
    return hmac.compare_digest(expected, signature)


def build_product_input(product: Product) -> dict[str, Any]:
    """Translate an intake product into a Shopify ProductInput."""
    product_input: dict[str, Any] = {
        "title": product.title,
        "descriptionHtml": product.description or "",
        "vendor": product.vendor,
        "productType": product.category or "",
        "status": "ACTIVE",
        "tags": [product.category] if product.category else [],
        "variants": [{"price": product.price or "0.00", "sku": product.sku or ""}],
    }

    if product.images:
        product_input["images"] = [{"src": src, "altText": product.title} for src in product.images]

    if product.metadata:
        product_input["metafields"] = [
            {
                "namespace": "workflow",
                "key": "order_number",
                "value": product.order_number or "",
                "type": "single_line_text_field",
            },
            {
                "namespace": "workflow",
                "key": "internal_metadata",
                "value": json.dumps(product.metadata, default=str),
                "type": "json",
            },
        ]

    return product_input


class ShopifyPublisher:
    """
    Publishes products to one Shopify store.

    The store is an explicit constructor argument; with no store configured
    every publish is a logged no-op.
    """

    def __init__(
        self,
        store: ShopifyStoreConfig | None,
        mappings: ShopifyMappingRepository,
        client: httpx.AsyncClient | None = None,
    ):
        self.store = store
        self.mappings = mappings
        self._client = client or self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=5, max_connections=10)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "X-Shopify-Access-Token": self.store.access_token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _post_with_retry(self, payload: dict[str, Any]) -> httpx.Response:
        url = self.store.graphql_url()
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.post(url, json=payload, headers=self._headers())
                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                    logger.debug(
                        "Shopify API retrying request",
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Shopify API request error, retrying",
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise RuntimeError("Shopify API retry loop exhausted")

    async def _graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        response = await self._post_with_retry({"query": query, "variables": variables})
        if response.status_code >= 400:
            raise ShopifyPublishError(
                f"Shopify API returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        body = response.json()
        if body.get("errors"):
            raise ShopifyPublishError("Shopify GraphQL errors", user_errors=body["errors"])
        return body.get("data") or {}

    async def publish_product(self, product: Product) -> PublishResult | None:
        """
        Create the product in Shopify and record the mapping.

        Returns:
            PublishResult with the Shopify id, or None when skipped or failed
        """
        if self.store is None:
            logger.info("No Shopify store configured, skipping publish", product_id=product.id)
            return None

        try:
            existing = await self.mappings.get_by_product(product.id)
            if existing:
                logger.info(
                    "Product already published to Shopify",
                    product_id=product.id,
                    shopify_product_id=existing.shopify_product_id,
                )
                return PublishResult(
                    shopify_product_id=existing.shopify_product_id,
                    handle=existing.shopify_handle or "",
                )

            data = await self._graphql(
                PRODUCT_CREATE_MUTATION, {"input": build_product_input(product)}
            )
            result = data.get("productCreate") or {}

            user_errors = result.get("userErrors") or []
            if user_errors:
                raise ShopifyPublishError("Shopify rejected product", user_errors=user_errors)

            created = result.get("product")
            if not created:
                raise ShopifyPublishError("No product data returned from Shopify")

            # gid://shopify/Product/123 -> 123
            shopify_product_id = created["id"].rsplit("/", 1)[-1]
            handle = created.get("handle") or ""

            await self.mappings.create(
                product_id=product.id,
                shop_domain=self.store.shop_domain,
                shopify_product_id=shopify_product_id,
                shopify_handle=handle,
                status=(created.get("status") or "active").lower(),
            )

            logger.info(
                "Product published to Shopify",
                product_id=product.id,
                shopify_product_id=shopify_product_id,
                shop_domain=self.store.shop_domain,
            )
            return PublishResult(shopify_product_id=shopify_product_id, handle=handle)

        except (ShopifyPublishError, httpx.HTTPError, DatabaseError, ValueError) as e:
            logger.error(
                "Failed to publish product to Shopify",
                product_id=product.id,
                error=str(e),
                error_type=type(e).__name__,
                user_errors=getattr(e, "user_errors", None),
            )
            return None

    async def handle_webhook(self, topic: str, shop: str, body: dict[str, Any]) -> None:
        """Apply a products/* webhook to the stored mapping."""
        logger.info("Received Shopify webhook", topic=topic, shop=shop)

        if topic not in ("products/update", "products/delete"):
            logger.info("Unhandled Shopify webhook topic", topic=topic)
            return

        shopify_product_id = str(body.get("id", ""))
        mapping = await self.mappings.get_by_shopify_id(shopify_product_id)
        if mapping is None:
            logger.info("No mapping for Shopify product", shopify_product_id=shopify_product_id)
            return

        if topic == "products/update":
            status = body.get("status") or "active"
            handle = body.get("handle")
        else:
            status = "archived"
            handle = None

        await self.mappings.update_sync_state(mapping.id, status, handle, datetime.now(UTC))
        logger.info(
            "Shopify mapping synced from webhook",
            product_id=mapping.product_id,
            topic=topic,
            status=status,
        )


# Global singleton instance, bound to the configured store (or none)
shopify_publisher = ShopifyPublisher(
    store=settings.shopify_store_config(),
    mappings=shopify_mapping_repository,
)
