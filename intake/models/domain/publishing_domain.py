from datetime import datetime

from pydantic import BaseModel


class ShopifyStoreConfig(BaseModel):
    """Store the publisher talks to. Passed in explicitly, never looked up globally."""

    name: str
    shop_domain: str
    access_token: str
    api_version: str = "2023-10"
    webhook_secret: str | None = None

    def graphql_url(self) -> str:
        return f"https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json"


class ShopifyProductMapping(BaseModel):
    """Link between an intake product and its Shopify product."""

    id: str
    product_id: str
    shop_domain: str
    shopify_product_id: str
    shopify_handle: str | None = None
    status: str = "published"
    published_at: datetime
    last_sync_at: datetime


class PublishResult(BaseModel):
    shopify_product_id: str
    handle: str = ""
