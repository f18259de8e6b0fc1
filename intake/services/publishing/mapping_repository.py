"""
Persistence for intake product -> Shopify product mappings.
"""

from datetime import datetime

from intake.db.helpers import execute_query, fetch_one
from intake.infrastructure.observability.logging import get_logger
from intake.models.domain.publishing_domain import ShopifyProductMapping

logger = get_logger(__name__)

_COLUMNS = (
    "id, product_id, shop_domain, shopify_product_id, shopify_handle, "
    "status, published_at, last_sync_at"
)


class ShopifyMappingRepository:
    async def get_by_product(self, product_id: str) -> ShopifyProductMapping | None:
        row = await fetch_one(
            f"SELECT {_COLUMNS} FROM shopify_product_mappings WHERE product_id = %s",
            (product_id,),
        )
        return ShopifyProductMapping.model_validate(row) if row else None

    async def get_by_shopify_id(self, shopify_product_id: str) -> ShopifyProductMapping | None:
        row = await fetch_one(
            f"SELECT {_COLUMNS} FROM shopify_product_mappings WHERE shopify_product_id = %s",
            (shopify_product_id,),
        )
        return ShopifyProductMapping.model_validate(row) if row else None

    async def create(
        self,
        product_id: str,
        shop_domain: str,
        shopify_product_id: str,
        shopify_handle: str | None,
        status: str,
    ) -> ShopifyProductMapping:
        row = await fetch_one(
            f"""
            INSERT INTO shopify_product_mappings (
                product_id, shop_domain, shopify_product_id, shopify_handle, status
            ) VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (product_id) DO UPDATE SET
                shopify_product_id = EXCLUDED.shopify_product_id,
                shopify_handle = EXCLUDED.shopify_handle,
                status = EXCLUDED.status,
                last_sync_at = NOW()
            RETURNING {_COLUMNS}
            """,
            (product_id, shop_domain, shopify_product_id, shopify_handle, status),
        )
        return ShopifyProductMapping.model_validate(row)

    async def update_sync_state(
        self,
        mapping_id: str,
        status: str,
        shopify_handle: str | None,
        synced_at: datetime,
    ) -> bool:
        affected = await execute_query(
            """
            UPDATE shopify_product_mappings
            SET status = %s,
                shopify_handle = COALESCE(%s, shopify_handle),
                last_sync_at = %s
            WHERE id = %s
            """,
            (status, shopify_handle, synced_at, mapping_id),
        )
        logger.debug("Shopify mapping sync state updated", mapping_id=mapping_id, status=status)
        return affected > 0


# Global singleton instance
shopify_mapping_repository = ShopifyMappingRepository()
