"""
Publishing to external storefronts.
"""

from .mapping_repository import ShopifyMappingRepository, shopify_mapping_repository
from .shopify_service import (
    ShopifyPublisher,
    build_product_input,
    shopify_publisher,
    verify_webhook_signature,
)

__all__ = [
    "ShopifyMappingRepository",
    "ShopifyPublisher",
    "build_product_input",
    "shopify_mapping_repository",
    "shopify_publisher",
    "verify_webhook_signature",
]
