import logging
from typing import Any, Dict, List

from storefront.repositories.catalog_repository import ProductRepository
from storefront.repositories.engagement_repository import WishlistRepository
from storefront.models import WishlistItem

logger = logging.getLogger(__name__)


class WishlistService:
    """
    Wishlist (one row per user and product)

    Business Rules:
    - Adding a product already on the list returns the existing entry
    - Entries whose product was deleted are left out of reads
    """

    def __init__(self, session):
        self.repo = WishlistRepository(session)
        self.products = ProductRepository(session)

    def get_wishlist(self, user_id: int) -> List[Dict[str, Any]]:
        items = []
        for entry in self.repo.list_for_user(user_id):
            product = entry.product
            if product is None:
                continue
            default = product.default_variant()
            items.append({
                "id": entry.id,
                "product_id": entry.product_id,
                "added_at": entry.added_at.isoformat() if entry.added_at else None,
                "product": {
                    **product.to_dict(),
                    "image": product.main_image_url or product.featured_image or "",
                    "default_variant_id": default.id if default is not None else None,
                },
            })
        return items

    def product_ids(self, user_id: int) -> List[int]:
        return self.repo.product_ids_for_user(user_id)

    def count(self, user_id: int) -> int:
        return self.repo.count_for_user(user_id)

    def contains(self, user_id: int, product_id: int) -> bool:
        return self.repo.find(user_id, product_id) is not None

    def add(self, user_id: int, product_id: int) -> int:
        existing = self.repo.find(user_id, product_id)
        if existing is not None:
            return existing.id

        self.products.get_or_404(product_id, message="Product not found")
        entry = self.repo.add(WishlistItem(user_id=user_id, product_id=product_id))
        self.repo.commit()
        logger.info(f"User {user_id} added product {product_id} to wishlist")
        return entry.id

    def remove(self, user_id: int, product_id: int) -> bool:
        entry = self.repo.find(user_id, product_id)
        if entry is None:
            return False
        self.repo.delete(entry)
        self.repo.commit()
        logger.info(f"User {user_id} removed product {product_id} from wishlist")
        return True

    def toggle(self, user_id: int, product_id: int) -> str:
        if self.remove(user_id, product_id):
            return "removed"
        self.add(user_id, product_id)
        return "added"
