from typing import Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import selectinload

from storefront.domain.cart import LineKey
from storefront.models import CartItem, Product
from storefront.repositories.base import BaseRepository


class CartRepository(BaseRepository[CartItem]):
    """Repository for the authenticated, server-side cart"""

    @property
    def model(self):
        return CartItem

    def list_for_user(self, user_id: int) -> List[CartItem]:
        """
        User's cart rows, oldest first, with product and variant loaded
        for enrichment.
        """
        with self.guard("SELECT"):
            stmt = (
                select(CartItem)
                .options(
                    selectinload(CartItem.product).selectinload(Product.variants),
                    selectinload(CartItem.variant),
                )
                .where(CartItem.user_id == user_id)
                .order_by(CartItem.created_at, CartItem.id)
            )
            return list(self.session.scalars(stmt))

    def quantities_for_user(self, user_id: int) -> Dict[LineKey, int]:
        """Snapshot of the cart as an ordered {LineKey: quantity} map"""
        with self.guard("SELECT"):
            stmt = (
                select(CartItem.product_id, CartItem.variant_id, CartItem.quantity)
                .where(CartItem.user_id == user_id)
                .order_by(CartItem.created_at, CartItem.id)
            )
            return {
                LineKey(product_id, variant_id): quantity
                for product_id, variant_id, quantity in self.session.execute(stmt)
            }

    def find_line(self, user_id: int, key: LineKey) -> Optional[CartItem]:
        """The row for a (product, variant) pair; variant NULL matches only NULL"""
        stmt = select(CartItem).where(
            CartItem.user_id == user_id, CartItem.product_id == key.product_id
        )
        if key.variant_id is None:
            stmt = stmt.where(CartItem.variant_id.is_(None))
        else:
            stmt = stmt.where(CartItem.variant_id == key.variant_id)
        with self.guard("SELECT"):
            return self.session.scalar(stmt)

    def get_for_user(self, user_id: int, item_id: int) -> Optional[CartItem]:
        with self.guard("SELECT"):
            return self.session.scalar(
                select(CartItem).where(CartItem.id == item_id, CartItem.user_id == user_id)
            )

    def increment_or_insert(self, user_id: int, key: LineKey, delta: int) -> CartItem:
        """
        Add delta to the existing row for the pair, or insert one.

        Reads the row fresh so a concurrent change since the caller's
        snapshot is summed into rather than overwritten.
        """
        existing = self.find_line(user_id, key)
        if existing is not None:
            with self.guard("UPDATE"):
                existing.quantity += delta
                self.session.flush()
                return existing
        return self.add(CartItem(
            user_id=user_id,
            product_id=key.product_id,
            variant_id=key.variant_id,
            quantity=delta,
        ))

    def clear_for_user(self, user_id: int) -> int:
        with self.guard("DELETE"):
            result = self.session.execute(
                delete(CartItem)
                .where(CartItem.user_id == user_id)
                .execution_options(synchronize_session="fetch")
            )
            return result.rowcount
