from typing import Iterable, List, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import selectinload

from storefront.models import CartItem, Category, Product, ProductVariant, Review, WishlistItem
from storefront.repositories.base import BaseRepository

SORT_ORDERS = {
    "newest": (Product.created_at.desc(), Product.id.desc()),
    "price_asc": (Product.base_price.asc(), Product.id.asc()),
    "price_desc": (Product.base_price.desc(), Product.id.desc()),
}


class CategoryRepository(BaseRepository[Category]):

    @property
    def model(self):
        return Category

    def list_ordered(self) -> List[Category]:
        with self.guard("SELECT"):
            stmt = select(Category).order_by(Category.sort_order, Category.id)
            return list(self.session.scalars(stmt))

    def get_by_slug(self, slug: str) -> Optional[Category]:
        with self.guard("SELECT"):
            return self.session.scalar(select(Category).where(Category.slug == slug))

    def slug_exists(self, slug: str, exclude_id: Optional[int] = None) -> bool:
        stmt = select(Category.id).where(Category.slug == slug)
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        with self.guard("SELECT"):
            return self.session.scalar(stmt.limit(1)) is not None

    def children_of(self, parent_id: Optional[int]) -> List[Category]:
        stmt = select(Category).order_by(Category.sort_order, Category.id)
        if parent_id is None:
            stmt = stmt.where(Category.parent_id.is_(None))
        else:
            stmt = stmt.where(Category.parent_id == parent_id)
        with self.guard("SELECT"):
            return list(self.session.scalars(stmt))

    def count_children(self, parent_id: Optional[int]) -> int:
        if parent_id is None:
            return self.count(Category.parent_id.is_(None))
        return self.count(Category.parent_id == parent_id)

    def unlink_products(self, category_id: int) -> int:
        with self.guard("UPDATE"):
            result = self.session.execute(
                update(Product)
                .where(Product.category_id == category_id)
                .values(category_id=None)
                .execution_options(synchronize_session="fetch")
            )
            return result.rowcount


class ProductRepository(BaseRepository[Product]):
    """
    Repository for products

    Listing queries eager-load variants with selectinload so enrichment
    does not issue one query per product.
    """

    @property
    def model(self):
        return Product

    def get_by_slug(self, slug: str) -> Optional[Product]:
        with self.guard("SELECT"):
            stmt = select(Product).options(selectinload(Product.variants)).where(Product.slug == slug)
            return self.session.scalar(stmt)

    def get_many(self, product_ids: Iterable[int]) -> List[Product]:
        ids = list(set(product_ids))
        if not ids:
            return []
        with self.guard("SELECT"):
            stmt = select(Product).options(selectinload(Product.variants)).where(Product.id.in_(ids))
            return list(self.session.scalars(stmt))

    def slug_exists(self, slug: str, exclude_id: Optional[int] = None) -> bool:
        stmt = select(Product.id).where(Product.slug == slug)
        if exclude_id is not None:
            stmt = stmt.where(Product.id != exclude_id)
        with self.guard("SELECT"):
            return self.session.scalar(stmt.limit(1)) is not None

    def list_all_with_variants(self) -> List[Product]:
        with self.guard("SELECT"):
            stmt = (
                select(Product)
                .options(selectinload(Product.variants))
                .order_by(Product.created_at.desc(), Product.id.desc())
            )
            return list(self.session.scalars(stmt))

    def find_active(
        self,
        category_ids: Optional[Sequence[int]] = None,
        search: Optional[str] = None,
        min_price: Optional[int] = None,
        max_price: Optional[int] = None,
        sort_by: str = "newest",
    ) -> List[Product]:
        """
        Active products matching the column filters, in display order.

        Color and size filters live inside JSON option lists, so they are
        applied by the service on the returned rows.
        """
        stmt = select(Product).options(selectinload(Product.variants)).where(Product.status == "active")
        if category_ids is not None:
            stmt = stmt.where(Product.category_id.in_(list(category_ids)))
        if search:
            stmt = stmt.where(func.lower(Product.name).like(f"%{search.lower()}%"))
        if min_price is not None:
            stmt = stmt.where(Product.base_price >= min_price)
        if max_price is not None:
            stmt = stmt.where(Product.base_price <= max_price)
        stmt = stmt.order_by(*SORT_ORDERS.get(sort_by, SORT_ORDERS["newest"]))

        with self.guard("SELECT"):
            return list(self.session.scalars(stmt))

    def list_newest_active(self, limit: int) -> List[Product]:
        with self.guard("SELECT"):
            stmt = (
                select(Product)
                .options(selectinload(Product.variants))
                .where(Product.status == "active")
                .order_by(Product.created_at.desc(), Product.id.desc())
                .limit(limit)
            )
            return list(self.session.scalars(stmt))

    def list_featured(self, limit: int) -> List[Product]:
        with self.guard("SELECT"):
            stmt = (
                select(Product)
                .options(selectinload(Product.variants))
                .where(Product.status == "active", Product.is_featured.is_(True))
                .order_by(Product.created_at.desc(), Product.id.desc())
                .limit(limit)
            )
            return list(self.session.scalars(stmt))

    def rating_summary(self, product_ids: Iterable[int]) -> dict:
        """{product_id: (review_count, average_rating)} over approved reviews"""
        ids = list(set(product_ids))
        if not ids:
            return {}
        stmt = (
            select(Review.product_id, func.count(Review.id), func.avg(Review.rating))
            .where(Review.product_id.in_(ids), Review.status == "approved")
            .group_by(Review.product_id)
        )
        with self.guard("SELECT"):
            return {
                product_id: (count, float(avg or 0))
                for product_id, count, avg in self.session.execute(stmt)
            }

    def hard_delete(self, product: Product) -> None:
        """Delete the product with its variants and any cart or wishlist rows pointing at it"""
        with self.guard("DELETE"):
            self.session.execute(delete(CartItem).where(CartItem.product_id == product.id))
            self.session.execute(delete(WishlistItem).where(WishlistItem.product_id == product.id))
            self.session.delete(product)
            self.session.flush()


class VariantRepository(BaseRepository[ProductVariant]):

    @property
    def model(self):
        return ProductVariant

    def list_for_product(self, product_id: int) -> List[ProductVariant]:
        with self.guard("SELECT"):
            stmt = (
                select(ProductVariant)
                .where(ProductVariant.product_id == product_id)
                .order_by(ProductVariant.id)
            )
            return list(self.session.scalars(stmt))

    def get_by_sku(self, sku: str) -> Optional[ProductVariant]:
        with self.guard("SELECT"):
            return self.session.scalar(select(ProductVariant).where(ProductVariant.sku == sku))

    def get_many(self, variant_ids: Iterable[int]) -> List[ProductVariant]:
        ids = [v for v in set(variant_ids) if v is not None]
        if not ids:
            return []
        with self.guard("SELECT"):
            return list(self.session.scalars(select(ProductVariant).where(ProductVariant.id.in_(ids))))

    def clear_default(self, product_id: int, except_id: Optional[int] = None) -> int:
        stmt = update(ProductVariant).where(
            ProductVariant.product_id == product_id, ProductVariant.is_default.is_(True)
        )
        if except_id is not None:
            stmt = stmt.where(ProductVariant.id != except_id)
        with self.guard("UPDATE"):
            self.session.flush()
            result = self.session.execute(
                stmt.values(is_default=False).execution_options(synchronize_session="fetch")
            )
            return result.rowcount

    def delete_with_cart_rows(self, variant: ProductVariant) -> None:
        with self.guard("DELETE"):
            self.session.execute(delete(CartItem).where(CartItem.variant_id == variant.id))
            self.session.delete(variant)
            self.session.flush()
