from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from storefront.models import Product, Review, WishlistItem
from storefront.repositories.base import BaseRepository


class ReviewRepository(BaseRepository[Review]):

    @property
    def model(self):
        return Review

    def find_by_user_and_product(self, user_id: int, product_id: int) -> Optional[Review]:
        with self.guard("SELECT"):
            return self.session.scalar(
                select(Review).where(Review.user_id == user_id, Review.product_id == product_id)
            )

    def list_approved(self, product_id: int, limit: int = 20) -> List[Review]:
        with self.guard("SELECT"):
            stmt = (
                select(Review)
                .options(selectinload(Review.user))
                .where(Review.product_id == product_id, Review.status == "approved")
                .order_by(Review.created_at.desc(), Review.id.desc())
                .limit(limit)
            )
            return list(self.session.scalars(stmt))

    def approved_ratings(self, product_id: int) -> List[int]:
        with self.guard("SELECT"):
            stmt = select(Review.rating).where(
                Review.product_id == product_id, Review.status == "approved"
            )
            return list(self.session.scalars(stmt))

    def search(self, search: Optional[str] = None, limit: int = 20, offset: int = 0) -> Tuple[List[Review], int]:
        criteria = []
        if search:
            criteria.append(func.lower(Review.content).like(f"%{search.lower()}%"))
        stmt = (
            select(Review)
            .options(selectinload(Review.user), selectinload(Review.product))
            .where(*criteria)
            .order_by(Review.created_at.desc(), Review.id.desc())
            .limit(limit)
            .offset(offset)
        )
        with self.guard("SELECT"):
            reviews = list(self.session.scalars(stmt))
        return reviews, self.count(*criteria)


class WishlistRepository(BaseRepository[WishlistItem]):

    @property
    def model(self):
        return WishlistItem

    def list_for_user(self, user_id: int) -> List[WishlistItem]:
        with self.guard("SELECT"):
            stmt = (
                select(WishlistItem)
                .options(selectinload(WishlistItem.product).selectinload(Product.variants))
                .where(WishlistItem.user_id == user_id)
                .order_by(WishlistItem.added_at.desc(), WishlistItem.id.desc())
            )
            return list(self.session.scalars(stmt))

    def product_ids_for_user(self, user_id: int) -> List[int]:
        with self.guard("SELECT"):
            stmt = (
                select(WishlistItem.product_id)
                .where(WishlistItem.user_id == user_id)
                .order_by(WishlistItem.added_at.desc(), WishlistItem.id.desc())
            )
            return list(self.session.scalars(stmt))

    def find(self, user_id: int, product_id: int) -> Optional[WishlistItem]:
        with self.guard("SELECT"):
            return self.session.scalar(
                select(WishlistItem).where(
                    WishlistItem.user_id == user_id, WishlistItem.product_id == product_id
                )
            )

    def count_for_user(self, user_id: int) -> int:
        return self.count(WishlistItem.user_id == user_id)
