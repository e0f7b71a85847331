from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Text, UniqueConstraint
from sqlalchemy import Boolean, ForeignKey
from sqlalchemy.orm import relationship

from storefront.db import Base, BigIntPK, JSONDoc


def _utcnow():
    return datetime.now(timezone.utc)


class Review(Base):
    """
    A product review. One per (user, product); the unique constraint backs
    up the read-before-write check in ReviewService.
    """

    __tablename__ = "reviews"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    product_id = Column(
        BigIntPK, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(BigIntPK, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    rating = Column(Integer, nullable=False)
    title = Column(Text, nullable=True)
    content = Column(Text, nullable=False)
    images = Column(JSONDoc, nullable=True)
    is_verified_purchase = Column(Boolean, nullable=False, default=False)
    helpful_count = Column(Integer, nullable=False, default=0)
    status = Column(Text, nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_review_user_product"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_review_rating"),
        CheckConstraint(
            "status IN ('pending','approved','rejected')", name="ck_review_status"
        ),
    )

    user = relationship("User")
    product = relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "user_id": self.user_id,
            "rating": self.rating,
            "title": self.title,
            "content": self.content,
            "images": self.images or [],
            "is_verified_purchase": self.is_verified_purchase,
            "helpful_count": self.helpful_count,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Review id={self.id} product_id={self.product_id} rating={self.rating}>"


class WishlistItem(Base):
    __tablename__ = "wishlist_items"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(
        BigIntPK, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = Column(
        BigIntPK, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    added_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_wishlist_user_product"),
    )

    product = relationship("Product")

    def __repr__(self) -> str:
        return f"<WishlistItem user_id={self.user_id} product_id={self.product_id}>"
