from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, Integer
from sqlalchemy import ForeignKey
from sqlalchemy.orm import relationship

from storefront.db import Base, BigIntPK


class CartItem(Base):
    """
    One line of an authenticated user's server-side cart.

    A line is identified by (user_id, product_id, variant_id); variant_id
    is NULL for products sold without variants. The service layer merges by
    summing into an existing row instead of inserting a duplicate, and
    quantity must stay > 0 -- removing a line means deleting the row.
    """

    __tablename__ = "cart_items"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(
        BigIntPK, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = Column(
        BigIntPK, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    variant_id = Column(
        BigIntPK, ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True
    )
    quantity = Column(Integer, nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_cart_item_quantity"),
    )

    product = relationship("Product")
    variant = relationship("ProductVariant")

    def __repr__(self) -> str:
        return (
            f"<CartItem id={self.id} product_id={self.product_id} "
            f"variant_id={self.variant_id} qty={self.quantity}>"
        )
