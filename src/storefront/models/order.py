from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Text
from sqlalchemy import ForeignKey
from sqlalchemy.orm import relationship

from storefront.db import Base, BigIntPK, JSONDoc


def _utcnow():
    return datetime.now(timezone.utc)


class Order(Base):
    """
    A placed purchase.

    status is constrained with a CHECK constraint rather than a Postgres
    ENUM type so adding a status is a plain ALTER TABLE.

    subtotal/tax/shipping/total are snapshotted in cents at placement time;
    later catalog price changes never alter a historical order.

    order_number is the Stripe Checkout session id for card orders, which
    makes fulfilment idempotent, or ORD-<base36 ts>-<rand> otherwise.
    """

    __tablename__ = "orders"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(BigIntPK, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    order_number = Column(Text, nullable=False, unique=True, index=True)
    status = Column(Text, nullable=False, default="pending")
    subtotal = Column(Integer, nullable=False)
    tax = Column(Integer, nullable=False, default=0)
    shipping = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False)
    shipping_address_id = Column(BigIntPK, ForeignKey("addresses.id", ondelete="SET NULL"), nullable=True)
    customer_email = Column(Text, nullable=True)
    payment_method = Column(Text, nullable=True)
    payment_intent_id = Column(Text, nullable=True)
    tracking_number = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','processing','shipped','delivered','cancelled','returned')",
            name="ck_order_status",
        ),
        CheckConstraint("total >= 0", name="ck_order_total"),
    )

    # cascade='all, delete-orphan' -> deleting an order removes its line items
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    shipping_address = relationship("Address")
    user = relationship("User")

    def to_dict(self, include_address: bool = False) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "order_number": self.order_number,
            "status": self.status,
            "items": [item.to_dict() for item in self.items],
            "subtotal": self.subtotal,
            "tax": self.tax,
            "shipping": self.shipping,
            "total": self.total,
            "shipping_address_id": self.shipping_address_id,
            "customer_email": self.customer_email,
            "payment_method": self.payment_method,
            "tracking_number": self.tracking_number,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_address:
            data["shipping_address"] = (
                self.shipping_address.to_dict() if self.shipping_address else None
            )
        return data

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status!r}>"


class OrderItem(Base):
    """
    A single line item within an order. name/sku/price/image are copied
    from the catalog when the order is placed.
    """

    __tablename__ = "order_items"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(
        BigIntPK, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = Column(BigIntPK, nullable=False)
    variant_id = Column(BigIntPK, nullable=True)
    name = Column(Text, nullable=False)
    sku = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False)
    image = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_item_price"),
        CheckConstraint("quantity > 0", name="ck_item_quantity"),
    )

    order = relationship("Order", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "name": self.name,
            "sku": self.sku,
            "quantity": self.quantity,
            "price": self.price,
            "image": self.image,
        }

    def __repr__(self) -> str:
        return f"<OrderItem id={self.id} product_id={self.product_id} qty={self.quantity}>"


class ReturnRequest(Base):
    """
    A customer's request to send back items from a delivered order.

    items is a JSON list of {"item_id", "quantity", "reason", "condition"}
    where item_id is the product id of the returned line.
    """

    __tablename__ = "return_requests"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(BigIntPK, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    order_id = Column(BigIntPK, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Text, nullable=False, default="pending")
    reason = Column(Text, nullable=False)
    items = Column(JSONDoc, nullable=False, default=list)
    refund_method = Column(Text, nullable=False)
    images = Column(JSONDoc, nullable=True)
    admin_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    refund_amount = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','approved','rejected','refunded','completed')",
            name="ck_return_status",
        ),
        CheckConstraint(
            "refund_method IN ('original_payment','store_credit','exchange')",
            name="ck_return_refund_method",
        ),
    )

    order = relationship("Order")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "status": self.status,
            "reason": self.reason,
            "items": self.items or [],
            "refund_method": self.refund_method,
            "images": self.images or [],
            "admin_notes": self.admin_notes,
            "rejection_reason": self.rejection_reason,
            "refund_amount": self.refund_amount,
            "submitted_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<ReturnRequest id={self.id} order_id={self.order_id} status={self.status!r}>"
