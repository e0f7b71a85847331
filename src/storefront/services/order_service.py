import logging
from datetime import datetime
from typing import Any, Dict, Optional

from storefront.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from storefront.domain.order import OrderStatus, generate_order_number
from storefront.models import Order, OrderItem, User
from storefront.repositories.order_repository import OrderRepository

logger = logging.getLogger(__name__)


def customer_summary(user: Optional[User]) -> Dict[str, Any]:
    if user is None:
        return {"name": "Unknown", "email": "N/A", "avatar": None, "phone": None}
    name = " ".join(part for part in (user.first_name, user.last_name) if part)
    return {
        "name": name or "Unknown",
        "email": user.email,
        "avatar": user.avatar_url,
        "phone": user.phone,
    }


class OrderService:
    """
    Order reads and back-office order management

    Business Rules:
    - Customers see only their own orders; admins see every order
    - Totals are snapshotted when the order is placed
    - Manually placed orders get an ORD-<timestamp>-<random> number
    """

    def __init__(self, session):
        self.repo = OrderRepository(session)

    def list_for_user(self, user_id: int, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        page = max(page, 1)
        orders, total = self.repo.list_for_user(user_id, limit=limit, offset=(page - 1) * limit)
        return {
            "orders": [order.to_dict() for order in orders],
            "total": total,
            "page": page,
            "limit": limit,
            "has_more": page * limit < total,
        }

    def get_for_viewer(self, order_id: int, viewer: User) -> Order:
        """The order with items and shipping address, for its owner or an admin"""
        order = self.repo.get_with_details(order_id)
        if order is None:
            raise NotFoundError("Order", str(order_id), message="Order not found")
        if order.user_id != viewer.id and not viewer.is_admin:
            raise ForbiddenError()
        return order

    def get_status_by_order_number(self, order_number: str) -> Optional[Dict[str, Any]]:
        """Lookup used by the checkout success page, keyed by the Stripe session id"""
        order = self.repo.get_by_order_number(order_number)
        if order is None:
            return None
        return {"id": order.id, "status": order.status, "total": order.total}

    # ---------------------------------------------------------------- admin

    def search(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        if status and status not in OrderStatus.values():
            raise ValidationError(f"Unknown order status: {status}")

        page = max(page, 1)
        orders, total = self.repo.search(
            status=status,
            search=search.strip() if search else None,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return {
            "orders": [
                {**order.to_dict(include_address=True), "customer": customer_summary(order.user)}
                for order in orders
            ],
            "total": total,
            "page": page,
            "limit": limit,
            "has_more": page * limit < total,
        }

    def stats(self) -> Dict[str, int]:
        counts = self.repo.status_counts()
        stats = {status: counts.get(status, 0) for status in OrderStatus.values()}
        stats["total_orders"] = sum(counts.values())
        stats["total_revenue"] = self.repo.total_revenue()
        return stats

    def update_status(self, order_id: int, status: str, tracking_number: Optional[str] = None) -> Order:
        if status not in OrderStatus.values():
            raise ValidationError(f"Unknown order status: {status}")

        order = self.repo.get_or_404(order_id, message="Order not found")
        previous = order.status
        order.status = status
        if tracking_number:
            order.tracking_number = tracking_number
        self.repo.flush()
        self.repo.commit()
        logger.info(f"Order {order_id} status {previous} -> {status}")
        return order

    def delete(self, order_id: int) -> bool:
        order = self.repo.get_by_id(order_id)
        if order is None:
            return False
        self.repo.delete(order)
        self.repo.commit()
        logger.info(f"Deleted order {order_id}")
        return True

    def create_manual(self, data: Dict[str, Any]) -> Order:
        """
        Place an order on a customer's behalf (admin)

        Items carry their own snapshot price; subtotal is derived from them
        and total = subtotal + tax + shipping.
        """
        items = data["items"]
        if not items:
            raise ValidationError("An order needs at least one item")

        subtotal = sum(item["price"] * item["quantity"] for item in items)
        tax = data.get("tax", 0)
        shipping = data.get("shipping", 0)

        order = Order(
            user_id=data["user_id"],
            order_number=generate_order_number(),
            status=OrderStatus.PENDING.value,
            subtotal=subtotal,
            tax=tax,
            shipping=shipping,
            total=subtotal + tax + shipping,
            shipping_address_id=data.get("shipping_address_id"),
            payment_method=data.get("payment_method"),
            items=[
                OrderItem(
                    product_id=item["product_id"],
                    variant_id=item.get("variant_id"),
                    name=item["name"],
                    sku=item.get("sku"),
                    quantity=item["quantity"],
                    price=item["price"],
                    image=item.get("image"),
                )
                for item in items
            ],
        )
        self.repo.add(order)
        self.repo.commit()
        logger.info(f"Created manual order {order.order_number} for user {order.user_id}")
        return order

    @staticmethod
    def items_by_product(order: Optional[Order]) -> Dict[str, OrderItem]:
        if order is None:
            return {}
        return {str(item.product_id): item for item in order.items}
