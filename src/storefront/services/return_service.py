import logging
from typing import Any, Dict, List, Optional

from storefront.core.exceptions import BusinessLogicError, ForbiddenError, NotFoundError, ValidationError
from storefront.domain.order import OrderStatus, RefundMethod, ReturnStatus
from storefront.models import ReturnRequest, User
from storefront.repositories.order_repository import OrderRepository, ReturnRepository
from storefront.services.order_service import OrderService, customer_summary

logger = logging.getLogger(__name__)

ADMIN_STATUSES = (
    ReturnStatus.APPROVED.value,
    ReturnStatus.REJECTED.value,
    ReturnStatus.REFUNDED.value,
    ReturnStatus.COMPLETED.value,
)


def _items_with_details(return_request: ReturnRequest) -> List[Dict[str, Any]]:
    """Return items joined to the order lines they refer to (item_id is the product id)"""
    order_items = OrderService.items_by_product(return_request.order)
    detailed = []
    for item in return_request.items or []:
        order_item = order_items.get(str(item.get("item_id")))
        detailed.append({
            **item,
            "name": order_item.name if order_item is not None else "Unknown Item",
            "image": (order_item.image or "") if order_item is not None else "",
            "price": order_item.price if order_item is not None else 0,
        })
    return detailed


class ReturnService:
    """
    Return requests

    Business Rules:
    - Only the order's owner can request a return, and only once it is delivered
    - Every request starts as pending
    - Admins move requests to approved, rejected, refunded or completed
    """

    def __init__(self, session):
        self.repo = ReturnRepository(session)
        self.orders = OrderRepository(session)

    def request_return(self, user: User, data: Dict[str, Any]) -> ReturnRequest:
        order = self.orders.get_or_404(data["order_id"], message="Order not found")
        if order.user_id != user.id:
            raise ForbiddenError("Unauthorized access to order")
        if order.status != OrderStatus.DELIVERED.value:
            raise BusinessLogicError("Order must be delivered before it can be returned", rule="return_requires_delivery")
        if data["refund_method"] not in RefundMethod.values():
            raise ValidationError(f"Unknown refund method: {data['refund_method']}")
        if not data.get("items"):
            raise ValidationError("Select at least one item to return")

        return_request = self.repo.add(ReturnRequest(
            order_id=order.id,
            user_id=user.id,
            status=ReturnStatus.PENDING.value,
            reason=data["reason"],
            items=[
                {
                    "item_id": str(item["item_id"]),
                    "quantity": item["quantity"],
                    "reason": item["reason"],
                    "condition": item.get("condition"),
                }
                for item in data["items"]
            ],
            refund_method=data["refund_method"],
            images=data.get("images"),
        ))
        self.repo.commit()
        logger.info(f"User {user.id} requested return {return_request.id} for order {order.id}")
        return return_request

    def list_for_user(self, user_id: int) -> List[Dict[str, Any]]:
        return [
            {
                **r.to_dict(),
                "items": _items_with_details(r),
                "order_number": r.order.order_number if r.order is not None else None,
                "order_date": r.order.created_at.isoformat() if r.order is not None else None,
            }
            for r in self.repo.list_for_user(user_id)
        ]

    def get_for_viewer(self, return_id: int, viewer: User) -> Dict[str, Any]:
        return_request = self.repo.get_with_order(return_id)
        if return_request is None:
            raise NotFoundError("Return request", str(return_id), message="Return request not found")
        if return_request.user_id != viewer.id and not viewer.is_admin:
            raise ForbiddenError()

        order = return_request.order
        return {
            **return_request.to_dict(),
            "items": _items_with_details(return_request),
            "order_number": order.order_number if order is not None else None,
            "order_date": order.created_at.isoformat() if order is not None else None,
            "order_total": order.total if order is not None else None,
        }

    # ---------------------------------------------------------------- admin

    def list_all(self, status: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        if status == "all":
            status = None
        results = []
        for r in self.repo.list_filtered(status=status, limit=limit):
            customer = customer_summary(r.order.user if r.order is not None else None)
            results.append({
                **r.to_dict(),
                "items": _items_with_details(r),
                "user_name": customer["name"],
                "user_email": customer["email"],
                "order_number": r.order.order_number if r.order is not None else None,
            })
        return results

    def update_status(
        self,
        return_id: int,
        status: str,
        admin_notes: Optional[str] = None,
        rejection_reason: Optional[str] = None,
        refund_amount: Optional[int] = None,
    ) -> ReturnRequest:
        if status not in ADMIN_STATUSES:
            raise ValidationError(f"Status must be one of: {', '.join(ADMIN_STATUSES)}")

        return_request = self.repo.get_or_404(return_id, message="Return request not found")
        return_request.status = status
        if admin_notes:
            return_request.admin_notes = admin_notes
        if rejection_reason:
            return_request.rejection_reason = rejection_reason
        if refund_amount:
            return_request.refund_amount = refund_amount

        self.repo.flush()
        self.repo.commit()
        logger.info(f"Return {return_id} moved to {status}")
        return return_request

    def stats(self) -> Dict[str, int]:
        counts = self.repo.status_counts()
        return {
            "pending": counts.get(ReturnStatus.PENDING.value, 0),
            "approved": counts.get(ReturnStatus.APPROVED.value, 0),
            "completed": counts.get(ReturnStatus.COMPLETED.value, 0),
            "total": sum(counts.values()),
        }
