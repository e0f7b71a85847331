from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from storefront.models import Order, OrderItem, ReturnRequest
from storefront.repositories.base import BaseRepository


class OrderRepository(BaseRepository[Order]):
    """Repository for orders and their line items"""

    @property
    def model(self):
        return Order

    def get_with_details(self, order_id: int) -> Optional[Order]:
        with self.guard("SELECT"):
            stmt = (
                select(Order)
                .options(
                    selectinload(Order.items),
                    selectinload(Order.shipping_address),
                    selectinload(Order.user),
                )
                .where(Order.id == order_id)
            )
            return self.session.scalar(stmt)

    def get_by_order_number(self, order_number: str) -> Optional[Order]:
        with self.guard("SELECT"):
            return self.session.scalar(select(Order).where(Order.order_number == order_number))

    def list_for_user(self, user_id: int, limit: int, offset: int = 0) -> Tuple[List[Order], int]:
        """Page of a user's orders, newest first, plus the user's order count"""
        with self.guard("SELECT"):
            stmt = (
                select(Order)
                .options(selectinload(Order.items))
                .where(Order.user_id == user_id)
                .order_by(Order.created_at.desc(), Order.id.desc())
                .limit(limit)
                .offset(offset)
            )
            orders = list(self.session.scalars(stmt))
        return orders, self.count(Order.user_id == user_id)

    def search(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Order], int]:
        """
        Admin order search.

        Filters combine with AND; search matches the order number
        case-insensitively. Returns the page and the filtered total.
        """
        criteria = []
        if status:
            criteria.append(Order.status == status)
        if search:
            criteria.append(func.lower(Order.order_number).like(f"%{search.lower()}%"))
        if start_date is not None:
            criteria.append(Order.created_at >= start_date)
        if end_date is not None:
            criteria.append(Order.created_at <= end_date)

        stmt = (
            select(Order)
            .options(
                selectinload(Order.items),
                selectinload(Order.shipping_address),
                selectinload(Order.user),
            )
            .where(*criteria)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
            .offset(offset)
        )
        with self.guard("SELECT"):
            orders = list(self.session.scalars(stmt))
        return orders, self.count(*criteria)

    def status_counts(self) -> Dict[str, int]:
        with self.guard("SELECT"):
            stmt = select(Order.status, func.count(Order.id)).group_by(Order.status)
            return {status: count for status, count in self.session.execute(stmt)}

    def total_revenue(self) -> int:
        with self.guard("SELECT"):
            return int(self.session.scalar(select(func.coalesce(func.sum(Order.total), 0))) or 0)

    def count_and_revenue(self, start: datetime, end: datetime) -> Tuple[int, int]:
        """(order count, summed totals) for orders created in [start, end)"""
        stmt = select(func.count(Order.id), func.coalesce(func.sum(Order.total), 0)).where(
            Order.created_at >= start, Order.created_at < end
        )
        with self.guard("SELECT"):
            count, revenue = self.session.execute(stmt).one()
        return int(count), int(revenue or 0)

    def list_recent(self, limit: int) -> List[Order]:
        with self.guard("SELECT"):
            stmt = (
                select(Order)
                .options(selectinload(Order.user))
                .order_by(Order.created_at.desc(), Order.id.desc())
                .limit(limit)
            )
            return list(self.session.scalars(stmt))

    def list_created_since(self, start: datetime) -> List[Order]:
        """Orders created at or after start, with items and shipping address, oldest first"""
        with self.guard("SELECT"):
            stmt = (
                select(Order)
                .options(selectinload(Order.items), selectinload(Order.shipping_address))
                .where(Order.created_at >= start)
                .order_by(Order.created_at, Order.id)
            )
            return list(self.session.scalars(stmt))

    def has_delivered_product(self, user_id: int, product_id: int) -> bool:
        """Whether the user has a delivered order containing the product"""
        stmt = (
            select(Order.id)
            .join(OrderItem, OrderItem.order_id == Order.id)
            .where(
                Order.user_id == user_id,
                Order.status == "delivered",
                OrderItem.product_id == product_id,
            )
            .limit(1)
        )
        with self.guard("SELECT"):
            return self.session.scalar(stmt) is not None


class ReturnRepository(BaseRepository[ReturnRequest]):

    @property
    def model(self):
        return ReturnRequest

    def get_with_order(self, return_id: int) -> Optional[ReturnRequest]:
        with self.guard("SELECT"):
            stmt = (
                select(ReturnRequest)
                .options(selectinload(ReturnRequest.order).selectinload(Order.items))
                .where(ReturnRequest.id == return_id)
            )
            return self.session.scalar(stmt)

    def list_for_user(self, user_id: int) -> List[ReturnRequest]:
        with self.guard("SELECT"):
            stmt = (
                select(ReturnRequest)
                .options(selectinload(ReturnRequest.order))
                .where(ReturnRequest.user_id == user_id)
                .order_by(ReturnRequest.created_at.desc(), ReturnRequest.id.desc())
            )
            return list(self.session.scalars(stmt))

    def list_filtered(self, status: Optional[str] = None, limit: int = 50) -> List[ReturnRequest]:
        stmt = (
            select(ReturnRequest)
            .options(selectinload(ReturnRequest.order))
            .order_by(ReturnRequest.created_at.desc(), ReturnRequest.id.desc())
            .limit(limit)
        )
        if status:
            stmt = stmt.where(ReturnRequest.status == status)
        with self.guard("SELECT"):
            return list(self.session.scalars(stmt))

    def status_counts(self) -> Dict[str, int]:
        with self.guard("SELECT"):
            stmt = select(ReturnRequest.status, func.count(ReturnRequest.id)).group_by(ReturnRequest.status)
            return {status: count for status, count in self.session.execute(stmt)}
