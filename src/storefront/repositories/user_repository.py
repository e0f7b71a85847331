from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, or_, select, update

from storefront.models import Address, CartItem, Order, User, WishlistItem
from storefront.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for user accounts, keyed by the auth provider's subject"""

    @property
    def model(self):
        return User

    def get_by_auth_subject(self, auth_subject: str) -> Optional[User]:
        with self.guard("SELECT"):
            return self.session.scalar(select(User).where(User.auth_subject == auth_subject))

    def list_customers_with_stats(
        self, search: Optional[str] = None, limit: int = 100
    ) -> List[Dict[str, Any]]:
        """
        Customers with their order totals, newest first.

        Aggregates in one LEFT JOIN so customers without orders are kept
        with zero counts.
        """
        stmt = (
            select(
                User,
                func.count(Order.id).label("total_orders"),
                func.coalesce(func.sum(Order.total), 0).label("total_spent"),
                func.max(Order.created_at).label("last_order_date"),
            )
            .outerjoin(Order, Order.user_id == User.id)
            .where(User.role == "customer")
            .group_by(User.id)
            .order_by(User.created_at.desc(), User.id.desc())
            .limit(limit)
        )
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(or_(
                func.lower(User.email).like(pattern),
                func.lower(func.coalesce(User.first_name, "")).like(pattern),
                func.lower(func.coalesce(User.last_name, "")).like(pattern),
            ))

        with self.guard("SELECT"):
            rows = self.session.execute(stmt).all()

        return [
            {
                "user": row[0],
                "total_orders": row.total_orders,
                "total_spent": int(row.total_spent or 0),
                "last_order_date": row.last_order_date,
            }
            for row in rows
        ]

    def count_customers(self) -> int:
        return self.count(User.role == "customer")

    def count_customers_since(self, since: datetime, until: Optional[datetime] = None) -> int:
        criteria = [User.role == "customer", User.created_at >= since]
        if until is not None:
            criteria.append(User.created_at < until)
        return self.count(*criteria)

    def delete_with_dependents(self, user: User) -> None:
        """Remove addresses, wishlist and cart rows, detach orders, then delete the user row"""
        with self.guard("DELETE"):
            self.session.execute(delete(Address).where(Address.user_id == user.id))
            self.session.execute(delete(WishlistItem).where(WishlistItem.user_id == user.id))
            self.session.execute(delete(CartItem).where(CartItem.user_id == user.id))
            self.session.execute(
                update(Order).where(Order.user_id == user.id).values(user_id=None)
                .execution_options(synchronize_session="fetch")
            )
            self.session.delete(user)
            self.session.flush()


class AddressRepository(BaseRepository[Address]):
    """Repository for saved postal addresses"""

    @property
    def model(self):
        return Address

    def list_for_user(self, user_id: int) -> List[Address]:
        with self.guard("SELECT"):
            stmt = (
                select(Address)
                .where(Address.user_id == user_id)
                .order_by(Address.is_default.desc(), Address.id)
            )
            return list(self.session.scalars(stmt))

    def clear_default(self, user_id: int, except_id: Optional[int] = None) -> int:
        """Unset is_default on every address of the user (optionally sparing one)"""
        stmt = update(Address).where(Address.user_id == user_id, Address.is_default.is_(True))
        if except_id is not None:
            stmt = stmt.where(Address.id != except_id)
        with self.guard("UPDATE"):
            self.session.flush()
            result = self.session.execute(
                stmt.values(is_default=False).execution_options(synchronize_session="fetch")
            )
            return result.rowcount
