import logging
import math
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta

from storefront.core.exceptions import ValidationError
from storefront.domain.order import OrderStatus
from storefront.domain.pricing import round_cents
from storefront.models import Order
from storefront.repositories.catalog_repository import ProductRepository
from storefront.repositories.order_repository import OrderRepository
from storefront.repositories.user_repository import UserRepository
from storefront.services.catalog_service import LOW_STOCK_LEVEL
from storefront.utils.date_utils import DateUtils

logger = logging.getLogger(__name__)

ANALYTICS_RANGES = {"daily": 1, "weekly": 7, "monthly": 30}
EXCLUDED_FROM_REVENUE = (OrderStatus.CANCELLED.value, OrderStatus.RETURNED.value)


def percent_change(current: int, previous: int) -> int:
    """
    Whole-percent change from previous to current, rounded half up.

    A zero baseline reports 100 when anything happened since, else 0.
    """
    if previous == 0:
        return 100 if current > 0 else 0
    return math.floor((current - previous) * 100 / previous + 0.5)


def counts_toward_revenue(order: Order) -> bool:
    return order.status not in EXCLUDED_FROM_REVENUE


def customer_name(order: Order) -> str:
    user = order.user
    if user is None:
        return "Unknown"
    name = f"{user.first_name or ''} {user.last_name or ''}".strip()
    return name or user.email


class DashboardService:
    """
    Back-office dashboard figures

    Business Rules:
    - Money is reported in cents, like every other endpoint
    - Month-over-month changes compare the current calendar month (UTC)
      with the previous one
    - Sales charts and analytics leave out cancelled and returned orders
    """

    def __init__(self, session):
        self.order_repo = OrderRepository(session)
        self.user_repo = UserRepository(session)
        self.product_repo = ProductRepository(session)

    def stats(self, now: Optional[datetime] = None) -> Dict[str, int]:
        now = DateUtils.ensure_utc(now or DateUtils.now_utc())
        current_start = DateUtils.start_of_month(now)
        previous_start = current_start - relativedelta(months=1)
        next_start = current_start + relativedelta(months=1)

        current_orders, current_revenue = self.order_repo.count_and_revenue(current_start, next_start)
        previous_orders, previous_revenue = self.order_repo.count_and_revenue(previous_start, current_start)
        current_users = self.user_repo.count_customers_since(current_start, next_start)
        previous_users = self.user_repo.count_customers_since(previous_start, current_start)

        return {
            "total_revenue": self.order_repo.total_revenue(),
            "total_orders": self.order_repo.count(),
            "total_users": self.user_repo.count_customers(),
            "revenue_change": percent_change(current_revenue, previous_revenue),
            "orders_change": percent_change(current_orders, previous_orders),
            "users_change": percent_change(current_users, previous_users),
        }

    def recent_orders(self, limit: int = 5) -> List[Dict[str, Any]]:
        return [
            {
                "id": order.id,
                "order_number": order.order_number,
                "customer": customer_name(order),
                "status": order.status,
                "total": order.total,
            }
            for order in self.order_repo.list_recent(limit)
        ]

    def low_stock_products(self, limit: int = 5) -> List[Dict[str, Any]]:
        """Active products with some stock left but under the low-stock level, lowest first"""
        items = []
        for product in self.product_repo.find_active():
            stock_left = sum(v.stock_count for v in product.variants)
            if 0 < stock_left < LOW_STOCK_LEVEL:
                items.append({
                    "id": product.id,
                    "name": product.name,
                    "slug": product.slug,
                    "stock_left": stock_left,
                    "image": product.featured_image or product.main_image_url or "",
                })
        items.sort(key=lambda item: (item["stock_left"], item["id"]))
        return items[:limit]

    def sales_chart(self, days: int = 30, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Daily revenue for the last `days` days (UTC dates), zero-filled"""
        if days < 1:
            raise ValidationError("days must be at least 1")
        now = DateUtils.ensure_utc(now or DateUtils.now_utc())
        buckets = self._day_buckets(now, days)

        for order in self.order_repo.list_created_since(now - timedelta(days=days)):
            if not counts_toward_revenue(order):
                continue
            key = DateUtils.ensure_utc(order.created_at).date().isoformat()
            if key in buckets:
                buckets[key] += order.total

        return [{"date": day, "revenue": revenue} for day, revenue in buckets.items()]

    def status_distribution(self) -> List[Dict[str, Any]]:
        counts = self.order_repo.status_counts()
        return [
            {"status": status, "count": counts[status]}
            for status in OrderStatus.values()
            if counts.get(status, 0) > 0
        ]

    def analytics(self, period: str = "monthly", now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        KPIs for a trailing period compared with the period before it

        daily covers the last 24 hours charted by hour; weekly and monthly
        cover 7 and 30 days charted by day. Conversion rate is distinct
        buyers over all customers, in percent.
        """
        if period not in ANALYTICS_RANGES:
            raise ValidationError(f"Unknown analytics range: {period}")
        now = DateUtils.ensure_utc(now or DateUtils.now_utc())
        span = timedelta(days=ANALYTICS_RANGES[period])
        start = now - span
        previous_start = start - span

        orders = self.order_repo.list_created_since(previous_start)
        current = [o for o in orders if DateUtils.ensure_utc(o.created_at) >= start]
        previous = [o for o in orders if DateUtils.ensure_utc(o.created_at) < start]
        current_valid = [o for o in current if counts_toward_revenue(o)]
        previous_valid = [o for o in previous if counts_toward_revenue(o)]

        revenue = sum(o.total for o in current_valid)
        previous_revenue = sum(o.total for o in previous_valid)
        aov = self._average(revenue, len(current_valid))
        previous_aov = self._average(previous_revenue, len(previous_valid))

        customers = self.user_repo.count_customers()
        conversion = self._rate(len({o.user_id for o in current if o.user_id}), customers)
        previous_conversion = self._rate(len({o.user_id for o in previous if o.user_id}), customers)

        return {
            "range": period,
            "total_revenue": revenue,
            "revenue_change": percent_change(revenue, previous_revenue),
            "total_orders": len(current_valid),
            "aov": aov,
            "aov_change": percent_change(aov, previous_aov),
            "conversion_rate": conversion,
            "conversion_change": round(conversion - previous_conversion, 2),
            "top_products": self._top_products(current_valid),
            "category_data": self._category_revenue(current_valid),
            "region_data": self._region_revenue(current_valid),
            "chart_data": self._chart(current_valid, period, now),
        }

    # -------------------------------------------------------------- helpers

    @staticmethod
    def _day_buckets(now: datetime, days: int) -> Dict[str, int]:
        return {
            (now - timedelta(days=offset)).date().isoformat(): 0
            for offset in range(days - 1, -1, -1)
        }

    @staticmethod
    def _average(total: int, count: int) -> int:
        return round_cents(Decimal(total) / count) if count else 0

    @staticmethod
    def _rate(part: int, whole: int) -> float:
        return round(part * 100 / whole, 2) if whole else 0.0

    @staticmethod
    def _top_products(orders: List[Order], limit: int = 5) -> List[Dict[str, Any]]:
        stats: Dict[int, Dict[str, Any]] = {}
        for order in orders:
            for item in order.items:
                entry = stats.setdefault(
                    item.product_id,
                    {"id": item.product_id, "name": item.name, "image": item.image, "revenue": 0, "units": 0},
                )
                entry["revenue"] += item.price * item.quantity
                entry["units"] += item.quantity
        return sorted(stats.values(), key=lambda e: -e["revenue"])[:limit]

    def _category_revenue(self, orders: List[Order]) -> List[Dict[str, Any]]:
        items = [item for order in orders for item in order.items]
        products = {p.id: p for p in self.product_repo.get_many(item.product_id for item in items)}

        revenue: Dict[str, int] = defaultdict(int)
        for item in items:
            product = products.get(item.product_id)
            name = product.category.name if product is not None and product.category else "Uncategorized"
            revenue[name] += item.price * item.quantity
        return self._ranked(revenue)

    def _region_revenue(self, orders: List[Order]) -> List[Dict[str, Any]]:
        revenue: Dict[str, int] = defaultdict(int)
        for order in orders:
            country = order.shipping_address.country if order.shipping_address else "Unknown"
            revenue[country] += order.total
        return self._ranked(revenue)

    def _chart(self, orders: List[Order], period: str, now: datetime) -> List[Dict[str, Any]]:
        if period == "daily":
            # hourly points over the last 24 hours
            key_format = "%H:00"
            buckets = {
                (now - timedelta(hours=offset)).strftime(key_format): 0
                for offset in range(23, -1, -1)
            }
        else:
            key_format = "%Y-%m-%d"
            buckets = self._day_buckets(now, ANALYTICS_RANGES[period])

        for order in orders:
            key = DateUtils.ensure_utc(order.created_at).strftime(key_format)
            if key in buckets:
                buckets[key] += order.total
        return [{"date": key, "revenue": revenue} for key, revenue in buckets.items()]

    @staticmethod
    def _ranked(revenue: Dict[str, int]) -> List[Dict[str, Any]]:
        return [
            {"name": name, "value": value}
            for name, value in sorted(revenue.items(), key=lambda pair: -pair[1])
        ]
