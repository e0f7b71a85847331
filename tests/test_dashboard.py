from datetime import datetime, timedelta, timezone

import pytest

from storefront.core.exceptions import ValidationError
from storefront.models import Category
from storefront.services.dashboard_service import DashboardService, percent_change

DASHBOARD_URL = "/api/v1/dashboard"

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def at(month, day, hour=10):
    return datetime(2026, month, day, hour, 0, tzinfo=timezone.utc)


@pytest.fixture
def place_order(db_session, make_order):
    """make_order with a chosen creation time and optional shipping address"""
    def _place_order(user, product, created_at, address=None, **fields):
        order = make_order(user, product, **fields)
        order.created_at = created_at
        if address is not None:
            order.shipping_address_id = address.id
        db_session.commit()
        return order
    return _place_order


@pytest.fixture
def service(db_session):
    return DashboardService(db_session)


class TestPercentChange:

    @pytest.mark.parametrize("current, previous, expected", [
        (0, 0, 0),
        (5, 0, 100),
        (3, 2, 50),
        (3, 4, -25),
        (1, 3, -67),
        (150, 100, 50),
    ])
    def test_change(self, current, previous, expected):
        assert percent_change(current, previous) == expected


class TestDashboardStats:

    def test_month_over_month(self, service, make_user, make_product, place_order):
        # Arrange
        march_a = make_user(created_at=at(3, 2))
        march_b = make_user(created_at=at(3, 10))
        february = make_user(created_at=at(2, 20))
        product = make_product(base_price=1000)
        place_order(march_a, product, at(3, 5))
        place_order(march_b, product, at(3, 6), quantity=2)
        place_order(february, product, at(2, 10))

        # Act
        stats = service.stats(now=NOW)

        # Assert
        assert stats == {
            "total_revenue": 4000,
            "total_orders": 3,
            "total_users": 3,
            "revenue_change": 200,
            "orders_change": 100,
            "users_change": 100,
        }

    def test_empty_store_reports_no_change(self, service):
        stats = service.stats(now=NOW)

        assert stats["total_revenue"] == 0
        assert stats["revenue_change"] == 0
        assert stats["orders_change"] == 0
        assert stats["users_change"] == 0

    def test_admins_are_not_counted_as_users(self, service, admin, make_user):
        make_user(created_at=at(3, 1))

        assert service.stats(now=NOW)["total_users"] == 1


class TestRecentOrders:

    def test_newest_first_capped_at_five(self, service, customer, make_product, place_order):
        product = make_product()
        orders = [place_order(customer, product, at(3, day)) for day in range(1, 7)]

        recent = service.recent_orders()

        assert [row["id"] for row in recent] == [o.id for o in reversed(orders)][:5]
        assert recent[0]["customer"] == f"Test {customer.last_name}"
        assert recent[0]["total"] == product.base_price

    def test_customer_name_fallbacks(self, db_session, service, make_user, make_product, place_order):
        nameless = make_user(first_name=None, last_name=None, email="quiet@example.com")
        product = make_product()
        place_order(nameless, product, at(3, 1))
        orphan = place_order(nameless, product, at(3, 2))
        orphan.user_id = None
        db_session.commit()

        recent = service.recent_orders()

        assert [row["customer"] for row in recent] == ["Unknown", "quiet@example.com"]


class TestLowStockProducts:

    def test_only_active_products_with_a_little_stock(self, service, make_product):
        three = make_product(variants=[{"stock_count": 3}])
        make_product(variants=[{"stock_count": 0}])
        make_product(variants=[{"stock_count": 12}])
        eight = make_product(variants=[{"stock_count": 4}, {"stock_count": 4}])
        make_product(variants=[{"stock_count": 2}], status="draft")
        nine = make_product(variants=[{"stock_count": 9}])

        low = service.low_stock_products()

        assert [item["id"] for item in low] == [three.id, eight.id, nine.id]
        assert [item["stock_left"] for item in low] == [3, 8, 9]
        assert low[0]["image"] == three.main_image_url

    def test_capped_at_five_lowest_first(self, service, make_product):
        for stock in (9, 8, 7, 6, 5, 1):
            make_product(variants=[{"stock_count": stock}])

        low = service.low_stock_products()

        assert [item["stock_left"] for item in low] == [1, 5, 6, 7, 8]


class TestSalesChart:

    def test_daily_buckets_skip_cancelled_orders(self, service, customer, make_product, place_order):
        product = make_product(base_price=1000)
        place_order(customer, product, at(3, 15))
        place_order(customer, product, at(3, 14), quantity=2)
        place_order(customer, product, at(3, 14), quantity=5, status="cancelled")
        place_order(customer, product, at(3, 10))

        chart = service.sales_chart(days=3, now=NOW)

        assert chart == [
            {"date": "2026-03-13", "revenue": 0},
            {"date": "2026-03-14", "revenue": 2000},
            {"date": "2026-03-15", "revenue": 1000},
        ]

    def test_days_must_be_positive(self, service):
        with pytest.raises(ValidationError):
            service.sales_chart(days=0, now=NOW)


class TestStatusDistribution:

    def test_only_statuses_with_orders_in_lifecycle_order(self, service, customer, make_product, make_order):
        product = make_product()
        make_order(customer, product, status="delivered")
        make_order(customer, product, status="pending")
        make_order(customer, product, status="pending")

        assert service.status_distribution() == [
            {"status": "pending", "count": 2},
            {"status": "delivered", "count": 1},
        ]


class TestAnalytics:

    @pytest.fixture
    def week_of_orders(self, db_session, make_user, make_product, make_address, place_order):
        bags = Category(name="Bags", slug="bags", sort_order=0)
        db_session.add(bags)
        db_session.commit()

        first, second = make_user(), make_user()
        make_user()
        tote = make_product(name="Tote", base_price=1500, category_id=bags.id)
        scarf = make_product(name="Scarf", base_price=1000)
        address = make_address(first, country="US")

        place_order(first, tote, at(3, 14), address=address, quantity=2)
        place_order(second, scarf, at(3, 13))
        place_order(second, scarf, at(3, 12), quantity=5, status="cancelled")
        place_order(first, scarf, at(3, 5))
        return {"tote": tote, "scarf": scarf}

    def test_weekly_kpis(self, service, week_of_orders):
        report = service.analytics("weekly", now=NOW)

        assert report["total_revenue"] == 4000
        assert report["revenue_change"] == 300
        assert report["total_orders"] == 2
        assert report["aov"] == 2000
        assert report["aov_change"] == 100
        assert report["conversion_rate"] == 66.67
        assert report["conversion_change"] == 33.34

    def test_weekly_breakdowns(self, service, week_of_orders):
        tote, scarf = week_of_orders["tote"], week_of_orders["scarf"]

        report = service.analytics("weekly", now=NOW)

        assert [(p["id"], p["revenue"], p["units"]) for p in report["top_products"]] == [
            (tote.id, 3000, 2),
            (scarf.id, 1000, 1),
        ]
        assert report["category_data"] == [
            {"name": "Bags", "value": 3000},
            {"name": "Uncategorized", "value": 1000},
        ]
        assert report["region_data"] == [
            {"name": "US", "value": 3000},
            {"name": "Unknown", "value": 1000},
        ]
        assert len(report["chart_data"]) == 7
        assert report["chart_data"][-2] == {"date": "2026-03-14", "revenue": 3000}

    def test_daily_range_charts_by_hour(self, service):
        report = service.analytics("daily", now=NOW)

        assert len(report["chart_data"]) == 24
        assert report["chart_data"][-1]["date"] == "12:00"

    def test_unknown_range(self, service):
        with pytest.raises(ValidationError):
            service.analytics("yearly", now=NOW)


class TestDashboardAPI:

    @pytest.mark.parametrize("path", [
        "/stats", "/recent-orders", "/low-stock", "/sales", "/status-distribution", "/analytics",
    ])
    def test_admin_endpoints(self, client, admin, auth_headers, path):
        response = client.get(f"{DASHBOARD_URL}{path}", headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.get_json()["success"] is True

    def test_sales_window_follows_days(self, client, admin, auth_headers):
        response = client.get(f"{DASHBOARD_URL}/sales?days=7", headers=auth_headers(admin))

        chart = response.get_json()["data"]
        assert len(chart) == 7
        assert chart[-1]["date"] == datetime.now(timezone.utc).date().isoformat()

    def test_invalid_arguments_are_400(self, client, admin, auth_headers):
        headers = auth_headers(admin)

        assert client.get(f"{DASHBOARD_URL}/sales?days=0", headers=headers).status_code == 400
        assert client.get(f"{DASHBOARD_URL}/analytics?range=yearly", headers=headers).status_code == 400

    def test_customers_are_forbidden(self, client, customer, auth_headers):
        assert client.get(f"{DASHBOARD_URL}/stats", headers=auth_headers(customer)).status_code == 403

    def test_anonymous_is_401(self, client):
        assert client.get(f"{DASHBOARD_URL}/stats").status_code == 401
