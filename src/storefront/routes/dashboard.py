from flask import Blueprint, request

from storefront.core.auth import require_admin
from storefront.routes.utils import get_db, parse_int, success_response
from storefront.services.dashboard_service import DashboardService

dashboard_bp = Blueprint("dashboard", __name__)


@dashboard_bp.route("/stats", methods=["GET"])
def dashboard_stats():
    """All-time totals with month-over-month change for revenue, orders and new customers."""
    db = get_db()
    require_admin(db)
    return success_response(DashboardService(db).stats())


@dashboard_bp.route("/recent-orders", methods=["GET"])
def recent_orders():
    db = get_db()
    require_admin(db)
    limit = parse_int(request.args.get("limit"), default=5, min_val=1, max_val=50, field_name="limit")
    return success_response(DashboardService(db).recent_orders(limit=limit))


@dashboard_bp.route("/low-stock", methods=["GET"])
def low_stock_products():
    db = get_db()
    require_admin(db)
    return success_response(DashboardService(db).low_stock_products())


@dashboard_bp.route("/sales", methods=["GET"])
def sales_chart():
    db = get_db()
    require_admin(db)
    days = parse_int(request.args.get("days"), default=30, min_val=1, max_val=365, field_name="days")
    return success_response(DashboardService(db).sales_chart(days=days))


@dashboard_bp.route("/status-distribution", methods=["GET"])
def status_distribution():
    db = get_db()
    require_admin(db)
    return success_response(DashboardService(db).status_distribution())


@dashboard_bp.route("/analytics", methods=["GET"])
def analytics():
    db = get_db()
    require_admin(db)
    period = request.args.get("range", "monthly")
    return success_response(DashboardService(db).analytics(period))
