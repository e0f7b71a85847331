import logging

from flask import Blueprint, abort, request
from werkzeug.exceptions import HTTPException

from storefront.core.auth import require_admin, require_identity, require_user
from storefront.core.exceptions import BaseAPIException, NotFoundError
from storefront.routes.schemas import CheckoutSessionSchema, ManualOrderSchema, OrderStatusSchema
from storefront.routes.utils import (
    get_config,
    get_container,
    get_db,
    load_body,
    pagination_args,
    success_response,
)
from storefront.services.checkout_service import CheckoutService
from storefront.services.gateways import PaymentGateway
from storefront.services.order_service import OrderService
from storefront.utils.date_utils import DateUtils

logger = logging.getLogger(__name__)

orders_bp = Blueprint("orders", __name__)

_checkout_schema = CheckoutSessionSchema()
_status_schema = OrderStatusSchema()
_manual_order_schema = ManualOrderSchema()


@orders_bp.route("/checkout", methods=["POST"])
def create_checkout_session():
    """
    Start a hosted card checkout for the caller's server cart:
      1. Price the cart (shipping and tax) for the shipping address country
      2. Create a checkout session carrying the buyer and address as metadata
      3. Return the session id and redirect URL
    The order itself is created by the payment webhook once payment completes.
    """
    data = load_body(_checkout_schema)

    try:
        db = get_db()
        identity = require_identity()
        user = require_user(db)
        service = CheckoutService(db, get_container().get(PaymentGateway), get_config().payments)
        session = service.create_session(user, identity, data["shipping_address"])
        return success_response(session, "Checkout session created.", 201)
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"create_checkout_session error: {e}")
        abort(500, "Failed to create checkout session.")


@orders_bp.route("/me", methods=["GET"])
def list_my_orders():
    db = get_db()
    user = require_user(db)
    page, limit = pagination_args(default_limit=10)
    return success_response(OrderService(db).list_for_user(user.id, page=page, limit=limit))


@orders_bp.route("/<int:order_id>", methods=["GET"])
def get_order(order_id: int):
    """An order with its items and shipping address, for its owner or an admin."""
    db = get_db()
    user = require_user(db)
    order = OrderService(db).get_for_viewer(order_id, user)
    return success_response(order.to_dict(include_address=True))


@orders_bp.route("/by-number/<order_number>", methods=["GET"])
def get_order_status(order_number: str):
    """Polled by the checkout success page until the payment webhook has created the order."""
    db = get_db()
    require_user(db)
    return success_response(OrderService(db).get_status_by_order_number(order_number))


# ------------------------------------------------------------------ #
# Admin                                                               #
# ------------------------------------------------------------------ #

@orders_bp.route("", methods=["GET"])
def list_orders():
    db = get_db()
    require_admin(db)
    page, limit = pagination_args()

    try:
        start_date = DateUtils.parse_optional(request.args.get("start_date"))
        end_date = DateUtils.parse_optional(request.args.get("end_date"))
    except ValueError as e:
        abort(400, str(e))
    if end_date is not None and "T" not in request.args["end_date"]:
        end_date = DateUtils.end_of_day(end_date)
    if start_date and end_date and start_date > end_date:
        abort(400, "start_date cannot be after end_date.")

    result = OrderService(db).search(
        status=request.args.get("status") or None,
        search=request.args.get("q") or None,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return success_response(result)


@orders_bp.route("/stats", methods=["GET"])
def order_stats():
    db = get_db()
    require_admin(db)
    return success_response(OrderService(db).stats())


@orders_bp.route("", methods=["POST"])
def create_manual_order():
    """Place an order on a customer's behalf."""
    data = load_body(_manual_order_schema)

    try:
        db = get_db()
        require_admin(db)
        order = OrderService(db).create_manual(data)
        return success_response(order.to_dict(), "Order created.", 201)
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"create_manual_order error: {e}")
        abort(500, "Failed to create order.")


@orders_bp.route("/<int:order_id>/status", methods=["PATCH"])
def update_order_status(order_id: int):
    data = load_body(_status_schema)

    db = get_db()
    require_admin(db)
    order = OrderService(db).update_status(order_id, data["status"], data["tracking_number"])
    return success_response(order.to_dict(), "Order status updated.")


@orders_bp.route("/<int:order_id>", methods=["DELETE"])
def delete_order(order_id: int):
    db = get_db()
    require_admin(db)
    if not OrderService(db).delete(order_id):
        raise NotFoundError("Order", str(order_id), message="Order not found")
    return success_response({"id": order_id}, "Order deleted.")
