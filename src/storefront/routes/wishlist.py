import logging

from flask import Blueprint, abort
from werkzeug.exceptions import HTTPException

from storefront.core.auth import get_current_user, require_user
from storefront.core.exceptions import BaseAPIException
from storefront.routes.schemas import WishlistItemSchema
from storefront.routes.utils import get_db, load_body, success_response
from storefront.services.wishlist_service import WishlistService

logger = logging.getLogger(__name__)

wishlist_bp = Blueprint("wishlist", __name__)

_item_schema = WishlistItemSchema()


@wishlist_bp.route("/me", methods=["GET"])
def get_my_wishlist():
    db = get_db()
    user = get_current_user(db)
    if user is None:
        return success_response([])
    return success_response(WishlistService(db).get_wishlist(user.id))


@wishlist_bp.route("/me/product-ids", methods=["GET"])
def get_my_wishlist_product_ids():
    db = get_db()
    user = get_current_user(db)
    if user is None:
        return success_response([])
    return success_response(WishlistService(db).product_ids(user.id))


@wishlist_bp.route("/me/count", methods=["GET"])
def get_my_wishlist_count():
    db = get_db()
    user = get_current_user(db)
    if user is None:
        return success_response({"count": 0})
    return success_response({"count": WishlistService(db).count(user.id)})


@wishlist_bp.route("/me/products/<int:product_id>", methods=["GET"])
def is_in_wishlist(product_id: int):
    db = get_db()
    user = get_current_user(db)
    if user is None:
        return success_response({"in_wishlist": False})
    return success_response({"in_wishlist": WishlistService(db).contains(user.id, product_id)})


@wishlist_bp.route("/me", methods=["POST"])
def add_to_wishlist():
    """Idempotent: adding a product twice returns the existing entry."""
    data = load_body(_item_schema)

    try:
        db = get_db()
        user = require_user(db)
        entry_id = WishlistService(db).add(user.id, data["product_id"])
        return success_response({"id": entry_id, "product_id": data["product_id"]}, "Added to wishlist.", 201)
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"add_to_wishlist error: {e}")
        abort(500, "Failed to add to wishlist.")


@wishlist_bp.route("/me/products/<int:product_id>", methods=["DELETE"])
def remove_from_wishlist(product_id: int):
    db = get_db()
    user = require_user(db)
    removed = WishlistService(db).remove(user.id, product_id)
    return success_response({"product_id": product_id, "removed": removed})


@wishlist_bp.route("/me/toggle", methods=["POST"])
def toggle_wishlist():
    data = load_body(_item_schema)

    db = get_db()
    user = require_user(db)
    action = WishlistService(db).toggle(user.id, data["product_id"])
    return success_response({"product_id": data["product_id"], "action": action})
