import logging
from typing import Optional

from flask import Blueprint, abort
from werkzeug.exceptions import HTTPException

from storefront.core.auth import get_current_user, require_user
from storefront.core.exceptions import BaseAPIException
from storefront.domain.cart import GuestCart
from storefront.models import User
from storefront.routes.schemas import (
    AddCartItemSchema,
    QuoteSchema,
    SyncCartSchema,
    UpdateCartItemSchema,
)
from storefront.routes.utils import (
    get_db,
    load_body,
    load_guest_cart,
    parse_int,
    save_guest_cart,
    success_response,
)
from storefront.services.cart_service import CartService

logger = logging.getLogger(__name__)

carts_bp = Blueprint("carts", __name__)

_add_schema = AddCartItemSchema()
_update_schema = UpdateCartItemSchema()
_sync_schema = SyncCartSchema()
_quote_schema = QuoteSchema()


def _resolve_owner(service: CartService, guest: GuestCart) -> Optional[User]:
    """
    The signed-in user owning the server cart, or None for a guest.

    A signed-in request that still carries guest lines folds them into the
    server cart first. A failed consolidation is logged and the request
    continues; whatever was not merged stays in the guest cart for the next
    request.
    """
    user = get_current_user(get_db())
    if user is None or guest.is_empty:
        return user

    try:
        service.consolidate(user.id, guest)
    except Exception as e:
        logger.error(f"Cart consolidation for user {user.id} failed, serving server cart: {str(e)}")
    finally:
        save_guest_cart(guest)
    return user


def _view_for(service: CartService, user: Optional[User], guest: GuestCart):
    if user is None:
        return service.get_guest_cart(guest)
    return service.get_user_cart(user.id)


@carts_bp.route("/me", methods=["GET"])
def get_my_cart():
    """The caller's cart: the server cart when signed in, else the guest cart."""
    try:
        service = CartService(get_db())
        guest = load_guest_cart()
        user = _resolve_owner(service, guest)
        return success_response(_view_for(service, user, guest).to_dict())
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"get_my_cart error: {e}")
        abort(500, "Failed to fetch cart.")


@carts_bp.route("/me/items", methods=["POST"])
def add_cart_item():
    """Add a (product, variant) pair, or increment it if already present."""
    data = load_body(_add_schema)

    try:
        service = CartService(get_db())
        guest = load_guest_cart()
        user = _resolve_owner(service, guest)

        if user is None:
            item_id = service.add_guest_item(guest, data["product_id"], data["variant_id"], data["quantity"])
            save_guest_cart(guest)
        else:
            item_id = service.add_item(user.id, data["product_id"], data["variant_id"], data["quantity"])

        return success_response(
            {"item_id": item_id, "product_id": data["product_id"], "variant_id": data["variant_id"],
             "quantity_added": data["quantity"]},
            "Item added to cart.",
            201,
        )
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"add_cart_item error: {e}")
        abort(500, "Failed to add item to cart.")


@carts_bp.route("/me/items/<item_id>", methods=["PATCH"])
def update_cart_item(item_id: str):
    """Set a line's quantity. A quantity of 0 or below removes the line."""
    data = load_body(_update_schema)
    quantity = data["quantity"]

    try:
        service = CartService(get_db())
        guest = load_guest_cart()
        user = _resolve_owner(service, guest)

        if user is None:
            kept = service.update_guest_item(guest, item_id, quantity)
            save_guest_cart(guest)
        else:
            kept = service.update_item(
                user.id, parse_int(item_id, field_name="item_id"), quantity
            ) is not None

        if not kept:
            return success_response({"item_id": item_id, "removed": True}, "Item removed from cart.")
        return success_response({"item_id": item_id, "quantity": quantity, "removed": False}, "Cart item updated.")
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"update_cart_item error: {e}")
        abort(500, "Failed to update cart item.")


@carts_bp.route("/me/items/<item_id>", methods=["DELETE"])
def remove_cart_item(item_id: str):
    try:
        service = CartService(get_db())
        guest = load_guest_cart()
        user = _resolve_owner(service, guest)

        if user is None:
            service.remove_guest_item(guest, item_id)
            save_guest_cart(guest)
        else:
            service.remove_item(user.id, parse_int(item_id, field_name="item_id"))

        return success_response({"item_id": item_id}, "Item removed from cart.")
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"remove_cart_item error: {e}")
        abort(500, "Failed to remove cart item.")


@carts_bp.route("/me", methods=["DELETE"])
def clear_cart():
    try:
        service = CartService(get_db())
        guest = load_guest_cart()
        user = _resolve_owner(service, guest)

        if user is None:
            removed = len(guest)
            guest.clear()
            save_guest_cart(guest)
        else:
            removed = service.clear(user.id)

        return success_response({"removed": removed}, "Cart cleared.")
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"clear_cart error: {e}")
        abort(500, "Failed to clear cart.")


@carts_bp.route("/me/sync", methods=["POST"])
def sync_cart():
    """
    Merge a client-held item list into the signed-in user's cart.

    Same merge-by-sum as sign-in consolidation. The client clears its list
    once this succeeds.
    """
    data = load_body(_sync_schema)

    try:
        db = get_db()
        user = require_user(db)
        result = CartService(db).sync_items(user.id, data["items"])
        return success_response(result.to_dict(), "Cart synced.")
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"sync_cart error: {e}")
        abort(500, "Failed to sync cart.")


@carts_bp.route("/guest", methods=["POST"])
def preview_guest_cart():
    """Enrich a client-held guest item list without storing it."""
    data = load_body(_sync_schema)

    try:
        view = CartService(get_db()).get_guest_cart(GuestCart.from_storage(data["items"]))
        return success_response(view.to_dict())
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"preview_guest_cart error: {e}")
        abort(500, "Failed to fetch cart.")


@carts_bp.route("/me/quote", methods=["POST"])
def quote_cart():
    """Subtotal, shipping, tax and total of the caller's cart for a destination country."""
    data = load_body(_quote_schema)

    try:
        service = CartService(get_db())
        guest = load_guest_cart()
        user = _resolve_owner(service, guest)
        view = _view_for(service, user, guest)
        return success_response(service.quote(view, data["country_code"]))
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"quote_cart error: {e}")
        abort(500, "Failed to price cart.")
