import logging

from flask import Blueprint, abort
from werkzeug.exceptions import HTTPException

from storefront.core.auth import get_current_user, require_admin, require_user
from storefront.core.exceptions import BaseAPIException
from storefront.routes.schemas import AddressSchema
from storefront.routes.utils import get_db, load_body, success_response
from storefront.services.address_service import AddressService

logger = logging.getLogger(__name__)

addresses_bp = Blueprint("addresses", __name__)

_address_schema = AddressSchema()


@addresses_bp.route("/me", methods=["GET"])
def list_my_addresses():
    """The caller's saved addresses, default first. Empty when anonymous."""
    db = get_db()
    user = get_current_user(db)
    if user is None:
        return success_response([])
    return success_response([a.to_dict() for a in AddressService(db).list_for_user(user.id)])


@addresses_bp.route("/me", methods=["POST"])
def add_address():
    data = load_body(_address_schema)

    try:
        db = get_db()
        user = require_user(db)
        address = AddressService(db).add(user.id, data)
        return success_response(address.to_dict(), "Address added.", 201)
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"add_address error: {e}")
        abort(500, "Failed to add address.")


@addresses_bp.route("/me/<int:address_id>", methods=["PATCH"])
def update_address(address_id: int):
    data = load_body(_address_schema, partial=True)

    try:
        db = get_db()
        user = require_user(db)
        address = AddressService(db).update(user.id, address_id, data)
        return success_response(address.to_dict(), "Address updated.")
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"update_address error: {e}")
        abort(500, "Failed to update address.")


@addresses_bp.route("/me/<int:address_id>", methods=["DELETE"])
def delete_address(address_id: int):
    db = get_db()
    user = require_user(db)
    AddressService(db).delete(user.id, address_id)
    return success_response({"id": address_id}, "Address deleted.")


@addresses_bp.route("/me/<int:address_id>/default", methods=["POST"])
def set_default_address(address_id: int):
    """Make this the caller's only default address."""
    db = get_db()
    user = require_user(db)
    address = AddressService(db).set_default(user.id, address_id)
    return success_response(address.to_dict(), "Default address updated.")


@addresses_bp.route("/users/<int:user_id>", methods=["GET"])
def list_user_addresses(user_id: int):
    db = get_db()
    require_admin(db)
    return success_response([a.to_dict() for a in AddressService(db).list_for_user(user_id)])
