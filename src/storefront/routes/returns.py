import logging

from flask import Blueprint, abort, request
from werkzeug.exceptions import HTTPException

from storefront.core.auth import get_current_user, require_admin, require_user
from storefront.core.exceptions import BaseAPIException
from storefront.routes.schemas import ReturnRequestSchema, ReturnStatusSchema
from storefront.routes.utils import get_db, load_body, parse_int, success_response
from storefront.services.return_service import ReturnService

logger = logging.getLogger(__name__)

returns_bp = Blueprint("returns", __name__)

_request_schema = ReturnRequestSchema()
_status_schema = ReturnStatusSchema()


@returns_bp.route("/me", methods=["GET"])
def list_my_returns():
    db = get_db()
    user = get_current_user(db)
    if user is None:
        return success_response([])
    return success_response(ReturnService(db).list_for_user(user.id))


@returns_bp.route("", methods=["POST"])
def request_return():
    """Open a return for items of one of the caller's delivered orders."""
    data = load_body(_request_schema)

    try:
        db = get_db()
        user = require_user(db)
        return_request = ReturnService(db).request_return(user, data)
        return success_response(return_request.to_dict(), "Return request submitted.", 201)
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"request_return error: {e}")
        abort(500, "Failed to submit return request.")


@returns_bp.route("/<int:return_id>", methods=["GET"])
def get_return(return_id: int):
    db = get_db()
    user = require_user(db)
    return success_response(ReturnService(db).get_for_viewer(return_id, user))


# ------------------------------------------------------------------ #
# Admin                                                               #
# ------------------------------------------------------------------ #

@returns_bp.route("", methods=["GET"])
def list_returns():
    db = get_db()
    require_admin(db)
    limit = parse_int(request.args.get("limit"), default=50, min_val=1, max_val=200, field_name="limit")
    return success_response(ReturnService(db).list_all(status=request.args.get("status") or None, limit=limit))


@returns_bp.route("/stats", methods=["GET"])
def return_stats():
    db = get_db()
    require_admin(db)
    return success_response(ReturnService(db).stats())


@returns_bp.route("/<int:return_id>/status", methods=["PATCH"])
def update_return_status(return_id: int):
    data = load_body(_status_schema)

    db = get_db()
    require_admin(db)
    return_request = ReturnService(db).update_status(
        return_id,
        data["status"],
        admin_notes=data["admin_notes"],
        rejection_reason=data["rejection_reason"],
        refund_amount=data["refund_amount"],
    )
    return success_response(return_request.to_dict(), "Return status updated.")
