import logging

from flask import Blueprint, abort, request
from werkzeug.exceptions import HTTPException

from storefront.core.auth import get_current_user, require_admin, require_user
from storefront.core.exceptions import BaseAPIException, NotFoundError
from storefront.routes.schemas import AdminUserInfoSchema, MarketingPrefsSchema, ProfileSchema, RoleSchema
from storefront.routes.utils import get_db, load_body, parse_int, success_response
from storefront.services.user_service import UserService

logger = logging.getLogger(__name__)

users_bp = Blueprint("users", __name__)

_profile_schema = ProfileSchema()
_marketing_schema = MarketingPrefsSchema()
_role_schema = RoleSchema()
_admin_info_schema = AdminUserInfoSchema()


@users_bp.route("/me", methods=["GET"])
def get_me():
    """Current profile, or null when anonymous or not yet synced."""
    user = get_current_user(get_db())
    return success_response(user.to_dict() if user is not None else None)


@users_bp.route("/me", methods=["PATCH"])
def update_me():
    data = load_body(_profile_schema, partial=True)

    try:
        db = get_db()
        user = require_user(db)
        user = UserService(db).update_profile(user, data)
        return success_response(user.to_dict(), "Profile updated.")
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"update_me error: {e}")
        abort(500, "Failed to update profile.")


@users_bp.route("/me/marketing", methods=["PUT"])
def update_my_marketing_prefs():
    data = load_body(_marketing_schema)

    db = get_db()
    user = require_user(db)
    user = UserService(db).update_marketing_prefs(user, data["email_newsletter"], data["sms_notifications"])
    return success_response(user.marketing_prefs, "Preferences updated.")


# ------------------------------------------------------------------ #
# Admin                                                               #
# ------------------------------------------------------------------ #

@users_bp.route("", methods=["GET"])
def list_users():
    """Customers with order count, total spent and last order date."""
    db = get_db()
    require_admin(db)
    search = request.args.get("q", "").strip() or None
    limit = parse_int(request.args.get("limit"), default=50, min_val=1, max_val=500, field_name="limit")
    return success_response(UserService(db).list_customers_with_stats(search=search, limit=limit))


@users_bp.route("/<int:user_id>", methods=["GET"])
def get_user(user_id: int):
    db = get_db()
    require_admin(db)
    return success_response(UserService(db).get_by_id(user_id).to_dict())


@users_bp.route("/<int:user_id>/role", methods=["PATCH"])
def update_user_role(user_id: int):
    data = load_body(_role_schema)

    db = get_db()
    require_admin(db)
    user = UserService(db).update_role(user_id, data["role"])
    return success_response(user.to_dict(), "Role updated.")


@users_bp.route("/<int:user_id>", methods=["PATCH"])
def update_user_admin_info(user_id: int):
    """Back-office fields: tags, notes and phone."""
    data = load_body(_admin_info_schema, partial=True)

    db = get_db()
    require_admin(db)
    user = UserService(db).update_admin_info(user_id, data)
    return success_response(user.to_dict(), "User updated.")


@users_bp.route("/<int:user_id>", methods=["DELETE"])
def delete_user(user_id: int):
    db = get_db()
    require_admin(db)
    if not UserService(db).delete_user(user_id):
        raise NotFoundError("User", str(user_id), message="User not found")
    return success_response({"id": user_id}, "User deleted.")
