from typing import Optional

from flask import abort, current_app, g, jsonify, request, session
from marshmallow import Schema, ValidationError
from datetime import datetime, timezone

from storefront import db
from storefront.core.dependencies import DependencyContainer
from storefront.domain.cart import GuestCart

CONTAINER_KEY = "storefront.container"
GUEST_CART_KEY = "cart_items"


def success_response(data, message: Optional[str] = None, status: int = 200):
    """Consistent success response envelope."""
    response = {
        "success": True,
        "data": data,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if message:
        response["message"] = message
    return jsonify(response), status


def parse_int(
    v,
    default=None,
    min_val: Optional[int] = None,
    max_val: Optional[int] = None,
    field_name: str = "value",
) -> Optional[int]:
    """Parse an integer with optional range validation."""
    try:
        result = int(v)
        if min_val is not None and result < min_val:
            abort(400, f"{field_name} must be at least {min_val}")
        if max_val is not None and result > max_val:
            abort(400, f"{field_name} cannot exceed {max_val}")
        return result
    except (TypeError, ValueError):
        if default is not None:
            return default
        abort(400, f"Invalid {field_name}: must be a valid integer")


def parse_optional_int(v, field_name: str = "value") -> Optional[int]:
    if v is None or v == "":
        return None
    return parse_int(v, field_name=field_name)


def parse_bool(v, default: bool = False) -> bool:
    """Parse a boolean value from a query string."""
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    return str(v).lower() in ("1", "true", "t", "yes", "y", "on")


def parse_list(v) -> list:
    """Comma separated query value -> list of non-empty, stripped strings."""
    if not v:
        return []
    return [part.strip() for part in v.split(",") if part.strip()]


def pagination_args(default_limit: Optional[int] = None):
    """(page, limit) from the query string, bounded by the API config."""
    api_config = get_config().api
    page = parse_int(request.args.get("page"), default=1, min_val=1, field_name="page")
    limit = parse_int(
        request.args.get("limit"),
        default=default_limit or api_config.default_page_size,
        min_val=1,
        max_val=api_config.max_page_size,
        field_name="limit",
    )
    return page, limit


def load_body(schema: Schema, partial: bool = False) -> dict:
    """
    Validate the JSON body against a marshmallow schema; 400 on failure.

    partial=True is for PATCH bodies: only the fields the client sent are
    returned, load_default values are not filled in.
    """
    if not request.is_json:
        abort(400, "Content-Type must be application/json.")
    raw = request.get_json(force=True) or {}
    if not isinstance(raw, dict):
        abort(400, "Request body must be a JSON object.")
    try:
        data = schema.load(raw, partial=partial)
    except ValidationError as err:
        abort(400, str(err.messages))
    if partial:
        data = {key: value for key, value in data.items() if key in raw}
    return data


def get_db():
    """Request-scoped SQLAlchemy session, opened lazily on flask.g."""
    if "db" not in g:
        g.db = db.SessionLocal()
    return g.db


def close_db(exc=None) -> None:
    session_ = g.pop("db", None)
    if session_ is not None:
        session_.close()


def get_config():
    return current_app.config["STOREFRONT_CONFIG"]


def get_container() -> DependencyContainer:
    return current_app.extensions[CONTAINER_KEY]


def load_guest_cart() -> GuestCart:
    return GuestCart.from_storage(session.get(GUEST_CART_KEY))


def save_guest_cart(guest: GuestCart) -> None:
    if guest.is_empty:
        session.pop(GUEST_CART_KEY, None)
    else:
        session[GUEST_CART_KEY] = guest.to_storage()
