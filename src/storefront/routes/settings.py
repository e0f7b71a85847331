import logging

from flask import Blueprint, abort, request

from storefront.core.auth import require_admin
from storefront.domain.pricing import ShippableItem, TaxableItem
from storefront.routes.schemas import ShippingCalculationSchema, TaxCalculationSchema
from storefront.routes.utils import get_db, load_body, success_response
from storefront.services.settings_service import SettingsService

logger = logging.getLogger(__name__)

settings_bp = Blueprint("settings", __name__)

_tax_calculation_schema = TaxCalculationSchema()
_shipping_calculation_schema = ShippingCalculationSchema()


def _dump(document):
    return document.model_dump(mode="json") if document is not None else None


@settings_bp.route("/<key>", methods=["GET"])
def get_settings(key: str):
    """site, payment, tax or shipping settings; payment falls back to defaults."""
    if key not in SettingsService.DOCUMENTS:
        abort(404, f"Unknown settings document: {key}")
    service = SettingsService(get_db())
    if key == "payment":
        return success_response(_dump(service.get_payment_settings()))
    return success_response(_dump(service.get(key)))


@settings_bp.route("/<key>", methods=["PUT"])
def update_settings(key: str):
    """Replace a settings document (admin). The body is validated as a whole."""
    if key not in SettingsService.DOCUMENTS:
        abort(404, f"Unknown settings document: {key}")
    if not request.is_json:
        abort(400, "Content-Type must be application/json.")
    payload = request.get_json(force=True)
    if not isinstance(payload, dict):
        abort(400, "Request body must be a JSON object.")

    db = get_db()
    admin = require_admin(db)
    document = SettingsService(db).update(key, payload)
    logger.info(f"Admin {admin.id} saved {key} settings")
    return success_response(_dump(document), "Settings saved.")


@settings_bp.route("/tax/calculate", methods=["POST"])
def calculate_tax():
    data = load_body(_tax_calculation_schema)

    items = None
    if data["items"] is not None:
        items = [TaxableItem(**item) for item in data["items"]]
    quote = SettingsService(get_db()).calculate_tax(
        data["subtotal"], data["shipping"], data["country_code"], items
    )
    return success_response(quote.to_dict())


@settings_bp.route("/shipping/zones/<country_code>", methods=["GET"])
def get_shipping_zone(country_code: str):
    """The zone a country ships under, or null when shipping is not configured."""
    zone = SettingsService(get_db()).zone_for_country(country_code)
    return success_response(zone.model_dump(mode="json") if zone is not None else None)


@settings_bp.route("/shipping/calculate", methods=["POST"])
def calculate_shipping():
    data = load_body(_shipping_calculation_schema)

    items = [ShippableItem(**item) for item in data["items"]]
    quote = SettingsService(get_db()).calculate_shipping(data["country_code"], items, data["subtotal"])
    return success_response(quote.to_dict() if quote is not None else None)
