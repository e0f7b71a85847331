"""
Inbound webhooks from the payments processor and the auth provider.

Both endpoints verify the raw request body against the sender's signature
before anything is parsed; the gateways doing the verification come from
the app's DependencyContainer.
"""
import logging

from flask import Blueprint, abort, request
from pydantic import ValidationError as PydanticValidationError
from werkzeug.exceptions import HTTPException

from storefront.core.exceptions import BaseAPIException
from storefront.routes.utils import get_config, get_container, get_db, success_response
from storefront.schemas.webhooks import AuthUserData, AuthUserEvent, CompletedCheckout
from storefront.services.checkout_service import CheckoutService
from storefront.services.gateways import PaymentGateway, UserWebhookVerifier
from storefront.services.user_service import UserService

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
USER_UPSERT_EVENTS = ("user.created", "user.updated")
USER_DELETED = "user.deleted"


@webhooks_bp.route("/payments", methods=["POST"])
def payments_webhook():
    signature = request.headers.get("Stripe-Signature")
    if not signature:
        abort(400, "Missing Stripe-Signature header.")

    gateway = get_container().get(PaymentGateway)
    event = gateway.construct_event(request.get_data(), signature)
    event_type = event.get("type")
    logger.info(f"Payment webhook received: {event_type} ({event.get('id')})")

    if event_type != CHECKOUT_COMPLETED:
        return success_response({"received": True, "handled": False})

    try:
        checkout = CompletedCheckout.model_validate(event["data"]["object"])
    except (KeyError, TypeError, PydanticValidationError) as e:
        logger.error(f"Malformed {CHECKOUT_COMPLETED} event: {str(e)}")
        abort(400, "Malformed checkout session payload.")

    try:
        db = get_db()
        service = CheckoutService(db, gateway, get_config().payments)
        order = service.fulfil_order(checkout)
        return success_response({
            "received": True,
            "handled": True,
            "order_id": order.id if order is not None else None,
        })
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Fulfilment of checkout session {checkout.id} failed: {e}")
        abort(500, "Error processing webhook.")


@webhooks_bp.route("/users", methods=["POST"])
def users_webhook():
    verifier = get_container().get(UserWebhookVerifier)
    missing = verifier.missing_headers(request.headers)
    if missing:
        abort(400, "Error occurred -- no svix headers")

    payload = verifier.verify(request.get_data(), request.headers)

    try:
        event = AuthUserEvent.model_validate(payload)
        user_data = AuthUserData.model_validate(event.data) if event.type in USER_UPSERT_EVENTS else None
    except PydanticValidationError as e:
        logger.error(f"Malformed user webhook: {str(e)}")
        abort(400, "Malformed webhook payload.")

    logger.info(f"User webhook received: {event.type}")

    try:
        service = UserService(get_db())
        if user_data is not None:
            service.upsert_from_auth_provider(user_data)
        elif event.type == USER_DELETED:
            subject = event.data.get("id")
            if subject:
                service.delete_by_auth_subject(str(subject))
        else:
            logger.info(f"Ignoring user webhook event {event.type}")
        return success_response({"received": True})
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"User webhook {event.type} failed: {e}")
        abort(500, "Error processing webhook.")
