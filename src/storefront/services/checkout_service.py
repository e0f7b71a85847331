import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from storefront.core.auth import Identity
from storefront.core.exceptions import BusinessLogicError, ValidationError
from storefront.domain.cart import CartView
from storefront.domain.order import OrderStatus
from storefront.models import Address, Order, OrderItem, User
from storefront.repositories.cart_repository import CartRepository
from storefront.repositories.order_repository import OrderRepository
from storefront.repositories.user_repository import UserRepository
from storefront.schemas.webhooks import CompletedCheckout, ShippingAddressMetadata
from storefront.services.cart_service import CartService
from storefront.services.gateways import PaymentGateway
from storefront.services.settings_service import SettingsService

logger = logging.getLogger(__name__)


def stripe_line_items(view: CartView, quote: Dict[str, Any], currency: str) -> List[Dict[str, Any]]:
    """Checkout line items: one per cart line, then shipping and exclusive tax"""
    line_items = []
    for line in view.items:
        name = f"{line.name} ({line.variant_name})" if line.variant_name else line.name
        product_data: Dict[str, Any] = {"name": name}
        if line.image:
            product_data["images"] = [line.image]
        line_items.append({
            "price_data": {"currency": currency, "product_data": product_data, "unit_amount": line.price_cents},
            "quantity": line.quantity,
        })

    shipping = quote["shipping"]
    if shipping is not None and shipping["rate"] > 0:
        product_data = {"name": f"Shipping ({shipping['zone_name']})"}
        if shipping["delivery_time"]:
            product_data["description"] = shipping["delivery_time"]
        line_items.append({
            "price_data": {"currency": currency, "product_data": product_data, "unit_amount": shipping["rate"]},
            "quantity": 1,
        })

    tax = quote["tax"]
    if tax["amount"] > 0 and not tax["inclusive"]:
        line_items.append({
            "price_data": {
                "currency": currency,
                "product_data": {"name": f"Tax ({tax['rate']:g}%)"},
                "unit_amount": tax["amount"],
            },
            "quantity": 1,
        })
    return line_items


class CheckoutService:
    """
    Card checkout through the payments processor

    Business Rules:
    - Checkout needs a non-empty server cart and card payments enabled
    - The session carries the buyer's auth subject and shipping address as metadata
    - Fulfilment is idempotent: the order number is the checkout session id
    - Items are priced at current catalog prices; shipping absorbs the remainder
      of the amount charged, and the cart is emptied in the same transaction
    """

    def __init__(self, session, gateway: PaymentGateway, payments_config):
        self.session = session
        self.gateway = gateway
        self.payments_config = payments_config
        self.settings_service = SettingsService(session)
        self.cart_service = CartService(session, settings_service=self.settings_service)
        self.cart_repo = CartRepository(session)
        self.order_repo = OrderRepository(session)
        self.user_repo = UserRepository(session)

    def create_session(self, user: User, identity: Identity, shipping_address: Dict[str, Any]) -> Dict[str, Any]:
        view = self.cart_service.get_user_cart(user.id)
        if view.is_empty:
            raise ValidationError("Cart is empty")

        if not self.settings_service.get_payment_settings().stripe_enabled:
            raise BusinessLogicError("Card payments are not enabled", rule="stripe_enabled")

        quote = self.cart_service.quote(view, shipping_address["country"])
        host = self.payments_config.host_url.rstrip("/")
        checkout = self.gateway.create_checkout_session(
            line_items=stripe_line_items(view, quote, self.payments_config.currency),
            metadata={
                "userId": identity.subject,
                "shippingAddress": json.dumps(shipping_address),
            },
            customer_email=identity.email or user.email,
            success_url=f"{host}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{host}/checkout",
        )
        logger.info(f"Created checkout session {checkout['id']} for user {user.id} (total {quote['total']})")
        return {"session_id": checkout["id"], "url": checkout["url"]}

    def fulfil_order(self, checkout: CompletedCheckout) -> Optional[Order]:
        """Turn a completed checkout session into an order. Returns None when there is nothing to fulfil."""
        existing = self.order_repo.get_by_order_number(checkout.id)
        if existing is not None:
            logger.info(f"Checkout session {checkout.id} already fulfilled as order {existing.id}")
            return existing

        subject = checkout.metadata.get("userId")
        if not subject:
            logger.warning(f"Checkout session {checkout.id} has no userId in metadata")
            return None

        user = self.user_repo.get_by_auth_subject(subject)
        if user is None:
            logger.warning(f"Checkout session {checkout.id}: no user for subject {subject}")
            return None

        cart_items = self.cart_repo.list_for_user(user.id)
        if not cart_items:
            logger.warning(f"Checkout session {checkout.id}: cart for user {user.id} is empty")
            return None

        items = []
        for cart_item in cart_items:
            product, variant = cart_item.product, cart_item.variant
            if product is None:
                continue
            adjustment = (variant.price_adjustment or 0) if variant is not None else 0
            items.append(OrderItem(
                product_id=product.id,
                variant_id=variant.id if variant is not None else None,
                name=product.name,
                sku=variant.sku if variant is not None else "N/A",
                quantity=cart_item.quantity,
                price=product.base_price + adjustment,
                image=(variant.image_url if variant is not None else None) or product.main_image_url,
            ))

        subtotal = sum(item.price * item.quantity for item in items)
        address = self._save_address(user, checkout)

        order = Order(
            user_id=user.id,
            order_number=checkout.id,
            status=OrderStatus.PENDING.value,
            subtotal=subtotal,
            tax=0,
            shipping=max(0, checkout.amount_total - subtotal),
            total=checkout.amount_total,
            shipping_address_id=address.id if address is not None else None,
            customer_email=checkout.customer_email or user.email,
            payment_method="stripe",
            payment_intent_id=checkout.payment_intent,
            items=items,
        )
        try:
            self.order_repo.add(order)
            self.cart_repo.clear_for_user(user.id)
            self.order_repo.commit()
        except Exception as e:
            self.order_repo.rollback()
            logger.error(f"Fulfilment of checkout session {checkout.id} failed: {str(e)}")
            raise

        logger.info(f"Fulfilled checkout session {checkout.id} as order {order.id} for user {user.id}")
        return order

    def _save_address(self, user: User, checkout: CompletedCheckout) -> Optional[Address]:
        raw = checkout.metadata.get("shippingAddress")
        if not raw:
            logger.warning(f"Checkout session {checkout.id} has no shipping address")
            return None
        try:
            parsed = ShippingAddressMetadata.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.error(f"Could not parse shipping address for checkout session {checkout.id}: {str(e)}")
            return None

        recipient = " ".join(part for part in (user.first_name, user.last_name) if part)
        address = Address(
            user_id=user.id,
            label="Order Address",
            recipient_name=recipient or user.email,
            phone=user.phone,
            type="home",
            street=parsed.street,
            city=parsed.city,
            state=parsed.state,
            zip_code=parsed.zip_code,
            country=parsed.country,
            is_default=False,
        )
        self.session.add(address)
        self.session.flush()
        return address
