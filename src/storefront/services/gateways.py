"""
Adapters around the payments processor and the auth provider's webhook
signatures. Services depend on the abstract classes; the app registers the
real implementations in its DependencyContainer and tests swap in fakes.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping

import stripe
from svix.webhooks import Webhook, WebhookVerificationError

from storefront.core.exceptions import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)


class PaymentGateway(ABC):

    @abstractmethod
    def create_checkout_session(
        self,
        line_items: List[Dict[str, Any]],
        metadata: Dict[str, str],
        customer_email: str,
        success_url: str,
        cancel_url: str,
    ) -> Dict[str, Any]:
        """Create a hosted checkout session; returns {"id", "url"}"""

    @abstractmethod
    def construct_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """Verify a webhook delivery and return the event; raises ValidationError on a bad signature"""


class StripeGateway(PaymentGateway):

    def __init__(self, api_key: str, webhook_secret: str):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def create_checkout_session(self, line_items, metadata, customer_email, success_url, cancel_url):
        if not self.api_key:
            raise ExternalServiceError("stripe", "Payments are not configured")
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=line_items,
                metadata=metadata,
                customer_email=customer_email,
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout session creation failed: {str(e)}")
            raise ExternalServiceError("stripe", "Could not start checkout")
        return {"id": session.id, "url": session.url}

    def construct_event(self, payload, signature):
        if not self.webhook_secret:
            raise ExternalServiceError("stripe", "Payment webhooks are not configured")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError:
            raise ValidationError("Invalid payload")
        except stripe.SignatureVerificationError:
            raise ValidationError("Invalid signature")
        return event.to_dict() if hasattr(event, "to_dict") else dict(event)


class UserWebhookVerifier(ABC):

    REQUIRED_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")

    def missing_headers(self, headers: Mapping[str, str]) -> List[str]:
        return [name for name in self.REQUIRED_HEADERS if not headers.get(name)]

    @abstractmethod
    def verify(self, payload: bytes, headers: Mapping[str, str]) -> Dict[str, Any]:
        """Return the decoded event; raises ValidationError when verification fails"""


class SvixVerifier(UserWebhookVerifier):

    def __init__(self, secret: str):
        self.secret = secret

    def verify(self, payload, headers):
        if not self.secret:
            raise ExternalServiceError("auth-webhooks", "User webhooks are not configured")
        svix_headers = {name: headers.get(name) for name in self.REQUIRED_HEADERS}
        try:
            return Webhook(self.secret).verify(payload, svix_headers)
        except WebhookVerificationError as e:
            logger.warning(f"User webhook verification failed: {str(e)}")
            raise ValidationError("Error occurred -- could not verify webhook")
