from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class EmailAddress(BaseModel):
    email_address: str


class AuthUserData(BaseModel):
    """The `data` object of an auth-provider user.* event"""
    id: str
    email_addresses: List[EmailAddress] = Field(default_factory=list)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def primary_email(self) -> str:
        return self.email_addresses[0].email_address if self.email_addresses else ""


class AuthUserEvent(BaseModel):
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


class ShippingAddressMetadata(BaseModel):
    """Shipping address serialised into the Checkout session metadata"""
    street: str
    city: str
    state: str
    zip_code: str
    country: str = Field(min_length=2, max_length=2)


class CompletedCheckout(BaseModel):
    """The fields of a completed Stripe Checkout session that fulfilment reads"""
    id: str
    payment_intent: Optional[str] = None
    amount_total: int = 0
    customer_email: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
