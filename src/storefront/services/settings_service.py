import logging
from typing import Any, Dict, Optional, Sequence, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from storefront.core.exceptions import DatabaseError, ValidationError
from storefront.domain import pricing
from storefront.repositories.content_repository import SettingsRepository
from storefront.schemas.settings import PaymentSettings, ShippingSettings, SiteSettings, TaxSettings

logger = logging.getLogger(__name__)


class SettingsService:
    """
    Store-wide settings documents

    Business Rules:
    - Each document is validated against its pydantic model on write and on read
    - Payment settings fall back to defaults (Stripe on, everything else off) until saved
    - Tax method "automatic" is stored as "stripe"
    """

    DOCUMENTS: Dict[str, Type[BaseModel]] = {
        "site": SiteSettings,
        "payment": PaymentSettings,
        "tax": TaxSettings,
        "shipping": ShippingSettings,
    }

    def __init__(self, session):
        self.repo = SettingsRepository(session)

    def get(self, key: str) -> Optional[BaseModel]:
        model = self.DOCUMENTS[key]
        data = self.repo.get_document(key)
        if data is None:
            return None
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            logger.error(f"Stored {key} settings failed validation: {str(e)}")
            raise DatabaseError(f"Stored {key} settings are invalid", "SELECT")

    def update(self, key: str, payload: Dict[str, Any]) -> BaseModel:
        model = self.DOCUMENTS[key]
        try:
            document = model.model_validate(payload)
        except PydanticValidationError as e:
            field_errors = [
                {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
                for error in e.errors()
            ]
            raise ValidationError(f"Invalid {key} settings", field_errors=field_errors)

        self.repo.upsert_document(key, document.model_dump(mode="json"))
        self.repo.commit()
        logger.info(f"Updated {key} settings")
        return document

    def get_site_settings(self) -> Optional[SiteSettings]:
        return self.get("site")

    def get_payment_settings(self) -> PaymentSettings:
        return self.get("payment") or PaymentSettings()

    def get_tax_settings(self) -> Optional[TaxSettings]:
        return self.get("tax")

    def get_shipping_settings(self) -> Optional[ShippingSettings]:
        return self.get("shipping")

    def zone_for_country(self, country_code: str):
        return pricing.find_zone(self.get_shipping_settings(), country_code)

    def calculate_tax(
        self,
        subtotal: int,
        shipping: int = 0,
        country_code: Optional[str] = None,
        items: Optional[Sequence[pricing.TaxableItem]] = None,
    ) -> pricing.TaxQuote:
        return pricing.calculate_tax(self.get_tax_settings(), subtotal, shipping, country_code, items)

    def calculate_shipping(
        self,
        country_code: str,
        items: Sequence[pricing.ShippableItem],
        subtotal: int,
    ) -> Optional[pricing.ShippingQuote]:
        return pricing.calculate_shipping(self.get_shipping_settings(), country_code, items, subtotal)
