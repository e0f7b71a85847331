from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storefront.utils.validators import ValidationUtils


class TaxRule(BaseModel):
    """Per-region override of the default tax rate"""
    region: str = Field(description="Country or state code the rule applies to")
    rate: float = Field(ge=0, le=100, description="Percentage, e.g. 8.5")

    @field_validator('region')
    @classmethod
    def normalize_region(cls, v):
        return v.strip().upper()


class TaxSettings(BaseModel):
    method: Literal["manual", "stripe"] = Field(default="manual")
    default_rate: float = Field(default=0, ge=0, le=100, description="Percentage")
    tax_on_shipping: bool = False
    tax_inclusive: bool = False
    rules: List[TaxRule] = Field(default_factory=list)

    @field_validator('method', mode='before')
    @classmethod
    def map_automatic_method(cls, v):
        # The admin console labels processor-computed tax "automatic".
        if v == "automatic":
            return "stripe"
        return v

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "method": "manual",
            "default_rate": 8.5,
            "tax_on_shipping": True,
            "tax_inclusive": False,
            "rules": [{"region": "CA", "rate": 13}]
        }
    })


class ShippingZone(BaseModel):
    id: str
    name: str
    regions: List[str] = Field(description="Country codes, or '*' for rest of world")
    rate_type: Literal["flat", "weight", "calculated"] = "flat"
    base_rate: int = Field(ge=0, description="Cents")
    per_kg_rate: Optional[int] = Field(default=None, ge=0, description="Cents per started kg")
    free_shipping_override: Optional[int] = Field(default=None, ge=0, description="Cents")
    delivery_time: str = ""

    @field_validator('regions')
    @classmethod
    def normalize_regions(cls, v):
        return [region.strip().upper() for region in v]


class ShippingSettings(BaseModel):
    free_shipping_threshold: Optional[int] = Field(default=None, ge=0, description="Cents")
    zones: List[ShippingZone] = Field(default_factory=list)
    dim_weight_divisor: float = Field(default=5000, gt=0)
    warranty_info: Optional[str] = None
    return_policy: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "free_shipping_threshold": 10000,
            "dim_weight_divisor": 5000,
            "zones": [
                {"id": "us", "name": "United States", "regions": ["US"], "rate_type": "weight",
                 "base_rate": 500, "per_kg_rate": 200, "delivery_time": "3-5 business days"},
                {"id": "row", "name": "Rest of world", "regions": ["*"], "rate_type": "flat",
                 "base_rate": 2500, "delivery_time": "7-14 business days"}
            ]
        }
    })


class PaymentSettings(BaseModel):
    """Which payment methods checkout offers. Defaults apply until an admin saves."""
    stripe_enabled: bool = True
    cod_enabled: bool = False
    bank_transfer_enabled: bool = False
    bank_name: str = ""
    account_name: str = ""
    account_number: str = ""
    routing_number: str = ""
    instructions: str = ""


class SocialLinks(BaseModel):
    facebook: Optional[str] = None
    twitter: Optional[str] = None
    instagram: Optional[str] = None
    linkedin: Optional[str] = None


class SiteSettings(BaseModel):
    store_name: str = Field(min_length=1)
    store_url: str
    logo_url: Optional[str] = None
    favicon_url: Optional[str] = None
    contact_email: str
    support_phone: Optional[str] = None
    social_links: Optional[SocialLinks] = None

    @field_validator('contact_email')
    @classmethod
    def validate_contact_email(cls, v):
        return ValidationUtils.normalize_email(v)
