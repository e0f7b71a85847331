"""
Tax and shipping calculation.

Both calculators are pure functions over the admin-edited settings
documents and a list of cart lines, so checkout, the cart quote endpoint
and the public calculation endpoints all price an order the same way.
All amounts are integer cents; rates are percentages.
"""
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Sequence

from storefront.schemas.settings import ShippingSettings, ShippingZone, TaxSettings

DEFAULT_DIM_WEIGHT_DIVISOR = 5000
WILDCARD_REGION = "*"


def round_cents(value) -> int:
    """Round half-up to whole cents."""
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class TaxableItem:
    price: int
    quantity: int
    is_taxable: Optional[bool] = None
    tax_rate_override: Optional[float] = None


@dataclass
class ShippableItem:
    quantity: int
    weight: int = 0
    dimensions: Optional[Dict[str, float]] = None
    shipping_rate_override: Optional[int] = None
    is_free_shipping: Optional[bool] = None


@dataclass
class TaxQuote:
    amount: int
    rate: float
    is_configured: bool
    inclusive: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": self.amount,
            "rate": self.rate,
            "is_configured": self.is_configured,
            "inclusive": self.inclusive,
        }


@dataclass
class ShippingQuote:
    rate: int
    zone_name: str
    delivery_time: str
    is_free: bool
    free_shipping_threshold: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rate": self.rate,
            "zone_name": self.zone_name,
            "delivery_time": self.delivery_time,
            "is_free": self.is_free,
            "free_shipping_threshold": self.free_shipping_threshold,
        }


def standard_tax_rate(settings: TaxSettings, country_code: Optional[str]) -> float:
    rate = settings.default_rate
    if country_code:
        code = country_code.strip().upper()
        rule = next((r for r in settings.rules if r.region == code), None)
        if rule is not None:
            rate = rule.rate
    return rate


def calculate_tax(
    settings: Optional[TaxSettings],
    subtotal: int,
    shipping: int = 0,
    country_code: Optional[str] = None,
    items: Optional[Sequence[TaxableItem]] = None,
) -> TaxQuote:
    """
    Tax for an order.

    Items marked non-taxable are skipped and items with a rate override use
    it instead of the regional rate. Without an item breakdown the whole
    subtotal is taxed at the regional rate. Shipping is taxed at the
    regional rate when tax_on_shipping is set.
    """
    if settings is None:
        return TaxQuote(amount=0, rate=0, is_configured=False)

    rate = standard_tax_rate(settings, country_code)
    amount = 0

    if items is not None:
        for item in items:
            if item.is_taxable is False:
                continue
            item_rate = item.tax_rate_override if item.tax_rate_override is not None else rate
            line = Decimal(item.price * item.quantity) * Decimal(str(item_rate)) / 100
            amount += round_cents(line)
    else:
        amount = round_cents(Decimal(subtotal) * Decimal(str(rate)) / 100)

    if settings.tax_on_shipping and shipping > 0:
        amount += round_cents(Decimal(shipping) * Decimal(str(rate)) / 100)

    return TaxQuote(
        amount=amount,
        rate=rate,
        is_configured=True,
        inclusive=settings.tax_inclusive,
    )


def find_zone(settings: Optional[ShippingSettings], country_code: str) -> Optional[ShippingZone]:
    """First zone listing the country (or '*'); the last zone is the fallback."""
    if settings is None or not settings.zones:
        return None
    code = (country_code or "").strip().upper()
    for zone in settings.zones:
        if code in zone.regions or WILDCARD_REGION in zone.regions:
            return zone
    return settings.zones[-1]


def billable_weight(item: ShippableItem, dim_divisor: float) -> float:
    """Grams charged for a line: actual weight or volumetric weight, whichever is greater."""
    actual = (item.weight or 0) * item.quantity
    dims = item.dimensions
    if not dims:
        return actual
    volume = dims.get("length", 0) * dims.get("width", 0) * dims.get("height", 0)
    volumetric = (volume / dim_divisor) * 1000 * item.quantity
    return max(actual, volumetric)


def calculate_shipping(
    settings: Optional[ShippingSettings],
    country_code: str,
    items: Sequence[ShippableItem],
    subtotal: int,
) -> Optional[ShippingQuote]:
    """
    Shipping rate for a destination country.

    Returns None when no shipping settings or zones exist. Orders at or over
    the free-shipping threshold (zone override first, then the store-wide
    value) ship free. Otherwise free-shipping items cost nothing, items with
    a rate override cost override * quantity, and any remaining items are
    charged the zone base rate once, plus per started kilogram of billable
    weight for weight-based zones.
    """
    zone = find_zone(settings, country_code)
    if zone is None:
        return None

    dim_divisor = settings.dim_weight_divisor or DEFAULT_DIM_WEIGHT_DIVISOR
    threshold = (
        zone.free_shipping_override
        if zone.free_shipping_override is not None
        else settings.free_shipping_threshold
    )

    if threshold and subtotal >= threshold:
        return ShippingQuote(
            rate=0,
            zone_name=zone.name,
            delivery_time=zone.delivery_time,
            is_free=True,
            free_shipping_threshold=threshold,
        )

    override_total = 0
    standard_items: List[ShippableItem] = []
    for item in items:
        if item.is_free_shipping:
            continue
        if item.shipping_rate_override is not None:
            override_total += item.shipping_rate_override * item.quantity
        else:
            standard_items.append(item)

    standard_rate = 0
    if standard_items:
        standard_rate = zone.base_rate
        if zone.rate_type == "weight" and zone.per_kg_rate:
            total_grams = sum(billable_weight(item, dim_divisor) for item in standard_items)
            standard_rate += math.ceil(total_grams / 1000) * zone.per_kg_rate

    rate = override_total + standard_rate
    return ShippingQuote(
        rate=rate,
        zone_name=zone.name,
        delivery_time=zone.delivery_time,
        is_free=rate == 0,
        free_shipping_threshold=threshold,
    )
