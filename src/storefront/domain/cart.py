from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional

GUEST_ID_PREFIX = "guest-"


class LineKey(NamedTuple):
    """Identity of a cart line: two lines differing only in variant are distinct."""
    product_id: int
    variant_id: Optional[int] = None

    @property
    def guest_id(self) -> str:
        variant = self.variant_id if self.variant_id is not None else "base"
        return f"{GUEST_ID_PREFIX}{self.product_id}-{variant}"

    @classmethod
    def from_guest_id(cls, guest_id: str) -> "LineKey":
        """Parse 'guest-<product>-<variant|base>' back into a key."""
        if not guest_id.startswith(GUEST_ID_PREFIX):
            raise ValueError(f"Not a guest cart line id: {guest_id!r}")
        product_part, _, variant_part = guest_id[len(GUEST_ID_PREFIX):].partition("-")
        try:
            product_id = int(product_part)
            variant_id = None if variant_part == "base" else int(variant_part)
        except ValueError:
            raise ValueError(f"Malformed guest cart line id: {guest_id!r}")
        return cls(product_id, variant_id)


@dataclass
class GuestLine:
    """A guest cart entry as persisted in the browser: no price, no name."""
    product_id: int
    quantity: int
    variant_id: Optional[int] = None

    @property
    def key(self) -> LineKey:
        return LineKey(self.product_id, self.variant_id)

    def to_storage(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
        }


class GuestCart:
    """
    Ordered list of guest cart entries, one per LineKey.

    Wraps whatever client-persisted storage the caller uses (the Flask
    session cookie in this service) and applies the same rules as the server
    cart: adding an existing pair increments it, and a quantity update to
    zero or below removes the line.
    """

    def __init__(self, lines: Optional[List[GuestLine]] = None):
        self._lines: "OrderedDict[LineKey, GuestLine]" = OrderedDict()
        for line in lines or []:
            self.add(line.product_id, line.variant_id, line.quantity)

    @classmethod
    def from_storage(cls, raw: Optional[Iterable[Mapping[str, Any]]]) -> "GuestCart":
        lines = []
        for entry in raw or []:
            try:
                product_id = int(entry["product_id"])
                quantity = int(entry.get("quantity", 0))
                variant = entry.get("variant_id")
                variant_id = int(variant) if variant is not None else None
            except (KeyError, TypeError, ValueError):
                # Tampered or outdated cookie contents are dropped, not fatal.
                continue
            if quantity > 0:
                lines.append(GuestLine(product_id, quantity, variant_id))
        return cls(lines)

    def to_storage(self) -> List[Dict[str, Any]]:
        return [line.to_storage() for line in self._lines.values()]

    @property
    def lines(self) -> List[GuestLine]:
        return list(self._lines.values())

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, key: LineKey) -> bool:
        return key in self._lines

    def get(self, key: LineKey) -> Optional[GuestLine]:
        return self._lines.get(key)

    def add(self, product_id: int, variant_id: Optional[int], quantity: int) -> GuestLine:
        if quantity <= 0:
            raise ValueError("Quantity must be positive")
        key = LineKey(product_id, variant_id)
        existing = self._lines.get(key)
        if existing:
            existing.quantity += quantity
            return existing
        line = GuestLine(product_id, quantity, variant_id)
        self._lines[key] = line
        return line

    def update_quantity(self, key: LineKey, quantity: int) -> Optional[GuestLine]:
        """Set a line's quantity; <= 0 removes it. Returns None when removed."""
        line = self._lines.get(key)
        if line is None:
            raise KeyError(key)
        if quantity <= 0:
            del self._lines[key]
            return None
        line.quantity = quantity
        return line

    def remove(self, key: LineKey) -> bool:
        return self._lines.pop(key, None) is not None

    def clear(self) -> None:
        self._lines.clear()


@dataclass
class UpsertOperation:
    """
    One write needed to fold a guest line into the server cart.

    delta is the guest quantity to add; quantity is the resulting server
    quantity as of the snapshot the plan was computed from.
    """
    key: LineKey
    delta: int
    quantity: int
    is_insert: bool


@dataclass
class MergePlan:
    merged: "OrderedDict[LineKey, int]"
    operations: List[UpsertOperation] = field(default_factory=list)

    @property
    def inserts(self) -> int:
        return sum(1 for op in self.operations if op.is_insert)

    @property
    def increments(self) -> int:
        return sum(1 for op in self.operations if not op.is_insert)


def plan_merge(
    guest_lines: Iterable[GuestLine],
    server_quantities: Mapping[LineKey, int],
) -> MergePlan:
    """
    Merge guest lines into a snapshot of the server cart.

    For each pair the merged quantity is the server quantity (if any) plus
    the guest quantity; pairs only on the server are carried through
    unchanged. Guest lines repeating a pair are summed into one operation.
    Server order is preserved, new pairs are appended in guest order.
    """
    merged: "OrderedDict[LineKey, int]" = OrderedDict(server_quantities)
    pending: "OrderedDict[LineKey, int]" = OrderedDict()

    for line in guest_lines:
        if line.quantity <= 0:
            continue
        pending[line.key] = pending.get(line.key, 0) + line.quantity

    operations = []
    for key, delta in pending.items():
        is_insert = key not in server_quantities
        merged[key] = merged.get(key, 0) + delta
        operations.append(UpsertOperation(key, delta, merged[key], is_insert))

    return MergePlan(merged=merged, operations=operations)


@dataclass
class CartLine:
    """A cart line enriched with live catalog data, guest or server-side."""
    line_id: str
    product_id: int
    variant_id: Optional[int]
    quantity: int
    name: str
    slug: str
    price_cents: int  # base_price + variant price_adjustment, read live
    image: Optional[str] = None
    stock_count: Optional[int] = None
    weight: int = 0
    dimensions: Optional[Dict[str, float]] = None
    shipping_rate_override: Optional[int] = None
    is_free_shipping: Optional[bool] = None
    is_taxable: Optional[bool] = None
    tax_rate_override: Optional[float] = None
    variant_name: Optional[str] = None
    color_id: Optional[str] = None
    size: Optional[str] = None

    @property
    def key(self) -> LineKey:
        return LineKey(self.product_id, self.variant_id)

    @property
    def subtotal_cents(self) -> int:
        return self.price_cents * self.quantity

    @property
    def subtotal_dollars(self) -> Decimal:
        return Decimal(self.subtotal_cents) / 100

    @property
    def in_stock(self) -> bool:
        # Products sold without variants carry no stock count.
        return self.stock_count is None or self.stock_count >= self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.line_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "product": {
                "name": self.name,
                "slug": self.slug,
                "price": self.price_cents,
                "image": self.image,
                "weight": self.weight,
                "dimensions": self.dimensions,
                "shipping_rate_override": self.shipping_rate_override,
                "is_free_shipping": self.is_free_shipping,
                "is_taxable": self.is_taxable,
                "tax_rate_override": self.tax_rate_override,
            },
            "variant": (
                {"name": self.variant_name, "color_id": self.color_id, "size": self.size}
                if self.variant_id is not None
                else None
            ),
            "stock_count": self.stock_count,
            "in_stock": self.in_stock,
            "subtotal_cents": self.subtotal_cents,
        }


@dataclass
class CartView:
    """The unified cart returned to clients regardless of auth state."""
    items: List[CartLine] = field(default_factory=list)
    is_guest: bool = True

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def subtotal_cents(self) -> int:
        return sum(item.subtotal_cents for item in self.items)

    @property
    def subtotal_dollars(self) -> Decimal:
        return Decimal(self.subtotal_cents) / 100

    @property
    def is_empty(self) -> bool:
        return len(self.items) == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_guest": self.is_guest,
            "items": [item.to_dict() for item in self.items],
            "total_items": len(self.items),
            "total_quantity": self.total_quantity,
            "subtotal_cents": self.subtotal_cents,
            "subtotal_dollars": str(self.subtotal_dollars),
            "is_empty": self.is_empty,
        }
