import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from storefront.core.exceptions import NotFoundError, ValidationError
from storefront.domain.cart import CartLine, CartView, GuestCart, LineKey, plan_merge
from storefront.domain.pricing import ShippableItem, TaxableItem
from storefront.models import Product, ProductVariant
from storefront.repositories.cart_repository import CartRepository
from storefront.repositories.catalog_repository import ProductRepository, VariantRepository
from storefront.services.settings_service import SettingsService

logger = logging.getLogger(__name__)


@dataclass
class ConsolidationResult:
    inserted: int = 0
    incremented: int = 0
    skipped: int = 0

    @property
    def merged(self) -> int:
        return self.inserted + self.incremented

    def to_dict(self) -> Dict[str, int]:
        return {
            "merged": self.merged,
            "inserted": self.inserted,
            "incremented": self.incremented,
            "skipped": self.skipped,
        }


def build_cart_line(
    line_id: str,
    product: Product,
    variant: Optional[ProductVariant],
    quantity: int,
) -> CartLine:
    """Enrich a (product, variant, quantity) triple with live catalog data"""
    price = product.base_price
    if variant is not None:
        price += variant.price_adjustment or 0

    return CartLine(
        line_id=line_id,
        product_id=product.id,
        variant_id=variant.id if variant is not None else None,
        quantity=quantity,
        name=product.name,
        slug=product.slug,
        price_cents=price,
        image=(variant.image_url if variant is not None else None) or product.main_image_url,
        stock_count=variant.stock_count if variant is not None else None,
        weight=product.weight or 0,
        dimensions=product.dimensions,
        shipping_rate_override=product.shipping_rate_override,
        is_free_shipping=product.is_free_shipping,
        is_taxable=product.is_taxable,
        tax_rate_override=product.tax_rate_override,
        variant_name=variant.label if variant is not None else None,
        color_id=variant.color_id if variant is not None else None,
        size=variant.size if variant is not None else None,
    )


def taxable_items(view: CartView) -> List[TaxableItem]:
    return [
        TaxableItem(
            price=line.price_cents,
            quantity=line.quantity,
            is_taxable=line.is_taxable,
            tax_rate_override=line.tax_rate_override,
        )
        for line in view.items
    ]


def shippable_items(view: CartView) -> List[ShippableItem]:
    return [
        ShippableItem(
            quantity=line.quantity,
            weight=line.weight,
            dimensions=line.dimensions,
            shipping_rate_override=line.shipping_rate_override,
            is_free_shipping=line.is_free_shipping,
        )
        for line in view.items
    ]


class CartService:
    """
    Shopping cart business logic service

    Responsibilities:
    - Guest carts: mutate the caller-supplied GuestCart only, never the database
    - Server carts: one CartItem row per (product, variant) pair, merge by sum
    - Consolidate a guest cart into the server cart after sign-in
    - Price a cart (subtotal, shipping and tax) for a destination country
    """

    def __init__(self, session, settings_service: Optional[SettingsService] = None):
        self.cart_repo = CartRepository(session)
        self.product_repo = ProductRepository(session)
        self.variant_repo = VariantRepository(session)
        self.settings_service = settings_service or SettingsService(session)

    # ---------------------------------------------------------------- reads

    def get_guest_cart(self, guest: GuestCart) -> CartView:
        """
        Enrich guest entries with live product data

        Business Rules:
        - Entries whose product no longer exists are omitted
        - A variant that no longer exists prices the line at the base price
        """
        products = {p.id: p for p in self.product_repo.get_many(line.product_id for line in guest.lines)}

        lines = []
        for entry in guest.lines:
            product = products.get(entry.product_id)
            if product is None:
                continue
            variant = self._find_variant(product, entry.variant_id)
            lines.append(build_cart_line(entry.key.guest_id, product, variant, entry.quantity))

        return CartView(items=lines, is_guest=True)

    def get_user_cart(self, user_id: int) -> CartView:
        logger.info(f"Fetching cart for user {user_id}")

        lines = []
        for item in self.cart_repo.list_for_user(user_id):
            if item.product is None:
                continue
            lines.append(build_cart_line(str(item.id), item.product, item.variant, item.quantity))

        return CartView(items=lines, is_guest=False)

    # --------------------------------------------------------- guest writes

    def add_guest_item(
        self, guest: GuestCart, product_id: int, variant_id: Optional[int], quantity: int
    ) -> str:
        """Add to the guest cart, incrementing an existing pair. Returns the guest line id."""
        self._validate_purchasable(product_id, variant_id)
        line = guest.add(product_id, variant_id, quantity)
        logger.info(f"Guest cart: added product {product_id} variant {variant_id} x{quantity}")
        return line.key.guest_id

    def update_guest_item(self, guest: GuestCart, line_id: str, quantity: int) -> bool:
        """
        Set a guest line's quantity

        Business Rules:
        - quantity <= 0 removes the line

        Returns False when the line was removed.
        """
        key = self._parse_guest_id(line_id)
        try:
            line = guest.update_quantity(key, quantity)
        except KeyError:
            raise NotFoundError("Cart item", line_id)
        return line is not None

    def remove_guest_item(self, guest: GuestCart, line_id: str) -> None:
        key = self._parse_guest_id(line_id)
        if not guest.remove(key):
            raise NotFoundError("Cart item", line_id)

    # -------------------------------------------------------- server writes

    def add_item(self, user_id: int, product_id: int, variant_id: Optional[int], quantity: int) -> int:
        """
        Add to the server cart

        Business Rules:
        - The product (and variant, when given) must exist and belong together
        - Adding an existing (product, variant) pair increments its row

        Returns the cart row id.
        """
        if quantity <= 0:
            raise ValidationError("Quantity must be positive")
        self._validate_purchasable(product_id, variant_id)

        try:
            item = self.cart_repo.increment_or_insert(user_id, LineKey(product_id, variant_id), quantity)
            self.cart_repo.commit()
        except Exception as e:
            logger.error(f"Error adding product {product_id} to cart for user {user_id}: {str(e)}")
            raise

        logger.info(f"Cart item {item.id} for user {user_id} now has quantity {item.quantity}")
        return item.id

    def update_item(self, user_id: int, item_id: int, quantity: int) -> Optional[int]:
        """
        Set a server line's quantity

        Business Rules:
        - The row must belong to the user
        - quantity <= 0 deletes the row

        Returns the new quantity, or None when the row was deleted.
        """
        item = self.cart_repo.get_for_user(user_id, item_id)
        if item is None:
            raise NotFoundError("Cart item", str(item_id))

        if quantity <= 0:
            self.cart_repo.delete(item)
            self.cart_repo.commit()
            logger.info(f"Removed cart item {item_id} for user {user_id} (quantity {quantity})")
            return None

        item.quantity = quantity
        self.cart_repo.flush()
        self.cart_repo.commit()
        logger.info(f"Updated cart item {item_id} for user {user_id} to quantity {quantity}")
        return quantity

    def remove_item(self, user_id: int, item_id: int) -> None:
        item = self.cart_repo.get_for_user(user_id, item_id)
        if item is None:
            raise NotFoundError("Cart item", str(item_id))
        self.cart_repo.delete(item)
        self.cart_repo.commit()
        logger.info(f"Removed cart item {item_id} for user {user_id}")

    def clear(self, user_id: int) -> int:
        removed = self.cart_repo.clear_for_user(user_id)
        self.cart_repo.commit()
        logger.info(f"Cleared {removed} cart items for user {user_id}")
        return removed

    # -------------------------------------------------------- consolidation

    def consolidate(self, user_id: int, guest: GuestCart) -> ConsolidationResult:
        """
        Fold a guest cart into the user's server cart

        Business Rules:
        - Matching (product, variant) pairs are incremented by the guest quantity
        - Other pairs are inserted
        - Each pair is committed on its own and then dropped from the guest cart,
          so a failure part-way leaves only the unmerged pairs behind
        - Pairs whose product no longer exists are dropped without merging

        Exceptions propagate after rolling back the failing pair; the caller
        decides whether the request continues.
        """
        result = ConsolidationResult()
        if guest.is_empty:
            return result

        plan = plan_merge(guest.lines, self.cart_repo.quantities_for_user(user_id))
        existing_products = {p.id for p in self.product_repo.get_many(op.key.product_id for op in plan.operations)}
        existing_variants = {v.id: v.product_id for v in self.variant_repo.get_many(
            op.key.variant_id for op in plan.operations
        )}

        for op in plan.operations:
            if op.key.product_id not in existing_products or (
                op.key.variant_id is not None and existing_variants.get(op.key.variant_id) != op.key.product_id
            ):
                logger.warning(
                    f"Dropping guest cart line {op.key.guest_id} for user {user_id}: product or variant no longer exists"
                )
                guest.remove(op.key)
                result.skipped += 1
                continue

            try:
                # Applied as a delta against a fresh read, not the planned total.
                self.cart_repo.increment_or_insert(user_id, op.key, op.delta)
                self.cart_repo.commit()
            except Exception as e:
                self.cart_repo.rollback()
                logger.error(f"Consolidation of {op.key.guest_id} for user {user_id} failed: {str(e)}")
                raise

            guest.remove(op.key)
            if op.is_insert:
                result.inserted += 1
            else:
                result.incremented += 1

        logger.info(
            f"Consolidated guest cart for user {user_id}: "
            f"{result.inserted} inserted, {result.incremented} incremented, {result.skipped} skipped"
        )
        return result

    def sync_items(self, user_id: int, items: Iterable[Mapping[str, Any]]) -> ConsolidationResult:
        """
        Merge a client-held item list into the server cart

        Same merge as consolidate(); the client is expected to clear its list
        once this succeeds. A client that resends the same list after a
        failure will have already-merged pairs counted twice.
        """
        return self.consolidate(user_id, GuestCart.from_storage(items))

    # -------------------------------------------------------------- pricing

    def quote(self, view: CartView, country_code: str) -> Dict[str, Any]:
        """
        Price a cart for a destination country

        total = subtotal + shipping + tax, except tax-inclusive stores where
        the tax is already part of the subtotal.
        """
        subtotal = view.subtotal_cents
        shipping_quote = self.settings_service.calculate_shipping(
            country_code, shippable_items(view), subtotal
        )
        shipping = shipping_quote.rate if shipping_quote is not None else 0
        tax_quote = self.settings_service.calculate_tax(
            subtotal, shipping, country_code, taxable_items(view)
        )

        total = subtotal + shipping + (0 if tax_quote.inclusive else tax_quote.amount)
        return {
            "country_code": country_code.upper(),
            "subtotal": subtotal,
            "shipping": shipping_quote.to_dict() if shipping_quote is not None else None,
            "tax": tax_quote.to_dict(),
            "total": total,
        }

    # -------------------------------------------------------------- helpers

    @staticmethod
    def _find_variant(product: Product, variant_id: Optional[int]) -> Optional[ProductVariant]:
        if variant_id is None:
            return None
        return next((v for v in product.variants if v.id == variant_id), None)

    @staticmethod
    def _parse_guest_id(line_id: str) -> LineKey:
        try:
            return LineKey.from_guest_id(line_id)
        except ValueError as e:
            raise ValidationError(str(e))

    def _validate_purchasable(self, product_id: int, variant_id: Optional[int]) -> None:
        product = self.product_repo.get_by_id(product_id)
        if product is None:
            raise NotFoundError("Product", str(product_id))
        if variant_id is not None:
            variant = self.variant_repo.get_by_id(variant_id)
            if variant is None or variant.product_id != product_id:
                raise NotFoundError("Variant", str(variant_id))
