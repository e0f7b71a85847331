import logging
import math
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from storefront.core.exceptions import BusinessLogicError, ConflictError, ValidationError
from storefront.models import Category, Product, ProductVariant
from storefront.repositories.catalog_repository import (
    CategoryRepository,
    ProductRepository,
    VariantRepository,
)
from storefront.utils.date_utils import DateUtils
from storefront.utils.validators import ValidationUtils

logger = logging.getLogger(__name__)

LOW_STOCK_LEVEL = 10

PRODUCT_FIELDS = (
    "name", "description", "base_price", "compare_at_price", "images", "color_options",
    "size_options", "weight", "dimensions", "requires_shipping", "shipping_rate_override",
    "is_free_shipping", "is_taxable", "tax_rate_override", "category_id", "tags", "status",
    "is_featured",
)

VARIANT_FIELDS = (
    "color_id", "size", "sku", "stock_count", "low_stock_threshold", "price_adjustment",
    "weight", "dimensions", "image_url", "is_default",
)


def unique_slug(name: str, is_taken: Callable[[str], bool]) -> str:
    """Slug for name, suffixed -1, -2, ... until is_taken() says it is free"""
    base = ValidationUtils.generate_slug(name)
    suffix = 0
    while True:
        candidate = f"{base}-{suffix}" if suffix else base
        if not is_taken(candidate):
            return candidate
        suffix += 1


def featured_image_for(images: Optional[Sequence[Dict[str, Any]]]) -> Optional[str]:
    """The image flagged is_main, else the first image"""
    images = images or []
    main = next((img for img in images if img.get("is_main")), None)
    if main is not None:
        return main.get("url")
    return images[0].get("url") if images else None


def stock_status(total_stock: int) -> str:
    if total_stock == 0:
        return "out-of-stock"
    if total_stock < LOW_STOCK_LEVEL:
        return "low-stock"
    return "in-stock"


class CategoryService:
    """
    Category tree management

    Business Rules:
    - Slugs are generated from the name and kept unique with a -N suffix
    - New categories sort after their existing siblings unless told otherwise
    - A category with subcategories cannot be removed
    """

    def __init__(self, session):
        self.repo = CategoryRepository(session)

    def list_tree(self) -> List[Dict[str, Any]]:
        categories = self.repo.list_ordered()
        children: Dict[Optional[int], List[Category]] = {}
        for category in categories:
            children.setdefault(category.parent_id, []).append(category)

        def build(parent_id):
            return [
                {**category.to_dict(), "children": build(category.id)}
                for category in children.get(parent_id, [])
            ]

        return build(None)

    def get_by_slug(self, slug: str) -> Optional[Category]:
        return self.repo.get_by_slug(slug)

    def get_by_id(self, category_id: int) -> Optional[Category]:
        return self.repo.get_by_id(category_id)

    def subcategory_ids(self, category_id: int) -> List[int]:
        """Ids of every descendant of the category, depth first"""
        children: Dict[Optional[int], List[int]] = {}
        for category in self.repo.list_ordered():
            children.setdefault(category.parent_id, []).append(category.id)

        collected: List[int] = []
        seen: Set[int] = {category_id}
        stack = list(reversed(children.get(category_id, [])))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            collected.append(current)
            stack.extend(reversed(children.get(current, [])))
        return collected

    def create(self, data: Dict[str, Any]) -> Category:
        parent_id = data.get("parent_id")
        if parent_id is not None:
            self.repo.get_or_404(parent_id)

        slug = unique_slug(data["name"], self.repo.slug_exists)
        sort_order = data.get("sort_order")
        if sort_order is None:
            sort_order = self.repo.count_children(parent_id)

        category = self.repo.add(Category(
            name=data["name"],
            slug=slug,
            description=data.get("description"),
            image_url=data.get("image_url"),
            parent_id=parent_id,
            sort_order=sort_order,
        ))
        self.repo.commit()
        logger.info(f"Created category {category.id} ({slug})")
        return category

    def update(self, category_id: int, updates: Dict[str, Any]) -> Category:
        category = self.repo.get_or_404(category_id, message="Category not found")

        name = updates.get("name")
        if name and name != category.name:
            category.slug = unique_slug(
                name, lambda slug: self.repo.slug_exists(slug, exclude_id=category_id)
            )
        if updates.get("parent_id") == category_id:
            raise ValidationError("A category cannot be its own parent")

        for field in ("name", "description", "image_url", "parent_id", "sort_order"):
            if field in updates:
                setattr(category, field, updates[field])

        self.repo.flush()
        self.repo.commit()
        logger.info(f"Updated category {category_id}")
        return category

    def remove(self, category_id: int) -> None:
        category = self.repo.get_or_404(category_id, message="Category not found")
        if self.repo.count_children(category_id) > 0:
            raise BusinessLogicError(
                "Cannot delete category with subcategories", rule="category_has_children"
            )
        unlinked = self.repo.unlink_products(category_id)
        self.repo.delete(category)
        self.repo.commit()
        logger.info(f"Removed category {category_id}, unlinked {unlinked} products")

    def reorder(self, updates: List[Dict[str, int]]) -> None:
        for update in updates:
            category = self.repo.get_or_404(update["id"], message="Category not found")
            category.sort_order = update["sort_order"]
        self.repo.flush()
        self.repo.commit()
        logger.info(f"Reordered {len(updates)} categories")


class ProductService:
    """
    Product catalog business logic

    Business Rules:
    - Storefront listings only show active products
    - Category filters include every descendant category
    - Slugs are unique; the featured image is the main image or the first one
    - published_at is stamped when a product first becomes active
    """

    def __init__(self, session):
        self.repo = ProductRepository(session)
        self.categories = CategoryService(session)

    # ---------------------------------------------------------------- reads

    def enrich(self, products: Sequence[Product]) -> List[Dict[str, Any]]:
        """Listing shape: product fields plus stock, category, default variant and rating"""
        ratings = self.repo.rating_summary(p.id for p in products)
        category_names = {c.id: c.name for c in self.categories.repo.list_ordered()} if products else {}

        enriched = []
        for product in products:
            variants = list(product.variants)
            total_stock = sum(v.stock_count for v in variants)
            default = product.default_variant()
            review_count, rating = ratings.get(product.id, (0, 0.0))
            enriched.append({
                **product.to_dict(),
                "variant_count": len(variants),
                "total_stock": total_stock,
                "stock_status": stock_status(total_stock),
                "category_name": category_names.get(product.category_id),
                "sku": default.sku if default is not None else None,
                "default_variant_id": default.id if default is not None else None,
                "image": product.featured_image,
                "review_count": review_count,
                "rating": rating,
            })
        return enriched

    def get_filtered(
        self,
        category_slug: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[int] = None,
        max_price: Optional[int] = None,
        colors: Optional[List[str]] = None,
        sizes: Optional[List[str]] = None,
        sort_by: str = "newest",
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """Filtered, sorted and paginated storefront listing"""
        page = max(page, 1)
        limit = max(limit, 1)

        category_ids = None
        if category_slug:
            category = self.categories.get_by_slug(category_slug)
            if category is None:
                return self._page([], 0, page, limit)
            category_ids = [category.id] + self.categories.subcategory_ids(category.id)

        products = self.repo.find_active(
            category_ids=category_ids,
            search=search.strip() if search else None,
            min_price=min_price,
            max_price=max_price,
            sort_by=sort_by,
        )

        if colors:
            wanted = {c.lower() for c in colors}
            products = [
                p for p in products
                if wanted & {(option.get("name") or "").lower() for option in (p.color_options or [])}
            ]
        if sizes:
            wanted = {s.lower() for s in sizes}
            products = [
                p for p in products
                if wanted & {(size or "").lower() for size in (p.size_options or [])}
            ]

        start = (page - 1) * limit
        return self._page(products[start:start + limit], len(products), page, limit)

    def _page(self, products, total_items: int, page: int, limit: int) -> Dict[str, Any]:
        total_pages = math.ceil(total_items / limit)
        return {
            "products": self.enrich(products),
            "total_items": total_items,
            "total_pages": total_pages,
            "current_page": page,
            "has_more": page < total_pages,
        }

    def list_admin(self, status: Optional[str] = None, category_id: Optional[int] = None,
                   limit: int = 100) -> List[Dict[str, Any]]:
        products = [
            p for p in self.repo.list_all_with_variants()
            if (status is None or p.status == status)
            and (category_id is None or p.category_id == category_id)
        ]
        return self.enrich(products[:limit])

    def get_by_id(self, product_id: int) -> Product:
        return self.repo.get_or_404(product_id, message="Product not found")

    def get_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        """Product with its variants and rating summary, or None"""
        product = self.repo.get_by_slug(slug)
        if product is None:
            return None
        data = self.enrich([product])[0]
        data["variants"] = [v.to_dict() for v in product.variants]
        return data

    def new_arrivals(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self.enrich(self.repo.list_newest_active(limit))

    def featured(self, limit: int = 8) -> List[Dict[str, Any]]:
        return self.enrich(self.repo.list_featured(limit))

    # --------------------------------------------------------------- writes

    def create(self, data: Dict[str, Any]) -> Product:
        if data.get("category_id") is not None:
            self.categories.repo.get_or_404(data["category_id"], message="Category not found")

        fields = {field: data[field] for field in PRODUCT_FIELDS if field in data}
        product = Product(**fields)
        product.slug = unique_slug(data["name"], self.repo.slug_exists)
        product.featured_image = featured_image_for(data.get("images"))
        if product.status == "active":
            product.published_at = DateUtils.now_utc()

        self.repo.add(product)
        self.repo.commit()
        logger.info(f"Created product {product.id} ({product.slug})")
        return product

    def update(self, product_id: int, updates: Dict[str, Any]) -> Product:
        product = self.get_by_id(product_id)

        if updates.get("category_id") is not None:
            self.categories.repo.get_or_404(updates["category_id"], message="Category not found")
        if "images" in updates:
            product.featured_image = featured_image_for(updates["images"])
        if updates.get("status") == "active" and product.status != "active":
            product.published_at = DateUtils.now_utc()

        for field in PRODUCT_FIELDS:
            if field in updates:
                setattr(product, field, updates[field])

        self.repo.flush()
        self.repo.commit()
        logger.info(f"Updated product {product_id}")
        return product

    def archive(self, product_id: int) -> Product:
        product = self.get_by_id(product_id)
        product.status = "archived"
        self.repo.flush()
        self.repo.commit()
        logger.info(f"Archived product {product_id}")
        return product

    def hard_delete(self, product_id: int) -> bool:
        """Delete the product and everything pointing at it; False when already gone"""
        product = self.repo.get_by_id(product_id)
        if product is None:
            return False
        self.repo.hard_delete(product)
        self.repo.commit()
        logger.info(f"Hard-deleted product {product_id}")
        return True


class VariantService:
    """
    Product variants (admin)

    Business Rules:
    - SKUs are unique across the catalog
    - At most one default variant per product
    - Stock never goes below zero
    """

    def __init__(self, session):
        self.repo = VariantRepository(session)
        self.products = ProductRepository(session)

    def list_for_product(self, product_id: int) -> List[ProductVariant]:
        return self.repo.list_for_product(product_id)

    def get_by_sku(self, sku: str) -> Optional[ProductVariant]:
        return self.repo.get_by_sku(sku)

    def get_by_id(self, variant_id: int) -> ProductVariant:
        return self.repo.get_or_404(variant_id, message="Variant not found")

    @staticmethod
    def _normalize_sku(sku: str) -> str:
        try:
            return ValidationUtils.normalize_sku(sku)
        except ValueError as e:
            raise ValidationError(str(e))

    def _ensure_sku_free(self, sku: str, variant_id: Optional[int] = None) -> None:
        existing = self.repo.get_by_sku(sku)
        if existing is not None and existing.id != variant_id:
            raise ConflictError(f'SKU "{sku}" already exists', conflict_field="sku")

    def create(self, product_id: int, data: Dict[str, Any]) -> ProductVariant:
        self.products.get_or_404(product_id, message="Product not found")
        sku = self._normalize_sku(data["sku"])
        self._ensure_sku_free(sku)

        if data.get("is_default"):
            self.repo.clear_default(product_id)

        fields = {field: data[field] for field in VARIANT_FIELDS if field in data}
        fields["sku"] = sku
        variant = self.repo.add(ProductVariant(product_id=product_id, **fields))
        self.repo.commit()
        logger.info(f"Created variant {variant.id} ({sku}) for product {product_id}")
        return variant

    def update(self, variant_id: int, updates: Dict[str, Any]) -> ProductVariant:
        variant = self.get_by_id(variant_id)

        if "sku" in updates:
            updates = {**updates, "sku": self._normalize_sku(updates["sku"])}
            if updates["sku"] != variant.sku:
                self._ensure_sku_free(updates["sku"], variant_id)
        if updates.get("is_default"):
            self.repo.clear_default(variant.product_id, except_id=variant_id)

        for field in VARIANT_FIELDS:
            if field in updates:
                setattr(variant, field, updates[field])

        self.repo.flush()
        self.repo.commit()
        logger.info(f"Updated variant {variant_id}")
        return variant

    def adjust_stock(self, variant_id: int, adjustment: int) -> int:
        """Apply a signed stock adjustment, floored at zero. Returns the new count."""
        variant = self.get_by_id(variant_id)
        variant.stock_count = max(0, (variant.stock_count or 0) + adjustment)
        self.repo.flush()
        self.repo.commit()
        logger.info(f"Adjusted stock of variant {variant_id} by {adjustment} to {variant.stock_count}")
        return variant.stock_count

    def remove(self, variant_id: int) -> None:
        variant = self.get_by_id(variant_id)
        self.repo.delete_with_cart_rows(variant)
        self.repo.commit()
        logger.info(f"Removed variant {variant_id}")
