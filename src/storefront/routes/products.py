import logging

from flask import Blueprint, abort, request
from werkzeug.exceptions import HTTPException

from storefront.core.auth import require_admin
from storefront.core.exceptions import BaseAPIException, NotFoundError
from storefront.repositories.catalog_repository import SORT_ORDERS
from storefront.routes.schemas import ProductSchema, StockAdjustmentSchema, VariantSchema
from storefront.routes.utils import (
    get_db,
    load_body,
    pagination_args,
    parse_list,
    parse_optional_int,
    success_response,
)
from storefront.services.catalog_service import ProductService, VariantService

logger = logging.getLogger(__name__)

products_bp = Blueprint("products", __name__)

_product_schema = ProductSchema()
_variant_schema = VariantSchema()
_stock_schema = StockAdjustmentSchema()


@products_bp.route("", methods=["GET"])
def list_products():
    """Active products, filtered, sorted and paginated."""
    page, limit = pagination_args()

    search_query = request.args.get("q", "").strip()
    if len(search_query) > 100:
        abort(400, "Search query cannot exceed 100 characters.")

    min_price = parse_optional_int(request.args.get("min_price"), field_name="min_price")
    max_price = parse_optional_int(request.args.get("max_price"), field_name="max_price")
    if min_price is not None and max_price is not None and min_price > max_price:
        abort(400, "min_price cannot be greater than max_price.")

    sort_by = request.args.get("sort_by", "newest")
    if sort_by not in SORT_ORDERS:
        abort(400, f"sort_by must be one of: {', '.join(SORT_ORDERS)}")

    try:
        result = ProductService(get_db()).get_filtered(
            category_slug=request.args.get("category") or None,
            search=search_query or None,
            min_price=min_price,
            max_price=max_price,
            colors=parse_list(request.args.get("colors")),
            sizes=parse_list(request.args.get("sizes")),
            sort_by=sort_by,
            page=page,
            limit=limit,
        )
        return success_response(result)
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"list_products error: {e}")
        abort(500, "Failed to fetch products.")


@products_bp.route("/new-arrivals", methods=["GET"])
def new_arrivals():
    return success_response(ProductService(get_db()).new_arrivals())


@products_bp.route("/featured", methods=["GET"])
def featured_products():
    return success_response(ProductService(get_db()).featured())


@products_bp.route("/slug/<slug>", methods=["GET"])
def get_product_by_slug(slug: str):
    """Product detail page data: product, variants, stock and rating."""
    product = ProductService(get_db()).get_by_slug(slug)
    if product is None:
        raise NotFoundError("Product", slug, message="Product not found")
    return success_response(product)


@products_bp.route("/<int:product_id>", methods=["GET"])
def get_product(product_id: int):
    service = ProductService(get_db())
    product = service.get_by_id(product_id)
    data = service.enrich([product])[0]
    data["variants"] = [v.to_dict() for v in product.variants]
    return success_response(data)


# ------------------------------------------------------------------ #
# Admin                                                               #
# ------------------------------------------------------------------ #

@products_bp.route("/admin", methods=["GET"])
def list_products_admin():
    """Every product regardless of status, for the back office."""
    db = get_db()
    require_admin(db)

    status = request.args.get("status") or None
    if status is not None and status not in ("draft", "active", "archived"):
        abort(400, "status must be one of: draft, active, archived")
    category_id = parse_optional_int(request.args.get("category_id"), field_name="category_id")

    return success_response(ProductService(db).list_admin(status=status, category_id=category_id))


@products_bp.route("", methods=["POST"])
def create_product():
    data = load_body(_product_schema)

    try:
        db = get_db()
        require_admin(db)
        product = ProductService(db).create(data)
        return success_response(product.to_dict(), "Product created.", 201)
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"create_product error: {e}")
        abort(500, "Failed to create product.")


@products_bp.route("/<int:product_id>", methods=["PATCH"])
def update_product(product_id: int):
    data = load_body(_product_schema, partial=True)

    try:
        db = get_db()
        require_admin(db)
        product = ProductService(db).update(product_id, data)
        return success_response(product.to_dict(), "Product updated.")
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"update_product error: {e}")
        abort(500, "Failed to update product.")


@products_bp.route("/<int:product_id>/archive", methods=["POST"])
def archive_product(product_id: int):
    db = get_db()
    require_admin(db)
    product = ProductService(db).archive(product_id)
    return success_response(product.to_dict(), "Product archived.")


@products_bp.route("/<int:product_id>", methods=["DELETE"])
def delete_product(product_id: int):
    """Hard delete: the product, its variants, and any cart and wishlist rows pointing at it."""
    db = get_db()
    require_admin(db)
    if not ProductService(db).hard_delete(product_id):
        raise NotFoundError("Product", str(product_id), message="Product not found")
    return success_response({"id": product_id}, "Product deleted.")


# ------------------------------------------------------------------ #
# Variants                                                            #
# ------------------------------------------------------------------ #

@products_bp.route("/<int:product_id>/variants", methods=["GET"])
def list_variants(product_id: int):
    variants = VariantService(get_db()).list_for_product(product_id)
    return success_response([v.to_dict() for v in variants])


@products_bp.route("/<int:product_id>/variants", methods=["POST"])
def create_variant(product_id: int):
    data = load_body(_variant_schema)

    try:
        db = get_db()
        require_admin(db)
        variant = VariantService(db).create(product_id, data)
        return success_response(variant.to_dict(), "Variant created.", 201)
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"create_variant error: {e}")
        abort(500, "Failed to create variant.")


@products_bp.route("/variants/sku/<sku>", methods=["GET"])
def get_variant_by_sku(sku: str):
    db = get_db()
    require_admin(db)
    variant = VariantService(db).get_by_sku(sku.strip())
    if variant is None:
        raise NotFoundError("Variant", sku, message="Variant not found")
    return success_response(variant.to_dict())


@products_bp.route("/variants/<int:variant_id>", methods=["PATCH"])
def update_variant(variant_id: int):
    data = load_body(_variant_schema, partial=True)

    try:
        db = get_db()
        require_admin(db)
        variant = VariantService(db).update(variant_id, data)
        return success_response(variant.to_dict(), "Variant updated.")
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"update_variant error: {e}")
        abort(500, "Failed to update variant.")


@products_bp.route("/variants/<int:variant_id>/stock", methods=["POST"])
def adjust_variant_stock(variant_id: int):
    """Apply a signed stock adjustment; stock never drops below zero."""
    data = load_body(_stock_schema)

    db = get_db()
    require_admin(db)
    stock_count = VariantService(db).adjust_stock(variant_id, data["adjustment"])
    return success_response({"id": variant_id, "stock_count": stock_count})


@products_bp.route("/variants/<int:variant_id>", methods=["DELETE"])
def delete_variant(variant_id: int):
    db = get_db()
    require_admin(db)
    VariantService(db).remove(variant_id)
    return success_response({"id": variant_id}, "Variant deleted.")
