import logging

from flask import Blueprint, abort
from werkzeug.exceptions import HTTPException

from storefront.core.auth import require_admin
from storefront.core.exceptions import BaseAPIException, NotFoundError
from storefront.routes.schemas import CategorySchema, ReorderCategoriesSchema
from storefront.routes.utils import get_db, load_body, success_response
from storefront.services.catalog_service import CategoryService

logger = logging.getLogger(__name__)

categories_bp = Blueprint("categories", __name__)

_category_schema = CategorySchema()
_reorder_schema = ReorderCategoriesSchema()


@categories_bp.route("", methods=["GET"])
def list_categories():
    """The category tree, each level ordered by sort_order."""
    return success_response(CategoryService(get_db()).list_tree())


@categories_bp.route("/slug/<slug>", methods=["GET"])
def get_category_by_slug(slug: str):
    category = CategoryService(get_db()).get_by_slug(slug)
    if category is None:
        raise NotFoundError("Category", slug, message="Category not found")
    return success_response(category.to_dict())


@categories_bp.route("/<int:category_id>", methods=["GET"])
def get_category(category_id: int):
    service = CategoryService(get_db())
    category = service.get_by_id(category_id)
    if category is None:
        raise NotFoundError("Category", str(category_id), message="Category not found")
    return success_response({**category.to_dict(), "subcategory_ids": service.subcategory_ids(category_id)})


@categories_bp.route("", methods=["POST"])
def create_category():
    data = load_body(_category_schema)

    try:
        db = get_db()
        require_admin(db)
        category = CategoryService(db).create(data)
        return success_response(category.to_dict(), "Category created.", 201)
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"create_category error: {e}")
        abort(500, "Failed to create category.")


@categories_bp.route("/<int:category_id>", methods=["PATCH"])
def update_category(category_id: int):
    data = load_body(_category_schema, partial=True)

    try:
        db = get_db()
        require_admin(db)
        category = CategoryService(db).update(category_id, data)
        return success_response(category.to_dict(), "Category updated.")
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"update_category error: {e}")
        abort(500, "Failed to update category.")


@categories_bp.route("/<int:category_id>", methods=["DELETE"])
def delete_category(category_id: int):
    """Rejected with 422 while the category still has subcategories."""
    db = get_db()
    require_admin(db)
    CategoryService(db).remove(category_id)
    return success_response({"id": category_id}, "Category deleted.")


@categories_bp.route("/reorder", methods=["POST"])
def reorder_categories():
    data = load_body(_reorder_schema)

    db = get_db()
    require_admin(db)
    CategoryService(db).reorder(data["items"])
    return success_response({"updated": len(data["items"])}, "Categories reordered.")
