import logging

from flask import Blueprint, abort, request
from werkzeug.exceptions import HTTPException

from storefront.core.auth import get_identity, require_admin, require_user
from storefront.core.exceptions import BaseAPIException, UnauthorizedError
from storefront.routes.schemas import ReviewSchema
from storefront.routes.utils import get_db, load_body, pagination_args, success_response
from storefront.services.review_service import ReviewService

logger = logging.getLogger(__name__)

reviews_bp = Blueprint("reviews", __name__)

_review_schema = ReviewSchema()


@reviews_bp.route("/products/<int:product_id>", methods=["GET"])
def list_product_reviews(product_id: int):
    """Approved reviews for a product, newest first."""
    return success_response(ReviewService(get_db()).list_for_product(product_id))


@reviews_bp.route("/products/<int:product_id>/stats", methods=["GET"])
def product_review_stats(product_id: int):
    return success_response(ReviewService(get_db()).stats(product_id))


@reviews_bp.route("/products/<int:product_id>", methods=["POST"])
def submit_review(product_id: int):
    data = load_body(_review_schema)

    try:
        if get_identity() is None:
            raise UnauthorizedError("You must be logged in to leave a review.")
        db = get_db()
        user = require_user(db)
        review = ReviewService(db).submit(user, product_id, data)
        return success_response(review.to_dict(), "Review submitted.", 201)
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"submit_review error: {e}")
        abort(500, "Failed to submit review.")


@reviews_bp.route("/admin", methods=["GET"])
def list_reviews_admin():
    db = get_db()
    require_admin(db)
    page, limit = pagination_args()
    search = request.args.get("q", "").strip() or None
    return success_response(ReviewService(db).list_admin(search=search, page=page, limit=limit))


@reviews_bp.route("/<int:review_id>", methods=["DELETE"])
def delete_review(review_id: int):
    db = get_db()
    require_admin(db)
    ReviewService(db).delete(review_id)
    return success_response({"id": review_id}, "Review deleted.")
