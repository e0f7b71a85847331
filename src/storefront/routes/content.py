import logging

from flask import Blueprint, abort, request
from werkzeug.exceptions import HTTPException

from storefront.core.auth import require_admin
from storefront.core.exceptions import BaseAPIException
from storefront.routes.schemas import HeroSlideSchema
from storefront.routes.utils import get_db, load_body, success_response
from storefront.services.content_service import HeroSlideService

logger = logging.getLogger(__name__)

content_bp = Blueprint("content", __name__)

_slide_schema = HeroSlideSchema()


@content_bp.route("/hero-slides", methods=["GET"])
def list_active_slides():
    """Active slides for the storefront, optionally for one location."""
    location = request.args.get("location") or None
    slides = HeroSlideService(get_db()).list_active(location)
    return success_response([s.to_dict() for s in slides])


@content_bp.route("/hero-slides/all", methods=["GET"])
def list_all_slides():
    db = get_db()
    require_admin(db)
    return success_response([s.to_dict() for s in HeroSlideService(db).list()])


@content_bp.route("/hero-slides/<int:slide_id>", methods=["GET"])
def get_slide(slide_id: int):
    return success_response(HeroSlideService(get_db()).get(slide_id).to_dict())


@content_bp.route("/hero-slides", methods=["POST"])
def create_slide():
    data = load_body(_slide_schema)

    try:
        db = get_db()
        require_admin(db)
        slide = HeroSlideService(db).create(data)
        return success_response(slide.to_dict(), "Slide created.", 201)
    except (BaseAPIException, HTTPException):
        raise
    except Exception as e:
        logger.error(f"create_slide error: {e}")
        abort(500, "Failed to create slide.")


@content_bp.route("/hero-slides/<int:slide_id>", methods=["PATCH"])
def update_slide(slide_id: int):
    data = load_body(_slide_schema, partial=True)

    db = get_db()
    require_admin(db)
    slide = HeroSlideService(db).update(slide_id, data)
    return success_response(slide.to_dict(), "Slide updated.")


@content_bp.route("/hero-slides/<int:slide_id>", methods=["DELETE"])
def delete_slide(slide_id: int):
    db = get_db()
    require_admin(db)
    HeroSlideService(db).remove(slide_id)
    return success_response({"id": slide_id}, "Slide deleted.")
