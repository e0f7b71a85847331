import logging
from typing import Any, Dict, List, Optional

from storefront.core.exceptions import ConflictError, NotFoundError, ValidationError
from storefront.models import Review, User
from storefront.repositories.catalog_repository import ProductRepository
from storefront.repositories.engagement_repository import ReviewRepository
from storefront.repositories.order_repository import OrderRepository

logger = logging.getLogger(__name__)


def reviewer_name(user: Optional[User]) -> str:
    if user is None:
        return "Anonymous"
    return user.first_name or "User"


class ReviewService:
    """
    Product reviews

    Business Rules:
    - One review per user per product
    - Ratings are whole stars from 1 to 5
    - A review is a verified purchase when the user has a delivered order
      containing the product
    - Reviews are approved on submission
    """

    def __init__(self, session):
        self.repo = ReviewRepository(session)
        self.products = ProductRepository(session)
        self.orders = OrderRepository(session)

    def submit(self, user: User, product_id: int, data: Dict[str, Any]) -> Review:
        rating = data.get("rating")
        if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5.")

        self.products.get_or_404(product_id, message="Product not found")
        if self.repo.find_by_user_and_product(user.id, product_id) is not None:
            raise ConflictError("You have already reviewed this product.")

        review = self.repo.add(Review(
            product_id=product_id,
            user_id=user.id,
            rating=rating,
            title=data.get("title"),
            content=data["content"],
            images=data.get("images"),
            is_verified_purchase=self.orders.has_delivered_product(user.id, product_id),
            helpful_count=0,
            status="approved",
        ))
        self.repo.commit()
        logger.info(
            f"User {user.id} reviewed product {product_id} ({rating} stars, "
            f"verified={review.is_verified_purchase})"
        )
        return review

    def list_for_product(self, product_id: int, limit: int = 20) -> List[Dict[str, Any]]:
        return [
            {
                **review.to_dict(),
                "user_name": reviewer_name(review.user),
                "user_avatar": review.user.avatar_url if review.user is not None else None,
            }
            for review in self.repo.list_approved(product_id, limit)
        ]

    def stats(self, product_id: int) -> Dict[str, Any]:
        """Count, average and 1..5 star breakdown over approved reviews"""
        ratings = self.repo.approved_ratings(product_id)
        breakdown = [0, 0, 0, 0, 0]
        for rating in ratings:
            if 1 <= rating <= 5:
                breakdown[rating - 1] += 1
        count = len(ratings)
        return {
            "count": count,
            "average": sum(ratings) / count if count else 0,
            "breakdown": breakdown,
        }

    def delete(self, review_id: int) -> None:
        review = self.repo.get_by_id(review_id)
        if review is None:
            raise NotFoundError("Review", str(review_id))
        self.repo.delete(review)
        self.repo.commit()
        logger.info(f"Deleted review {review_id}")

    def list_admin(self, search: Optional[str] = None, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        page = max(page, 1)
        reviews, total = self.repo.search(search=search, limit=limit, offset=(page - 1) * limit)
        items = []
        for review in reviews:
            product = review.product
            items.append({
                **review.to_dict(),
                "product_name": product.name if product is not None else "Unknown Product",
                "product_image": (product.featured_image or product.main_image_url) if product is not None else None,
                "slug": product.slug if product is not None else None,
                "reviewer_name": reviewer_name(review.user),
                "reviewer_email": review.user.email if review.user is not None else None,
            })
        return {"reviews": items, "total": total, "page": page, "limit": limit}
