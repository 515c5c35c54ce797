from typing import Optional

from sqlalchemy.orm import Session

from nubia.core.exceptions import NotFoundError, ValidationError
from nubia.models import Product, Review
from nubia.repositories.product_repository import ProductRepository
from nubia.repositories.review_repository import ReviewRepository
from nubia.utils.dates import DateUtils
import logging

logger = logging.getLogger(__name__)


def serialize_review(review: Review) -> dict:
    return {
        "id": review.id,
        "product_id": review.product_id,
        "user_id": review.user_id,
        "author": (review.user.full_name or review.user.email.split("@")[0]) if review.user else None,
        "rating": review.rating,
        "title": review.title,
        "comment": review.comment,
        "created_at": DateUtils.to_iso_string(review.created_at),
    }


class ReviewService:
    """Product reviews. Writes keep products.rating and products.review_count in step."""

    def __init__(self, session: Session):
        self.reviews = ReviewRepository(session)
        self.products = ProductRepository(session)

    def list_for_product(self, product_id: int, page: int = 1, limit: int = 10) -> dict:
        if self.products.get_by_id(product_id) is None:
            raise NotFoundError("Product", str(product_id))

        offset = (page - 1) * limit
        rows = self.reviews.page_for_product(product_id, limit, offset)
        total, average = self.reviews.aggregate(product_id)
        counts = self.reviews.rating_distribution(product_id)

        return {
            "reviews": [serialize_review(r) for r in rows],
            "stats": {
                "total": total,
                "average": round(average, 1),
                "distribution": {str(star): counts.get(star, 0) for star in range(1, 6)},
            },
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": (total + limit - 1) // limit,
            },
        }

    def create(self, user_id: int, data: dict) -> dict:
        product = self.products.get_by_id(data["product_id"], for_update=True)
        if product is None:
            raise NotFoundError("Product", str(data["product_id"]))
        if self.reviews.exists_for(user_id, product.id):
            raise ValidationError("You have already reviewed this product")

        review = self.reviews.add(
            Review(
                product_id=product.id,
                user_id=user_id,
                rating=data["rating"],
                title=data.get("title"),
                comment=data.get("comment"),
            )
        )
        self._recompute(product)
        logger.info(f"User {user_id} rated product {product.id} {review.rating}/5")
        return serialize_review(review)

    def admin_list(self, limit: int, offset: int) -> dict:
        rows, total = self.reviews.admin_list(limit, offset)
        return {
            "items": [serialize_review(r) for r in rows],
            "pagination": {"total": total, "limit": limit, "offset": offset, "count": len(rows)},
        }

    def delete(self, review_id: int) -> None:
        review = self.reviews.get_or_404(review_id)
        product: Optional[Product] = self.products.get_by_id(review.product_id, for_update=True)
        self.reviews.delete(review)
        if product is not None:
            self._recompute(product)
        logger.info(f"Deleted review {review_id}")

    def _recompute(self, product: Product) -> None:
        count, average = self.reviews.aggregate(product.id)
        product.review_count = count
        product.rating = round(average, 1)
        self.products.flush()
