from typing import Dict, List, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from nubia.models import Review
from nubia.repositories.base import BaseRepository


class ReviewRepository(BaseRepository[Review]):
    model = Review
    resource_name = "Review"

    def exists_for(self, user_id: int, product_id: int) -> bool:
        return self.count(Review.user_id == user_id, Review.product_id == product_id) > 0

    def page_for_product(self, product_id: int, limit: int, offset: int) -> List[Review]:
        stmt = (
            select(Review)
            .options(selectinload(Review.user))
            .where(Review.product_id == product_id)
            .order_by(Review.created_at.desc(), Review.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return self.scalars(stmt)

    def rating_distribution(self, product_id: int) -> Dict[int, int]:
        stmt = (
            select(Review.rating, func.count())
            .where(Review.product_id == product_id)
            .group_by(Review.rating)
        )
        with self.guard("SELECT"):
            return {int(rating): int(n) for rating, n in self.session.execute(stmt).all()}

    def aggregate(self, product_id: int) -> Tuple[int, float]:
        """(count, average) for one product."""
        stmt = select(func.count(), func.avg(Review.rating)).where(Review.product_id == product_id)
        with self.guard("SELECT"):
            count, average = self.session.execute(stmt).one()
        return int(count or 0), float(average or 0)

    def admin_list(self, limit: int, offset: int) -> Tuple[List[Review], int]:
        stmt = (
            select(Review)
            .options(selectinload(Review.user))
            .order_by(Review.created_at.desc(), Review.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return self.scalars(stmt), self.count()
