from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import selectinload

from nubia.models import Category, Product, ProductVariant
from nubia.repositories.base import BaseRepository
import logging

logger = logging.getLogger(__name__)

# sort key -> (column, descending)
SORTS = {
    "newest": (Product.id, True),
    "price_asc": (Product.price, False),
    "price_desc": (Product.price, True),
    "rating": (Product.rating, True),
}


class ProductRepository(BaseRepository[Product]):
    """Catalog reads plus the admin write paths for products and variants."""

    model = Product
    resource_name = "Product"

    def get_by_id_or_slug(self, ident: str) -> Optional[Product]:
        stmt = select(Product).options(selectinload(Product.variants), selectinload(Product.category))
        if str(ident).isdigit():
            stmt = stmt.where(Product.id == int(ident))
        else:
            stmt = stmt.where(Product.slug == ident)
        return self.scalar(stmt)

    def get_many(self, product_ids: List[int], for_update: bool = False) -> Dict[int, Product]:
        if not product_ids:
            return {}
        stmt = (
            select(Product)
            .options(selectinload(Product.variants))
            .where(Product.id.in_(set(product_ids)))
            .order_by(Product.id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return {p.id: p for p in self.scalars(stmt)}

    def list_products(
        self,
        limit: int,
        after: Optional[int] = None,
        category_slug: Optional[str] = None,
        search_query: Optional[str] = None,
        min_price: Optional[int] = None,
        max_price: Optional[int] = None,
        in_stock: Optional[bool] = None,
        sort: str = "newest",
    ) -> Tuple[List[Product], bool]:
        """
        Keyset pagination on (sort column, id).

        `after` is the id of the last product of the previous page; its sort
        value is looked up so ties on price or rating still page correctly.
        Returns (products, has_more).
        """
        column, descending = SORTS.get(sort, SORTS["newest"])

        stmt = select(Product).options(selectinload(Product.variants), selectinload(Product.category))

        if category_slug:
            stmt = stmt.join(Category, Product.category_id == Category.id).where(Category.slug == category_slug)
        if search_query:
            pattern = f"%{search_query}%"
            stmt = stmt.where(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
        if min_price is not None:
            stmt = stmt.where(Product.price >= min_price)
        if max_price is not None:
            stmt = stmt.where(Product.price <= max_price)
        if in_stock is not None:
            stmt = stmt.where(Product.in_stock == in_stock)

        if after is not None:
            cursor = self.get_by_id(after)
            if cursor is not None:
                value = getattr(cursor, column.key)
                if descending:
                    stmt = stmt.where(or_(column < value, and_(column == value, Product.id < cursor.id)))
                else:
                    stmt = stmt.where(or_(column > value, and_(column == value, Product.id > cursor.id)))

        if descending:
            stmt = stmt.order_by(column.desc(), Product.id.desc())
        else:
            stmt = stmt.order_by(column.asc(), Product.id.asc())

        rows = self.scalars(stmt.limit(limit + 1))
        return rows[:limit], len(rows) > limit

    def search(self, query: str, limit: int = 20) -> List[Product]:
        pattern = f"%{query}%"
        stmt = (
            select(Product)
            .options(selectinload(Product.variants))
            .where(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
            .order_by(Product.in_stock.desc(), Product.rating.desc(), Product.id.desc())
            .limit(limit)
        )
        return self.scalars(stmt)

    def categories_with_counts(self) -> List[Tuple[Category, int]]:
        stmt = (
            select(Category, func.count(Product.id))
            .outerjoin(Product, Product.category_id == Category.id)
            .group_by(Category.id)
            .order_by(Category.name)
        )
        with self.guard("SELECT"):
            return [(row[0], int(row[1])) for row in self.session.execute(stmt).all()]

    def get_category_by_slug(self, slug: str) -> Optional[Category]:
        return self.scalar(select(Category).where(Category.slug == slug))

    def slug_exists(self, slug: str) -> bool:
        return self.scalar(select(Product.id).where(Product.slug == slug)) is not None

    def get_variant(self, variant_id: int, for_update: bool = False) -> Optional[ProductVariant]:
        stmt = select(ProductVariant).where(ProductVariant.id == variant_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.scalar(stmt)

    def stock_levels(self) -> List[Tuple[int, int, int, int]]:
        """(product_id, price, units on hand, variant count) for every product."""
        stmt = (
            select(
                Product.id,
                Product.price,
                func.coalesce(func.sum(ProductVariant.stock), 0),
                func.count(ProductVariant.id),
            )
            .outerjoin(ProductVariant, ProductVariant.product_id == Product.id)
            .group_by(Product.id, Product.price)
        )
        with self.guard("SELECT"):
            return [
                (int(pid), int(price), int(units), int(variants))
                for pid, price, units, variants in self.session.execute(stmt).all()
            ]
