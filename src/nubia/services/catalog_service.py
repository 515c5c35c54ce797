from typing import List, Optional

from sqlalchemy.orm import Session

from nubia.core.exceptions import ConflictError, NotFoundError, ValidationError
from nubia.models import Category, Product, ProductVariant
from nubia.repositories.product_repository import SORTS, ProductRepository
from nubia.services.stock_service import StockService
from nubia.utils.dates import DateUtils
from nubia.utils.validators import ValidationUtils
import logging

logger = logging.getLogger(__name__)

MIN_SEARCH_LENGTH = 2


def serialize_variant(variant: ProductVariant) -> dict:
    return {
        "id": variant.id,
        "sku": variant.sku,
        "size": variant.size,
        "color": variant.color,
        "stock": variant.stock,
    }


def serialize_product(product: Product, available: Optional[int] = None, detail: bool = False) -> dict:
    data = {
        "id": product.id,
        "slug": product.slug,
        "name": product.name,
        "price": product.price,
        "original_price": product.original_price,
        "category": product.category.slug if product.category else None,
        "image_url": product.image_url,
        "in_stock": product.in_stock,
        "rating": round(product.rating or 0, 1),
        "review_count": product.review_count,
        "available_stock": available,
    }
    if detail:
        data.update(
            {
                "description": product.description,
                "images": product.images or [],
                "variants": [serialize_variant(v) for v in product.variants],
                "sizes": sorted({v.size for v in product.variants if v.size}),
                "colors": sorted({v.color for v in product.variants if v.color}),
                "created_at": DateUtils.to_iso_string(product.created_at),
            }
        )
    return data


class CatalogService:
    """
    Product browsing for the storefront and product maintenance for the back office.

    Every product returned to the storefront carries available_stock, which
    already subtracts units held by unpaid orders.
    """

    def __init__(self, session: Session):
        self.repo = ProductRepository(session)
        self.stock = StockService(session)

    def list_products(
        self,
        limit: int,
        after: Optional[int] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[int] = None,
        max_price: Optional[int] = None,
        in_stock: Optional[bool] = None,
        sort: str = "newest",
    ) -> dict:
        if min_price is not None and max_price is not None and min_price > max_price:
            raise ValidationError("min_price cannot be greater than max_price")
        if sort not in SORTS:
            raise ValidationError(f"sort must be one of: {', '.join(SORTS)}")

        products, has_more = self.repo.list_products(
            limit=limit,
            after=after,
            category_slug=category,
            search_query=search,
            min_price=min_price,
            max_price=max_price,
            in_stock=in_stock,
            sort=sort,
        )
        available = self.stock.available_quantities(products)
        items = [serialize_product(p, available[p.id]) for p in products]
        cursor = items[-1]["id"] if items and has_more else None

        logger.info(f"Listed {len(items)} products (sort={sort}, category={category})")
        return {
            "items": items,
            "pagination": {"cursor": cursor, "has_more": has_more, "count": len(items)},
        }

    def get_product(self, ident: str) -> dict:
        product = self.repo.get_by_id_or_slug(ident)
        if product is None:
            raise NotFoundError("Product", ident)
        return serialize_product(product, self.stock.available_quantity(product), detail=True)

    def search(self, query: str) -> List[dict]:
        query = (query or "").strip()
        if len(query) < MIN_SEARCH_LENGTH:
            raise ValidationError(f"Search query must be at least {MIN_SEARCH_LENGTH} characters")
        products = self.repo.search(query)
        available = self.stock.available_quantities(products)
        return [serialize_product(p, available[p.id]) for p in products]

    def list_categories(self) -> List[dict]:
        return [
            {"id": c.id, "name": c.name, "slug": c.slug, "product_count": count}
            for c, count in self.repo.categories_with_counts()
        ]

    # ------------------------------------------------------------------ #
    # Admin                                                               #
    # ------------------------------------------------------------------ #

    def create_product(self, data: dict) -> dict:
        slug = data.get("slug") or ValidationUtils.slugify(data["name"])
        if self.repo.slug_exists(slug):
            raise ConflictError(f"A product with slug '{slug}' already exists", "slug")

        product = Product(
            slug=slug,
            name=data["name"],
            description=data.get("description"),
            price=data["price"],
            original_price=data.get("original_price"),
            image_url=data.get("image_url"),
            images=data.get("images") or [],
            category=self._category(data.get("category")),
        )
        for v in data.get("variants") or []:
            product.variants.append(
                ProductVariant(
                    sku=v.get("sku") or f"{slug}-{v.get('size') or 'u'}-{v.get('color') or 'u'}".upper(),
                    size=v.get("size"),
                    color=v.get("color"),
                    stock=v.get("stock", 0),
                )
            )
        product.in_stock = not product.variants or any(v.stock > 0 for v in product.variants)

        self.repo.add(product)
        logger.info(f"Created product {product.id} ({slug}) with {len(product.variants)} variant(s)")
        return serialize_product(product, self.stock.available_quantity(product), detail=True)

    def update_product(self, product_id: int, data: dict) -> dict:
        product = self.repo.get_or_404(product_id)
        for field in ("name", "description", "price", "original_price", "image_url", "images", "in_stock"):
            if field in data:
                setattr(product, field, data[field])
        if "category" in data:
            product.category = self._category(data["category"])
        self.repo.flush()
        return serialize_product(product, self.stock.available_quantity(product), detail=True)

    def update_variant_stock(self, variant_id: int, stock: int) -> dict:
        product = self.stock.set_variant_stock(variant_id, stock)
        return serialize_product(product, self.stock.available_quantity(product), detail=True)

    def _category(self, slug: Optional[str]) -> Optional[Category]:
        if not slug:
            return None
        category = self.repo.get_category_by_slug(slug)
        if category is None:
            raise ValidationError(f"Unknown category: {slug}")
        return category
