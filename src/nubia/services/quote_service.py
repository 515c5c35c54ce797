from collections import defaultdict
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from nubia.core.exceptions import InsufficientStockError, ValidationError
from nubia.models import Product
from nubia.repositories.product_repository import ProductRepository
from nubia.services.pricing import Quote, QuoteLine, compute_quote
from nubia.services.promo_service import PromoService
from nubia.services.stock_service import StockService


class QuoteService:
    """
    Prices a basket from database prices only. Client-sent prices are ignored.

    Used by the quote endpoint and, with lock=True, inside every order
    creation path so stock is checked and rows are locked in the same
    transaction that writes the order.
    """

    def __init__(self, session: Session):
        self.products = ProductRepository(session)
        self.stock = StockService(session)
        self.promos = PromoService(session)

    def build(
        self,
        items: List[dict],
        shipping_method: str = "standard",
        promo_code: Optional[str] = None,
        lock: bool = False,
    ) -> Quote:
        if not items:
            raise ValidationError("At least one item is required")

        products = self.products.get_many([i["product_id"] for i in items], for_update=lock)
        requested: Dict[int, int] = defaultdict(int)
        requested_variants: Dict[int, int] = defaultdict(int)
        variants = {}
        lines = []

        for item in items:
            product = self._check_product(products, item)
            requested[product.id] += item["quantity"]
            variant = None
            if item.get("variant_id") is not None:
                variant = next((v for v in product.variants if v.id == item["variant_id"]), None)
                if variant is None:
                    raise ValidationError(
                        f"Variant {item['variant_id']} does not belong to product {product.id}"
                    )
                requested_variants[variant.id] += item["quantity"]
                variants[variant.id] = (product, variant)
            lines.append(
                QuoteLine(
                    product_id=product.id,
                    variant_id=variant.id if variant else None,
                    name=product.name,
                    unit_price=product.price,
                    quantity=item["quantity"],
                    size=variant.size if variant else item.get("size"),
                    color=variant.color if variant else item.get("color"),
                )
            )

        self.stock.ensure_available(dict(requested), products)
        self._check_variants(requested_variants, variants)

        discount = 0
        applied_code = None
        if promo_code:
            subtotal = sum(line.line_total for line in lines)
            result = self.promos.evaluate(promo_code, subtotal, for_update=lock)
            discount = result.discount_amount
            applied_code = result.code

        return compute_quote(lines, shipping_method, discount=discount, promo_code=applied_code)

    def _check_variants(self, requested: Dict[int, int], variants: Dict[int, tuple]) -> None:
        """Per-size check on top of the product total: on-hand minus holds on that variant."""
        available = self.stock.available_variant_quantities(v for _, v in variants.values())
        for variant_id, quantity in requested.items():
            if available[variant_id] < quantity:
                product, variant = variants[variant_id]
                raise InsufficientStockError(
                    f"{product.name} ({variant.size or variant.color or variant.sku})",
                    available[variant_id],
                    quantity,
                )

    @staticmethod
    def _check_product(products: Dict[int, Product], item: dict) -> Product:
        product = products.get(item["product_id"])
        if product is None:
            raise ValidationError(f"Product {item['product_id']} not found")
        if not product.in_stock:
            raise ValidationError(f"{product.name} is out of stock")
        return product
