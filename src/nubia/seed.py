"""
Development data: a few categories, dressed-up catalog items with
size/colour stock, and two promo codes.

Run with:
    flask --app nubia.app seed

Idempotent: categories, products and codes that already exist (by slug or
code) are left untouched.
"""
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from nubia.models import Category, Product, ProductVariant, PromoCode

logger = logging.getLogger(__name__)

CATEGORIES = [("Robes", "robes"), ("Ensembles", "ensembles"), ("Accessoires", "accessoires")]

PRODUCTS = [
    {
        "slug": "robe-wax-soleil",
        "name": "Robe Wax Soleil",
        "description": "Robe longue en wax, coupe évasée.",
        "category": "robes",
        "price": 45000,
        "original_price": 55000,
        "variants": [("S", "jaune", 6), ("M", "jaune", 10), ("L", "jaune", 4)],
    },
    {
        "slug": "boubou-brode-dakar",
        "name": "Boubou Brodé Dakar",
        "description": "Grand boubou en bazin riche, broderie main.",
        "category": "ensembles",
        "price": 85000,
        "original_price": None,
        "variants": [("M", "blanc", 3), ("L", "blanc", 3), ("XL", "bleu", 2)],
    },
    {
        "slug": "ensemble-kente-aura",
        "name": "Ensemble Kente Aura",
        "description": "Haut et jupe assortis en kente tissé.",
        "category": "ensembles",
        "price": 62000,
        "original_price": None,
        "variants": [("S", "multicolore", 5), ("M", "multicolore", 0)],
    },
    {
        # No variants: sold without stock tracking
        "slug": "foulard-bogolan",
        "name": "Foulard Bogolan",
        "description": "Foulard en bogolan teint à la main.",
        "category": "accessoires",
        "price": 12000,
        "original_price": None,
        "variants": [],
    },
]

PROMO_CODES = [
    {"code": "BIENVENUE10", "description": "10% sur la première commande", "discount_type": "percentage",
     "discount_value": 10, "max_discount": 20000},
    {"code": "AURA5000", "description": "5 000 FCFA dès 50 000 FCFA", "discount_type": "fixed",
     "discount_value": 5000, "min_order_amount": 50000},
]


def seed(session: Session) -> dict:
    counts = {"categories": 0, "products": 0, "promo_codes": 0}

    categories = {c.slug: c for c in session.scalars(select(Category))}
    for name, slug in CATEGORIES:
        if slug not in categories:
            categories[slug] = Category(name=name, slug=slug)
            session.add(categories[slug])
            counts["categories"] += 1

    existing = set(session.scalars(select(Product.slug)))
    for p in PRODUCTS:
        if p["slug"] in existing:
            continue
        product = Product(
            slug=p["slug"],
            name=p["name"],
            description=p["description"],
            price=p["price"],
            original_price=p["original_price"],
            images=[],
            category=categories[p["category"]],
        )
        for size, color, stock in p["variants"]:
            product.variants.append(
                ProductVariant(sku=f"{p['slug']}-{size}-{color}".upper(), size=size, color=color, stock=stock)
            )
        product.in_stock = not product.variants or any(v.stock > 0 for v in product.variants)
        session.add(product)
        counts["products"] += 1
        logger.info(f"Seeded product {p['name']}")

    codes = set(session.scalars(select(PromoCode.code)))
    for data in PROMO_CODES:
        if data["code"] not in codes:
            session.add(PromoCode(current_uses=0, is_active=True, **data))
            counts["promo_codes"] += 1

    session.flush()
    return counts
