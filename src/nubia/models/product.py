from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Column, DateTime, Float, Integer, Text
from sqlalchemy import ForeignKey
from sqlalchemy.orm import relationship

from nubia.db import Base, BigIntPK, JSONType


class Category(Base):
    """
    Top-level grouping for products (e.g. Robes, Costumes, Accessoires).
    """

    __tablename__ = "categories"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False, unique=True)
    slug = Column(Text, nullable=False, unique=True)

    products = relationship("Product", back_populates="category")

    def __repr__(self) -> str:
        return f"<Category id={self.id} slug={self.slug!r}>"


class Product(Base):
    """
    A catalog item. Sizes and colours that can actually be bought live in
    ProductVariant, each with its own stock count.

    price and original_price are whole XOF (FCFA has no minor unit).
    rating/review_count are denormalised from reviews and recomputed each
    time a review is added or removed.
    """

    __tablename__ = "products"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    slug = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(BigInteger, nullable=False)
    original_price = Column(BigInteger, nullable=True)
    category_id = Column(BigInteger, ForeignKey("categories.id"), nullable=True)
    image_url = Column(Text, nullable=True)
    images = Column(JSONType, nullable=False, default=list)
    in_stock = Column(Boolean, nullable=False, default=True)
    rating = Column(Float, nullable=False, default=0)
    review_count = Column(Integer, nullable=False, default=0)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (CheckConstraint("price >= 0", name="ck_product_price"),)

    category = relationship("Category", back_populates="products")
    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariant.id",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} slug={self.slug!r} price={self.price}>"


class ProductVariant(Base):
    """
    A purchasable size/colour of a product.

    stock is the on-hand count. Pending payments hold units through
    stock_reservations instead of decrementing stock; stock only moves
    when a reservation is finalized (or restocked on cancellation).
    """

    __tablename__ = "product_variants"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    product_id = Column(
        BigInteger, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    sku = Column(Text, nullable=False, unique=True)
    size = Column(Text, nullable=True)
    color = Column(Text, nullable=True)
    stock = Column(Integer, nullable=False, default=0)

    __table_args__ = (CheckConstraint("stock >= 0", name="ck_variant_stock"),)

    product = relationship("Product", back_populates="variants")

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} sku={self.sku!r} stock={self.stock}>"
