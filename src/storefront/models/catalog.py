from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Float, Integer, Text
from sqlalchemy import ForeignKey
from sqlalchemy.orm import relationship

from storefront.db import Base, BigIntPK, JSONDoc


def _utcnow():
    return datetime.now(timezone.utc)


class Category(Base):
    """
    A node in the category tree (e.g. Clothing > Outerwear).

    parent_id is nullable; root categories have none. Deleting a category
    with children is refused by the service layer rather than cascaded.
    """

    __tablename__ = "categories"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    slug = Column(Text, nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    parent_id = Column(BigIntPK, ForeignKey("categories.id"), nullable=True, index=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    products = relationship("Product", back_populates="category")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "image_url": self.image_url,
            "parent_id": self.parent_id,
            "sort_order": self.sort_order,
        }

    def __repr__(self) -> str:
        return f"<Category id={self.id} slug={self.slug!r}>"


class Product(Base):
    """
    A catalog item. Concrete purchasable options (colour, size) live in
    ProductVariant; a product without variants is sold at base_price.

    base_price is stored in integer cents to avoid floating-point rounding
    errors. $19.99 -> 1999.

    images, color_options, size_options and dimensions are JSON documents:
      images         [{"url", "alt", "is_main"}]
      color_options  [{"id", "name", "hex"}]
      dimensions     {"length", "width", "height"}   (cm)
    weight is in grams.
    """

    __tablename__ = "products"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    slug = Column(Text, nullable=False, unique=True, index=True)
    description = Column(Text, nullable=False, default="")
    base_price = Column(Integer, nullable=False)
    compare_at_price = Column(Integer, nullable=True)
    images = Column(JSONDoc, nullable=False, default=list)
    featured_image = Column(Text, nullable=True)
    color_options = Column(JSONDoc, nullable=True)
    size_options = Column(JSONDoc, nullable=True)
    weight = Column(Integer, nullable=True)
    dimensions = Column(JSONDoc, nullable=True)
    requires_shipping = Column(Boolean, nullable=False, default=True)
    shipping_rate_override = Column(Integer, nullable=True)
    is_free_shipping = Column(Boolean, nullable=True)
    is_taxable = Column(Boolean, nullable=True)
    tax_rate_override = Column(Float, nullable=True)
    category_id = Column(BigIntPK, ForeignKey("categories.id"), nullable=True, index=True)
    tags = Column(JSONDoc, nullable=True)
    status = Column(Text, nullable=False, default="draft")
    is_featured = Column(Boolean, nullable=False, default=False)
    published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        CheckConstraint("base_price >= 0", name="ck_product_base_price"),
        CheckConstraint(
            "status IN ('draft','active','archived')", name="ck_product_status"
        ),
    )

    category = relationship("Category", back_populates="products")
    # cascade='all, delete-orphan': deleting a product deletes its variants.
    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariant.id",
    )

    @property
    def main_image_url(self):
        images = self.images or []
        return images[0].get("url") if images else None

    def default_variant(self):
        variants = list(self.variants)
        return next((v for v in variants if v.is_default), variants[0] if variants else None)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "base_price": self.base_price,
            "compare_at_price": self.compare_at_price,
            "images": self.images or [],
            "featured_image": self.featured_image,
            "color_options": self.color_options or [],
            "size_options": self.size_options or [],
            "weight": self.weight,
            "dimensions": self.dimensions,
            "requires_shipping": self.requires_shipping,
            "shipping_rate_override": self.shipping_rate_override,
            "is_free_shipping": self.is_free_shipping,
            "is_taxable": self.is_taxable,
            "tax_rate_override": self.tax_rate_override,
            "category_id": self.category_id,
            "tags": self.tags or [],
            "status": self.status,
            "is_featured": self.is_featured,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Product id={self.id} slug={self.slug!r} status={self.status!r}>"


class ProductVariant(Base):
    """
    A specific, purchasable configuration of a product.

    The selling price is product.base_price + price_adjustment (cents, may be
    negative). At most one variant per product has is_default set.
    """

    __tablename__ = "product_variants"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    product_id = Column(
        BigIntPK, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    color_id = Column(Text, nullable=True)
    size = Column(Text, nullable=True)
    sku = Column(Text, nullable=False, unique=True)
    stock_count = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=True)
    price_adjustment = Column(Integer, nullable=True)
    weight = Column(Integer, nullable=True)
    dimensions = Column(JSONDoc, nullable=True)
    image_url = Column(Text, nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (CheckConstraint("stock_count >= 0", name="ck_variant_stock"),)

    product = relationship("Product", back_populates="variants")

    @property
    def label(self) -> str:
        return f"{self.color_id or ''} {self.size or ''}".strip()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "color_id": self.color_id,
            "size": self.size,
            "sku": self.sku,
            "stock_count": self.stock_count,
            "low_stock_threshold": self.low_stock_threshold,
            "price_adjustment": self.price_adjustment,
            "weight": self.weight,
            "dimensions": self.dimensions,
            "image_url": self.image_url,
            "is_default": self.is_default,
        }

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} sku={self.sku!r}>"
