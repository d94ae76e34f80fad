from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from ..db.session import Base
from ._common import new_id, utcnow


class Product(Base):
    """A product known to one account, optionally enriched from the catalog.

    Enrichment columns are filled once at creation time and never refreshed by
    the scan pipeline.
    """

    __tablename__ = "products"
    __table_args__ = (UniqueConstraint("owner_id", "barcode", name="uq_products_owner_barcode"),)

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(64), nullable=False, index=True)
    barcode = Column(String(32), nullable=True, index=True)
    name = Column(Text, nullable=True)
    brand = Column(Text, nullable=True)
    category = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    quantity_label = Column(Text, nullable=True)
    ingredients = Column(Text, nullable=True)
    nutriscore = Column(String(8), nullable=True)
    ecoscore = Column(String(8), nullable=True)
    nova_group = Column(Integer, nullable=True)
    nutritional_values = Column(JSON, nullable=True)
    allergens = Column(Text, nullable=True)
    origin = Column(Text, nullable=True)
    packaging = Column(Text, nullable=True)
    labels = Column(Text, nullable=True)
    carbon_footprint = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    ENRICHMENT_FIELDS = (
        "brand",
        "category",
        "image_url",
        "quantity_label",
        "ingredients",
        "nutriscore",
        "ecoscore",
        "nova_group",
        "nutritional_values",
        "allergens",
        "origin",
        "packaging",
        "labels",
        "carbon_footprint",
    )


class ProductCategory(Base):
    __tablename__ = "product_categories"

    id = Column(String(36), primary_key=True, default=new_id)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    category_name = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
