from __future__ import annotations

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from ..db.session import Base
from ._common import new_id, utcnow


class StockEntry(Base):
    """Quantity of one product physically present in one location.

    There is at most one row per (location, product); all scan-driven writes go
    through the upsert in ``pantryscan.crud.stock``.
    """

    __tablename__ = "dispense_products"
    __table_args__ = (
        UniqueConstraint("location_id", "product_id", name="uq_dispense_products_location_product"),
        CheckConstraint("quantity >= 0", name="ck_dispense_products_quantity_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    location_id = Column(String(36), ForeignKey("dispense.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=0)
    threshold = Column(Integer, nullable=True)
    last_scanned_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
