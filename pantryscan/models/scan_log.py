from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from ..db.session import Base
from ._common import new_id, utcnow


class ScanLogEntry(Base):
    """Append-only audit record of one ingested scan."""

    __tablename__ = "scan_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    device_id = Column(String(36), ForeignKey("scanners.id", ondelete="CASCADE"), nullable=False, index=True)
    location_id = Column(String(36), ForeignKey("dispense.id", ondelete="CASCADE"), nullable=True, index=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    barcode = Column(String(32), nullable=True)
    action = Column(String(16), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
