from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from ..db.session import Base
from ._common import new_id, utcnow


class Device(Base):
    """A paired barcode scanner.

    ``owner_id`` is the only source of account context for scans reported by
    the device; ``location_id`` may be empty until the owner assigns one.
    """

    __tablename__ = "scanners"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(Text, nullable=False)
    serial_number = Column(String(32), nullable=False, unique=True, index=True)
    owner_id = Column(String(64), nullable=False, index=True)
    location_id = Column(String(36), ForeignKey("dispense.id", ondelete="SET NULL"), nullable=True)
    last_seen_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    location = relationship("Location", lazy="joined")
