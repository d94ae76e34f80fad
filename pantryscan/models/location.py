from __future__ import annotations

from sqlalchemy import Column, DateTime, String, Text

from ..db.session import Base
from ._common import new_id, utcnow


class Location(Base):
    """A named storage area ("dispensa") owned by one account."""

    __tablename__ = "dispense"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(64), nullable=False, index=True)
    name = Column(Text, nullable=False)
    color = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
