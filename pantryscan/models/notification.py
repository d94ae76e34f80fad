from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, String, Text

from ..db.session import Base
from ._common import new_id, utcnow


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(64), nullable=False, index=True)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(32), nullable=False, default="scanner")
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
