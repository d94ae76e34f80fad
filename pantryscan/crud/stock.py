"""Scan-driven stock reconciliation.

A single ``INSERT ... ON CONFLICT (location_id, product_id) DO UPDATE`` both
creates the row and applies the delta. The new quantity is computed by the
database from the value it currently holds, so two concurrent scans of the
same product never overwrite each other's delta, and the ``max(0, ...)`` clamp
is applied in the same statement.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import case, literal
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import StorageFailure
from ..models._common import new_id, utcnow
from ..models.stock import StockEntry

logger = logging.getLogger(__name__)

ADD = "add"
REMOVE = "remove"
ACTIONS = (ADD, REMOVE)


@dataclass(frozen=True)
class StockLevel:
    entry_id: str
    location_id: str
    product_id: str
    quantity: int
    threshold: int | None
    last_scanned_at: datetime

    @property
    def is_low(self) -> bool:
        return self.threshold is not None and self.quantity <= self.threshold


def signed_delta(action: str, quantity: int) -> int:
    if quantity < 1:
        raise ValueError("quantity must be at least 1")
    if action == ADD:
        return quantity
    if action == REMOVE:
        return -quantity
    raise ValueError(f"unknown action {action!r}")


def _insert_for(session: AsyncSession):
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"stock upsert is not implemented for {dialect}")


async def apply_stock_delta(
    session: AsyncSession,
    *,
    location_id: str,
    product_id: str,
    action: str,
    quantity: int,
) -> StockLevel:
    """Add or remove ``quantity`` units and return the stored level.

    A missing row counts as zero, so removing from it creates the entry at 0.
    """

    delta = signed_delta(action, quantity)
    now = utcnow()
    insert = _insert_for(session)

    stmt = insert(StockEntry).values(
        id=new_id(),
        location_id=location_id,
        product_id=product_id,
        quantity=max(0, delta),
        last_scanned_at=now,
        created_at=now,
        updated_at=now,
    )
    merged = StockEntry.__table__.c.quantity + literal(delta)
    stmt = stmt.on_conflict_do_update(
        index_elements=[StockEntry.location_id, StockEntry.product_id],
        set_={
            "quantity": case((merged < 0, 0), else_=merged),
            "last_scanned_at": now,
            "updated_at": now,
        },
    ).returning(StockEntry.id, StockEntry.quantity, StockEntry.threshold)

    try:
        row = (await session.execute(stmt)).one()
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error("Error updating stock for product %s in %s", product_id, location_id, exc_info=exc)
        raise StorageFailure() from exc

    logger.info(
        "stock.updated",
        extra={"extra_data": {"location_id": location_id, "product_id": product_id, "quantity": row.quantity}},
    )
    return StockLevel(
        entry_id=row.id,
        location_id=location_id,
        product_id=product_id,
        quantity=row.quantity,
        threshold=row.threshold,
        last_scanned_at=now,
    )
