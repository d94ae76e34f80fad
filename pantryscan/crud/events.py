"""Scan log and notification writes that follow a stock update."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from ..core.errors import PartialFanoutFailure
from ..db.session import SessionFactory
from ..models.notification import Notification
from ..models.scan_log import ScanLogEntry
from .devices import DeviceContext
from .stock import ADD, StockLevel

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE = "scanner"


@dataclass(frozen=True)
class ScanEvent:
    device: DeviceContext
    product_id: str
    product_name: str
    barcode: str
    action: str
    quantity: int
    stock: StockLevel | None = None


def notification_title(event: ScanEvent) -> str:
    if event.action != ADD and event.stock is not None and event.stock.is_low:
        return "Running low"
    return "Product added" if event.action == ADD else "Product removed"


def notification_message(event: ScanEvent) -> str:
    """``"2x Pasta Rossi added to Kitchen"`` and friends."""

    subject = f"{event.quantity}x {event.product_name}"
    if event.device.location_name is None:
        return f"{subject} scanned by {event.device.name} (no location assigned)"
    if event.action == ADD:
        return f"{subject} added to {event.device.location_name}"
    return f"{subject} removed from {event.device.location_name}"


async def record_scan_log(session_factory: SessionFactory, event: ScanEvent) -> ScanLogEntry:
    entry = ScanLogEntry(
        device_id=event.device.device_id,
        location_id=event.device.location_id,
        product_id=event.product_id,
        barcode=event.barcode,
        action=event.action,
        quantity=event.quantity,
    )
    async with session_factory() as session:
        session.add(entry)
        await session.commit()
    return entry


async def create_notification(session_factory: SessionFactory, event: ScanEvent) -> Notification:
    notification = Notification(
        owner_id=event.device.owner_id,
        title=notification_title(event),
        message=notification_message(event),
        type=NOTIFICATION_TYPE,
    )
    async with session_factory() as session:
        session.add(notification)
        await session.commit()
    return notification


async def fan_out(session_factory: SessionFactory, event: ScanEvent) -> list[PartialFanoutFailure]:
    """Write the scan log and the notification concurrently.

    Each write uses its own session so one failing cannot suppress the other.
    Failures are logged and returned, never raised.
    """

    results = await asyncio.gather(
        record_scan_log(session_factory, event),
        create_notification(session_factory, event),
        return_exceptions=True,
    )

    failures: list[PartialFanoutFailure] = []
    for target, result in zip(("scan_log", "notification"), results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, Exception):
            failure = PartialFanoutFailure(f"{target} write failed: {result}")
            logger.error(
                "scan.fanout_failed",
                exc_info=result,
                extra={"extra_data": {"target": target, "product_id": event.product_id}},
            )
            failures.append(failure)
    return failures
