"""Device lookups for incoming scans."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import DeviceNotFound, StorageFailure
from ..db.session import SessionFactory
from ..models._common import utcnow
from ..models.device import Device

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceContext:
    """Everything the pipeline needs to know about the scanning device.

    ``owner_id`` always comes from the stored device, never from the request.
    """

    device_id: str
    name: str
    serial_number: str
    owner_id: str
    location_id: str | None
    location_name: str | None


async def resolve_device(session: AsyncSession, serial_number: str) -> DeviceContext:
    stmt = select(Device).where(Device.serial_number == serial_number)
    try:
        device = (await session.execute(stmt)).scalars().first()
    except SQLAlchemyError as exc:
        logger.error("Error finding scanner %s", serial_number, exc_info=exc)
        raise StorageFailure() from exc

    if device is None:
        raise DeviceNotFound()

    return DeviceContext(
        device_id=device.id,
        name=device.name,
        serial_number=device.serial_number,
        owner_id=device.owner_id,
        location_id=device.location_id,
        location_name=device.location.name if device.location else None,
    )


async def touch_last_seen(session_factory: SessionFactory, device_id: str) -> None:
    """Refresh ``last_seen_at`` in a session of its own."""

    async with session_factory() as session:
        await session.execute(update(Device).where(Device.id == device_id).values(last_seen_at=utcnow()))
        await session.commit()
