"""Scan ingestion: one inbound scan event from start to response.

A scan moves through ``received → device_resolved → product_resolved →
quantity_reconciled → fanned_out → responded``. Any failure before the stock
update aborts the scan without side effects; once the stock update has been
committed, the remaining steps are best effort and never turn the scan into a
failure.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Mapping

from pydantic import ValidationError

from ..core.config import AppSettings
from ..core.errors import InvalidRequest
from ..crud.devices import resolve_device, touch_last_seen
from ..crud.events import ScanEvent, fan_out
from ..crud.products import resolve_or_create_product
from ..crud.stock import StockLevel, apply_stock_delta
from ..db.session import SessionFactory
from ..middlewares import device_ctx_var
from ..schemas.scan import ScanRequest, ScanResponse
from .catalog import CatalogClient

logger = logging.getLogger(__name__)


class ScanState(str, enum.Enum):
    RECEIVED = "received"
    DEVICE_RESOLVED = "device_resolved"
    PRODUCT_RESOLVED = "product_resolved"
    QUANTITY_RECONCILED = "quantity_reconciled"
    FANNED_OUT = "fanned_out"
    RESPONDED = "responded"


@dataclass
class ScanResult:
    product_id: str
    product_name: str
    product_created: bool
    action: str
    quantity: int
    stock: StockLevel | None
    fanout_failures: int = 0

    def to_response(self) -> ScanResponse:
        return ScanResponse(
            product_id=self.product_id,
            product_name=self.product_name,
            action=self.action,
            quantity=self.quantity,
            stock_quantity=self.stock.quantity if self.stock else None,
            product_created=self.product_created,
        )


def parse_scan_request(payload: Any) -> ScanRequest:
    """Validate a raw JSON body, raising ``InvalidRequest`` on any problem."""

    if not isinstance(payload, Mapping):
        raise InvalidRequest("Request body must be a JSON object")
    if not payload.get("barcode") or not payload.get("scanner_serial"):
        raise InvalidRequest()
    try:
        return ScanRequest.model_validate(dict(payload))
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid request")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        raise InvalidRequest(f"{field}: {message}" if field else message) from exc


class ScanPipeline:
    """Orchestrates device, product, stock and fan-out steps for a scan.

    The pipeline keeps no per-scan state; the only thing it tracks is the set of
    fire-and-forget tasks it has spawned so they can be drained on shutdown.
    """

    def __init__(self, session_factory: SessionFactory, catalog: CatalogClient, settings: AppSettings) -> None:
        self.session_factory = session_factory
        self.catalog = catalog
        self.settings = settings
        self._background: set[asyncio.Task] = set()

    def _spawn(self, name: str, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._background.discard(finished)
            if finished.cancelled():
                return
            exc = finished.exception()
            if exc is not None:
                logger.warning("%s failed", name, exc_info=exc)

        task.add_done_callback(_done)
        return task

    async def drain(self) -> None:
        """Wait for outstanding background tasks (used on shutdown and in tests)."""

        while True:
            pending = [task for task in self._background if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _transition(self, state: ScanState, **details: Any) -> None:
        logger.info("scan.%s", state.value, extra={"extra_data": {"state": state.value, **details}})

    async def ingest(self, request: ScanRequest) -> ScanResult:
        device_token = device_ctx_var.set(request.scanner_serial)
        try:
            return await self._ingest(request)
        finally:
            device_ctx_var.reset(device_token)

    async def _ingest(self, request: ScanRequest) -> ScanResult:
        self._transition(
            ScanState.RECEIVED,
            barcode=request.barcode,
            action=request.action,
            quantity=request.quantity,
        )

        async with self.session_factory() as session:
            device = await resolve_device(session, request.scanner_serial)
            self._spawn("device.last_seen_refresh", touch_last_seen(self.session_factory, device.device_id))
            self._transition(ScanState.DEVICE_RESOLVED, device_id=device.device_id, location_id=device.location_id)

            product, created = await resolve_or_create_product(
                session,
                self.catalog,
                owner_id=device.owner_id,
                barcode=request.barcode,
                fallback_name=self.settings.DEFAULT_PRODUCT_NAME,
                max_category_tags=self.settings.MAX_CATEGORY_TAGS,
            )
            product_id = product.id
            product_name = product.name or self.settings.DEFAULT_PRODUCT_NAME
            self._transition(ScanState.PRODUCT_RESOLVED, product_id=product_id, created=created)

            stock: StockLevel | None = None
            if device.location_id is None:
                logger.info("Scanner %s has no location assigned, stock left untouched", device.serial_number)
            else:
                stock = await apply_stock_delta(
                    session,
                    location_id=device.location_id,
                    product_id=product_id,
                    action=request.action,
                    quantity=request.quantity,
                )
                self._transition(ScanState.QUANTITY_RECONCILED, stock_quantity=stock.quantity)

        failures = await fan_out(
            self.session_factory,
            ScanEvent(
                device=device,
                product_id=product_id,
                product_name=product_name,
                barcode=request.barcode,
                action=request.action,
                quantity=request.quantity,
                stock=stock,
            ),
        )
        self._transition(ScanState.FANNED_OUT, failures=len(failures))

        result = ScanResult(
            product_id=product_id,
            product_name=product_name,
            product_created=created,
            action=request.action,
            quantity=request.quantity,
            stock=stock,
            fanout_failures=len(failures),
        )
        self._transition(ScanState.RESPONDED, product_id=product_id)
        return result
