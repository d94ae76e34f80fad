import asyncio

import httpx
import pytest
from sqlalchemy import func, select

from scanfixtures import SERIAL, make_catalog, make_settings, open_store, seed_device

from pantryscan.core.errors import DeviceNotFound, InvalidRequest, StorageFailure
from pantryscan.crud import events as events_crud
from pantryscan.models import Device, Notification, Product, ScanLogEntry, StockEntry
from pantryscan.services.ingestion import ScanPipeline, parse_scan_request

PASTA = {"product_name": "Pasta Rossi", "brands": "Rossi", "categories_tags": ["en:pastas"]}


@pytest.fixture()
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'ingestion.db'}"


async def _all(factory, model):
    async with factory() as session:
        return (await session.execute(select(model))).scalars().all()


async def _count(factory, model):
    async with factory() as session:
        return await session.scalar(select(func.count()).select_from(model))


async def _ingest(pipeline, **payload):
    body = {"scanner_serial": SERIAL, **payload}
    result = await pipeline.ingest(parse_scan_request(body))
    await pipeline.drain()
    return result


def _pipeline(factory, catalog, db_url):
    return ScanPipeline(factory, catalog, make_settings(db_url))


def test_first_scan_creates_product_stock_log_and_notification(db_url):
    async def scenario():
        catalog = make_catalog({"8000000000017": PASTA})
        async with open_store(db_url) as factory:
            _, location_id = await seed_device(factory)
            result = await _ingest(_pipeline(factory, catalog, db_url), barcode="8000000000017")
            snapshot = {
                "products": await _all(factory, Product),
                "stock": await _all(factory, StockEntry),
                "logs": await _all(factory, ScanLogEntry),
                "notifications": await _all(factory, Notification),
            }
        await catalog.aclose()
        return location_id, result, snapshot

    location_id, result, snapshot = asyncio.run(scenario())

    assert result.product_name == "Pasta Rossi"
    assert result.product_created is True
    assert result.stock.quantity == 1

    [product] = snapshot["products"]
    assert product.name == "Pasta Rossi"
    assert product.id == result.product_id

    [stock] = snapshot["stock"]
    assert (stock.location_id, stock.product_id, stock.quantity) == (location_id, product.id, 1)

    [log] = snapshot["logs"]
    assert (log.action, log.quantity, log.barcode) == ("add", 1, "8000000000017")
    assert log.location_id == location_id

    [notification] = snapshot["notifications"]
    assert "Pasta Rossi" in notification.message
    assert notification.message == "1x Pasta Rossi added to Kitchen"
    assert notification.title == "Product added"
    assert notification.owner_id == "user-1"
    assert notification.type == "scanner"


def test_remove_after_add_never_goes_negative(db_url):
    async def scenario():
        catalog = make_catalog({"8000000000017": PASTA})
        async with open_store(db_url) as factory:
            await seed_device(factory)
            pipeline = _pipeline(factory, catalog, db_url)
            await _ingest(pipeline, barcode="8000000000017")
            removed = await _ingest(pipeline, barcode="8000000000017", action="remove", quantity=1)
            again = await _ingest(pipeline, barcode="8000000000017", action="remove", quantity=3)
            products = await _count(factory, Product)
            notifications = await _all(factory, Notification)
        await catalog.aclose()
        return removed, again, products, notifications

    removed, again, products, notifications = asyncio.run(scenario())
    assert removed.stock.quantity == 0
    assert again.stock.quantity == 0
    assert removed.product_created is False
    assert products == 1
    assert "1x Pasta Rossi removed from Kitchen" in {n.message for n in notifications}


def test_catalog_timeout_creates_fallback_product(db_url):
    async def scenario():
        catalog = make_catalog(error=httpx.ReadTimeout)
        async with open_store(db_url) as factory:
            await seed_device(factory)
            result = await _ingest(_pipeline(factory, catalog, db_url), barcode="8000000000031")
            products = await _all(factory, Product)
        await catalog.aclose()
        return result, products

    result, products = asyncio.run(scenario())
    assert result.product_name == "new product"
    [product] = products
    assert product.name == "new product"
    assert all(getattr(product, name) is None for name in Product.ENRICHMENT_FIELDS)


def test_unknown_serial_writes_nothing(db_url):
    async def scenario():
        catalog = make_catalog({"8000000000017": PASTA})
        async with open_store(db_url) as factory:
            await seed_device(factory)
            pipeline = _pipeline(factory, catalog, db_url)
            with pytest.raises(DeviceNotFound):
                await pipeline.ingest(
                    parse_scan_request({"barcode": "8000000000017", "scanner_serial": "SCN-ZZZZZZZZ-9999"})
                )
            await pipeline.drain()
            counts = [await _count(factory, model) for model in (Product, StockEntry, ScanLogEntry, Notification)]
        await catalog.aclose()
        return counts

    assert asyncio.run(scenario()) == [0, 0, 0, 0]


def test_unassigned_device_logs_without_touching_stock(db_url):
    async def scenario():
        catalog = make_catalog({"8000000000017": PASTA})
        async with open_store(db_url) as factory:
            await seed_device(factory, location_name=None, name="Garage scanner")
            result = await _ingest(_pipeline(factory, catalog, db_url), barcode="8000000000017")
            snapshot = {
                "products": await _count(factory, Product),
                "stock": await _count(factory, StockEntry),
                "logs": await _all(factory, ScanLogEntry),
                "notifications": await _all(factory, Notification),
            }
        await catalog.aclose()
        return result, snapshot

    result, snapshot = asyncio.run(scenario())
    assert result.stock is None
    assert snapshot["products"] == 1
    assert snapshot["stock"] == 0
    [log] = snapshot["logs"]
    assert log.location_id is None
    [notification] = snapshot["notifications"]
    assert notification.message == "1x Pasta Rossi scanned by Garage scanner (no location assigned)"


def test_concurrent_scans_of_known_product_add_up(db_url):
    async def scenario():
        catalog = make_catalog({"8000000000017": PASTA})
        async with open_store(db_url) as factory:
            await seed_device(factory)
            pipeline = _pipeline(factory, catalog, db_url)
            await _ingest(pipeline, barcode="8000000000017")
            await asyncio.gather(
                _ingest(pipeline, barcode="8000000000017", quantity=2),
                _ingest(pipeline, barcode="8000000000017", quantity=3),
            )
            stock = await _all(factory, StockEntry)
            logs = await _count(factory, ScanLogEntry)
        await catalog.aclose()
        return stock, logs

    stock, logs = asyncio.run(scenario())
    assert [entry.quantity for entry in stock] == [6]
    assert logs == 3


def test_fanout_failure_does_not_fail_the_scan(db_url, monkeypatch):
    async def broken_notification(session_factory, event):
        raise RuntimeError("notifications table unavailable")

    monkeypatch.setattr(events_crud, "create_notification", broken_notification)

    async def scenario():
        catalog = make_catalog({"8000000000017": PASTA})
        async with open_store(db_url) as factory:
            await seed_device(factory)
            result = await _ingest(_pipeline(factory, catalog, db_url), barcode="8000000000017")
            logs = await _count(factory, ScanLogEntry)
            notifications = await _count(factory, Notification)
            stock = await _all(factory, StockEntry)
        await catalog.aclose()
        return result, logs, notifications, stock

    result, logs, notifications, stock = asyncio.run(scenario())
    assert result.fanout_failures == 1
    assert logs == 1
    assert notifications == 0
    assert stock[0].quantity == 1


def test_storage_failure_during_stock_update_surfaces(db_url, monkeypatch):
    from pantryscan.services import ingestion

    async def broken_stock(session, **kwargs):
        raise StorageFailure()

    monkeypatch.setattr(ingestion, "apply_stock_delta", broken_stock)

    async def scenario():
        catalog = make_catalog({"8000000000017": PASTA})
        async with open_store(db_url) as factory:
            await seed_device(factory)
            pipeline = _pipeline(factory, catalog, db_url)
            with pytest.raises(StorageFailure):
                await _ingest(pipeline, barcode="8000000000017")
            await pipeline.drain()
            logs = await _count(factory, ScanLogEntry)
        await catalog.aclose()
        return logs

    assert asyncio.run(scenario()) == 0


def test_scan_refreshes_device_last_seen(db_url):
    async def scenario():
        catalog = make_catalog({"8000000000017": PASTA})
        async with open_store(db_url) as factory:
            await seed_device(factory)
            await _ingest(_pipeline(factory, catalog, db_url), barcode="8000000000017")
            [device] = await _all(factory, Device)
        await catalog.aclose()
        return device

    assert asyncio.run(scenario()).last_seen_at is not None


def test_failed_last_seen_refresh_does_not_fail_the_scan(db_url, monkeypatch):
    from pantryscan.services import ingestion

    async def broken_touch(session_factory, device_id):
        raise StorageFailure()

    monkeypatch.setattr(ingestion, "touch_last_seen", broken_touch)

    async def scenario():
        catalog = make_catalog({"8000000000017": PASTA})
        async with open_store(db_url) as factory:
            await seed_device(factory)
            result = await _ingest(_pipeline(factory, catalog, db_url), barcode="8000000000017")
            stock = await _all(factory, StockEntry)
            [device] = await _all(factory, Device)
        await catalog.aclose()
        return result, stock, device

    result, stock, device = asyncio.run(scenario())
    assert result.stock.quantity == 1
    assert [entry.quantity for entry in stock] == [1]
    assert device.last_seen_at is None


def test_low_stock_remove_uses_running_low_title(db_url):
    async def scenario():
        catalog = make_catalog({"8000000000017": PASTA})
        async with open_store(db_url) as factory:
            await seed_device(factory)
            pipeline = _pipeline(factory, catalog, db_url)
            await _ingest(pipeline, barcode="8000000000017", quantity=3)
            async with factory() as session:
                [entry] = (await session.execute(select(StockEntry))).scalars().all()
                entry.threshold = 2
                await session.commit()
            await _ingest(pipeline, barcode="8000000000017", action="remove")
            notifications = await _all(factory, Notification)
        await catalog.aclose()
        return notifications

    titles = [n.title for n in asyncio.run(scenario())]
    assert sorted(titles) == ["Product added", "Running low"]


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"scanner_serial": SERIAL}, "Missing barcode or scanner_serial"),
        ({"barcode": "8000000000017"}, "Missing barcode or scanner_serial"),
        ({"barcode": "8000000000017", "scanner_serial": "bogus"}, "Invalid scanner serial format"),
        ({"barcode": "not-digits", "scanner_serial": SERIAL}, "barcode must contain only digits"),
        ({"barcode": "8000000000017", "scanner_serial": SERIAL, "action": "toss"}, "action"),
        ({"barcode": "8000000000017", "scanner_serial": SERIAL, "quantity": 0}, "quantity"),
        ({"barcode": "8000000000017", "scanner_serial": SERIAL, "quantity": 10**20}, "quantity"),
        ({"barcode": "8000000000017", "scanner_serial": SERIAL, "quantity": 2**31}, "quantity"),
        (["8000000000017"], "JSON object"),
    ],
)
def test_parse_scan_request_rejects_invalid_payloads(payload, message):
    with pytest.raises(InvalidRequest) as excinfo:
        parse_scan_request(payload)
    assert message in excinfo.value.message


def test_parse_scan_request_applies_defaults():
    scan = parse_scan_request(
        {"barcode": " 123456789012 ", "scanner_serial": "scn-aaaaaaaa-1111", "action": None, "quantity": None}
    )

    assert scan.barcode == "0123456789012"
    assert scan.scanner_serial == SERIAL
    assert scan.action == "add"
    assert scan.quantity == 1
