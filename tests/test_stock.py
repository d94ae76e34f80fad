import asyncio

import pytest
from sqlalchemy import func, select, update

from scanfixtures import open_store, seed_device

from pantryscan.crud.stock import apply_stock_delta, signed_delta
from pantryscan.models import Product, StockEntry


@pytest.fixture()
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'stock.db'}"


async def _seed_product(factory, owner_id="user-1"):
    async with factory() as session:
        product = Product(owner_id=owner_id, barcode="8000000000017", name="Pasta Rossi")
        session.add(product)
        await session.commit()
        return product.id


async def _apply(factory, location_id, product_id, action, quantity):
    async with factory() as session:
        return await apply_stock_delta(
            session,
            location_id=location_id,
            product_id=product_id,
            action=action,
            quantity=quantity,
        )


async def _stock_rows(factory, location_id, product_id):
    async with factory() as session:
        stmt = select(StockEntry).where(
            StockEntry.location_id == location_id,
            StockEntry.product_id == product_id,
        )
        return (await session.execute(stmt)).scalars().all()


def test_signed_delta():
    assert signed_delta("add", 3) == 3
    assert signed_delta("remove", 3) == -3
    with pytest.raises(ValueError):
        signed_delta("add", 0)
    with pytest.raises(ValueError):
        signed_delta("toss", 1)


def test_add_creates_then_accumulates(db_url):
    async def scenario():
        async with open_store(db_url) as factory:
            _, location_id = await seed_device(factory)
            product_id = await _seed_product(factory)
            first = await _apply(factory, location_id, product_id, "add", 1)
            second = await _apply(factory, location_id, product_id, "add", 4)
            rows = await _stock_rows(factory, location_id, product_id)
            return first, second, rows

    first, second, rows = asyncio.run(scenario())
    assert first.quantity == 1
    assert second.quantity == 5
    assert second.entry_id == first.entry_id
    assert len(rows) == 1
    assert rows[0].quantity == 5
    assert rows[0].last_scanned_at is not None


def test_remove_clamps_at_zero(db_url):
    async def scenario():
        async with open_store(db_url) as factory:
            _, location_id = await seed_device(factory)
            product_id = await _seed_product(factory)
            await _apply(factory, location_id, product_id, "add", 2)
            partial = await _apply(factory, location_id, product_id, "remove", 1)
            clamped = await _apply(factory, location_id, product_id, "remove", 5)
            return partial, clamped

    partial, clamped = asyncio.run(scenario())
    assert partial.quantity == 1
    assert clamped.quantity == 0


def test_remove_without_entry_creates_it_at_zero(db_url):
    async def scenario():
        async with open_store(db_url) as factory:
            _, location_id = await seed_device(factory)
            product_id = await _seed_product(factory)
            level = await _apply(factory, location_id, product_id, "remove", 3)
            rows = await _stock_rows(factory, location_id, product_id)
            return level, rows

    level, rows = asyncio.run(scenario())
    assert level.quantity == 0
    assert [row.quantity for row in rows] == [0]


def test_concurrent_adds_are_not_lost(db_url):
    async def scenario():
        async with open_store(db_url) as factory:
            _, location_id = await seed_device(factory)
            product_id = await _seed_product(factory)
            await _apply(factory, location_id, product_id, "add", 1)
            await asyncio.gather(
                *(_apply(factory, location_id, product_id, "add", magnitude) for magnitude in (2, 3, 4, 5))
            )
            async with factory() as session:
                count = await session.scalar(select(func.count()).select_from(StockEntry))
            rows = await _stock_rows(factory, location_id, product_id)
            return count, rows

    count, rows = asyncio.run(scenario())
    assert count == 1
    assert rows[0].quantity == 1 + 2 + 3 + 4 + 5


def test_low_stock_flag_uses_threshold(db_url):
    async def scenario():
        async with open_store(db_url) as factory:
            _, location_id = await seed_device(factory)
            product_id = await _seed_product(factory)
            await _apply(factory, location_id, product_id, "add", 5)
            async with factory() as session:
                await session.execute(update(StockEntry).values(threshold=2))
                await session.commit()
            above = await _apply(factory, location_id, product_id, "remove", 2)
            below = await _apply(factory, location_id, product_id, "remove", 1)
            return above, below

    above, below = asyncio.run(scenario())
    assert above.quantity == 3 and not above.is_low
    assert below.quantity == 2 and below.is_low
